"""
ft-at-cc - Cliente de línea de comandos para firma de documentos XML en lote

Escanea el directorio de salientes, firma cada XML (XMLDSig enveloped),
autoverifica la firma con dos estrategias de clave, construye un
VerifyRequest (OASIS DSS) y enruta cada documento a éxito o error.
"""

__version__ = "0.1.0"

APP_NAME = f"ft-at-cc v{__version__}"
