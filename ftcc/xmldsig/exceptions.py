"""
Excepciones de los colaboradores XMLDSig
"""


class XmlDsigError(Exception):
    """Excepción base para errores de firma/verificación XML"""
    pass


class SigningError(XmlDsigError):
    """La clave/certificado no sirven o el documento no se puede firmar"""
    pass


class KeySelectionError(XmlDsigError):
    """No se pudo resolver la clave para validar una firma"""
    pass


class VerifyRequestError(XmlDsigError):
    """No se pudo construir el VerifyRequest para un documento firmado"""
    pass
