"""
Validación criptográfica de una firma XMLDSig con una estrategia de clave dada
"""
import logging
from dataclasses import dataclass

from lxml import etree
from signxml import InvalidInput, InvalidSignature, XMLVerifier

from .exceptions import KeySelectionError
from .key_selectors import KeySelector
from .signer import NS

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ValidationResult:
    """Juicio válido/inválido más texto de diagnóstico"""
    valid: bool
    diagnostic: str
    strategy: str = ""

    @property
    def is_invalid(self) -> bool:
        return not self.valid

    def __str__(self) -> str:
        state = "VALID" if self.valid else "INVALID"
        return f"[{self.strategy}] {state}: {self.diagnostic}"


class XmlDsigValidator:
    """
    Valida la firma de un documento usando signxml.

    Se crea un XMLVerifier nuevo en cada llamada, por lo que validar dos
    veces el mismo documento con la misma estrategia da el mismo resultado.
    """

    def validate(
        self,
        root: etree._Element,
        signature: etree._Element,
        key_selector: KeySelector,
    ) -> ValidationResult:
        strategy = getattr(key_selector, "name", type(key_selector).__name__)

        signatures = root.getroottree().xpath("//ds:Signature", namespaces=NS)
        if signature not in signatures:
            return ValidationResult(False, "El elemento ds:Signature no pertenece al documento", strategy)
        if len(signatures) != 1:
            return ValidationResult(
                False,
                f"Firma ambigua: el documento contiene {len(signatures)} elementos ds:Signature",
                strategy,
            )

        try:
            cert_pem = key_selector.select(signature)
        except KeySelectionError as e:
            return ValidationResult(False, f"No se pudo seleccionar la clave: {e}", strategy)

        try:
            XMLVerifier().verify(root, x509_cert=cert_pem)
        except (InvalidSignature, InvalidInput) as e:
            logger.debug("Firma inválida con estrategia %s: %s", strategy, e)
            return ValidationResult(False, f"{type(e).__name__}: {e}", strategy)

        return ValidationResult(True, "Firma válida", strategy)
