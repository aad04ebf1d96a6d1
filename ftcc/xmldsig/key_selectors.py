"""
Estrategias de confianza para validar una firma

- ConstantKeySelector: certificado fijo provisto desde afuera (el mismo que
  se usó para firmar)
- ContainedX509KeySelector: certificado embebido en ds:KeyInfo/ds:X509Data
  de la propia firma
"""
import base64
import binascii
import re
from typing import Protocol

from cryptography import x509
from lxml import etree

from .exceptions import KeySelectionError
from .signer import NS, certificate_to_pem


class KeySelector(Protocol):
    name: str

    def select(self, signature: etree._Element) -> str:
        """Devuelve el certificado (PEM) con el que validar la firma"""
        ...


class ConstantKeySelector:
    name = "constant"

    def __init__(self, certificate: x509.Certificate):
        self._pem = certificate_to_pem(certificate)

    def select(self, signature: etree._Element) -> str:
        return self._pem


class ContainedX509KeySelector:
    name = "contained-x509"

    def select(self, signature: etree._Element) -> str:
        values = signature.xpath(
            "ds:KeyInfo/ds:X509Data/ds:X509Certificate/text()", namespaces=NS
        )
        if not values:
            raise KeySelectionError(
                "La firma no contiene ds:KeyInfo/ds:X509Data/ds:X509Certificate"
            )

        # quita whitespace/newlines dentro del base64
        b64 = re.sub(r"\s+", "", values[0])
        try:
            der = base64.b64decode(b64, validate=True)
            certificate = x509.load_der_x509_certificate(der)
        except (binascii.Error, ValueError) as e:
            raise KeySelectionError(f"Certificado embebido inválido: {e}") from e

        return certificate_to_pem(certificate)
