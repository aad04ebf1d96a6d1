"""
Módulo para firma digital XML (XMLDSig Enveloped)

Requisitos:
- Firma enveloped como último hijo del elemento raíz
- Canonicalization: Exclusive XML Canonicalization (exc-c14n)
- Digest: SHA-256
- SignatureMethod: RSA-SHA256 o ECDSA-SHA256 según el tipo de clave
- X509Certificate en KeyInfo (para la validación con clave contenida)
"""
import logging
from dataclasses import dataclass

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.asymmetric import ec, rsa
from lxml import etree
from signxml import (
    CanonicalizationMethod,
    DigestAlgorithm,
    SignatureConstructionMethod,
    SignatureMethod,
    XMLSigner,
)

from .exceptions import SigningError

logger = logging.getLogger(__name__)

# Namespaces
DS_NS = "http://www.w3.org/2000/09/xmldsig#"
NS = {"ds": DS_NS}


@dataclass(frozen=True)
class SignedDocument:
    """Documento firmado y su elemento ds:Signature"""
    root: etree._Element
    signature: etree._Element


def certificate_to_pem(certificate: x509.Certificate) -> str:
    return certificate.public_bytes(serialization.Encoding.PEM).decode("ascii")


def public_key_matches(private_key, certificate: x509.Certificate) -> bool:
    """True si la clave privada corresponde a la clave pública del certificado"""
    def _spki(public_key) -> bytes:
        return public_key.public_bytes(
            serialization.Encoding.DER,
            serialization.PublicFormat.SubjectPublicKeyInfo,
        )

    return _spki(private_key.public_key()) == _spki(certificate.public_key())


def _signature_method_for(private_key) -> SignatureMethod:
    if isinstance(private_key, rsa.RSAPrivateKey):
        return SignatureMethod.RSA_SHA256
    if isinstance(private_key, ec.EllipticCurvePrivateKey):
        return SignatureMethod.ECDSA_SHA256
    raise SigningError(
        f"Tipo de clave no soportado para firmar: {type(private_key).__name__}. "
        "Se requiere RSA o EC"
    )


class XmlDsigSigner:
    """
    Firma documentos XML con signxml.

    Sin estado entre llamadas: la misma instancia puede usarse desde varios
    hilos con la misma clave y certificado (solo lectura).
    """

    def sign(self, root: etree._Element, private_key, certificate: x509.Certificate) -> SignedDocument:
        """
        Firma un documento XML (enveloped)

        Args:
            root: Elemento raíz del documento parseado
            private_key: Clave privada (cryptography)
            certificate: Certificado X.509 correspondiente a la clave

        Returns:
            SignedDocument con el documento firmado y su ds:Signature

        Raises:
            SigningError: Si la clave/certificado no sirven o el documento
                no admite la firma
        """
        method = _signature_method_for(private_key)

        if not public_key_matches(private_key, certificate):
            raise SigningError(
                "La clave privada no corresponde al certificado "
                f"({certificate.subject.rfc4514_string()})"
            )

        existing = root.xpath("//ds:Signature", namespaces=NS)
        if existing:
            raise SigningError(
                f"El documento ya contiene {len(existing)} elemento(s) ds:Signature; "
                "no se firma de nuevo"
            )

        signer = XMLSigner(
            method=SignatureConstructionMethod.enveloped,
            signature_algorithm=method,
            digest_algorithm=DigestAlgorithm.SHA256,
            c14n_algorithm=CanonicalizationMethod.EXCLUSIVE_XML_CANONICALIZATION_1_0,
        )

        try:
            signed_root = signer.sign(
                root,
                key=private_key,
                cert=certificate_to_pem(certificate),
            )
        except Exception as e:
            raise SigningError(f"Error al firmar XML: {e}") from e

        signature = signed_root.find(f"{{{DS_NS}}}Signature")
        if signature is None:
            raise SigningError("signxml no insertó ds:Signature en el elemento raíz")

        logger.debug("XML firmado (%s, raíz %s)", method.name, etree.QName(signed_root).localname)
        return SignedDocument(root=signed_root, signature=signature)
