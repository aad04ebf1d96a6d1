"""
Tests de firma y validación XMLDSig (signxml)
"""
import pytest
from lxml import etree

from conftest import SAMPLE_XML
from ftcc.xmldsig import (
    DS_NS,
    ConstantKeySelector,
    ContainedX509KeySelector,
    KeySelectionError,
    SigningError,
    XmlDsigSigner,
    XmlDsigValidator,
)

NS = {"ds": DS_NS, "t": "urn:ftcc:test"}


@pytest.fixture
def sample_root():
    return etree.fromstring(SAMPLE_XML.encode("utf-8"))


@pytest.fixture
def signed(sample_root, private_key, certificate):
    return XmlDsigSigner().sign(sample_root, private_key, certificate)


class TestSigner:

    def test_enveloped_signature_is_last_child(self, signed):
        assert signed.signature.tag == f"{{{DS_NS}}}Signature"
        assert signed.root[-1] is signed.signature

    def test_algorithms(self, signed):
        """exc-c14n, SHA-256 y rsa-sha256."""
        c14n = signed.signature.find("ds:SignedInfo/ds:CanonicalizationMethod", NS)
        method = signed.signature.find("ds:SignedInfo/ds:SignatureMethod", NS)
        digest = signed.signature.find("ds:SignedInfo/ds:Reference/ds:DigestMethod", NS)
        assert c14n.get("Algorithm") == "http://www.w3.org/2001/10/xml-exc-c14n#"
        assert method.get("Algorithm").endswith("rsa-sha256")
        assert digest.get("Algorithm").endswith("sha256")

    def test_certificate_embedded(self, signed):
        certs = signed.signature.xpath("ds:KeyInfo/ds:X509Data/ds:X509Certificate", namespaces=NS)
        assert len(certs) == 1

    def test_content_untouched(self, signed):
        assert signed.root.findtext("t:Cliente", namespaces=NS) == "Ña Tereza"

    def test_key_certificate_mismatch(self, sample_root, private_key, other_key_and_certificate):
        _, other_certificate = other_key_and_certificate
        with pytest.raises(SigningError, match="no corresponde"):
            XmlDsigSigner().sign(sample_root, private_key, other_certificate)

    def test_already_signed_rejected(self, signed, private_key, certificate):
        """No se firma un documento que ya tiene ds:Signature."""
        with pytest.raises(SigningError, match="ds:Signature"):
            XmlDsigSigner().sign(signed.root, private_key, certificate)

    def test_unsupported_key_type(self, sample_root, certificate):
        with pytest.raises(SigningError, match="Tipo de clave no soportado"):
            XmlDsigSigner().sign(sample_root, object(), certificate)


class TestValidator:

    @pytest.mark.parametrize("selector_factory", [
        lambda cert: ConstantKeySelector(cert),
        lambda cert: ContainedX509KeySelector(),
    ])
    def test_valid_signature(self, signed, certificate, selector_factory):
        result = XmlDsigValidator().validate(signed.root, signed.signature, selector_factory(certificate))
        assert result.valid, result.diagnostic

    def test_strategies_agree(self, signed, certificate):
        """Constante y contenida coinciden sobre una firma correcta."""
        validator = XmlDsigValidator()
        constant = validator.validate(signed.root, signed.signature, ConstantKeySelector(certificate))
        contained = validator.validate(signed.root, signed.signature, ContainedX509KeySelector())
        assert constant.valid == contained.valid
        assert constant.strategy == "constant"
        assert contained.strategy == "contained-x509"

    def test_idempotent(self, signed, certificate):
        """Validar dos veces da el mismo juicio."""
        validator = XmlDsigValidator()
        selector = ConstantKeySelector(certificate)
        first = validator.validate(signed.root, signed.signature, selector)
        second = validator.validate(signed.root, signed.signature, selector)
        assert first == second
        assert signed.root[-1] is signed.signature

    def test_tampered_content(self, signed, certificate):
        signed.root.find("t:Total", NS).text = "9999.00"
        result = XmlDsigValidator().validate(signed.root, signed.signature, ConstantKeySelector(certificate))
        assert result.is_invalid
        assert result.diagnostic

    def test_tampered_is_idempotent(self, signed, certificate):
        signed.root.find("t:Numero", NS).text = "2"
        validator = XmlDsigValidator()
        selector = ContainedX509KeySelector()
        assert validator.validate(signed.root, signed.signature, selector) == \
            validator.validate(signed.root, signed.signature, selector)

    def test_foreign_signature_element(self, signed, sample_root, certificate):
        """Una firma que no pertenece al documento es inválida."""
        result = XmlDsigValidator().validate(sample_root, signed.signature, ConstantKeySelector(certificate))
        assert result.is_invalid
        assert "no pertenece" in result.diagnostic

    def test_ambiguous_signatures(self, signed, certificate):
        signed.root.append(etree.fromstring(etree.tostring(signed.signature)))
        result = XmlDsigValidator().validate(signed.root, signed.signature, ConstantKeySelector(certificate))
        assert result.is_invalid
        assert "ambigua" in result.diagnostic


class TestContainedSelector:

    def test_missing_certificate(self):
        signature = etree.Element(f"{{{DS_NS}}}Signature")
        with pytest.raises(KeySelectionError):
            ContainedX509KeySelector().select(signature)

    def test_garbage_certificate(self):
        signature = etree.fromstring(
            f'<ds:Signature xmlns:ds="{DS_NS}"><ds:KeyInfo><ds:X509Data>'
            '<ds:X509Certificate>no-es-base64!</ds:X509Certificate>'
            '</ds:X509Data></ds:KeyInfo></ds:Signature>'
        )
        with pytest.raises(KeySelectionError, match="inválido"):
            ContainedX509KeySelector().select(signature)

    def test_returns_embedded_certificate(self, signed, certificate):
        pem = ContainedX509KeySelector().select(signed.signature)
        assert pem == ConstantKeySelector(certificate).select(signed.signature)
