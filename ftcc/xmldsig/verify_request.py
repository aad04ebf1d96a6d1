"""
Construcción del VerifyRequest (OASIS DSS 1.0) para un documento firmado

El VerifyRequest contiene el documento firmado en Base64XML y un
SignaturePtr que apunta (por XPath) a la firma enveloped dentro de él.
Es el payload que se entrega al servicio de verificación posterior.
"""
import base64
import hashlib
import uuid
from dataclasses import dataclass
from typing import Callable, Optional

from lxml import etree

from .exceptions import VerifyRequestError
from .signer import DS_NS

DSS_NS = "urn:oasis:names:tc:dss:1.0:core:schema"
VR_NS = "urn:oasis:names:tc:dss-x:1.0:profiles:verificationreport:schema#"
REPORT_DETAIL_ALL = "urn:oasis:names:tc:dss:1.0:reportdetail:allDetails"


def _dss(tag: str) -> str:
    return f"{{{DSS_NS}}}{tag}"


@dataclass(frozen=True)
class VerifyRequest:
    request_id: str
    document_id: str
    root: etree._Element

    def to_bytes(self) -> bytes:
        return etree.tostring(
            self.root,
            encoding="UTF-8",
            xml_declaration=True,
            pretty_print=True,
        )


class VerifyRequestBuilder:
    """Arma dss:VerifyRequest a partir de la raíz firmada y su ds:Signature"""

    def __init__(
        self,
        request_id_factory: Optional[Callable[[], str]] = None,
        return_verification_report: bool = True,
    ):
        self._request_id_factory = request_id_factory or (lambda: f"ftcc-{uuid.uuid4()}")
        self.return_verification_report = return_verification_report

    def build(self, root: etree._Element, signature: etree._Element) -> VerifyRequest:
        """
        Args:
            root: Elemento raíz del documento firmado
            signature: Elemento ds:Signature producido al firmar

        Returns:
            VerifyRequest listo para serializar

        Raises:
            VerifyRequestError: Si la firma no es ds:Signature o no está
                dentro de root
        """
        if signature.tag != f"{{{DS_NS}}}Signature":
            raise VerifyRequestError(f"Se esperaba ds:Signature, se recibió {signature.tag}")
        if not any(ancestor is root for ancestor in signature.iterancestors()):
            raise VerifyRequestError("La firma no está contenida en el documento raíz")

        signed_xml = etree.tostring(root, encoding="UTF-8", xml_declaration=True)
        document_id = "D-" + hashlib.sha256(signed_xml).hexdigest()[:16]
        signature_xpath = root.getroottree().getpath(signature)
        request_id = self._request_id_factory()

        request = etree.Element(
            _dss("VerifyRequest"),
            nsmap={"dss": DSS_NS, "ds": DS_NS},
            RequestID=request_id,
        )

        if self.return_verification_report:
            optional_inputs = etree.SubElement(request, _dss("OptionalInputs"))
            report = etree.SubElement(
                optional_inputs, f"{{{VR_NS}}}ReturnVerificationReport", nsmap={"vr": VR_NS}
            )
            etree.SubElement(report, f"{{{VR_NS}}}ReportDetailLevel").text = REPORT_DETAIL_ALL

        input_documents = etree.SubElement(request, _dss("InputDocuments"))
        document = etree.SubElement(input_documents, _dss("Document"), ID=document_id)
        etree.SubElement(document, _dss("Base64XML")).text = base64.b64encode(signed_xml).decode("ascii")

        signature_object = etree.SubElement(request, _dss("SignatureObject"))
        etree.SubElement(
            signature_object,
            _dss("SignaturePtr"),
            WhichDocument=document_id,
            XPath=signature_xpath,
        )

        return VerifyRequest(request_id=request_id, document_id=document_id, root=request)
