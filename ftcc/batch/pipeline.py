"""
Pipeline por documento y bucle del lote

Cada documento pasa por: carga -> firma -> autoverificación ->
VerifyRequest -> enrutamiento, con su propia ErrorList. Un documento que
falla nunca corta el lote; el resultado del proceso es un resumen sobre
todos los documentos.
"""
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from dataclasses import dataclass
from pathlib import Path
from typing import Iterable, Optional, Protocol, Tuple

from lxml import etree

from ..xmldsig import SignedDocument, SigningError, VerifyRequest, VerifyRequestError
from ..xmldsig import VerifyRequestBuilder, XmlDsigSigner, XmlDsigValidator
from .document_loader import load_document
from .errors import DocumentError, ErrorKind, ErrorList
from .keystore import KeyMaterial
from .outcome_router import DocumentOutcome, OutcomeRouter, Route, RoutingError
from .pipeline_logger import EventSink
from .self_verification import GateOutcome, SelfVerificationGate, Validator


class Signer(Protocol):
    def sign(self, root: etree._Element, private_key, certificate) -> SignedDocument: ...


class RequestBuilder(Protocol):
    def build(self, root: etree._Element, signature: etree._Element) -> VerifyRequest: ...


@dataclass(frozen=True)
class DocumentResult:
    """Resultado final de un documento (route=None: no se pudo enrutar)"""
    path: Path
    route: Optional[Route]
    errors: Tuple[DocumentError, ...]
    gate: Optional[GateOutcome] = None
    outputs: Tuple[Path, ...] = ()
    # False: enrutado, pero el fuente no se pudo eliminar de salientes
    source_consumed: bool = True

    @property
    def ok(self) -> bool:
        return self.route is Route.SUCCESS


@dataclass(frozen=True)
class BatchSummary:
    results: Tuple[DocumentResult, ...]
    elapsed: float = 0.0

    @property
    def total(self) -> int:
        return len(self.results)

    @property
    def succeeded(self) -> int:
        return sum(1 for r in self.results if r.ok)

    @property
    def failed(self) -> int:
        return self.total - self.succeeded

    @property
    def unrouted(self) -> int:
        return sum(1 for r in self.results if r.route is None)

    @property
    def unconsumed(self) -> int:
        return sum(1 for r in self.results if r.route is not None and not r.source_consumed)

    @property
    def ok(self) -> bool:
        return self.failed == 0 and self.unconsumed == 0


class DocumentPipeline:
    """
    Procesa un documento candidato de punta a punta.

    Las credenciales, el firmante, el validador y el constructor se comparten
    entre hilos en modo solo lectura; todo el estado mutable (árbol, firma,
    lista de errores) es local a cada llamada a process().
    """

    def __init__(
        self,
        credentials: KeyMaterial,
        router: OutcomeRouter,
        sink: EventSink,
        signer: Optional[Signer] = None,
        validator: Optional[Validator] = None,
        builder: Optional[RequestBuilder] = None,
        schema: Optional[etree.XMLSchema] = None,
    ):
        self.credentials = credentials
        self.router = router
        self.sink = sink
        self.signer = signer or XmlDsigSigner()
        self.gate = SelfVerificationGate(validator or XmlDsigValidator(), credentials.certificate)
        self.builder = builder or VerifyRequestBuilder()
        self.schema = schema
        self._schema_lock = threading.Lock()

    def _run_stages(self, path: Path, outcome: DocumentOutcome) -> Optional[GateOutcome]:
        loaded = load_document(path, self.schema, self._schema_lock)
        for error in loaded.errors:
            outcome.errors.add(error)
        if not loaded.ok:
            self.sink.warning("Documento no parseable", file=path.name, errors=len(loaded.errors))
            return None

        try:
            signed = self.signer.sign(
                loaded.tree.getroot(),
                self.credentials.private_key,
                self.credentials.certificate,
            )
        except SigningError as e:
            outcome.errors.add_exception(ErrorKind.SIGNING, f"No se pudo firmar {path.name}", e)
            self.sink.warning("Firma rechazada", file=path.name, error=str(e))
            return None
        self.sink.event("document.signed", file=path.name)

        gate = self.gate.check(signed.root, signed.signature, outcome.errors)
        if not gate.passed:
            self.sink.error(
                "La firma recién creada no se pudo verificar",
                file=path.name,
                diagnostics=[str(r) for r in gate.results],
            )
            return gate
        self.sink.event("document.verified", file=path.name, strategies=[r.strategy for r in gate.results])

        try:
            request = self.builder.build(signed.root, signed.signature)
        except VerifyRequestError as e:
            outcome.errors.add_exception(
                ErrorKind.VERIFY_REQUEST, f"No se pudo construir el VerifyRequest de {path.name}", e
            )
            return gate

        outcome.signed_xml = etree.tostring(signed.root, encoding="UTF-8", xml_declaration=True)
        outcome.verify_request_xml = request.to_bytes()
        self.sink.event(
            "document.verify_request",
            file=path.name,
            request_id=request.request_id,
            document_id=request.document_id,
        )
        return gate

    def _route(self, outcome: DocumentOutcome, gate: Optional[GateOutcome]) -> DocumentResult:
        # Si falla publicar un éxito, el documento se manda a error (una vez)
        while True:
            attempted = OutcomeRouter.decide(outcome.errors)
            try:
                routing = self.router.route(outcome)
                break
            except RoutingError as e:
                outcome.errors.add_exception(
                    ErrorKind.INTERNAL, f"No se pudieron publicar las salidas de {outcome.path.name}", e
                )
                if attempted is Route.ERROR:
                    self.sink.error("Documento sin enrutar", file=outcome.path.name, error=str(e))
                    return DocumentResult(outcome.path, None, outcome.errors.snapshot(), gate)

        return DocumentResult(
            path=outcome.path,
            route=routing.route,
            errors=outcome.errors.snapshot(),
            gate=gate,
            outputs=routing.outputs,
            source_consumed=routing.source_consumed,
        )

    def process(self, path: Path) -> DocumentResult:
        """Procesa y enruta un documento. No lanza por errores del documento."""
        path = Path(path)
        outcome = DocumentOutcome(path=path, errors=ErrorList())
        self.sink.event("document.start", file=path.name)

        gate = None
        try:
            gate = self._run_stages(path, outcome)
        except Exception as e:
            outcome.errors.add_exception(ErrorKind.INTERNAL, f"Error inesperado procesando {path.name}", e)
            self.sink.error("Error inesperado", file=path.name, error=f"{type(e).__name__}: {e}")

        return self._route(outcome, gate)


def _process_safely(pipeline: DocumentPipeline, path: Path) -> DocumentResult:
    try:
        return pipeline.process(path)
    except Exception as e:
        pipeline.sink.error("Documento abortado", file=Path(path).name, error=f"{type(e).__name__}: {e}")
        error = DocumentError.from_exception(ErrorKind.INTERNAL, f"Error inesperado procesando {Path(path).name}", e)
        return DocumentResult(path=Path(path), route=None, errors=(error,))


def run_batch(paths: Iterable[Path], pipeline: DocumentPipeline, workers: int = 1) -> BatchSummary:
    """
    Procesa todos los documentos de la fuente una sola vez.

    Args:
        paths: Candidatos (se consumen una vez)
        pipeline: Pipeline por documento
        workers: 1 = secuencial; >1 = ThreadPoolExecutor acotado

    Returns:
        BatchSummary con el resultado de cada documento
    """
    if workers < 1:
        raise ValueError(f"workers debe ser >= 1: {workers}")

    start = time.monotonic()
    if workers == 1:
        results = [_process_safely(pipeline, path) for path in paths]
    else:
        with ThreadPoolExecutor(max_workers=workers, thread_name_prefix="ftcc") as executor:
            results = list(executor.map(lambda p: _process_safely(pipeline, p), paths))

    summary = BatchSummary(results=tuple(results), elapsed=time.monotonic() - start)
    pipeline.sink.event(
        "batch.finished",
        total=summary.total,
        succeeded=summary.succeeded,
        failed=summary.failed,
        unrouted=summary.unrouted,
        unconsumed=summary.unconsumed,
        elapsed_s=round(summary.elapsed, 3),
    )
    return summary
