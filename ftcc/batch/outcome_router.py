"""
Enrutamiento del resultado de cada documento (éxito / error)

- ErrorList vacía -> SUCCESS: se escriben <stem>.signed.xml y
  <stem>.verify-request.xml en el directorio de éxito
- ErrorList no vacía -> ERROR: se copia el original al directorio de error
  junto con <nombre>.errors.json (lista completa de errores)

Las salidas de un documento se preparan en un directorio temporal dentro
del destino y se publican juntas con os.replace; si algo interrumpe la
publicación se retiran las ya publicadas. El archivo fuente se elimina
solo después. Nunca se pisa una salida existente: todas las salidas del
documento reciben el mismo sufijo con timestamp.
"""
import json
import os
import shutil
import tempfile
import threading
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from pathlib import Path
from typing import Callable, List, Optional, Sequence, Tuple

from .errors import ErrorList
from .pipeline_logger import EventSink

Writer = Callable[[Path], None]


class Route(str, Enum):
    SUCCESS = "success"
    ERROR = "error"


class RoutingError(Exception):
    """No se pudieron publicar las salidas de un documento"""
    pass


@dataclass
class DocumentOutcome:
    """Estado final del procesamiento de un documento"""
    path: Path
    errors: ErrorList
    signed_xml: Optional[bytes] = None
    verify_request_xml: Optional[bytes] = None


@dataclass(frozen=True)
class RoutingResult:
    route: Route
    outputs: Tuple[Path, ...]
    # False: las salidas quedaron publicadas pero el fuente sigue en salientes
    source_consumed: bool = True
    source_error: Optional[str] = None


def _write_bytes(data: bytes) -> Writer:
    def _write(tmp: Path) -> None:
        with open(tmp, "wb") as f:
            f.write(data)
            f.flush()
            os.fsync(f.fileno())
    return _write


def _copy_from(source: Path) -> Writer:
    return lambda tmp: shutil.copyfile(source, tmp)


class OutcomeRouter:

    def __init__(self, success_dir: Path, error_dir: Path, sink: EventSink):
        self.success_dir = Path(success_dir)
        self.error_dir = Path(error_dir)
        self.sink = sink
        # Reserva de nombres + publicación son atómicas entre hilos
        self._publish_lock = threading.Lock()

    @staticmethod
    def decide(errors: ErrorList) -> Route:
        return Route.SUCCESS if errors.is_empty() else Route.ERROR

    @staticmethod
    def _reserve_names(directory: Path, base: str, suffixes: Sequence[str]) -> List[Path]:
        """Nombres libres para todas las salidas, con un único sufijo compartido"""
        def _names(stem: str) -> List[Path]:
            return [directory / f"{stem}{suffix}" for suffix in suffixes]

        candidates = _names(base)
        if not any(p.exists() for p in candidates):
            return candidates

        timestamp = datetime.now().strftime("%Y%m%d_%H%M%S_%f")
        candidates = _names(f"{base}_{timestamp}")
        counter = 1
        while any(p.exists() for p in candidates):
            candidates = _names(f"{base}_{timestamp}_{counter}")
            counter += 1
        return candidates

    def _publish_group(self, directory: Path, base: str, outputs: Sequence[Tuple[str, Writer]]) -> Tuple[Path, ...]:
        """
        Prepara todas las salidas y las publica juntas.

        Raises:
            RoutingError: Si falla la escritura (no queda ninguna salida)
        """
        published: List[Path] = []
        staging = Path(tempfile.mkdtemp(prefix=".ftcc_", dir=directory))
        try:
            staged = []
            for index, (suffix, write) in enumerate(outputs):
                tmp = staging / f"{index}.tmp"
                write(tmp)
                staged.append(tmp)

            with self._publish_lock:
                targets = self._reserve_names(directory, base, [suffix for suffix, _ in outputs])
                for tmp, target in zip(staged, targets):
                    os.replace(tmp, target)
                    published.append(target)
        except BaseException as e:
            for path in published:
                path.unlink(missing_ok=True)
            if isinstance(e, OSError):
                raise RoutingError(f"No se pudieron escribir las salidas: {e}") from e
            raise
        finally:
            shutil.rmtree(staging, ignore_errors=True)
        return tuple(published)

    def _error_report(self, outcome: DocumentOutcome) -> bytes:
        report = {
            "file": outcome.path.name,
            "source": str(outcome.path),
            "routed_at": datetime.now().isoformat(),
            "error_count": len(outcome.errors),
            "errors": outcome.errors.to_dict(),
        }
        return json.dumps(report, indent=2, ensure_ascii=False).encode("utf-8")

    def _consume_source(self, path: Path) -> Optional[str]:
        try:
            path.unlink(missing_ok=True)
        except OSError as e:
            self.sink.warning("No se pudo eliminar el archivo fuente", file=path.name, error=str(e))
            return f"{type(e).__name__}: {e}"
        return None

    def route(self, outcome: DocumentOutcome) -> RoutingResult:
        """
        Publica las salidas del documento y consume el archivo fuente.

        Raises:
            RoutingError: Si no se pudieron escribir las salidas (no queda
                ninguna publicada y el fuente queda intacto)
        """
        route = self.decide(outcome.errors)
        source = outcome.path
        base, extension = source.stem, source.suffix

        if route is Route.SUCCESS:
            if outcome.signed_xml is None or outcome.verify_request_xml is None:
                raise ValueError(f"{source.name}: éxito sin documento firmado o VerifyRequest")
            outputs = self._publish_group(self.success_dir, base, [
                (".signed.xml", _write_bytes(outcome.signed_xml)),
                (".verify-request.xml", _write_bytes(outcome.verify_request_xml)),
            ])
        else:
            group = []
            if source.is_file():
                group.append((extension, _copy_from(source)))
            group.append((f"{extension}.errors.json", _write_bytes(self._error_report(outcome))))
            outputs = self._publish_group(self.error_dir, base, group)

        source_error = self._consume_source(source)

        self.sink.event(
            "document.routed",
            file=source.name,
            route=route.value,
            outputs=[p.name for p in outputs],
            errors=len(outcome.errors),
            source_consumed=source_error is None,
        )
        return RoutingResult(
            route=route,
            outputs=outputs,
            source_consumed=source_error is None,
            source_error=source_error,
        )
