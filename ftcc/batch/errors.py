"""
Lista de errores por documento

Cada documento candidato tiene su propia ErrorList; solo se agregan
entradas (nunca se quitan) y una lista vacía es el único criterio de éxito.
"""
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Iterator, List, Optional, Tuple


class ErrorKind(str, Enum):
    PARSE = "parse"
    SIGNING = "signing"
    SELF_VERIFICATION = "self_verification"
    VERIFY_REQUEST = "verify_request"
    INTERNAL = "internal"


@dataclass(frozen=True)
class DocumentError:
    kind: ErrorKind
    message: str
    cause_type: Optional[str] = None
    cause_text: Optional[str] = None

    @classmethod
    def from_exception(cls, kind: ErrorKind, message: str, exc: BaseException) -> "DocumentError":
        return cls(kind=kind, message=message, cause_type=type(exc).__name__, cause_text=str(exc))

    def to_dict(self) -> Dict[str, Any]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "cause_type": self.cause_type,
            "cause": self.cause_text,
        }

    def __str__(self) -> str:
        if self.cause_text:
            return f"[{self.kind.value}] {self.message}: {self.cause_type}: {self.cause_text}"
        return f"[{self.kind.value}] {self.message}"


class ErrorList:
    """Secuencia ordenada, solo-agregar, de errores de un documento"""

    def __init__(self) -> None:
        self._errors: List[DocumentError] = []

    def add(self, error: DocumentError) -> None:
        self._errors.append(error)

    def add_exception(self, kind: ErrorKind, message: str, exc: BaseException) -> None:
        self.add(DocumentError.from_exception(kind, message, exc))

    def is_empty(self) -> bool:
        return not self._errors

    def has_kind(self, kind: ErrorKind) -> bool:
        return any(e.kind is kind for e in self._errors)

    def snapshot(self) -> Tuple[DocumentError, ...]:
        return tuple(self._errors)

    def to_dict(self) -> List[Dict[str, Any]]:
        return [e.to_dict() for e in self._errors]

    def __len__(self) -> int:
        return len(self._errors)

    def __iter__(self) -> Iterator[DocumentError]:
        return iter(tuple(self._errors))
