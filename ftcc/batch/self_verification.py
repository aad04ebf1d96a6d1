"""
Autoverificación de la firma recién creada

Inmediatamente después de firmar se valida la firma con dos estrategias
de confianza independientes, siempre las dos y en este orden:

1. Clave constante: el certificado que se usó para firmar
2. Clave contenida: el certificado embebido en ds:KeyInfo de la firma

Aunque la primera falle, la segunda se ejecuta igual para que ambos
diagnósticos queden registrados. Cualquier juicio inválido es fatal para el
documento.
"""
from dataclasses import dataclass
from typing import Protocol, Tuple

from cryptography import x509
from lxml import etree

from ..xmldsig.key_selectors import ConstantKeySelector, ContainedX509KeySelector, KeySelector
from ..xmldsig.validator import ValidationResult
from .errors import DocumentError, ErrorKind, ErrorList


class Validator(Protocol):
    def validate(
        self,
        root: etree._Element,
        signature: etree._Element,
        key_selector: KeySelector,
    ) -> ValidationResult: ...


@dataclass(frozen=True)
class GateOutcome:
    results: Tuple[ValidationResult, ...]

    @property
    def passed(self) -> bool:
        return all(r.valid for r in self.results)


class SelfVerificationGate:

    def __init__(self, validator: Validator, certificate: x509.Certificate):
        self.validator = validator
        self.selectors: Tuple[KeySelector, ...] = (
            ConstantKeySelector(certificate),
            ContainedX509KeySelector(),
        )

    def _run(self, root, signature, selector: KeySelector) -> ValidationResult:
        try:
            return self.validator.validate(root, signature, selector)
        except Exception as e:
            return ValidationResult(False, f"Error al validar: {type(e).__name__}: {e}", selector.name)

    def check(self, root: etree._Element, signature: etree._Element, errors: ErrorList) -> GateOutcome:
        """
        Ejecuta ambas validaciones. Si alguna es inválida se agrega una
        entrada por cada estrategia (también la que pasó), para que los dos
        diagnósticos queden en la lista de errores.

        Returns:
            GateOutcome con los dos resultados (en orden)
        """
        results = tuple(self._run(root, signature, selector) for selector in self.selectors)
        outcome = GateOutcome(results=results)
        if outcome.passed:
            return outcome

        for result in results:
            if result.is_invalid:
                message = f"No se pudo validar la firma creada con la estrategia '{result.strategy}'"
            else:
                message = f"La estrategia '{result.strategy}' validó la firma, pero la otra no"
            errors.add(DocumentError(
                kind=ErrorKind.SELF_VERIFICATION,
                message=message,
                cause_type="ValidationResult",
                cause_text=result.diagnostic,
            ))
        return outcome
