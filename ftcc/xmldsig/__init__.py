"""
Colaboradores XMLDSig: firma, selección de clave, validación y VerifyRequest
"""
from .exceptions import XmlDsigError, SigningError, KeySelectionError, VerifyRequestError
from .signer import XmlDsigSigner, SignedDocument, DS_NS
from .key_selectors import ConstantKeySelector, ContainedX509KeySelector
from .validator import XmlDsigValidator, ValidationResult
from .verify_request import VerifyRequestBuilder, VerifyRequest

__all__ = [
    'XmlDsigError', 'SigningError', 'KeySelectionError', 'VerifyRequestError',
    'XmlDsigSigner', 'SignedDocument', 'DS_NS',
    'ConstantKeySelector', 'ContainedX509KeySelector',
    'XmlDsigValidator', 'ValidationResult',
    'VerifyRequestBuilder', 'VerifyRequest',
]
