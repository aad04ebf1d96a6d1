"""
Carga del keystore y de la clave privada de firma

Soporta:
- PKCS#12 (P12/PFX): se abre con keystore.password; si falla y
  keystore.key.password es distinta, se reintenta con esta última
- PEM: un archivo con certificado(s) y la clave privada; la clave se
  descifra con keystore.key.password

Nunca se loggean contraseñas ni material de clave.
"""
import logging
from dataclasses import dataclass
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Optional, Tuple

from cryptography import x509
from cryptography.hazmat.primitives import serialization
from cryptography.hazmat.primitives.serialization import pkcs12

from ..xmldsig.signer import public_key_matches
from .startup import StartupResult

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class LoadedKeyStore:
    keystore_type: str
    path: Path
    certificates: Tuple[x509.Certificate, ...]
    private_key: Any = None
    friendly_name: Optional[str] = None
    pem_data: Optional[bytes] = None


@dataclass(frozen=True)
class KeyMaterial:
    """Clave privada y certificado listos para firmar (solo lectura)"""
    alias: str
    private_key: Any
    certificate: x509.Certificate
    additional_certificates: Tuple[x509.Certificate, ...] = ()


# Cabeceras de keystores Java (JKS / JCEKS)
JAVA_KEYSTORE_MAGIC = {
    b"\xfe\xed\xfe\xed": "JKS",
    b"\xce\xce\xce\xce": "JCEKS",
}


def _java_keystore_hint(path: Path, data: bytes) -> Optional[str]:
    kind = JAVA_KEYSTORE_MAGIC.get(data[:4])
    if kind is None:
        return None
    return (
        f"El keystore '{path}' es un keystore Java {kind} y no está soportado (sin keystore.type el cliente Java asumía JKS); "
        f"convertirlo con: keytool -importkeystore -srckeystore {path.name} "
        "-destkeystore keystore.p12 -deststoretype PKCS12"
    )


def _load_pkcs12(path: Path, data: bytes, password: str, key_password: str) -> StartupResult[LoadedKeyStore]:
    attempts = [password]
    if key_password and key_password != password:
        attempts.append(key_password)

    last_error: Optional[Exception] = None
    for candidate in attempts:
        try:
            store = pkcs12.load_pkcs12(data, candidate.encode("utf-8") if candidate else None)
        except ValueError as e:
            last_error = e
            continue

        certificates = []
        friendly_name = None
        if store.cert is not None:
            certificates.append(store.cert.certificate)
            if store.cert.friendly_name:
                friendly_name = store.cert.friendly_name.decode("utf-8", errors="replace")
        certificates.extend(c.certificate for c in store.additional_certs)

        return StartupResult.success(LoadedKeyStore(
            keystore_type="PKCS12",
            path=path,
            certificates=tuple(certificates),
            private_key=store.key,
            friendly_name=friendly_name,
        ))

    return StartupResult.failure(
        f"No se pudo abrir el keystore PKCS#12 '{path}': contraseña incorrecta o archivo corrupto ({last_error})"
    )


def _load_pem(path: Path, data: bytes) -> StartupResult[LoadedKeyStore]:
    try:
        certificates = x509.load_pem_x509_certificates(data)
    except ValueError as e:
        return StartupResult.failure(f"El keystore PEM '{path}' no contiene certificados válidos: {e}")
    return StartupResult.success(LoadedKeyStore(
        keystore_type="PEM",
        path=path,
        certificates=tuple(certificates),
        pem_data=data,
    ))


def load_keystore(
    keystore_type: str,
    path: Path,
    password: str,
    key_password: str = "",
) -> StartupResult[LoadedKeyStore]:
    """
    Lee y abre un keystore.

    Args:
        keystore_type: 'PKCS12' o 'PEM'
        path: Ruta al archivo
        password: Contraseña del keystore
        key_password: Contraseña de la clave (fallback para PKCS#12)
    """
    path = Path(path)
    if not path.is_file():
        return StartupResult.failure(f"Keystore no encontrado: {path}")

    try:
        data = path.read_bytes()
    except OSError as e:
        return StartupResult.failure(f"No se pudo leer el keystore '{path}': {e}")

    if keystore_type == "PKCS12":
        hint = _java_keystore_hint(path, data)
        if hint:
            return StartupResult.failure(hint)
        return _load_pkcs12(path, data, password, key_password)
    if keystore_type == "PEM":
        return _load_pem(path, data)
    return StartupResult.failure(f"Tipo de keystore no soportado: {keystore_type}")


def _load_pem_private_key(data: bytes, key_password: str):
    password = key_password.encode("utf-8") if key_password else None
    try:
        return serialization.load_pem_private_key(data, password=password)
    except TypeError:
        # La clave no está cifrada pero se configuró contraseña
        return serialization.load_pem_private_key(data, password=None)


def _check_validity(certificate: x509.Certificate) -> Optional[str]:
    now = datetime.now(timezone.utc)

    # cryptography puede tener not_valid_after_utc (timezone-aware) o not_valid_after (naive)
    if hasattr(certificate, "not_valid_after_utc"):
        not_after = certificate.not_valid_after_utc
        not_before = certificate.not_valid_before_utc
    else:
        not_after = certificate.not_valid_after.replace(tzinfo=timezone.utc)
        not_before = certificate.not_valid_before.replace(tzinfo=timezone.utc)

    if not_after < now:
        return f"Certificado expirado. Válido hasta: {not_after}"
    if not_before > now:
        return f"Certificado aún no válido. Válido desde: {not_before}"
    return None


def load_private_key(keystore: LoadedKeyStore, alias: str, key_password: str) -> StartupResult[KeyMaterial]:
    """
    Extrae la clave privada y su certificado del keystore abierto.

    Returns:
        StartupResult con KeyMaterial, o error describiendo alias y keystore
    """
    prefix = f"No se pudo cargar la clave '{alias}' del keystore '{keystore.path}'"

    if keystore.keystore_type == "PKCS12":
        if keystore.friendly_name is not None and keystore.friendly_name != alias:
            return StartupResult.failure(
                f"{prefix}: alias no encontrado (el keystore contiene '{keystore.friendly_name}')"
            )
        private_key = keystore.private_key
    else:
        try:
            private_key = _load_pem_private_key(keystore.pem_data or b"", key_password)
        except ValueError as e:
            return StartupResult.failure(f"{prefix}: {e}")

    if private_key is None:
        return StartupResult.failure(f"{prefix}: el keystore no contiene clave privada")

    matching = [c for c in keystore.certificates if public_key_matches(private_key, c)]
    if not matching:
        return StartupResult.failure(f"{prefix}: ningún certificado corresponde a la clave privada")
    certificate = matching[0]

    problem = _check_validity(certificate)
    if problem:
        return StartupResult.failure(f"{prefix}: {problem}")

    others = tuple(c for c in keystore.certificates if c is not certificate)
    logger.debug("Clave cargada; certificado %s", certificate.subject.rfc4514_string())
    return StartupResult.success(KeyMaterial(
        alias=alias,
        private_key=private_key,
        certificate=certificate,
        additional_certificates=others,
    ))
