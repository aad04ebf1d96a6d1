"""
Fixtures compartidas: material criptográfico de prueba, directorios del lote
y helpers para escribir configuración y documentos
"""
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Callable, Dict, Optional

import pytest
from cryptography import x509
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import rsa
from cryptography.hazmat.primitives.serialization import pkcs12
from cryptography.x509.oid import NameOID

from ftcc.batch.keystore import KeyMaterial
from ftcc.batch.outcome_router import OutcomeRouter
from ftcc.batch.pipeline import DocumentPipeline
from ftcc.batch.pipeline_logger import MemoryEventSink

PFX_PASSWORD = "test_password"
KEY_ALIAS = "signer"

SAMPLE_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Factura xmlns="urn:ftcc:test" Id="F-001">
    <Numero>1</Numero>
    <Cliente>Ña Tereza</Cliente>
    <Total moneda="EUR">125.50</Total>
</Factura>
"""

MALFORMED_XML = """<?xml version="1.0" encoding="UTF-8"?>
<Factura xmlns="urn:ftcc:test">
    <Numero>2</Numero>
    <Cliente>sin cerrar
</Factura>
"""


def generate_key() -> rsa.RSAPrivateKey:
    return rsa.generate_private_key(public_exponent=65537, key_size=2048)


def build_certificate(
    private_key,
    common_name: str = "ft-at-cc test",
    not_before: Optional[datetime] = None,
    not_after: Optional[datetime] = None,
) -> x509.Certificate:
    """Certificado autofirmado (solo para testing)"""
    now = datetime.now(timezone.utc)
    subject = issuer = x509.Name([
        x509.NameAttribute(NameOID.COUNTRY_NAME, "AT"),
        x509.NameAttribute(NameOID.ORGANIZATION_NAME, "FutureTrust Test"),
        x509.NameAttribute(NameOID.COMMON_NAME, common_name),
    ])
    return x509.CertificateBuilder().subject_name(
        subject
    ).issuer_name(
        issuer
    ).public_key(
        private_key.public_key()
    ).serial_number(
        x509.random_serial_number()
    ).not_valid_before(
        not_before or now - timedelta(days=1)
    ).not_valid_after(
        not_after or now + timedelta(days=365)
    ).sign(private_key, hashes.SHA256())


def write_pfx(path: Path, private_key, certificate, password: str = PFX_PASSWORD, name: bytes = KEY_ALIAS.encode()) -> Path:
    pfx_data = pkcs12.serialize_key_and_certificates(
        name=name,
        key=private_key,
        cert=certificate,
        cas=None,
        encryption_algorithm=serialization.BestAvailableEncryption(password.encode()),
    )
    path.write_bytes(pfx_data)
    return path


@pytest.fixture(scope="session")
def private_key():
    return generate_key()


@pytest.fixture(scope="session")
def certificate(private_key):
    return build_certificate(private_key)


@pytest.fixture(scope="session")
def other_key_and_certificate():
    """Par clave/certificado distinto del que firma"""
    key = generate_key()
    return key, build_certificate(key, common_name="otro firmante")


@pytest.fixture
def key_material(private_key, certificate):
    return KeyMaterial(alias=KEY_ALIAS, private_key=private_key, certificate=certificate)


@pytest.fixture
def pfx_file(tmp_path, private_key, certificate) -> Path:
    return write_pfx(tmp_path / "signer.p12", private_key, certificate)


@pytest.fixture
def batch_dirs(tmp_path) -> Dict[str, Path]:
    dirs = {
        "outgoing": tmp_path / "outgoing",
        "success": tmp_path / "success",
        "error": tmp_path / "error",
    }
    for path in dirs.values():
        path.mkdir()
    return dirs


@pytest.fixture
def write_config(tmp_path) -> Callable[..., Path]:
    """Escribe un archivo properties clave=valor y devuelve su ruta"""
    def _write(values: Dict[str, str], name: str = "config.properties", directory: Optional[Path] = None) -> Path:
        path = (directory or tmp_path) / name
        lines = [f"{key}={value}" for key, value in values.items()]
        path.write_text("\n".join(lines) + "\n", encoding="utf-8")
        return path
    return _write


@pytest.fixture
def full_config(pfx_file, batch_dirs) -> Dict[str, str]:
    """Configuración completa y válida para el PFX de prueba"""
    return {
        "keystore.type": "PKCS12",
        "keystore.path": str(pfx_file),
        "keystore.password": PFX_PASSWORD,
        "keystore.key.alias": KEY_ALIAS,
        "keystore.key.password": PFX_PASSWORD,
        "directory.outgoing": str(batch_dirs["outgoing"]),
        "directory.response.success": str(batch_dirs["success"]),
        "directory.response.error": str(batch_dirs["error"]),
    }


@pytest.fixture
def sink() -> MemoryEventSink:
    return MemoryEventSink()


@pytest.fixture
def make_pipeline(key_material, batch_dirs, sink) -> Callable[..., DocumentPipeline]:
    """Arma un DocumentPipeline sobre los directorios de prueba"""
    def _make(**overrides) -> DocumentPipeline:
        router = overrides.pop("router", None) or OutcomeRouter(batch_dirs["success"], batch_dirs["error"], sink)
        return DocumentPipeline(credentials=key_material, router=router, sink=sink, **overrides)
    return _make
