"""
Configuración del cliente de firma en lote

Resuelve el archivo de configuración en orden:
1) ruta en la variable de entorno FT_AT_CONFIG
2) ruta pasada con --config
3) private-config.properties
4) config.properties

El primero que se pueda leer gana. El archivo es un properties
(clave=valor) que se lee con python-dotenv, y sus valores se vuelcan una sola
vez en un BatchSettings tipado.
"""
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Mapping, Optional, Tuple

from dotenv import dotenv_values, load_dotenv

from .startup import StartupResult

CONFIG_ENV_VAR = "FT_AT_CONFIG"
LOG_DIR_ENV_VAR = "FT_AT_LOG_DIR"
DEFAULT_CONFIG_FILES = ("private-config.properties", "config.properties")

# Claves
KEY_KEYSTORE_TYPE = "keystore.type"
KEY_KEYSTORE_PATH = "keystore.path"
KEY_KEYSTORE_PASSWORD = "keystore.password"
KEY_KEY_ALIAS = "keystore.key.alias"
KEY_KEY_PASSWORD = "keystore.key.password"
KEY_DIR_OUTGOING = "directory.outgoing"
KEY_DIR_SUCCESS = "directory.response.success"
KEY_DIR_ERROR = "directory.response.error"
KEY_SCHEMA = "validation.schema"
KEY_WORKERS = "batch.workers"
KEY_LOG_DIR = "log.dir"

REQUIRED_KEYS = (
    KEY_KEYSTORE_PATH,
    KEY_KEYSTORE_PASSWORD,
    KEY_KEY_ALIAS,
    KEY_KEY_PASSWORD,
    KEY_DIR_OUTGOING,
    KEY_DIR_SUCCESS,
    KEY_DIR_ERROR,
)

# Tipos de keystore aceptados (case-insensitive) -> tipo canónico
KEYSTORE_TYPES = {
    "PKCS12": "PKCS12",
    "P12": "PKCS12",
    "PFX": "PKCS12",
    "PEM": "PEM",
}
DEFAULT_KEYSTORE_TYPE = "PKCS12"
# Keystores Java: se rechazan indicando cómo convertirlos
JAVA_KEYSTORE_TYPES = ("JKS", "JCEKS")


@dataclass(frozen=True)
class ConfigFile:
    """Archivo de configuración leído"""
    path: Path
    origin: str
    values: Mapping[str, Optional[str]]

    def get(self, key: str) -> Optional[str]:
        value = self.values.get(key)
        if value is None:
            return None
        value = value.strip()
        return value or None


@dataclass(frozen=True)
class BatchSettings:
    """Configuración tipada, poblada una sola vez al arrancar"""
    source: Path
    keystore_type: str
    keystore_path: Path
    keystore_password: str
    key_alias: str
    key_password: str
    dir_outgoing: str
    dir_success: str
    dir_error: str
    schema_path: Optional[Path] = None
    workers: int = 1
    log_dir: Optional[Path] = None


def _candidate_paths(
    cli_path: Optional[str],
    environ: Mapping[str, str],
    search_dir: Path,
) -> List[Tuple[str, Path]]:
    candidates = []
    env_path = environ.get(CONFIG_ENV_VAR)
    if env_path:
        candidates.append((f"env:{CONFIG_ENV_VAR}", Path(env_path).expanduser()))
    if cli_path:
        candidates.append(("--config", Path(cli_path).expanduser()))
    for name in DEFAULT_CONFIG_FILES:
        candidates.append(("default", search_dir / name))
    return candidates


def resolve_config_file(
    cli_path: Optional[str] = None,
    environ: Optional[Mapping[str, str]] = None,
    search_dir: Optional[Path] = None,
) -> StartupResult[ConfigFile]:
    """
    Busca y lee el archivo de configuración.

    Args:
        cli_path: Ruta pasada por línea de comandos (opcional)
        environ: Variables de entorno (default: os.environ, tras load_dotenv)
        search_dir: Directorio donde buscar los nombres fijos (default: cwd)

    Returns:
        StartupResult con el ConfigFile, o error si ninguno se pudo leer
    """
    if environ is None:
        load_dotenv()
        environ = os.environ
    search_dir = search_dir or Path.cwd()

    tried = []
    for origin, path in _candidate_paths(cli_path, environ, search_dir):
        tried.append(str(path))
        if not path.is_file():
            continue
        try:
            values = dotenv_values(path, interpolate=False)
        except (OSError, UnicodeDecodeError):
            continue
        return StartupResult.success(ConfigFile(path=path.absolute(), origin=origin, values=values))

    return StartupResult.failure(
        "No se pudo resolver el archivo de configuración (probados: " + ", ".join(tried) + ")"
    )


def load_settings(config: ConfigFile, environ: Optional[Mapping[str, str]] = None) -> StartupResult[BatchSettings]:
    """
    Valida todas las claves requeridas juntas y arma BatchSettings.

    Si faltan varias claves se informan todas en un solo error.
    """
    environ = os.environ if environ is None else environ
    problems = [
        f"La entrada de configuración '{key}' falta o está vacía"
        for key in REQUIRED_KEYS
        if config.get(key) is None
    ]

    raw_type = config.get(KEY_KEYSTORE_TYPE) or DEFAULT_KEYSTORE_TYPE
    keystore_type = KEYSTORE_TYPES.get(raw_type.upper())
    if keystore_type is None:
        problem = (
            f"Tipo de keystore no soportado en '{KEY_KEYSTORE_TYPE}': {raw_type} "
            f"(soportados: {', '.join(sorted(KEYSTORE_TYPES))})"
        )
        if raw_type.upper() in JAVA_KEYSTORE_TYPES:
            problem += "; convertir el keystore Java con keytool -importkeystore -deststoretype PKCS12"
        problems.append(problem)

    workers = 1
    raw_workers = config.get(KEY_WORKERS)
    if raw_workers is not None:
        try:
            workers = int(raw_workers)
        except ValueError:
            workers = 0
        if workers < 1:
            problems.append(f"La entrada de configuración '{KEY_WORKERS}' debe ser un entero >= 1: {raw_workers}")

    if problems:
        return StartupResult.failure("; ".join(problems))

    schema = config.get(KEY_SCHEMA)
    log_dir = config.get(KEY_LOG_DIR) or environ.get(LOG_DIR_ENV_VAR)

    return StartupResult.success(BatchSettings(
        source=config.path,
        keystore_type=keystore_type,
        keystore_path=Path(config.get(KEY_KEYSTORE_PATH)).expanduser(),
        keystore_password=config.get(KEY_KEYSTORE_PASSWORD),
        key_alias=config.get(KEY_KEY_ALIAS),
        key_password=config.get(KEY_KEY_PASSWORD),
        dir_outgoing=config.get(KEY_DIR_OUTGOING),
        dir_success=config.get(KEY_DIR_SUCCESS),
        dir_error=config.get(KEY_DIR_ERROR),
        schema_path=Path(schema).expanduser() if schema else None,
        workers=workers,
        log_dir=Path(log_dir).expanduser() if log_dir else None,
    ))


def describe(settings: BatchSettings) -> Dict[str, str]:
    """Resumen de la configuración sin secretos (para logs)"""
    return {
        "source": str(settings.source),
        "keystore_type": settings.keystore_type,
        "keystore_path": str(settings.keystore_path),
        "key_alias": settings.key_alias,
        "workers": str(settings.workers),
        "schema": str(settings.schema_path) if settings.schema_path else "",
    }
