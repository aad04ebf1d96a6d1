"""
Punto de entrada del lote de firma

Uso:
    ft-at-cc [--config ARCHIVO] [--workers N] [--log-dir DIR]
    python -m ftcc ...

Códigos de salida:
    0 - todos los documentos firmados (o no había documentos)
    1 - al menos un documento terminó en el directorio de error
    2 - error fatal de arranque (no se procesó ningún documento)
"""
import argparse
import os
import sys
from pathlib import Path
from typing import List, Mapping, Optional

from lxml import etree

from . import APP_NAME
from .batch.config import (
    KEY_DIR_ERROR,
    KEY_DIR_OUTGOING,
    KEY_DIR_SUCCESS,
    BatchSettings,
    describe,
    load_settings,
    resolve_config_file,
)
from .batch.document_loader import load_schema
from .batch.job_source import JobSourceError, scan_outgoing
from .batch.keystore import load_keystore, load_private_key
from .batch.outcome_router import OutcomeRouter
from .batch.pipeline import DocumentPipeline, run_batch
from .batch.pipeline_logger import EventSink, PipelineLogger
from .batch.startup import resolve_directory

EXIT_OK = 0
EXIT_DOCUMENT_ERRORS = 1
EXIT_FATAL = 2


def _positive_int(value: str) -> int:
    try:
        number = int(value)
    except ValueError:
        raise argparse.ArgumentTypeError(f"no es un entero: {value}")
    if number < 1:
        raise argparse.ArgumentTypeError(f"debe ser >= 1: {value}")
    return number


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ft-at-cc",
        description="Firma en lote los XML del directorio de salientes",
    )
    parser.add_argument(
        "--config",
        help="Archivo de configuración (si FT_AT_CONFIG no está definida)",
    )
    parser.add_argument(
        "--workers",
        type=_positive_int,
        help="Documentos en paralelo (default: batch.workers o 1)",
    )
    parser.add_argument(
        "--log-dir",
        type=Path,
        help="Directorio para el archivo de log (default: log.dir o FT_AT_LOG_DIR)",
    )
    return parser


def _fatal_error(sink: EventSink, message: str) -> int:
    sink.error(f"Error fatal de arranque: {message}")
    print(f"❌ {message}", file=sys.stderr)
    return EXIT_FATAL


def _run(settings: BatchSettings, sink: EventSink, workers: int) -> int:
    keystore = load_keystore(
        settings.keystore_type,
        settings.keystore_path,
        settings.keystore_password,
        settings.key_password,
    )
    if keystore.is_failure():
        return _fatal_error(sink, keystore.error)
    sink.event(
        "keystore.loaded",
        type=keystore.value.keystore_type,
        path=str(keystore.value.path),
        certificates=len(keystore.value.certificates),
    )

    key = load_private_key(keystore.value, settings.key_alias, settings.key_password)
    if key.is_failure():
        return _fatal_error(sink, key.error)
    sink.event(
        "key.loaded",
        alias=key.value.alias,
        subject=key.value.certificate.subject.rfc4514_string(),
        serial=hex(key.value.certificate.serial_number),
    )

    directories = {}
    for config_key, value in (
        (KEY_DIR_OUTGOING, settings.dir_outgoing),
        (KEY_DIR_SUCCESS, settings.dir_success),
        (KEY_DIR_ERROR, settings.dir_error),
    ):
        resolved = resolve_directory(config_key, value)
        if resolved.is_failure():
            return _fatal_error(sink, resolved.error)
        directories[config_key] = resolved.value
        sink.event("directory.resolved", key=config_key, path=str(resolved.value))

    schema = None
    if settings.schema_path is not None:
        try:
            schema = load_schema(settings.schema_path)
        except (OSError, etree.XMLSchemaParseError, etree.XMLSyntaxError) as e:
            return _fatal_error(sink, f"No se pudo cargar el esquema '{settings.schema_path}': {e}")
        sink.info("Esquema XSD cargado", path=str(settings.schema_path))

    try:
        candidates = scan_outgoing(directories[KEY_DIR_OUTGOING])
    except JobSourceError as e:
        return _fatal_error(sink, str(e))

    router = OutcomeRouter(directories[KEY_DIR_SUCCESS], directories[KEY_DIR_ERROR], sink)
    pipeline = DocumentPipeline(credentials=key.value, router=router, sink=sink, schema=schema)
    summary = run_batch(candidates, pipeline, workers=workers)

    sink.info(
        "Lote terminado",
        total=summary.total,
        succeeded=summary.succeeded,
        failed=summary.failed,
        unconsumed=summary.unconsumed,
    )
    return EXIT_OK if summary.ok else EXIT_DOCUMENT_ERRORS


def main(
    argv: Optional[List[str]] = None,
    environ: Optional[Mapping[str, str]] = None,
    sink: Optional[EventSink] = None,
    search_dir: Optional[Path] = None,
) -> int:
    """
    Corre un lote completo.

    Args:
        argv: Argumentos (default: sys.argv[1:])
        environ: Variables de entorno (default: os.environ)
        sink: Sink de eventos (default: PipelineLogger a consola/archivo)
        search_dir: Directorio de los archivos de configuración por defecto
    """
    args = build_parser().parse_args(argv)

    owned_logger: Optional[PipelineLogger] = None
    if sink is None:
        owned_logger = PipelineLogger(log_dir=args.log_dir)
        sink = owned_logger

    try:
        sink.info(f"Starting {APP_NAME}")

        config = resolve_config_file(args.config, environ=environ, search_dir=search_dir)
        if config.is_failure():
            return _fatal_error(sink, config.error)

        settings = load_settings(config.value, environ=environ if environ is not None else os.environ)
        if settings.is_failure():
            return _fatal_error(sink, settings.error)

        # El directorio de log de la configuración aplica si no vino por CLI
        if owned_logger is not None and args.log_dir is None and settings.value.log_dir is not None:
            owned_logger.close()
            owned_logger = PipelineLogger(log_dir=settings.value.log_dir)
            sink = owned_logger

        sink.event("config.loaded", origin=config.value.origin, **describe(settings.value))

        workers = args.workers or settings.value.workers
        exit_code = _run(settings.value, sink, workers)
        sink.info(f"Finished {APP_NAME}", exit_code=exit_code)
        return exit_code
    finally:
        if owned_logger is not None:
            owned_logger.close()


if __name__ == "__main__":
    sys.exit(main())
