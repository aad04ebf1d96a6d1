"""
Carga de documentos XML candidatos

Parsea cada archivo con lxml y junta los errores de buena formación (y,
opcionalmente, de validación XSD) en la ErrorList del documento en vez de
lanzar excepciones: desde acá la lista de errores es el único canal de error.
"""
import threading
from contextlib import nullcontext
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

from lxml import etree

from .errors import DocumentError, ErrorKind, ErrorList

# Máximo de errores del parser/esquema que se copian a la lista
MAX_REPORTED_ERRORS = 30


@dataclass
class LoadedDocument:
    path: Path
    tree: Optional[etree._ElementTree]
    errors: ErrorList = field(default_factory=ErrorList)

    @property
    def ok(self) -> bool:
        return self.tree is not None and self.errors.is_empty()


def _parser() -> etree.XMLParser:
    return etree.XMLParser(
        remove_blank_text=False,  # NO tocar whitespace (firma)
        resolve_entities=False,
        no_network=True,
        huge_tree=True,
        recover=False,
    )


def _log_entry_text(entry) -> str:
    line_info = f"line {entry.line}" if entry.line else "line ?"
    col_info = f", col {entry.column}" if entry.column else ""
    return f"{line_info}{col_info}: {entry.message}"


def load_schema(schema_path: Path) -> etree.XMLSchema:
    """
    Carga un esquema XSD (includes/imports relativos al archivo).

    Raises:
        etree.XMLSchemaParseError: Si el XSD es inválido
        OSError: Si el archivo no existe
    """
    doc = etree.parse(str(schema_path), _parser())
    return etree.XMLSchema(doc)


def load_document(
    path: Path,
    schema: Optional[etree.XMLSchema] = None,
    schema_lock: Optional[threading.Lock] = None,
) -> LoadedDocument:
    """
    Lee y parsea un archivo XML.

    Args:
        path: Archivo candidato
        schema: Esquema XSD opcional con el que validar
        schema_lock: Lock para compartir el esquema entre hilos (su error_log
            es del objeto, no de la llamada)

    Returns:
        LoadedDocument; tree es None si el XML no es bien formado o no
        cumple el esquema
    """
    result = LoadedDocument(path=path, tree=None)

    try:
        tree = etree.parse(str(path), _parser())
    except etree.XMLSyntaxError as e:
        entries = list(e.error_log)[:MAX_REPORTED_ERRORS]
        if not entries:
            result.errors.add_exception(ErrorKind.PARSE, f"XML mal formado en {path.name}", e)
        for entry in entries:
            result.errors.add(DocumentError(
                kind=ErrorKind.PARSE,
                message=f"XML mal formado en {path.name}",
                cause_type="XMLSyntaxError",
                cause_text=_log_entry_text(entry),
            ))
        return result
    except OSError as e:
        result.errors.add_exception(ErrorKind.PARSE, f"No se pudo leer {path.name}", e)
        return result

    if schema is not None:
        with schema_lock or nullcontext():
            valid = schema.validate(tree)
            schema_errors = list(schema.error_log)[:MAX_REPORTED_ERRORS]
        if not valid:
            for entry in schema_errors:
                result.errors.add(DocumentError(
                    kind=ErrorKind.PARSE,
                    message=f"XML no válido según el esquema en {path.name}",
                    cause_type="DocumentInvalid",
                    cause_text=_log_entry_text(entry),
                ))
            return result

    result.tree = tree
    return result
