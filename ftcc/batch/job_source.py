"""
Fuente de trabajos: archivos ordinarios del directorio de salientes
"""
import os
from pathlib import Path
from typing import Iterator


class JobSourceError(Exception):
    """No se pudo listar el directorio de salientes"""
    pass


def scan_outgoing(directory: Path) -> Iterator[Path]:
    """
    Enumera los archivos ordinarios (no directorios ni especiales) del
    directorio.

    El listado se abre al llamar (falla enseguida si el directorio no se
    puede listar); los archivos se entregan de forma perezosa y el iterador
    no se puede reiniciar. El orden no está garantizado.

    Raises:
        JobSourceError: Si el directorio no se puede listar
    """
    try:
        entries = os.scandir(directory)
    except OSError as e:
        raise JobSourceError(f"No se pudo listar el directorio de salientes '{directory}': {e}") from e

    def _files() -> Iterator[Path]:
        with entries:
            for entry in entries:
                try:
                    if entry.is_file(follow_symlinks=True):
                        yield Path(entry.path)
                except OSError:
                    # Entrada que desapareció o no se puede inspeccionar
                    continue

    return _files()
