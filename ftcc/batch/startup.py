"""
Resultado de los pasos de arranque y resolución de directorios

Los pasos de arranque (configuración, keystore, clave, directorios) no
lanzan excepciones hacia arriba: devuelven un StartupResult con el valor o
con el texto del error, y solo main() decide abortar.
"""
from dataclasses import dataclass
from pathlib import Path
from typing import Generic, Optional, TypeVar

T = TypeVar("T")


@dataclass(frozen=True)
class StartupResult(Generic[T]):
    value: Optional[T] = None
    error: Optional[str] = None

    @classmethod
    def success(cls, value: T) -> "StartupResult[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: str) -> "StartupResult[T]":
        return cls(error=error)

    def is_failure(self) -> bool:
        return self.error is not None


def resolve_directory(key: str, dir_name: Optional[str]) -> StartupResult[Path]:
    """
    Resuelve un directorio configurado a ruta absoluta, creándolo si falta.

    Args:
        key: Clave de configuración (para el mensaje de error)
        dir_name: Valor configurado

    Returns:
        StartupResult con el Path absoluto, o error si no es un directorio
    """
    if not dir_name or not dir_name.strip():
        return StartupResult.failure(f"La entrada de configuración '{key}' falta o está vacía")

    path = Path(dir_name.strip()).expanduser().absolute()
    if not path.is_dir():
        try:
            path.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            return StartupResult.failure(
                f"La entrada de configuración '{key}' apunta a un directorio que no se pudo crear: {path} ({e})"
            )

        # Verificar de nuevo
        if not path.is_dir():
            return StartupResult.failure(
                f"La entrada de configuración '{key}' apunta a algo que no es un directorio: {path}"
            )
    return StartupResult.success(path)
