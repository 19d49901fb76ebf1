# infrastructure/filesystem/storage.py
from __future__ import annotations
import logging
import shutil
from pathlib import Path, PurePosixPath
import uuid

from domain.errors import StagingError

logger = logging.getLogger(__name__)


def safe_name(name_hint: str) -> str:
    # sin componentes de ruta (../, directorios)
    name = PurePosixPath((name_hint or "").replace("\\", "/")).name
    if name in ("", ".", ".."):
        raise StagingError(f"Nombre de fichero no válido: {name_hint!r}")
    return name


class StagingArea:
    """
    Directorio temporal propio de una operación (descarga o envío):
    <base>/<prefijo>-<uuid>. Se crea al entrar y se borra al salir, de modo
    que peticiones concurrentes nunca comparten ficheros.

    Uso:
        with StagingArea(Path("target"), prefix="download") as st:
            p = st.path_for("factura.pdf")
    """

    def __init__(self, base: Path, prefix: str = "op") -> None:
        self.base = base.resolve()
        self.prefix = prefix
        self.path: Path | None = None
        self.written: dict[str, Path] = {}

    def __enter__(self) -> "StagingArea":
        try:
            self.base.mkdir(parents=True, exist_ok=True)
            self.path = self.base / f"{self.prefix}-{uuid.uuid4().hex}"
            self.path.mkdir()
        except OSError as exc:
            raise StagingError(f"No se pudo crear el staging en {self.base}: {exc}") from exc
        logger.debug("Staging creado: %s", self.path)
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        if self.path is None:
            return
        try:
            shutil.rmtree(self.path)
        except OSError:
            logger.warning("No se pudo eliminar el staging %s", self.path, exc_info=True)
        self.path = None
        self.written.clear()

    def path_for(self, name_hint: str) -> Path:
        """Ruta dentro del staging de esta operación."""
        if self.path is None:
            raise StagingError("Staging no inicializado (usar como context manager)")
        return self.path / safe_name(name_hint)

    def shared_path(self, name_hint: str) -> Path:
        """Ruta en la raíz compartida (ficheros preexistentes)."""
        return self.base / safe_name(name_hint)

    def register(self, name_hint: str, path: Path) -> None:
        self.written[name_hint] = path

    def discard(self, path: Path) -> None:
        """Borra un fichero temporal; los fallos se registran, no se propagan."""
        try:
            path.unlink(missing_ok=True)
        except OSError:
            logger.warning("No se pudo borrar el temporal %s", path, exc_info=True)
