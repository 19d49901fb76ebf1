# infrastructure/http/cdn_client.py
from __future__ import annotations
import logging
from pathlib import Path
from urllib.parse import quote

import requests

from domain.errors import AttachmentFetchError

logger = logging.getLogger(__name__)


class CdnFetcher:
    """Descarga ficheros del CDN de imágenes a disco, en streaming."""

    def __init__(self, base_url: str, *, timeout: int = 30, chunk_size: int = 64 * 1024, session: requests.Session | None = None) -> None:
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.chunk_size = chunk_size
        self.session = session or requests.Session()

    def url_for(self, filename: str) -> str:
        return f"{self.base_url}/{quote(filename)}"

    def download(self, filename: str, dest: Path) -> Path:
        if not self.base_url:
            raise AttachmentFetchError("IMG_CDN no configurado; no se puede descargar " + filename)
        url = self.url_for(filename)
        logger.info("Descargando del CDN %s -> %s", url, dest)
        try:
            with self.session.get(url, stream=True, timeout=self.timeout) as r:
                r.raise_for_status()
                with open(dest, "wb") as fh:
                    for chunk in r.iter_content(chunk_size=self.chunk_size):
                        if chunk:
                            fh.write(chunk)
        except requests.RequestException as exc:
            raise AttachmentFetchError(f"Fallo descargando {url}: {exc}") from exc
        except OSError as exc:
            raise AttachmentFetchError(f"No se pudo guardar {dest}: {exc}") from exc
        return dest
