# application/services/attachment_pipeline.py
from __future__ import annotations
import base64
import binascii
import logging
import os
from pathlib import Path
from typing import Iterable

from domain.errors import StagingError

logger = logging.getLogger(__name__)

_WHITESPACE = b" \t\r\n"


class Base64StreamDecoder:
    """
    Decodificador base64 incremental: guarda el resto que no llega a un
    bloque de 4 caracteres hasta el siguiente trozo.
    """

    def __init__(self) -> None:
        self._pending = b""

    def decode(self, chunk: bytes) -> bytes:
        data = self._pending + chunk.translate(None, _WHITESPACE)
        usable = len(data) - (len(data) % 4)
        self._pending = data[usable:]
        if not usable:
            return b""
        return base64.b64decode(data[:usable])

    def flush(self) -> bytes:
        rest, self._pending = self._pending, b""
        if not rest:
            return b""
        # cola truncada (sin padding): se completa en vez de descartar bytes
        return base64.b64decode(rest + b"=" * (-len(rest) % 4))


class PassthroughDecoder:
    def decode(self, chunk: bytes) -> bytes:
        return chunk

    def flush(self) -> bytes:
        return b""


def decoder_for(encoding: str | None) -> Base64StreamDecoder | PassthroughDecoder:
    # cualquier otra codificación (7bit, quoted-printable, ...) se escribe tal cual
    if (encoding or "").upper() == "BASE64":
        return Base64StreamDecoder()
    return PassthroughDecoder()


def stream_to_file(chunks: Iterable[bytes], encoding: str | None, target: Path) -> int:
    """
    Decodifica los trozos según la codificación de transporte y los escribe en
    'target'. Solo devuelve (bytes escritos) después de flush + fsync del fichero.
    """
    decoder = decoder_for(encoding)
    written = 0
    logger.info("Descargando adjunto a %s (encoding=%s)", target, encoding or "-")
    try:
        with open(target, "wb") as fh:
            for chunk in chunks:
                out = decoder.decode(chunk)
                if out:
                    fh.write(out)
                    written += len(out)
            tail = decoder.flush()
            if tail:
                fh.write(tail)
                written += len(tail)
            fh.flush()
            os.fsync(fh.fileno())
    except binascii.Error as exc:
        raise StagingError(f"Adjunto base64 corrupto: {target.name}") from exc
    except OSError as exc:
        raise StagingError(f"No se pudo escribir el adjunto {target}: {exc}") from exc
    logger.info("Adjunto escrito: %s (%d bytes)", target, written)
    return written
