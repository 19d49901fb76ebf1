# application/services/outbound_composer.py
from __future__ import annotations
import json
import logging
from email.utils import formataddr
from pathlib import Path
from typing import Any, Mapping

from domain.errors import RequestValidationError
from domain.models import AttachmentDirective, SendAttachment, SendSpec
from infrastructure.filesystem.storage import StagingArea
from infrastructure.http.cdn_client import CdnFetcher

logger = logging.getLogger(__name__)


def parse_directives(raw: Any) -> list[AttachmentDirective]:
    """'attachments' llega como JSON (string) o ya decodificado (lista)."""
    if not raw:
        return []
    if isinstance(raw, (str, bytes)):
        try:
            raw = json.loads(raw)
        except ValueError as exc:
            raise RequestValidationError(f"'attachments' no es JSON válido: {exc}") from exc
    if not isinstance(raw, list) or not all(isinstance(a, dict) for a in raw):
        raise RequestValidationError("'attachments' debe ser una lista de objetos")
    directives = [AttachmentDirective.from_dict(a) for a in raw]
    for d in directives:
        if not d.filename:
            raise RequestValidationError("Cada adjunto necesita 'filename'")
    return directives


def format_sender(address: str, name: str | None = None) -> str:
    return formataddr((name, address)) if name else address


def resolve_attachment(directive: AttachmentDirective, path: Path) -> SendAttachment:
    """Prioridad: imagen embebida > contenido base64 > adjunto por ruta."""
    name = directive.display_filename or directive.filename
    if directive.embedded_image:
        # el src del HTML debe ser "cid:<filename>"
        return SendAttachment(filename=name, path=str(path), cid=directive.filename)
    if directive.base64_content:
        return SendAttachment(filename=name, content=directive.base64_content, encoding="base64")
    return SendAttachment(filename=name, path=str(path))


def compose_send_spec(
    payload: Mapping[str, Any],
    staging: StagingArea,
    fetcher: CdnFetcher | None = None,
) -> tuple[SendSpec, list[Path]]:
    """
    Construye el SendSpec a partir del cuerpo de la petición.
    Los adjuntos marcados useCDN se descargan (y se esperan) antes de devolver.
    Devuelve también las rutas descargadas para borrarlas tras el envío.
    """
    sender = (payload.get("from") or "").strip()
    to = payload.get("to") or ""
    if not sender or not to:
        raise RequestValidationError("Must provide the 'from' & 'to' parameters to send an email")

    spec = SendSpec(
        sender=format_sender(sender, payload.get("fromName")),
        to=to,
        subject=payload.get("subject") or "",
        cc=payload.get("cc") or None,
        bcc=payload.get("bcc") or None,
    )
    if payload.get("html"):
        spec.html = payload["html"]
    else:
        spec.text = payload.get("text") or ""

    fetched: list[Path] = []
    for directive in parse_directives(payload.get("attachments")):
        if directive.use_cdn:
            path = staging.path_for(directive.filename)
            if path not in fetched:
                if fetcher is None:
                    raise RequestValidationError(f"'{directive.filename}' pide CDN pero no hay CDN configurado")
                fetcher.download(directive.filename, path)
                fetched.append(path)
        else:
            path = staging.shared_path(directive.filename)
        spec.attachments.append(resolve_attachment(directive, path))

    logger.info(
        "Envío preparado para %s: %d adjuntos (%d del CDN)", spec.to, len(spec.attachments), len(fetched)
    )
    return spec, fetched
