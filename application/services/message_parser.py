# application/services/message_parser.py
from __future__ import annotations
import logging
import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable

import pyzmail
from pyzmail.parse import decode_mail_header

from domain.errors import PartialParseError
from domain.models import (
    BodyPart,
    EmailAttachment,
    EmailMessage,
    UNKNOWN_SENDER,
    UNKNOWN_SUBJECT,
)

logger = logging.getLogger(__name__)

HEADER = "HEADER"
TEXT = "TEXT"

_TAG_RE = re.compile(r"(<([^>]+)>)", re.IGNORECASE)
_FOLD_RE = re.compile(r"\r?\n[ \t]+")


def strip_markup(text: str) -> str:
    return _TAG_RE.sub("", text).strip()


def unfold(value: str) -> str:
    # RFC 5322 §2.2.3: CRLF + espacio en blanco es una sola línea lógica
    return _FOLD_RE.sub(" ", value or "").strip()


def header_value(msg: pyzmail.PyzMessage, name: str) -> str:
    """Primer valor de la cabecera, desplegado y decodificado (RFC 2047)."""
    raw = msg.get(name)
    if raw is None:
        return ""
    return decode_mail_header(unfold(str(raw)))


def parse_date(value: str) -> datetime | None:
    if not value:
        return None
    try:
        dt = parsedate_to_datetime(value)
    except (TypeError, ValueError, IndexError):
        return None
    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)
    return dt.astimezone(timezone.utc)


def header_map(msg: pyzmail.PyzMessage) -> dict[str, list[str]]:
    """Cabeceras en bruto: clave en minúsculas -> todos sus valores decodificados."""
    out: dict[str, list[str]] = {}
    for key, value in msg.items():
        out.setdefault(key.lower(), []).append(decode_mail_header(unfold(str(value))))
    return out


def enumerate_attachments(root: BodyPart) -> list[tuple[EmailAttachment, BodyPart]]:
    """
    Solo si la raíz es multipart/mixed se recorren sus partes hijas buscando
    Content-Disposition: attachment. Se respeta el orden de la estructura.
    """
    found: list[tuple[EmailAttachment, BodyPart]] = []
    if not (root.is_multipart and root.subtype == "mixed"):
        return found
    for part in root.children:
        if (part.disposition or "").lower() != "attachment":
            continue
        filename = part.disposition_params.get("filename") or part.params.get("name") or ""
        att = EmailAttachment(
            filename=filename,
            type=part.mime_type,
            encoding=part.encoding,
            size=part.size,
        )
        found.append((att, part))
    return found


class MessageAssembler:
    """
    Acumula los bytes de cada sección (HEADER / TEXT) de un mensaje y solo
    parsea cuando la sección ha terminado: el plegado de cabeceras y los
    caracteres multibyte pueden partirse entre trozos.
    """

    def __init__(self, seqno: int, *, include_body: bool = False, include_headers: bool = False) -> None:
        self.seqno = seqno
        self.include_body = include_body
        self.include_headers = include_headers
        self.uid: int | None = None
        self.message = EmailMessage(
            body="" if include_body else None,
            headers={} if include_headers else None,
        )
        self._buffers: dict[str, bytearray] = {}
        self._pending: set[str] = {HEADER, TEXT} if include_body else {HEADER}

    @property
    def done(self) -> bool:
        return not self._pending

    def feed(self, section: str, chunk: bytes) -> None:
        self._buffers.setdefault(section, bytearray()).extend(chunk)

    def end(self, section: str) -> None:
        raw = bytes(self._buffers.pop(section, b""))
        if section == HEADER:
            self._apply_header(raw)
        elif section == TEXT:
            self.message.body = strip_markup(raw.decode("utf-8", errors="replace"))
        self._pending.discard(section)

    def _required(self, msg: pyzmail.PyzMessage, name: str, default: str) -> str:
        value = header_value(msg, name)
        if value:
            return value
        err = PartialParseError(name, self.seqno)
        logger.warning("%s; se usa '%s'", err, default)
        return default

    def _apply_header(self, raw: bytes) -> None:
        msg = pyzmail.PyzMessage.factory(raw)
        m = self.message
        m.to = self._required(msg, "to", UNKNOWN_SENDER)
        m.from_addr = self._required(msg, "from", UNKNOWN_SENDER)
        m.subject = self._required(msg, "subject", UNKNOWN_SUBJECT)
        m.date_sent = parse_date(header_value(msg, "date"))
        if m.date_sent is None:
            logger.warning("%s", PartialParseError("date", self.seqno))
        m.msg_id = header_value(msg, "message-id")
        if self.include_headers:
            m.headers = header_map(msg)

    def apply_structure(self, root: BodyPart) -> list[tuple[EmailAttachment, BodyPart]]:
        found = enumerate_attachments(root)
        self.message.attachments.extend(att for att, _ in found)
        return found


class MessageBatch:
    """
    Un hueco por número de secuencia devuelto por SEARCH. Cada mensaje se
    completa de forma independiente; collect() es la barrera final.
    """

    def __init__(self, seqnos: Iterable[int], *, include_body: bool = False, include_headers: bool = False) -> None:
        self._slots: dict[int, MessageAssembler] = {
            seq: MessageAssembler(seq, include_body=include_body, include_headers=include_headers)
            for seq in seqnos
        }

    def __len__(self) -> int:
        return len(self._slots)

    def slot(self, seqno: int) -> MessageAssembler | None:
        return self._slots.get(seqno)

    def collect(self) -> list[EmailMessage]:
        out: list[EmailMessage] = []
        for seq in sorted(self._slots):
            asm = self._slots[seq]
            if not asm.done:
                logger.warning("Mensaje #%s incompleto; se descarta", seq)
                continue
            if not asm.message.msg_id:
                logger.warning("Mensaje #%s sin Message-ID; se descarta", seq)
                continue
            out.append(asm.message)
        return out
