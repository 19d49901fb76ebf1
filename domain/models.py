# domain/models.py
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Literal

MessageType = Literal["ALL", "DELETED", "UNSEEN"]
DateOperator = Literal["before", "on", "since"]

UNKNOWN_SENDER = "unknown sender"
UNKNOWN_SUBJECT = "unknown subject"


def format_timestamp(value: datetime | None) -> str:
    """ISO-8601 en UTC con milisegundos y sufijo Z (p.ej. 2024-01-03T10:00:00.000Z)."""
    if value is None:
        return ""
    return value.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace("+00:00", "Z")


@dataclass
class EmailAttachment:
    filename: str
    type: str
    encoding: str
    size: int  # tamaño declarado en BODYSTRUCTURE (transfer-encoded), no el decodificado

    def to_dict(self) -> dict[str, Any]:
        return {"filename": self.filename, "type": self.type, "encoding": self.encoding, "size": self.size}


@dataclass
class EmailMessage:
    msg_id: str = ""
    date_sent: datetime | None = None
    from_addr: str = ""
    to: str = ""
    subject: str = ""
    body: str | None = None
    headers: dict[str, list[str]] | None = None
    attachments: list[EmailAttachment] = field(default_factory=list)

    def find_attachment(self, filename: str) -> EmailAttachment | None:
        return next((a for a in self.attachments if a.filename == filename), None)

    def to_dict(self) -> dict[str, Any]:
        out: dict[str, Any] = {
            "msgID": self.msg_id,
            "dateSent": format_timestamp(self.date_sent),
            "from": self.from_addr,
            "to": self.to,
            "subject": self.subject,
            "attachments": [a.to_dict() for a in self.attachments],
        }
        if self.body is not None:
            out["body"] = self.body
        if self.headers is not None:
            out["headers"] = self.headers
        return out


@dataclass
class DateSearch:
    date: date
    operator: DateOperator


@dataclass
class SearchCriteria:
    message_type: MessageType = "ALL"
    message_id: str | None = None
    date_search: DateSearch | None = None
    header_search: dict[str, str] = field(default_factory=dict)


@dataclass
class MailConfig:
    folder: str
    include_body: bool = False
    include_headers: bool = False
    include_attachments: bool = True
    criteria: SearchCriteria = field(default_factory=SearchCriteria)
    download_filename: str | None = None


@dataclass
class BodyPart:
    """Nodo del árbol BODYSTRUCTURE ya normalizado."""
    part_id: str
    type: str
    subtype: str
    params: dict[str, str] = field(default_factory=dict)
    encoding: str = ""
    size: int = 0
    disposition: str | None = None
    disposition_params: dict[str, str] = field(default_factory=dict)
    children: list[BodyPart] = field(default_factory=list)

    @property
    def is_multipart(self) -> bool:
        return self.type == "multipart"

    @property
    def mime_type(self) -> str:
        return f"{self.type}/{self.subtype}"


# ───────── envío ─────────
@dataclass
class AttachmentDirective:
    """Adjunto tal y como llega en la petición de envío."""
    filename: str
    display_filename: str | None = None
    use_cdn: bool = False
    embedded_image: bool = False
    base64_content: str | None = None

    @classmethod
    def from_dict(cls, raw: dict[str, Any]) -> "AttachmentDirective":
        return cls(
            filename=str(raw.get("filename") or ""),
            display_filename=raw.get("displayFileName") or None,
            use_cdn=bool(raw.get("useCDN")),
            embedded_image=bool(raw.get("embeddedImage")),
            base64_content=raw.get("base64Content") or None,
        )


@dataclass
class SendAttachment:
    """Adjunto ya resuelto: embebido (cid+path), base64 literal (content) o por ruta (path)."""
    filename: str
    path: str | None = None
    cid: str | None = None
    content: str | None = None
    encoding: Literal["base64"] | None = None


@dataclass
class SendSpec:
    sender: str
    to: str
    subject: str
    html: str | None = None
    text: str | None = None
    cc: str | None = None
    bcc: str | None = None
    attachments: list[SendAttachment] = field(default_factory=list)


@dataclass
class DownloadPayload:
    filename: str
    content_type: str
    data: bytes
