# infrastructure/email/smtp_client.py
from __future__ import annotations
import base64
import binascii
import logging
import mimetypes
import smtplib
import ssl
from email.message import EmailMessage
from email.utils import formatdate, make_msgid, parseaddr
from pathlib import Path

from domain.errors import SendError, StagingError
from domain.models import SendAttachment, SendSpec

logger = logging.getLogger(__name__)


def _guess_type(filename: str) -> tuple[str, str]:
    ctype, _ = mimetypes.guess_type(filename)
    maintype, _, subtype = (ctype or "application/octet-stream").partition("/")
    return maintype, subtype


def read_attachment(att: SendAttachment) -> bytes:
    if att.content is not None:
        try:
            return base64.b64decode(att.content)
        except (binascii.Error, ValueError) as exc:
            raise SendError(f"Contenido base64 inválido en '{att.filename}'") from exc
    try:
        return Path(att.path or "").read_bytes()
    except OSError as exc:
        raise StagingError(f"No se encuentra el adjunto '{att.filename}' en {att.path}") from exc


def build_message(spec: SendSpec) -> EmailMessage:
    msg = EmailMessage()
    msg["From"] = spec.sender
    msg["To"] = spec.to
    if spec.cc:
        msg["Cc"] = spec.cc
    if spec.bcc:
        # smtplib.send_message usa Bcc como destinatario y no lo transmite
        msg["Bcc"] = spec.bcc
    msg["Subject"] = spec.subject
    msg["Date"] = formatdate(localtime=True)
    domain = parseaddr(spec.sender)[1].rpartition("@")[2] or None
    msg["Message-ID"] = make_msgid(domain=domain)

    if spec.html:
        msg.set_content(spec.html, subtype="html")
    else:
        msg.set_content(spec.text or "")

    # las embebidas primero: add_related no se puede usar tras add_attachment
    embedded = [a for a in spec.attachments if a.cid]
    regular = [a for a in spec.attachments if not a.cid]
    for att in embedded:
        maintype, subtype = _guess_type(att.filename)
        msg.add_related(
            read_attachment(att), maintype=maintype, subtype=subtype,
            cid=f"<{att.cid}>", filename=att.filename, disposition="inline",
        )
    for att in regular:
        maintype, subtype = _guess_type(att.filename)
        msg.add_attachment(read_attachment(att), maintype=maintype, subtype=subtype, filename=att.filename)
    return msg


class SmtpSender:
    def __init__(self, host: str, port: int, user: str, password: str, *, use_ssl: bool = True, timeout: float = 30) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.use_ssl = use_ssl
        self.timeout = timeout

    def _connect(self) -> smtplib.SMTP:
        context = ssl.create_default_context()
        if self.use_ssl:
            smtp = smtplib.SMTP_SSL(self.host, self.port, context=context, timeout=self.timeout)
        else:
            smtp = smtplib.SMTP(self.host, self.port, timeout=self.timeout)
            smtp.ehlo()
            smtp.starttls(context=context)
            smtp.ehlo()
        if self.user:
            smtp.login(self.user, self.password)
        return smtp

    def send(self, spec: SendSpec) -> str:
        msg = build_message(spec)
        try:
            with self._connect() as smtp:
                smtp.send_message(msg)
        except (smtplib.SMTPException, OSError) as exc:
            raise SendError(f"Fallo SMTP enviando a {spec.to}: {exc}") from exc
        logger.info("Email enviado a %s (Message-ID: %s)", spec.to, msg["Message-ID"])
        return str(msg["Message-ID"])
