# interface_adapters/controllers/mail_controller.py
from __future__ import annotations
import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone
from functools import wraps
from typing import Any, Callable, Mapping

from application.services.outbound_composer import compose_send_spec
from application.services.session_manager import SessionManager
from config.settings import Settings
from domain.errors import MailApiError, NotFoundError, RequestValidationError, StagingError
from domain.models import DateSearch, DownloadPayload, EmailMessage, MailConfig, SearchCriteria
from infrastructure.email.graph_client import GraphMailClient
from infrastructure.email.imap_client import MailboxSession
from infrastructure.email.smtp_client import SmtpSender
from infrastructure.filesystem.storage import StagingArea
from infrastructure.http.cdn_client import CdnFetcher
from infrastructure.storage.object_store import S3AttachmentStore

logger = logging.getLogger(__name__)

_EPOCH = datetime.min.replace(tzinfo=timezone.utc)


@dataclass
class ApiResponse:
    status: int
    message: str
    data: Any = None

    @property
    def ok(self) -> bool:
        return self.status < 400

    def body(self) -> dict[str, Any]:
        if not self.ok:
            return {"error": self.message}
        return {"message": self.message, "data": self.data}


# ───────── helpers de parámetros ─────────
def _flag(params: Mapping[str, Any], name: str) -> bool:
    return str(params.get(name) or "") == "1"


def _limit(params: Mapping[str, Any]) -> int | None:
    raw = params.get("limit")
    if raw in (None, ""):
        return None
    try:
        value = int(raw)
    except (TypeError, ValueError):
        raise RequestValidationError(f"'limit' debe ser un entero, no {raw!r}") from None
    if value < 0:
        raise RequestValidationError("'limit' no puede ser negativo")
    return value


def parse_search_date(raw: Any) -> date | None:
    """Acepta YYYY-MM-DD o el formato IMAP DD-Mon-YYYY."""
    if raw in (None, ""):
        return None
    text = str(raw).strip()
    try:
        return date.fromisoformat(text)
    except ValueError:
        pass
    try:
        return datetime.strptime(text, "%d-%b-%Y").date()
    except ValueError:
        raise RequestValidationError(f"Fecha no válida: {text!r} (usar YYYY-MM-DD o DD-Mon-YYYY)") from None


def sort_messages(messages: list[EmailMessage], *, reverse: bool = False) -> list[EmailMessage]:
    # sin fecha = el instante más antiguo
    return sorted(messages, key=lambda m: m.date_sent or _EPOCH, reverse=reverse)


def apply_limit(messages: list[EmailMessage], limit: int | None) -> list[EmailMessage]:
    return messages if limit is None else messages[:limit]


def _guarded(op: Callable[..., ApiResponse]) -> Callable[..., ApiResponse]:
    @wraps(op)
    def wrapper(self: "MailController", *args: Any, **kwargs: Any) -> ApiResponse:
        try:
            return op(self, *args, **kwargs)
        except MailApiError as exc:
            logger.warning("%s falló (status=%s): %s", op.__name__, exc.status, exc)
            return ApiResponse(exc.status, exc.message)
        except Exception:
            logger.exception("Error inesperado en %s", op.__name__)
            return ApiResponse(500, "Internal server error")
    return wrapper


class MailController:
    def __init__(
        self,
        settings: Settings,
        *,
        sessions: SessionManager | None = None,
        sender: Any = None,
        fetcher: CdnFetcher | None = None,
        object_store: S3AttachmentStore | None = None,
    ) -> None:
        self.settings = settings
        self.sessions = sessions or SessionManager(self._new_session, chunk_size=settings.FETCH_CHUNK_SIZE)
        self.sender = sender or self._build_sender()
        self.fetcher = fetcher or CdnFetcher(settings.cdn_base(), timeout=settings.CDN_TIMEOUT)
        if object_store is None and settings.uses_object_storage():
            object_store = S3AttachmentStore(
                settings.S3_BUCKET,
                prefix=settings.S3_PREFIX,
                expires_in=settings.S3_URL_EXPIRES,
                region=settings.AWS_REGION,
            )
        self.object_store = object_store

    # ───────── wiring ─────────
    def _new_session(self) -> MailboxSession:
        st = self.settings
        return MailboxSession(
            st.IMAP_HOST, st.IMAP_PORT, st.IMAP_USERNAME, st.IMAP_PASSWORD,
            ssl=st.IMAP_SSL, timeout=st.IMAP_TIMEOUT,
        )

    def _build_sender(self) -> Any:
        st = self.settings
        if st.SEND_PROVIDER == "graph":
            return GraphMailClient(
                tenant_id=st.GRAPH_TENANT_ID,
                client_id=st.GRAPH_CLIENT_ID,
                client_secret=st.GRAPH_CLIENT_SECRET,
                user_id=st.GRAPH_USER_ID,
                base=st.GRAPH_BASE,
            )
        user, password = st.smtp_credentials()
        return SmtpSender(st.SMTP_HOST, st.SMTP_PORT, user, password, use_ssl=st.SMTP_SSL, timeout=st.SMTP_TIMEOUT)

    def _staging(self, prefix: str) -> StagingArea:
        return StagingArea(self.settings.staging_path(), prefix=prefix)

    # ───────── operaciones ─────────
    @_guarded
    def get_email_folders(self, params: Mapping[str, Any] | None = None) -> ApiResponse:
        folders = self.sessions.list_folders()
        return ApiResponse(200, "Retrieved folders successfully!", {"count": len(folders), "folders": folders})

    @_guarded
    def get_emails(self, params: Mapping[str, Any]) -> ApiResponse:
        limit = _limit(params)
        since = parse_search_date(params.get("since"))
        config = MailConfig(
            folder=params.get("folder") or self.settings.IMAP_FOLDER_INBOX,
            include_body=_flag(params, "body"),
            include_headers=_flag(params, "header"),
            include_attachments=True,
            criteria=SearchCriteria(
                message_type="ALL",
                message_id=params.get("msgID") or None,
                date_search=DateSearch(since, "since") if since else None,
            ),
        )
        messages = self.sessions.fetch_messages(config)
        ordered = apply_limit(sort_messages(messages, reverse=_flag(params, "reverse")), limit)
        return ApiResponse(
            200,
            "Retrieved emails successfully!",
            {"count": len(ordered), "emails": [m.to_dict() for m in ordered]},
        )

    @_guarded
    def get_email(self, params: Mapping[str, Any]) -> ApiResponse:
        folder, msg_id = params.get("folder"), params.get("msgID")
        if not (msg_id and folder):
            raise RequestValidationError("Must provide the 'msgID' & 'folder' parameters to find an email")
        config = MailConfig(
            folder=folder,
            include_body=_flag(params, "body"),
            include_headers=True,
            include_attachments=True,
            criteria=SearchCriteria(message_type="ALL", message_id=msg_id),
        )
        messages = self.sessions.fetch_messages(config)
        return ApiResponse(200, "Retrieved email successfully!", messages[0].to_dict() if messages else None)

    @_guarded
    def get_attachment(self, params: Mapping[str, Any]) -> ApiResponse:
        folder, msg_id, filename = params.get("folder"), params.get("msgID"), params.get("filename")
        if not (msg_id and folder and filename):
            raise RequestValidationError(
                "Must provide the 'msgID', 'folder' & 'filename' parameters to download an attachment"
            )
        config = MailConfig(
            folder=folder,
            include_headers=True,
            include_attachments=True,
            criteria=SearchCriteria(message_type="ALL", message_id=msg_id),
            download_filename=filename,
        )
        with self._staging("download") as staging:
            messages = self.sessions.fetch_messages(config, staging)
            path = staging.written.get(filename)
            if path is None:
                raise NotFoundError(f"Attachment '{filename}' not found in message {msg_id}")
            found = [m.find_attachment(filename) for m in messages]
            att = next((a for a in found if a is not None), None)
            content_type = att.type if att else "application/octet-stream"

            if self.object_store is not None:
                url = self.object_store.upload_and_sign(path, content_type)
                return ApiResponse(200, "Retrieved attachment successfully!", {"filename": filename, "url": url})

            try:
                data = path.read_bytes()
            except OSError as exc:
                raise StagingError(f"No se pudo leer {path}: {exc}") from exc
        return ApiResponse(200, "download", DownloadPayload(filename=filename, content_type=content_type, data=data))

    @_guarded
    def send_email(self, payload: Mapping[str, Any]) -> ApiResponse:
        with self._staging("send") as staging:
            spec, fetched = compose_send_spec(payload, staging, self.fetcher)
            message_id = self.sender.send(spec)
            # solo lo descargado para este envío; los adjuntos previos no se tocan
            for path in fetched:
                staging.discard(path)
        return ApiResponse(200, "Email sent successfully!", message_id)
