# infrastructure/email/imap_client.py
from __future__ import annotations
import enum
import logging
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Callable, Iterable, Iterator

from imapclient import IMAPClient
from imapclient.exceptions import IMAPClientError

from domain.errors import MailboxCommandError, MailboxConnectionError
from domain.models import BodyPart
from infrastructure.email.bodystructure import parse_bodystructure

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    READY = "ready"
    BUSY = "busy"
    CLOSING = "closing"


@dataclass
class FetchedMessage:
    seqno: int
    uid: int | None
    sections: dict[str, bytes] = field(default_factory=dict)
    structure: BodyPart | None = None


class MailboxSession:
    """
    Una sesión IMAP por operación:
      disconnected -> connecting -> ready -> busy(comando) -> ready -> closing -> disconnected
    Solo admite un comando en curso.
    """

    def __init__(
        self,
        host: str,
        port: int,
        user: str,
        password: str,
        ssl: bool = True,
        timeout: float | None = None,
        client_factory: Callable[..., Any] = IMAPClient,
    ) -> None:
        self.host = host
        self.port = port
        self.user = user
        self.password = password
        self.ssl = ssl
        self.timeout = timeout
        self.client_factory = client_factory
        self.client: Any = None
        self.state = SessionState.DISCONNECTED
        self.command_name: str | None = None

    # ───────── ciclo de vida ─────────
    def connect(self) -> None:
        if self.state is not SessionState.DISCONNECTED:
            raise MailboxConnectionError(f"Sesión IMAP en estado {self.state.value}, no se puede conectar")
        self.state = SessionState.CONNECTING
        try:
            self.client = self.client_factory(
                self.host, port=self.port, ssl=self.ssl, use_uid=False, timeout=self.timeout
            )
            self.client.login(self.user, self.password)
        except (IMAPClientError, OSError) as exc:
            self.state = SessionState.DISCONNECTED
            self.client = None
            raise MailboxConnectionError(f"No se pudo conectar a {self.host}:{self.port}: {exc}") from exc
        self.state = SessionState.READY
        logger.info("IMAP conectado a %s:%s", self.host, self.port)

    def close(self) -> None:
        if self.state is SessionState.DISCONNECTED:
            return
        self.state = SessionState.CLOSING
        try:
            if self.client:
                self.client.logout()
        except Exception:
            logger.exception("Error cerrando IMAP")
        finally:
            self.client = None
            self.command_name = None
            self.state = SessionState.DISCONNECTED
        logger.info("IMAP desconectado")

    def __enter__(self) -> "MailboxSession":
        self.connect()
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    @contextmanager
    def command(self, name: str) -> Iterator["MailboxSession"]:
        if self.state is SessionState.BUSY:
            raise MailboxCommandError(f"Ya hay un comando en curso ({self.command_name}); no se admite '{name}'")
        if self.state is not SessionState.READY:
            raise MailboxCommandError(f"Sesión IMAP no lista ({self.state.value}) para '{name}'")
        self.state = SessionState.BUSY
        self.command_name = name
        logger.debug("Comando IMAP: %s", name)
        try:
            yield self
        finally:
            if self.state is SessionState.BUSY:
                self.state = SessionState.READY
            self.command_name = None

    def _require_busy(self) -> None:
        if self.state is not SessionState.BUSY:
            raise MailboxCommandError("Operación IMAP fuera de un comando")

    # ───────── operaciones ─────────
    def list_folders(self) -> list[tuple[Any, Any, str]]:
        self._require_busy()
        try:
            return list(self.client.list_folders())
        except (IMAPClientError, OSError) as exc:
            raise MailboxCommandError(f"No se pudieron listar las carpetas: {exc}") from exc

    def select_folder(self, folder: str) -> dict:
        self._require_busy()
        try:
            return self.client.select_folder(folder, readonly=True)
        except (IMAPClientError, OSError) as exc:
            raise MailboxCommandError(f"No se pudo abrir la carpeta '{folder}': {exc}") from exc

    def search(self, criteria: list) -> list[int]:
        self._require_busy()
        try:
            return sorted(self.client.search(criteria))
        except (IMAPClientError, OSError) as exc:
            raise MailboxCommandError(f"Búsqueda IMAP fallida {criteria!r}: {exc}") from exc

    def fetch_messages(self, seqnos: Iterable[int], sections: Iterable[str]) -> Iterator[FetchedMessage]:
        """
        FETCH por número de secuencia: UID, BODYSTRUCTURE y las secciones
        pedidas (BODY.PEEK[HEADER], BODY.PEEK[TEXT]) sin marcar como leído.
        """
        self._require_busy()
        seqnos = list(seqnos)
        sections = list(sections)
        items = ["UID", "BODYSTRUCTURE"] + [f"BODY.PEEK[{s}]" for s in sections]
        try:
            response = self.client.fetch(seqnos, items)
        except (IMAPClientError, OSError) as exc:
            raise MailboxCommandError(f"FETCH fallido: {exc}") from exc

        for seqno, data in response.items():
            structure = data.get(b"BODYSTRUCTURE")
            yield FetchedMessage(
                seqno=seqno,
                uid=data.get(b"UID"),
                sections={s: data.get(f"BODY[{s}]".encode()) or b"" for s in sections},
                structure=parse_bodystructure(structure) if structure else None,
            )

    def _fetch_by_uid(self, uid: int, items: list[str]) -> dict:
        # el UID es estable entre operaciones; el número de secuencia no
        previous = self.client.use_uid
        self.client.use_uid = True
        try:
            return self.client.fetch([uid], items)
        finally:
            self.client.use_uid = previous

    def iter_part_chunks(self, uid: int, part_id: str, chunk_size: int = 64 * 1024) -> Iterator[bytes]:
        """
        Lee una parte concreta con FETCH parciales BODY.PEEK[<parte>]<offset.len>,
        de modo que el consumidor marca el ritmo y nunca hay más de un trozo en memoria.
        """
        self._require_busy()
        prefix = f"BODY[{part_id}]".encode()
        offset = 0
        while True:
            item = f"BODY.PEEK[{part_id}]<{offset}.{chunk_size}>"
            try:
                response = self._fetch_by_uid(uid, [item])
            except (IMAPClientError, OSError) as exc:
                raise MailboxCommandError(f"FETCH de la parte {part_id} (UID={uid}) fallido: {exc}") from exc
            data = response.get(uid) or {}
            chunk = next((v for k, v in data.items() if isinstance(k, bytes) and k.startswith(prefix)), None)
            if not chunk:
                return
            yield chunk
            if len(chunk) < chunk_size:
                return
            offset += len(chunk)
