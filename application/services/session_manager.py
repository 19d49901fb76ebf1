# application/services/session_manager.py
from __future__ import annotations
import logging
from typing import Callable, TypeVar

from application.services.attachment_pipeline import stream_to_file
from application.services.folder_tree import build_folder_tree, resolve_folder_paths
from application.services.message_parser import HEADER, TEXT, MessageBatch
from application.services.search_criteria import build_search_terms, flatten_terms
from domain.errors import MailboxCommandError
from domain.models import EmailMessage, MailConfig
from infrastructure.email.imap_client import MailboxSession
from infrastructure.filesystem.storage import StagingArea

logger = logging.getLogger(__name__)

T = TypeVar("T")


class SessionManager:
    """
    Abre una sesión IMAP nueva por operación, ejecuta un único comando y la cierra
    siempre, también si el comando falla.
    """

    def __init__(self, session_factory: Callable[[], MailboxSession], *, chunk_size: int = 64 * 1024) -> None:
        self.session_factory = session_factory
        self.chunk_size = chunk_size

    def run_command(
        self,
        name: str,
        command: Callable[[MailboxSession], T],
        formatter: Callable[[T], object] | None = None,
    ):
        session = self.session_factory()
        session.connect()  # MailboxConnectionError: aborta la petición entera
        try:
            with session.command(name):
                result = command(session)
        finally:
            session.close()
        return formatter(result) if formatter else result

    # ───────── comandos ─────────
    def list_folders(self) -> list[str]:
        def _list(session: MailboxSession) -> list[str]:
            tree = build_folder_tree(session.list_folders())
            try:
                return resolve_folder_paths(tree)
            except ValueError as exc:
                raise MailboxCommandError(str(exc)) from exc

        return self.run_command("list-folders", _list)

    def fetch_messages(self, config: MailConfig, staging: StagingArea | None = None) -> list[EmailMessage]:
        if config.download_filename and staging is None:
            raise ValueError("Descargar un adjunto requiere un StagingArea")
        return self.run_command("fetch", lambda session: self._fetch(session, config, staging))

    def _fetch(self, session: MailboxSession, config: MailConfig, staging: StagingArea | None) -> list[EmailMessage]:
        session.select_folder(config.folder)

        terms = build_search_terms(config.criteria)
        logger.info("Buscando en '%s': %s", config.folder, terms)
        seqnos = session.search(flatten_terms(terms))
        if not seqnos:
            logger.info("Sin mensajes para %s", terms)
            return []

        batch = MessageBatch(seqnos, include_body=config.include_body, include_headers=config.include_headers)
        sections = [HEADER, TEXT] if config.include_body else [HEADER]
        downloaded = False

        for fetched in session.fetch_messages(seqnos, sections):
            asm = batch.slot(fetched.seqno)
            if asm is None:
                logger.warning("FETCH devolvió #%s, que no estaba en la búsqueda", fetched.seqno)
                continue
            asm.uid = fetched.uid
            for section in sections:
                asm.feed(section, fetched.sections.get(section) or b"")
                asm.end(section)

            if not (config.include_attachments and fetched.structure is not None):
                continue
            found = asm.apply_structure(fetched.structure)
            target = config.download_filename
            if not target or downloaded or fetched.uid is None:
                continue
            match = next((part for att, part in found if att.filename == target), None)
            if match is None:
                continue
            dest = staging.path_for(target)
            stream_to_file(
                session.iter_part_chunks(fetched.uid, match.part_id, self.chunk_size),
                match.encoding,
                dest,
            )
            staging.register(target, dest)
            downloaded = True

        messages = batch.collect()
        logger.info("Recuperados %d/%d mensajes de '%s'", len(messages), len(batch), config.folder)
        return messages
