"""Configuración de pytest y fixtures compartidas."""

from __future__ import annotations

import pytest

from application.services.session_manager import SessionManager
from config.settings import Settings
from fakes import FakeMailbox
from infrastructure.email.imap_client import MailboxSession


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings apuntando a un staging temporal y sin credenciales reales."""
    return Settings(
        IMAP_HOST="imap.test",
        IMAP_PORT=993,
        IMAP_USERNAME="user@example.com",
        IMAP_PASSWORD="secret",
        SEND_PROVIDER="smtp",
        STAGING_DIR=str(tmp_path / "target"),
        IMG_CDN="https://cdn.example.com/img",
        FETCH_CHUNK_SIZE=16,
        ATTACHMENT_DELIVERY="download",
    )


@pytest.fixture
def mailbox() -> FakeMailbox:
    return FakeMailbox()


@pytest.fixture
def session_factory(mailbox):
    def _factory() -> MailboxSession:
        return MailboxSession(
            "imap.test", 993, "user@example.com", "secret", timeout=5, client_factory=mailbox.factory
        )
    return _factory


@pytest.fixture
def sessions(session_factory) -> SessionManager:
    return SessionManager(session_factory, chunk_size=16)
