"""Pruebas del controlador de peticiones."""

from datetime import date, datetime, timezone
from pathlib import Path
from unittest.mock import MagicMock

import pytest

from domain.errors import SendError
from domain.models import DownloadPayload, EmailMessage
from fakes import attachment_part, b64_wrapped, make_header, multipart, text_part
from interface_adapters.controllers.mail_controller import (
    ApiResponse,
    MailController,
    parse_search_date,
    sort_messages,
)


@pytest.fixture
def sender():
    mock = MagicMock()
    mock.send.return_value = "<sent@example.com>"
    return mock


@pytest.fixture
def fetcher():
    mock = MagicMock()

    def download(filename, dest):
        dest.write_bytes(b"cdn-bytes")
        return dest

    mock.download.side_effect = download
    return mock


@pytest.fixture
def controller(settings, sessions, sender, fetcher) -> MailController:
    return MailController(settings, sessions=sessions, sender=sender, fetcher=fetcher)


def _dated(mailbox, day: int, msg_id: str) -> None:
    mailbox.add(make_header(msg_id=msg_id, date=f"Mon, 0{day} Jan 2024 10:00:00 +0000"))


class TestHelpers:
    def test_search_date_formats(self) -> None:
        assert parse_search_date("2024-01-05") == date(2024, 1, 5)
        assert parse_search_date("05-Jan-2024") == date(2024, 1, 5)
        assert parse_search_date("") is None

    def test_undated_messages_sort_first(self) -> None:
        dated = EmailMessage(msg_id="a", date_sent=datetime(2024, 1, 1, tzinfo=timezone.utc))
        undated = EmailMessage(msg_id="b")

        assert [m.msg_id for m in sort_messages([dated, undated])] == ["b", "a"]

    def test_error_body_envelope(self) -> None:
        assert ApiResponse(404, "nope").body() == {"error": "nope"}
        assert ApiResponse(200, "ok", [1]).body() == {"message": "ok", "data": [1]}


class TestGetEmails:
    def test_reverse_and_limit(self, controller, mailbox) -> None:
        _dated(mailbox, 2, "<jan2@x>")
        _dated(mailbox, 3, "<jan3@x>")
        _dated(mailbox, 1, "<jan1@x>")

        resp = controller.get_emails({"folder": "INBOX", "limit": "2", "reverse": "1"})

        assert resp.status == 200
        assert resp.data["count"] == 2
        assert [e["msgID"] for e in resp.data["emails"]] == ["<jan3@x>", "<jan2@x>"]
        assert resp.data["emails"][0]["dateSent"] == "2024-01-03T10:00:00.000Z"

    def test_ascending_by_default_and_inbox_fallback(self, controller, mailbox) -> None:
        _dated(mailbox, 3, "<jan3@x>")
        _dated(mailbox, 1, "<jan1@x>")

        resp = controller.get_emails({})

        assert [e["msgID"] for e in resp.data["emails"]] == ["<jan1@x>", "<jan3@x>"]
        assert mailbox.clients[0].selected == "INBOX"
        assert "body" not in resp.data["emails"][0]

    def test_folded_subject_and_recipients(self, controller, mailbox) -> None:
        mailbox.add(make_header(subject="Quarterly report for the finance team,\r\n second half", to="b@x,\r\n c@x"))

        [email] = controller.get_emails({"folder": "INBOX"}).data["emails"]

        assert email["subject"] == "Quarterly report for the finance team, second half"
        assert email["to"] == "b@x, c@x"

    def test_since_becomes_search_term(self, controller, mailbox) -> None:
        controller.get_emails({"folder": "INBOX", "since": "2024-01-02"})

        assert mailbox.searches == [["ALL", "SENTSINCE", date(2024, 1, 2)]]

    def test_invalid_limit_is_bad_request(self, controller, mailbox) -> None:
        resp = controller.get_emails({"limit": "many"})

        assert resp.status == 400
        assert mailbox.clients == []

    def test_connection_failure_is_bad_gateway(self, controller, mailbox) -> None:
        mailbox.fail_login = True

        resp = controller.get_emails({"folder": "INBOX"})

        assert resp.status == 502
        assert "error" in resp.body()


class TestGetEmail:
    def test_requires_id_and_folder(self, controller) -> None:
        resp = controller.get_email({"folder": "INBOX"})

        assert resp.status == 400
        assert resp.body() == {"error": "Must provide the 'msgID' & 'folder' parameters to find an email"}

    def test_returns_single_message_with_headers(self, controller, mailbox) -> None:
        mailbox.add(make_header(msg_id="<one@x>"), text=b"hola", structure=multipart(b"MIXED", text_part()))

        resp = controller.get_email({"folder": "INBOX", "msgID": "<one@x>", "body": "1"})

        assert resp.data["msgID"] == "<one@x>"
        assert resp.data["body"] == "hola"
        assert resp.data["headers"]["message-id"] == ["<one@x>"]

    def test_unknown_id_yields_no_data(self, controller, mailbox) -> None:
        resp = controller.get_email({"folder": "INBOX", "msgID": "<ghost@x>"})

        assert resp.status == 200
        assert resp.data is None


class TestGetAttachment:
    def _add(self, mailbox, payload: bytes) -> None:
        mailbox.add(
            make_header(msg_id="<att@x>"),
            structure=multipart(b"MIXED", text_part(), attachment_part("report.pdf")),
            parts={"2": b64_wrapped(payload)},
        )

    def test_download_payload(self, controller, mailbox, settings) -> None:
        self._add(mailbox, b"%PDF-1.7 fake")

        resp = controller.get_attachment({"folder": "INBOX", "msgID": "<att@x>", "filename": "report.pdf"})

        assert resp.status == 200
        assert resp.data == DownloadPayload("report.pdf", "application/pdf", b"%PDF-1.7 fake")
        assert list(Path(settings.STAGING_DIR).iterdir()) == []

    def test_missing_attachment_is_not_found(self, controller, mailbox) -> None:
        self._add(mailbox, b"x")

        resp = controller.get_attachment({"folder": "INBOX", "msgID": "<att@x>", "filename": "other.pdf"})

        assert resp.status == 404

    def test_missing_parameters(self, controller) -> None:
        assert controller.get_attachment({"folder": "INBOX", "msgID": "<att@x>"}).status == 400

    def test_object_storage_variant(self, settings, sessions, sender, fetcher, mailbox) -> None:
        store = MagicMock()
        store.upload_and_sign.return_value = "https://bucket.example.com/signed"
        controller = MailController(settings, sessions=sessions, sender=sender, fetcher=fetcher, object_store=store)
        self._add(mailbox, b"data")

        resp = controller.get_attachment({"folder": "INBOX", "msgID": "<att@x>", "filename": "report.pdf"})

        assert resp.data == {"filename": "report.pdf", "url": "https://bucket.example.com/signed"}
        path, content_type = store.upload_and_sign.call_args.args
        assert path.name == "report.pdf"
        assert content_type == "application/pdf"


class TestSendEmail:
    def test_cdn_files_exist_during_send_and_are_removed_after(self, controller, sender) -> None:
        seen = []

        def send(spec):
            path = Path(spec.attachments[0].path)
            seen.append((path, path.read_bytes()))
            return "<sent@example.com>"

        sender.send.side_effect = send
        payload = {
            "from": "me@example.com",
            "to": "you@example.com",
            "subject": "Banner",
            "html": "<img src='cid:banner.png'>",
            "attachments": '[{"filename": "banner.png", "useCDN": true, "embeddedImage": true}]',
        }

        resp = controller.send_email(payload)

        assert resp.status == 200
        assert resp.data == "<sent@example.com>"
        [(path, data)] = seen
        assert data == b"cdn-bytes"
        assert not path.exists()

    def test_missing_recipient(self, controller, sender) -> None:
        resp = controller.send_email({"from": "me@example.com"})

        assert resp.status == 400
        assert resp.message == "Must provide the 'from' & 'to' parameters to send an email"
        sender.send.assert_not_called()

    def test_send_failure_is_reported(self, controller, sender) -> None:
        sender.send.side_effect = SendError("smtp down")

        resp = controller.send_email({"from": "me@example.com", "to": "you@example.com", "text": "hi"})

        assert resp.status == 502
        assert resp.body() == {"error": "smtp down"}


def test_unexpected_error_is_internal(settings, sender, fetcher) -> None:
    sessions = MagicMock()
    sessions.list_folders.side_effect = RuntimeError("boom")
    controller = MailController(settings, sessions=sessions, sender=sender, fetcher=fetcher)

    resp = controller.get_email_folders()

    assert resp.status == 500
    assert resp.body() == {"error": "Internal server error"}
