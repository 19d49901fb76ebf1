# main.py
# Punto de entrada: CLI sobre las operaciones del API de buzón (carpetas, correos, adjuntos, envío)
from __future__ import annotations
import argparse
import json
import logging
import sys
from pathlib import Path

from config.settings import Settings
from domain.models import DownloadPayload
from interface_adapters.controllers.mail_controller import ApiResponse, MailController

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="mailbox-api", description="Consulta y envío de correo sobre IMAP/SMTP")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("folders", help="Lista las carpetas del buzón")

    emails = sub.add_parser("emails", help="Busca correos en una carpeta")
    emails.add_argument("--folder", default="")
    emails.add_argument("--since", default="")
    emails.add_argument("--limit", default="")
    emails.add_argument("--msg-id", default="")
    emails.add_argument("--reverse", action="store_true")
    emails.add_argument("--body", action="store_true")
    emails.add_argument("--header", action="store_true")

    email = sub.add_parser("email", help="Recupera un correo por Message-ID")
    email.add_argument("--folder", required=True)
    email.add_argument("--msg-id", required=True)
    email.add_argument("--body", action="store_true")

    att = sub.add_parser("attachment", help="Descarga un adjunto")
    att.add_argument("--folder", required=True)
    att.add_argument("--msg-id", required=True)
    att.add_argument("--filename", required=True)
    att.add_argument("--out-dir", default=".")

    send = sub.add_parser("send", help="Envía un correo; el cuerpo es un JSON con from/to/subject/html|text/attachments")
    send.add_argument("payload", help="Ruta al JSON o '-' para stdin")
    return parser


def _flags(args: argparse.Namespace, *names: str) -> dict[str, str]:
    return {name: "1" for name in names if getattr(args, name, False)}


def dispatch(controller: MailController, args: argparse.Namespace) -> ApiResponse:
    if args.command == "folders":
        return controller.get_email_folders({})
    if args.command == "emails":
        params = {"folder": args.folder, "since": args.since, "limit": args.limit, "msgID": args.msg_id}
        params.update(_flags(args, "reverse", "body", "header"))
        return controller.get_emails(params)
    if args.command == "email":
        params = {"folder": args.folder, "msgID": args.msg_id}
        params.update(_flags(args, "body"))
        return controller.get_email(params)
    if args.command == "attachment":
        return controller.get_attachment({"folder": args.folder, "msgID": args.msg_id, "filename": args.filename})
    raw = sys.stdin.read() if args.payload == "-" else Path(args.payload).read_text(encoding="utf-8")
    return controller.send_email(json.loads(raw))


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    settings = Settings()
    logging.basicConfig(
        level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
        format="%(asctime)s [%(levelname)s] %(message)s",
    )
    logger.info("=== Mailbox API === IMAP host=%s envío=%s", settings.IMAP_HOST, settings.SEND_PROVIDER)

    resp = dispatch(MailController(settings=settings), args)
    if resp.ok and isinstance(resp.data, DownloadPayload):
        out = Path(args.out_dir) / Path(resp.data.filename).name
        out.write_bytes(resp.data.data)
        print(json.dumps({"message": resp.message, "data": {"path": str(out), "contentType": resp.data.content_type}}))
    else:
        print(json.dumps(resp.body(), ensure_ascii=False, indent=2))
    return 0 if resp.ok else 1


if __name__ == "__main__":
    sys.exit(main())
