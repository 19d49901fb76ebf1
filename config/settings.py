# config/settings.py
from __future__ import annotations
from dataclasses import dataclass
from pathlib import Path
import os
from dotenv import load_dotenv

load_dotenv()

@dataclass(frozen=True)
class Settings:
    # IMAP (buzón de lectura)
    IMAP_HOST: str = os.getenv("IMAP_HOST", "imap.gmail.com")
    IMAP_PORT: int = int(os.getenv("IMAP_PORT", 993))
    IMAP_USERNAME: str = os.getenv("IMAP_USERNAME", os.getenv("EMAIL_USER", ""))
    IMAP_PASSWORD: str = os.getenv("IMAP_PASSWORD", os.getenv("EMAIL_PWD", ""))
    IMAP_SSL: bool = os.getenv("IMAP_SSL", "true").lower() == "true"
    IMAP_TIMEOUT: float = float(os.getenv("IMAP_TIMEOUT", 60))
    IMAP_FOLDER_INBOX: str = os.getenv("IMAP_FOLDER_INBOX", "INBOX")

    # Envío
    SEND_PROVIDER: str = os.getenv("SEND_PROVIDER", "smtp").lower()  # smtp | graph

    # SMTP (si vacío, se reutilizan las credenciales IMAP)
    SMTP_HOST: str = os.getenv("SMTP_HOST", "smtp.gmail.com")
    SMTP_PORT: int = int(os.getenv("SMTP_PORT", 465))
    SMTP_USERNAME: str = os.getenv("SMTP_USERNAME", "")
    SMTP_PASSWORD: str = os.getenv("SMTP_PASSWORD", "")
    SMTP_SSL: bool = os.getenv("SMTP_SSL", "true").lower() == "true"
    SMTP_TIMEOUT: float = float(os.getenv("SMTP_TIMEOUT", 30))

    # GRAPH
    GRAPH_TENANT_ID: str = os.getenv("GRAPH_TENANT_ID", "")
    GRAPH_CLIENT_ID: str = os.getenv("GRAPH_CLIENT_ID", "")
    GRAPH_CLIENT_SECRET: str = os.getenv("GRAPH_CLIENT_SECRET", "")
    GRAPH_USER_ID: str = os.getenv("GRAPH_USER_ID", "")
    GRAPH_BASE: str = os.getenv("GRAPH_BASE", "https://graph.microsoft.com/v1.0")

    # Adjuntos: CDN de imágenes y zona de staging
    IMG_CDN: str = os.getenv("IMG_CDN", "")
    CDN_TIMEOUT: int = int(os.getenv("CDN_TIMEOUT", 30))
    STAGING_DIR: str = os.getenv("STAGING_DIR", "target")
    FETCH_CHUNK_SIZE: int = int(os.getenv("FETCH_CHUNK_SIZE", 64 * 1024))

    # Entrega de adjuntos descargados
    ATTACHMENT_DELIVERY: str = os.getenv("ATTACHMENT_DELIVERY", "download").lower()  # download | s3
    S3_BUCKET: str = os.getenv("S3_BUCKET", "")
    S3_PREFIX: str = os.getenv("S3_PREFIX", "attachments/")
    S3_URL_EXPIRES: int = int(os.getenv("S3_URL_EXPIRES", 3600))
    AWS_REGION: str = os.getenv("AWS_REGION", "")

    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO").upper()

    # ───────── helpers ─────────
    def smtp_credentials(self) -> tuple[str, str]:
        user = self.SMTP_USERNAME or self.IMAP_USERNAME
        password = self.SMTP_PASSWORD or self.IMAP_PASSWORD
        return user, password

    def staging_path(self) -> Path:
        return Path(self.STAGING_DIR).resolve()

    def uses_object_storage(self) -> bool:
        return self.ATTACHMENT_DELIVERY == "s3" and bool(self.S3_BUCKET)

    def cdn_base(self) -> str:
        return (self.IMG_CDN or "").rstrip("/")
