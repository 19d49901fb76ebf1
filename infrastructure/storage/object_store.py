# infrastructure/storage/object_store.py
from __future__ import annotations
import logging
import uuid
from pathlib import Path
from typing import Any

import boto3
from botocore.exceptions import BotoCoreError, ClientError

from domain.errors import ObjectStorageError

logger = logging.getLogger(__name__)


class S3AttachmentStore:
    """
    Sube un adjunto descargado a S3 y devuelve una URL firmada de lectura.
    Clave: <prefix><uuid>/<filename>, para no pisar descargas anteriores.
    """

    def __init__(self, bucket: str, *, prefix: str = "attachments/", expires_in: int = 3600, region: str | None = None, client: Any = None) -> None:
        self.bucket = bucket
        self.prefix = prefix
        self.expires_in = expires_in
        self._client = client or boto3.client("s3", region_name=region or None)

    def upload_and_sign(self, path: Path, content_type: str = "application/octet-stream") -> str:
        key = f"{self.prefix}{uuid.uuid4().hex}/{path.name}"
        logger.info("Subiendo %s a s3://%s/%s", path.name, self.bucket, key)
        try:
            self._client.upload_file(str(path), self.bucket, key, ExtraArgs={"ContentType": content_type})
            url = self._client.generate_presigned_url(
                "get_object",
                Params={"Bucket": self.bucket, "Key": key},
                ExpiresIn=self.expires_in,
            )
        except (ClientError, BotoCoreError) as exc:
            logger.error("Fallo S3 con %s: %s", path.name, exc)
            raise ObjectStorageError(f"No se pudo publicar '{path.name}' en S3: {exc}") from exc
        return url
