# infrastructure/email/graph_client.py
from __future__ import annotations
import base64
import logging
import mimetypes
from email.utils import getaddresses, parseaddr
from typing import Any, Dict, List, Optional
import requests
import msal
import time

from domain.errors import SendError
from domain.models import SendAttachment, SendSpec
from infrastructure.email.smtp_client import read_attachment

logger = logging.getLogger(__name__)


def _recipients(value: str | None) -> List[Dict[str, Any]]:
    out = []
    for name, addr in getaddresses([value or ""]):
        if not addr:
            continue
        email_address: Dict[str, str] = {"address": addr}
        if name:
            email_address["name"] = name
        out.append({"emailAddress": email_address})
    return out


def _file_attachment(att: SendAttachment) -> Dict[str, Any]:
    if att.content is not None:
        content_b64 = att.content
    else:
        content_b64 = base64.b64encode(read_attachment(att)).decode("ascii")
    ctype, _ = mimetypes.guess_type(att.filename)
    item: Dict[str, Any] = {
        "@odata.type": "#microsoft.graph.fileAttachment",
        "name": att.filename,
        "contentType": ctype or "application/octet-stream",
        "contentBytes": content_b64,
    }
    if att.cid:
        item["isInline"] = True
        item["contentId"] = att.cid
    return item


class GraphMailClient:
    """Canal de envío por Microsoft Graph (credenciales de aplicación)."""

    def __init__(
        self,
        *,
        tenant_id: str,
        client_id: str,
        client_secret: str,
        user_id: str,
        base: str = "https://graph.microsoft.com/v1.0"
    ) -> None:
        self.tenant_id = tenant_id
        self.client_id = client_id
        self.client_secret = client_secret
        self.user_id = user_id
        self.base = base.rstrip("/")
        self._token: Optional[str] = None
        self._token_expires_at: float = 0.0

    # ───────── auth ─────────
    def _acquire_token(self) -> str:
        """
        Obtiene un access_token de MSAL y controla la caducidad.
        Reutiliza el token si le queda más de 60 s de vida.
        """
        now = time.time()
        if self._token and (self._token_expires_at - 60) > now:
            return self._token

        app = msal.ConfidentialClientApplication(
            client_id=self.client_id,
            client_credential=self.client_secret,
            authority=f"https://login.microsoftonline.com/{self.tenant_id}",
        )
        result = app.acquire_token_for_client(scopes=["https://graph.microsoft.com/.default"])
        if "access_token" not in result:
            raise SendError(f"MSAL token error: {result.get('error_description') or result.get('error')}")

        self._token = result["access_token"]
        self._token_expires_at = now + float(result.get("expires_in", 3600))
        return self._token

    def _headers(self) -> Dict[str, str]:
        return {"Authorization": f"Bearer {self._acquire_token()}", "Content-Type": "application/json"}

    # ───────── HTTP helpers ─────────
    def _post(self, url: str, json: Dict[str, Any] | None = None) -> requests.Response:
        r = requests.post(url, headers=self._headers(), json=json, timeout=30)
        if r.status_code == 401:
            # Token caducado → forzamos refresh y reintentamos UNA vez
            self._token = None
            self._token_expires_at = 0.0
            r = requests.post(url, headers=self._headers(), json=json, timeout=30)
        r.raise_for_status()
        return r

    def build_message(self, spec: SendSpec) -> Dict[str, Any]:
        name, addr = parseaddr(spec.sender)
        sender: Dict[str, str] = {"address": addr}
        if name:
            sender["name"] = name
        msg: Dict[str, Any] = {
            "subject": spec.subject,
            "from": {"emailAddress": sender},
            "body": (
                {"contentType": "HTML", "content": spec.html}
                if spec.html else {"contentType": "Text", "content": spec.text or ""}
            ),
            "toRecipients": _recipients(spec.to),
            "attachments": [_file_attachment(a) for a in spec.attachments],
        }
        if spec.cc:
            msg["ccRecipients"] = _recipients(spec.cc)
        if spec.bcc:
            msg["bccRecipients"] = _recipients(spec.bcc)
        return msg

    # ───────── enviar (borrador + send, para conocer el internetMessageId) ─────────
    def send(self, spec: SendSpec) -> str:
        base = f"{self.base}/users/{self.user_id}/messages"
        try:
            draft = self._post(base, json=self.build_message(spec)).json()
            self._post(f"{base}/{draft['id']}/send")
        except (requests.RequestException, KeyError, ValueError) as exc:
            raise SendError(f"Graph no pudo enviar el correo a {spec.to}: {exc}") from exc
        message_id = draft.get("internetMessageId") or draft["id"]
        logger.info("Email enviado (Graph) a %s (Message-ID: %s)", spec.to, message_id)
        return message_id
