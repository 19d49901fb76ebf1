# infrastructure/email/bodystructure.py
# BODYSTRUCTURE (imapclient BodyData) -> árbol BodyPart con identificadores de parte IMAP
from __future__ import annotations
import re
from email.utils import collapse_rfc2231_value, decode_rfc2231
from typing import Any
from urllib.parse import unquote

from pyzmail.parse import decode_mail_header

from domain.models import BodyPart

# name*  |  name*0  |  name*0*   (RFC 2231: codificado y/o continuaciones)
_RFC2231_RE = re.compile(r"^(?P<base>[^*]+)\*(?:(?P<num>\d+)(?P<enc>\*)?)?$")


def _text(value: Any) -> str:
    if value is None:
        return ""
    if isinstance(value, bytes):
        return value.decode("utf-8", errors="replace")
    return str(value)


def _rfc2231(segments: list[tuple[int, bool, str]]) -> str:
    """Une las continuaciones en orden y decodifica con el charset del primer trozo."""
    charset = language = None
    text = []
    for i, (_, encoded, value) in enumerate(segments):
        if encoded:
            if i == 0:
                charset, language, value = decode_rfc2231(value)
            value = unquote(value, encoding="latin-1")
        text.append(value)
    joined = "".join(text)
    if charset:
        return collapse_rfc2231_value((charset, language, joined))
    return collapse_rfc2231_value(joined)


def _params(raw: Any) -> dict[str, str]:
    """(b"NAME", b"x.pdf", b"CHARSET", b"utf-8") -> {"name": "x.pdf", "charset": "utf-8"}"""
    if not raw or not isinstance(raw, (tuple, list)):
        return {}
    items = list(raw)
    out: dict[str, str] = {}
    extended: dict[str, list[tuple[int, bool, str]]] = {}
    for key, value in zip(items[0::2], items[1::2]):
        name, text = _text(key).lower(), _text(value)
        m = _RFC2231_RE.match(name)
        if m is None:
            out[name] = decode_mail_header(text)
            continue
        encoded = m.group("num") is None or bool(m.group("enc"))
        extended.setdefault(m.group("base"), []).append((int(m.group("num") or 0), encoded, text))
    # la forma extendida prevalece sobre la simple
    for name, segments in extended.items():
        out[name] = _rfc2231(sorted(segments))
    return out


def _disposition(raw: Any) -> tuple[str | None, dict[str, str]]:
    if not raw or not isinstance(raw, (tuple, list)):
        return None, {}
    kind = _text(raw[0]).lower() or None
    return kind, _params(raw[1] if len(raw) > 1 else None)


def _size(value: Any) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return 0


def _disposition_index(type_: str, subtype: str) -> int:
    # Campos extendidos de una parte simple (RFC 3501 §7.4.2):
    #   texto:          ... size lines md5 disposition
    #   message/rfc822: ... size envelope body lines md5 disposition
    #   resto:          ... size md5 disposition
    if type_ == "text":
        return 9
    if type_ == "message" and subtype == "rfc822":
        return 11
    return 8


def parse_bodystructure(data: Any, part_id: str = "") -> BodyPart:
    """
    Normaliza la estructura MIME. La raíz multipart no tiene identificador propio;
    sus hijos son "1", "2", ... y los nietos "2.1", "2.2", ...
    Un mensaje no multipart es una única parte "1".
    """
    if data and isinstance(data[0], list):
        subtype = _text(data[1]).lower() if len(data) > 1 else "mixed"
        params = _params(data[2]) if len(data) > 2 else {}
        disp, disp_params = _disposition(data[3]) if len(data) > 3 else (None, {})
        children = [
            parse_bodystructure(child, f"{part_id}.{i}" if part_id else str(i))
            for i, child in enumerate(data[0], start=1)
        ]
        return BodyPart(
            part_id=part_id,
            type="multipart",
            subtype=subtype,
            params=params,
            disposition=disp,
            disposition_params=disp_params,
            children=children,
        )

    type_ = _text(data[0]).lower()
    subtype = _text(data[1]).lower()
    idx = _disposition_index(type_, subtype)
    disp, disp_params = _disposition(data[idx]) if len(data) > idx else (None, {})
    return BodyPart(
        part_id=part_id or "1",
        type=type_,
        subtype=subtype,
        params=_params(data[2]) if len(data) > 2 else {},
        encoding=_text(data[5]) if len(data) > 5 else "",
        size=_size(data[6]) if len(data) > 6 else 0,
        disposition=disp,
        disposition_params=disp_params,
    )
