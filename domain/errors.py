# domain/errors.py
"""Errores del servicio de buzón. Cada uno lleva el código HTTP con el que se expone."""
from __future__ import annotations


class MailApiError(Exception):
    """Base de todos los errores del servicio."""

    status: int = 500

    def __init__(self, message: str, *, status: int | None = None) -> None:
        super().__init__(message)
        self.message = message
        if status is not None:
            self.status = status


class MailboxConnectionError(MailApiError):
    """No se pudo abrir la sesión IMAP (red, TLS o credenciales)."""

    status = 502


class MailboxCommandError(MailApiError):
    """Fallo de un comando dentro de la sesión (abrir carpeta, buscar, fetch)."""

    status = 502


class RequestValidationError(MailApiError):
    """Parámetros de la petición ausentes o inválidos."""

    status = 400


class NotFoundError(MailApiError):
    status = 404


class PartialParseError(MailApiError):
    """Falta un campo esperado en la cabecera de un mensaje.

    Nunca llega al cliente: se sustituye por un valor centinela y se registra.
    """

    def __init__(self, field: str, seqno: int | None = None) -> None:
        self.field = field
        self.seqno = seqno
        super().__init__(f"Cabecera sin campo '{field}' (#{seqno})")


class StagingError(MailApiError):
    """Fallo de E/S en la zona de staging."""


class AttachmentFetchError(MailApiError):
    status = 502


class SendError(MailApiError):
    status = 502


class ObjectStorageError(MailApiError):
    status = 502
