# sitecms/core/errors.py
# Taxonomía de errores del núcleo (páginas, versiones, publicación).
# Los servicios lanzan estas excepciones; la capa HTTP las traduce a status codes
# y el cliente HTTP las reconstruye a partir de la respuesta.
from __future__ import annotations


class CmsError(Exception):
    status_code: int = 400

    def __init__(self, message: str = "", **context) -> None:
        super().__init__(message or self.__class__.__name__)
        self.message = message or self.__class__.__name__
        self.context = context

    def __str__(self) -> str:
        return self.message


class NotFoundError(CmsError):
    """Page/version/tenant inexistente O de otro tenant (indistinguibles para el caller)."""

    status_code = 404


class ValidationError(CmsError):
    status_code = 422


class PayloadTooLarge(ValidationError):
    status_code = 413


class TransientStoreError(CmsError):
    """Fallo del backend de persistencia (red, conexión, timeout)."""

    status_code = 503


class ConcurrentSequenceRace(CmsError):
    """Dos appends calcularon el mismo version_number y se agotaron los reintentos."""

    status_code = 409


def error_for_status(status_code: int, message: str) -> CmsError:
    """
    Inverso de `status_code`: usado por el cliente HTTP para reconstruir
    la excepción a partir de la respuesta del API.
    """
    if status_code == 404:
        return NotFoundError(message)
    if status_code == 409:
        return ConcurrentSequenceRace(message)
    if status_code == 413:
        return PayloadTooLarge(message)
    if status_code in (400, 422):
        return ValidationError(message)
    if status_code >= 500:
        return TransientStoreError(message)
    return CmsError(message)
