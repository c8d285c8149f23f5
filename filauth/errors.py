"""Error kinds surfaced by the store, the service layer and the HTTP surface.

Every failure the service reports is an :class:`AuthError` subclass. The HTTP
layer maps ``status_code`` onto the response and renders ``{"error": message}``;
the client package maps responses back onto the same classes.
"""
from typing import Dict, Type


class AuthError(Exception):
    """Base class for all service errors"""

    kind = "internal"
    status_code = 500

    def __init__(self, message: str = ""):
        super().__init__(message or self.kind)
        self.message = message or self.kind


class BadRequest(AuthError):
    """Malformed body or query, invalid address, negative duration"""

    kind = "bad-request"
    status_code = 400


class NonRegisteredToken(AuthError):
    kind = "non-registered-token"
    status_code = 401

    def __init__(self, message: str = "A non-registered token"):
        super().__init__(message)


class VerificationFailed(AuthError):
    kind = "verification-failed"
    status_code = 401

    def __init__(self, message: str = "Verification Failed"):
        super().__init__(message)


class NotFound(AuthError):
    kind = "not-found"
    status_code = 404


class Duplicate(AuthError):
    kind = "duplicate"
    status_code = 409


class PermissionDenied(AuthError):
    kind = "permission-deny"
    status_code = 403

    def __init__(self, message: str = "permission deny"):
        super().__init__(message)


class StorageError(AuthError):
    """Backend I/O or constraint failure"""

    kind = "storage"
    status_code = 500


class InternalError(AuthError):
    kind = "internal"
    status_code = 500


ERRORS_BY_STATUS: Dict[int, Type[AuthError]] = {
    400: BadRequest,
    403: PermissionDenied,
    404: NotFound,
    409: Duplicate,
}


def error_from_response(status_code: int, message: str) -> AuthError:
    """Rebuild a service error from an HTTP status and its ``error`` message"""
    if status_code == 401:
        if message == VerificationFailed().message:
            return VerificationFailed(message)
        return NonRegisteredToken(message or NonRegisteredToken().message)
    error_cls = ERRORS_BY_STATUS.get(status_code)
    if error_cls is not None:
        return error_cls(message)
    if status_code >= 500:
        return StorageError(message)
    return InternalError(message)
