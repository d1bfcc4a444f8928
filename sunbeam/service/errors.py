from __future__ import annotations

from contextlib import contextmanager
from typing import Any, Iterator, Optional

from sunbeam.storage.errors import StorageError


class ServiceError(Exception):
    """Base class for service-layer exceptions mapped to HTTP responses.

    Each exception class defines an HTTP ``status_code`` and a stable
    ``error_code``. The error handlers render them as
    ``{"done": false, "reason": error_code, "context": message}``:
    - 400 for client-input problems
    - 401 for credential mismatch
    - 404 for missing resources
    - 500 for store failures
    """

    status_code: int = 400
    error_code: str = "BadRequest"

    def __init__(
        self,
        message: str,
        *,
        status_code: Optional[int] = None,
        detail: Optional[dict] = None,
        error_code: Optional[str] = None,
    ) -> None:
        super().__init__(message)
        self.message = message
        if status_code is not None:
            self.status_code = status_code
        if error_code is not None:
            self.error_code = error_code
        self.detail = detail or {}


class InvalidFieldsError(ServiceError):
    """Request body is missing or has malformed fields (400)."""
    error_code = "InvalidFields"


class InvalidServerError(ServiceError):
    """Frostpaw-Server header is not one of the known front ends (400)."""
    error_code = "InvalidServer"


class NotAuthenticatedError(ServiceError):
    """No usable credential was presented (401)."""
    status_code = 401
    error_code = "Unauthorized"


# Identity provider exchange


class ExchangeError(ServiceError):
    """Identity provider exchange failed; ``body`` holds the raw response when known."""

    def __init__(self, message: str, *, body: Optional[str] = None, **kwargs) -> None:
        super().__init__(message, **kwargs)
        self.body = body


class BadExchangeError(ExchangeError):
    """Code-for-token exchange failed (400)."""
    error_code = "BadExchange"


class NoUserError(ExchangeError):
    """Profile lookup with the provider token failed (400)."""
    error_code = "NoUser"


# Frostpaw nonce challenge


class NonceError(ServiceError):
    """Frostpaw client challenge was rejected (400)."""


class IncompleteChallengeError(NonceError):
    error_code = "InvalidFields"


class NonceTooOldError(NonceError):
    error_code = "NonceTooOld"


class UnknownClientError(NonceError):
    error_code = "UnknownClient"


class BadSignatureError(NonceError):
    error_code = "BadSignature"

    def __init__(self, expected: str, supplied: str) -> None:
        super().__init__(
            f"claw mismatch: expected {expected}, got {supplied}",
            detail={"expected": expected, "supplied": supplied},
        )
        self.expected = expected
        self.supplied = supplied


# Registered client lookups


class ClientLookupError(ServiceError):
    """Registered client or refresh token lookup failed."""


class ClientNotFoundError(ClientLookupError):
    status_code = 404
    error_code = "NotFound"


class SecretMismatchError(ClientLookupError):
    status_code = 401
    error_code = "Unauthorized"


class RefreshTokenNotFoundError(ClientLookupError):
    status_code = 401
    error_code = "Unauthorized"


class ClientMismatchError(ClientLookupError):
    status_code = 400
    error_code = "BadRequest"


class DatabaseError(ServiceError):
    """Store failure passed through from the persistence layer (500)."""
    status_code = 500
    error_code = "DatabaseError"


@contextmanager
def database_errors(logger: Any, event: str, **fields: Any) -> Iterator[None]:
    """Log ``event`` and re-raise any StorageError as DatabaseError."""
    try:
        yield
    except StorageError as exc:
        logger.error(event, error=exc.message, **fields)
        raise DatabaseError(exc.message, detail=exc.detail) from exc


__all__ = [
    "ServiceError",
    "InvalidFieldsError",
    "InvalidServerError",
    "NotAuthenticatedError",
    "ExchangeError",
    "BadExchangeError",
    "NoUserError",
    "NonceError",
    "IncompleteChallengeError",
    "NonceTooOldError",
    "UnknownClientError",
    "BadSignatureError",
    "ClientLookupError",
    "ClientNotFoundError",
    "SecretMismatchError",
    "RefreshTokenNotFoundError",
    "ClientMismatchError",
    "DatabaseError",
    "database_errors",
]
