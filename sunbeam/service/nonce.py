from __future__ import annotations

import hashlib
import hmac
import time
from typing import Optional, Protocol

from sunbeam.logging import get_logger
from sunbeam.service.errors import (
    BadSignatureError,
    IncompleteChallengeError,
    NonceTooOldError,
    UnknownClientError,
    database_errors,
)
from sunbeam.storage.models import RegisteredClient

logger = get_logger(__name__)

# Accepted age of an unseathe time, in seconds (closed interval)
MIN_NONCE_AGE = 5
MAX_NONCE_AGE = 75


class ClientDirectory(Protocol):
    def get_client(self, client_id: str) -> Optional[RegisteredClient]: ...


def compute_claw(secret: str, unseathe_time: int) -> str:
    """HMAC-SHA512 of the decimal unseathe time, keyed by the client secret."""
    return hmac.new(
        secret.encode(), str(unseathe_time).encode(), hashlib.sha512
    ).hexdigest()


class NonceVerifier:
    """Checks the blood/claw/unseathe-time challenge sent by Frostpaw clients."""

    def __init__(self, clients: ClientDirectory) -> None:
        self.clients = clients

    def verify(
        self,
        client_id: Optional[str],
        claw: Optional[str],
        unseathe_time: Optional[int],
        now: Optional[int] = None,
    ) -> RegisteredClient:
        if not client_id or not claw or unseathe_time is None:
            raise IncompleteChallengeError(
                "frostpaw login requires frostpaw_blood, frostpaw_claw and "
                "frostpaw_claw_unseathe_time"
            )

        current = int(time.time()) if now is None else now
        elapsed = current - unseathe_time
        if not MIN_NONCE_AGE <= elapsed <= MAX_NONCE_AGE:
            logger.warning("frostpaw_nonce_stale", client_id=client_id, elapsed=elapsed)
            raise NonceTooOldError(
                f"unseathe time is {elapsed}s old; must be between "
                f"{MIN_NONCE_AGE} and {MAX_NONCE_AGE} seconds"
            )

        with database_errors(logger, "frostpaw_client_lookup_failed", client_id=client_id):
            client = self.clients.get_client(client_id)
        if client is None:
            raise UnknownClientError(f"unknown frostpaw client {client_id}")

        expected = compute_claw(client.secret, unseathe_time)
        if claw != expected:
            logger.warning("frostpaw_bad_signature", client_id=client_id)
            raise BadSignatureError(expected, claw)
        return client
