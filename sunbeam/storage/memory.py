from __future__ import annotations

import threading
from datetime import datetime
from typing import Dict, Optional, Tuple

from sunbeam.logging import get_logger
from sunbeam.storage.errors import StorageError
from sunbeam.storage.models import (
    RefreshRecord,
    RegisteredClient,
    User,
    UserProfile,
    new_api_token,
    new_refresh_token,
)


class MemoryStore:
    """In-memory backing store for tests and local development."""

    def __init__(self) -> None:
        self.logger = get_logger(__name__)
        self.users: Dict[int, User] = {}
        self.clients: Dict[str, RegisteredClient] = {}
        self.refresh_tokens: Dict[str, RefreshRecord] = {}
        # (client_id, user_id) -> refresh token
        self._refresh_index: Dict[Tuple[str, int], str] = {}
        # RLock so helpers can nest acquisitions
        self._data_lock = threading.RLock()

    def upsert_user(self, profile: UserProfile) -> User:
        with self._data_lock:
            user = self.users.get(profile.id)
            if user is None:
                user = User(
                    id=profile.id,
                    username=profile.username,
                    disc=profile.disc,
                    avatar=profile.avatar,
                    bot=profile.bot,
                    api_token=new_api_token(),
                )
                self.users[user.id] = user
                self.logger.info("user_created", user_id=user.id)
                return user
            user.username = profile.username
            user.disc = profile.disc
            user.avatar = profile.avatar
            user.bot = profile.bot
            return user

    def get_user(self, user_id: int) -> Optional[User]:
        with self._data_lock:
            return self.users.get(user_id)

    def create_client(
        self,
        client_id: str,
        name: str,
        secret: str,
        owner_id: int,
        *,
        domain: Optional[str] = None,
        privacy_policy: Optional[str] = None,
        verified: bool = False,
    ) -> RegisteredClient:
        with self._data_lock:
            if client_id in self.clients:
                raise StorageError("client already exists", {"client_id": client_id})
            client = RegisteredClient(
                client_id=client_id,
                name=name,
                secret=secret,
                owner_id=owner_id,
                domain=domain,
                privacy_policy=privacy_policy,
                verified=verified,
            )
            self.clients[client_id] = client
            return client

    def get_client(self, client_id: str) -> Optional[RegisteredClient]:
        with self._data_lock:
            return self.clients.get(client_id)

    def get_or_create_refresh_token(self, client_id: str, user_id: int) -> RefreshRecord:
        with self._data_lock:
            existing = self._refresh_index.get((client_id, user_id))
            if existing is not None:
                return self.refresh_tokens[existing]
            record = RefreshRecord(
                refresh_token=new_refresh_token(),
                client_id=client_id,
                user_id=user_id,
                created_at=datetime.utcnow(),
            )
            self.refresh_tokens[record.refresh_token] = record
            self._refresh_index[(client_id, user_id)] = record.refresh_token
            return record

    def get_refresh_record(self, refresh_token: str) -> Optional[RefreshRecord]:
        with self._data_lock:
            return self.refresh_tokens.get(refresh_token)

    def close(self) -> None:
        return None
