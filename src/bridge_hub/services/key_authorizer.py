"""API key validation and per-key endpoint scoping for the repeater."""

from __future__ import annotations

import hashlib
import logging
import secrets
from dataclasses import dataclass
from enum import Enum

from bridge_hub.db.time import utcnow
from bridge_hub.services.background import BackgroundTaskSupervisor
from bridge_hub.services.store import ApiKeyRecord, EndpointConfig, Store

logger = logging.getLogger(__name__)

API_KEY_PREFIX = "sk_live_"
API_KEY_RANDOM_BYTES = 24
DISPLAY_PREFIX_LENGTH = 12


class AuthDecision(Enum):
    """Outcome of checking a presented key against an endpoint."""

    AUTHORIZED = "authorized"
    MISSING_KEY = "missing_key"
    INVALID_KEY = "invalid_key"
    SCOPE_DENIED = "scope_denied"


@dataclass(frozen=True)
class Authorization:
    """Decision plus the matched key record, when there is one."""

    decision: AuthDecision
    api_key: ApiKeyRecord | None = None

    @property
    def ok(self) -> bool:
        return self.decision is AuthDecision.AUTHORIZED


@dataclass(frozen=True)
class IssuedApiKey:
    """A freshly generated key. `raw_key` must be shown once and then discarded."""

    raw_key: str
    key_hash: str
    key_prefix: str


def hash_api_key(raw_key: str) -> str:
    """Return the SHA-256 hex digest stored in place of the secret."""
    return hashlib.sha256(raw_key.encode("utf-8")).hexdigest()


def generate_api_key() -> IssuedApiKey:
    """Create a new random key along with its hash and display prefix."""
    raw_key = f"{API_KEY_PREFIX}{secrets.token_hex(API_KEY_RANDOM_BYTES)}"
    return IssuedApiKey(
        raw_key=raw_key,
        key_hash=hash_api_key(raw_key),
        key_prefix=f"{raw_key[:DISPLAY_PREFIX_LENGTH]}...",
    )


class KeyAuthorizer:
    """Checks `x-api-key` values against stored key hashes."""

    def __init__(self, store: Store, supervisor: BackgroundTaskSupervisor) -> None:
        self._store = store
        self._supervisor = supervisor

    async def authorize(self, raw_key: str | None, endpoint: EndpointConfig) -> Authorization:
        """Validate `raw_key` for `endpoint`.

        The key must be active, unexpired, owned by the endpoint's owner and,
        if it carries a scope, scoped to this endpoint.
        """
        if raw_key is None or not raw_key.strip():
            return Authorization(AuthDecision.MISSING_KEY)

        key_hash = hash_api_key(raw_key)
        record = await self._store.get_active_api_key_by_hash(key_hash, endpoint.user_id)
        if record is None or not record.is_active or record.user_id != endpoint.user_id:
            return Authorization(AuthDecision.INVALID_KEY)

        if not record.permits(endpoint.id):
            return Authorization(AuthDecision.SCOPE_DENIED, record)

        self._supervisor.spawn(self._touch(record.id), name=f"touch-key-{record.id}")
        return Authorization(AuthDecision.AUTHORIZED, record)

    async def _touch(self, key_id: str) -> None:
        try:
            await self._store.update_key_last_used(key_id, utcnow())
        except Exception as exc:
            logger.warning("Failed to update last_used_at for API key %s: %s", key_id, exc)
