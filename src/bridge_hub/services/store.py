"""Persistence contract consumed by the repeater, and its SQLAlchemy implementation.

The repeater never touches ORM rows directly. Lookups return immutable
records (`EndpointConfig`, `ApiKeyRecord`) so they can be cached across
sessions and shared between concurrent requests.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable, Mapping
from dataclasses import asdict, dataclass, field
from datetime import UTC, datetime
from typing import TYPE_CHECKING, Any, Protocol, TypeVar

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from bridge_hub.models import ApiKey, Endpoint, RequestLog

if TYPE_CHECKING:  # pragma: no cover - typing helper
    from bridge_hub.services.request_log import RequestLogEntry

DEFAULT_ALLOWED_METHODS: tuple[str, ...] = ("POST",)

T = TypeVar("T")


class StoreError(RuntimeError):
    """Raised when the backing store rejects or fails an operation."""


@dataclass(frozen=True)
class EndpointConfig:
    """Read-only view of an endpoint as seen by the repeater."""

    id: str
    user_id: str
    alias: str
    name: str
    target_url: str
    allowed_methods: tuple[str, ...] = DEFAULT_ALLOWED_METHODS
    payload_mapping: Mapping[str, str] = field(default_factory=dict)
    require_api_key: bool = False
    is_active: bool = True
    description: str | None = None
    last_used_at: datetime | None = None

    def allows(self, method: str) -> bool:
        """Return True if the inbound verb is on the endpoint's allow-list."""
        return method.upper() in self.allowed_methods

    def public_view(self) -> dict[str, Any]:
        """Return a JSON-friendly snapshot of the configuration."""
        data = asdict(self)
        data["allowed_methods"] = list(self.allowed_methods)
        data["payload_mapping"] = dict(self.payload_mapping)
        data["last_used_at"] = self.last_used_at.isoformat() if self.last_used_at else None
        return data


@dataclass(frozen=True)
class ApiKeyRecord:
    """Stored API key metadata (never the raw secret)."""

    id: str
    user_id: str
    is_active: bool = True
    allowed_endpoint_ids: frozenset[str] | None = None
    expires_at: datetime | None = None

    def permits(self, endpoint_id: str) -> bool:
        """Return True when the key's scope includes the endpoint.

        An unset or empty scope means every endpoint of the owner.
        """
        if not self.allowed_endpoint_ids:
            return True
        return endpoint_id in self.allowed_endpoint_ids

    def is_expired(self, now: datetime) -> bool:
        """Return True when the key carries an expiry that has passed."""
        if self.expires_at is None:
            return False
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            # SQLite drops tzinfo; every timestamp we write is UTC.
            expires_at = expires_at.replace(tzinfo=UTC)
        return expires_at <= now


class Store(Protocol):
    """Query contract the repeater relies on."""

    async def get_active_endpoint_by_alias(self, alias: str) -> EndpointConfig | None: ...

    async def get_endpoint_by_alias(self, alias: str) -> EndpointConfig | None: ...

    async def get_active_api_key_by_hash(
        self, key_hash: str, user_id: str
    ) -> ApiKeyRecord | None: ...

    async def insert_log_entry(self, entry: RequestLogEntry) -> None: ...

    async def update_endpoint_last_used(self, endpoint_id: str, when: datetime) -> None: ...

    async def update_key_last_used(self, key_id: str, when: datetime) -> None: ...


def normalize_methods(methods: Any) -> tuple[str, ...]:
    """Upper-case and de-duplicate a stored method list, defaulting to POST."""
    if not methods:
        return DEFAULT_ALLOWED_METHODS
    normalized: list[str] = []
    for method in methods:
        verb = str(method).strip().upper()
        if verb and verb not in normalized:
            normalized.append(verb)
    return tuple(normalized) or DEFAULT_ALLOWED_METHODS


def normalize_mapping(mapping: Any) -> dict[str, str]:
    """Keep only string-to-string rename entries from a stored mapping."""
    if not isinstance(mapping, Mapping):
        return {}
    return {
        str(source): target
        for source, target in mapping.items()
        if isinstance(target, str) and target
    }


def endpoint_config_from_row(row: Endpoint) -> EndpointConfig:
    """Build an `EndpointConfig` from an ORM row."""
    return EndpointConfig(
        id=row.id,
        user_id=row.user_id,
        alias=row.alias,
        name=row.name,
        target_url=row.target_url,
        allowed_methods=normalize_methods(row.allowed_methods),
        payload_mapping=normalize_mapping(row.payload_mapping),
        require_api_key=bool(row.require_api_key),
        is_active=bool(row.is_active),
        description=row.description,
        last_used_at=row.last_used_at,
    )


def api_key_record_from_row(row: ApiKey) -> ApiKeyRecord:
    """Build an `ApiKeyRecord` from an ORM row."""
    scope = row.allowed_endpoint_ids
    return ApiKeyRecord(
        id=row.id,
        user_id=row.user_id,
        is_active=bool(row.is_active),
        allowed_endpoint_ids=frozenset(str(item) for item in scope) if scope else None,
        expires_at=row.expires_at,
    )


class SqlStore:
    """`Store` backed by the synchronous SQLAlchemy session factory.

    Each call opens its own short-lived session and runs in a worker thread,
    so a slow database never blocks the event loop.
    """

    def __init__(self, session_factory: Callable[[], Session] | None = None) -> None:
        if session_factory is None:
            from bridge_hub.db.session import SessionLocal

            session_factory = SessionLocal
        self._session_factory = session_factory

    async def _run(self, operation: str, func: Callable[[Session], T]) -> T:
        def _call() -> T:
            with self._session_factory() as db:
                return func(db)

        try:
            return await asyncio.to_thread(_call)
        except SQLAlchemyError as exc:
            raise StoreError(f"{operation} failed: {exc}") from exc

    async def get_active_endpoint_by_alias(self, alias: str) -> EndpointConfig | None:
        def _query(db: Session) -> EndpointConfig | None:
            row = (
                db.query(Endpoint)
                .filter(Endpoint.alias == alias, Endpoint.is_active.is_(True))
                .first()
            )
            return endpoint_config_from_row(row) if row else None

        return await self._run("get_active_endpoint_by_alias", _query)

    async def get_endpoint_by_alias(self, alias: str) -> EndpointConfig | None:
        def _query(db: Session) -> EndpointConfig | None:
            row = db.query(Endpoint).filter(Endpoint.alias == alias).first()
            return endpoint_config_from_row(row) if row else None

        return await self._run("get_endpoint_by_alias", _query)

    async def get_active_api_key_by_hash(
        self, key_hash: str, user_id: str
    ) -> ApiKeyRecord | None:
        def _query(db: Session) -> ApiKeyRecord | None:
            row = (
                db.query(ApiKey)
                .filter(
                    ApiKey.key_hash == key_hash,
                    ApiKey.user_id == user_id,
                    ApiKey.is_active.is_(True),
                )
                .first()
            )
            if row is None:
                return None
            record = api_key_record_from_row(row)
            if record.is_expired(datetime.now(UTC)):
                return None
            return record

        return await self._run("get_active_api_key_by_hash", _query)

    async def insert_log_entry(self, entry: RequestLogEntry) -> None:
        def _insert(db: Session) -> None:
            db.add(RequestLog(**entry.as_row()))
            db.commit()

        await self._run("insert_log_entry", _insert)

    async def update_endpoint_last_used(self, endpoint_id: str, when: datetime) -> None:
        def _update(db: Session) -> None:
            db.query(Endpoint).filter(Endpoint.id == endpoint_id).update(
                {Endpoint.last_used_at: when}, synchronize_session=False
            )
            db.commit()

        await self._run("update_endpoint_last_used", _update)

    async def update_key_last_used(self, key_id: str, when: datetime) -> None:
        def _update(db: Session) -> None:
            db.query(ApiKey).filter(ApiKey.id == key_id).update(
                {ApiKey.last_used_at: when}, synchronize_session=False
            )
            db.commit()

        await self._run("update_key_last_used", _update)
