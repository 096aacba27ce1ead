# tests/conftest.py
from __future__ import annotations

import asyncio
import json
import os
import time
import uuid
from collections.abc import Callable, Iterator
from dataclasses import replace
from datetime import datetime
from typing import Any

import httpx
import pytest
from fastapi import FastAPI
from fastapi.testclient import TestClient
from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker

os.environ.setdefault("DATABASE_URL", "sqlite://")
os.environ.setdefault("AUTO_CREATE_TABLES", "false")
os.environ.setdefault("REPEATER_RATE_LIMIT_PER_MINUTE", "0")
os.environ.setdefault("ENDPOINT_INFO_ENABLED", "false")

from bridge_hub.db.session import Base
from bridge_hub.main import create_app
from bridge_hub.services.background import BackgroundTaskSupervisor
from bridge_hub.services.endpoint_directory import AliasCache, EndpointDirectory
from bridge_hub.services.forwarder import Forwarder
from bridge_hub.services.key_authorizer import KeyAuthorizer, hash_api_key
from bridge_hub.services.repeater import RepeaterPipeline
from bridge_hub.services.request_log import RequestLogEntry, RequestLogWriter
from bridge_hub.services.store import ApiKeyRecord, EndpointConfig, StoreError

OWNER_ID = "user-1"
OTHER_OWNER_ID = "user-2"
TARGET_URL = "https://script.example.com/macros/s/abc/exec"


class InMemoryStore:
    """Store double holding endpoints, keys and log rows in plain containers."""

    def __init__(self) -> None:
        self.endpoints: dict[str, EndpointConfig] = {}
        self.keys: dict[str, tuple[ApiKeyRecord, str]] = {}
        self.logs: list[RequestLogEntry] = []
        self.endpoint_touches: list[str] = []
        self.key_touches: list[str] = []
        self.alias_lookups = 0
        self.fail_inserts = False
        self.fail_touches = False
        self.insert_delay = 0.0

    def add_endpoint(self, endpoint: EndpointConfig) -> EndpointConfig:
        self.endpoints[endpoint.id] = endpoint
        return endpoint

    def add_key(self, record: ApiKeyRecord, raw_key: str) -> ApiKeyRecord:
        self.keys[record.id] = (record, hash_api_key(raw_key))
        return record

    async def get_active_endpoint_by_alias(self, alias: str) -> EndpointConfig | None:
        self.alias_lookups += 1
        endpoint = await self.get_endpoint_by_alias(alias)
        return endpoint if endpoint and endpoint.is_active else None

    async def get_endpoint_by_alias(self, alias: str) -> EndpointConfig | None:
        for endpoint in self.endpoints.values():
            if endpoint.alias == alias:
                return endpoint
        return None

    async def get_active_api_key_by_hash(self, key_hash: str, user_id: str) -> ApiKeyRecord | None:
        from bridge_hub.db.time import utcnow

        for record, stored_hash in self.keys.values():
            if (
                stored_hash == key_hash
                and record.user_id == user_id
                and record.is_active
                and not record.is_expired(utcnow())
            ):
                return record
        return None

    async def insert_log_entry(self, entry: RequestLogEntry) -> None:
        if self.insert_delay:
            await asyncio.sleep(self.insert_delay)
        if self.fail_inserts:
            raise StoreError("insert_log_entry failed: database is locked")
        self.logs.append(entry)

    async def update_endpoint_last_used(self, endpoint_id: str, when: datetime) -> None:
        if self.fail_touches:
            raise StoreError("update_endpoint_last_used failed")
        self.endpoint_touches.append(endpoint_id)
        endpoint = self.endpoints.get(endpoint_id)
        if endpoint is not None:
            self.endpoints[endpoint_id] = replace(endpoint, last_used_at=when)

    async def update_key_last_used(self, key_id: str, when: datetime) -> None:
        if self.fail_touches:
            raise StoreError("update_key_last_used failed")
        self.key_touches.append(key_id)


class RecordingTarget:
    """`httpx.MockTransport` handler that records forwarded calls."""

    def __init__(self) -> None:
        self.requests: list[httpx.Request] = []
        self.status_code = 200
        self.json_body: Any = {"ok": True}
        self.text_body: str | None = None
        self.error: Exception | None = None

    def __call__(self, request: httpx.Request) -> httpx.Response:
        self.requests.append(request)
        if self.error is not None:
            raise self.error
        if self.text_body is not None:
            return httpx.Response(self.status_code, text=self.text_body)
        return httpx.Response(self.status_code, json=self.json_body)

    @property
    def calls(self) -> int:
        return len(self.requests)

    def last_body(self) -> dict[str, Any]:
        return json.loads(self.requests[-1].content)


def make_endpoint(**overrides: Any) -> EndpointConfig:
    """Build an `EndpointConfig` with sensible defaults."""
    values: dict[str, Any] = {
        "id": str(uuid.uuid4()),
        "user_id": OWNER_ID,
        "alias": "my-sheet",
        "name": "My Sheet",
        "target_url": TARGET_URL,
        "allowed_methods": ("POST",),
        "payload_mapping": {},
        "require_api_key": False,
        "is_active": True,
    }
    values.update(overrides)
    return EndpointConfig(**values)


def wait_until(predicate: Callable[[], bool], timeout: float = 2.0) -> bool:
    """Poll `predicate` until it holds; used for work finishing on the app's loop."""
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        if predicate():
            return True
        time.sleep(0.01)
    return predicate()


@pytest.fixture()
def store() -> InMemoryStore:
    return InMemoryStore()


@pytest.fixture()
def target() -> RecordingTarget:
    return RecordingTarget()


@pytest.fixture()
def supervisor() -> BackgroundTaskSupervisor:
    return BackgroundTaskSupervisor()


@pytest.fixture()
def forwarder(target: RecordingTarget) -> Forwarder:
    return Forwarder(timeout_seconds=5.0, transport=httpx.MockTransport(target))


@pytest.fixture()
def pipeline(
    store: InMemoryStore,
    supervisor: BackgroundTaskSupervisor,
    forwarder: Forwarder,
) -> RepeaterPipeline:
    """Pipeline wired to the in-memory store with caching disabled."""
    return RepeaterPipeline(
        EndpointDirectory(store, AliasCache(ttl_seconds=0)),
        KeyAuthorizer(store, supervisor),
        forwarder,
        RequestLogWriter(store),
        supervisor,
    )


@pytest.fixture()
def sheet_endpoint(store: InMemoryStore) -> EndpointConfig:
    """The `my-sheet` alias: POST only, `a` renamed to `x`, no key required."""
    return store.add_endpoint(make_endpoint(payload_mapping={"a": "x"}))


@pytest.fixture()
def secured_endpoint(store: InMemoryStore) -> EndpointConfig:
    return store.add_endpoint(
        make_endpoint(alias="secured", name="Secured", require_api_key=True)
    )


@pytest.fixture()
def app(store: InMemoryStore, target: RecordingTarget) -> FastAPI:
    return create_app(store=store, forward_transport=httpx.MockTransport(target))


@pytest.fixture()
def client(app: FastAPI) -> Iterator[TestClient]:
    with TestClient(app, base_url="http://test") as test_client:
        yield test_client


@pytest.fixture()
def sql_engine(tmp_path) -> Iterator[Engine]:
    """File-backed SQLite engine; the SQL store uses worker threads."""
    engine = create_engine(
        f"sqlite:///{tmp_path / 'bridge_hub_test.db'}",
        connect_args={"check_same_thread": False},
    )
    Base.metadata.create_all(bind=engine)
    try:
        yield engine
    finally:
        Base.metadata.drop_all(bind=engine)
        engine.dispose()


@pytest.fixture()
def session_factory(sql_engine: Engine) -> sessionmaker[Session]:
    return sessionmaker(bind=sql_engine, autocommit=False, autoflush=False, expire_on_commit=False)


@pytest.fixture()
def db_session(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    session = session_factory()
    try:
        yield session
    finally:
        session.close()
