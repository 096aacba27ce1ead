# tests/api/test_repeater_routes.py
"""HTTP-level tests for `/r/{alias}`."""

from fastapi import FastAPI, status
from fastapi.testclient import TestClient

from bridge_hub.api.repeater import relay_response
from bridge_hub.core.settings import settings
from bridge_hub.services.rate_limit import RATE_LIMIT_MESSAGE, InMemoryRateLimiter
from bridge_hub.services.store import ApiKeyRecord, EndpointConfig
from tests.conftest import OWNER_ID, InMemoryStore, RecordingTarget, make_endpoint, wait_until


class TestRepeaterRoute:
    def test_post_is_forwarded_and_logged(
        self,
        client: TestClient,
        store: InMemoryStore,
        target: RecordingTarget,
        sheet_endpoint: EndpointConfig,
    ) -> None:
        r = client.post("/r/my-sheet", json={"a": 1})

        assert r.status_code == status.HTTP_200_OK
        assert r.json() == {"ok": True}
        body = target.last_body()
        assert body["x"] == 1
        assert body["_method"] == "POST"
        assert body["_headers"]["content-type"] == "application/json"

        assert wait_until(lambda: len(store.logs) == 1)
        entry = store.logs[0]
        assert entry.endpoint_id == sheet_endpoint.id
        assert entry.request_payload == {"a": 1}
        assert entry.ip_address == "testclient"

    def test_forwarded_for_sets_client_ip(
        self, client: TestClient, store: InMemoryStore, sheet_endpoint: EndpointConfig
    ) -> None:
        client.post(
            "/r/my-sheet",
            json={"a": 1},
            headers={"X-Forwarded-For": "198.51.100.1, 10.0.0.1"},
        )
        assert wait_until(lambda: len(store.logs) == 1)
        assert store.logs[0].ip_address == "198.51.100.1"

    def test_get_is_rejected_without_forwarding(
        self,
        client: TestClient,
        store: InMemoryStore,
        target: RecordingTarget,
        sheet_endpoint: EndpointConfig,
    ) -> None:
        r = client.get("/r/my-sheet")
        assert r.status_code == status.HTTP_405_METHOD_NOT_ALLOWED
        assert r.json()["message"] == "Method GET not allowed. Allowed: POST"
        assert target.calls == 0
        assert wait_until(lambda: len(store.logs) == 1)

    def test_unknown_alias(self, client: TestClient, store: InMemoryStore) -> None:
        r = client.post("/r/nope", json={})
        assert r.status_code == status.HTTP_404_NOT_FOUND
        assert r.json() == {"success": False, "message": "Endpoint 'nope' not found or inactive"}
        assert wait_until(lambda: len(store.logs) == 1)
        assert store.logs[0].endpoint_id is None

    def test_invalid_json_is_400(
        self, client: TestClient, store: InMemoryStore, sheet_endpoint: EndpointConfig
    ) -> None:
        r = client.post(
            "/r/my-sheet",
            content=b"{oops",
            headers={"Content-Type": "application/json"},
        )
        assert r.status_code == status.HTTP_400_BAD_REQUEST
        assert r.json()["message"] == "Request body is not valid JSON"
        assert wait_until(lambda: len(store.logs) == 1)
        assert store.logs[0].request_payload == "{oops"

    def test_non_object_json_is_400(self, client: TestClient, sheet_endpoint: EndpointConfig) -> None:
        r = client.post("/r/my-sheet", json=[1, 2, 3])
        assert r.status_code == status.HTTP_400_BAD_REQUEST
        assert r.json()["message"] == "Request body must be a JSON object"

    def test_empty_body_is_an_empty_object(
        self, client: TestClient, target: RecordingTarget, sheet_endpoint: EndpointConfig
    ) -> None:
        r = client.post("/r/my-sheet")
        assert r.status_code == status.HTTP_200_OK
        assert set(target.last_body()) == {"_method", "_headers"}

    def test_oversized_body_is_413(
        self, client: TestClient, target: RecordingTarget, sheet_endpoint: EndpointConfig, monkeypatch
    ) -> None:
        monkeypatch.setattr(settings, "max_request_bytes", 16)
        r = client.post("/r/my-sheet", json={"a": "x" * 64})
        assert r.status_code == status.HTTP_413_REQUEST_ENTITY_TOO_LARGE
        assert target.calls == 0

    def test_subpath_is_forwarded(
        self, client: TestClient, target: RecordingTarget, sheet_endpoint: EndpointConfig
    ) -> None:
        r = client.post("/r/my-sheet/rows/7", json={"a": 1})
        assert r.status_code == status.HTTP_200_OK
        assert target.last_body()["_path"] == "rows/7"

    def test_api_key_header_is_checked_and_stripped(
        self,
        client: TestClient,
        store: InMemoryStore,
        target: RecordingTarget,
        secured_endpoint: EndpointConfig,
    ) -> None:
        store.add_key(ApiKeyRecord(id="k1", user_id=OWNER_ID), "sk_live_route")

        assert client.post("/r/secured", json={}).status_code == status.HTTP_401_UNAUTHORIZED
        r = client.post("/r/secured", json={}, headers={"x-api-key": "sk_live_route"})
        assert r.status_code == status.HTTP_200_OK
        assert "x-api-key" not in target.last_body()["_headers"]

    def test_upstream_status_is_relayed(
        self, client: TestClient, target: RecordingTarget, sheet_endpoint: EndpointConfig
    ) -> None:
        target.status_code = 422
        target.json_body = {"error": "bad row"}
        r = client.post("/r/my-sheet", json={"a": 1})
        assert r.status_code == 422
        assert r.json() == {"error": "bad row"}

    def test_non_standard_json_constants_are_rejected(
        self, client: TestClient, target: RecordingTarget, sheet_endpoint: EndpointConfig
    ) -> None:
        r = client.post(
            "/r/my-sheet",
            content=b'{"a": NaN}',
            headers={"Content-Type": "application/json"},
        )
        assert r.status_code == status.HTTP_400_BAD_REQUEST
        assert r.json()["message"] == "Request body is not valid JSON"
        assert target.calls == 0

    def test_upstream_nan_is_wrapped_as_text(
        self,
        client: TestClient,
        store: InMemoryStore,
        target: RecordingTarget,
        sheet_endpoint: EndpointConfig,
    ) -> None:
        target.text_body = "NaN"
        r = client.post("/r/my-sheet", json={"a": 1})

        assert r.status_code == status.HTTP_200_OK
        assert r.json() == {"result": "NaN", "status": "success"}
        assert wait_until(lambda: len(store.logs) == 1)
        assert store.logs[0].response_body == {"result": "NaN", "status": "success"}

    def test_no_content_upstream_is_relayed_without_body(
        self,
        client: TestClient,
        store: InMemoryStore,
        target: RecordingTarget,
        sheet_endpoint: EndpointConfig,
    ) -> None:
        target.status_code = 204
        target.text_body = ""
        r = client.post("/r/my-sheet", json={"a": 1})

        assert r.status_code == status.HTTP_204_NO_CONTENT
        assert r.content == b""
        assert wait_until(lambda: len(store.logs) == 1)
        assert store.logs[0].response_status == 204
        assert store.logs[0].response_body == {"result": "", "status": "success"}

    def test_head_gets_status_without_body(
        self, client: TestClient, store: InMemoryStore, target: RecordingTarget
    ) -> None:
        store.add_endpoint(make_endpoint(alias="status-check", allowed_methods=("HEAD",)))
        r = client.head("/r/status-check")

        assert r.status_code == status.HTTP_200_OK
        assert r.content == b""
        assert target.calls == 1


class TestRelayResponse:
    def test_bodyless_statuses_drop_content(self) -> None:
        for code in (101, 204, 304):
            r = relay_response(code, {"result": "", "status": "success"}, "POST")
            assert r.status_code == code
            assert r.body == b""

    def test_head_drops_content(self) -> None:
        assert relay_response(200, {"ok": True}, "head").body == b""

    def test_json_content_is_rendered(self) -> None:
        r = relay_response(200, {"ok": True}, "GET")
        assert r.body == b'{"ok":true}'
        assert r.media_type == "application/json"


class TestRateLimitGate:
    def test_rejected_calls_are_not_logged(
        self,
        app: FastAPI,
        client: TestClient,
        store: InMemoryStore,
        sheet_endpoint: EndpointConfig,
    ) -> None:
        app.state.rate_limiter = InMemoryRateLimiter(limit=1)

        assert client.post("/r/my-sheet", json={"a": 1}).status_code == status.HTTP_200_OK
        r = client.post("/r/my-sheet", json={"a": 1})

        assert r.status_code == status.HTTP_429_TOO_MANY_REQUESTS
        assert r.json() == {"success": False, "message": RATE_LIMIT_MESSAGE}
        assert wait_until(lambda: len(store.logs) == 1)
        assert [e.response_status for e in store.logs] == [200]


class TestShutdown:
    def test_pending_log_writes_are_drained(
        self, app: FastAPI, store: InMemoryStore, sheet_endpoint: EndpointConfig
    ) -> None:
        store.insert_delay = 0.2
        with TestClient(app, base_url="http://test") as test_client:
            r = test_client.post("/r/my-sheet", json={"a": 1})
            assert r.status_code == status.HTTP_200_OK
        assert len(store.logs) == 1
