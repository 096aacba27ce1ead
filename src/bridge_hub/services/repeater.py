"""Repeater pipeline: resolve, authorize, transform, forward, relay, log.

Each call walks the states below in order and stops at the first terminal
one. Every terminal state produces exactly one client response and exactly
one request log entry.

    ResolveAlias      -> 404 when the alias is unknown or inactive
    CheckMethod       -> 405 when the verb is not allowed
    CheckAPIKey       -> 401 / 403 (only for endpoints requiring a key)
    ValidatePayload   -> 400 / 413 for unreadable bodies
    TransformPayload  -> never fails
    Forward           -> 500 when the target is unreachable
    Relay             -> upstream status and body, verbatim

The log append and the `last_used_at` touch run on the background
supervisor, after the final status is known, so neither counts toward the
recorded latency nor delays the response.
"""

from __future__ import annotations

import logging
import time
from collections.abc import Callable, Mapping
from dataclasses import dataclass, field
from typing import Any

from bridge_hub.services.background import BackgroundTaskSupervisor
from bridge_hub.services.endpoint_directory import EndpointDirectory
from bridge_hub.services.forwarder import Forwarder, ForwardingError
from bridge_hub.services.key_authorizer import AuthDecision, KeyAuthorizer
from bridge_hub.services.payload_mapper import transform_payload
from bridge_hub.services.request_log import (
    LOGGED_HEADERS,
    RequestLogEntry,
    RequestLogWriter,
)
from bridge_hub.services.store import EndpointConfig

logger = logging.getLogger(__name__)

API_KEY_HEADER = "x-api-key"

HTTP_BAD_REQUEST = 400
HTTP_UNAUTHORIZED = 401
HTTP_FORBIDDEN = 403
HTTP_NOT_FOUND = 404
HTTP_METHOD_NOT_ALLOWED = 405
HTTP_PAYLOAD_TOO_LARGE = 413
HTTP_INTERNAL_SERVER_ERROR = 500

FORWARD_FAILURE_MESSAGE = "Internal server error while forwarding to target"
UNEXPECTED_FAILURE_MESSAGE = "Internal server error"


@dataclass(frozen=True)
class InboundRequest:
    """Everything the pipeline needs to know about one call to `/r/{alias}`.

    `payload` holds the decoded JSON body, or the raw text when the body
    could not be decoded (`body_error` then says why).
    """

    alias: str
    method: str
    headers: Mapping[str, str] = field(default_factory=dict)
    payload: Any = None
    body_error: str | None = None
    body_too_large: bool = False
    client_ip: str | None = None
    subpath: str | None = None
    started_at: float = field(default_factory=time.perf_counter)

    @property
    def api_key(self) -> str | None:
        return self.headers.get(API_KEY_HEADER)

    @property
    def user_agent(self) -> str | None:
        return self.headers.get("user-agent")

    def logged_headers(self) -> dict[str, str | None]:
        return {name: self.headers.get(name) for name in LOGGED_HEADERS}

    def forwarded_headers(self) -> dict[str, str]:
        """Inbound headers passed to the target, minus the API key."""
        return {k: v for k, v in self.headers.items() if k.lower() != API_KEY_HEADER}


@dataclass(frozen=True)
class RepeaterResult:
    """Client-facing status and body, plus the log entry that was scheduled."""

    status_code: int
    content: Any
    log_entry: RequestLogEntry


@dataclass(frozen=True)
class _Outcome:
    status_code: int
    content: Any
    error_message: str | None = None
    response_body: Any = None


def failure_body(message: str, **extra: Any) -> dict[str, Any]:
    """Shape shared by every pipeline-generated error response."""
    return {"success": False, "message": message, **extra}


class RepeaterPipeline:
    """Runs one inbound request through the repeater state machine."""

    def __init__(
        self,
        directory: EndpointDirectory,
        authorizer: KeyAuthorizer,
        forwarder: Forwarder,
        log_writer: RequestLogWriter,
        supervisor: BackgroundTaskSupervisor,
        *,
        expose_errors: bool = False,
        clock: Callable[[], float] = time.perf_counter,
    ) -> None:
        self.directory = directory
        self.authorizer = authorizer
        self.forwarder = forwarder
        self.log_writer = log_writer
        self.supervisor = supervisor
        self.expose_errors = expose_errors
        self._clock = clock

    async def handle(self, request: InboundRequest) -> RepeaterResult:
        """Process `request` and schedule its log entry.

        Never raises: anything unexpected becomes a logged 500.
        """
        endpoint: EndpointConfig | None = None
        try:
            endpoint = await self.directory.resolve(request.alias)
            if endpoint is None:
                outcome = _Outcome(
                    HTTP_NOT_FOUND,
                    failure_body(f"Endpoint '{request.alias}' not found or inactive"),
                    error_message=f"Endpoint alias '{request.alias}' not found or inactive",
                )
            else:
                outcome = await self._process(request, endpoint)
        except Exception as exc:
            logger.exception("Repeater failed for alias %s", request.alias)
            outcome = self._internal_error(UNEXPECTED_FAILURE_MESSAGE, str(exc) or type(exc).__name__)

        elapsed_ms = max(0, int(round((self._clock() - request.started_at) * 1000)))
        entry = RequestLogEntry(
            endpoint_id=endpoint.id if endpoint else None,
            request_method=request.method.upper(),
            request_headers=request.logged_headers(),
            request_payload=request.payload,
            response_status=outcome.status_code,
            response_body=outcome.response_body,
            response_time_ms=elapsed_ms,
            ip_address=request.client_ip,
            user_agent=request.user_agent,
            error_message=outcome.error_message,
        )

        self.supervisor.spawn(self.log_writer.append(entry), name=f"request-log-{entry.id}")
        if endpoint is not None:
            self.supervisor.spawn(
                self.directory.touch_last_used(endpoint.id),
                name=f"touch-endpoint-{endpoint.id}",
            )

        return RepeaterResult(outcome.status_code, outcome.content, entry)

    async def _process(self, request: InboundRequest, endpoint: EndpointConfig) -> _Outcome:
        method = request.method.upper()
        if not endpoint.allows(method):
            allowed = ", ".join(endpoint.allowed_methods)
            message = f"Method {method} not allowed. Allowed: {allowed}"
            return _Outcome(HTTP_METHOD_NOT_ALLOWED, failure_body(message), error_message=message)

        if endpoint.require_api_key:
            denied = await self._check_api_key(request, endpoint)
            if denied is not None:
                return denied

        if request.body_too_large:
            message = "Request body too large"
            return _Outcome(HTTP_PAYLOAD_TOO_LARGE, failure_body(message), error_message=message)
        if request.body_error is not None:
            return _Outcome(
                HTTP_BAD_REQUEST,
                failure_body(request.body_error),
                error_message=request.body_error,
            )

        # Body errors are answered above; a bodyless call arrives as None.
        final_payload = transform_payload(request.payload or {}, endpoint.payload_mapping)

        try:
            result = await self.forwarder.forward(
                endpoint.target_url,
                final_payload,
                method=method,
                headers=request.forwarded_headers(),
                path=request.subpath,
            )
        except ForwardingError as exc:
            return self._internal_error(FORWARD_FAILURE_MESSAGE, str(exc))

        return _Outcome(result.status_code, result.body, response_body=result.body)

    async def _check_api_key(
        self, request: InboundRequest, endpoint: EndpointConfig
    ) -> _Outcome | None:
        authorization = await self.authorizer.authorize(request.api_key, endpoint)
        decision = authorization.decision
        if decision is AuthDecision.AUTHORIZED:
            return None
        if decision is AuthDecision.MISSING_KEY:
            return _Outcome(
                HTTP_UNAUTHORIZED,
                failure_body("Unauthorized: API Key required"),
                error_message="Missing API Key",
            )
        if decision is AuthDecision.SCOPE_DENIED:
            return _Outcome(
                HTTP_FORBIDDEN,
                failure_body("Forbidden: API Key not authorized for this endpoint"),
                error_message="API Key not authorized for this endpoint",
            )
        return _Outcome(
            HTTP_FORBIDDEN,
            failure_body("Forbidden: Invalid API Key"),
            error_message="Invalid API Key",
        )

    def _internal_error(self, message: str, detail: str) -> _Outcome:
        extra = {"error": detail} if self.expose_errors else {}
        return _Outcome(
            HTTP_INTERNAL_SERVER_ERROR,
            failure_body(message, **extra),
            error_message=detail,
        )
