"""Outbound HTTP forwarding to endpoint targets.

Every forward is an HTTP POST with a JSON body, whatever verb the caller
used. The original verb and headers ride along as `_method` and `_headers`
so the target can still branch on them. Transport failures are never retried.
"""

from __future__ import annotations

import asyncio
import json
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from typing import Any

import httpx

from bridge_hub.core.settings import settings

logger = logging.getLogger(__name__)

HTTP_SUCCESS_MIN = 200
HTTP_SUCCESS_MAX = 299


class ForwardingError(RuntimeError):
    """Raised when the target could not be reached or its reply could not be read."""


@dataclass(frozen=True)
class ForwardResult:
    """Normalized upstream reply."""

    status_code: int
    body: Any
    text: str

    @property
    def ok(self) -> bool:
        return HTTP_SUCCESS_MIN <= self.status_code <= HTTP_SUCCESS_MAX


def build_forward_body(
    payload: Mapping[str, Any],
    *,
    method: str,
    headers: Mapping[str, str],
    path: str | None = None,
) -> dict[str, Any]:
    """Merge the transformed payload with the caller's request metadata."""
    body: dict[str, Any] = {**payload, "_method": method.upper(), "_headers": dict(headers)}
    if path:
        body["_path"] = path
    return body


def _reject_constant(name: str) -> Any:
    raise ValueError(f"Non-standard JSON constant: {name}")


def loads_strict(text: str | bytes) -> Any:
    """`json.loads` that rejects `NaN`, `Infinity` and `-Infinity`."""
    return json.loads(text, parse_constant=_reject_constant)


def parse_response_text(text: str, status_code: int) -> Any:
    """Decode a JSON reply, wrapping anything else as `{result, status}`."""
    try:
        return loads_strict(text)
    except ValueError:
        ok = HTTP_SUCCESS_MIN <= status_code <= HTTP_SUCCESS_MAX
        return {"result": text, "status": "success" if ok else "error"}


def describe_transport_error(exc: Exception) -> str:
    """Return a short, log-friendly description of a transport failure."""
    detail = str(exc).strip()
    name = type(exc).__name__
    return f"{name}: {detail}" if detail else name


class Forwarder:
    """Thin wrapper over a shared `httpx.AsyncClient`."""

    def __init__(
        self,
        *,
        timeout_seconds: float | None = None,
        max_response_bytes: int | None = None,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self.timeout_seconds = (
            settings.forward_timeout_seconds if timeout_seconds is None else timeout_seconds
        )
        self.max_response_bytes = (
            settings.max_response_bytes if max_response_bytes is None else max_response_bytes
        )
        self._transport = transport
        self._client: httpx.AsyncClient | None = None
        self._client_lock = asyncio.Lock()

    async def _ensure_client(self) -> httpx.AsyncClient:
        async with self._client_lock:
            if self._client is None:
                self._client = httpx.AsyncClient(
                    timeout=httpx.Timeout(self.timeout_seconds),
                    transport=self._transport,
                    follow_redirects=True,
                )
        return self._client

    async def forward(
        self,
        target_url: str,
        payload: Mapping[str, Any],
        *,
        method: str,
        headers: Mapping[str, str],
        path: str | None = None,
    ) -> ForwardResult:
        """POST `payload` plus caller metadata to `target_url`.

        Raises:
            ForwardingError: On DNS, TLS, connect, timeout or protocol failure,
                or when the reply exceeds `max_response_bytes`
        """
        client = await self._ensure_client()
        body = build_forward_body(payload, method=method, headers=headers, path=path)

        try:
            async with client.stream(
                "POST",
                target_url,
                json=body,
                headers={"Content-Type": "application/json"},
            ) as response:
                raw = bytearray()
                async for chunk in response.aiter_bytes():
                    raw.extend(chunk)
                    if len(raw) > self.max_response_bytes:
                        raise ForwardingError(
                            f"Target response exceeded {self.max_response_bytes} bytes"
                        )
                encoding = response.encoding or "utf-8"
                status_code = response.status_code
        except (httpx.HTTPError, httpx.InvalidURL) as exc:
            description = describe_transport_error(exc)
            logger.warning("Forward to %s failed: %s", target_url, description)
            raise ForwardingError(description) from exc

        text = bytes(raw).decode(encoding, errors="replace")
        return ForwardResult(
            status_code=status_code,
            body=parse_response_text(text, status_code),
            text=text,
        )

    async def close(self) -> None:
        """Close the underlying HTTP client."""
        if self._client is not None:
            await self._client.aclose()
            self._client = None
