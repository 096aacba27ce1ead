"""Field-rename transform applied to inbound payloads before forwarding."""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def transform_payload(payload: Mapping[str, Any], mapping: Mapping[str, str]) -> dict[str, Any]:
    """Rename payload keys according to `mapping`, passing unmapped keys through.

    Keys are visited in the payload's own order, so when two source keys map to
    the same target the later one wins. No key is ever dropped or invented.

    Args:
        payload: Inbound JSON object
        mapping: Source field name -> target field name

    Returns:
        A new dict; equal to `payload` when `mapping` is empty
    """
    if not mapping:
        return dict(payload)

    result: dict[str, Any] = {}
    for key, value in payload.items():
        result[mapping.get(key, key)] = value
    return result
