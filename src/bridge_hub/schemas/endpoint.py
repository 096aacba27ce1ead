# src/bridge_hub/schemas/endpoint.py
"""Endpoint-related Pydantic schemas."""

import re
from datetime import datetime

from pydantic import AnyHttpUrl, BaseModel, Field, field_validator

ALIAS_PATTERN = re.compile(r"^[a-z0-9_-]+$")
ALIAS_MAX_LENGTH = 50
HTTP_METHODS = frozenset({"GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"})


def validate_alias(alias: str) -> str:
    """Return `alias` if it is a valid public slug, else raise ValueError."""
    if not alias or len(alias) > ALIAS_MAX_LENGTH:
        raise ValueError(f"Alias must be 1-{ALIAS_MAX_LENGTH} characters long")
    if not ALIAS_PATTERN.match(alias):
        raise ValueError("Alias must be lowercase alphanumeric with dashes/underscores")
    return alias


class EndpointCreate(BaseModel):
    """Schema for registering a new endpoint."""

    name: str = Field(..., min_length=1, max_length=100, description="Display name")
    alias: str = Field(..., description="Public slug used in /r/{alias}")
    target_url: AnyHttpUrl = Field(..., description="Target that receives forwarded calls")
    description: str | None = Field(None, description="Free-form notes")
    payload_mapping: dict[str, str] = Field(
        default_factory=dict,
        description="Source field name -> target field name",
    )
    allowed_methods: list[str] = Field(
        default_factory=lambda: ["POST"],
        min_length=1,
        description="HTTP verbs accepted on the alias",
    )
    require_api_key: bool = Field(False, description="Require an x-api-key header")
    is_active: bool = Field(True, description="Inactive endpoints answer 404")

    @field_validator("alias")
    @classmethod
    def _check_alias(cls, value: str) -> str:
        return validate_alias(value)

    @field_validator("allowed_methods")
    @classmethod
    def _check_methods(cls, value: list[str]) -> list[str]:
        methods: list[str] = []
        for method in value:
            verb = method.strip().upper()
            if verb not in HTTP_METHODS:
                raise ValueError(f"Unsupported HTTP method: {method}")
            if verb not in methods:
                methods.append(verb)
        return methods


class EndpointInfo(BaseModel):
    """Public configuration snapshot returned by the info route."""

    id: str
    user_id: str
    name: str
    alias: str
    target_url: str
    description: str | None = None
    allowed_methods: list[str]
    payload_mapping: dict[str, str]
    require_api_key: bool
    is_active: bool
    last_used_at: datetime | None = None
    url: str


class EndpointInfoResponse(BaseModel):
    """Envelope for `EndpointInfo`."""

    success: bool = True
    endpoint: EndpointInfo
