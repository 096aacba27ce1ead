# src/bridge_hub/schemas/api_key.py
"""API key Pydantic schemas."""

from datetime import datetime

from pydantic import BaseModel, Field


class ApiKeyCreate(BaseModel):
    """Schema for issuing a new API key."""

    name: str = Field(..., min_length=1, max_length=100, description="Label shown in the dashboard")
    allowed_endpoint_ids: list[str] | None = Field(
        None,
        description="Restrict the key to these endpoints; omit for all of the owner's endpoints",
    )
    expires_at: datetime | None = Field(None, description="Optional expiry (UTC)")


class ApiKeyIssued(BaseModel):
    """Returned exactly once, when the key is created."""

    id: str
    name: str
    key_prefix: str
    api_key: str = Field(..., description="Raw secret; it cannot be retrieved again")
    allowed_endpoint_ids: list[str] | None = None
    expires_at: datetime | None = None
