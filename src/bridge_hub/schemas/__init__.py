# src/bridge_hub/schemas/__init__.py
"""
Pydantic schemas for API request/response models.

These schemas define the structure of API data for serialization and validation.
"""

from .api_key import ApiKeyCreate, ApiKeyIssued
from .endpoint import EndpointCreate, EndpointInfo, EndpointInfoResponse, validate_alias

__all__ = [
    "ApiKeyCreate", "ApiKeyIssued",
    "EndpointCreate", "EndpointInfo", "EndpointInfoResponse",
    "validate_alias",
]
