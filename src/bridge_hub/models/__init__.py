# src/bridge_hub/models/__init__.py
"""SQLAlchemy models for the Bridge Hub application."""

from .api_key import ApiKey
from .endpoint import Endpoint
from .request_log import RequestLog

__all__ = [
    "ApiKey",
    "Endpoint",
    "RequestLog",
]
