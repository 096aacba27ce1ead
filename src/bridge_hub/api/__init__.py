# src/bridge_hub/api/__init__.py
"""HTTP routes."""

from .endpoints import router as endpoints_router
from .repeater import router as repeater_router

__all__ = ["endpoints_router", "repeater_router"]
