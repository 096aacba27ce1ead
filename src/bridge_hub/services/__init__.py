# src/bridge_hub/services/__init__.py
"""Repeater services for the Bridge Hub application."""

from .background import BackgroundTaskSupervisor
from .endpoint_directory import AliasCache, EndpointDirectory
from .forwarder import Forwarder, ForwardingError, ForwardResult
from .key_authorizer import AuthDecision, Authorization, KeyAuthorizer
from .payload_mapper import transform_payload
from .repeater import InboundRequest, RepeaterPipeline, RepeaterResult
from .request_log import RequestLogEntry, RequestLogWriter
from .store import ApiKeyRecord, EndpointConfig, SqlStore, Store, StoreError

__all__ = [
    "AliasCache", "EndpointDirectory",
    "ApiKeyRecord", "EndpointConfig", "SqlStore", "Store", "StoreError",
    "AuthDecision", "Authorization", "KeyAuthorizer",
    "BackgroundTaskSupervisor",
    "Forwarder", "ForwardingError", "ForwardResult",
    "InboundRequest", "RepeaterPipeline", "RepeaterResult",
    "RequestLogEntry", "RequestLogWriter",
    "transform_payload",
]
