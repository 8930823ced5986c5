"""
OAuth 流程模块
"""

from authflow.services.oauth.adapter import BaseProviderAdapter, ProviderAdapter
from authflow.services.oauth.engine import FlowEngine
from authflow.services.oauth.http_adapter import HttpProviderAdapter
from authflow.services.oauth.models import (
    AccessToken,
    Callback,
    FlowState,
    Gender,
    Identity,
    IntegrationContext,
    LoginResult,
    parse_callback_params,
)
from authflow.services.oauth.service import OAuthService, ProviderFlow
from authflow.services.oauth.state import (
    MemoryStateCache,
    RedisStateCache,
    StateCache,
    StateEntry,
    StateVerifier,
)

__all__ = [
    "AccessToken",
    "BaseProviderAdapter",
    "Callback",
    "FlowEngine",
    "FlowState",
    "Gender",
    "HttpProviderAdapter",
    "Identity",
    "IntegrationContext",
    "LoginResult",
    "MemoryStateCache",
    "OAuthService",
    "ProviderAdapter",
    "ProviderFlow",
    "RedisStateCache",
    "StateCache",
    "StateEntry",
    "StateVerifier",
    "parse_callback_params",
]
