"""
authflow - 通用 OAuth2/OIDC 授权流程引擎

authorize -> callback -> token -> identity -> refresh/revoke，
Provider 差异全部由适配器与元数据承担。
"""

from authflow.core.exceptions import (
    ConfigError,
    CsrfMismatchError,
    ErrorKind,
    ErrorRecord,
    NetworkError,
    OAuthFlowError,
    ProviderProtocolError,
    UnsupportedOperationError,
)
from authflow.core.logger import setup_logging
from authflow.core.registry import BUILTIN_PROVIDERS, ProviderMetadata, ProviderRegistry
from authflow.services.oauth import (
    AccessToken,
    BaseProviderAdapter,
    Callback,
    FlowEngine,
    FlowState,
    Gender,
    HttpProviderAdapter,
    Identity,
    IntegrationContext,
    LoginResult,
    MemoryStateCache,
    OAuthService,
    ProviderAdapter,
    ProviderFlow,
    RedisStateCache,
    StateCache,
    parse_callback_params,
)

__version__ = "0.1.0"

__all__ = [
    "AccessToken",
    "BUILTIN_PROVIDERS",
    "BaseProviderAdapter",
    "Callback",
    "ConfigError",
    "CsrfMismatchError",
    "ErrorKind",
    "ErrorRecord",
    "FlowEngine",
    "FlowState",
    "Gender",
    "HttpProviderAdapter",
    "Identity",
    "IntegrationContext",
    "LoginResult",
    "MemoryStateCache",
    "NetworkError",
    "OAuthFlowError",
    "OAuthService",
    "ProviderAdapter",
    "ProviderFlow",
    "ProviderMetadata",
    "ProviderProtocolError",
    "ProviderRegistry",
    "RedisStateCache",
    "StateCache",
    "UnsupportedOperationError",
    "parse_callback_params",
    "setup_logging",
]
