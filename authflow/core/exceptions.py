"""
OAuth 流程错误分类

所有失败都归入一个封闭的 ErrorKind 集合，与具体是哪个 Provider 产生的无关。
Provider 自己的错误码/消息原样保存在 provider_code / message 中，不做翻译。

- ConfigError: IntegrationContext 缺失或非法字段，不可重试
- CsrfMismatchError: state 不存在、已被消费或已过期，不可重试，且不会发起网络请求
- ProviderProtocolError: Provider API 明确返回失败，是否可重试取决于调用方策略
- NetworkError: 传输层失败（超时、连接拒绝、响应体无法解析），可重试
- UnsupportedOperationError: 当前 Provider 不支持 refresh/revoke，不可重试
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum


class ErrorKind(str, Enum):
    CONFIG_ERROR = "config_error"
    CSRF_MISMATCH = "csrf_mismatch"
    PROVIDER_PROTOCOL_ERROR = "provider_protocol_error"
    NETWORK_ERROR = "network_error"
    UNSUPPORTED_OPERATION = "unsupported_operation"


@dataclass(frozen=True)
class ErrorRecord:
    kind: ErrorKind
    message: str
    provider_id: str | None = None
    provider_code: str | None = None

    def to_dict(self) -> dict[str, str | None]:
        return {
            "kind": self.kind.value,
            "message": self.message,
            "provider_id": self.provider_id,
            "provider_code": self.provider_code,
        }


class OAuthFlowError(Exception):
    """OAuth 流程的可控错误基类（通过 kind 映射到 ErrorRecord）。"""

    kind: ErrorKind = ErrorKind.PROVIDER_PROTOCOL_ERROR
    # None 表示交给调用方决定
    retriable: bool | None = None

    def __init__(
        self,
        message: str = "",
        *,
        provider_id: str | None = None,
        provider_code: str | int | None = None,
    ):
        super().__init__(message or self.kind.value)
        self.message = message or self.kind.value
        self.provider_id = provider_id
        self.provider_code = None if provider_code is None else str(provider_code)

    @property
    def record(self) -> ErrorRecord:
        return ErrorRecord(
            kind=self.kind,
            message=self.message,
            provider_id=self.provider_id,
            provider_code=self.provider_code,
        )

    def __repr__(self) -> str:
        return (
            f"{type(self).__name__}(kind={self.kind.value!r}, provider_id={self.provider_id!r}, "
            f"provider_code={self.provider_code!r}, message={self.message!r})"
        )


class ConfigError(OAuthFlowError):
    kind = ErrorKind.CONFIG_ERROR
    retriable = False


class CsrfMismatchError(OAuthFlowError):
    kind = ErrorKind.CSRF_MISMATCH
    retriable = False


class ProviderProtocolError(OAuthFlowError):
    kind = ErrorKind.PROVIDER_PROTOCOL_ERROR
    retriable = None


class NetworkError(OAuthFlowError):
    kind = ErrorKind.NETWORK_ERROR
    retriable = True


class UnsupportedOperationError(OAuthFlowError):
    kind = ErrorKind.UNSUPPORTED_OPERATION
    retriable = False


__all__ = [
    "ErrorKind",
    "ErrorRecord",
    "OAuthFlowError",
    "ConfigError",
    "CsrfMismatchError",
    "ProviderProtocolError",
    "NetworkError",
    "UnsupportedOperationError",
]
