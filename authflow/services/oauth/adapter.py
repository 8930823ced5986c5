"""
Provider 适配器接口

每个外部身份提供方实现一个适配器，负责：
- 拼装授权 URL
- code 换 token、获取用户信息、刷新、撤销
- 判断 Provider 自己的成功/失败约定（HTTP 状态码、响应体错误字段等），
  并统一转换为 ProviderProtocolError / NetworkError

引擎本身不读取任何 Provider 特有的字段名，scope 默认值与字段名提示
都通过 adapter.metadata 传入。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, Protocol, runtime_checkable

from authflow.core.exceptions import UnsupportedOperationError
from authflow.core.registry import ProviderMetadata
from authflow.services.oauth.models import IntegrationContext


@runtime_checkable
class ProviderAdapter(Protocol):
    """
    适配器必须实现的部分

    可选能力（不在协议内，缺失即视为不支持）:
        supports_refresh + async refresh_token(context, refresh_token) -> dict
        supports_revoke + async revoke(context, access_token) -> None
    """

    metadata: ProviderMetadata

    @property
    def provider_id(self) -> str: ...

    def build_authorize_url(self, context: IntegrationContext, state: str, scope: str) -> str: ...

    async def exchange_code_for_token(
        self, context: IntegrationContext, code: str
    ) -> dict[str, Any]: ...

    async def fetch_user_info(
        self, context: IntegrationContext, access_token: str
    ) -> dict[str, Any]: ...


def can_refresh(adapter: Any) -> bool:
    return bool(getattr(adapter, "supports_refresh", False)) and callable(
        getattr(adapter, "refresh_token", None)
    )


def can_revoke(adapter: Any) -> bool:
    return bool(getattr(adapter, "supports_revoke", False)) and callable(
        getattr(adapter, "revoke", None)
    )


class BaseProviderAdapter(ABC):
    """
    适配器基类

    refresh/revoke 默认不支持；子类实现时需同时把 supports_refresh /
    supports_revoke 置为 True，引擎通过 can_refresh / can_revoke 决定是否调用。
    """

    supports_refresh: bool = False
    supports_revoke: bool = False

    def __init__(self, metadata: ProviderMetadata):
        self.metadata = metadata

    @property
    def provider_id(self) -> str:
        return self.metadata.provider_id

    @abstractmethod
    def build_authorize_url(self, context: IntegrationContext, state: str, scope: str) -> str:
        pass

    @abstractmethod
    async def exchange_code_for_token(
        self, context: IntegrationContext, code: str
    ) -> dict[str, Any]:
        pass

    @abstractmethod
    async def fetch_user_info(self, context: IntegrationContext, access_token: str) -> dict[str, Any]:
        pass

    async def refresh_token(self, context: IntegrationContext, refresh_token: str) -> dict[str, Any]:
        raise UnsupportedOperationError(
            "该 Provider 不支持刷新 token", provider_id=self.provider_id
        )

    async def revoke(self, context: IntegrationContext, access_token: str) -> None:
        raise UnsupportedOperationError(
            "该 Provider 不支持撤销授权", provider_id=self.provider_id
        )


__all__ = ["ProviderAdapter", "BaseProviderAdapter", "can_refresh", "can_revoke"]
