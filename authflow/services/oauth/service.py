"""
OAuth 服务：按 provider 管理接入配置与适配器，并把它们绑定到同一个 FlowEngine 上。

用法:
    service = OAuthService(FlowEngine(MemoryStateCache()))
    service.register(IntegrationContext.build(provider_id="github", client_id=..., ...))

    flow = service.require("github")
    url = await flow.authorize()
    result = await flow.login(parse_callback_params(callback_url))
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from authflow.clients.http_client import HTTPClientPool
from authflow.core.exceptions import ConfigError, UnsupportedOperationError
from authflow.core.logger import logger
from authflow.core.registry import ProviderRegistry, default_registry
from authflow.services.oauth.adapter import ProviderAdapter, can_refresh, can_revoke
from authflow.services.oauth.engine import FlowEngine
from authflow.services.oauth.http_adapter import HttpProviderAdapter
from authflow.services.oauth.models import (
    AccessToken,
    Callback,
    Identity,
    IntegrationContext,
    LoginResult,
)


@dataclass(frozen=True)
class ProviderFlow:
    """绑定了 context 与 adapter 的流程入口，方法与 FlowEngine 一一对应。"""

    engine: FlowEngine
    context: IntegrationContext
    adapter: ProviderAdapter

    @property
    def provider_id(self) -> str:
        return self.adapter.provider_id

    async def authorize(self, requested_scopes: Iterable[str] | None = None) -> str:
        return await self.engine.authorize(self.context, self.adapter, requested_scopes)

    async def callback(self, callback: Callback) -> AccessToken:
        return await self.engine.callback(self.context, self.adapter, callback)

    async def fetch_identity(self, token: AccessToken) -> Identity:
        return await self.engine.fetch_identity(self.context, self.adapter, token)

    async def login(self, callback: Callback) -> LoginResult:
        return await self.engine.login(self.context, self.adapter, callback)

    async def refresh(self, token: AccessToken) -> AccessToken:
        return await self.engine.refresh(self.context, self.adapter, token)

    async def revoke(self, token: AccessToken) -> None:
        await self.engine.revoke(self.context, self.adapter, token)


class OAuthService:
    def __init__(
        self,
        engine: FlowEngine,
        registry: ProviderRegistry | None = None,
        client_pool: HTTPClientPool | None = None,
    ):
        self.engine = engine
        self.registry = registry or default_registry()
        self.client_pool = client_pool or HTTPClientPool()
        self._flows: dict[str, ProviderFlow] = {}

    def register(
        self, context: IntegrationContext, adapter: ProviderAdapter | None = None
    ) -> ProviderFlow:
        """
        注册一个 provider 的接入配置

        未提供 adapter 时使用注册表中的元数据构造通用 HTTP 适配器。
        同一个 provider 不允许重复注册（需要更新时新建 OAuthService）。
        """
        provider_id = context.provider_id
        if provider_id in self._flows:
            raise ConfigError(f"重复注册同名 Provider: {provider_id}", provider_id=provider_id)

        if adapter is None:
            adapter = HttpProviderAdapter(self.registry.get(provider_id), self.client_pool)
        elif adapter.provider_id != provider_id:
            raise ConfigError(
                f"适配器 {adapter.provider_id} 与 IntegrationContext {provider_id} 不匹配",
                provider_id=provider_id,
            )

        flow = ProviderFlow(engine=self.engine, context=context, adapter=adapter)
        self._flows[provider_id] = flow
        logger.info(
            "OAuth Provider 已注册: provider={} refresh={} revoke={}",
            provider_id,
            can_refresh(adapter),
            can_revoke(adapter),
        )
        return flow

    def require(self, provider_id: str) -> ProviderFlow:
        flow = self._flows.get(provider_id)
        if flow is None:
            raise UnsupportedOperationError(
                f"Provider 未注册: {provider_id}", provider_id=provider_id
            )
        return flow

    def providers(self) -> list[str]:
        return sorted(self._flows)

    async def close(self) -> None:
        await self.client_pool.close()


__all__ = ["OAuthService", "ProviderFlow"]
