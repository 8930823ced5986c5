"""
OAuth 授权流程引擎

状态机:
    INIT -> AWAITING_CALLBACK -> TOKEN_EXCHANGED -> IDENTITY_FETCHED
    TOKEN_EXCHANGED / IDENTITY_FETCHED -> REFRESHED -> TOKEN_EXCHANGED
    * -> REVOKED（终态）
    * -> FAILED

迁移表见 FlowState.can_transition；引擎不持有流程实例，状态只随日志和 LoginResult 输出。
引擎自身不持有可变状态，所有 Provider 差异都在适配器里；唯一共享的可变资源是 state 缓存。
网络调用失败只做分类（NetworkError），不在引擎内重试：授权码只能用一次，重试必然失败。
"""

from __future__ import annotations

import dataclasses
from typing import Any, Awaitable, Iterable, TypeVar

from authflow.core.error_utils import classify_exception
from authflow.core.exceptions import (
    ConfigError,
    OAuthFlowError,
    ProviderProtocolError,
    UnsupportedOperationError,
)
from authflow.core.logger import logger
from authflow.services.oauth.adapter import ProviderAdapter, can_refresh, can_revoke
from authflow.services.oauth.models import (
    AccessToken,
    Callback,
    FlowState,
    Identity,
    IntegrationContext,
    LoginResult,
)
from authflow.services.oauth.normalizer import normalize_identity, normalize_token
from authflow.services.oauth.scopes import negotiate, serialize_scopes
from authflow.services.oauth.state import StateCache, StateVerifier

T = TypeVar("T")


class FlowEngine:
    def __init__(self, state_cache: StateCache, *, state_ttl_seconds: int | None = None):
        self.verifier = StateVerifier(state_cache, ttl_seconds=state_ttl_seconds)

    # ------------------------------------------------------------------
    # helpers
    # ------------------------------------------------------------------

    @staticmethod
    def _transition(provider_id: str, current: FlowState, target: FlowState) -> FlowState:
        # 引擎无状态，FlowState 只用于日志和 LoginResult 上报
        logger.debug("OAuth 流程状态: provider={} {} -> {}", provider_id, current.value, target.value)
        return target

    @staticmethod
    def _check_context(context: IntegrationContext, adapter: ProviderAdapter) -> None:
        if context.provider_id != adapter.provider_id:
            raise ConfigError(
                f"IntegrationContext 属于 {context.provider_id}，与适配器 {adapter.provider_id} 不匹配",
                provider_id=context.provider_id,
            )

    @staticmethod
    async def _call_adapter(provider_id: str, operation: str, call: Awaitable[T]) -> T:
        try:
            return await call
        except OAuthFlowError as e:
            if e.provider_id is None:
                e.provider_id = provider_id
            raise
        except Exception as e:
            classified = classify_exception(e, provider_id)
            if classified is None:
                raise
            logger.error("Provider 调用失败: provider={} op={} err={!r}", provider_id, operation, e)
            raise classified from e

    # ------------------------------------------------------------------
    # 授权
    # ------------------------------------------------------------------

    async def authorize(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        requested_scopes: Iterable[str] | None = None,
    ) -> str:
        """签发 state、协商 scope，返回授权跳转地址。每次调用签发独立的 state。"""
        self._check_context(context, adapter)
        metadata = adapter.metadata
        provider_id = adapter.provider_id

        scopes = negotiate(
            requested_scopes if requested_scopes is not None else context.scopes,
            metadata.default_scopes,
            metadata.force_default_scopes,
        )
        scope_string = serialize_scopes(scopes, metadata.scope_separator, metadata.scope_url_encoded)

        state = await self.verifier.issue_state(provider_id)
        url = adapter.build_authorize_url(context, state, scope_string)
        self._transition(provider_id, FlowState.INIT, FlowState.AWAITING_CALLBACK)
        logger.debug("OAuth 授权地址已生成: provider={} scopes={}", provider_id, scopes)
        return url

    async def callback(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        callback: Callback,
    ) -> AccessToken:
        """
        处理 Provider 回调：校验并消费 state，再用 code 换 token

        state 校验失败时不会调用适配器（不发起任何网络请求）。
        """
        self._check_context(context, adapter)
        provider_id = adapter.provider_id

        if callback.error:
            # 用户取消或拒绝授权
            raise ProviderProtocolError(
                callback.error_description or callback.error,
                provider_id=provider_id,
                provider_code=callback.error,
            )

        if not context.ignore_state:
            await self.verifier.verify_and_consume(provider_id, callback.state)

        if not callback.code:
            raise ProviderProtocolError("回调缺少 code 参数", provider_id=provider_id)

        raw = await self._call_adapter(
            provider_id, "exchange_code", adapter.exchange_code_for_token(context, callback.code)
        )
        token = normalize_token(provider_id, raw, adapter.metadata.token_fields)
        self._transition(provider_id, FlowState.AWAITING_CALLBACK, FlowState.TOKEN_EXCHANGED)
        logger.info("OAuth code 换 token 成功: provider={}", provider_id)
        return token

    async def fetch_identity(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        token: AccessToken,
    ) -> Identity:
        """用 access token 获取并归一化用户信息；已持有有效 token 时可单独调用。"""
        self._check_context(context, adapter)
        provider_id = adapter.provider_id

        raw = await self._call_adapter(
            provider_id, "fetch_user_info", adapter.fetch_user_info(context, token.access_token)
        )
        identity = normalize_identity(provider_id, raw, token, adapter.metadata.identity_fields)
        self._transition(provider_id, FlowState.TOKEN_EXCHANGED, FlowState.IDENTITY_FETCHED)
        logger.info("OAuth 用户信息获取成功: provider={}", provider_id)
        return identity

    async def login(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        callback: Callback,
    ) -> LoginResult:
        """
        统一登录入口：回调处理 + 用户信息

        不抛出 OAuthFlowError，失败统一以 LoginResult.error 返回。
        """
        provider_id = adapter.provider_id
        try:
            token = await self.callback(context, adapter, callback)
            identity = await self.fetch_identity(context, adapter, token)
        except OAuthFlowError as e:
            logger.warning(
                "OAuth 登录失败: provider={} kind={} code={}",
                provider_id,
                e.kind.value,
                e.provider_code,
            )
            return LoginResult(state=FlowState.FAILED, error=e.record)
        return LoginResult(state=FlowState.IDENTITY_FETCHED, identity=identity)

    # ------------------------------------------------------------------
    # 刷新 / 撤销
    # ------------------------------------------------------------------

    async def refresh(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        token: AccessToken,
    ) -> AccessToken:
        """刷新 token，返回新的 AccessToken，不修改入参。"""
        self._check_context(context, adapter)
        provider_id = adapter.provider_id

        if not can_refresh(adapter):
            raise UnsupportedOperationError("该 Provider 不支持刷新 token", provider_id=provider_id)
        if not token.refresh_token:
            raise ConfigError("token 中没有 refresh_token，需要重新授权", provider_id=provider_id)

        raw: dict[str, Any] = await self._call_adapter(
            provider_id, "refresh", adapter.refresh_token(context, token.refresh_token)
        )
        refreshed = normalize_token(provider_id, raw, adapter.metadata.token_fields)
        # Provider 没有返回新的 refresh_token 时沿用旧的
        if not refreshed.refresh_token:
            refreshed = dataclasses.replace(refreshed, refresh_token=token.refresh_token)

        self._transition(provider_id, FlowState.TOKEN_EXCHANGED, FlowState.REFRESHED)
        self._transition(provider_id, FlowState.REFRESHED, FlowState.TOKEN_EXCHANGED)
        logger.info("OAuth token 刷新成功: provider={}", provider_id)
        return refreshed

    async def revoke(
        self,
        context: IntegrationContext,
        adapter: ProviderAdapter,
        token: AccessToken,
    ) -> None:
        """撤销授权；Provider 无撤销能力时抛 UnsupportedOperationError，而不是静默成功。"""
        self._check_context(context, adapter)
        provider_id = adapter.provider_id

        if not can_revoke(adapter):
            raise UnsupportedOperationError("该 Provider 不支持撤销授权", provider_id=provider_id)

        await self._call_adapter(provider_id, "revoke", adapter.revoke(context, token.access_token))
        self._transition(provider_id, FlowState.TOKEN_EXCHANGED, FlowState.REVOKED)
        logger.info("OAuth 授权已撤销: provider={}", provider_id)


__all__ = ["FlowEngine"]
