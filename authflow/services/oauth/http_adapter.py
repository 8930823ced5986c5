"""
通用 HTTP 适配器

只依赖 ProviderMetadata 就能驱动大多数标准 OAuth2 Provider：
- 授权地址: response_type=code + client_id + redirect_uri + state + scope
- code 换 token: 表单 POST，grant_type=authorization_code
- 用户信息: Bearer 头或 access_token 查询参数
- 刷新/撤销: 仅当元数据配置了对应端点时可用

成功/失败判定：响应体里的错误字段优先于 HTTP 状态码（很多 Provider 用 200 + errcode 表示失败）。

注意：不得在日志中输出 access_token / refresh_token / client_secret / code。
"""

from __future__ import annotations

import json
from typing import Any
from urllib.parse import quote_plus, urlencode

import httpx

from authflow.clients.http_client import HTTPClientPool
from authflow.core.error_utils import classify_exception
from authflow.core.exceptions import NetworkError, ProviderProtocolError
from authflow.core.logger import logger
from authflow.core.registry import ProviderMetadata
from authflow.services.oauth.adapter import BaseProviderAdapter
from authflow.services.oauth.models import IntegrationContext

# context.extra 中以该前缀开头的键会被追加到授权 URL
AUTHORIZE_EXTRA_PREFIX = "authorize."


class HttpProviderAdapter(BaseProviderAdapter):
    def __init__(self, metadata: ProviderMetadata, client_pool: HTTPClientPool | None = None):
        """
        Args:
            metadata: Provider 元数据
            client_pool: 共享的 HTTP 客户端池（推荐，由调用方负责关闭）；
                不传时自建一个，需在用完后调用 aclose()
        """
        super().__init__(metadata)
        self._owns_pool = client_pool is None
        self.client_pool = client_pool or HTTPClientPool()
        self.supports_refresh = metadata.supports_refresh
        self.supports_revoke = metadata.supports_revoke

    async def aclose(self) -> None:
        """关闭自建的客户端池；共享池由其所有者关闭。"""
        if self._owns_pool:
            await self.client_pool.close()

    # ------------------------------------------------------------------
    # URL
    # ------------------------------------------------------------------

    def build_authorize_url(self, context: IntegrationContext, state: str, scope: str) -> str:
        params: dict[str, str] = {
            "response_type": "code",
            "client_id": context.client_id,
            "redirect_uri": context.redirect_uri,
            "state": state,
        }
        for key, value in context.extra.items():
            if key.startswith(AUTHORIZE_EXTRA_PREFIX):
                params[key[len(AUTHORIZE_EXTRA_PREFIX):]] = value

        query = urlencode(params)
        if scope:
            # 已整体编码过的 scope 不能再编码一次
            encoded_scope = scope if self.metadata.scope_url_encoded else quote_plus(scope)
            query = f"{query}&scope={encoded_scope}"

        separator = "&" if "?" in self.metadata.authorize_url else "?"
        return f"{self.metadata.authorize_url}{separator}{query}"

    # ------------------------------------------------------------------
    # 响应判定
    # ------------------------------------------------------------------

    def _parse_body(self, resp: httpx.Response) -> dict[str, Any]:
        if not resp.content:
            return {}
        try:
            body = resp.json()
        except (json.JSONDecodeError, UnicodeDecodeError) as e:
            # 非 2xx 且不是 JSON：按 Provider 错误处理，保留状态码
            if not resp.is_success:
                raise ProviderProtocolError(
                    resp.text[:500] or f"HTTP {resp.status_code}",
                    provider_id=self.provider_id,
                    provider_code=resp.status_code,
                ) from e
            raise NetworkError(
                "响应体不是合法的 JSON", provider_id=self.provider_id
            ) from e
        if not isinstance(body, dict):
            raise NetworkError("响应体不是 JSON 对象", provider_id=self.provider_id)
        return body

    def _embedded_error(self, body: dict[str, Any]) -> tuple[str, str] | None:
        metadata = self.metadata
        for field_name in metadata.error_fields:
            value = body.get(field_name)
            if value is None or value == "" or value is False:
                continue
            message = ""
            if isinstance(value, dict):
                # {"error": {"code": ..., "message": ...}} 形式
                message = str(value.get("message") or "")
                value = value.get("code") or value.get("status") or field_name
            code = str(value)
            if code.lower() in metadata.success_codes:
                continue
            for message_field in metadata.message_fields:
                if message:
                    break
                if body.get(message_field):
                    message = str(body[message_field])
                    break
            return code, message or code
        return None

    def _check_response(self, resp: httpx.Response) -> dict[str, Any]:
        body = self._parse_body(resp)

        embedded = self._embedded_error(body)
        if embedded is not None:
            code, message = embedded
            logger.warning(
                "Provider 返回业务错误: provider={} status={} code={}",
                self.provider_id,
                resp.status_code,
                code,
            )
            raise ProviderProtocolError(message, provider_id=self.provider_id, provider_code=code)

        if not resp.is_success:
            logger.warning(
                "Provider 返回非 2xx 状态: provider={} status={}", self.provider_id, resp.status_code
            )
            raise ProviderProtocolError(
                f"HTTP {resp.status_code}",
                provider_id=self.provider_id,
                provider_code=resp.status_code,
            )

        root = self.metadata.response_root
        if root:
            nested = body.get(root)
            if not isinstance(nested, dict):
                raise ProviderProtocolError(
                    f"响应缺少 {root} 字段", provider_id=self.provider_id
                )
            return nested
        return body

    async def _request(self, method: str, url: str, **kwargs: Any) -> httpx.Response:
        client = await self.client_pool.get_client()
        try:
            return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            classified = classify_exception(e, self.provider_id)
            if classified is None:
                raise
            raise classified from e

    # ------------------------------------------------------------------
    # 流程
    # ------------------------------------------------------------------

    async def exchange_code_for_token(self, context: IntegrationContext, code: str) -> dict[str, Any]:
        form = {
            "grant_type": "authorization_code",
            "code": code,
            "client_id": context.client_id,
            "client_secret": context.client_secret,
            "redirect_uri": context.redirect_uri,
        }
        resp = await self._request("POST", self.metadata.token_url, data=form)
        return self._check_response(resp)

    async def fetch_user_info(self, context: IntegrationContext, access_token: str) -> dict[str, Any]:
        headers: dict[str, str] = {}
        params: dict[str, str] = {}
        if self.metadata.token_placement == "query":
            params["access_token"] = access_token
        else:
            headers["Authorization"] = f"Bearer {access_token}"

        resp = await self._request(
            self.metadata.user_info_method,
            self.metadata.user_info_url,
            headers=headers,
            params=params,
        )
        return self._check_response(resp)

    async def refresh_token(self, context: IntegrationContext, refresh_token: str) -> dict[str, Any]:
        if not self.metadata.refresh_url:
            return await super().refresh_token(context, refresh_token)

        form = {
            "grant_type": "refresh_token",
            "refresh_token": refresh_token,
            "client_id": context.client_id,
            "client_secret": context.client_secret,
        }
        resp = await self._request("POST", self.metadata.refresh_url, data=form)
        return self._check_response(resp)

    async def revoke(self, context: IntegrationContext, access_token: str) -> None:
        if not self.metadata.revoke_url:
            await super().revoke(context, access_token)
            return

        form = {
            "token": access_token,
            "client_id": context.client_id,
            "client_secret": context.client_secret,
        }
        resp = await self._request("POST", self.metadata.revoke_url, data=form)
        self._check_response(resp)


__all__ = ["HttpProviderAdapter", "AUTHORIZE_EXTRA_PREFIX"]
