"""
HTTP 客户端池
避免每次请求 Provider 都创建新的 AsyncClient

- 每个池实例持有一个惰性创建的 AsyncClient，不使用进程级单例
- 首次创建通过 asyncio.Lock 双重检查，避免高并发下重复创建
- 测试可以注入 transport（如 httpx.MockTransport）
"""

from __future__ import annotations

import asyncio
from typing import Any

import httpx

from authflow.config import FlowSettings, config
from authflow.core.logger import logger


class HTTPClientPool:
    def __init__(
        self,
        settings: FlowSettings | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
        **client_kwargs: Any,
    ):
        self._settings = settings or config
        self._transport = transport
        self._client_kwargs = client_kwargs
        self._client: httpx.AsyncClient | None = None
        self._lock = asyncio.Lock()

    def _build_client(self) -> httpx.AsyncClient:
        settings = self._settings
        options: dict[str, Any] = {
            "http2": False,
            "timeout": httpx.Timeout(settings.http_timeout, connect=settings.http_connect_timeout),
            "limits": httpx.Limits(
                max_connections=settings.http_max_connections,
                max_keepalive_connections=settings.http_keepalive_connections,
            ),
            # 授权/令牌端点不应跟随重定向
            "follow_redirects": False,
            "headers": {"Accept": "application/json"},
        }
        if self._transport is not None:
            options["transport"] = self._transport
        options.update(self._client_kwargs)
        return httpx.AsyncClient(**options)

    async def get_client(self) -> httpx.AsyncClient:
        if self._client is not None and not self._client.is_closed:
            return self._client

        async with self._lock:
            # 双重检查，避免重复创建
            if self._client is None or self._client.is_closed:
                self._client = self._build_client()
                logger.debug(
                    "HTTP 客户端已初始化: timeout={}s, max_connections={}",
                    self._settings.http_timeout,
                    self._settings.http_max_connections,
                )
        return self._client

    async def close(self) -> None:
        async with self._lock:
            if self._client is not None and not self._client.is_closed:
                await self._client.aclose()
            self._client = None


__all__ = ["HTTPClientPool"]
