"""
全局配置 - 从环境变量读取一次，之后只读

热更新需要重新构造 FlowSettings，不要原地修改。
"""

from __future__ import annotations

import os
from dataclasses import dataclass


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


def _env_float(name: str, default: float) -> float:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    return float(raw)


@dataclass(frozen=True)
class FlowSettings:
    # CSRF state 有效期（与 provider 无关）
    state_ttl_seconds: int = 180
    state_key_prefix: str = "oauth_state:"

    # HTTP 客户端
    http_timeout: float = 30.0
    http_connect_timeout: float = 10.0
    http_max_connections: int = 50
    http_keepalive_connections: int = 10

    @classmethod
    def from_env(cls) -> "FlowSettings":
        return cls(
            state_ttl_seconds=_env_int("AUTHFLOW_STATE_TTL_SECONDS", 180),
            state_key_prefix=os.getenv("AUTHFLOW_STATE_KEY_PREFIX", "oauth_state:"),
            http_timeout=_env_float("AUTHFLOW_HTTP_TIMEOUT", 30.0),
            http_connect_timeout=_env_float("AUTHFLOW_HTTP_CONNECT_TIMEOUT", 10.0),
            http_max_connections=_env_int("AUTHFLOW_HTTP_MAX_CONNECTIONS", 50),
            http_keepalive_connections=_env_int("AUTHFLOW_HTTP_KEEPALIVE_CONNECTIONS", 10),
        )


config = FlowSettings.from_env()

__all__ = ["FlowSettings", "config"]
