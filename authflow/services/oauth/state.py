from __future__ import annotations

import json
import secrets
import threading
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Optional, Protocol, cast, runtime_checkable

from redis.asyncio import Redis

from authflow.config import config
from authflow.core.exceptions import CsrfMismatchError
from authflow.core.logger import logger


CONSUME_STATE_SCRIPT = r"""
local value = redis.call("GET", KEYS[1])
if value then
    redis.call("DEL", KEYS[1])
end
return value
"""


@runtime_checkable
class StateCache(Protocol):
    """state 存储后端：任意支持 TTL 的 KV 即可。get_and_delete 必须是原子操作。"""

    async def put(self, key: str, value: str, ttl: int) -> None: ...

    async def get_and_delete(self, key: str) -> Optional[str]: ...


class MemoryStateCache:
    """
    进程内 state 缓存

    使用 threading.Lock 而不是 asyncio.Lock：临界区内没有 await，
    同一实例既可以被多个协程也可以被多个线程共享。
    """

    _MAX_SIZE = 10000

    def __init__(self, clock: Callable[[], float] = time.monotonic, max_size: int = _MAX_SIZE):
        self._clock = clock
        self._max_size = max(1, max_size)
        self._entries: dict[str, tuple[str, float]] = {}
        self._lock = threading.Lock()

    def _purge_expired(self, now: float) -> None:
        expired = [key for key, (_, expires_at) in self._entries.items() if expires_at <= now]
        for key in expired:
            del self._entries[key]

    async def put(self, key: str, value: str, ttl: int) -> None:
        with self._lock:
            now = self._clock()
            self._entries.pop(key, None)
            # 防止无效 state 导致缓存无限膨胀：先清过期项，仍满则淘汰最早签发的
            if len(self._entries) >= self._max_size:
                self._purge_expired(now)
            while len(self._entries) >= self._max_size:
                oldest = next(iter(self._entries))
                del self._entries[oldest]
                logger.warning("state 缓存已满，淘汰最早签发的 state")
            self._entries[key] = (value, now + ttl)

    async def get_and_delete(self, key: str) -> Optional[str]:
        with self._lock:
            entry = self._entries.pop(key, None)
            if entry is None:
                return None
            value, expires_at = entry
            if expires_at <= self._clock():
                return None
            return value

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)


class RedisStateCache:
    """基于 Redis 的 state 缓存，GET+DEL 通过 Lua 脚本保证原子性。"""

    def __init__(self, redis: Redis):
        self._redis = redis

    async def put(self, key: str, value: str, ttl: int) -> None:
        await self._redis.setex(key, ttl, value)

    async def get_and_delete(self, key: str) -> Optional[str]:
        # redis-py 的类型标注在 sync/async 之间会出现 Union；这里明确按 async 处理。
        raw = await cast(Awaitable[Any], self._redis.eval(CONSUME_STATE_SCRIPT, 1, key))
        if raw is None:
            return None
        if isinstance(raw, bytes):
            return raw.decode("utf-8")
        return str(raw)


@dataclass(frozen=True)
class StateEntry:
    provider_id: str
    state_value: str
    issued_at: int
    ttl: int

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "StateEntry":
        return cls(
            provider_id=str(data.get("provider_id") or ""),
            state_value=str(data.get("state_value") or ""),
            issued_at=int(data.get("issued_at") or 0),
            ttl=int(data.get("ttl") or 0),
        )


class StateVerifier:
    """签发与校验一次性 CSRF state。"""

    def __init__(
        self,
        cache: StateCache,
        *,
        ttl_seconds: int | None = None,
        key_prefix: str | None = None,
    ):
        self.cache = cache
        self.ttl_seconds = ttl_seconds if ttl_seconds is not None else config.state_ttl_seconds
        self.key_prefix = key_prefix if key_prefix is not None else config.state_key_prefix

    def _state_key(self, provider_id: str, state_value: str) -> str:
        return f"{self.key_prefix}{provider_id}:{state_value}"

    async def issue_state(self, provider_id: str) -> str:
        state_value = secrets.token_urlsafe(24)
        entry = {
            "provider_id": provider_id,
            "state_value": state_value,
            "issued_at": int(time.time()),
            "ttl": self.ttl_seconds,
        }
        await self.cache.put(
            self._state_key(provider_id, state_value), json.dumps(entry), self.ttl_seconds
        )
        logger.debug("已签发 OAuth state: provider={} ttl={}s", provider_id, self.ttl_seconds)
        return state_value

    async def verify_and_consume(self, provider_id: str, state_value: str | None) -> StateEntry:
        if not state_value:
            raise CsrfMismatchError("回调缺少 state 参数", provider_id=provider_id)

        raw = await self.cache.get_and_delete(self._state_key(provider_id, state_value))
        if not raw:
            logger.warning("OAuth state 校验失败（不存在、已使用或已过期）: provider={}", provider_id)
            raise CsrfMismatchError("state 无效或已过期", provider_id=provider_id)

        try:
            entry = StateEntry.from_dict(json.loads(raw))
        except (json.JSONDecodeError, AttributeError, TypeError, ValueError) as e:
            raise CsrfMismatchError("state 数据已损坏", provider_id=provider_id) from e

        if entry.provider_id != provider_id or entry.state_value != state_value:
            raise CsrfMismatchError("state 与 provider 不匹配", provider_id=provider_id)
        return entry


__all__ = [
    "CONSUME_STATE_SCRIPT",
    "StateCache",
    "MemoryStateCache",
    "RedisStateCache",
    "StateEntry",
    "StateVerifier",
]
