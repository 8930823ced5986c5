"""
Scope 协商

默认 scope 在前、调用方请求的在后，按插入顺序去重。输出顺序必须是确定的，
生成的授权 URL 才能复现（测试 fixture 也依赖这一点）。
"""

from __future__ import annotations

from typing import Iterable
from urllib.parse import quote


def _dedupe(*groups: Iterable[str]) -> list[str]:
    seen: dict[str, None] = {}
    for group in groups:
        # 无序集合没有插入顺序，排序后保证输出与哈希种子无关
        if isinstance(group, (set, frozenset)):
            group = sorted(group)
        for scope in group:
            scope = (scope or "").strip()
            if scope and scope not in seen:
                seen[scope] = None
    return list(seen)


def negotiate(
    requested: Iterable[str] | None,
    defaults: Iterable[str] | None,
    force_defaults: bool = False,
) -> list[str]:
    if force_defaults:
        return _dedupe(defaults or ())
    return _dedupe(defaults or (), requested or ())


def serialize_scopes(scopes: Iterable[str], separator: str = " ", url_encoded: bool = False) -> str:
    """按 Provider 的分隔符拼接；url_encoded 时整体百分号编码（分隔符也会被编码）。"""
    joined = separator.join(scopes)
    if url_encoded:
        return quote(joined, safe="")
    return joined


__all__ = ["negotiate", "serialize_scopes"]
