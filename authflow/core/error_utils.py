"""
错误消息处理工具函数
"""

from __future__ import annotations

import asyncio
import json

import httpx

from authflow.core.exceptions import NetworkError, OAuthFlowError


def extract_error_message(error: BaseException) -> str:
    """从异常中提取错误消息（str 可能为空，如 httpx 超时异常，此时退回 repr）"""
    return str(error) or repr(error)


def classify_exception(error: BaseException, provider_id: str | None = None) -> OAuthFlowError | None:
    """
    把适配器抛出的非流程异常归类为 OAuthFlowError

    - 已经是 OAuthFlowError: 原样返回（补齐 provider_id）
    - httpx 传输层错误 / 超时 / 响应体无法解析: NetworkError
    - 其它: None（编程错误，交给调用方看到原始异常）
    """
    if isinstance(error, OAuthFlowError):
        if error.provider_id is None:
            error.provider_id = provider_id
        return error

    if isinstance(error, (httpx.TimeoutException, asyncio.TimeoutError)):
        return NetworkError(
            f"请求超时: {extract_error_message(error)}", provider_id=provider_id
        )

    if isinstance(error, (httpx.TransportError, httpx.DecodingError)):
        return NetworkError(
            f"网络请求失败: {extract_error_message(error)}", provider_id=provider_id
        )

    if isinstance(error, json.JSONDecodeError):
        return NetworkError(f"响应体无法解析: {error.msg}", provider_id=provider_id)

    return None


__all__ = ["extract_error_message", "classify_exception"]
