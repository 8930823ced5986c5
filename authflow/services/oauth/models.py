from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Any
from urllib.parse import parse_qsl, urlparse

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator

from authflow.core.exceptions import ConfigError, ErrorRecord

_REQUIRED_CREDENTIALS = ("client_id", "client_secret", "redirect_uri")


class IntegrationContext(BaseModel):
    """应用侧接入配置（client 凭据、回调地址等），构造后不可变。"""

    model_config = ConfigDict(frozen=True)

    provider_id: str
    client_id: str = ""
    client_secret: str = ""
    redirect_uri: str = ""
    # Provider 特有的附加字段（如企业微信 agent_id、授权页额外参数）
    extra: dict[str, str] = Field(default_factory=dict)
    # 服务端到服务端、没有浏览器跳转的场景可以跳过 state 校验
    ignore_state: bool = False
    # 调用 authorize() 未传 scope 时使用
    scopes: tuple[str, ...] = ()
    # 少数适配器声明某些凭据可为空
    optional_fields: frozenset[str] = frozenset()

    @model_validator(mode="after")
    def validate_credentials(self) -> "IntegrationContext":
        # ConfigError 不是 ValueError，pydantic 不会把它包装成 ValidationError
        if not self.provider_id.strip():
            raise ConfigError("provider_id 不能为空")
        for name in _REQUIRED_CREDENTIALS:
            if name in self.optional_fields:
                continue
            if not str(getattr(self, name) or "").strip():
                raise ConfigError(
                    f"IntegrationContext 配置无效: {name} 不能为空", provider_id=self.provider_id
                )
        return self

    @classmethod
    def build(cls, **kwargs: Any) -> "IntegrationContext":
        """构造并把类型校验失败（ValidationError）也转换为 ConfigError。"""
        try:
            return cls(**kwargs)
        except ValidationError as e:
            errors = e.errors()
            detail = "; ".join(
                f"{'.'.join(str(p) for p in err.get('loc', ())) or 'context'}: {err.get('msg')}"
                for err in errors
            )
            raise ConfigError(
                f"IntegrationContext 配置无效: {detail}",
                provider_id=kwargs.get("provider_id"),
            ) from e


@dataclass(frozen=True)
class Callback:
    """Provider 回调携带的原始参数，每次登录只消费一次。"""

    code: str | None = None
    state: str | None = None
    error: str | None = None
    error_description: str | None = None

    @classmethod
    def from_params(cls, params: dict[str, Any]) -> "Callback":
        def _get(key: str) -> str | None:
            value = params.get(key)
            if value is None:
                return None
            return str(value)

        return cls(
            code=_get("code") or _get("auth_code") or _get("authorization_code"),
            state=_get("state"),
            error=_get("error"),
            error_description=_get("error_description") or _get("error_msg"),
        )


def parse_callback_params(callback_url: str) -> Callback:
    """从浏览器地址栏里的完整回调 URL 解析出 Callback（query 与 fragment 合并）。"""
    parsed = urlparse(callback_url.strip())
    query = dict(parse_qsl(parsed.query, keep_blank_values=True))
    fragment = dict(parse_qsl((parsed.fragment or "").lstrip("#"), keep_blank_values=True))
    merged = {**query, **fragment}

    # 部分 Provider 的 code 参数是 "<code>#<state>" 的拼接形式
    code = merged.get("code")
    if code and "#" in code:
        code_part, state_part = code.split("#", 1)
        merged["code"] = code_part
        if "state" not in merged and state_part:
            merged["state"] = state_part

    return Callback.from_params(merged)


@dataclass(frozen=True)
class AccessToken:
    access_token: str
    token_type: str | None = None
    expires_in: int | None = None
    refresh_token: str | None = None
    refresh_expires_in: int | None = None
    scope: str | None = None
    id_token: str | None = None
    open_id: str | None = None
    union_id: str | None = None
    # 未映射到 canonical 字段的其它字段
    extra: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    def __repr__(self) -> str:
        # 不在 repr 中暴露凭据
        return (
            f"AccessToken(token_type={self.token_type!r}, expires_in={self.expires_in!r}, "
            f"has_refresh_token={bool(self.refresh_token)}, scope={self.scope!r})"
        )


class Gender(str, Enum):
    MALE = "male"
    FEMALE = "female"
    UNKNOWN = "unknown"


@dataclass(frozen=True)
class Identity:
    uuid: str
    source_provider_id: str
    token: AccessToken
    username: str | None = None
    nickname: str | None = None
    avatar_url: str | None = None
    email: str | None = None
    gender: Gender = Gender.UNKNOWN
    raw_payload: dict[str, Any] = field(default_factory=dict)


class FlowState(str, Enum):
    INIT = "init"
    AWAITING_CALLBACK = "awaiting_callback"
    TOKEN_EXCHANGED = "token_exchanged"
    IDENTITY_FETCHED = "identity_fetched"
    REFRESHED = "refreshed"
    REVOKED = "revoked"
    FAILED = "failed"

    def can_transition(self, target: "FlowState") -> bool:
        if target is FlowState.FAILED:
            return self is not FlowState.REVOKED
        return target in _TRANSITIONS.get(self, frozenset())


_TRANSITIONS: dict[FlowState, frozenset[FlowState]] = {
    FlowState.INIT: frozenset({FlowState.AWAITING_CALLBACK}),
    FlowState.AWAITING_CALLBACK: frozenset({FlowState.TOKEN_EXCHANGED}),
    FlowState.TOKEN_EXCHANGED: frozenset(
        {FlowState.IDENTITY_FETCHED, FlowState.REFRESHED, FlowState.REVOKED}
    ),
    FlowState.IDENTITY_FETCHED: frozenset({FlowState.REFRESHED, FlowState.REVOKED}),
    FlowState.REFRESHED: frozenset({FlowState.TOKEN_EXCHANGED}),
    FlowState.REVOKED: frozenset(),
    FlowState.FAILED: frozenset(),
}


@dataclass(frozen=True)
class LoginResult:
    """login() 的统一返回：成功时 identity 非空，失败时 error 非空。"""

    state: FlowState
    identity: Identity | None = None
    error: ErrorRecord | None = None

    @property
    def ok(self) -> bool:
        return self.error is None and self.identity is not None


__all__ = [
    "IntegrationContext",
    "Callback",
    "parse_callback_params",
    "AccessToken",
    "Gender",
    "Identity",
    "FlowState",
    "LoginResult",
]
