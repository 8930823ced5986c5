"""
Provider 元数据注册表

ProviderMetadata 是纯数据：端点地址、默认 scope、scope 分隔符以及响应结构提示
（字段名映射、业务错误字段）。运行时只读，按 provider 共享。
"""

from __future__ import annotations

from types import MappingProxyType
from typing import Literal, Mapping

from pydantic import BaseModel, ConfigDict, Field, field_validator

from authflow.core.exceptions import ConfigError, UnsupportedOperationError


class ProviderMetadata(BaseModel):
    """单个 Provider 的静态元数据"""

    model_config = ConfigDict(frozen=True)

    provider_id: str = Field(..., min_length=1)
    authorize_url: str = Field(..., min_length=1)
    token_url: str = Field(..., min_length=1)
    user_info_url: str = Field(..., min_length=1)
    refresh_url: str | None = None
    revoke_url: str | None = None

    default_scopes: tuple[str, ...] = ()
    scope_separator: str = " "
    scope_url_encoded: bool = False
    # 部分 Provider 会拒绝非预期的 scope 组合
    force_default_scopes: bool = False

    # 响应结构提示：canonical 字段 -> 候选原始字段名（按优先级）
    token_fields: dict[str, tuple[str, ...]] = Field(default_factory=dict)
    identity_fields: dict[str, tuple[str, ...]] = Field(default_factory=dict)

    # 响应体内的业务错误字段；HTTP 200 也可能携带错误
    error_fields: tuple[str, ...] = ("error", "errcode", "error_code")
    message_fields: tuple[str, ...] = ("error_description", "errmsg", "error_msg", "message")
    success_codes: tuple[str, ...] = ("0", "ok", "success")
    # 响应被包裹在某个 key 下（如 {"data": {...}}）
    response_root: str | None = None

    token_placement: Literal["header", "query"] = "header"
    user_info_method: Literal["GET", "POST"] = "GET"

    @field_validator("scope_separator")
    @classmethod
    def validate_separator(cls, v: str) -> str:
        if not v:
            raise ValueError("scope_separator 不能为空")
        return v

    @property
    def supports_refresh(self) -> bool:
        return bool(self.refresh_url)

    @property
    def supports_revoke(self) -> bool:
        return bool(self.revoke_url)


class ProviderRegistry:
    """
    Provider 元数据注册表

    注册后不可替换：同名重复注册直接报错，需要更新时构造新的注册表。
    """

    def __init__(self, providers: Mapping[str, ProviderMetadata] | None = None):
        self._providers: dict[str, ProviderMetadata] = {}
        for metadata in (providers or {}).values():
            self.register(metadata)

    def register(self, metadata: ProviderMetadata) -> None:
        if metadata.provider_id in self._providers:
            raise ConfigError(
                f"重复注册同名 Provider: {metadata.provider_id}",
                provider_id=metadata.provider_id,
            )
        self._providers[metadata.provider_id] = metadata

    def get(self, provider_id: str) -> ProviderMetadata:
        metadata = self._providers.get(provider_id)
        if metadata is None:
            raise UnsupportedOperationError(
                f"未注册的 Provider: {provider_id}", provider_id=provider_id
            )
        return metadata

    def __contains__(self, provider_id: object) -> bool:
        return provider_id in self._providers

    def provider_ids(self) -> list[str]:
        return sorted(self._providers)

    def as_mapping(self) -> Mapping[str, ProviderMetadata]:
        return MappingProxyType(self._providers)


# 内置的常见 Provider（数据而非逻辑，可按需覆盖）
BUILTIN_PROVIDERS: Mapping[str, ProviderMetadata] = MappingProxyType(
    {
        "github": ProviderMetadata(
            provider_id="github",
            authorize_url="https://github.com/login/oauth/authorize",
            token_url="https://github.com/login/oauth/access_token",
            user_info_url="https://api.github.com/user",
            default_scopes=("read:user", "user:email"),
            identity_fields={"username": ("login",), "nickname": ("name",)},
        ),
        "gitee": ProviderMetadata(
            provider_id="gitee",
            authorize_url="https://gitee.com/oauth/authorize",
            token_url="https://gitee.com/oauth/token",
            user_info_url="https://gitee.com/api/v5/user",
            refresh_url="https://gitee.com/oauth/token",
            default_scopes=("user_info",),
            token_placement="query",
            identity_fields={"username": ("login",), "nickname": ("name",)},
        ),
        "gitlab": ProviderMetadata(
            provider_id="gitlab",
            authorize_url="https://gitlab.com/oauth/authorize",
            token_url="https://gitlab.com/oauth/token",
            user_info_url="https://gitlab.com/api/v4/user",
            refresh_url="https://gitlab.com/oauth/token",
            revoke_url="https://gitlab.com/oauth/revoke",
            default_scopes=("read_user", "openid", "profile", "email"),
            identity_fields={"nickname": ("name",)},
        ),
        "google": ProviderMetadata(
            provider_id="google",
            authorize_url="https://accounts.google.com/o/oauth2/v2/auth",
            token_url="https://oauth2.googleapis.com/token",
            user_info_url="https://openidconnect.googleapis.com/v1/userinfo",
            refresh_url="https://oauth2.googleapis.com/token",
            revoke_url="https://oauth2.googleapis.com/revoke",
            default_scopes=("openid", "email", "profile"),
            identity_fields={"username": ("email",), "nickname": ("name",)},
        ),
        "microsoft": ProviderMetadata(
            provider_id="microsoft",
            authorize_url="https://login.microsoftonline.com/common/oauth2/v2.0/authorize",
            token_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
            user_info_url="https://graph.microsoft.com/v1.0/me",
            refresh_url="https://login.microsoftonline.com/common/oauth2/v2.0/token",
            default_scopes=("openid", "profile", "email", "offline_access", "User.Read"),
            identity_fields={
                "username": ("userPrincipalName",),
                "nickname": ("displayName",),
                "email": ("mail",),
            },
        ),
    }
)


def default_registry() -> ProviderRegistry:
    return ProviderRegistry(BUILTIN_PROVIDERS)


__all__ = ["ProviderMetadata", "ProviderRegistry", "BUILTIN_PROVIDERS", "default_registry"]
