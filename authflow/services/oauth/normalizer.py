"""
响应归一化

把适配器已经解析好的原始字段映射为 canonical 的 AccessToken / Identity。
纯函数：不发请求、不修改入参。原始字段缺失时保持 None，不填空字符串，
以便区分"缺失"和"显式为空"。
"""

from __future__ import annotations

from typing import Any, Mapping

import jwt

from authflow.core.exceptions import ProviderProtocolError
from authflow.services.oauth.models import AccessToken, Gender, Identity

# canonical 字段 -> 候选原始字段（按优先级）
DEFAULT_TOKEN_FIELDS: dict[str, tuple[str, ...]] = {
    "access_token": ("access_token", "accessToken"),
    "token_type": ("token_type", "tokenType"),
    "expires_in": ("expires_in", "expiresIn", "expires"),
    "refresh_token": ("refresh_token", "refreshToken"),
    "refresh_expires_in": (
        "refresh_expires_in",
        "refresh_token_expires_in",
        "refreshExpiresIn",
        "re_expires_in",
    ),
    "scope": ("scope", "scopes"),
    "id_token": ("id_token", "idToken"),
    "open_id": ("openid", "open_id", "openId"),
    "union_id": ("unionid", "union_id", "unionId"),
}

# uuid 候选分两组：跨应用稳定的 union 类标识优先于单应用标识
DEFAULT_IDENTITY_FIELDS: dict[str, tuple[str, ...]] = {
    "union_uuid": ("unionid", "union_id", "unionId"),
    "uuid": ("sub", "id", "uid", "user_id", "userId", "openid", "open_id", "openId"),
    "username": ("username", "login", "preferred_username", "name"),
    "nickname": ("nickname", "nick", "name", "display_name", "displayName"),
    "avatar_url": ("avatar_url", "avatar", "picture", "avatarUrl", "headimgurl", "figureurl"),
    "email": ("email", "mail"),
    "gender": ("gender", "sex"),
}

_INT_TOKEN_FIELDS = ("expires_in", "refresh_expires_in")

_MALE_VALUES = {"m", "male", "1", "男"}
_FEMALE_VALUES = {"f", "female", "2", "女"}


def _merge_fields(
    defaults: Mapping[str, tuple[str, ...]], overrides: Mapping[str, tuple[str, ...]] | None
) -> dict[str, tuple[str, ...]]:
    merged = dict(defaults)
    for key, candidates in (overrides or {}).items():
        # 覆盖的候选优先，默认候选兜底
        merged[key] = tuple(candidates) + tuple(c for c in defaults.get(key, ()) if c not in candidates)
    return merged


def _pick(raw: Mapping[str, Any], candidates: tuple[str, ...]) -> tuple[str | None, Any]:
    for key in candidates:
        if key in raw and raw[key] is not None:
            return key, raw[key]
    return None, None


def _as_str(value: Any) -> str | None:
    if value is None:
        return None
    if isinstance(value, (list, tuple)):
        return " ".join(str(v) for v in value)
    return str(value)


def _as_int(value: Any) -> int | None:
    if value is None or isinstance(value, bool):
        return None
    try:
        return int(float(value))
    except (TypeError, ValueError):
        return None


def parse_gender(value: Any) -> Gender:
    if value is None:
        return Gender.UNKNOWN
    normalized = str(value).strip().lower()
    if normalized in _MALE_VALUES:
        return Gender.MALE
    if normalized in _FEMALE_VALUES:
        return Gender.FEMALE
    return Gender.UNKNOWN


def decode_id_token_claims(id_token: str | None) -> dict[str, Any]:
    """解析 OIDC id_token 的 claims，不校验签名（token 直接来自 token 端点的 TLS 响应）。"""
    if not id_token:
        return {}
    try:
        claims = jwt.decode(
            id_token,
            options={
                "verify_signature": False,
                "verify_aud": False,
                "verify_exp": False,
            },
        )
    except jwt.PyJWTError:
        return {}
    return claims if isinstance(claims, dict) else {}


def normalize_token(
    provider_id: str,
    raw: Mapping[str, Any],
    field_map: Mapping[str, tuple[str, ...]] | None = None,
) -> AccessToken:
    fields = _merge_fields(DEFAULT_TOKEN_FIELDS, field_map)
    consumed: set[str] = set()
    values: dict[str, Any] = {}

    for canonical, candidates in fields.items():
        key, value = _pick(raw, candidates)
        if key is None:
            continue
        consumed.add(key)
        values[canonical] = _as_int(value) if canonical in _INT_TOKEN_FIELDS else _as_str(value)

    access_token = values.pop("access_token", None)
    if not access_token:
        raise ProviderProtocolError("token 响应缺少 access_token", provider_id=provider_id)

    extra = {k: v for k, v in raw.items() if k not in consumed}
    return AccessToken(access_token=access_token, extra=extra, raw=dict(raw), **values)


def normalize_identity(
    provider_id: str,
    raw: Mapping[str, Any],
    token: AccessToken,
    field_map: Mapping[str, tuple[str, ...]] | None = None,
) -> Identity:
    fields = _merge_fields(DEFAULT_IDENTITY_FIELDS, field_map)
    claims = decode_id_token_claims(token.id_token)

    def _field(name: str) -> str | None:
        _, value = _pick(raw, fields.get(name, ()))
        return _as_str(value)

    _, union_value = _pick(raw, fields["union_uuid"])
    uuid = (
        _as_str(union_value)
        or token.union_id
        or _field("uuid")
        or token.open_id
        or _as_str(claims.get("sub"))
    )
    if not uuid:
        raise ProviderProtocolError("用户信息缺少唯一标识", provider_id=provider_id)

    _, gender_value = _pick(raw, fields["gender"])
    return Identity(
        uuid=uuid,
        source_provider_id=provider_id,
        token=token,
        username=_field("username"),
        nickname=_field("nickname"),
        avatar_url=_field("avatar_url"),
        email=_field("email") or _as_str(claims.get("email")),
        gender=parse_gender(gender_value),
        raw_payload=dict(raw),
    )


__all__ = [
    "DEFAULT_TOKEN_FIELDS",
    "DEFAULT_IDENTITY_FIELDS",
    "decode_id_token_claims",
    "normalize_identity",
    "normalize_token",
    "parse_gender",
]
