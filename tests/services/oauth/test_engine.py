"""
FlowEngine 测试

覆盖完整流程、CSRF 失败不发请求、refresh/revoke 的能力判定以及错误分类。
"""

from urllib.parse import parse_qs, urlparse

import httpx
import pytest

from authflow.core.exceptions import (
    ConfigError,
    CsrfMismatchError,
    ErrorKind,
    NetworkError,
    ProviderProtocolError,
    UnsupportedOperationError,
)
from authflow.services.oauth.engine import FlowEngine
from authflow.services.oauth.models import (
    AccessToken,
    Callback,
    FlowState,
    IntegrationContext,
    LoginResult,
)


def _state_from(url: str) -> str:
    return parse_qs(urlparse(url).query)["state"][0]


@pytest.fixture
def engine(state_cache) -> FlowEngine:
    return FlowEngine(state_cache, state_ttl_seconds=180)


class TestAuthorize:
    @pytest.mark.asyncio
    async def test_url_contains_state_and_negotiated_scopes(self, engine, context, fake_adapter) -> None:
        url = await engine.authorize(context, fake_adapter, ["b", "a"])
        query = parse_qs(urlparse(url).query)
        assert query["client_id"] == ["client-1"]
        assert query["scope"] == ["a c b"]
        assert query["state"][0]

    @pytest.mark.asyncio
    async def test_each_call_issues_new_state(self, engine, context, fake_adapter) -> None:
        first = _state_from(await engine.authorize(context, fake_adapter))
        second = _state_from(await engine.authorize(context, fake_adapter))
        assert first != second

    @pytest.mark.asyncio
    async def test_context_scopes_used_when_none_requested(self, engine, fake_adapter) -> None:
        ctx = IntegrationContext(
            provider_id="demo",
            client_id="c",
            client_secret="s",
            redirect_uri="https://app/cb",
            scopes=("x",),
        )
        url = await engine.authorize(ctx, fake_adapter)
        assert parse_qs(urlparse(url).query)["scope"] == ["a c x"]

    @pytest.mark.asyncio
    async def test_mismatched_context_rejected(self, engine, fake_adapter) -> None:
        ctx = IntegrationContext(
            provider_id="other", client_id="c", client_secret="s", redirect_uri="https://app/cb"
        )
        with pytest.raises(ConfigError):
            await engine.authorize(ctx, fake_adapter)


class TestCallback:
    @pytest.mark.asyncio
    async def test_end_to_end_and_replay(self, engine, context, fake_adapter) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))

        token = await engine.callback(context, fake_adapter, Callback(code="C1", state=state))
        assert token.access_token == "T1"
        assert token.expires_in == 3600

        with pytest.raises(CsrfMismatchError):
            await engine.callback(context, fake_adapter, Callback(code="C1", state=state))
        assert fake_adapter.exchange_calls == ["C1"]

    @pytest.mark.asyncio
    async def test_invalid_state_makes_no_exchange_call(self, engine, context, fake_adapter) -> None:
        await engine.authorize(context, fake_adapter)
        with pytest.raises(CsrfMismatchError):
            await engine.callback(context, fake_adapter, Callback(code="C1", state="forged"))
        assert fake_adapter.exchange_calls == []

    @pytest.mark.asyncio
    async def test_expired_state_makes_no_exchange_call(self, engine, context, fake_adapter, clock) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))
        clock.advance(181)
        with pytest.raises(CsrfMismatchError):
            await engine.callback(context, fake_adapter, Callback(code="C1", state=state))
        assert fake_adapter.exchange_calls == []

    @pytest.mark.asyncio
    async def test_provider_error_fails_immediately(self, engine, context, fake_adapter) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))
        with pytest.raises(ProviderProtocolError) as exc_info:
            await engine.callback(
                context,
                fake_adapter,
                Callback(state=state, error="access_denied", error_description="user cancelled"),
            )
        assert exc_info.value.provider_code == "access_denied"
        assert exc_info.value.provider_id == "demo"
        assert fake_adapter.exchange_calls == []

    @pytest.mark.asyncio
    async def test_ignore_state_skips_verification(self, engine, fake_adapter) -> None:
        ctx = IntegrationContext(
            provider_id="demo",
            client_id="c",
            client_secret="s",
            redirect_uri="https://app/cb",
            ignore_state=True,
        )
        token = await engine.callback(ctx, fake_adapter, Callback(code="C1"))
        assert token.access_token == "T1"

    @pytest.mark.asyncio
    async def test_missing_code(self, engine, context, fake_adapter) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))
        with pytest.raises(ProviderProtocolError):
            await engine.callback(context, fake_adapter, Callback(state=state))

    @pytest.mark.asyncio
    async def test_adapter_error_gets_provider_id(self, engine, context, fake_adapter) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))
        with pytest.raises(ProviderProtocolError) as exc_info:
            await engine.callback(context, fake_adapter, Callback(code="bad", state=state))
        assert exc_info.value.provider_id == "demo"
        assert exc_info.value.provider_code == "invalid_grant"

    @pytest.mark.asyncio
    async def test_transport_timeout_becomes_network_error(
        self, engine, context, fake_adapter, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        calls = []

        async def boom(ctx, code):
            calls.append(code)
            raise httpx.ReadTimeout("timed out")

        monkeypatch.setattr(fake_adapter, "exchange_code_for_token", boom)
        state = _state_from(await engine.authorize(context, fake_adapter))

        with pytest.raises(NetworkError) as exc_info:
            await engine.callback(context, fake_adapter, Callback(code="C1", state=state))
        assert exc_info.value.retriable is True
        # 不在引擎内重试
        assert calls == ["C1"]


class TestFetchIdentity:
    @pytest.mark.asyncio
    async def test_fetch_identity_with_held_token(self, engine, context, fake_adapter) -> None:
        token = AccessToken(access_token="T1")
        identity = await engine.fetch_identity(context, fake_adapter, token)
        assert identity.uuid == "42"
        assert identity.email == "octo@example.com"
        assert identity.token == token
        assert fake_adapter.user_info_calls == ["T1"]


class TestLogin:
    @pytest.mark.asyncio
    async def test_success(self, engine, context, fake_adapter) -> None:
        state = _state_from(await engine.authorize(context, fake_adapter))
        result = await engine.login(context, fake_adapter, Callback(code="C1", state=state))
        assert isinstance(result, LoginResult)
        assert result.ok
        assert result.state == FlowState.IDENTITY_FETCHED
        assert result.identity is not None
        assert result.identity.token.access_token == "T1"

    @pytest.mark.asyncio
    async def test_failure_is_returned_not_raised(self, engine, context, fake_adapter) -> None:
        result = await engine.login(context, fake_adapter, Callback(code="C1", state="forged"))
        assert not result.ok
        assert result.state == FlowState.FAILED
        assert result.identity is None
        assert result.error is not None
        assert result.error.kind == ErrorKind.CSRF_MISMATCH


class TestRefresh:
    @pytest.mark.asyncio
    async def test_refresh_returns_new_token(self, engine, context, refreshable_adapter) -> None:
        token = AccessToken(access_token="T1", refresh_token="R1")
        refreshed = await engine.refresh(context, refreshable_adapter, token)
        assert refreshed.access_token == "T2"
        assert refreshed.expires_in == 7200
        # 未返回新的 refresh_token 时沿用旧值
        assert refreshed.refresh_token == "R1"
        assert token.access_token == "T1"
        assert refreshable_adapter.refresh_calls == ["R1"]

    @pytest.mark.asyncio
    async def test_rotated_refresh_token(self, engine, context, refreshable_adapter) -> None:
        refreshable_adapter.refresh_response = {"access_token": "T3", "refresh_token": "R2"}
        refreshed = await engine.refresh(
            context, refreshable_adapter, AccessToken(access_token="T1", refresh_token="R1")
        )
        assert refreshed.refresh_token == "R2"

    @pytest.mark.asyncio
    async def test_unsupported_adapter(self, engine, context, fake_adapter) -> None:
        with pytest.raises(UnsupportedOperationError):
            await engine.refresh(context, fake_adapter, AccessToken(access_token="T1", refresh_token="R1"))

    @pytest.mark.asyncio
    async def test_token_without_refresh_token(self, engine, context, refreshable_adapter) -> None:
        with pytest.raises(ConfigError):
            await engine.refresh(context, refreshable_adapter, AccessToken(access_token="T1"))
        assert refreshable_adapter.refresh_calls == []


class TestRevoke:
    @pytest.mark.asyncio
    async def test_unsupported_revoke_never_ok(self, engine, context, fake_adapter) -> None:
        with pytest.raises(UnsupportedOperationError) as exc_info:
            await engine.revoke(context, fake_adapter, AccessToken(access_token="T1"))
        assert exc_info.value.record.kind == ErrorKind.UNSUPPORTED_OPERATION

    @pytest.mark.asyncio
    async def test_revoke(self, engine, context, refreshable_adapter) -> None:
        await engine.revoke(context, refreshable_adapter, AccessToken(access_token="T1"))
        assert refreshable_adapter.revoke_calls == ["T1"]


class DuckAdapter:
    """只实现必需方法、不继承 BaseProviderAdapter 的适配器"""

    def __init__(self, metadata) -> None:
        self.metadata = metadata

    @property
    def provider_id(self) -> str:
        return self.metadata.provider_id

    def build_authorize_url(self, context, state, scope) -> str:
        return f"{self.metadata.authorize_url}?state={state}&scope={scope}"

    async def exchange_code_for_token(self, context, code):
        return {"access_token": "T1", "refresh_token": "R1"}

    async def fetch_user_info(self, context, access_token):
        return {"id": 1}


class TestOptionalCapabilities:
    @pytest.mark.asyncio
    async def test_adapter_without_refresh_or_revoke(self, engine, context, metadata) -> None:
        adapter = DuckAdapter(metadata)
        token = AccessToken(access_token="T1", refresh_token="R1")

        with pytest.raises(UnsupportedOperationError):
            await engine.refresh(context, adapter, token)
        with pytest.raises(UnsupportedOperationError):
            await engine.revoke(context, adapter, token)

    @pytest.mark.asyncio
    async def test_flag_without_method_is_unsupported(self, engine, context, metadata) -> None:
        adapter = DuckAdapter(metadata)
        adapter.supports_revoke = True  # type: ignore[attr-defined]
        with pytest.raises(UnsupportedOperationError):
            await engine.revoke(context, adapter, AccessToken(access_token="T1"))

    @pytest.mark.asyncio
    async def test_duck_adapter_login(self, engine, context, metadata) -> None:
        adapter = DuckAdapter(metadata)
        url = await engine.authorize(context, adapter)
        result = await engine.login(context, adapter, Callback(code="C1", state=_state_from(url)))
        assert result.ok
        assert result.identity.uuid == "1"
