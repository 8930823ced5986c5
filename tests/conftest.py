from typing import Any

import pytest

from authflow.core.exceptions import ProviderProtocolError
from authflow.core.registry import ProviderMetadata
from authflow.services.oauth.adapter import BaseProviderAdapter
from authflow.services.oauth.models import IntegrationContext
from authflow.services.oauth.state import MemoryStateCache


class FakeClock:
    def __init__(self, now: float = 1000.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


class FakeAdapter(BaseProviderAdapter):
    """记录调用次数的测试适配器，不发起任何网络请求。"""

    def __init__(
        self,
        metadata: ProviderMetadata,
        *,
        tokens: dict[str, dict[str, Any]] | None = None,
        user_info: dict[str, Any] | None = None,
        refresh_response: dict[str, Any] | None = None,
    ) -> None:
        super().__init__(metadata)
        self.tokens = tokens or {}
        self.user_info = user_info or {}
        self.refresh_response = refresh_response
        self.exchange_calls: list[str] = []
        self.user_info_calls: list[str] = []
        self.refresh_calls: list[str] = []
        self.revoke_calls: list[str] = []

    def build_authorize_url(self, context: IntegrationContext, state: str, scope: str) -> str:
        return f"{self.metadata.authorize_url}?client_id={context.client_id}&state={state}&scope={scope}"

    async def exchange_code_for_token(self, context: IntegrationContext, code: str) -> dict[str, Any]:
        self.exchange_calls.append(code)
        if code not in self.tokens:
            raise ProviderProtocolError("invalid code", provider_code="invalid_grant")
        return self.tokens[code]

    async def fetch_user_info(self, context: IntegrationContext, access_token: str) -> dict[str, Any]:
        self.user_info_calls.append(access_token)
        return self.user_info


class RefreshableFakeAdapter(FakeAdapter):
    supports_refresh = True
    supports_revoke = True

    async def refresh_token(self, context: IntegrationContext, refresh_token: str) -> dict[str, Any]:
        self.refresh_calls.append(refresh_token)
        return self.refresh_response or {"access_token": "T2", "expires_in": 7200}

    async def revoke(self, context: IntegrationContext, access_token: str) -> None:
        self.revoke_calls.append(access_token)


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def state_cache(clock: FakeClock) -> MemoryStateCache:
    return MemoryStateCache(clock=clock)


@pytest.fixture
def metadata() -> ProviderMetadata:
    return ProviderMetadata(
        provider_id="demo",
        authorize_url="https://idp.example.com/oauth/authorize",
        token_url="https://idp.example.com/oauth/token",
        user_info_url="https://idp.example.com/api/user",
        default_scopes=("a", "c"),
    )


@pytest.fixture
def context() -> IntegrationContext:
    return IntegrationContext(
        provider_id="demo",
        client_id="client-1",
        client_secret="secret-1",
        redirect_uri="https://app.example.com/callback",
    )


@pytest.fixture
def fake_adapter(metadata: ProviderMetadata) -> FakeAdapter:
    return FakeAdapter(
        metadata,
        tokens={"C1": {"access_token": "T1", "expires_in": 3600}},
        user_info={"id": 42, "login": "octo", "name": "Octo Cat", "email": "octo@example.com"},
    )


@pytest.fixture
def refreshable_adapter(metadata: ProviderMetadata) -> RefreshableFakeAdapter:
    return RefreshableFakeAdapter(
        metadata,
        tokens={"C1": {"access_token": "T1", "expires_in": 3600, "refresh_token": "R1"}},
        user_info={"id": 42},
    )
