"""Tests for CredentialExchanger."""

import httpx
import pytest
import pytest_asyncio

from hubproxy.cache.smart_cache import SmartCache
from hubproxy.registry.auth import CredentialExchanger
from hubproxy.registry.exceptions import InvalidResponse
from hubproxy.registry.http import HubHttp
from hubproxy.registry.models import HubConfig, TokenKind
from tests.fixtures.fake_hub import (
    ANONYMOUS_TOKEN,
    AUTH,
    HUB,
    HUB_JWT,
    USER_REGISTRY_TOKEN,
    USERNAME,
    VALID_CREDENTIAL,
    FakeDockerHub,
    reply,
)

pytestmark = pytest.mark.unit

SCOPE = "repository:alice/secret-app:pull"


@pytest.fixture
def hub():
    return FakeDockerHub()


@pytest.fixture
def cache(fake_clock):
    return SmartCache(clock=fake_clock)


@pytest_asyncio.fixture
async def make_exchanger(hub, cache, fake_clock):
    """Build exchangers over the fake hub, closing their sessions afterwards."""
    sessions = []

    def build(config: HubConfig, with_cache: bool = True) -> CredentialExchanger:
        http = HubHttp(config, transport=hub.transport, clock=fake_clock)
        sessions.append(http)
        return CredentialExchanger(config, http, cache=cache if with_cache else None)

    yield build
    for http in sessions:
        await http.close()


class TestRegistryToken:
    """Tests for get_registry_token."""

    @pytest.mark.asyncio
    async def test_without_credential_returns_error(self, make_exchanger, hub, anonymous_config):
        exchanger = make_exchanger(anonymous_config)

        result = await exchanger.get_registry_token(SCOPE)

        assert not result.ok
        assert result.error == "No credential configured"
        assert hub.requests == []

    @pytest.mark.asyncio
    async def test_basic_auth_exchange(self, make_exchanger, hub, credential_config):
        exchanger = make_exchanger(credential_config)

        result = await exchanger.get_registry_token(SCOPE)

        assert result.token == USER_REGISTRY_TOKEN
        request = hub.calls("GET", AUTH)[0]
        assert request.headers["Authorization"].startswith("Basic ")
        assert request.url.params["scope"] == SCOPE
        assert request.url.params["service"] == "registry.docker.io"

    @pytest.mark.asyncio
    async def test_falls_back_to_bearer_credential(self, make_exchanger, hub, credential_config):
        def bearer_only(request: httpx.Request) -> httpx.Response:
            if request.headers.get("Authorization") == f"Bearer {VALID_CREDENTIAL}":
                return httpx.Response(200, json={"access_token": "pat-token"})
            return httpx.Response(401, json={"details": "basic auth not accepted"})

        hub.route("GET", AUTH, bearer_only)
        exchanger = make_exchanger(credential_config)

        result = await exchanger.get_registry_token(SCOPE)

        assert result.token == "pat-token"
        assert len(hub.calls("GET", AUTH)) == 2

    @pytest.mark.asyncio
    async def test_both_forms_rejected(self, make_exchanger, hub, invalid_credential_config):
        exchanger = make_exchanger(invalid_credential_config)

        result = await exchanger.get_registry_token(SCOPE)

        assert not result.ok
        assert "Registry token exchange failed" in result.error
        assert len(hub.calls("GET", AUTH)) == 2

    @pytest.mark.asyncio
    async def test_response_without_token(self, make_exchanger, hub, credential_config):
        hub.route("GET", AUTH, reply(200, {"expires_in": 300}))
        exchanger = make_exchanger(credential_config)

        result = await exchanger.get_registry_token(SCOPE)

        assert not result.ok
        assert "did not contain a token" in result.error


class TestTokenCaching:
    """Tests for reuse of issued tokens."""

    @pytest.mark.asyncio
    async def test_token_reused_until_expiry(self, make_exchanger, hub, credential_config, fake_clock):
        exchanger = make_exchanger(credential_config)

        await exchanger.get_registry_token(SCOPE)
        await exchanger.get_registry_token(SCOPE)
        assert len(hub.calls("GET", AUTH)) == 1

        fake_clock.advance(271)
        await exchanger.get_registry_token(SCOPE)
        assert len(hub.calls("GET", AUTH)) == 2

    @pytest.mark.asyncio
    async def test_tokens_are_scoped(self, make_exchanger, hub, credential_config):
        exchanger = make_exchanger(credential_config)

        await exchanger.get_registry_token(SCOPE)
        await exchanger.get_registry_token("repository:alice/other:pull")

        assert len(hub.calls("GET", AUTH)) == 2

    @pytest.mark.asyncio
    async def test_credential_never_stored_in_cache(self, make_exchanger, cache, credential_config):
        exchanger = make_exchanger(credential_config)

        await exchanger.get_registry_token(SCOPE)
        await exchanger.get_hub_token()

        for entry in cache.info()["entries"]:
            assert VALID_CREDENTIAL not in entry["key"]
            assert cache.peek(entry["key"]) != VALID_CREDENTIAL

    @pytest.mark.asyncio
    async def test_works_without_cache(self, make_exchanger, hub, credential_config):
        exchanger = make_exchanger(credential_config, with_cache=False)

        await exchanger.get_registry_token(SCOPE)
        await exchanger.get_registry_token(SCOPE)

        assert len(hub.calls("GET", AUTH)) == 2


class TestAnonymousToken:
    """Tests for get_anonymous_registry_token."""

    @pytest.mark.asyncio
    async def test_returns_anonymous_token(self, make_exchanger, hub, anonymous_config):
        exchanger = make_exchanger(anonymous_config)

        token = await exchanger.get_anonymous_registry_token("repository:library/nginx:pull")

        assert token == ANONYMOUS_TOKEN
        assert "Authorization" not in hub.calls("GET", AUTH)[0].headers

    @pytest.mark.asyncio
    async def test_missing_token_raises(self, make_exchanger, hub, anonymous_config):
        hub.route("GET", AUTH, reply(200, {}))
        exchanger = make_exchanger(anonymous_config)

        with pytest.raises(InvalidResponse):
            await exchanger.get_anonymous_registry_token("repository:library/nginx:pull")


class TestHubToken:
    """Tests for get_hub_token."""

    @pytest.mark.asyncio
    async def test_login(self, make_exchanger, hub, credential_config):
        exchanger = make_exchanger(credential_config)

        result = await exchanger.get_hub_token()

        assert result.token == HUB_JWT
        login = hub.calls("POST", f"{HUB}/users/login/")[0]
        assert USERNAME.encode() in login.content

    @pytest.mark.asyncio
    async def test_login_rejected(self, make_exchanger, invalid_credential_config):
        exchanger = make_exchanger(invalid_credential_config)

        result = await exchanger.get_hub_token()

        assert not result.ok
        assert result.error.startswith("Hub login failed")

    @pytest.mark.asyncio
    async def test_without_credential(self, make_exchanger, hub, anonymous_config):
        exchanger = make_exchanger(anonymous_config)

        result = await exchanger.get_hub_token()

        assert not result.ok
        assert hub.requests == []


class TestDispatch:
    """Tests for token_for and header formats."""

    @pytest.mark.asyncio
    async def test_token_for_dispatches_on_kind(self, make_exchanger, credential_config):
        exchanger = make_exchanger(credential_config)

        registry = await exchanger.token_for(TokenKind.REGISTRY, SCOPE)
        hub_session = await exchanger.token_for(TokenKind.HUB, SCOPE)

        assert registry.token == USER_REGISTRY_TOKEN
        assert hub_session.token == HUB_JWT

    def test_authorization_header(self):
        assert CredentialExchanger.authorization_header(TokenKind.REGISTRY, "t") == "Bearer t"
        assert CredentialExchanger.authorization_header(TokenKind.HUB, "t") == "JWT t"

    @pytest.mark.asyncio
    async def test_issued_tokens_are_redacted(self, make_exchanger, hub, credential_config):
        http = HubHttp(credential_config, transport=hub.transport)
        exchanger = CredentialExchanger(credential_config, http)

        await exchanger.get_registry_token(SCOPE)
        message = http.redact(f"failed with {USER_REGISTRY_TOKEN} using {VALID_CREDENTIAL}")
        await http.close()

        assert USER_REGISTRY_TOKEN not in message
        assert VALID_CREDENTIAL not in message


class TestIssuedTokenTracking:
    """Tests for how long issued tokens stay in the redaction set."""

    @staticmethod
    def _unique_tokens(hub):
        issued = []

        def responder(request: httpx.Request) -> httpx.Response:
            issued.append(f"anon-token-{len(issued)}")
            return httpx.Response(200, json={"token": issued[-1], "expires_in": 300})

        hub.route("GET", AUTH, responder)
        return issued

    @pytest.mark.asyncio
    async def test_expired_tokens_are_forgotten(
        self, make_exchanger, hub, anonymous_config, fake_clock
    ):
        issued = self._unique_tokens(hub)
        exchanger = make_exchanger(anonymous_config)

        for n in range(50):
            await exchanger.get_anonymous_registry_token(f"repository:library/image{n}:pull")
        assert len(exchanger._http.secrets()) == 50

        fake_clock.advance(300)
        await exchanger.get_anonymous_registry_token("repository:library/nginx:pull")

        assert exchanger._http.secrets() == [issued[-1]]
        assert len(exchanger._http.issued_tokens) == 1

    @pytest.mark.asyncio
    async def test_tracked_tokens_are_capped(
        self, make_exchanger, hub, anonymous_config, monkeypatch
    ):
        monkeypatch.setattr("hubproxy.registry.http.ISSUED_TOKEN_LIMIT", 10)
        issued = self._unique_tokens(hub)
        exchanger = make_exchanger(anonymous_config)

        for n in range(50):
            await exchanger.get_anonymous_registry_token(f"repository:library/image{n}:pull")

        assert len(exchanger._http.issued_tokens) == 10
        assert issued[-1] in exchanger._http.secrets()

    @pytest.mark.asyncio
    async def test_credential_is_always_redacted(self, make_exchanger, credential_config, fake_clock):
        exchanger = make_exchanger(credential_config)
        await exchanger.get_registry_token(SCOPE)

        fake_clock.advance(3600)

        assert exchanger._http.redact(f"bad {VALID_CREDENTIAL}") == "bad ***"
        assert USER_REGISTRY_TOKEN not in exchanger._http.secrets()
