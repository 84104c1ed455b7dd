# tests/test_core_strategies.py
"""
Testes das estratégias de login social e do `StrategyRegistry`
(`ct_auth.core.strategies`), com os provedores simulados por `respx`.
"""

# ========================
# --- Importações ---
# ========================
import httpx
import pytest
import pytest_asyncio
import respx

# --- Módulos da Aplicação ---
from ct_auth.core import strategies as strategies_module
from ct_auth.core.errors import ProviderNotFound, ProviderTokenInvalid
from ct_auth.core.strategies import (
    APPLE_KEYS_URL,
    FACEBOOK_GRAPH_URL,
    GOOGLE_TOKENINFO_URL,
    GOOGLE_USERINFO_URL,
    AppleStrategy,
    FacebookStrategy,
    GoogleStrategy,
    StrategyRegistry,
    build_strategy_registry,
)

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio


@pytest_asyncio.fixture
async def http_client():
    client = httpx.AsyncClient()
    try:
        yield client
    finally:
        await client.aclose()

# ========================
# --- Google ---
# ========================
@respx.mock
async def test_google_verify_success(http_client):
    respx.get(GOOGLE_TOKENINFO_URL).mock(return_value=httpx.Response(200, json={"aud": "google-client", "sub": "g-1"}))
    respx.get(GOOGLE_USERINFO_URL).mock(
        return_value=httpx.Response(200, json={"sub": "g-1", "email": "g@example.com", "name": "G", "picture": "http://p"})
    )

    profile = await GoogleStrategy(http_client, "google-client").verify("access")

    assert profile.provider == "google"
    assert profile.providerId == "g-1"
    assert profile.email == "g@example.com"
    assert profile.emailVerified is False
    assert profile.photo == "http://p"


@pytest.mark.parametrize("flag", [True, "true"])
@respx.mock
async def test_google_verified_email(http_client, flag):
    respx.get(GOOGLE_TOKENINFO_URL).mock(return_value=httpx.Response(200, json={"aud": "google-client", "sub": "g-1"}))
    respx.get(GOOGLE_USERINFO_URL).mock(
        return_value=httpx.Response(200, json={"sub": "g-1", "email": "g@example.com", "email_verified": flag})
    )

    profile = await GoogleStrategy(http_client, "google-client").verify("access")

    assert profile.emailVerified is True


@respx.mock
async def test_google_without_subject_is_rejected(http_client):
    respx.get(GOOGLE_TOKENINFO_URL).mock(return_value=httpx.Response(200, json={"aud": "google-client"}))
    respx.get(GOOGLE_USERINFO_URL).mock(return_value=httpx.Response(200, json={"email": "g@example.com"}))

    with pytest.raises(ProviderTokenInvalid):
        await GoogleStrategy(http_client, "google-client").verify("access")


@respx.mock
async def test_google_rejects_other_audience(http_client):
    respx.get(GOOGLE_TOKENINFO_URL).mock(return_value=httpx.Response(200, json={"aud": "someone-else"}))
    with pytest.raises(ProviderTokenInvalid):
        await GoogleStrategy(http_client, "google-client").verify("access")


@respx.mock
async def test_google_rejected_token(http_client):
    respx.get(GOOGLE_TOKENINFO_URL).mock(return_value=httpx.Response(400, json={"error": "invalid_token"}))
    with pytest.raises(ProviderTokenInvalid) as exc_info:
        await GoogleStrategy(http_client, "google-client").verify("access")
    assert exc_info.value.message == "Invalid access token"


@respx.mock
async def test_provider_timeout(http_client):
    respx.get(GOOGLE_TOKENINFO_URL).mock(side_effect=httpx.ReadTimeout("slow"))
    with pytest.raises(ProviderTokenInvalid):
        await GoogleStrategy(http_client, "google-client").verify("access")

# ========================
# --- Facebook ---
# ========================
@respx.mock
async def test_facebook_verify_success(http_client):
    respx.get(f"{FACEBOOK_GRAPH_URL}/app").mock(return_value=httpx.Response(200, json={"id": "123"}))
    respx.get(f"{FACEBOOK_GRAPH_URL}/me").mock(
        return_value=httpx.Response(
            200,
            json={"id": "fb-1", "name": "F", "email": "f@example.com", "picture": {"data": {"url": "http://fb/p"}}},
        )
    )

    profile = await FacebookStrategy(http_client, "123").verify("access")

    assert profile.providerId == "fb-1"
    assert profile.photo == "http://fb/p"


@respx.mock
async def test_facebook_without_id_is_rejected(http_client):
    respx.get(f"{FACEBOOK_GRAPH_URL}/app").mock(return_value=httpx.Response(200, json={"id": "123"}))
    respx.get(f"{FACEBOOK_GRAPH_URL}/me").mock(return_value=httpx.Response(200, json={"name": "F"}))

    with pytest.raises(ProviderTokenInvalid):
        await FacebookStrategy(http_client, "123").verify("access")


@respx.mock
async def test_facebook_rejects_other_app(http_client):
    respx.get(f"{FACEBOOK_GRAPH_URL}/app").mock(return_value=httpx.Response(200, json={"id": "999"}))
    with pytest.raises(ProviderTokenInvalid):
        await FacebookStrategy(http_client, "123").verify("access")

# ========================
# --- Apple ---
# ========================
@respx.mock
async def test_apple_rejects_garbage_identity_token(http_client):
    respx.get(APPLE_KEYS_URL).mock(return_value=httpx.Response(200, json={"keys": []}))
    with pytest.raises(ProviderTokenInvalid):
        await AppleStrategy(http_client, "apple-client").verify("not-a-jwt")


@respx.mock
async def test_apple_keys_unavailable(http_client):
    respx.get(APPLE_KEYS_URL).mock(return_value=httpx.Response(503))
    with pytest.raises(ProviderTokenInvalid):
        await AppleStrategy(http_client, "apple-client").verify("token")

# ========================
# --- Registro ---
# ========================
async def test_registry_get_unknown_provider(http_client):
    registry = StrategyRegistry([GoogleStrategy(http_client, "id")])
    assert registry.names == ["google"]
    with pytest.raises(ProviderNotFound):
        registry.get("twitter")


async def test_build_registry_from_settings(monkeypatch):
    monkeypatch.setattr(strategies_module.settings, "GOOGLE_CLIENT_ID", "google-client")
    monkeypatch.setattr(strategies_module.settings, "FACEBOOK_APP_ID", None)
    monkeypatch.setattr(strategies_module.settings, "APPLE_CLIENT_ID", "apple-client")

    registry = build_strategy_registry()
    try:
        assert registry.names == ["apple", "google"]
        assert isinstance(registry.get("google"), GoogleStrategy)
    finally:
        await registry.aclose()
