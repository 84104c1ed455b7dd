# tests/test_core_gateway.py
"""
Testes do cliente do gateway de microsserviços (`ct_auth.core.gateway`),
com as respostas HTTP simuladas por `respx`.
"""

# ========================
# --- Importações ---
# ========================
import httpx
import pytest
import pytest_asyncio
import respx

# --- Módulos da Aplicação ---
from ct_auth.core import gateway as gateway_module
from ct_auth.core.gateway import GatewayClient

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio

BASE_URL = "http://gateway.test"
USER_ID = "user-1"


@pytest_asyncio.fixture
async def gateway():
    client = GatewayClient(base_url=BASE_URL + "/", api_key="api-key", token="service-token")
    try:
        yield client
    finally:
        await client.aclose()

# ========================
# --- Respostas com chaves deleted/protected ---
# ========================
@respx.mock
async def test_delete_datasets_parses_deleted_and_protected(gateway):
    route = respx.delete(f"{BASE_URL}/v1/dataset/by-user/{USER_ID}").mock(
        return_value=httpx.Response(200, json={"deletedDatasets": [{"id": "d1"}, {"id": "d2"}], "protectedDatasets": [{"id": "d3"}]})
    )

    result = await gateway.delete_datasets(USER_ID)

    assert result.ok
    assert result.count == 2
    assert result.protectedData == [{"id": "d3"}]
    request = route.calls.last.request
    assert request.headers["authorization"] == "Bearer service-token"
    assert request.headers["x-api-key"] == "api-key"


@respx.mock
async def test_delete_layers_single_object_is_wrapped(gateway):
    respx.delete(f"{BASE_URL}/v1/layer/by-user/{USER_ID}").mock(
        return_value=httpx.Response(200, json={"deletedLayers": {"id": "l1"}})
    )
    result = await gateway.delete_layers(USER_ID)
    assert result.deletedData == [{"id": "l1"}]
    assert result.protectedData == []

# ========================
# --- Respostas com lista em data ---
# ========================
@respx.mock
async def test_delete_areas_uses_v2_path(gateway):
    respx.delete(f"{BASE_URL}/v2/area/by-user/{USER_ID}").mock(
        return_value=httpx.Response(200, json={"data": [{"id": "a1"}]})
    )
    result = await gateway.delete_areas(USER_ID)
    assert result.count == 1


@respx.mock
async def test_delete_subscriptions_empty(gateway):
    respx.delete(f"{BASE_URL}/v1/subscriptions/by-user/{USER_ID}").mock(
        return_value=httpx.Response(200, json={"data": []})
    )
    result = await gateway.delete_subscriptions(USER_ID)
    assert result.ok and result.count == 0

# ========================
# --- Casos de "não encontrado" ---
# ========================
@respx.mock
async def test_delete_user_data_not_found_counts_as_done(gateway):
    respx.delete(f"{BASE_URL}/v2/user/{USER_ID}").mock(
        return_value=httpx.Response(404, json={"errors": [{"status": 404, "detail": "User not found"}]})
    )
    result = await gateway.delete_user_data(USER_ID)
    assert result.ok
    assert result.count == 0


@respx.mock
async def test_delete_profile_wrong_id_counts_as_done(gateway):
    respx.delete(f"{BASE_URL}/v1/profile/{USER_ID}").mock(
        return_value=httpx.Response(404, json={"errors": [{"status": 404, "detail": "Wrong ID provided"}]})
    )
    assert (await gateway.delete_profile(USER_ID)).ok


@respx.mock
async def test_delete_profile_success(gateway):
    respx.delete(f"{BASE_URL}/v1/profile/{USER_ID}").mock(return_value=httpx.Response(200, json={}))
    assert (await gateway.delete_profile(USER_ID)).count == 1

# ========================
# --- Falhas ---
# ========================
@respx.mock
async def test_server_error_is_reported_not_raised(gateway):
    respx.delete(f"{BASE_URL}/v1/widget/by-user/{USER_ID}").mock(return_value=httpx.Response(500, text="boom"))

    result = await gateway.delete_widgets(USER_ID)

    assert not result.ok
    assert result.count == -1
    assert "500" in result.error


@respx.mock
async def test_unexpected_404_is_failure(gateway):
    respx.delete(f"{BASE_URL}/v1/topic/by-user/{USER_ID}").mock(
        return_value=httpx.Response(404, json={"errors": [{"status": 404, "detail": "Endpoint not found"}]})
    )
    assert not (await gateway.delete_topics(USER_ID)).ok


@respx.mock
async def test_timeout_is_failure(gateway):
    respx.delete(f"{BASE_URL}/v1/story/by-user/{USER_ID}").mock(side_effect=httpx.ConnectTimeout("timeout"))
    result = await gateway.delete_stories(USER_ID)
    assert result.count == -1
    assert "Timeout" in result.error


@respx.mock
async def test_invalid_json_is_failure(gateway):
    respx.delete(f"{BASE_URL}/v1/dashboard/by-user/{USER_ID}").mock(return_value=httpx.Response(200, text="not json"))
    assert not (await gateway.delete_dashboards(USER_ID)).ok

# ========================
# --- Construção ---
# ========================
async def test_from_settings_requires_gateway_url(monkeypatch):
    monkeypatch.setattr(gateway_module.settings, "GATEWAY_URL", None)
    with pytest.raises(ValueError):
        GatewayClient.from_settings()


async def test_default_token_is_service_token():
    client = GatewayClient(base_url=BASE_URL)
    try:
        assert client.token
        assert "x-api-key" not in client._headers()
    finally:
        await client.aclose()
