# tests/test_health.py
"""
Testes do endpoint de saúde e do endpoint raiz.
"""

# ========================
# --- Importações ---
# ========================
from unittest.mock import AsyncMock, MagicMock

import pytest
from httpx import AsyncClient
from redis.exceptions import ConnectionError as RedisConnectionError

# --- Módulos da Aplicação ---
from ct_auth.core.cache import RedisCache
from ct_auth.core.config import settings
from ct_auth.main import app as fastapi_app

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio

# ========================
# --- Testes ---
# ========================
async def test_read_root(test_async_client: AsyncClient):
    response = await test_async_client.get("/")
    assert response.status_code == 200
    assert response.json() == {"message": f"Bem-vindo à {settings.PROJECT_NAME}!"}


async def test_health_ok(test_async_client: AsyncClient, monkeypatch):
    monkeypatch.setattr("ct_auth.routers.health.check_mongo_connection", AsyncMock(return_value=True))

    response = await test_async_client.get("/health")

    assert response.status_code == 200
    assert response.json() == {"status": "ok"}


async def test_health_mongo_down(test_async_client: AsyncClient, monkeypatch):
    monkeypatch.setattr("ct_auth.routers.health.check_mongo_connection", AsyncMock(return_value=False))

    response = await test_async_client.get("/health")

    assert response.status_code == 503
    assert response.json()["status"] == "error"


async def test_health_redis_down(test_async_client: AsyncClient, monkeypatch):
    client = MagicMock(ping=AsyncMock(side_effect=RedisConnectionError("refused")))
    monkeypatch.setattr(fastapi_app.state, "cache", RedisCache(client, ttl_seconds=60), raising=False)
    mock_mongo = AsyncMock(return_value=True)
    monkeypatch.setattr("ct_auth.routers.health.check_mongo_connection", mock_mongo)

    response = await test_async_client.get("/health")

    assert response.status_code == 503
    assert response.json()["message"] == "Redis não está disponível"
    mock_mongo.assert_not_awaited()


async def test_health_ignores_invalid_token(test_async_client: AsyncClient, monkeypatch):
    monkeypatch.setattr("ct_auth.routers.health.check_mongo_connection", AsyncMock(return_value=True))

    response = await test_async_client.get("/health", headers={"Authorization": "Bearer garbage"})

    assert response.status_code == 200
