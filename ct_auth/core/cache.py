# ct_auth/core/cache.py
"""
Cache chave-valor com TTL fixo usado pela verificação de revogação.

Duas implementações com a mesma interface (`get`, `set`, `delete`, `clear`):
- `RedisCache`: armazena JSON no Redis (`redis.asyncio`) com expiração nativa.
- `NullCache`: nunca guarda nada; usado quando `REDIS_URL` não está configurada.

Leitores preenchem apenas entradas ausentes (`only_if_absent=True`);
escritores sobrescrevem a entrada com o estado recém-gravado.

Falhas de I/O do Redis são registradas e tratadas como "miss": o cache
nunca decide sozinho o resultado de uma autenticação.
"""

# ========================
# --- Importações ---
# ========================
import json
import logging
from typing import Any, Optional

from redis import asyncio as aioredis
from redis.exceptions import RedisError

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

KEY_PREFIX = "revocation:"

# ========================
# --- Implementações ---
# ========================
class NullCache:
    """Cache desabilitado: toda leitura é um miss."""

    async def get(self, key: str) -> Optional[Any]:
        return None

    async def set(self, key: str, value: Any, only_if_absent: bool = False) -> None:
        return None

    async def delete(self, key: str) -> None:
        return None

    async def clear(self) -> None:
        return None

    async def close(self) -> None:
        return None


class RedisCache:
    """
    Cache de revogação sobre Redis.

    Args:
        client: Cliente `redis.asyncio.Redis` já configurado.
        ttl_seconds: Tempo de vida fixo de cada entrada.
        prefix: Prefixo das chaves (isola o namespace usado por `clear`).
    """

    def __init__(self, client: aioredis.Redis, ttl_seconds: int, prefix: str = KEY_PREFIX):
        self.client = client
        self.ttl_seconds = ttl_seconds
        self.prefix = prefix

    def _key(self, key: str) -> str:
        return f"{self.prefix}{key}"

    async def get(self, key: str) -> Optional[Any]:
        try:
            raw = await self.client.get(self._key(key))
        except RedisError as e:
            logger.warning(f"Falha ao ler chave '{key}' do cache: {e}")
            return None
        if raw is None:
            return None
        try:
            return json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Valor corrompido no cache para a chave '{key}'. Ignorando.")
            return None

    async def set(self, key: str, value: Any, only_if_absent: bool = False) -> None:
        """Grava com o TTL fixo. Com `only_if_absent`, não sobrescreve uma entrada existente (`SET NX`)."""
        options = {"nx": True} if only_if_absent else {}
        try:
            await self.client.set(self._key(key), json.dumps(value), ex=self.ttl_seconds, **options)
        except RedisError as e:
            logger.warning(f"Falha ao gravar chave '{key}' no cache: {e}")

    async def delete(self, key: str) -> None:
        try:
            await self.client.delete(self._key(key))
        except RedisError as e:
            logger.warning(f"Falha ao remover chave '{key}' do cache: {e}")

    async def clear(self) -> None:
        try:
            keys = [key async for key in self.client.scan_iter(match=f"{self.prefix}*")]
            if keys:
                await self.client.delete(*keys)
            logger.info(f"Cache de revogação limpo ({len(keys)} chaves).")
        except RedisError as e:
            logger.warning(f"Falha ao limpar o cache: {e}")

    async def close(self) -> None:
        await self.client.aclose()

# ========================
# --- Fábrica ---
# ========================
def build_cache():
    """Constrói o cache a partir das configurações (Redis ou desabilitado)."""
    if not settings.REDIS_URL:
        logger.warning("REDIS_URL não configurada: cache de revogação desabilitado.")
        return NullCache()
    client = aioredis.from_url(
        str(settings.REDIS_URL),
        decode_responses=True,
        socket_timeout=2.0,
        socket_connect_timeout=2.0,
    )
    logger.info(f"Cache de revogação em Redis habilitado (TTL {settings.REVOCATION_CACHE_TTL_SECONDS}s).")
    return RedisCache(client, ttl_seconds=settings.REVOCATION_CACHE_TTL_SECONDS)
