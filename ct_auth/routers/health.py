# ct_auth/routers/health.py
"""
Rota de saúde: verifica o MongoDB e, quando configurado, o Redis do cache.
"""

# ========================
# --- Importações ---
# ========================
import logging

from fastapi import APIRouter, Request
from fastapi.responses import JSONResponse
from redis.exceptions import RedisError

# --- Módulos da Aplicação ---
from ct_auth.core.cache import RedisCache
from ct_auth.db.mongodb_utils import check_mongo_connection

# ========================
# --- Configuração do Router ---
# ========================
logger = logging.getLogger(__name__)
router = APIRouter()

# ========================
# --- Rotas da API ---
# ========================
@router.get("/health", tags=["Health"])
async def health_check(request: Request):
    cache = getattr(request.app.state, "cache", None)
    if isinstance(cache, RedisCache):
        try:
            await cache.client.ping()
        except RedisError as e:
            logger.warning(f"Health check: Redis indisponível ({e}).")
            return JSONResponse(content={"status": "error", "message": "Redis não está disponível"}, status_code=503)

    if not await check_mongo_connection():
        return JSONResponse(content={"status": "error", "message": "MongoDB não está disponível"}, status_code=503)

    return JSONResponse(content={"status": "ok"})
