# ct_auth/core/revocation.py
"""
Verificação de revogação de tokens.

Um token com assinatura válida ainda é rejeitado quando:
- o sujeito não existe mais no banco;
- `role`, `email` ou `extraUserData` do token divergem do usuário armazenado;
- o usuário teve seus tokens invalidados depois da emissão
  (`tokensInvalidatedAt` posterior ao `iat`, comparados em segundos).

O estado relevante do usuário é guardado no cache por sujeito
(`revocation:<id>`) com TTL fixo. A verificação só preenche entradas
ausentes; quem altera o estado sobrescreve a entrada (ver `user_crud`).
Falhas do banco são fail-closed (`StoreUnavailable`).
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Any, Dict, Optional

from motor.motor_asyncio import AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

# --- Módulos da Aplicação ---
from ct_auth.core.errors import StoreUnavailable, TokenRevoked
from ct_auth.db import user_crud
from ct_auth.models.token import TokenPayload

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Snapshot do Usuário ---
# ========================
def _normalize_extra(data: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    return {"apps": [], **(data or {})}


def evaluate_snapshot(snapshot: Dict[str, Any], payload: TokenPayload) -> Optional[str]:
    """
    Compara o token com o estado armazenado do sujeito.

    Returns:
        O motivo da revogação, ou None se o token continua válido.
    """
    invalidated_at = snapshot.get("tokensInvalidatedAt")
    if invalidated_at is not None and invalidated_at > (payload.iat or 0):
        return "tokens invalidated after issuance"

    for field in ("role", "email"):
        if snapshot.get(field) != getattr(payload, field):
            return f'"{field}" in token does not match the stored value'

    if _normalize_extra(snapshot.get("extraUserData")) != _normalize_extra(payload.extraUserData):
        return '"extraUserData" in token does not match the stored value'
    return None

# ========================
# --- Verificação ---
# ========================
async def _load_snapshot(db: AsyncIOMotorDatabase, cache, subject_id: str) -> Optional[Dict[str, Any]]:
    cached = await cache.get(subject_id)
    if cached is not None:
        return None if cached.get("deleted") else cached

    try:
        user = await user_crud.get_user_by_id(db, subject_id)
    except PyMongoError as e:
        logger.error(f"Falha ao consultar estado de revogação do usuário {subject_id}: {e}")
        raise StoreUnavailable()

    if user is None:
        return None

    snapshot = user_crud.build_revocation_snapshot(user)
    # Não sobrescreve um estado publicado por uma escrita concorrente
    await cache.set(subject_id, snapshot, only_if_absent=True)
    return snapshot


async def is_token_revoked(db: AsyncIOMotorDatabase, cache, payload: TokenPayload) -> bool:
    """
    Decide se um payload decodificado deve ser rejeitado apesar da assinatura válida.
    O principal de serviço (`id == "microservice"`) nunca é revogado.

    Raises:
        StoreUnavailable: Se o banco de identidades não puder ser consultado.
    """
    if payload.is_microservice:
        return False

    snapshot = await _load_snapshot(db, cache, payload.id)
    if snapshot is None:
        logger.info(f"Token revogado: usuário {payload.id} não existe.")
        return True

    reason = evaluate_snapshot(snapshot, payload)
    if reason:
        logger.info(f"Token revogado para o usuário {payload.id}: {reason}.")
        return True
    return False


async def ensure_not_revoked(db: AsyncIOMotorDatabase, cache, payload: TokenPayload) -> None:
    """Variante que levanta `TokenRevoked` em vez de devolver booleano."""
    if await is_token_revoked(db, cache, payload):
        raise TokenRevoked()
