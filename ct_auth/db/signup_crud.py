# ct_auth/db/signup_crud.py
"""
Persistência do fluxo de cadastro local:
- `user_temp`: usuários aguardando confirmação de e-mail (TTL de 7 dias);
- `renew`: tokens de troca de senha (TTL de 1 dia).

A expiração é feita pelo próprio MongoDB através de índices TTL em `createdAt`.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Optional

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError

# --- Módulos da Aplicação ---
from ct_auth.models.user import RenewInDB, UserTempInDB

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
USER_TEMP_COLLECTION = "user_temp"
RENEW_COLLECTION = "renew"
USER_TEMP_TTL_SECONDS = 60 * 60 * 24 * 7
RENEW_TTL_SECONDS = 60 * 60 * 24


def _get_user_temp_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[USER_TEMP_COLLECTION]


def _get_renew_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[RENEW_COLLECTION]

# ========================
# --- Usuários Temporários ---
# ========================
async def insert_user_temp(db: AsyncIOMotorDatabase, user_temp: UserTempInDB) -> UserTempInDB:
    await _get_user_temp_collection(db).insert_one(user_temp.model_dump())
    logger.info(f"Usuário temporário criado para {user_temp.email}.")
    return user_temp


async def get_user_temp_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[UserTempInDB]:
    doc = await _get_user_temp_collection(db).find_one({"email": email})
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return UserTempInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error get_user_temp_by_email {email}: {e}")
        return None


async def pop_user_temp_by_token(db: AsyncIOMotorDatabase, confirmation_token: str) -> Optional[UserTempInDB]:
    """
    Remove e devolve o usuário temporário dono do token de confirmação.

    Returns:
        O usuário temporário, ou None se o token não existir ou já tiver expirado.
    """
    doc = await _get_user_temp_collection(db).find_one_and_delete({"confirmationToken": confirmation_token})
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return UserTempInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error pop_user_temp_by_token: {e}")
        return None

# ========================
# --- Tokens de Troca de Senha ---
# ========================
async def insert_renew(db: AsyncIOMotorDatabase, renew: RenewInDB) -> RenewInDB:
    await _get_renew_collection(db).insert_one(renew.model_dump())
    logger.info(f"Token de troca de senha criado para o usuário {renew.userId}.")
    return renew


async def get_renew_by_token(db: AsyncIOMotorDatabase, token: str) -> Optional[RenewInDB]:
    doc = await _get_renew_collection(db).find_one({"token": token})
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return RenewInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error get_renew_by_token: {e}")
        return None


async def delete_renew(db: AsyncIOMotorDatabase, token: str) -> bool:
    result = await _get_renew_collection(db).delete_one({"token": token})
    return result.deleted_count == 1

# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_signup_indexes(db: AsyncIOMotorDatabase):
    """Cria os índices TTL e de busca por token."""
    try:
        user_temp = _get_user_temp_collection(db)
        await user_temp.create_index("createdAt", expireAfterSeconds=USER_TEMP_TTL_SECONDS, name="user_temp_ttl_idx")
        await user_temp.create_index("confirmationToken", unique=True, name="user_temp_token_idx")
        await user_temp.create_index("email", name="user_temp_email_idx")

        renew = _get_renew_collection(db)
        await renew.create_index("createdAt", expireAfterSeconds=RENEW_TTL_SECONDS, name="renew_ttl_idx")
        await renew.create_index("token", unique=True, name="renew_token_idx")
        logger.info("Índices das coleções 'user_temp' e 'renew' verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices do fluxo de cadastro: {e}", exc_info=True)
