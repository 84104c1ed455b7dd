# ct_auth/db/user_crud.py
"""
Módulo contendo as funções CRUD (Create, Read, Update, Delete)
para interagir com a coleção de usuários no MongoDB.

Também mantém o registro de revogação (`tokensInvalidatedAt`). Cada
alteração relevante sobrescreve a entrada do usuário no cache de revogação
com o estado recém-gravado; a verificação só preenche entradas ausentes,
então uma leitura antiga nunca substitui o estado publicado aqui.
"""

# ========================
# --- Importações ---
# ========================
import logging
import re
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

# --- Módulos da Aplicação ---
from ct_auth.core.security import create_access_token
from ct_auth.models.user import UserInDB

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
USERS_COLLECTION = "users"

# Campos de usuário que aceitam filtro por regex na listagem
FILTERABLE_FIELDS = ("name", "provider", "email", "role")

# ========================
# --- Funções Auxiliares (Internas) ---
# ========================
def _get_users_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    """Retorna a coleção de usuários do banco de dados."""
    return db[USERS_COLLECTION]


def _to_user(user_dict: Optional[Dict[str, Any]], context: str) -> Optional[UserInDB]:
    if not user_dict:
        return None
    user_dict.pop('_id', None)
    try:
        return UserInDB.model_validate(user_dict)
    except ValidationError as e:
        logger.error(f"DB Validation error {context}: {e}")
        return None


def _invalidated_at_epoch(value: Optional[datetime]) -> Optional[int]:
    # Truncado para segundos: mesma resolução da claim `iat`
    return int(value.timestamp()) if value is not None else None


def build_revocation_snapshot(user: UserInDB) -> Dict[str, Any]:
    """Campos do usuário que decidem a revogação, em formato serializável."""
    return {
        "id": user.id,
        "role": user.role,
        "email": user.email,
        "extraUserData": user.extraUserData.model_dump(),
        "tokensInvalidatedAt": _invalidated_at_epoch(user.tokensInvalidatedAt),
    }


def removed_user_snapshot(user_id: str) -> Dict[str, Any]:
    """Marca no cache um sujeito que não existe mais."""
    return {"id": user_id, "deleted": True}


async def _publish_cached_state(cache, user_id: str, user: Optional[UserInDB]) -> None:
    if cache is None:
        return
    snapshot = build_revocation_snapshot(user) if user is not None else removed_user_snapshot(user_id)
    await cache.set(user_id, snapshot)

# ========================
# --- Consultas ---
# ========================
async def get_user_by_id(db: AsyncIOMotorDatabase, user_id: str) -> Optional[UserInDB]:
    """
    Busca um usuário pelo seu ID.

    Erros do driver (`PyMongoError`) são propagados: a verificação de
    revogação depende deles para falhar de forma fechada.

    Returns:
        Um objeto UserInDB se o usuário for encontrado e válido, None caso contrário.
    """
    collection = _get_users_collection(db)
    user_dict = await collection.find_one({"id": str(user_id)})
    return _to_user(user_dict, f"get_user_by_id {user_id}")


async def get_user_by_email(db: AsyncIOMotorDatabase, email: str) -> Optional[UserInDB]:
    collection = _get_users_collection(db)
    user_dict = await collection.find_one({"email": email})
    return _to_user(user_dict, f"get_user_by_email {email}")


async def get_user_by_provider(db: AsyncIOMotorDatabase, provider: str, provider_id: str) -> Optional[UserInDB]:
    """Busca um usuário social pelo par (provedor, ID no provedor)."""
    collection = _get_users_collection(db)
    user_dict = await collection.find_one({"provider": provider, "providerId": provider_id})
    return _to_user(user_dict, f"get_user_by_provider {provider}/{provider_id}")


async def get_users_by_ids(db: AsyncIOMotorDatabase, ids: List[str]) -> List[UserInDB]:
    collection = _get_users_collection(db)
    users: List[UserInDB] = []
    async for user_dict in collection.find({"id": {"$in": ids}}):
        user = _to_user(user_dict, "get_users_by_ids")
        if user:
            users.append(user)
    return users


async def get_user_ids_by_role(db: AsyncIOMotorDatabase, role: str) -> List[str]:
    collection = _get_users_collection(db)
    return [doc["id"] async for doc in collection.find({"role": role}, {"id": 1})]


def build_user_list_query(apps: Optional[List[str]], filters: Dict[str, Optional[str]]) -> Dict[str, Any]:
    """
    Monta a query da listagem administrativa de usuários.

    Args:
        apps: Aplicações aceitas (`None` significa todas).
        filters: Valores de `name`, `provider`, `email`, `role` (regex sem distinção de maiúsculas).
    """
    query: Dict[str, Any] = {}
    if apps is not None:
        query["extraUserData.apps"] = {"$in": apps}
    for field in FILTERABLE_FIELDS:
        value = filters.get(field)
        if value:
            query[field] = {"$regex": re.escape(value), "$options": "i"}
    return query


async def list_users(
    db: AsyncIOMotorDatabase,
    apps: Optional[List[str]],
    filters: Dict[str, Optional[str]],
    page: int,
    size: int,
) -> Tuple[List[UserInDB], int]:
    """
    Lista usuários paginados.

    Returns:
        Tupla (usuários da página, total de documentos que satisfazem a query).
    """
    collection = _get_users_collection(db)
    query = build_user_list_query(apps, filters)
    logger.debug(f"Query de listagem de usuários: {query}")

    total = await collection.count_documents(query)
    users: List[UserInDB] = []
    cursor = collection.find(query).sort("createdAt", -1).skip((page - 1) * size).limit(size)
    async for user_dict in cursor:
        user = _to_user(user_dict, "list_users")
        if user:
            users.append(user)
    return users, total

# ========================
# --- Escrita ---
# ========================
async def insert_user(db: AsyncIOMotorDatabase, user: UserInDB) -> UserInDB:
    """
    Insere um usuário já montado.

    Raises:
        DuplicateKeyError: Se o e-mail já estiver em uso.
    """
    collection = _get_users_collection(db)
    try:
        await collection.insert_one(user.model_dump())
    except DuplicateKeyError:
        logger.warning(f"Tentativa de criar usuário com e-mail duplicado: {user.email}")
        raise
    logger.info(f"Usuário {user.id} criado (provider: {user.provider}).")
    return user


async def update_user(
    db: AsyncIOMotorDatabase,
    user_id: str,
    update_data: Dict[str, Any],
    cache=None,
    invalidate_tokens: bool = False,
) -> Optional[UserInDB]:
    """
    Aplica `$set` com os campos fornecidos e atualiza `updatedAt`.

    Args:
        update_data: Campos já validados a alterar.
        cache: Cache de revogação, que recebe o novo estado do usuário.
        invalidate_tokens: Se True, também avança `tokensInvalidatedAt`.

    Returns:
        O usuário atualizado, ou None se não existir.
    """
    collection = _get_users_collection(db)
    now = datetime.now(timezone.utc)
    changes = {**update_data, "updatedAt": now}
    if invalidate_tokens:
        changes["tokensInvalidatedAt"] = now

    updated_doc = await collection.find_one_and_update(
        {"id": user_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    updated = _to_user(updated_doc, f"update_user {user_id}")
    await _publish_cached_state(cache, user_id, updated)
    if updated_doc is None:
        logger.warning(f"Tentativa de atualizar usuário inexistente: ID {user_id}")
    return updated


async def invalidate_user_tokens(db: AsyncIOMotorDatabase, user_id: str, cache=None) -> bool:
    """
    Revoga todos os tokens emitidos até agora para o usuário.

    Returns:
        True se o usuário existia.
    """
    collection = _get_users_collection(db)
    updated_doc = await collection.find_one_and_update(
        {"id": user_id},
        {"$set": {"tokensInvalidatedAt": datetime.now(timezone.utc)}},
        return_document=ReturnDocument.AFTER,
    )
    await _publish_cached_state(cache, user_id, _to_user(updated_doc, f"invalidate_user_tokens {user_id}"))
    logger.info(f"Tokens do usuário {user_id} invalidados (encontrado: {updated_doc is not None}).")
    return updated_doc is not None


async def update_password(db: AsyncIOMotorDatabase, user_id: str, hashed_password: str, cache=None) -> Optional[UserInDB]:
    """Troca a senha e invalida os tokens existentes."""
    return await update_user(db, user_id, {"password": hashed_password}, cache=cache, invalidate_tokens=True)


async def delete_user(db: AsyncIOMotorDatabase, user_id: str, cache=None) -> Optional[UserInDB]:
    """
    Remove um usuário.

    Returns:
        O usuário removido, ou None se não existir.
    """
    collection = _get_users_collection(db)
    deleted_doc = await collection.find_one_and_delete({"id": user_id})
    await _publish_cached_state(cache, user_id, None)
    if deleted_doc is None:
        logger.warning(f"Tentativa de remover usuário inexistente: ID {user_id}")
        return None
    logger.info(f"Usuário {user_id} removido.")
    return _to_user(deleted_doc, f"delete_user {user_id}")

# ========================
# --- Emissão de Token ---
# ========================
async def create_token(
    db: AsyncIOMotorDatabase,
    user: Optional[UserInDB],
    save_in_user: bool,
    fallback_claims: Optional[Dict[str, Any]] = None,
) -> str:
    """
    Emite um token para o usuário e, opcionalmente, guarda-o em `userToken`.
    Sem usuário armazenado, reassina `fallback_claims`.
    """
    token = create_access_token(user, fallback_claims)
    if user is not None and save_in_user:
        await _get_users_collection(db).update_one({"id": user.id}, {"$set": {"userToken": token}})
        logger.info(f"Token salvo no usuário {user.id}.")
    return token

# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_user_indexes(db: AsyncIOMotorDatabase):
    """
    Cria os índices da coleção de usuários.
    O e-mail é único apenas quando presente (usuários sociais podem não ter).
    """
    collection = _get_users_collection(db)
    try:
        await collection.create_index("id", unique=True, name="user_id_unique_idx")
        await collection.create_index(
            "email",
            unique=True,
            name="email_unique_idx",
            partialFilterExpression={"email": {"$type": "string"}},
        )
        await collection.create_index([("provider", 1), ("providerId", 1)], name="user_provider_idx")
        await collection.create_index("extraUserData.apps", name="user_apps_idx")
        logger.info("Índices da coleção 'users' verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices para a coleção 'users': {e}", exc_info=True)
