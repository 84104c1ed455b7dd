# ct_auth/db/deletion_crud.py
"""
Funções CRUD para pedidos de deleção de usuário (coleção `deletions`).
"""

# ========================
# --- Importações ---
# ========================
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError

# --- Módulos da Aplicação ---
from ct_auth.core.errors import DeletionAlreadyExists, DeletionNotFound
from ct_auth.models.deletion import DeletionCreate, DeletionInDB, DeletionStatus, DeletionUpdate

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
DELETIONS_COLLECTION = "deletions"


def _get_deletions_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[DELETIONS_COLLECTION]


def _to_deletion(doc: Optional[Dict[str, Any]]) -> Optional[DeletionInDB]:
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return DeletionInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error deletion {doc.get('id')}: {e}")
        return None

# ========================
# --- Operações CRUD ---
# ========================
async def get_deletion_by_id(db: AsyncIOMotorDatabase, deletion_id: str) -> DeletionInDB:
    deletion = _to_deletion(await _get_deletions_collection(db).find_one({"id": deletion_id}))
    if deletion is None:
        raise DeletionNotFound()
    return deletion


async def list_deletions(
    db: AsyncIOMotorDatabase,
    filters: Dict[str, Optional[str]],
    page: int,
    size: int,
) -> Tuple[List[DeletionInDB], int]:
    """Lista pedidos paginados, filtrando por `userId`, `requestorUserId` e `status`."""
    query = {key: value for key, value in filters.items() if key in ("userId", "requestorUserId", "status") and value}
    collection = _get_deletions_collection(db)
    total = await collection.count_documents(query)
    deletions: List[DeletionInDB] = []
    async for doc in collection.find(query).sort("createdAt", -1).skip((page - 1) * size).limit(size):
        deletion = _to_deletion(doc)
        if deletion:
            deletions.append(deletion)
    return deletions, total


async def list_pending_deletions(db: AsyncIOMotorDatabase) -> List[DeletionInDB]:
    deletions: List[DeletionInDB] = []
    async for doc in _get_deletions_collection(db).find({"status": DeletionStatus.PENDING.value}):
        deletion = _to_deletion(doc)
        if deletion:
            deletions.append(deletion)
    return deletions


async def create_deletion(db: AsyncIOMotorDatabase, deletion_in: DeletionCreate, requestor_id: str) -> DeletionInDB:
    """
    Registra um pedido de deleção. Sem `userId`, o alvo é o próprio solicitante.

    Raises:
        DeletionAlreadyExists: Já existe pedido para o mesmo usuário.
    """
    user_id = deletion_in.userId or requestor_id
    collection = _get_deletions_collection(db)
    if await collection.find_one({"userId": user_id}, {"_id": 1}):
        raise DeletionAlreadyExists()

    deletion = DeletionInDB(
        **deletion_in.model_dump(exclude={"userId"}),
        userId=user_id,
        requestorUserId=requestor_id,
    )
    try:
        await collection.insert_one(deletion.model_dump())
    except DuplicateKeyError:
        raise DeletionAlreadyExists()
    logger.info(f"Pedido de deleção {deletion.id} criado para o usuário {user_id} por {requestor_id}.")
    return deletion


async def update_deletion(db: AsyncIOMotorDatabase, deletion_id: str, deletion_in: DeletionUpdate) -> DeletionInDB:
    changes = deletion_in.model_dump(exclude_none=True)
    changes["updatedAt"] = datetime.now(timezone.utc)
    doc = await _get_deletions_collection(db).find_one_and_update(
        {"id": deletion_id},
        {"$set": changes},
        return_document=ReturnDocument.AFTER,
    )
    deletion = _to_deletion(doc)
    if deletion is None:
        raise DeletionNotFound()
    return deletion


async def delete_deletion(db: AsyncIOMotorDatabase, deletion_id: str) -> DeletionInDB:
    deletion = _to_deletion(await _get_deletions_collection(db).find_one_and_delete({"id": deletion_id}))
    if deletion is None:
        raise DeletionNotFound()
    logger.info(f"Pedido de deleção {deletion_id} removido.")
    return deletion

# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_deletion_indexes(db: AsyncIOMotorDatabase):
    try:
        collection = _get_deletions_collection(db)
        await collection.create_index("id", unique=True, name="deletion_id_unique_idx")
        await collection.create_index("userId", unique=True, name="deletion_user_unique_idx")
        await collection.create_index("status", name="deletion_status_idx")
        logger.info("Índices da coleção 'deletions' verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices de deleções: {e}", exc_info=True)
