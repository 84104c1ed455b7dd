# ct_auth/db/application_crud.py
"""
Funções CRUD para Aplicações e seus vínculos de posse.

Os vínculos ficam em coleções próprias:
- `application_users` (`applicationId`, `userId`)
- `organization_applications` (`organizationId`, `applicationId`)

Uma aplicação tem no máximo um dono (usuário ou organização).
"""

# ========================
# --- Importações ---
# ========================
import logging
import secrets
import uuid
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError

# --- Módulos da Aplicação ---
from ct_auth.core.errors import (
    ApplicationNotFound, ApplicationOrphaned, OrganizationNotFound, PermissionDenied, UserNotFound
)
from ct_auth.db import user_crud
from ct_auth.models.application import ApplicationCreate, ApplicationInDB, ApplicationUpdate
from ct_auth.models.token import Principal
from ct_auth.models.user import UserRole

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
APPLICATIONS_COLLECTION = "applications"
APPLICATION_USERS_COLLECTION = "application_users"
ORGANIZATION_APPLICATIONS_COLLECTION = "organization_applications"
ORGANIZATIONS_COLLECTION = "organizations"


def _get_applications_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[APPLICATIONS_COLLECTION]


def _to_application(doc: Optional[Dict[str, Any]]) -> Optional[ApplicationInDB]:
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return ApplicationInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error application {doc.get('id')}: {e}")
        return None

# ========================
# --- API Keys ---
# ========================
def provision_api_key(name: str) -> Tuple[str, str]:
    """
    Gera o par (apiKeyId, apiKeyValue) de uma aplicação.

    Returns:
        Tupla com o identificador e o valor secreto da chave.
    """
    key_id = str(uuid.uuid4())
    key_value = secrets.token_urlsafe(30)
    logger.info(f"API key {key_id} provisionada para a aplicação '{name}'.")
    return key_id, key_value

# ========================
# --- Vínculos de Posse ---
# ========================
async def _ensure_organization_exists(db: AsyncIOMotorDatabase, organization_id: str) -> None:
    if not await db[ORGANIZATIONS_COLLECTION].find_one({"id": organization_id}, {"_id": 1}):
        raise OrganizationNotFound()


async def _ensure_user_exists(db: AsyncIOMotorDatabase, user_id: str) -> None:
    if await user_crud.get_user_by_id(db, user_id) is None:
        raise UserNotFound()


async def clear_application_links(db: AsyncIOMotorDatabase, application_id: str) -> None:
    await db[APPLICATION_USERS_COLLECTION].delete_many({"applicationId": application_id})
    await db[ORGANIZATION_APPLICATIONS_COLLECTION].delete_many({"applicationId": application_id})


async def link_application_to_user(db: AsyncIOMotorDatabase, application_id: str, user_id: str) -> None:
    await clear_application_links(db, application_id)
    await db[APPLICATION_USERS_COLLECTION].insert_one({"applicationId": application_id, "userId": user_id})


async def link_application_to_organization(db: AsyncIOMotorDatabase, application_id: str, organization_id: str) -> None:
    await clear_application_links(db, application_id)
    await db[ORGANIZATION_APPLICATIONS_COLLECTION].insert_one(
        {"applicationId": application_id, "organizationId": organization_id}
    )


async def get_application_owner(db: AsyncIOMotorDatabase, application_id: str) -> Tuple[Optional[str], Optional[str]]:
    """
    Returns:
        Tupla (organizationId, userId); no máximo um deles é preenchido.
    """
    org_link = await db[ORGANIZATION_APPLICATIONS_COLLECTION].find_one({"applicationId": application_id})
    user_link = await db[APPLICATION_USERS_COLLECTION].find_one({"applicationId": application_id})
    return (
        org_link["organizationId"] if org_link else None,
        user_link["userId"] if user_link else None,
    )


async def hydrate_application(db: AsyncIOMotorDatabase, application: ApplicationInDB) -> Dict[str, Any]:
    """Dados da aplicação acrescidos do dono (`organization` ou `user`, com id e nome)."""
    organization_id, user_id = await get_application_owner(db, application.id)
    data = application.model_dump()
    data["organization"] = None
    data["user"] = None
    if organization_id:
        org = await db[ORGANIZATIONS_COLLECTION].find_one({"id": organization_id})
        if org:
            data["organization"] = {"id": org["id"], "name": org.get("name")}
    if user_id:
        user = await user_crud.get_user_by_id(db, user_id)
        if user:
            data["user"] = {"id": user.id, "name": user.name}
    return data

# ========================
# --- Operações CRUD ---
# ========================
async def get_application_by_id(db: AsyncIOMotorDatabase, application_id: str) -> ApplicationInDB:
    """
    Raises:
        ApplicationNotFound: Se não existir aplicação com o ID.
    """
    application = _to_application(await _get_applications_collection(db).find_one({"id": application_id}))
    if application is None:
        raise ApplicationNotFound()
    return application


async def get_application_by_api_key(db: AsyncIOMotorDatabase, api_key: str) -> Optional[ApplicationInDB]:
    return _to_application(await _get_applications_collection(db).find_one({"apiKeyValue": api_key}))


async def list_applications(
    db: AsyncIOMotorDatabase,
    page: int,
    size: int,
    user_id: Optional[str] = None,
) -> Tuple[List[ApplicationInDB], int]:
    """
    Lista aplicações paginadas, opcionalmente só as de um usuário.

    Returns:
        Tupla (aplicações da página, total).
    """
    query: Dict[str, Any] = {}
    if user_id:
        ids = [link["applicationId"] async for link in db[APPLICATION_USERS_COLLECTION].find({"userId": user_id})]
        query["id"] = {"$in": ids}

    collection = _get_applications_collection(db)
    total = await collection.count_documents(query)
    cursor = collection.find(query).sort("createdAt", -1).skip((page - 1) * size).limit(size)
    applications = [app async for app in _iter_applications(cursor)]
    return applications, total


async def _iter_applications(cursor):
    async for doc in cursor:
        application = _to_application(doc)
        if application:
            yield application


async def create_application(
    db: AsyncIOMotorDatabase,
    application_in: ApplicationCreate,
    requester: Principal,
) -> ApplicationInDB:
    """
    Cria uma aplicação com API key própria.

    Sem `organization` nem `user`, o dono é o próprio solicitante.

    Raises:
        PermissionDenied: Não-ADMIN criando aplicação para outro usuário.
        OrganizationNotFound / UserNotFound: Dono inexistente.
    """
    owner_user = application_in.user
    if not application_in.organization and not owner_user:
        owner_user = requester.id

    if requester.role != UserRole.ADMIN and owner_user and owner_user != requester.id:
        raise PermissionDenied("User can only create applications for themselves")

    if application_in.organization:
        await _ensure_organization_exists(db, application_in.organization)
    else:
        await _ensure_user_exists(db, owner_user)

    key_id, key_value = provision_api_key(application_in.name)
    application = ApplicationInDB(name=application_in.name, apiKeyId=key_id, apiKeyValue=key_value)
    await _get_applications_collection(db).insert_one(application.model_dump())

    if application_in.organization:
        await link_application_to_organization(db, application.id, application_in.organization)
    else:
        await link_application_to_user(db, application.id, owner_user)

    logger.info(f"Aplicação {application.id} ('{application.name}') criada.")
    return application


async def update_application(
    db: AsyncIOMotorDatabase,
    application_id: str,
    application_in: ApplicationUpdate,
) -> ApplicationInDB:
    """
    Atualiza nome, dono e/ou API key de uma aplicação.

    Raises:
        ApplicationNotFound: Aplicação inexistente.
        ApplicationOrphaned: A alteração deixaria a aplicação sem dono.
    """
    application = await get_application_by_id(db, application_id)
    provided = application_in.model_fields_set

    if "organization" in provided or "user" in provided:
        current_org, current_user = await get_application_owner(db, application_id)
        future_org = application_in.organization if "organization" in provided else current_org
        future_user = application_in.user if "user" in provided else current_user
        if not future_org and not future_user:
            raise ApplicationOrphaned()

        if application_in.organization:
            await _ensure_organization_exists(db, application_in.organization)
            await link_application_to_organization(db, application_id, application_in.organization)
        elif application_in.user:
            await _ensure_user_exists(db, application_in.user)
            await link_application_to_user(db, application_id, application_in.user)
        else:
            # Apenas desvinculou um dos lados; mantém o outro dono
            if "organization" in provided:
                await db[ORGANIZATION_APPLICATIONS_COLLECTION].delete_many({"applicationId": application_id})
            if "user" in provided:
                await db[APPLICATION_USERS_COLLECTION].delete_many({"applicationId": application_id})

    changes: Dict[str, Any] = {"updatedAt": datetime.now(timezone.utc)}
    if application_in.name:
        changes["name"] = application_in.name
    if application_in.regenApiKey:
        changes["apiKeyId"], changes["apiKeyValue"] = provision_api_key(application_in.name or application.name)
        logger.info(f"API key da aplicação {application_id} regenerada.")

    await _get_applications_collection(db).update_one({"id": application_id}, {"$set": changes})
    return application.model_copy(update=changes)


async def delete_application(db: AsyncIOMotorDatabase, application_id: str) -> Dict[str, Any]:
    """
    Remove a aplicação e seus vínculos.

    Returns:
        A aplicação hidratada, como estava antes da remoção.
    """
    application = await get_application_by_id(db, application_id)
    hydrated = await hydrate_application(db, application)
    await clear_application_links(db, application_id)
    await _get_applications_collection(db).delete_one({"id": application_id})
    logger.info(f"Aplicação {application_id} removida.")
    return hydrated


async def get_user_application_ids(db: AsyncIOMotorDatabase, user_id: str) -> List[str]:
    return [link["applicationId"] async for link in db[APPLICATION_USERS_COLLECTION].find({"userId": user_id})]

# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_application_indexes(db: AsyncIOMotorDatabase):
    try:
        await _get_applications_collection(db).create_index("id", unique=True, name="application_id_unique_idx")
        await _get_applications_collection(db).create_index("apiKeyValue", name="application_api_key_idx")
        await db[APPLICATION_USERS_COLLECTION].create_index("applicationId", unique=True, name="app_user_app_idx")
        await db[APPLICATION_USERS_COLLECTION].create_index("userId", name="app_user_user_idx")
        await db[ORGANIZATION_APPLICATIONS_COLLECTION].create_index(
            "applicationId", unique=True, name="org_app_app_idx"
        )
        await db[ORGANIZATION_APPLICATIONS_COLLECTION].create_index("organizationId", name="org_app_org_idx")
        logger.info("Índices de aplicações verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices de aplicações: {e}", exc_info=True)
