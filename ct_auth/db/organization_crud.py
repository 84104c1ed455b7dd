# ct_auth/db/organization_crud.py
"""
Funções CRUD para Organizações, seus membros (`organization_users`)
e suas aplicações (`organization_applications`).
"""

# ========================
# --- Importações ---
# ========================
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

from motor.motor_asyncio import AsyncIOMotorCollection, AsyncIOMotorDatabase
from pydantic import ValidationError

# --- Módulos da Aplicação ---
from ct_auth.core.errors import OrganizationNotFound, PermissionDenied, UserNotFound
from ct_auth.db import application_crud, user_crud
from ct_auth.models.organization import OrganizationCreate, OrganizationInDB, OrganizationUpdate, OrganizationUser
from ct_auth.models.token import Principal
from ct_auth.models.user import UserRole

# ========================
# --- Configurações e Constantes ---
# ========================
logger = logging.getLogger(__name__)
ORGANIZATIONS_COLLECTION = application_crud.ORGANIZATIONS_COLLECTION
ORGANIZATION_USERS_COLLECTION = "organization_users"
ORGANIZATION_APPLICATIONS_COLLECTION = application_crud.ORGANIZATION_APPLICATIONS_COLLECTION


def _get_organizations_collection(db: AsyncIOMotorDatabase) -> AsyncIOMotorCollection:
    return db[ORGANIZATIONS_COLLECTION]


def _to_organization(doc: Optional[Dict[str, Any]]) -> Optional[OrganizationInDB]:
    if not doc:
        return None
    doc.pop('_id', None)
    try:
        return OrganizationInDB.model_validate(doc)
    except ValidationError as e:
        logger.error(f"DB Validation error organization {doc.get('id')}: {e}")
        return None

# ========================
# --- Vínculos ---
# ========================
async def _associate_applications(db: AsyncIOMotorDatabase, organization_id: str, application_ids: List[str]) -> None:
    for application_id in application_ids:
        await application_crud.get_application_by_id(db, application_id)
        await application_crud.link_application_to_organization(db, application_id, organization_id)


async def _associate_users(db: AsyncIOMotorDatabase, organization_id: str, users: List[OrganizationUser]) -> None:
    for member in users:
        if await user_crud.get_user_by_id(db, member.id) is None:
            raise UserNotFound(f"User {member.id} not found")
    if users:
        await db[ORGANIZATION_USERS_COLLECTION].insert_many(
            [{"organizationId": organization_id, "userId": member.id, "role": member.role} for member in users]
        )


async def _clear_links(db: AsyncIOMotorDatabase, organization_id: str, applications: bool = True, users: bool = True):
    if applications:
        await db[ORGANIZATION_APPLICATIONS_COLLECTION].delete_many({"organizationId": organization_id})
    if users:
        await db[ORGANIZATION_USERS_COLLECTION].delete_many({"organizationId": organization_id})


async def hydrate_organization(db: AsyncIOMotorDatabase, organization: OrganizationInDB) -> Dict[str, Any]:
    """Dados da organização com `applications` [{id, name}] e `users` [{id, name, role}]."""
    data = organization.model_dump()

    applications = []
    async for link in db[ORGANIZATION_APPLICATIONS_COLLECTION].find({"organizationId": organization.id}):
        app_doc = await db[application_crud.APPLICATIONS_COLLECTION].find_one({"id": link["applicationId"]})
        if app_doc:
            applications.append({"id": app_doc["id"], "name": app_doc.get("name")})

    users = []
    async for link in db[ORGANIZATION_USERS_COLLECTION].find({"organizationId": organization.id}):
        user = await user_crud.get_user_by_id(db, link["userId"])
        users.append({"id": link["userId"], "name": user.name if user else None, "role": link.get("role")})

    data["applications"] = applications
    data["users"] = users
    return data

# ========================
# --- Operações CRUD ---
# ========================
async def get_organization_by_id(db: AsyncIOMotorDatabase, organization_id: str) -> OrganizationInDB:
    """
    Raises:
        OrganizationNotFound: Se não existir organização com o ID.
    """
    organization = _to_organization(await _get_organizations_collection(db).find_one({"id": organization_id}))
    if organization is None:
        raise OrganizationNotFound()
    return organization


async def list_organizations(
    db: AsyncIOMotorDatabase,
    page: int,
    size: int,
    user_id: Optional[str] = None,
) -> Tuple[List[OrganizationInDB], int]:
    """Lista organizações paginadas, opcionalmente só as que têm o usuário como membro."""
    query: Dict[str, Any] = {}
    if user_id:
        ids = [link["organizationId"] async for link in db[ORGANIZATION_USERS_COLLECTION].find({"userId": user_id})]
        query["id"] = {"$in": ids}

    collection = _get_organizations_collection(db)
    total = await collection.count_documents(query)
    organizations: List[OrganizationInDB] = []
    async for doc in collection.find(query).sort("createdAt", -1).skip((page - 1) * size).limit(size):
        organization = _to_organization(doc)
        if organization:
            organizations.append(organization)
    return organizations, total


async def create_organization(db: AsyncIOMotorDatabase, organization_in: OrganizationCreate) -> OrganizationInDB:
    organization = OrganizationInDB(name=organization_in.name)
    await _get_organizations_collection(db).insert_one(organization.model_dump())
    await _associate_applications(db, organization.id, organization_in.applications)
    await _associate_users(db, organization.id, organization_in.users)
    logger.info(f"Organização {organization.id} ('{organization.name}') criada.")
    return organization


async def update_organization(
    db: AsyncIOMotorDatabase,
    organization_id: str,
    organization_in: OrganizationUpdate,
    requester: Principal,
) -> OrganizationInDB:
    """
    Atualiza nome e substitui membros e/ou aplicações quando informados.

    Raises:
        OrganizationNotFound: Organização inexistente.
        PermissionDenied: Não-ADMIN associando aplicação que não lhe pertence.
    """
    organization = await get_organization_by_id(db, organization_id)
    provided = organization_in.model_fields_set

    if "applications" in provided and organization_in.applications is not None:
        if requester.role != UserRole.ADMIN:
            for application_id in organization_in.applications:
                application = await application_crud.get_application_by_id(db, application_id)
                owner_org, owner_user = await application_crud.get_application_owner(db, application_id)
                if owner_user != requester.id and owner_org != organization_id:
                    raise PermissionDenied(
                        f"You don't have permissions to associate application {application.name} "
                        f"with organization {organization.name}"
                    )
        await _clear_links(db, organization_id, users=False)
        await _associate_applications(db, organization_id, organization_in.applications)

    if "users" in provided and organization_in.users is not None:
        await _clear_links(db, organization_id, applications=False)
        await _associate_users(db, organization_id, organization_in.users)

    changes: Dict[str, Any] = {"updatedAt": datetime.now(timezone.utc)}
    if organization_in.name:
        changes["name"] = organization_in.name
    await _get_organizations_collection(db).update_one({"id": organization_id}, {"$set": changes})
    return organization.model_copy(update=changes)


async def delete_organization(db: AsyncIOMotorDatabase, organization_id: str) -> Dict[str, Any]:
    """
    Remove a organização e todos os seus vínculos.

    Returns:
        A organização hidratada, como estava antes da remoção.
    """
    organization = await get_organization_by_id(db, organization_id)
    hydrated = await hydrate_organization(db, organization)
    await _clear_links(db, organization_id)
    await _get_organizations_collection(db).delete_one({"id": organization_id})
    logger.info(f"Organização {organization_id} removida.")
    return hydrated

# ========================
# --- Configuração de Índices do Banco de Dados ---
# ========================
async def create_organization_indexes(db: AsyncIOMotorDatabase):
    try:
        await _get_organizations_collection(db).create_index("id", unique=True, name="organization_id_unique_idx")
        await db[ORGANIZATION_USERS_COLLECTION].create_index(
            [("organizationId", 1), ("userId", 1)], unique=True, name="org_user_unique_idx"
        )
        await db[ORGANIZATION_USERS_COLLECTION].create_index("userId", name="org_user_user_idx")
        logger.info("Índices de organizações verificados/criados com sucesso.")
    except Exception as e:
        logger.error(f"Erro ao criar índices de organizações: {e}", exc_info=True)
