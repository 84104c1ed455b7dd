# ct_auth/routers/organization.py
"""
Rotas CRUD de Organizações (`/api/v1/organization`), restritas a ADMIN.
"""

# ========================
# --- Importações ---
# ========================
from typing import Annotated

from fastapi import APIRouter, Body, Depends, Request

# --- Módulos da Aplicação ---
from ct_auth.core.dependencies import DbDep
from ct_auth.core.errors import OrganizationNotFound
from ct_auth.core.policy import AdminUser
from ct_auth.core.serializers import serialize_organization, serialize_organization_list
from ct_auth.core.utils import Pagination, build_pagination_link, get_pagination, is_valid_id
from ct_auth.db import organization_crud
from ct_auth.models.organization import OrganizationCreate, OrganizationUpdate

# ========================
# --- Configuração do Router ---
# ========================
router = APIRouter()


def _check_id(organization_id: str) -> None:
    if not is_valid_id(organization_id):
        raise OrganizationNotFound()

# ========================
# --- Rotas da API ---
# ========================
@router.get("", summary="Lista organizações paginadas")
async def list_organizations(
    request: Request,
    db: DbDep,
    _: AdminUser,
    pagination: Annotated[Pagination, Depends(get_pagination)],
):
    organizations, total = await organization_crud.list_organizations(db, pagination.number, pagination.size)
    hydrated = [await organization_crud.hydrate_organization(db, org) for org in organizations]
    return serialize_organization_list(
        hydrated, build_pagination_link(request), pagination.number, pagination.size, total
    )


@router.get("/{organization_id}", summary="Busca organização por ID")
async def get_organization(db: DbDep, _: AdminUser, organization_id: str):
    _check_id(organization_id)
    organization = await organization_crud.get_organization_by_id(db, organization_id)
    return serialize_organization(await organization_crud.hydrate_organization(db, organization))


@router.post("", summary="Cria organização")
async def create_organization(db: DbDep, _: AdminUser, body: Annotated[OrganizationCreate, Body()]):
    organization = await organization_crud.create_organization(db, body)
    return serialize_organization(await organization_crud.hydrate_organization(db, organization))


@router.patch("/{organization_id}", summary="Atualiza organização")
async def update_organization(
    db: DbDep,
    principal: AdminUser,
    organization_id: str,
    body: Annotated[OrganizationUpdate, Body()],
):
    _check_id(organization_id)
    organization = await organization_crud.update_organization(db, organization_id, body, principal)
    return serialize_organization(await organization_crud.hydrate_organization(db, organization))


@router.delete("/{organization_id}", summary="Remove organização")
async def delete_organization(db: DbDep, _: AdminUser, organization_id: str):
    _check_id(organization_id)
    return serialize_organization(await organization_crud.delete_organization(db, organization_id))
