# ct_auth/routers/application.py
"""
Rotas CRUD de Aplicações (`/api/v1/application`), restritas a ADMIN.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

# --- Módulos da Aplicação ---
from ct_auth.core.dependencies import DbDep
from ct_auth.core.errors import ApplicationNotFound
from ct_auth.core.policy import AdminUser
from ct_auth.core.serializers import serialize_application, serialize_application_list
from ct_auth.core.utils import Pagination, build_pagination_link, get_pagination, is_valid_id
from ct_auth.db import application_crud
from ct_auth.models.application import ApplicationCreate, ApplicationUpdate

# ========================
# --- Configuração do Router ---
# ========================
logger = logging.getLogger(__name__)
router = APIRouter()


def _check_id(application_id: str) -> None:
    if not is_valid_id(application_id):
        raise ApplicationNotFound()

# ========================
# --- Rotas da API ---
# ========================
@router.get("", summary="Lista aplicações paginadas")
async def list_applications(
    request: Request,
    db: DbDep,
    principal: AdminUser,
    pagination: Annotated[Pagination, Depends(get_pagination)],
    userId: Optional[str] = Query(None, description="Filtra pelas aplicações de um usuário"),
):
    logger.info(f"Listando aplicações para o usuário {principal.id}.")
    applications, total = await application_crud.list_applications(db, pagination.number, pagination.size, userId)
    hydrated = [await application_crud.hydrate_application(db, app) for app in applications]
    return serialize_application_list(
        hydrated, build_pagination_link(request), pagination.number, pagination.size, total
    )


@router.get("/{application_id}", summary="Busca aplicação por ID")
async def get_application(db: DbDep, _: AdminUser, application_id: str):
    _check_id(application_id)
    application = await application_crud.get_application_by_id(db, application_id)
    return serialize_application(await application_crud.hydrate_application(db, application))


@router.post("", summary="Cria aplicação com API key")
async def create_application(db: DbDep, principal: AdminUser, body: Annotated[ApplicationCreate, Body()]):
    application = await application_crud.create_application(db, body, principal)
    return serialize_application(await application_crud.hydrate_application(db, application))


@router.patch("/{application_id}", summary="Atualiza aplicação")
async def update_application(db: DbDep, _: AdminUser, application_id: str, body: Annotated[ApplicationUpdate, Body()]):
    _check_id(application_id)
    application = await application_crud.update_application(db, application_id, body)
    return serialize_application(await application_crud.hydrate_application(db, application))


@router.delete("/{application_id}", summary="Remove aplicação")
async def delete_application(db: DbDep, _: AdminUser, application_id: str):
    _check_id(application_id)
    return serialize_application(await application_crud.delete_application(db, application_id))
