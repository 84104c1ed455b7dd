# ct_auth/routers/deletion.py
"""
Rotas CRUD dos pedidos de deleção de usuário (`/api/v1/deletion`), restritas a ADMIN.
O processamento dos pedidos é feito pelo worker ARQ.
"""

# ========================
# --- Importações ---
# ========================
from typing import Annotated, Optional

from fastapi import APIRouter, Body, Depends, Query, Request

# --- Módulos da Aplicação ---
from ct_auth.core.dependencies import DbDep
from ct_auth.core.errors import DeletionNotFound
from ct_auth.core.policy import AdminUser
from ct_auth.core.serializers import serialize_deletion, serialize_deletion_list
from ct_auth.core.utils import Pagination, build_pagination_link, get_pagination, is_valid_id
from ct_auth.db import deletion_crud
from ct_auth.models.deletion import DeletionCreate, DeletionStatus, DeletionUpdate

# ========================
# --- Configuração do Router ---
# ========================
router = APIRouter()


def _check_id(deletion_id: str) -> None:
    if not is_valid_id(deletion_id):
        raise DeletionNotFound()

# ========================
# --- Rotas da API ---
# ========================
@router.get("", summary="Lista pedidos de deleção")
async def list_deletions(
    request: Request,
    db: DbDep,
    _: AdminUser,
    pagination: Annotated[Pagination, Depends(get_pagination)],
    userId: Optional[str] = Query(None),
    requestorUserId: Optional[str] = Query(None),
    status: Optional[DeletionStatus] = Query(None),
):
    filters = {
        "userId": userId,
        "requestorUserId": requestorUserId,
        "status": status.value if status else None,
    }
    deletions, total = await deletion_crud.list_deletions(db, filters, pagination.number, pagination.size)
    return serialize_deletion_list(deletions, build_pagination_link(request), pagination.number, pagination.size, total)


@router.get("/{deletion_id}", summary="Busca pedido de deleção por ID")
async def get_deletion(db: DbDep, _: AdminUser, deletion_id: str):
    _check_id(deletion_id)
    return serialize_deletion(await deletion_crud.get_deletion_by_id(db, deletion_id))


@router.post("", summary="Cria pedido de deleção")
async def create_deletion(db: DbDep, principal: AdminUser, body: Annotated[DeletionCreate, Body()]):
    return serialize_deletion(await deletion_crud.create_deletion(db, body, principal.id))


@router.patch("/{deletion_id}", summary="Atualiza pedido de deleção")
async def update_deletion(db: DbDep, _: AdminUser, deletion_id: str, body: Annotated[DeletionUpdate, Body()]):
    _check_id(deletion_id)
    return serialize_deletion(await deletion_crud.update_deletion(db, deletion_id, body))


@router.delete("/{deletion_id}", summary="Remove pedido de deleção")
async def delete_deletion(db: DbDep, _: AdminUser, deletion_id: str):
    _check_id(deletion_id)
    return serialize_deletion(await deletion_crud.delete_deletion(db, deletion_id))
