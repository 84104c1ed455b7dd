# ct_auth/routers/users.py
"""
Rotas de gerenciamento de usuários sob `/auth/user`.

Consulta e edição do próprio usuário, administração (ADMIN/MANAGER) e as
rotas de apoio consumidas por outros microsserviços (principal de serviço).
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, Depends, HTTPException, Query, Request, status

# --- Módulos da Aplicação ---
from ct_auth.core import email as mail
from ct_auth.core.dependencies import CacheDep, DbDep
from ct_auth.core.policy import NOT_AUTHORIZED, AdminOrManagerUser, AdminUser, LoggedUser, Microservice
from ct_auth.core.security import generate_random_token, get_password_hash
from ct_auth.core.serializers import serialize_user, serialize_user_element, serialize_user_list, serialize_users
from ct_auth.core.utils import Pagination, build_pagination_link, get_pagination, is_valid_id
from ct_auth.db import signup_crud, user_crud
from ct_auth.models.token import Principal
from ct_auth.models.user import FindByIdsRequest, UserCreate, UserRole, UserTempInDB, UserUpdate

# ========================
# --- Configuração do Router ---
# ========================
logger = logging.getLogger(__name__)
router = APIRouter()

# ========================
# --- Funções Auxiliares ---
# ========================
def _forbidden(detail: str = NOT_AUTHORIZED) -> HTTPException:
    return HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=detail)


def _check_id(user_id: str) -> None:
    if not is_valid_id(user_id):
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid id {user_id} provided")


def _user_not_found() -> HTTPException:
    return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")


async def _update_user(db, cache, user_id: str, body: UserUpdate, requester: Principal) -> Dict[str, Any]:
    """
    Aplica a atualização permitida ao solicitante. Mudança de papel ou de
    aplicações invalida os tokens existentes do usuário alterado.
    """
    current = await user_crud.get_user_by_id(db, user_id)
    if current is None:
        raise _user_not_found()

    changes: Dict[str, Any] = body.model_dump(include={"name", "photo"}, exclude_unset=True)
    invalidate = False
    if requester.role == UserRole.ADMIN.value:
        if body.role is not None and body.role != current.role:
            changes["role"] = body.role
            invalidate = True
        if body.extraUserData is not None:
            apps = body.extraUserData.apps
            if sorted(apps) != sorted(current.extraUserData.apps):
                changes["extraUserData"] = {**current.extraUserData.model_dump(), "apps": apps}
                invalidate = True

    user = await user_crud.update_user(db, user_id, changes, cache=cache, invalidate_tokens=invalidate)
    if user is None:
        raise _user_not_found()
    return serialize_user(user)

# ========================
# --- Rotas do Próprio Usuário ---
# ========================
@router.get("/me", summary="Usuário autenticado")
async def get_me(db: DbDep, principal: LoggedUser):
    user = await user_crud.get_user_by_id(db, principal.id)
    if user is None:
        raise _user_not_found()
    return serialize_user_element(user)


@router.get("/from-token", summary="Usuário dono do token")
async def get_user_from_token(db: DbDep, principal: LoggedUser):
    user = await user_crud.get_user_by_id(db, principal.id)
    if user is None:
        raise _user_not_found()
    return serialize_user_element(user)


@router.patch("/me", summary="Atualiza o usuário autenticado")
async def update_me(db: DbDep, cache: CacheDep, principal: LoggedUser, body: Annotated[UserUpdate, Body()]):
    return await _update_user(db, cache, principal.id, body, principal)

# ========================
# --- Rotas de Microsserviço ---
# ========================
@router.post("/find-by-ids", summary="Busca usuários por lista de IDs")
async def find_by_ids(db: DbDep, _: Microservice, body: Annotated[FindByIdsRequest, Body()]):
    if not body.ids:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Ids objects required")
    ids = [user_id for user_id in body.ids if is_valid_id(user_id)]
    return serialize_users(await user_crud.get_users_by_ids(db, ids))


@router.get("/ids/{role}", summary="IDs dos usuários com um papel")
async def get_ids_by_role(db: DbDep, _: Microservice, role: str):
    if role not in {r.value for r in UserRole}:
        raise HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=f"Invalid role {role} provided")
    return {"data": await user_crud.get_user_ids_by_role(db, role)}

# ========================
# --- Rotas Administrativas ---
# ========================
@router.get("", summary="Lista usuários (ADMIN)")
async def list_users(
    request: Request,
    db: DbDep,
    principal: AdminUser,
    pagination: Annotated[Pagination, Depends(get_pagination)],
    app: Optional[str] = Query(None, description="'all' ou lista separada por vírgulas"),
    name: Optional[str] = Query(None),
    provider: Optional[str] = Query(None),
    email: Optional[str] = Query(None),
    role: Optional[str] = Query(None),
):
    if not principal.apps:
        raise _forbidden()

    if app == "all":
        apps = None
    elif app:
        apps = [value.strip() for value in app.split(",") if value.strip()]
    else:
        apps = principal.apps

    filters = {"name": name, "provider": provider, "email": email, "role": role}
    users, total = await user_crud.list_users(db, apps, filters, pagination.number, pagination.size)
    return serialize_user_list(users, build_pagination_link(request), pagination.number, pagination.size, total)


@router.post("", summary="Cria usuário com senha gerada (ADMIN/MANAGER)")
async def create_user(db: DbDep, principal: AdminOrManagerUser, body: Annotated[UserCreate, Body()]):
    if principal.role == UserRole.MANAGER.value and body.role == UserRole.ADMIN.value:
        raise _forbidden("Forbidden")
    if not body.extraUserData or not body.extraUserData.apps:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Apps required")
    if not principal.apps or any(app not in principal.apps for app in body.extraUserData.apps):
        raise _forbidden()

    email = str(body.email)
    if await user_crud.get_user_by_email(db, email) or await signup_crud.get_user_temp_by_email(db, email):
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="Email exists")

    password = generate_random_token(8)
    user_temp = UserTempInDB(
        email=email,
        name=body.name,
        password=get_password_hash(password),
        role=body.role,
        confirmationToken=generate_random_token(),
        extraUserData=body.extraUserData,
    )
    await signup_crud.insert_user_temp(db, user_temp)
    await mail.send_user_created_email(email, password, user_temp.confirmationToken, body.callbackUrl)
    logger.info(f"Usuário {email} criado por {principal.id} (papel {body.role}).")
    return {}


@router.get("/{user_id}", summary="Busca usuário por ID (ADMIN)")
async def get_user(db: DbDep, _: AdminUser, user_id: str):
    _check_id(user_id)
    user = await user_crud.get_user_by_id(db, user_id)
    if user is None:
        raise _user_not_found()
    return serialize_user_element(user)


@router.patch("/{user_id}", summary="Atualiza usuário por ID (ADMIN)")
async def update_user(db: DbDep, cache: CacheDep, principal: AdminUser, user_id: str, body: Annotated[UserUpdate, Body()]):
    _check_id(user_id)
    return await _update_user(db, cache, user_id, body, principal)


@router.delete("/{user_id}", summary="Remove usuário por ID (ADMIN)")
async def delete_user(db: DbDep, cache: CacheDep, _: AdminUser, user_id: str):
    _check_id(user_id)
    user = await user_crud.delete_user(db, user_id, cache=cache)
    if user is None:
        raise _user_not_found()
    return serialize_user(user)
