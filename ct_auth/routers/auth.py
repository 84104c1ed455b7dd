# ct_auth/routers/auth.py
"""
Este módulo define as rotas de autenticação sob `/auth`: login local,
emissão e revogação de tokens, cadastro com confirmação por e-mail,
troca de senha e login social pelos provedores registrados.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Body, HTTPException, Query, Response, status
from fastapi.responses import RedirectResponse
from pymongo.errors import DuplicateKeyError

# --- Módulos da Aplicação ---
from ct_auth.core import email as mail
from ct_auth.core.config import settings
from ct_auth.core.dependencies import CacheDep, DbDep, OptionalPrincipal, RegistryDep
from ct_auth.core.policy import LoggedUser
from ct_auth.core.security import generate_random_token, get_password_hash, verify_password
from ct_auth.core.serializers import serialize_user, serialize_user_element
from ct_auth.core.strategies import SocialProfile
from ct_auth.db import signup_crud, user_crud
from ct_auth.models.token import TokenResponse
from ct_auth.models.user import (
    AuthProvider, ExtraUserData, LoginRequest, NewPasswordRequest, RenewInDB, ResetPasswordRequest,
    SignUpRequest, UserInDB, UserRole, UserTempInDB,
)

# ========================
# --- Configuração do Router ---
# ========================
logger = logging.getLogger(__name__)
router = APIRouter()

REQUIRED_PASSWORD_FIELDS = "Email, Password and Repeat password are required"
PASSWORDS_NOT_EQUAL = "Password and Repeat password not equal"


def _unprocessable(detail: str) -> HTTPException:
    return HTTPException(status_code=status.HTTP_422_UNPROCESSABLE_ENTITY, detail=detail)

# ========================
# --- Login e Tokens ---
# ========================
@router.post("/login", summary="Login local com e-mail e senha")
async def login(db: DbDep, credentials: Annotated[LoginRequest, Body()]):
    """Devolve o usuário serializado acrescido de um token novo."""
    user = await user_crud.get_user_by_email(db, credentials.email)
    if not user or user.provider != AuthProvider.LOCAL.value or not verify_password(credentials.password, user.password):
        logger.info(f"Login recusado para {credentials.email}.")
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid email or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    token = await user_crud.create_token(db, user, save_in_user=False)
    logger.info(f"Usuário {user.id} autenticado.")
    return {"data": {**serialize_user_element(user), "token": token}}


@router.get("/generate-token", response_model=TokenResponse, summary="Gera e guarda um token para o usuário logado")
async def generate_token(db: DbDep, principal: LoggedUser):
    user = await user_crud.get_user_by_id(db, principal.id)
    token = await user_crud.create_token(
        db, user, save_in_user=True, fallback_claims=principal.model_dump(exclude_none=True)
    )
    return TokenResponse(token=token)


@router.get("/check-logged", summary="Dados do usuário autenticado")
async def check_logged(db: DbDep, principal: OptionalPrincipal):
    if principal is None:
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Not logged")
    user = await user_crud.get_user_by_id(db, principal.id)
    if user is None:
        return principal.model_dump()
    return serialize_user_element(user)


@router.get("/logout", status_code=status.HTTP_204_NO_CONTENT, summary="Revoga todos os tokens do usuário")
async def logout(db: DbDep, cache: CacheDep, principal: LoggedUser):
    await user_crud.invalidate_user_tokens(db, principal.id, cache=cache)
    logger.info(f"Logout do usuário {principal.id}.")
    return Response(status_code=status.HTTP_204_NO_CONTENT)

# ========================
# --- Cadastro Local ---
# ========================
@router.post("/sign-up", summary="Cadastro local (aguarda confirmação por e-mail)")
async def sign_up(
    db: DbDep,
    body: Annotated[SignUpRequest, Body()],
    origin: Optional[str] = Query(None, description="Aplicação de origem"),
    callbackUrl: Optional[str] = Query(None),
):
    if not body.email or not body.password or not body.repeatPassword:
        raise _unprocessable(REQUIRED_PASSWORD_FIELDS)
    if body.password != body.repeatPassword:
        raise _unprocessable(PASSWORDS_NOT_EQUAL)

    email = str(body.email)
    if await user_crud.get_user_by_email(db, email) or await signup_crud.get_user_temp_by_email(db, email):
        raise _unprocessable("Email exists")

    user_temp = UserTempInDB(
        email=email,
        name=body.name,
        password=get_password_hash(body.password),
        confirmationToken=generate_random_token(),
        extraUserData=ExtraUserData(apps=body.apps or [origin or settings.DEFAULT_APP]),
    )
    await signup_crud.insert_user_temp(db, user_temp)
    await mail.send_confirmation_email(email, user_temp.confirmationToken, callbackUrl)

    return {
        "data": {
            "id": user_temp.id,
            "email": user_temp.email,
            "createdAt": user_temp.createdAt.isoformat(),
            "role": user_temp.role,
            "extraUserData": user_temp.extraUserData.model_dump(),
        }
    }


@router.get("/confirm/{token}", summary="Confirma o cadastro de um usuário temporário")
async def confirm_user(db: DbDep, token: str, callbackUrl: Optional[str] = Query(None)):
    user_temp = await signup_crud.pop_user_temp_by_token(db, token)
    if user_temp is None:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="User expired or token not found")

    user = UserInDB(
        email=user_temp.email,
        name=user_temp.name,
        password=user_temp.password,
        role=user_temp.role,
        provider=AuthProvider.LOCAL,
        extraUserData=user_temp.extraUserData,
    )
    try:
        await user_crud.insert_user(db, user)
    except DuplicateKeyError:
        raise _unprocessable("Email exists")

    redirect_to = callbackUrl or settings.CONFIRM_URL_REDIRECT
    if redirect_to:
        return RedirectResponse(url=redirect_to, status_code=status.HTTP_302_FOUND)
    return serialize_user(user)

# ========================
# --- Troca de Senha ---
# ========================
@router.post("/reset-password", summary="Envia o link de troca de senha")
async def request_password_reset(db: DbDep, body: Annotated[ResetPasswordRequest, Body()]):
    if not body.email:
        raise _unprocessable("Mail required")

    user = await user_crud.get_user_by_email(db, body.email)
    if user is None or user.provider != AuthProvider.LOCAL.value:
        raise _unprocessable("User not found")

    renew = await signup_crud.insert_renew(db, RenewInDB(userId=user.id, token=generate_random_token()))
    await mail.send_reset_password_email(body.email, renew.token)
    return {"message": "Email sent"}


@router.post("/reset-password/{token}", summary="Define a nova senha a partir do link recebido")
async def reset_password(db: DbDep, cache: CacheDep, token: str, body: Annotated[NewPasswordRequest, Body()]):
    renew = await signup_crud.get_renew_by_token(db, token)
    if renew is None:
        raise _unprocessable("Token expired")
    if not body.password or not body.repeatPassword:
        raise _unprocessable("Password and Repeat password are required")
    if body.password != body.repeatPassword:
        raise _unprocessable(PASSWORDS_NOT_EQUAL)

    user = await user_crud.update_password(db, renew.userId, get_password_hash(body.password), cache=cache)
    await signup_crud.delete_renew(db, token)
    if user is None:
        raise _unprocessable("User not found")

    logger.info(f"Senha do usuário {user.id} redefinida; tokens anteriores invalidados.")
    return serialize_user(user)

# ========================
# --- Login Social ---
# ========================
async def _refresh_social_email(db, cache, user: UserInDB, email: str) -> UserInDB:
    try:
        updated = await user_crud.update_user(db, user.id, {"email": email}, cache=cache)
    except DuplicateKeyError:
        logger.warning(f"E-mail informado pelo provedor já pertence a outro usuário; mantendo o e-mail de {user.id}.")
        return user
    logger.info(f"E-mail do usuário {user.id} atualizado a partir do provedor {user.provider}.")
    return updated or user


async def _link_or_create_social_user(db, cache, profile: SocialProfile, origin: Optional[str]) -> UserInDB:
    existing = await user_crud.get_user_by_email(db, profile.email) if profile.email else None

    if existing is not None and profile.emailVerified:
        linked = await user_crud.update_user(
            db, existing.id, {"provider": profile.provider, "providerId": profile.providerId}, cache=cache
        )
        logger.info(f"Conta {profile.provider} vinculada ao usuário existente {existing.id} pelo e-mail.")
        return linked or existing

    if existing is not None:
        # E-mail não confirmado pelo provedor: nunca entrega a conta de outra pessoa
        logger.warning(
            f"E-mail não verificado pelo provedor {profile.provider} já pertence ao usuário {existing.id}; "
            "nova conta criada sem e-mail."
        )

    return await user_crud.insert_user(
        db,
        UserInDB(
            provider=profile.provider,
            providerId=profile.providerId,
            email=profile.email if existing is None else None,
            name=profile.name,
            photo=profile.photo,
            role=UserRole.USER,
            extraUserData=ExtraUserData(apps=[origin or settings.DEFAULT_APP]),
        ),
    )


@router.get("/{provider}/token", response_model=TokenResponse, summary="Login social com token do provedor")
async def social_login(
    db: DbDep,
    cache: CacheDep,
    registry: RegistryDep,
    provider: str,
    access_token: str = Query(..., description="Token emitido pelo provedor"),
    origin: Optional[str] = Query(None, description="Aplicação de origem"),
):
    """
    Busca o usuário por (provedor, id no provedor) e atualiza o e-mail com o
    informado pelo provedor. Sem correspondência, vincula a conta com o mesmo
    e-mail (apenas se o provedor o confirmou) ou cria um usuário com papel USER.
    """
    profile = await registry.get(provider).verify(access_token)

    user = await user_crud.get_user_by_provider(db, profile.provider, profile.providerId)
    if user is None:
        user = await _link_or_create_social_user(db, cache, profile, origin)
    elif profile.email and profile.emailVerified and profile.email != user.email:
        user = await _refresh_social_email(db, cache, user, profile.email)

    token = await user_crud.create_token(db, user, save_in_user=False)
    return TokenResponse(token=token)
