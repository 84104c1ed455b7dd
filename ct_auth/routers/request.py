# ct_auth/routers/request.py
"""
Rota de validação de requisições (`/api/v1/request/validate`), usada por
outros microsserviços para resolver um token de usuário e/ou uma API key.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Any, Dict, Optional

from fastapi import APIRouter, Body, HTTPException, status
from pydantic import BaseModel

# --- Módulos da Aplicação ---
from ct_auth.core.dependencies import CacheDep, DbDep
from ct_auth.core.errors import ApplicationNotFound, AuthError, TokenRevoked
from ct_auth.core.policy import Microservice
from ct_auth.core.revocation import ensure_not_revoked
from ct_auth.core.security import decode_token, strip_bearer_prefix
from ct_auth.core.serializers import serialize_application, serialize_user
from ct_auth.db import application_crud, user_crud
from ct_auth.models.token import MICROSERVICE_ID

# ========================
# --- Configuração do Router ---
# ========================
logger = logging.getLogger(__name__)
router = APIRouter()


class ValidateRequest(BaseModel):
    userToken: Optional[str] = None
    apiKey: Optional[str] = None

# ========================
# --- Rotas da API ---
# ========================
@router.post("/validate", summary="Valida token de usuário e/ou API key")
async def validate_request(db: DbDep, cache: CacheDep, _: Microservice, body: Annotated[ValidateRequest, Body()]):
    response: Dict[str, Any] = {}

    if body.userToken:
        try:
            payload = decode_token(strip_bearer_prefix(body.userToken))
        except AuthError as e:
            logger.info(f"userToken recusado na validação de requisição: {e.message}")
            raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail="Invalid userToken")

        if payload.is_microservice:
            response["user"] = {"data": {"id": MICROSERVICE_ID}}
        else:
            # Usuário inexistente já é tratado como token revogado
            await ensure_not_revoked(db, cache, payload)
            user = await user_crud.get_user_by_id(db, payload.id)
            if user is None:
                logger.info(f"Usuário {payload.id} removido durante a validação de requisição.")
                raise TokenRevoked()
            response["user"] = serialize_user(user)

    if body.apiKey:
        application = await application_crud.get_application_by_api_key(db, body.apiKey)
        if application is None:
            raise ApplicationNotFound()
        response["application"] = serialize_application(await application_crud.hydrate_application(db, application))

    return response
