# ct_auth/core/dependencies.py
"""
Define as dependências reutilizáveis da aplicação FastAPI: acesso ao banco,
ao cache de revogação e ao registro de estratégias, e o portão de autenticação
(`authenticate_request`) aplicado a todas as rotas.

Fluxo do portão: extrai a credencial dos headers, valida o JWT, verifica a
revogação e anexa o principal resolvido em `request.state.principal`.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Awaitable, Callable, Optional

from fastapi import Depends, Request
from motor.motor_asyncio import AsyncIOMotorDatabase

# --- Módulos da Aplicação ---
from ct_auth.core.cache import NullCache
from ct_auth.core.config import settings
from ct_auth.core.errors import (
    GENERIC_AUTH_ERROR,
    TOKEN_INVALID_MESSAGE,
    TOKEN_OUTDATED_MESSAGE,
    AuthError,
    InvalidHeaderFormat,
    MissingCredential,
    StoreUnavailable,
    TokenMalformed,
    TokenRevoked,
)
from ct_auth.core.revocation import is_token_revoked
from ct_auth.core.security import decode_token, extract_token
from ct_auth.core.strategies import StrategyRegistry
from ct_auth.db.mongodb_utils import get_database
from ct_auth.models.token import Principal, TokenPayload

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

RevocationChecker = Callable[[TokenPayload], Awaitable[bool]]

# ========================
# --- Dependências de Recursos ---
# ========================
def get_cache(request: Request):
    """Cache de revogação criado no lifespan (ou um cache nulo)."""
    return getattr(request.app.state, "cache", None) or NullCache()


def get_strategy_registry(request: Request) -> StrategyRegistry:
    registry = getattr(request.app.state, "strategies", None)
    if registry is None:
        registry = StrategyRegistry()
    return registry


DbDep = Annotated[AsyncIOMotorDatabase, Depends(get_database)]
CacheDep = Annotated[object, Depends(get_cache)]
RegistryDep = Annotated[StrategyRegistry, Depends(get_strategy_registry)]

# ========================
# --- Dependência: Verificador de Revogação ---
# ========================
def get_revocation_checker(cache: CacheDep) -> RevocationChecker:
    """
    Devolve a função `(payload) -> revogado?` usada pelo portão.
    O banco só é consultado quando há um token de usuário a verificar.
    """
    async def check(payload: TokenPayload) -> bool:
        try:
            db = get_database()
        except RuntimeError:
            raise StoreUnavailable()
        return await is_token_revoked(db, cache, payload)

    return check

# ========================
# --- Portão de Autenticação ---
# ========================
def _reject(detail: str) -> AuthError:
    return AuthError(detail)


async def authenticate_request(
    request: Request,
    check_revoked: Annotated[RevocationChecker, Depends(get_revocation_checker)],
) -> Optional[Principal]:
    """
    Dependência global que resolve o principal da requisição.

    Com passthrough:
    - sem credencial, a requisição segue anônima;
    - token revogado (ou banco indisponível) vira 401 "outdated" e token
      malformado vira 401 "invalid";
    - as demais falhas ficam em `request.state.auth_error` e a requisição
      segue anônima.

    Sem passthrough, qualquer falha vira 401 com a mensagem original da
    validação (genérica em produção).

    Raises:
        AuthError: Quando a requisição deve ser interrompida com 401.
    """
    passthrough = settings.JWT_PASSTHROUGH
    request.state.principal = None
    request.state.auth_error = None

    try:
        token = extract_token(request.headers, passthrough)
        if token is None:
            if passthrough:
                return None
            raise MissingCredential()

        payload = decode_token(token)
        if not payload.is_microservice and await check_revoked(payload):
            raise TokenRevoked()
    except InvalidHeaderFormat:
        raise
    except AuthError as e:
        if isinstance(e, StoreUnavailable):
            logger.error(f"Revogação não verificada em {request.url.path}: banco indisponível (fail-closed).")
        if passthrough:
            if isinstance(e, TokenRevoked):
                raise _reject(TOKEN_OUTDATED_MESSAGE)
            if isinstance(e, TokenMalformed):
                raise _reject(TOKEN_INVALID_MESSAGE)
            logger.info(f"Falha de autenticação repassada ao handler em {request.url.path}: {e.message}")
            request.state.auth_error = e
            return None
        raise _reject(GENERIC_AUTH_ERROR if settings.is_production else e.message)

    principal = Principal.from_payload(payload)
    request.state.principal = principal
    return principal

# ========================
# --- Dependência: Principal Atual ---
# ========================
def get_current_principal(
    principal: Annotated[Optional[Principal], Depends(authenticate_request)],
) -> Optional[Principal]:
    """
    Principal resolvido pelo portão (None para requisições anônimas).
    O FastAPI reaproveita o resultado do portão dentro da mesma requisição.
    """
    return principal


OptionalPrincipal = Annotated[Optional[Principal], Depends(get_current_principal)]
