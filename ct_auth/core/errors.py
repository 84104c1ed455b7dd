# ct_auth/core/errors.py
"""
Taxonomia de erros do serviço e handlers de exceção do FastAPI.

Dois grupos de exceções são definidos:
- `AuthError`: falhas do pipeline de tokens (extração, validação, revogação),
  sempre com semântica HTTP 401.
- `DomainError`: falhas de regra de negócio dos recursos (aplicações,
  organizações, deleções), cada uma com seu status HTTP.

Toda resposta de erro segue o formato `{"errors": [{"status", "detail"}]}`.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Any, Dict, Optional

from fastapi import FastAPI, Request, status
from fastapi.exceptions import RequestValidationError
from fastapi.responses import JSONResponse
from starlette.exceptions import HTTPException as StarletteHTTPException

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Constantes ---
# ========================
JSONAPI_MEDIA_TYPE = "application/vnd.api+json"
GENERIC_SERVER_ERROR = "Unexpected error"
GENERIC_AUTH_ERROR = "Authentication Error"
BAD_HEADER_FORMAT_MESSAGE = 'Bad Authorization header format. Format is "Authorization: Bearer <token>"'
TOKEN_OUTDATED_MESSAGE = (
    "Your token is outdated. Please use /auth/login to login and /auth/generate-token to generate a new token."
)
TOKEN_INVALID_MESSAGE = (
    "Your token is invalid. Please use /auth/login to login and /auth/generate-token to generate a new token."
)

# ========================
# --- Erros do Pipeline de Tokens ---
# ========================
class AuthError(Exception):
    """Base das falhas de autenticação. Sempre mapeada para HTTP 401."""
    status_code: int = status.HTTP_401_UNAUTHORIZED
    message: str = GENERIC_AUTH_ERROR

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class MissingCredential(AuthError):
    """Nenhum header de credencial presente. Só é erro com passthrough desabilitado."""
    message = GENERIC_AUTH_ERROR


class InvalidHeaderFormat(AuthError):
    message = BAD_HEADER_FORMAT_MESSAGE


class TokenMalformed(AuthError):
    """Assinatura inválida ou token estruturalmente corrompido."""
    message = "jwt malformed"


class TokenExpired(AuthError):
    message = "jwt expired"


class TokenRevoked(AuthError):
    message = "Token revoked"


class StoreUnavailable(TokenRevoked):
    """
    Falha ao consultar o estado de revogação no banco.
    Herda de `TokenRevoked`: a política é fail-closed.
    """
    message = "Token revoked"


class ProviderTokenInvalid(AuthError):
    """Token de provedor social recusado pelo provedor."""
    message = "Invalid access token"

# ========================
# --- Erros de Domínio ---
# ========================
class DomainError(Exception):
    """Base dos erros de regra de negócio com status HTTP associado."""
    status_code: int = status.HTTP_400_BAD_REQUEST
    message: str = "Bad request"

    def __init__(self, message: Optional[str] = None):
        self.message = message or self.message
        super().__init__(self.message)


class ApplicationNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Application not found"


class ApplicationAlreadyExists(DomainError):
    message = "Application already exists"


class ApplicationOrphaned(DomainError):
    message = "Application would be left orphaned by this operation"


class OrganizationNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Organization not found"


class UserNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "User not found"


class DeletionNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Deletion not found"


class DeletionAlreadyExists(DomainError):
    message = "Deletion already exists"


class ProviderNotFound(DomainError):
    status_code = status.HTTP_404_NOT_FOUND
    message = "Provider not found"


class PermissionDenied(DomainError):
    status_code = status.HTTP_403_FORBIDDEN
    message = "Not authorized"


class UnprocessableEntity(DomainError):
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    message = "Unprocessable entity"

# ========================
# --- Serialização de Erros ---
# ========================
def serialize_error(status_code: int, detail: str) -> Dict[str, Any]:
    """Monta o corpo padrão de erro: `{"errors": [{"status", "detail"}]}`."""
    return {"errors": [{"status": status_code, "detail": detail}]}


def error_response(status_code: int, detail: str, headers: Optional[Dict[str, str]] = None) -> JSONResponse:
    return JSONResponse(
        status_code=status_code,
        content=serialize_error(status_code, detail),
        media_type=JSONAPI_MEDIA_TYPE,
        headers=headers,
    )


def _public_detail(status_code: int, detail: str) -> str:
    """Em produção, esconde o detalhe de erros 5xx."""
    if status_code >= 500 and settings.is_production:
        return GENERIC_SERVER_ERROR
    return detail


def _format_validation_error(error: Dict[str, Any]) -> str:
    msg = str(error.get("msg", ""))
    if error.get("type") == "value_error":
        # Mensagens dos validadores próprios são repassadas sem o prefixo do Pydantic
        return msg.removeprefix("Value error, ")
    loc = ".".join(str(part) for part in error.get("loc", ()) if part not in ("body", "query", "path"))
    return f'"{loc}" {msg}' if loc else msg

# ========================
# --- Handlers de Exceção ---
# ========================
async def http_exception_handler(request: Request, exc: StarletteHTTPException) -> JSONResponse:
    detail = exc.detail if isinstance(exc.detail, str) else str(exc.detail)
    if exc.status_code >= 500:
        logger.error(f"Erro {exc.status_code} em {request.method} {request.url.path}: {detail}")
    else:
        logger.info(f"Requisição {request.method} {request.url.path} rejeitada com {exc.status_code}: {detail}")
    return error_response(exc.status_code, _public_detail(exc.status_code, detail), getattr(exc, "headers", None))


async def auth_error_handler(request: Request, exc: AuthError) -> JSONResponse:
    logger.info(f"Falha de autenticação em {request.method} {request.url.path}: {exc.message}")
    return error_response(exc.status_code, exc.message, {"WWW-Authenticate": "Bearer"})


async def domain_error_handler(request: Request, exc: DomainError) -> JSONResponse:
    logger.info(f"Erro de domínio em {request.method} {request.url.path}: {exc.status_code} {exc.message}")
    return error_response(exc.status_code, exc.message)


async def validation_exception_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    detail = "; ".join(_format_validation_error(error) for error in exc.errors())
    logger.info(f"Payload inválido em {request.method} {request.url.path}: {detail}")
    return error_response(status.HTTP_400_BAD_REQUEST, detail)


async def unhandled_exception_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.exception(f"Erro inesperado em {request.method} {request.url.path}: {exc}")
    return error_response(
        status.HTTP_500_INTERNAL_SERVER_ERROR,
        _public_detail(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc) or GENERIC_SERVER_ERROR),
    )


def register_exception_handlers(app: FastAPI) -> None:
    """Registra todos os handlers de erro na instância FastAPI."""
    app.add_exception_handler(StarletteHTTPException, http_exception_handler)
    app.add_exception_handler(RequestValidationError, validation_exception_handler)
    app.add_exception_handler(AuthError, auth_error_handler)
    app.add_exception_handler(DomainError, domain_error_handler)
    app.add_exception_handler(Exception, unhandled_exception_handler)
