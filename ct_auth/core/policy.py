# ct_auth/core/policy.py
"""
Política de autorização por papel.

`require_roles` é o único predicado: presença do principal e, em seguida,
pertinência do papel ao conjunto exigido. As dependências FastAPI abaixo
apenas o aplicam com conjuntos fixos.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Annotated, Iterable, Optional

from fastapi import Depends, HTTPException, status

# --- Módulos da Aplicação ---
from ct_auth.core.dependencies import OptionalPrincipal
from ct_auth.models.token import Principal
from ct_auth.models.user import UserRole

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

NOT_AUTHENTICATED = "Not authenticated"
NOT_AUTHORIZED = "Not authorized"

ALL_ROLES = frozenset(role.value for role in UserRole)

# ========================
# --- Predicado ---
# ========================
def require_roles(principal: Optional[Principal], required_roles: Optional[Iterable[str]] = None) -> Principal:
    """
    Garante que existe um principal e que seu papel está em `required_roles`.

    Args:
        principal: Principal da requisição (None quando anônima).
        required_roles: Papéis aceitos. None aceita qualquer usuário autenticado.

    Returns:
        O próprio principal, para uso direto na rota.

    Raises:
        HTTPException: 401 sem principal, 403 com papel fora do conjunto.
    """
    if principal is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail=NOT_AUTHENTICATED,
            headers={"WWW-Authenticate": "Bearer"},
        )
    if required_roles is not None and principal.role not in set(required_roles):
        logger.info(f"Acesso negado ao usuário {principal.id} (papel {principal.role}).")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_AUTHORIZED)
    return principal

# ========================
# --- Dependências de Política ---
# ========================
def logged_user(principal: OptionalPrincipal) -> Principal:
    return require_roles(principal)


def admin_user(principal: OptionalPrincipal) -> Principal:
    return require_roles(principal, {UserRole.ADMIN.value})


def admin_or_manager_user(principal: OptionalPrincipal) -> Principal:
    return require_roles(principal, {UserRole.ADMIN.value, UserRole.MANAGER.value})


def microservice(principal: OptionalPrincipal) -> Principal:
    """Apenas o principal de serviço (`id == "microservice"`)."""
    principal = require_roles(principal)
    if not principal.is_microservice:
        logger.info(f"Rota de microsserviço chamada pelo usuário {principal.id}.")
        raise HTTPException(status_code=status.HTTP_403_FORBIDDEN, detail=NOT_AUTHORIZED)
    return principal

# ========================
# --- Tipos Anotados para Rotas ---
# ========================
LoggedUser = Annotated[Principal, Depends(logged_user)]
AdminUser = Annotated[Principal, Depends(admin_user)]
AdminOrManagerUser = Annotated[Principal, Depends(admin_or_manager_user)]
Microservice = Annotated[Principal, Depends(microservice)]
