# ct_auth/core/serializers.py
"""
Serializadores das respostas da API.

- Usuários: formato plano `{id, _id, email, ...}` dentro de `data`.
- Aplicações, organizações e deleções: documentos JSON:API
  `{"id", "type", "attributes"}`, com `links`/`meta` nas listagens.
"""

# ========================
# --- Importações ---
# ========================
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional

# --- Módulos da Aplicação ---
from ct_auth.core.utils import build_pagination
from ct_auth.models.deletion import DeletionInDB, RESOURCE_FLAGS
from ct_auth.models.user import UserInDB


def _iso(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value else None

# ========================
# --- Usuários ---
# ========================
def serialize_user_element(user: UserInDB) -> Dict[str, Any]:
    return {
        "id": user.id,
        "_id": user.id,
        "email": user.email,
        "name": user.name,
        "photo": user.photo,
        "createdAt": _iso(user.createdAt),
        "updatedAt": _iso(user.updatedAt),
        "role": user.role,
        "provider": user.provider,
        "extraUserData": user.extraUserData.model_dump(),
    }


def serialize_user(user: UserInDB) -> Dict[str, Any]:
    return {"data": serialize_user_element(user)}


def serialize_users(users: Iterable[UserInDB]) -> Dict[str, Any]:
    return {"data": [serialize_user_element(user) for user in users]}


def serialize_user_list(users: List[UserInDB], link: str, page: int, size: int, total: int) -> Dict[str, Any]:
    return {**serialize_users(users), **build_pagination(link, page, size, total)}

# ========================
# --- JSON:API ---
# ========================
def _resource(resource_type: str, data: Dict[str, Any], attributes: Iterable[str]) -> Dict[str, Any]:
    attrs = {}
    for name in attributes:
        value = data.get(name)
        attrs[name] = _iso(value) if isinstance(value, datetime) else value
    return {"id": data["id"], "type": resource_type, "attributes": attrs}


APPLICATION_ATTRIBUTES = ("name", "organization", "user", "apiKeyValue", "createdAt", "updatedAt")
ORGANIZATION_ATTRIBUTES = ("name", "applications", "users", "createdAt", "updatedAt")
DELETION_ATTRIBUTES = ("userId", "requestorUserId", "status", *RESOURCE_FLAGS, "createdAt", "updatedAt")


def serialize_application(application: Dict[str, Any]) -> Dict[str, Any]:
    """Recebe a aplicação hidratada (com `organization`/`user`)."""
    return {"data": _resource("application", application, APPLICATION_ATTRIBUTES)}


def serialize_application_list(applications: List[Dict[str, Any]], link: str, page: int, size: int, total: int):
    return {
        "data": [_resource("application", app, APPLICATION_ATTRIBUTES) for app in applications],
        **build_pagination(link, page, size, total),
    }


def serialize_organization(organization: Dict[str, Any]) -> Dict[str, Any]:
    return {"data": _resource("organization", organization, ORGANIZATION_ATTRIBUTES)}


def serialize_organization_list(organizations: List[Dict[str, Any]], link: str, page: int, size: int, total: int):
    return {
        "data": [_resource("organization", org, ORGANIZATION_ATTRIBUTES) for org in organizations],
        **build_pagination(link, page, size, total),
    }


def serialize_deletion(deletion: DeletionInDB) -> Dict[str, Any]:
    return {"data": _resource("deletion", deletion.model_dump(), DELETION_ATTRIBUTES)}


def serialize_deletion_list(deletions: List[DeletionInDB], link: str, page: int, size: int, total: int):
    return {
        "data": [_resource("deletion", deletion.model_dump(), DELETION_ATTRIBUTES) for deletion in deletions],
        **build_pagination(link, page, size, total),
    }
