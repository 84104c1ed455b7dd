# ct_auth/models/organization.py
"""
Modelos Pydantic para Organizações, seus membros e aplicações vinculadas.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

# ========================
# --- Enumerações ---
# ========================
class OrganizationRole(str, Enum):
    ORG_ADMIN = "ORG_ADMIN"
    ORG_MEMBER = "ORG_MEMBER"

# ========================
# --- Modelos Pydantic ---
# ========================
class OrganizationUser(BaseModel):
    id: str = Field(..., title="ID do Usuário")
    role: OrganizationRole = Field(..., title="Papel na Organização")

    model_config = ConfigDict(use_enum_values=True)


def _require_org_admin(users: Optional[List[OrganizationUser]]) -> Optional[List[OrganizationUser]]:
    if users is not None and not any(user.role == OrganizationRole.ORG_ADMIN for user in users):
        raise ValueError('"users" must contain a user with role ORG_ADMIN')
    return users


class OrganizationCreate(BaseModel):
    name: str = Field(..., title="Nome da Organização", min_length=1, max_length=200)
    users: List[OrganizationUser] = Field(..., title="Membros", min_length=1)
    applications: List[str] = Field(default_factory=list, title="IDs de Aplicações")

    model_config = {
        "json_schema_extra": {
            "examples": [
                {
                    "name": "Acme",
                    "users": [{"id": "5f1c...", "role": "ORG_ADMIN"}],
                    "applications": [],
                }
            ]
        }
    }

    @field_validator('users')
    @classmethod
    def users_must_have_admin(cls, v):
        return _require_org_admin(v)


class OrganizationUpdate(BaseModel):
    """Substitui nome, membros e/ou aplicações quando informados."""
    name: Optional[str] = Field(None, title="Nome da Organização", min_length=1, max_length=200)
    users: Optional[List[OrganizationUser]] = Field(None, title="Membros", min_length=1)
    applications: Optional[List[str]] = Field(None, title="IDs de Aplicações")

    @field_validator('users')
    @classmethod
    def users_must_have_admin(cls, v):
        return _require_org_admin(v)


class OrganizationInDB(BaseModel):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    name: str
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(from_attributes=True)
