# ct_auth/models/user.py
"""
Este módulo define os modelos Pydantic para a entidade Usuário (User)
e para os registros auxiliares do fluxo de cadastro local:
usuário temporário (aguardando confirmação) e token de renovação de senha.
Inclui também os payloads aceitos pelas rotas `/auth`.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

# ========================
# --- Enumerações ---
# ========================
class UserRole(str, Enum):
    """Papéis globais de usuário."""
    SUPERADMIN = "SUPERADMIN"
    ADMIN = "ADMIN"
    MANAGER = "MANAGER"
    USER = "USER"


class AuthProvider(str, Enum):
    LOCAL = "local"
    GOOGLE = "google"
    FACEBOOK = "facebook"
    APPLE = "apple"


def _now() -> datetime:
    return datetime.now(timezone.utc)


def _new_id() -> str:
    return str(uuid.uuid4())

# ========================
# --- Modelos Pydantic de User ---
# ========================
class ExtraUserData(BaseModel):
    """Dados extras do usuário. `apps` lista as aplicações às quais ele pertence."""
    apps: List[str] = Field(default_factory=list, title="Aplicações do Usuário")

    model_config = ConfigDict(extra="allow")


class UserInDB(BaseModel):
    """
    Representação completa de um usuário como armazenado no banco.
    `tokensInvalidatedAt` é o registro de revogação: tokens emitidos
    antes desse instante são rejeitados.
    """
    id: str = Field(default_factory=_new_id, title="ID Único do Usuário")
    name: Optional[str] = Field(None, title="Nome")
    photo: Optional[str] = Field(None, title="URL da Foto")
    provider: AuthProvider = Field(default=AuthProvider.LOCAL, title="Provedor de Identidade")
    providerId: Optional[str] = Field(None, title="ID no Provedor")
    email: Optional[str] = Field(None, title="Endereço de E-mail")
    password: Optional[str] = Field(None, title="Senha Hasheada")
    role: UserRole = Field(default=UserRole.USER, title="Papel")
    extraUserData: ExtraUserData = Field(default_factory=ExtraUserData, title="Dados Extras")
    userToken: Optional[str] = Field(None, title="Último Token Gerado")
    tokensInvalidatedAt: Optional[datetime] = Field(None, title="Revogação de Tokens")
    createdAt: datetime = Field(default_factory=_now, title="Data de Criação")
    updatedAt: datetime = Field(default_factory=_now, title="Data da Última Atualização")

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)


class UserTempInDB(BaseModel):
    """Usuário local aguardando confirmação de e-mail (expira em 7 dias)."""
    id: str = Field(default_factory=_new_id)
    email: str
    name: Optional[str] = None
    password: str
    role: UserRole = Field(default=UserRole.USER)
    confirmationToken: str
    extraUserData: ExtraUserData = Field(default_factory=ExtraUserData)
    createdAt: datetime = Field(default_factory=_now)

    model_config = ConfigDict(use_enum_values=True)


class RenewInDB(BaseModel):
    """Token de troca de senha emitido por `/auth/reset-password`."""
    userId: str
    token: str
    createdAt: datetime = Field(default_factory=_now)

# ========================
# --- Payloads das Rotas ---
# ========================
class LoginRequest(BaseModel):
    email: str = Field(..., title="E-mail")
    password: str = Field(..., title="Senha")

    model_config = {
        "json_schema_extra": {
            "examples": [{"email": "user@example.com", "password": "averysecurepassword"}]
        }
    }


class SignUpRequest(BaseModel):
    """
    Cadastro local. Os campos são opcionais no schema porque as mensagens
    de obrigatoriedade são devolvidas pela rota (422).
    """
    email: Optional[EmailStr] = None
    password: Optional[str] = None
    repeatPassword: Optional[str] = None
    name: Optional[str] = None
    apps: List[str] = Field(default_factory=list)


class ResetPasswordRequest(BaseModel):
    email: Optional[str] = None


class NewPasswordRequest(BaseModel):
    password: Optional[str] = None
    repeatPassword: Optional[str] = None


class UserCreate(BaseModel):
    """Criação de usuário por ADMIN/MANAGER (a senha é gerada e enviada por e-mail)."""
    email: EmailStr = Field(..., title="Endereço de E-mail")
    name: Optional[str] = Field(None, title="Nome")
    role: UserRole = Field(default=UserRole.USER, title="Papel")
    extraUserData: Optional[ExtraUserData] = Field(None, title="Dados Extras")
    callbackUrl: Optional[str] = Field(None, title="URL de Retorno")

    model_config = ConfigDict(use_enum_values=True)


class UserUpdate(BaseModel):
    """
    Atualização parcial de usuário. `role` e `extraUserData.apps`
    só são aplicados quando o solicitante é ADMIN.
    """
    name: Optional[str] = Field(None, title="Nome")
    photo: Optional[str] = Field(None, title="URL da Foto")
    role: Optional[UserRole] = Field(None, title="Papel")
    extraUserData: Optional[ExtraUserData] = Field(None, title="Dados Extras")

    model_config = {
        "use_enum_values": True,
        "json_schema_extra": {
            "examples": [
                {"name": "New Name", "photo": "https://example.com/photo.png"},
                {"role": "MANAGER", "extraUserData": {"apps": ["rw", "gfw"]}},
            ]
        }
    }


class FindByIdsRequest(BaseModel):
    ids: Optional[List[str]] = None
