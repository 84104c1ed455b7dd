# ct_auth/models/token.py
"""
Modelos Pydantic do pipeline de tokens: o payload decodificado de um JWT
e o principal resolvido que fica anexado ao estado da requisição.
"""

# ========================
# --- Importações ---
# ========================
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

# ========================
# --- Constantes ---
# ========================
MICROSERVICE_ID = "microservice"

# ========================
# --- Modelos Pydantic Token ---
# ========================
class TokenResponse(BaseModel):
    """Resposta de `/auth/generate-token` e dos logins sociais."""
    token: str = Field(..., title="Token JWT")


class TokenPayload(BaseModel):
    """
    Claims de um token emitido pelo serviço.
    Campos desconhecidos são preservados para não perder dados de tokens antigos.
    """
    id: str = Field(..., title="ID do Sujeito")
    role: Optional[str] = Field(None, title="Papel do Usuário")
    provider: Optional[str] = Field(None, title="Provedor de Identidade")
    email: Optional[str] = Field(None, title="E-mail")
    extraUserData: Optional[Dict[str, Any]] = Field(None, title="Dados Extras (apps)")
    createdAt: Optional[Any] = Field(None, title="Momento de Emissão (legado)")
    photo: Optional[str] = Field(None, title="Foto")
    name: Optional[str] = Field(None, title="Nome")
    iat: Optional[int] = Field(None, title="Issued At (epoch em segundos)")
    exp: Optional[int] = Field(None, title="Timestamp de Expiração")

    model_config = ConfigDict(extra="allow")

    @property
    def is_microservice(self) -> bool:
        return self.id == MICROSERVICE_ID


class Principal(BaseModel):
    """
    Identidade resolvida de uma requisição autenticada.
    Para o principal de serviço apenas `id == "microservice"` é preenchido.
    """
    id: str
    role: Optional[str] = None
    provider: Optional[str] = None
    providerId: Optional[str] = None
    createdAt: Optional[Any] = None
    extraUserData: Optional[Dict[str, Any]] = None
    email: Optional[str] = None
    photo: Optional[str] = None
    name: Optional[str] = None

    model_config = ConfigDict(from_attributes=True)

    @property
    def is_microservice(self) -> bool:
        return self.id == MICROSERVICE_ID

    @property
    def apps(self) -> list:
        return list((self.extraUserData or {}).get("apps") or [])

    @classmethod
    def from_payload(cls, payload: TokenPayload) -> "Principal":
        if payload.is_microservice:
            return cls(id=MICROSERVICE_ID)
        return cls.model_validate(payload.model_dump(include=set(cls.model_fields)))
