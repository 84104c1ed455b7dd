# ct_auth/models/application.py
"""
Modelos Pydantic para Aplicações (consumidores de API identificados por API key).
Uma aplicação pertence a no máximo um usuário ou a uma organização.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from datetime import datetime, timezone
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field, model_validator

# ========================
# --- Modelos Pydantic ---
# ========================
class ApplicationBase(BaseModel):
    name: str = Field(..., title="Nome da Aplicação", min_length=1, max_length=200)


class ApplicationCreate(ApplicationBase):
    """
    Payload de criação. `organization` e `user` são mutuamente exclusivos;
    quando nenhum é informado a aplicação pertence ao solicitante.
    """
    organization: Optional[str] = Field(None, title="ID da Organização Dona")
    user: Optional[str] = Field(None, title="ID do Usuário Dono")

    model_config = {
        "json_schema_extra": {
            "examples": [{"name": "My data app"}, {"name": "Org app", "organization": "7b0e..."}]
        }
    }

    @model_validator(mode='after')
    def check_single_owner(self) -> 'ApplicationCreate':
        if self.organization and self.user:
            raise ValueError('"organization" and "user" cannot be set at the same time')
        return self


class ApplicationUpdate(BaseModel):
    """
    Atualização parcial. Informar `organization` ou `user` como `null`
    remove o vínculo correspondente.
    """
    name: Optional[str] = Field(None, title="Nome da Aplicação", min_length=1, max_length=200)
    organization: Optional[str] = Field(None, title="ID da Organização Dona")
    user: Optional[str] = Field(None, title="ID do Usuário Dono")
    regenApiKey: bool = Field(False, title="Regerar API Key")

    @model_validator(mode='after')
    def check_single_owner(self) -> 'ApplicationUpdate':
        if self.organization and self.user:
            raise ValueError('"organization" and "user" cannot be set at the same time')
        return self


class ApplicationInDB(ApplicationBase):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()), title="ID da Aplicação")
    apiKeyId: Optional[str] = Field(None, title="ID da API Key")
    apiKeyValue: Optional[str] = Field(None, title="Valor da API Key")
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(from_attributes=True)
