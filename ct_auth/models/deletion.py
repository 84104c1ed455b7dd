# ct_auth/models/deletion.py
"""
Modelos Pydantic para pedidos de deleção de usuário.
Cada recurso removido via gateway tem sua flag `<recurso>Deleted`.
"""

# ========================
# --- Importações ---
# ========================
import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

# ========================
# --- Enumerações ---
# ========================
class DeletionStatus(str, Enum):
    PENDING = "pending"
    DONE = "done"

# Ordem de processamento pelo worker. A conta do usuário é sempre a última.
RESOURCE_FLAGS: List[str] = [
    "datasetsDeleted",
    "layersDeleted",
    "widgetsDeleted",
    "userDataDeleted",
    "collectionsDeleted",
    "favouritesDeleted",
    "vocabulariesDeleted",
    "areasDeleted",
    "applicationsDeleted",
    "storiesDeleted",
    "subscriptionsDeleted",
    "dashboardsDeleted",
    "profilesDeleted",
    "topicsDeleted",
    "graphDataDeleted",
    "userAccountDeleted",
]

# ========================
# --- Modelos Pydantic ---
# ========================
class DeletionFlags(BaseModel):
    datasetsDeleted: bool = False
    layersDeleted: bool = False
    widgetsDeleted: bool = False
    userAccountDeleted: bool = False
    userDataDeleted: bool = False
    graphDataDeleted: bool = False
    collectionsDeleted: bool = False
    favouritesDeleted: bool = False
    vocabulariesDeleted: bool = False
    areasDeleted: bool = False
    applicationsDeleted: bool = False
    storiesDeleted: bool = False
    subscriptionsDeleted: bool = False
    dashboardsDeleted: bool = False
    profilesDeleted: bool = False
    topicsDeleted: bool = False


class DeletionCreate(DeletionFlags):
    userId: Optional[str] = Field(None, title="ID do Usuário a Remover (padrão: solicitante)")
    status: DeletionStatus = Field(DeletionStatus.PENDING, title="Status")

    model_config = ConfigDict(use_enum_values=True)


class DeletionUpdate(BaseModel):
    """Atualização parcial: status e flags individuais."""
    status: Optional[DeletionStatus] = None
    datasetsDeleted: Optional[bool] = None
    layersDeleted: Optional[bool] = None
    widgetsDeleted: Optional[bool] = None
    userAccountDeleted: Optional[bool] = None
    userDataDeleted: Optional[bool] = None
    graphDataDeleted: Optional[bool] = None
    collectionsDeleted: Optional[bool] = None
    favouritesDeleted: Optional[bool] = None
    vocabulariesDeleted: Optional[bool] = None
    areasDeleted: Optional[bool] = None
    applicationsDeleted: Optional[bool] = None
    storiesDeleted: Optional[bool] = None
    subscriptionsDeleted: Optional[bool] = None
    dashboardsDeleted: Optional[bool] = None
    profilesDeleted: Optional[bool] = None
    topicsDeleted: Optional[bool] = None

    model_config = ConfigDict(use_enum_values=True)


class DeletionInDB(DeletionFlags):
    id: str = Field(default_factory=lambda: str(uuid.uuid4()))
    userId: str
    requestorUserId: str
    status: DeletionStatus = DeletionStatus.PENDING
    createdAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    updatedAt: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    def pending_flags(self) -> List[str]:
        return [flag for flag in RESOURCE_FLAGS if not getattr(self, flag)]
