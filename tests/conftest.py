# tests/conftest.py
# Inibir warnings de depreciação de bibliotecas
import warnings
warnings.filterwarnings("ignore", category=DeprecationWarning, module="passlib")

# ========================
# --- Configuração do Ambiente de Teste ---
# ========================
import os
from dotenv import load_dotenv

load_dotenv(dotenv_path='.env.test')
os.environ.setdefault("MONGODB_URL", "mongodb://localhost:27017")
os.environ.setdefault("DATABASE_NAME", "ct_authorization_test")
os.environ.setdefault("JWT_SECRET_KEY", "test-secret-key-with-enough-entropy")
os.environ.setdefault("ENVIRONMENT", "test")
os.environ.setdefault("REDIS_URL", "redis://localhost:6379/0")
os.environ.setdefault("GATEWAY_URL", "http://gateway.test")
os.environ.setdefault("MAIL_ENABLED", "false")

"""
Fixtures compartilhadas pela suíte de testes do serviço CT Authorization.

Fixtures incluem:
- Cliente HTTP assíncrono (`test_async_client`) sobre a aplicação FastAPI,
  com o banco substituído por um mock e o verificador de revogação
  configurável por teste (`revocation_state`).
- Usuários de exemplo (ADMIN, MANAGER e USER) e fábricas de tokens/headers.
- `AsyncCursor`, que simula os cursores assíncronos do Motor.
"""

# ========================
# --- Importações ---
# ========================
import time
from typing import Any, AsyncGenerator, Dict, List, Optional
from unittest.mock import AsyncMock, MagicMock

import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from jose import jwt

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings
from ct_auth.core.dependencies import get_revocation_checker
from ct_auth.core.security import build_user_claims
from ct_auth.db.mongodb_utils import get_database
from ct_auth.main import app as fastapi_app
from ct_auth.models.user import ExtraUserData, UserInDB, UserRole

# ========================
# --- Mocks do Motor ---
# ========================
class AsyncCursor:
    """Cursor assíncrono em memória com a interface encadeável do Motor."""

    def __init__(self, docs: Optional[List[Dict[str, Any]]] = None):
        self.docs = [dict(doc) for doc in (docs or [])]

    def sort(self, *args, **kwargs):
        return self

    def skip(self, *args, **kwargs):
        return self

    def limit(self, *args, **kwargs):
        return self

    def __aiter__(self):
        self._iter = iter(self.docs)
        return self

    async def __anext__(self):
        try:
            return next(self._iter)
        except StopIteration:
            raise StopAsyncIteration


def make_collection() -> MagicMock:
    """Coleção mockada: métodos de I/O são `AsyncMock`, `find` devolve cursor vazio."""
    collection = MagicMock()
    for method in (
        "find_one", "insert_one", "insert_many", "update_one", "delete_one", "delete_many",
        "find_one_and_update", "find_one_and_delete", "count_documents", "create_index",
    ):
        setattr(collection, method, AsyncMock())
    collection.find.return_value = AsyncCursor()
    return collection


@pytest.fixture
def mock_db() -> MagicMock:
    """
    Banco mockado: cada nome de coleção devolve sempre o mesmo mock,
    acessível também por `mock_db.collections[nome]`.
    """
    db = MagicMock()
    db.collections = {}

    def get_collection(name):
        if name not in db.collections:
            db.collections[name] = make_collection()
        return db.collections[name]

    db.__getitem__.side_effect = get_collection
    db.command = AsyncMock()
    return db

# ========================
# --- Usuários de Exemplo ---
# ========================
def build_user(role: UserRole = UserRole.USER, apps: Optional[List[str]] = None, **kwargs) -> UserInDB:
    data = {
        "name": f"Test {role.value.title()}",
        "email": f"{role.value.lower()}@example.com",
        "role": role,
        "extraUserData": ExtraUserData(apps=apps if apps is not None else ["rw"]),
    }
    data.update(kwargs)
    return UserInDB(**data)


@pytest.fixture
def admin_user() -> UserInDB:
    return build_user(UserRole.ADMIN, apps=["rw", "gfw"])


@pytest.fixture
def manager_user() -> UserInDB:
    return build_user(UserRole.MANAGER, apps=["rw"])


@pytest.fixture
def regular_user() -> UserInDB:
    return build_user(UserRole.USER, apps=["rw"])

# ========================
# --- Tokens ---
# ========================
def make_token(claims: Dict[str, Any], iat: Optional[int] = None, **extra) -> str:
    """Assina claims arbitrários com a chave de teste (`iat` padrão: agora - 10s)."""
    to_encode = {**claims, **extra}
    to_encode.setdefault("iat", iat if iat is not None else int(time.time()) - 10)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def token_for(user: UserInDB, **extra) -> str:
    return make_token(build_user_claims(user), **extra)


def auth_headers_for(user: UserInDB) -> Dict[str, str]:
    return {"Authorization": f"Bearer {token_for(user)}"}


@pytest.fixture
def microservice_headers() -> Dict[str, str]:
    return {"Authorization": f"Bearer {jwt.encode({'id': 'microservice'}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)}"}

# ========================
# --- Cache em Memória ---
# ========================
class MemoryCache:
    """Cache de revogação em memória com a mesma semântica de `RedisCache` (sem TTL)."""

    def __init__(self):
        self.entries: Dict[str, Any] = {}

    async def get(self, key: str) -> Optional[Any]:
        value = self.entries.get(key)
        return dict(value) if value is not None else None

    async def set(self, key: str, value: Any, only_if_absent: bool = False) -> None:
        if only_if_absent and key in self.entries:
            return
        self.entries[key] = dict(value)

    async def delete(self, key: str) -> None:
        self.entries.pop(key, None)

    async def clear(self) -> None:
        self.entries.clear()

# ========================
# --- Verificador de Revogação ---
# ========================
class RevocationState:
    """Controla o verificador de revogação injetado na aplicação durante o teste."""

    def __init__(self):
        self.revoked = False
        self.error: Optional[Exception] = None
        self.calls: List[Any] = []

    async def check(self, payload) -> bool:
        self.calls.append(payload)
        if self.error is not None:
            raise self.error
        return self.revoked


@pytest.fixture
def revocation_state() -> RevocationState:
    return RevocationState()

# ========================
# --- Fixture Principal: Cliente de Teste HTTP ---
# ========================
@pytest_asyncio.fixture(scope="function")
async def test_async_client(mock_db: MagicMock, revocation_state: RevocationState) -> AsyncGenerator[AsyncClient, None]:
    """
    Cliente HTTP (`AsyncClient` com `ASGITransport`) sobre a aplicação FastAPI.

    O lifespan não é executado: o banco vem do `mock_db` e o cache é o nulo.
    As substituições de dependências são desfeitas ao final do teste.
    """
    fastapi_app.dependency_overrides[get_database] = lambda: mock_db
    fastapi_app.dependency_overrides[get_revocation_checker] = lambda: revocation_state.check

    transport = ASGITransport(app=fastapi_app)
    try:
        async with AsyncClient(transport=transport, base_url="http://testserver") as client:
            yield client
    finally:
        fastapi_app.dependency_overrides.clear()
