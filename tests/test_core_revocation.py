# tests/test_core_revocation.py
"""
Testes da verificação de revogação (`ct_auth.core.revocation`):
regras de comparação do snapshot, uso do cache e política fail-closed.
"""

# ========================
# --- Importações ---
# ========================
import asyncio
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo.errors import ServerSelectionTimeoutError

# --- Módulos da Aplicação ---
from ct_auth.core.cache import NullCache
from ct_auth.core.errors import StoreUnavailable, TokenRevoked
from ct_auth.core.revocation import ensure_not_revoked, evaluate_snapshot, is_token_revoked
from ct_auth.core.security import build_user_claims
from ct_auth.db import user_crud
from ct_auth.db.user_crud import USERS_COLLECTION, build_revocation_snapshot as build_snapshot, removed_user_snapshot
from ct_auth.models.token import TokenPayload
from ct_auth.models.user import UserRole
from tests.conftest import MemoryCache, build_user

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio

ISSUED_AT = int(datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc).timestamp())


def payload_for(user, **overrides) -> TokenPayload:
    claims = {**build_user_claims(user), "iat": ISSUED_AT, **overrides}
    return TokenPayload.model_validate(claims)

# ========================
# --- Regras do Snapshot ---
# ========================
async def test_evaluate_snapshot_valid_token():
    user = build_user()
    assert evaluate_snapshot(build_snapshot(user), payload_for(user)) is None


async def test_evaluate_snapshot_invalidated_after_issuance():
    user = build_user(tokensInvalidatedAt=datetime.fromtimestamp(ISSUED_AT + 1, tz=timezone.utc))
    assert evaluate_snapshot(build_snapshot(user), payload_for(user)) is not None


async def test_evaluate_snapshot_invalidated_same_second_is_valid():
    # Frações de segundo são descartadas: mesma resolução do iat
    invalidated = datetime.fromtimestamp(ISSUED_AT, tz=timezone.utc) + timedelta(milliseconds=900)
    user = build_user(tokensInvalidatedAt=invalidated)
    assert evaluate_snapshot(build_snapshot(user), payload_for(user)) is None


async def test_evaluate_snapshot_invalidated_before_issuance_is_valid():
    user = build_user(tokensInvalidatedAt=datetime.fromtimestamp(ISSUED_AT - 60, tz=timezone.utc))
    assert evaluate_snapshot(build_snapshot(user), payload_for(user)) is None


async def test_evaluate_snapshot_token_without_iat_is_revoked_after_logout():
    user = build_user(tokensInvalidatedAt=datetime.now(timezone.utc))
    assert evaluate_snapshot(build_snapshot(user), payload_for(user, iat=None)) is not None


@pytest.mark.parametrize("field,value", [("role", "ADMIN"), ("email", "other@example.com")])
async def test_evaluate_snapshot_claim_drift(field, value):
    user = build_user(UserRole.USER)
    reason = evaluate_snapshot(build_snapshot(user), payload_for(user, **{field: value}))
    assert reason is not None and field in reason


async def test_evaluate_snapshot_apps_drift():
    user = build_user(apps=["rw", "gfw"])
    reason = evaluate_snapshot(build_snapshot(user), payload_for(user, extraUserData={"apps": ["rw"]}))
    assert reason is not None and "extraUserData" in reason


async def test_evaluate_snapshot_missing_apps_equals_empty_apps():
    user = build_user(apps=[])
    assert evaluate_snapshot(build_snapshot(user), payload_for(user, extraUserData={})) is None

# ========================
# --- is_token_revoked ---
# ========================
async def test_is_token_revoked_loads_user_and_fills_cache(mocker):
    # --- Arrange ---
    user = build_user()
    cache = MagicMock(get=AsyncMock(return_value=None), set=AsyncMock())
    mock_get_user = mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock(return_value=user))

    # --- Act ---
    revoked = await is_token_revoked(MagicMock(), cache, payload_for(user))

    # --- Assert ---
    assert revoked is False
    mock_get_user.assert_awaited_once()
    cache.set.assert_awaited_once_with(user.id, build_snapshot(user), only_if_absent=True)


async def test_is_token_revoked_uses_cache_hit(mocker):
    user = build_user()
    cache = MagicMock(get=AsyncMock(return_value=build_snapshot(user)), set=AsyncMock())
    mock_get_user = mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock())

    assert await is_token_revoked(MagicMock(), cache, payload_for(user)) is False
    mock_get_user.assert_not_awaited()


async def test_is_token_revoked_missing_user_is_not_cached(mocker):
    user = build_user()
    cache = MagicMock(get=AsyncMock(return_value=None), set=AsyncMock())
    mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock(return_value=None))

    assert await is_token_revoked(MagicMock(), cache, payload_for(user)) is True
    cache.set.assert_not_awaited()


async def test_is_token_revoked_store_failure_fails_closed(mocker):
    user = build_user()
    mocker.patch(
        "ct_auth.core.revocation.user_crud.get_user_by_id",
        AsyncMock(side_effect=ServerSelectionTimeoutError("no servers")),
    )
    with pytest.raises(StoreUnavailable):
        await is_token_revoked(MagicMock(), NullCache(), payload_for(user))


async def test_is_token_revoked_microservice_bypass(mocker):
    mock_get_user = mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock())
    payload = TokenPayload(id="microservice")

    assert await is_token_revoked(MagicMock(), NullCache(), payload) is False
    mock_get_user.assert_not_awaited()


async def test_ensure_not_revoked_raises(mocker):
    mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock(return_value=None))
    with pytest.raises(TokenRevoked):
        await ensure_not_revoked(MagicMock(), NullCache(), TokenPayload(id="gone", iat=ISSUED_AT))


async def test_is_token_revoked_removed_user_marker_in_cache(mocker):
    user = build_user()
    cache = MagicMock(get=AsyncMock(return_value=removed_user_snapshot(user.id)), set=AsyncMock())
    mock_get_user = mocker.patch("ct_auth.core.revocation.user_crud.get_user_by_id", AsyncMock())

    assert await is_token_revoked(MagicMock(), cache, payload_for(user)) is True
    mock_get_user.assert_not_awaited()

# ========================
# --- Concorrência com Escritas ---
# ========================
async def test_stale_read_does_not_overwrite_logout_state(mock_db):
    """
    Uma verificação que leu o usuário antes do logout e só grava no cache
    depois dele não pode restaurar o estado anterior: o token antigo
    continua revogado nas verificações seguintes.
    """
    # --- Arrange ---
    user = build_user()
    stored = {user.id: user.model_dump()}
    cache = MemoryCache()
    read_done = asyncio.Event()
    resume = asyncio.Event()
    users = mock_db[USERS_COLLECTION]

    async def paused_find_one(query):
        doc = dict(stored[query["id"]])
        read_done.set()
        await resume.wait()
        return doc

    async def find_one_and_update(query, update, return_document=None):
        stored[query["id"]].update(update["$set"])
        return dict(stored[query["id"]])

    users.find_one.side_effect = paused_find_one
    users.find_one_and_update.side_effect = find_one_and_update
    payload = payload_for(user)

    # --- Act ---
    stale_check = asyncio.create_task(is_token_revoked(mock_db, cache, payload))
    await read_done.wait()
    assert await user_crud.invalidate_user_tokens(mock_db, user.id, cache=cache) is True
    resume.set()
    await stale_check

    # --- Assert ---
    cached = await cache.get(user.id)
    assert cached["tokensInvalidatedAt"] is not None, "Leitura antiga sobrescreveu o estado do logout."
    assert await is_token_revoked(mock_db, cache, payload) is True


async def test_stale_read_does_not_restore_deleted_user(mock_db):
    user = build_user()
    cache = MemoryCache()
    read_done = asyncio.Event()
    resume = asyncio.Event()
    users = mock_db[USERS_COLLECTION]

    async def paused_find_one(query):
        doc = user.model_dump()
        read_done.set()
        await resume.wait()
        return doc

    users.find_one.side_effect = paused_find_one
    users.find_one_and_delete.return_value = user.model_dump()
    payload = payload_for(user)

    stale_check = asyncio.create_task(is_token_revoked(mock_db, cache, payload))
    await read_done.wait()
    await user_crud.delete_user(mock_db, user.id, cache=cache)
    resume.set()
    await stale_check

    assert await is_token_revoked(mock_db, cache, payload) is True
