# tests/test_db_user_crud.py
"""
Testes unitários para as funções CRUD de usuários (`ct_auth.db.user_crud`).
A coleção do MongoDB é simulada com `AsyncMock` (fixture `mock_db`).
"""

# ========================
# --- Importações ---
# ========================
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock

import pytest
from pymongo import ReturnDocument
from pymongo.errors import DuplicateKeyError, ServerSelectionTimeoutError

# --- Módulos da Aplicação ---
from ct_auth.db import user_crud
from ct_auth.db.user_crud import USERS_COLLECTION
from ct_auth.models.user import UserRole
from tests.conftest import AsyncCursor, build_user

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio


@pytest.fixture
def users(mock_db):
    return mock_db[USERS_COLLECTION]


@pytest.fixture
def cache():
    return MagicMock(set=AsyncMock(), delete=AsyncMock())

# ========================
# --- Consultas ---
# ========================
async def test_get_user_by_id_found(mock_db, users):
    user = build_user()
    users.find_one.return_value = {"_id": "mongo-id", **user.model_dump()}

    found = await user_crud.get_user_by_id(mock_db, user.id)

    assert found == user
    users.find_one.assert_awaited_once_with({"id": user.id})


async def test_get_user_by_id_not_found(mock_db, users):
    users.find_one.return_value = None
    assert await user_crud.get_user_by_id(mock_db, "missing") is None


async def test_get_user_by_id_invalid_document(mock_db, users):
    users.find_one.return_value = {"id": "u1", "role": "NOT_A_ROLE"}
    assert await user_crud.get_user_by_id(mock_db, "u1") is None


async def test_get_user_by_id_propagates_driver_errors(mock_db, users):
    users.find_one.side_effect = ServerSelectionTimeoutError("down")
    with pytest.raises(ServerSelectionTimeoutError):
        await user_crud.get_user_by_id(mock_db, "u1")


async def test_get_user_ids_by_role(mock_db, users):
    users.find.return_value = AsyncCursor([{"id": "a"}, {"id": "b"}])
    assert await user_crud.get_user_ids_by_role(mock_db, "ADMIN") == ["a", "b"]


async def test_build_user_list_query():
    query = user_crud.build_user_list_query(["rw"], {"name": "jo.n", "email": None, "role": "USER"})
    assert query == {
        "extraUserData.apps": {"$in": ["rw"]},
        "name": {"$regex": r"jo\.n", "$options": "i"},
        "role": {"$regex": "USER", "$options": "i"},
    }


async def test_build_user_list_query_all_apps():
    assert user_crud.build_user_list_query(None, {}) == {}


async def test_list_users_returns_page_and_total(mock_db, users):
    user = build_user()
    users.count_documents.return_value = 11
    users.find.return_value = AsyncCursor([user.model_dump()])

    page, total = await user_crud.list_users(mock_db, ["rw"], {}, page=2, size=10)

    assert total == 11
    assert [u.id for u in page] == [user.id]

# ========================
# --- Escrita ---
# ========================
async def test_insert_user_duplicate_email(mock_db, users):
    users.insert_one.side_effect = DuplicateKeyError("dup")
    with pytest.raises(DuplicateKeyError):
        await user_crud.insert_user(mock_db, build_user())


async def test_update_user_sets_fields_and_publishes_cache_state(mock_db, users, cache):
    # --- Arrange ---
    user = build_user(name="New")
    users.find_one_and_update.return_value = user.model_dump()

    # --- Act ---
    updated = await user_crud.update_user(mock_db, user.id, {"name": "New"}, cache=cache)

    # --- Assert ---
    assert updated.name == "New"
    filter_arg, update_arg = users.find_one_and_update.await_args.args
    assert filter_arg == {"id": user.id}
    assert update_arg["$set"]["name"] == "New"
    assert isinstance(update_arg["$set"]["updatedAt"], datetime)
    assert "tokensInvalidatedAt" not in update_arg["$set"]
    assert users.find_one_and_update.await_args.kwargs["return_document"] == ReturnDocument.AFTER
    cache.set.assert_awaited_once_with(user.id, user_crud.build_revocation_snapshot(updated))
    cache.delete.assert_not_awaited()


async def test_update_user_with_invalidation(mock_db, users, cache):
    user = build_user(role=UserRole.MANAGER)
    users.find_one_and_update.return_value = user.model_dump()

    await user_crud.update_user(mock_db, user.id, {"role": "MANAGER"}, cache=cache, invalidate_tokens=True)

    changes = users.find_one_and_update.await_args.args[1]["$set"]
    assert changes["tokensInvalidatedAt"] == changes["updatedAt"]


async def test_update_user_missing(mock_db, users, cache):
    users.find_one_and_update.return_value = None
    assert await user_crud.update_user(mock_db, "missing", {"name": "x"}, cache=cache) is None
    cache.set.assert_awaited_once_with("missing", user_crud.removed_user_snapshot("missing"))


async def test_invalidate_user_tokens_overwrites_cache_entry(mock_db, users, cache):
    # --- Arrange ---
    user = build_user(tokensInvalidatedAt=datetime(2024, 1, 1, tzinfo=timezone.utc))
    users.find_one_and_update.return_value = user.model_dump()

    # --- Act ---
    assert await user_crud.invalidate_user_tokens(mock_db, user.id, cache=cache) is True

    # --- Assert ---
    update_arg = users.find_one_and_update.await_args.args[1]
    assert isinstance(update_arg["$set"]["tokensInvalidatedAt"], datetime)
    key, snapshot = cache.set.await_args.args
    assert key == user.id
    assert snapshot["tokensInvalidatedAt"] == int(user.tokensInvalidatedAt.timestamp())
    assert cache.set.await_args.kwargs == {}


async def test_invalidate_user_tokens_missing_user(mock_db, users, cache):
    users.find_one_and_update.return_value = None

    assert await user_crud.invalidate_user_tokens(mock_db, "missing", cache=cache) is False
    cache.set.assert_awaited_once_with("missing", user_crud.removed_user_snapshot("missing"))


async def test_update_password_invalidates_tokens(mocker, mock_db):
    mock_update = mocker.patch("ct_auth.db.user_crud.update_user", AsyncMock())
    await user_crud.update_password(mock_db, "u1", "hashed")
    mock_update.assert_awaited_once_with(mock_db, "u1", {"password": "hashed"}, cache=None, invalidate_tokens=True)


async def test_delete_user(mock_db, users, cache):
    user = build_user()
    users.find_one_and_delete.return_value = user.model_dump()

    deleted = await user_crud.delete_user(mock_db, user.id, cache=cache)

    assert deleted.id == user.id
    cache.set.assert_awaited_once_with(user.id, user_crud.removed_user_snapshot(user.id))


async def test_create_token_saved_in_user(mock_db, users):
    user = build_user()
    token = await user_crud.create_token(mock_db, user, save_in_user=True)

    assert token
    users.update_one.assert_awaited_once_with({"id": user.id}, {"$set": {"userToken": token}})


async def test_create_token_not_saved(mock_db, users):
    await user_crud.create_token(mock_db, build_user(), save_in_user=False)
    users.update_one.assert_not_awaited()


async def test_create_user_indexes(mock_db, users):
    await user_crud.create_user_indexes(mock_db)
    index_names = [call.kwargs["name"] for call in users.create_index.await_args_list]
    assert "email_unique_idx" in index_names
    assert "user_id_unique_idx" in index_names
