# tests/test_worker.py
"""
Testes do worker ARQ de deleções (`ct_auth.worker`). O gateway é um mock:
nenhuma chamada HTTP é feita.
"""

# ========================
# --- Importações ---
# ========================
from unittest.mock import AsyncMock, MagicMock

import pytest

# --- Módulos da Aplicação ---
from ct_auth import worker
from ct_auth.core.config import settings
from ct_auth.core.gateway import DeleteResourceResult
from ct_auth.models.deletion import DeletionInDB, DeletionStatus
from tests.conftest import build_user

# ========================
# --- Marcador Global de Teste ---
# ========================
pytestmark = pytest.mark.asyncio

OK = DeleteResourceResult(count=1)
FAILED = DeleteResourceResult(count=-1, error="Service unavailable")


@pytest.fixture
def gateway() -> MagicMock:
    client = MagicMock()
    for method in worker.GATEWAY_STEPS.values():
        setattr(client, method, AsyncMock(return_value=OK))
    return client


@pytest.fixture
def local_steps(mocker):
    """Substitui os passos locais e captura a atualização do pedido."""
    calls = []
    mocker.patch(
        "ct_auth.worker.application_crud.get_user_application_ids",
        AsyncMock(side_effect=lambda db, user_id: calls.append("applications") or ["a1"]),
    )
    mocker.patch("ct_auth.worker.application_crud.delete_application", AsyncMock())
    mocker.patch(
        "ct_auth.worker.user_crud.delete_user",
        AsyncMock(side_effect=lambda db, user_id, cache=None: calls.append("account") or build_user(id=user_id)),
    )

    async def fake_update(db, deletion_id, update):
        calls.append(update)
        return DeletionInDB(userId="u1", requestorUserId="admin", **update.model_dump(exclude_none=True))

    mocker.patch("ct_auth.worker.deletion_crud.update_deletion", AsyncMock(side_effect=fake_update))
    return calls

# ========================
# --- process_deletion ---
# ========================
async def test_process_deletion_all_steps_succeed(mock_db, gateway, local_steps):
    # --- Arrange ---
    deletion = DeletionInDB(userId="u1", requestorUserId="admin")

    # --- Act ---
    updated = await worker.process_deletion(mock_db, gateway, deletion)

    # --- Assert ---
    assert updated.status == DeletionStatus.DONE.value
    gateway.delete_datasets.assert_awaited_once_with("u1")
    gateway.delete_profile.assert_awaited_once_with("u1")
    update = local_steps[-1]
    assert update.userAccountDeleted is True
    assert update.vocabulariesDeleted is True
    assert update.graphDataDeleted is True
    # A conta é o último passo executado
    assert local_steps[:2] == ["applications", "account"]


async def test_process_deletion_failure_keeps_account(mock_db, gateway, local_steps):
    gateway.delete_layers.return_value = FAILED
    deletion = DeletionInDB(userId="u1", requestorUserId="admin")

    updated = await worker.process_deletion(mock_db, gateway, deletion)

    assert updated.status == DeletionStatus.PENDING.value
    assert "account" not in local_steps
    update = local_steps[-1]
    assert update.layersDeleted is None
    assert update.datasetsDeleted is True
    assert update.userAccountDeleted is None


async def test_process_deletion_exception_is_contained(mock_db, gateway, local_steps):
    gateway.delete_widgets.side_effect = RuntimeError("boom")
    deletion = DeletionInDB(userId="u1", requestorUserId="admin")

    updated = await worker.process_deletion(mock_db, gateway, deletion)

    assert updated.status == DeletionStatus.PENDING.value
    gateway.delete_topics.assert_awaited_once()


async def test_process_deletion_only_pending_flags(mock_db, gateway, local_steps):
    flags = {flag: True for flag in worker.GATEWAY_STEPS}
    deletion = DeletionInDB(userId="u1", requestorUserId="admin", applicationsDeleted=True, **flags)

    await worker.process_deletion(mock_db, gateway, deletion)

    gateway.delete_datasets.assert_not_awaited()
    assert local_steps[0] == "account"


async def test_process_deletion_nothing_completed(mock_db, gateway, local_steps):
    for method in worker.GATEWAY_STEPS.values():
        getattr(gateway, method).return_value = FAILED
    deletion = DeletionInDB(
        userId="u1", requestorUserId="admin",
        applicationsDeleted=True, vocabulariesDeleted=True, graphDataDeleted=True,
    )

    updated = await worker.process_deletion(mock_db, gateway, deletion)

    assert updated is deletion
    assert local_steps == []

# ========================
# --- Job Periódico ---
# ========================
async def test_process_pending_deletions_without_db(mocker):
    mock_list = mocker.patch("ct_auth.worker.deletion_crud.list_pending_deletions", AsyncMock())
    await worker.process_pending_deletions({"db": None, "gateway": MagicMock()})
    mock_list.assert_not_awaited()


async def test_process_pending_deletions_without_gateway(mocker, mock_db):
    mock_list = mocker.patch("ct_auth.worker.deletion_crud.list_pending_deletions", AsyncMock())
    await worker.process_pending_deletions({"db": mock_db, "gateway": None})
    mock_list.assert_not_awaited()


async def test_process_pending_deletions_continues_after_error(mocker, mock_db, gateway):
    first = DeletionInDB(userId="u1", requestorUserId="admin")
    second = DeletionInDB(userId="u2", requestorUserId="admin")
    mocker.patch("ct_auth.worker.deletion_crud.list_pending_deletions", AsyncMock(return_value=[first, second]))
    mock_process = mocker.patch(
        "ct_auth.worker.process_deletion",
        AsyncMock(side_effect=[RuntimeError("boom"), second]),
    )

    await worker.process_pending_deletions({"db": mock_db, "gateway": gateway, "cache": None})

    assert mock_process.await_count == 2
    assert mock_process.await_args.args[2] is second

# ========================
# --- Ciclo de Vida e Configuração ---
# ========================
async def test_startup_without_gateway_url(mocker, monkeypatch, mock_db):
    mocker.patch("ct_auth.worker.connect_to_mongo", AsyncMock(return_value=mock_db))
    monkeypatch.setattr(settings, "GATEWAY_URL", None)
    ctx = {}

    await worker.startup(ctx)

    assert ctx["db"] is mock_db
    assert ctx["gateway"] is None
    assert ctx["cache"] is not None


async def test_shutdown_closes_resources(mocker):
    mock_close = mocker.patch("ct_auth.worker.close_mongo_connection", AsyncMock())
    gateway_client = MagicMock(aclose=AsyncMock())
    cache = MagicMock(close=AsyncMock())

    await worker.shutdown({"db": MagicMock(), "gateway": gateway_client, "cache": cache})

    gateway_client.aclose.assert_awaited_once()
    cache.close.assert_awaited_once()
    mock_close.assert_awaited_once()


async def test_build_redis_settings():
    redis_settings = worker.build_redis_settings()
    assert redis_settings.host == "localhost"
    assert redis_settings.port == 6379
    assert redis_settings.database == 0


async def test_build_redis_settings_requires_url(monkeypatch):
    monkeypatch.setattr(settings, "REDIS_URL", None)
    with pytest.raises(ValueError):
        worker.build_redis_settings()


async def test_worker_cron_runs_every_five_minutes():
    job = worker.WorkerSettings.cron_jobs[0]
    assert job.minute == set(range(0, 60, 5))
    assert job.run_at_startup is True
