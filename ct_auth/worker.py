# ct_auth/worker.py
"""
Worker ARQ que processa os pedidos de deleção de usuário pendentes.

Para cada pedido `pending`, remove os recursos do usuário nos microsserviços
irmãos (via `GatewayClient`), as aplicações locais e, por último, a própria
conta. Cada flag `<recurso>Deleted` só é marcada quando a remoção dá certo;
o pedido passa a `done` quando todas estiverem marcadas.
"""

# ========================
# --- Importações ---
# ========================

# --- Bibliotecas Padrão/Terceiros ---
import logging
from typing import Any, Awaitable, Callable, Dict, Optional

import arq.cron
from arq.connections import RedisSettings
from motor.motor_asyncio import AsyncIOMotorDatabase

# --- Módulos da Aplicação ---
from ct_auth.core.cache import build_cache
from ct_auth.core.config import settings
from ct_auth.core.gateway import DeleteResourceResult, GatewayClient
from ct_auth.db import application_crud, deletion_crud, user_crud
from ct_auth.db.mongodb_utils import close_mongo_connection, connect_to_mongo
from ct_auth.models.deletion import DeletionInDB, DeletionStatus, DeletionUpdate

# =====================================
# --- Configurações e Constantes ---
# =====================================
logger = logging.getLogger("arq.worker")

# Flag -> nome do método do GatewayClient.
GATEWAY_STEPS: Dict[str, str] = {
    "datasetsDeleted": "delete_datasets",
    "layersDeleted": "delete_layers",
    "widgetsDeleted": "delete_widgets",
    "userDataDeleted": "delete_user_data",
    "collectionsDeleted": "delete_collections",
    "favouritesDeleted": "delete_favourites",
    "areasDeleted": "delete_areas",
    "storiesDeleted": "delete_stories",
    "subscriptionsDeleted": "delete_subscriptions",
    "dashboardsDeleted": "delete_dashboards",
    "profilesDeleted": "delete_profile",
    "topicsDeleted": "delete_topics",
}

# Recursos sem serviço correspondente no gateway: marcados como concluídos.
NO_OP_STEPS = ("vocabulariesDeleted", "graphDataDeleted")

# ==================================
# --- Passos Locais ---
# ==================================
async def _delete_applications(db: AsyncIOMotorDatabase, user_id: str) -> DeleteResourceResult:
    application_ids = await application_crud.get_user_application_ids(db, user_id)
    for application_id in application_ids:
        await application_crud.delete_application(db, application_id)
    return DeleteResourceResult(deletedData=application_ids, count=len(application_ids))


async def _delete_account(db: AsyncIOMotorDatabase, user_id: str, cache) -> DeleteResourceResult:
    deleted = await user_crud.delete_user(db, user_id, cache=cache)
    return DeleteResourceResult(deletedData=[deleted.id] if deleted else [], count=1 if deleted else 0)


def _build_step(
    flag: str, db: AsyncIOMotorDatabase, gateway: GatewayClient, cache
) -> Optional[Callable[[str], Awaitable[DeleteResourceResult]]]:
    if flag in GATEWAY_STEPS:
        return getattr(gateway, GATEWAY_STEPS[flag])
    if flag == "applicationsDeleted":
        return lambda user_id: _delete_applications(db, user_id)
    if flag == "userAccountDeleted":
        return lambda user_id: _delete_account(db, user_id, cache)
    return None

# ==================================
# --- Processamento de um Pedido ---
# ==================================
async def process_deletion(
    db: AsyncIOMotorDatabase, gateway: GatewayClient, deletion: DeletionInDB, cache=None
) -> DeletionInDB:
    """
    Executa os passos pendentes de um pedido e persiste as flags concluídas.

    A conta do usuário só é removida se todos os demais passos tiverem
    sido concluídos (inclusive em execuções anteriores).
    """
    user_id = deletion.userId
    logger.info(f"Processando pedido de deleção {deletion.id} (usuário {user_id}).")
    completed: Dict[str, bool] = {}

    for flag in deletion.pending_flags():
        if flag == "userAccountDeleted" and len(completed) < len(deletion.pending_flags()) - 1:
            logger.warning(f"Pedido {deletion.id}: recursos pendentes; a conta do usuário {user_id} não será removida agora.")
            break
        if flag in NO_OP_STEPS:
            completed[flag] = True
            continue

        step = _build_step(flag, db, gateway, cache)
        try:
            result = await step(user_id)
        except Exception as e:
            logger.exception(f"Pedido {deletion.id}: erro inesperado no passo '{flag}': {e}")
            continue
        if result.ok:
            logger.info(f"Pedido {deletion.id}: '{flag}' concluído ({result.count} itens).")
            completed[flag] = True
        else:
            logger.warning(f"Pedido {deletion.id}: '{flag}' falhou: {result.error}")

    if not completed:
        return deletion

    changes: Dict[str, Any] = dict(completed)
    if len(completed) == len(deletion.pending_flags()):
        changes["status"] = DeletionStatus.DONE
    updated = await deletion_crud.update_deletion(db, deletion.id, DeletionUpdate(**changes))
    logger.info(f"Pedido {deletion.id} atualizado: status={updated.status}, pendentes={updated.pending_flags()}.")
    return updated

# ==================================
# --- Função de Tarefa Periódica ---
# ==================================
async def process_pending_deletions(ctx: Dict[str, Any]):
    """
    Tarefa periódica ARQ que varre os pedidos de deleção pendentes e os processa.

    Args:
        ctx: Dicionário de contexto do ARQ. Espera `db`, `gateway` e `cache`
             injetados pela função `startup`.
    """
    logger.info("Executando job: processamento de pedidos de deleção pendentes...")
    db: Optional[AsyncIOMotorDatabase] = ctx.get("db")
    gateway: Optional[GatewayClient] = ctx.get("gateway")

    if db is None:
        logger.error("Conexão com o banco de dados não disponível no contexto ARQ.")
        return
    if gateway is None:
        logger.error("Cliente do gateway não disponível no contexto ARQ (GATEWAY_URL ausente?).")
        return

    pending = await deletion_crud.list_pending_deletions(db)
    finished = 0
    for deletion in pending:
        try:
            updated = await process_deletion(db, gateway, deletion, cache=ctx.get("cache"))
        except Exception as e:
            logger.exception(f"Erro ao processar pedido de deleção {deletion.id}: {e}")
            continue
        if updated.status == DeletionStatus.DONE.value:
            finished += 1
    logger.info(f"Processamento concluído: {len(pending)} pedidos pendentes, {finished} finalizados.")

# ==========================================
# --- Funções de Ciclo de Vida do Worker ---
# ==========================================
async def startup(ctx: Dict[str, Any]):
    """Conecta ao MongoDB e cria o cliente do gateway e o cache de revogação."""
    logger.info("Worker ARQ: Iniciando rotinas de startup...")
    db_connection_instance = await connect_to_mongo()
    if db_connection_instance is not None:
        ctx["db"] = db_connection_instance
        logger.info("Worker ARQ: Conexão com MongoDB estabelecida e armazenada no contexto.")
    else:
        logger.error("Worker ARQ: Falha crítica ao conectar ao MongoDB durante o startup. "
                     "A conexão não estará disponível para as tarefas.")
        ctx["db"] = None

    try:
        ctx["gateway"] = GatewayClient.from_settings()
    except ValueError as e:
        logger.error(f"Worker ARQ: {e} Pedidos de deleção não serão processados.")
        ctx["gateway"] = None
    ctx["cache"] = build_cache()


async def shutdown(ctx: Dict[str, Any]):
    """Libera o cliente do gateway, o cache e a conexão com o MongoDB."""
    logger.info("Worker ARQ: Iniciando rotinas de shutdown...")
    if ctx.get("gateway") is not None:
        await ctx["gateway"].aclose()
    if ctx.get("cache") is not None:
        await ctx["cache"].close()
    if ctx.get("db") is not None:
        await close_mongo_connection()
        logger.info("Worker ARQ: Conexão com MongoDB fechada.")
    else:
        logger.info("Worker ARQ: Nenhuma conexão com MongoDB para fechar (não estava disponível ou já fechada).")


def build_redis_settings() -> RedisSettings:
    """Converte `settings.REDIS_URL` em `RedisSettings` do ARQ."""
    if not settings.REDIS_URL:
        logger.error("Configuração crítica ausente: REDIS_URL não está definida. Worker ARQ não pode iniciar.")
        raise ValueError("REDIS_URL não está definida nas configurações. O worker ARQ requer uma URL do Redis para operar.")
    url = settings.REDIS_URL
    host = url.host or 'localhost'
    port = int(url.port) if url.port else 6379
    db_num_from_path = int(url.path.strip('/')) if url.path and url.path != '/' else 0
    logger.info(f"RedisSettings configuradas para ARQ: host={host}, port={port}, db={db_num_from_path}")
    return RedisSettings(host=host, port=port, database=db_num_from_path, password=url.password)

# =======================================
# --- Configurações do Worker ARQ ---
# =======================================
class WorkerSettings:
    """
    Configurações do worker ARQ: ciclo de vida, cron de deleções e conexão Redis.
    """
    on_startup = startup
    on_shutdown = shutdown
    cron_jobs = [
        arq.cron(process_pending_deletions, minute={*range(0, 60, 5)}, run_at_startup=True),
    ]
    redis_settings = build_redis_settings()
