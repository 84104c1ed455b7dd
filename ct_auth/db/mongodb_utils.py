# ct_auth/db/mongodb_utils.py
"""
Este módulo gerencia a conexão com o banco de dados MongoDB.
Inclui funções para conectar (com um número limitado de tentativas),
fechar a conexão e obter a instância do banco de dados.
Utiliza a biblioteca Motor para interações assíncronas com o MongoDB.
"""

# ========================
# --- Importações ---
# ========================
import asyncio
import logging
from typing import Optional

import motor.motor_asyncio
from motor.motor_asyncio import AsyncIOMotorClient, AsyncIOMotorDatabase
from pymongo.errors import PyMongoError

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Variáveis Globais de Conexão ---
# ========================
db_client: Optional[AsyncIOMotorClient] = None
db_instance: Optional[AsyncIOMotorDatabase] = None

# ========================
# --- Função de Conexão ---
# ========================
async def connect_to_mongo(
    retries: Optional[int] = None,
    delay_seconds: Optional[float] = None,
) -> Optional[AsyncIOMotorDatabase]:
    """
    Estabelece a conexão com o MongoDB.

    Cria um cliente AsyncIOMotorClient (datas com timezone), verifica a conexão
    com um comando 'ping' e define `db_client` e `db_instance`. Repete a
    tentativa até `retries` vezes, aguardando `delay_seconds` entre elas.

    Returns:
        A instância AsyncIOMotorDatabase se a conexão for bem-sucedida, None caso contrário.
    """
    global db_client, db_instance
    retries = retries if retries is not None else settings.MONGO_CONNECT_RETRIES
    delay_seconds = delay_seconds if delay_seconds is not None else settings.MONGO_CONNECT_RETRY_DELAY_SECONDS

    for attempt in range(1, retries + 1):
        logger.info(f"Tentando conectar ao MongoDB (tentativa {attempt}/{retries})...")
        try:
            db_client = motor.motor_asyncio.AsyncIOMotorClient(
                settings.MONGODB_URL,
                serverSelectionTimeoutMS=5000,
                tz_aware=True,
            )
            await db_client.admin.command('ping')
            db_instance = db_client[settings.DATABASE_NAME]
            logger.info(f"Conectado com sucesso ao banco de dados: {settings.DATABASE_NAME}")
            return db_instance
        except PyMongoError as e:
            logger.error(f"Não foi possível conectar ao MongoDB: {e}")
            if db_client is not None:
                db_client.close()
            db_client = None
            db_instance = None
            if attempt < retries:
                await asyncio.sleep(delay_seconds)

    logger.critical(f"MongoDB indisponível após {retries} tentativas.")
    return None

# ========================
# --- Função de Fechamento de Conexão ---
# ========================
async def close_mongo_connection():
    """Fecha a conexão com o MongoDB, se existir."""
    global db_client, db_instance
    logger.info("Tentando fechar conexão com MongoDB...")
    if db_client:
        db_client.close()
        db_client = None
        db_instance = None
        logger.info("Conexão com MongoDB fechada.")
    else:
        logger.warning("Tentativa de fechar conexão com MongoDB, mas cliente não estava inicializado.")

# ========================
# --- Função de Acesso ao DB ---
# ========================
def get_database() -> AsyncIOMotorDatabase:
    """
    Retorna a instância global do banco de dados MongoDB.
    Usada como dependência FastAPI ou chamada por outras partes da aplicação.

    Raises:
        RuntimeError: Se chamada antes de `connect_to_mongo` inicializar `db_instance`.
    """
    if db_instance is None:
        logger.error("Tentativa de obter instância do DB antes da inicialização!")
        raise RuntimeError("A conexão com o banco de dados não foi inicializada.")
    return db_instance

# ========================
# --- Verificação de Saúde ---
# ========================
async def check_mongo_connection() -> bool:
    """
    Verifica se a conexão atual com o MongoDB responde a um 'ping'.

    Returns:
        True se o banco respondeu, False caso contrário.
    """
    if db_instance is None:
        return False
    try:
        await db_instance.command("ping")
        return True
    except PyMongoError as e:
        logger.warning(f"Ping ao MongoDB falhou: {e}")
        return False
