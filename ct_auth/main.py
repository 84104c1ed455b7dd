# ct_auth/main.py
"""
Ponto de entrada principal e configuração da aplicação FastAPI CT Authorization.
Define a instância da aplicação, middlewares, handlers de erro, rotas,
ciclo de vida (lifespan) e o endpoint raiz. Também inclui o setup de logging inicial.
"""

# ========================
# --- Importações ---
# ========================
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI
from fastapi.middleware.cors import CORSMiddleware

# --- Módulos da Aplicação ---
from ct_auth.core.cache import build_cache
from ct_auth.core.config import Settings, settings
from ct_auth.core.dependencies import authenticate_request
from ct_auth.core.errors import register_exception_handlers
from ct_auth.core.logging_config import setup_logging
from ct_auth.core.strategies import build_strategy_registry
from ct_auth.db.application_crud import create_application_indexes
from ct_auth.db.deletion_crud import create_deletion_indexes
from ct_auth.db.mongodb_utils import close_mongo_connection, connect_to_mongo
from ct_auth.db.organization_crud import create_organization_indexes
from ct_auth.db.signup_crud import create_signup_indexes
from ct_auth.db.user_crud import create_user_indexes
from ct_auth.routers import application, auth, deletion, health, organization, request, users

# ========================
# --- Configuração de Logging ---
# ========================
setup_logging(log_level=settings.LOG_LEVEL, json_logs=settings.is_production)
logger = logging.getLogger(__name__)

# ========================
# --- Função de Setup do Middleware CORS ---
# ========================
def _setup_cors_middleware(app_instance: FastAPI, current_settings: Settings):
    """Configura o middleware CORS para a aplicação."""
    if current_settings.CORS_ALLOWED_ORIGINS:
        logger.info(f"Configurando CORS para origens: {current_settings.CORS_ALLOWED_ORIGINS}")
        app_instance.add_middleware(
            CORSMiddleware,
            allow_origins=current_settings.CORS_ALLOWED_ORIGINS,
            allow_credentials=True,
            allow_methods=["*"],
            allow_headers=["*"],
        )
    else:
        logger.warning("Nenhuma origem CORS configurada (settings.CORS_ALLOWED_ORIGINS está vazia).")

# ========================
# --- Ciclo de Vida (Lifespan) ---
# ========================
@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    Gerencia o ciclo de vida da aplicação.

    Startup: conecta ao MongoDB (com tentativas), cria índices e constrói
    o cache de revogação e o registro de estratégias sociais.
    Shutdown: libera cache, clientes HTTP e a conexão com o MongoDB.
    """
    logger.info("Iniciando ciclo de vida da aplicação...")
    app.state.cache = build_cache()
    app.state.strategies = build_strategy_registry()

    db_connection = await connect_to_mongo()
    if db_connection is None:
        logger.critical("Falha fatal ao conectar ao MongoDB na inicialização. Requisições autenticadas serão recusadas.")
    else:
        app.state.db = db_connection
        try:
            await create_user_indexes(db_connection)
            await create_signup_indexes(db_connection)
            await create_application_indexes(db_connection)
            await create_organization_indexes(db_connection)
            await create_deletion_indexes(db_connection)
            logger.info("Criação/verificação de índices concluída.")
        except Exception as e:
            logger.error(f"Erro durante a criação de índices: {e}", exc_info=True)

    logger.info("Aplicação iniciada e pronta.") # pragma: no cover
    yield # pragma: no cover

    logger.info("Iniciando processo de encerramento...")
    await app.state.strategies.aclose()
    await app.state.cache.close()
    await close_mongo_connection()
    logger.info("Aplicação encerrada.")

# ========================
# --- Instância FastAPI ---
# ========================
app = FastAPI(
    title=settings.PROJECT_NAME,
    description="Serviço de autenticação e autorização: tokens JWT, usuários, aplicações e organizações.",
    version="0.1.0",
    lifespan=lifespan,
)

# ========================
# --- Middlewares e Handlers ---
# ========================
_setup_cors_middleware(app, settings)
register_exception_handlers(app)

# ========================
# --- Rotas (Routers) ---
# ========================
# O portão de autenticação protege todas as rotas da API (o /health fica de fora).
gate = [Depends(authenticate_request)]

app.include_router(users.router, prefix="/auth/user", tags=["Users"], dependencies=gate)
app.include_router(auth.router, prefix="/auth", tags=["Authentication"], dependencies=gate)
app.include_router(application.router, prefix=settings.API_V1_STR + "/application", tags=["Applications"], dependencies=gate)
app.include_router(organization.router, prefix=settings.API_V1_STR + "/organization", tags=["Organizations"], dependencies=gate)
app.include_router(deletion.router, prefix=settings.API_V1_STR + "/deletion", tags=["Deletions"], dependencies=gate)
app.include_router(request.router, prefix=settings.API_V1_STR + "/request", tags=["Request Validation"], dependencies=gate)
app.include_router(health.router)

# ========================
# --- Endpoint Raiz ---
# ========================
@app.get("/", tags=["Root"])
async def read_root():
    """Endpoint raiz para verificar se a API está online."""
    return {"message": f"Bem-vindo à {settings.PROJECT_NAME}!"}

# ========================
# --- Execução (Uvicorn) ---
# ========================
if __name__ == "__main__": # pragma: no cover
    import uvicorn # pragma: no cover
    uvicorn.run( # pragma: no cover
        "ct_auth.main:app", # pragma: no cover
        host="0.0.0.0", # pragma: no cover
        port=9000, # pragma: no cover
        reload=True, # pragma: no cover
        log_level=settings.LOG_LEVEL.lower() # pragma: no cover
    )
