# ct_auth/core/config.py

# ========================
# --- Importações ---
# ========================
import os
import logging
from typing import Optional, List
from pydantic_settings import BaseSettings
from pydantic import EmailStr, Field, RedisDsn, ValidationError, model_validator, HttpUrl
from dotenv import load_dotenv

# ===============================
# --- Configuração do Logger ---
# ===============================
logger = logging.getLogger(__name__)

# ===============================
# --- Carregamento do .env ---
# ===============================
# Define o caminho para o arquivo .env na raiz do projeto
dotenv_path = os.path.join(os.path.dirname(os.path.dirname(os.path.dirname(__file__))), '.env')
loaded = load_dotenv(dotenv_path=dotenv_path)

# ======================================
# --- Definição das Configurações ---
# ======================================
class Settings(BaseSettings):
    """
    Configurações do serviço de autenticação lidas do ambiente usando Pydantic BaseSettings.
    Procura variáveis de ambiente ou variáveis em um arquivo .env.
    Docs Pydantic Settings: https://docs.pydantic.dev/latest/concepts/pydantic_settings/
    """
    # =========================
    # --- Config Gerais ---
    # =========================
    PROJECT_NAME: str = Field("CT Authorization", description="Nome do Projeto")
    API_V1_STR: str = Field("/api/v1", description="Prefixo para a versão 1 da API")
    ENVIRONMENT: str = Field("dev", description="Ambiente de execução (dev, test, prod)")
    PUBLIC_URL: str = Field("http://localhost:9000", description="URL pública deste serviço (links em e-mails)")
    DEFAULT_APP: str = Field("rw", description="Aplicação de origem padrão para novos usuários")
    CONFIRM_URL_REDIRECT: Optional[str] = Field(
        default=None,
        description="URL para redirecionar após confirmação de conta ou troca de senha."
    )

    # =============================
    # --- Configurações MongoDB ---
    # =============================
    MONGODB_URL: str = Field(..., description="URL de conexão completa do MongoDB (obrigatória)")
    DATABASE_NAME: str = Field("ct_authorization", description="Nome do banco de dados MongoDB")
    MONGO_CONNECT_RETRIES: int = Field(10, description="Número de tentativas de conexão ao MongoDB no startup")
    MONGO_CONNECT_RETRY_DELAY_SECONDS: float = Field(5.0, description="Intervalo entre tentativas de conexão")

    # ===========================
    # --- Configurações JWT ---
    # ===========================
    JWT_SECRET_KEY: str = Field(..., description="Chave secreta forte para assinar tokens JWT (obrigatória)")
    JWT_ALGORITHM: str = Field("HS256", description="Algoritmo de assinatura JWT")
    JWT_EXPIRE_MINUTES: int = Field(0, description="Validade do token em minutos (0 = sem expiração)")
    JWT_PASSTHROUGH: bool = Field(
        True,
        description="Permite requisições sem credencial válida; a decisão fica com cada rota."
    )
    REVOCATION_CACHE_TTL_SECONDS: int = Field(
        60,
        description="TTL fixo (segundos) do cache de verificação de revogação por usuário."
    )

    # ==============================
    # --- Configuração Redis ---
    # ==============================
    REDIS_URL: Optional[RedisDsn] = Field(
        default=None,
        description="URL do Redis usada pelo cache de revogação e pelo worker ARQ."
    )

    # ====================================
    # --- Gateway de Microsserviços ---
    # ====================================
    GATEWAY_URL: Optional[HttpUrl] = Field(
        default=None,
        description="URL base do gateway de microsserviços (remoção de recursos de usuários)."
    )
    GATEWAY_API_KEY: Optional[str] = Field(default=None, description="Valor do header x-api-key enviado ao gateway.")
    MICROSERVICE_TOKEN: Optional[str] = Field(
        default=None,
        description="Token JWT do principal de serviço usado nas chamadas ao gateway."
    )
    GATEWAY_TIMEOUT_SECONDS: float = Field(10.0, description="Timeout das chamadas HTTP ao gateway.")

    # ======================================
    # --- Provedores OAuth (sociais) ---
    # ======================================
    GOOGLE_CLIENT_ID: Optional[str] = Field(default=None, description="Client ID do Google (habilita o provedor).")
    FACEBOOK_APP_ID: Optional[str] = Field(default=None, description="App ID do Facebook (habilita o provedor).")
    APPLE_CLIENT_ID: Optional[str] = Field(default=None, description="Client ID (audience) do Sign in with Apple.")
    OAUTH_TIMEOUT_SECONDS: float = Field(10.0, description="Timeout das chamadas HTTP aos provedores OAuth.")

    # ================================
    # --- Configurações de E-mail ---
    # ================================
    MAIL_ENABLED: bool = Field(
            default=False,
            description="Flag para habilitar/desabilitar envio de e-mails globalmente."
    )
    MAIL_USERNAME: Optional[str] = Field(default=None, description="Usuário do servidor SMTP.")
    MAIL_PASSWORD: Optional[str] = Field(default=None, description="Senha do servidor SMTP.")
    MAIL_FROM: Optional[EmailStr] = Field(
        default=None,
        description="Endereço de e-mail remetente."
    )
    MAIL_FROM_NAME: Optional[str] = Field(
        default="CT Authorization",
        description="Nome do remetente exibido no e-mail."
    )
    MAIL_PORT: int = Field(
        default=587,
        description="Porta do servidor SMTP."
    )
    MAIL_SERVER: Optional[str] = Field(
        default=None,
        description="Endereço do servidor SMTP."
    )
    MAIL_STARTTLS: bool = Field(default=True, description="Usar STARTTLS para conexão SMTP.")
    MAIL_SSL_TLS: bool = Field(default=False, description="Usar SSL/TLS direto para conexão SMTP.")
    USE_CREDENTIALS: bool = Field(default=True, description="Usar credenciais (username/password) para SMTP.")
    VALIDATE_CERTS: bool = Field(default=True, description="Validar certificados SSL/TLS do servidor SMTP.")

    # ===============================
    # --- Configuração de Logging ---
    # ===============================
    LOG_LEVEL: str = Field(default="INFO", description="Nível de log (DEBUG, INFO, WARNING, ERROR, CRITICAL)")

    # ===================================
    # --- Configurações CORS ---
    # ===================================
    CORS_ALLOWED_ORIGINS: List[str] = Field(default=[], description="Lista de origens CORS permitidas (separadas por vírgula no .env)")

    # ====================================================
    # --- Configuração do Modelo Pydantic BaseSettings ---
    # ====================================================
    model_config = {
        "case_sensitive": False,
    }

    # ===============================
    # --- Propriedades ---
    # ===============================
    @property
    def is_production(self) -> bool:
        return self.ENVIRONMENT.lower() in ("prod", "production")

    # ===============================
    # --- Validadores ---
    # ===============================
    @model_validator(mode='after')
    def check_mail_config(self) -> 'Settings':
        """Valida se as credenciais de e-mail estão presentes quando habilitado."""
        if self.MAIL_ENABLED and not all([self.MAIL_USERNAME, self.MAIL_PASSWORD, self.MAIL_FROM, self.MAIL_SERVER]):
            raise ValueError(
                "Se MAIL_ENABLED for True, MAIL_USERNAME, MAIL_PASSWORD, MAIL_FROM e MAIL_SERVER devem ser definidos."
            )
        return self

    @model_validator(mode='after')
    def check_token_config(self) -> 'Settings':
        """Valida os parâmetros numéricos do pipeline de tokens."""
        if self.JWT_EXPIRE_MINUTES < 0:
            raise ValueError("JWT_EXPIRE_MINUTES não pode ser negativo (use 0 para tokens sem expiração).")
        if self.REVOCATION_CACHE_TTL_SECONDS <= 0:
            raise ValueError("REVOCATION_CACHE_TTL_SECONDS deve ser maior que zero.")
        if not self.JWT_PASSTHROUGH:
            logger.warning("JWT_PASSTHROUGH desabilitado: toda requisição sem token válido será rejeitada com 401.")
        return self

# ================================
# --- Criação da Instância ---
# ================================
try:
    settings = Settings()
except ValidationError as e:
    # Campos obrigatórios faltando ou tipos inválidos
    logger.critical(f"Erro fatal de validação ao carregar configurações: {e}")
    raise e
except ValueError as e:
    logger.critical(f"Erro fatal de validação na configuração: {e}")
    raise e
except Exception as e:
    logger.critical(f"Erro inesperado ao carregar configurações: {e}", exc_info=True)
    raise e
