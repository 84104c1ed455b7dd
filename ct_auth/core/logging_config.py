# ct_auth/core/logging_config.py
"""
Configuração de logging do serviço de autenticação com Loguru.

Todo log emitido via `logging` padrão (módulos da aplicação, uvicorn, motor)
é redirecionado ao Loguru pelo `InterceptHandler`, de modo que existe um
único sink e um único formato. Em produção as linhas são emitidas em JSON.
"""

# ========================
# --- Importações ---
# ========================
import logging
import sys
from loguru import logger as loguru_logger

# ========================
# --- Constantes ---
# ========================
LOG_FORMAT = (
    "<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | "
    "<cyan>{name}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>"
)

# Bibliotecas cujo log de INFO/DEBUG só polui a saída.
NOISY_LOGGERS = ("httpx", "httpcore", "passlib")

# ========================
# --- Handler de Intercepção ---
# ========================
class InterceptHandler(logging.Handler):
    """
    Handler do `logging` que repassa cada registro ao Loguru,
    preservando nível, exceção e o frame de origem da chamada.
    """
    def emit(self, record: logging.LogRecord) -> None:
        try:
            level = loguru_logger.level(record.levelname).name
        except ValueError:
            level = record.levelno

        frame, depth = logging.currentframe(), 2
        while hasattr(frame, "f_code") and frame.f_code.co_filename == logging.__file__:
            frame = frame.f_back # pragma: no cover
            if frame is None: # pragma: no cover
                break # pragma: no cover
            depth += 1 # pragma: no cover

        loguru_logger.opt(depth=depth, exception=record.exc_info).log(level, record.getMessage())

# ========================
# --- Função de Setup ---
# ========================
def setup_logging(log_level: str = "INFO", json_logs: bool = False):
    """
    Configura o logging global do serviço.

    Args:
        log_level: Nível mínimo de log (ex: "INFO", "DEBUG").
        json_logs: Se True, cada linha é serializada em JSON (uso em produção).
    """
    log_level = log_level.upper()

    loguru_logger.remove()

    if json_logs:
        loguru_logger.add(sys.stderr, level=log_level, serialize=True, enqueue=True, diagnose=False)
    else:
        loguru_logger.add(
            sys.stderr,
            level=log_level,
            format=LOG_FORMAT,
            enqueue=True,
            diagnose=False
        )

    logging.basicConfig(handlers=[InterceptHandler()], level=0, force=True)

    logging.getLogger("uvicorn.access").disabled = True
    logging.getLogger("uvicorn.error").propagate = False

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)
        loguru_logger.disable(name)
