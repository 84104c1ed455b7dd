# ct_auth/core/security.py
"""
Módulo responsável pelas primitivas de segurança do serviço:
hashing de senhas, emissão de tokens JWT, extração da credencial
dos headers da requisição e validação criptográfica do token.

A verificação de revogação não vive aqui (depende do banco); veja
`ct_auth.core.revocation`.
"""

# ========================
# --- Importações ---
# ========================
import logging
import re
import secrets
import time
from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Mapping, Optional

from jose import ExpiredSignatureError, JWTError, jwt
from passlib.context import CryptContext
from pydantic import ValidationError

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings
from ct_auth.core.errors import InvalidHeaderFormat, TokenExpired, TokenMalformed
from ct_auth.models.token import MICROSERVICE_ID, TokenPayload
from ct_auth.models.user import UserInDB

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Configuração Hashing de Senha ---
# ========================
pwd_context = CryptContext(schemes=["bcrypt"], deprecated="auto")

# ========================
# --- Constantes ---
# ========================
AUTHORIZATION_HEADER = "authorization"
LEGACY_HEADER = "authentication"
_BEARER_SCHEME = re.compile(r"^Bearer$", re.IGNORECASE)

# ========================
# --- Funções de Senha ---
# ========================
def verify_password(plain_password: str, hashed_password: Optional[str]) -> bool:
    """
    Verifica se uma senha em texto plano corresponde a um hash armazenado.

    Returns:
        True se a senha corresponder ao hash, False caso contrário
        (inclusive para usuários sociais, que não têm senha).
    """
    if not hashed_password:
        return False
    try:
        return pwd_context.verify(plain_password, hashed_password)
    except ValueError:
        logger.warning("Tentativa de verificar senha com hash em formato inválido.")
        return False


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def generate_random_token(num_bytes: int = 20) -> str:
    """Token hexadecimal aleatório (confirmação de conta, troca de senha)."""
    return secrets.token_hex(num_bytes)

# ========================
# --- Emissão de Tokens ---
# ========================
def _encode(claims: Dict[str, Any]) -> str:
    to_encode = dict(claims)
    now = datetime.now(timezone.utc)
    to_encode["iat"] = int(now.timestamp())
    if settings.JWT_EXPIRE_MINUTES > 0:
        to_encode["exp"] = now + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    return jwt.encode(to_encode, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)


def build_user_claims(user: UserInDB) -> Dict[str, Any]:
    """Claims de um usuário armazenado, no formato consumido pelos demais microsserviços."""
    return {
        "id": user.id,
        "role": user.role,
        "provider": user.provider,
        "email": user.email,
        "extraUserData": user.extraUserData.model_dump(),
        "createdAt": int(time.time() * 1000),
        "photo": user.photo,
        "name": user.name,
    }


def create_access_token(user: Optional[UserInDB], fallback_claims: Optional[Mapping[str, Any]] = None) -> str:
    """
    Cria um token JWT para um usuário.

    Args:
        user: Usuário armazenado. Quando None, `fallback_claims` é reassinado
              como está (sem `exp`/`iat` antigos).
        fallback_claims: Claims usados quando o sujeito não existe no banco.

    Returns:
        O token JWT codificado.
    """
    if user is not None:
        return _encode(build_user_claims(user))

    claims = {k: v for k, v in dict(fallback_claims or {}).items() if k not in ("exp", "iat")}
    claims["createdAt"] = int(time.time() * 1000)
    return _encode(claims)


def create_microservice_token() -> str:
    """Token do principal de serviço, usado nas chamadas entre microsserviços."""
    return jwt.encode({"id": MICROSERVICE_ID}, settings.JWT_SECRET_KEY, algorithm=settings.JWT_ALGORITHM)

# ========================
# --- Extração da Credencial ---
# ========================
def extract_token(headers: Mapping[str, str], passthrough: bool) -> Optional[str]:
    """
    Extrai a credencial bearer dos headers da requisição.

    Regras:
    - Sem `authorization` nem `authentication`: credencial ausente (None).
    - Apenas o header legado `authentication`: seu valor bruto (depreciado).
    - `authorization` presente: precisa ser `Bearer <token>` (esquema sem
      distinção de maiúsculas). Fora desse formato levanta `InvalidHeaderFormat`,
      ou devolve None quando `passthrough` está habilitado.

    Args:
        headers: Headers da requisição (busca sem distinção de maiúsculas).
        passthrough: Modo passthrough configurado.

    Returns:
        A credencial ou None.

    Raises:
        InvalidHeaderFormat: Header `authorization` malformado sem passthrough.
    """
    lowered = {key.lower(): value for key, value in headers.items()}
    authorization = lowered.get(AUTHORIZATION_HEADER)
    legacy = lowered.get(LEGACY_HEADER)

    if not authorization:
        if legacy:
            logger.debug("Credencial lida do header legado 'authentication' (depreciado).")
            return legacy
        return None

    parts = authorization.split(" ")
    if len(parts) == 2 and _BEARER_SCHEME.match(parts[0]) and parts[1]:
        return parts[1]

    if not passthrough:
        raise InvalidHeaderFormat()
    logger.debug("Header 'authorization' em formato inválido ignorado (passthrough).")
    return None


def strip_bearer_prefix(value: str) -> str:
    """Remove um prefixo `Bearer ` opcional (usado em `/request/validate`)."""
    parts = value.split(" ")
    if len(parts) == 2 and _BEARER_SCHEME.match(parts[0]):
        return parts[1]
    return value

# ========================
# --- Validação do Token ---
# ========================
def decode_token(token: str) -> TokenPayload:
    """
    Verifica a assinatura e as claims padrão (expiração) de um JWT.

    Args:
        token: A string do token JWT.

    Returns:
        O payload validado.

    Raises:
        TokenExpired: Se a claim `exp` já passou.
        TokenMalformed: Assinatura inválida, estrutura corrompida ou payload sem `id`.
    """
    try:
        payload = jwt.decode(
            token,
            settings.JWT_SECRET_KEY,
            algorithms=[settings.JWT_ALGORITHM],
            options={"verify_aud": False},
        )
        return TokenPayload.model_validate(payload)
    except ExpiredSignatureError:
        logger.info("Token JWT expirado.")
        raise TokenExpired()
    except (JWTError, ValidationError) as e:
        logger.info(f"Token JWT inválido: {e}")
        raise TokenMalformed()
