# ct_auth/core/strategies.py
"""
Estratégias de login social e o registro que as agrupa.

O `StrategyRegistry` é construído uma única vez no startup a partir das
configurações e guardado em `app.state.strategies`; as rotas o recebem por
dependência. Cada estratégia valida o token do provedor por HTTP e devolve
um `SocialProfile` normalizado.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Dict, Iterable, Optional

import httpx
from jose import JWTError, jwt
from pydantic import BaseModel

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings
from ct_auth.core.errors import ProviderNotFound, ProviderTokenInvalid

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

GOOGLE_TOKENINFO_URL = "https://www.googleapis.com/oauth2/v3/tokeninfo"
GOOGLE_USERINFO_URL = "https://www.googleapis.com/oauth2/v3/userinfo"
FACEBOOK_GRAPH_URL = "https://graph.facebook.com"
APPLE_KEYS_URL = "https://appleid.apple.com/auth/keys"
APPLE_ISSUER = "https://appleid.apple.com"

# ========================
# --- Perfil Normalizado ---
# ========================
class SocialProfile(BaseModel):
    provider: str
    providerId: str
    email: Optional[str] = None
    # Só um e-mail confirmado pelo provedor pode vincular uma conta existente
    emailVerified: bool = False
    name: Optional[str] = None
    photo: Optional[str] = None

def _is_verified(value) -> bool:
    # Google e Apple enviam `email_verified` como booleano ou como "true"
    return value is True or str(value).lower() == "true"


def _require_subject(provider: str, subject) -> str:
    if not subject:
        logger.info(f"Provedor {provider} não informou o identificador do usuário.")
        raise ProviderTokenInvalid()
    return str(subject)

# ========================
# --- Estratégias ---
# ========================
class OAuthStrategy:
    """Base das estratégias. Subclasses implementam `verify`."""
    name: str = ""

    def __init__(self, client: httpx.AsyncClient):
        self.client = client

    async def verify(self, access_token: str) -> SocialProfile:  # pragma: no cover
        raise NotImplementedError

    async def _get_json(self, url: str, **kwargs) -> dict:
        try:
            response = await self.client.get(url, **kwargs)
            response.raise_for_status()
            return response.json()
        except httpx.TimeoutException:
            logger.error(f"Timeout ao consultar o provedor {self.name} ({url}).")
            raise ProviderTokenInvalid()
        except httpx.HTTPStatusError as exc:
            logger.info(f"Provedor {self.name} recusou o token: status {exc.response.status_code}.")
            raise ProviderTokenInvalid()
        except httpx.RequestError as exc:
            logger.error(f"Erro de rede ao consultar o provedor {self.name}: {exc}")
            raise ProviderTokenInvalid()
        except ValueError:
            logger.error(f"Resposta inválida do provedor {self.name}.")
            raise ProviderTokenInvalid()


class GoogleStrategy(OAuthStrategy):
    name = "google"

    def __init__(self, client: httpx.AsyncClient, client_id: str):
        super().__init__(client)
        self.client_id = client_id

    async def verify(self, access_token: str) -> SocialProfile:
        token_info = await self._get_json(GOOGLE_TOKENINFO_URL, params={"access_token": access_token})
        if token_info.get("aud") != self.client_id:
            logger.info("Token do Google emitido para outro client id.")
            raise ProviderTokenInvalid()

        user_info = await self._get_json(GOOGLE_USERINFO_URL, headers={"Authorization": f"Bearer {access_token}"})
        return SocialProfile(
            provider=self.name,
            providerId=_require_subject(self.name, user_info.get("sub") or token_info.get("sub")),
            email=user_info.get("email"),
            emailVerified=_is_verified(user_info.get("email_verified")),
            name=user_info.get("name"),
            photo=user_info.get("picture"),
        )


class FacebookStrategy(OAuthStrategy):
    name = "facebook"

    def __init__(self, client: httpx.AsyncClient, app_id: str):
        super().__init__(client)
        self.app_id = app_id

    async def verify(self, access_token: str) -> SocialProfile:
        app_info = await self._get_json(f"{FACEBOOK_GRAPH_URL}/app", params={"access_token": access_token})
        if str(app_info.get("id")) != str(self.app_id):
            logger.info("Token do Facebook emitido para outro app.")
            raise ProviderTokenInvalid()

        me = await self._get_json(
            f"{FACEBOOK_GRAPH_URL}/me",
            params={"fields": "id,name,email,picture.type(large)", "access_token": access_token},
        )
        photo = ((me.get("picture") or {}).get("data") or {}).get("url")
        return SocialProfile(
            provider=self.name,
            providerId=_require_subject(self.name, me.get("id")),
            email=me.get("email"),
            name=me.get("name"),
            photo=photo,
        )


class AppleStrategy(OAuthStrategy):
    """Valida o identity token (JWT RS256) do Sign in with Apple contra as chaves públicas da Apple."""
    name = "apple"

    def __init__(self, client: httpx.AsyncClient, client_id: str):
        super().__init__(client)
        self.client_id = client_id

    async def verify(self, access_token: str) -> SocialProfile:
        keys = await self._get_json(APPLE_KEYS_URL)
        try:
            claims = jwt.decode(
                access_token,
                keys,
                algorithms=["RS256"],
                audience=self.client_id,
                issuer=APPLE_ISSUER,
                options={"verify_at_hash": False},
            )
        except JWTError as e:
            logger.info(f"Identity token da Apple inválido: {e}")
            raise ProviderTokenInvalid()
        return SocialProfile(
            provider=self.name,
            providerId=_require_subject(self.name, claims.get("sub")),
            email=claims.get("email"),
            emailVerified=_is_verified(claims.get("email_verified")),
        )

# ========================
# --- Registro ---
# ========================
class StrategyRegistry:
    """
    Mapeia nomes de provedor para estratégias.
    Substitui o registro global mutável: cada app tem o seu.
    """

    def __init__(self, strategies: Optional[Iterable[OAuthStrategy]] = None, client: Optional[httpx.AsyncClient] = None):
        self._strategies: Dict[str, OAuthStrategy] = {}
        self._client = client
        for strategy in strategies or []:
            self.register(strategy)

    def register(self, strategy: OAuthStrategy) -> None:
        self._strategies[strategy.name] = strategy
        logger.info(f"Estratégia de login '{strategy.name}' registrada.")

    def get(self, name: str) -> OAuthStrategy:
        """
        Raises:
            ProviderNotFound: Provedor desconhecido ou desabilitado.
        """
        strategy = self._strategies.get(name)
        if strategy is None:
            raise ProviderNotFound()
        return strategy

    @property
    def names(self):
        return sorted(self._strategies)

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()


def build_strategy_registry() -> StrategyRegistry:
    """Constrói o registro com os provedores configurados nas settings."""
    client = httpx.AsyncClient(timeout=settings.OAUTH_TIMEOUT_SECONDS)
    strategies = []
    if settings.GOOGLE_CLIENT_ID:
        strategies.append(GoogleStrategy(client, settings.GOOGLE_CLIENT_ID))
    if settings.FACEBOOK_APP_ID:
        strategies.append(FacebookStrategy(client, settings.FACEBOOK_APP_ID))
    if settings.APPLE_CLIENT_ID:
        strategies.append(AppleStrategy(client, settings.APPLE_CLIENT_ID))
    if not strategies:
        logger.warning("Nenhum provedor social configurado.")
    return StrategyRegistry(strategies, client=client)
