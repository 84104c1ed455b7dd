# ct_auth/core/gateway.py
"""
Cliente HTTP (httpx) do gateway de microsserviços, usado para remover os
recursos de um usuário nos serviços irmãos durante a deleção de conta.

Toda chamada usa o token do principal de serviço e o header `x-api-key`.
Falhas nunca propagam: viram `DeleteResourceResult(error=..., count=-1)`.
"""

# ========================
# --- Importações ---
# ========================
import logging
from typing import Any, Dict, List, Optional

import httpx
from pydantic import BaseModel

# --- Módulos da Aplicação ---
from ct_auth.core.config import settings
from ct_auth.core.security import create_microservice_token

# ========================
# --- Configuração do Logger ---
# ========================
logger = logging.getLogger(__name__)

# ========================
# --- Resultado ---
# ========================
class DeleteResourceResult(BaseModel):
    deletedData: Optional[List[Any]] = None
    protectedData: Optional[List[Any]] = None
    count: int
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.count >= 0


def _as_list(value: Any) -> List[Any]:
    if value is None:
        return []
    return value if isinstance(value, list) else [value]


def _error_detail(response: httpx.Response) -> Optional[str]:
    try:
        return response.json()["errors"][0]["detail"]
    except (ValueError, KeyError, IndexError, TypeError):
        return None

# ========================
# --- Cliente ---
# ========================
class GatewayClient:
    """
    Args:
        base_url: URL base do gateway.
        api_key: Valor do header `x-api-key`.
        token: Token JWT de serviço (gerado com a chave local quando omitido).
        client: `httpx.AsyncClient` opcional (injeção em testes).
    """

    def __init__(
        self,
        base_url: str,
        api_key: Optional[str] = None,
        token: Optional[str] = None,
        timeout: float = 10.0,
        client: Optional[httpx.AsyncClient] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.token = token or create_microservice_token()
        self._client = client or httpx.AsyncClient(timeout=timeout)

    @classmethod
    def from_settings(cls) -> "GatewayClient":
        if not settings.GATEWAY_URL:
            raise ValueError("GATEWAY_URL não está definida nas configurações.")
        return cls(
            base_url=str(settings.GATEWAY_URL),
            api_key=settings.GATEWAY_API_KEY,
            token=settings.MICROSERVICE_TOKEN,
            timeout=settings.GATEWAY_TIMEOUT_SECONDS,
        )

    async def aclose(self) -> None:
        await self._client.aclose()

    def _headers(self) -> Dict[str, str]:
        headers = {"Authorization": f"Bearer {self.token}"}
        if self.api_key:
            headers["x-api-key"] = self.api_key
        return headers

    async def _delete(self, path: str) -> httpx.Response:
        response = await self._client.delete(f"{self.base_url}{path}", headers=self._headers())
        response.raise_for_status()
        return response

    async def _call(self, resource: str, user_id: str, path: str, parse, not_found_detail: Optional[str] = None) -> DeleteResourceResult:
        try:
            response = await self._delete(path)
            return parse(response)
        except httpx.HTTPStatusError as exc:
            if not_found_detail and exc.response.status_code == 404 and _error_detail(exc.response) == not_found_detail:
                return DeleteResourceResult(deletedData=[], count=0)
            error = f"{exc.response.status_code} - {exc.response.text}"
        except httpx.TimeoutException:
            error = "Timeout calling the gateway"
        except httpx.RequestError as exc:
            error = f"Request error: {exc}"
        except (ValueError, KeyError, TypeError) as exc:
            error = f"Invalid gateway response: {exc}"
        logger.warning(f"Erro ao remover recursos '{resource}' do usuário {user_id}: {error}")
        return DeleteResourceResult(error=error, count=-1)

    # --- Respostas com chaves deleted<X>/protected<X> ---
    async def _delete_keyed(self, resource: str, plural: str, user_id: str) -> DeleteResourceResult:
        def parse(response: httpx.Response) -> DeleteResourceResult:
            body = response.json()
            deleted = _as_list(body.get(f"deleted{plural}"))
            return DeleteResourceResult(
                deletedData=deleted,
                protectedData=_as_list(body.get(f"protected{plural}")),
                count=len(deleted),
            )
        return await self._call(resource, user_id, f"/v1/{resource}/by-user/{user_id}", parse)

    # --- Respostas com lista em `data` ---
    async def _delete_data_list(self, resource: str, user_id: str, path: str) -> DeleteResourceResult:
        def parse(response: httpx.Response) -> DeleteResourceResult:
            data = _as_list(response.json().get("data"))
            return DeleteResourceResult(deletedData=data, count=len(data))
        return await self._call(resource, user_id, path, parse)

    async def delete_datasets(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_keyed("dataset", "Datasets", user_id)

    async def delete_layers(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_keyed("layer", "Layers", user_id)

    async def delete_widgets(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_keyed("widget", "Widgets", user_id)

    async def delete_user_data(self, user_id: str) -> DeleteResourceResult:
        def parse(response: httpx.Response) -> DeleteResourceResult:
            data = response.json().get("data") or {}
            return DeleteResourceResult(deletedData=[data], count=1 if len(data) > 1 else 0)
        return await self._call("user data", user_id, f"/v2/user/{user_id}", parse, not_found_detail="User not found")

    async def delete_collections(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("collection", user_id, f"/v1/collection/by-user/{user_id}")

    async def delete_favourites(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("favourite", user_id, f"/v1/favourite/by-user/{user_id}")

    async def delete_areas(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("area", user_id, f"/v2/area/by-user/{user_id}")

    async def delete_stories(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("story", user_id, f"/v1/story/by-user/{user_id}")

    async def delete_subscriptions(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("subscription", user_id, f"/v1/subscriptions/by-user/{user_id}")

    async def delete_dashboards(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("dashboard", user_id, f"/v1/dashboard/by-user/{user_id}")

    async def delete_profile(self, user_id: str) -> DeleteResourceResult:
        return await self._call(
            "profile",
            user_id,
            f"/v1/profile/{user_id}",
            lambda response: DeleteResourceResult(deletedData=[], count=1),
            not_found_detail="Wrong ID provided",
        )

    async def delete_topics(self, user_id: str) -> DeleteResourceResult:
        return await self._delete_data_list("topic", user_id, f"/v1/topic/by-user/{user_id}")
