# ct_auth/core/utils.py
"""
Funções utilitárias das listagens paginadas: leitura de `page[number]` /
`page[size]`, montagem do link base a partir da requisição e dos links
JSON:API (`self`, `first`, `last`, `prev`, `next`).
"""

# ========================
# --- Importações ---
# ========================
import math
import uuid
from typing import Any, Dict, Mapping

from fastapi import Query, Request
from pydantic import BaseModel
from urllib.parse import quote

DEFAULT_PAGE_SIZE = 10
MAX_PAGE_SIZE = 100

# ========================
# --- Parâmetros de Paginação ---
# ========================
class Pagination(BaseModel):
    number: int = 1
    size: int = DEFAULT_PAGE_SIZE


def get_pagination(
    number: int = Query(1, alias="page[number]", ge=1),
    size: int = Query(DEFAULT_PAGE_SIZE, alias="page[size]", ge=1, le=MAX_PAGE_SIZE),
) -> Pagination:
    """Dependência FastAPI para os parâmetros `page[number]` e `page[size]`."""
    return Pagination(number=number, size=size)

# ========================
# --- IDs ---
# ========================
def is_valid_id(value: str) -> bool:
    """IDs de recursos são UUIDs em texto."""
    try:
        uuid.UUID(str(value))
        return True
    except ValueError:
        return False

# ========================
# --- Links ---
# ========================
def serialize_obj_to_query(params: Mapping[str, Any]) -> str:
    """Serializa um dicionário em query string (`k=v&k2=v2`), com valores codificados."""
    return "&".join(f"{key}={quote(str(value), safe='')}" for key, value in params.items())


def build_pagination_link(request: Request) -> str:
    """
    Link base das páginas: URL da requisição sem os parâmetros `page[...]`,
    terminando em `?` ou `&` para receber a paginação.
    """
    query = {key: value for key, value in request.query_params.items() if not key.startswith("page[")}
    serialized = serialize_obj_to_query(query)
    host = request.headers.get("x-forwarded-host") or request.url.netloc
    base = f"{request.url.scheme}://{host}{request.url.path}"
    return f"{base}?{serialized}&" if serialized else f"{base}?"


def build_pagination(link: str, page: int, size: int, total: int) -> Dict[str, Any]:
    """
    Monta `links` e `meta` de uma listagem paginada.

    Args:
        link: Link base (saída de `build_pagination_link`).
        page: Página atual (1-based).
        size: Tamanho da página.
        total: Total de itens.
    """
    total_pages = math.ceil(total / size) if size else 0

    def page_link(number: int) -> str:
        return f"{link}page[number]={number}&page[size]={size}"

    return {
        "links": {
            "self": page_link(page),
            "first": page_link(1),
            "last": page_link(total_pages),
            "prev": page_link(page - 1 if page - 1 > 0 else page),
            "next": page_link(page + 1 if page + 1 < total_pages else total_pages),
        },
        "meta": {
            "total-pages": total_pages,
            "total-items": total,
            "size": size,
        },
    }
