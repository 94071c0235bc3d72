"""
Paginación estándar para listados
"""
import math
from typing import Any, List, Tuple

from pydantic import BaseModel
from sqlalchemy.orm import Query

from app.core.config import settings


class PaginatedResponse(BaseModel):
    """Respuesta paginada estándar para todas las listas"""
    total: int
    page: int
    limit: int
    total_pages: int
    has_next: bool
    has_prev: bool


def normalize_page(page: int = 1, limit: int = None) -> Tuple[int, int]:
    page = max(page or 1, 1)
    limit = limit or settings.DEFAULT_PAGE_SIZE
    limit = min(max(limit, 1), settings.MAX_PAGE_SIZE)
    return page, limit


def paginate(query: Query, page: int = 1, limit: int = None) -> Tuple[List[Any], dict]:
    """
    Aplica offset/limit a un query ya ordenado.

    Returns:
        (items, meta) donde meta contiene los campos de PaginatedResponse
    """
    page, limit = normalize_page(page, limit)
    total = query.order_by(None).count()
    items = query.offset((page - 1) * limit).limit(limit).all()
    total_pages = math.ceil(total / limit) if total else 0
    meta = {
        "total": total,
        "page": page,
        "limit": limit,
        "total_pages": total_pages,
        "has_next": page < total_pages,
        "has_prev": page > 1,
    }
    return items, meta
