"""Offset pagination over SQLAlchemy queries."""

from dataclasses import dataclass
from typing import Any, List

from .config import get_settings
from .errors import BadRequest


@dataclass
class Page:
    items: List[Any]
    total: int
    page: int
    page_size: int


def paginate(query, page: int = 1, page_size: int = None) -> Page:
    settings = get_settings()
    if page_size is None:
        page_size = settings.default_page_size
    if page < 1:
        raise BadRequest("page must be >= 1")
    if page_size < 1 or page_size > settings.max_page_size:
        raise BadRequest(f"page_size must be between 1 and {settings.max_page_size}")

    total = query.order_by(None).count()
    items = query.offset((page - 1) * page_size).limit(page_size).all()
    return Page(items=items, total=total, page=page, page_size=page_size)
