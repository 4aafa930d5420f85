from math import ceil
from typing import Any, Dict, Iterable, List, Tuple
from ninja import Schema
from ninja.errors import HttpError

MAX_PAGE_SIZE = 100
DEFAULT_PAGE_SIZE = 10


class PageMeta(Schema):
    page: int
    limit: int
    total: int
    totalPages: int
    hasNext: bool
    hasPrevious: bool


def normalize_page(page: int = 1, limit: int = DEFAULT_PAGE_SIZE):
    """Clamp page to >= 1 and limit to 1..MAX_PAGE_SIZE."""
    page = max(1, page or 1)
    limit = min(MAX_PAGE_SIZE, max(1, limit or DEFAULT_PAGE_SIZE))
    return page, limit


def resolve_ordering(allowed: Dict[str, str], sort_by: str, sort_order: str, default: str = "created_at") -> Tuple[str, str]:
    """order_by() arguments for sort_by/sort_order; id breaks ties in the same direction."""
    sort_by = sort_by or default
    if sort_by not in allowed:
        raise HttpError(400, f"Invalid sort_by. Allowed: {', '.join(sorted(allowed))}")
    field = allowed[sort_by]
    if (sort_order or "").lower() == "asc":
        return field, "id"
    return f"-{field}", "-id"


def paginate_queryset(qs, page: int, limit: int, serialize) -> Dict[str, Any]:
    """Slice qs for the page and build the list payload; serialize maps one object to a dict."""
    total = qs.count()
    offset = (page - 1) * limit
    items: List[Any] = [serialize(obj) for obj in qs[offset:offset + limit]]
    return build_page(items, page, limit, total)


def build_page(items: Iterable[Any], page: int, limit: int, total: int) -> Dict[str, Any]:
    total_pages = ceil(total / limit) if total else 0
    return {
        "items": list(items),
        "count": total,
        "pagination": {
            "page": page,
            "limit": limit,
            "total": total,
            "totalPages": total_pages,
            "hasNext": page < total_pages,
            "hasPrevious": page > 1,
        },
    }
