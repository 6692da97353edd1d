import math
from typing import Any, Dict, List, Tuple

from sqlalchemy.orm import Query


def page_count(total: int, limit: int) -> int:
    if limit <= 0:
        raise ValueError("limit must be positive")
    return math.ceil(total / limit)


def build_pagination(total: int, page: int, limit: int) -> Dict[str, int]:
    return {"total": total, "page": page, "limit": limit, "pages": page_count(total, limit)}


def paginate(query: Query, page: int, limit: int) -> Tuple[List[Any], int]:
    """Return one 1-indexed page of ``query`` and the unpaged row count."""
    if page < 1 or limit < 1:
        raise ValueError("page and limit must be positive")
    total = query.order_by(None).count()
    rows = query.offset((page - 1) * limit).limit(limit).all()
    return rows, total
