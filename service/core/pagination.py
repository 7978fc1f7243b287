import math
from typing import Any, Dict, Optional, Sequence

from pydantic import BaseModel

from utils.formatting import utc_timestamp

DEFAULT_PER_PAGE = 50
MAX_PER_PAGE = 200


def _coerce_int(value: Any, default: int) -> int:
    try:
        return int(value)
    except (TypeError, ValueError):
        return default


def paginate(items: Sequence[Any], page: Any = 1, per_page: Any = DEFAULT_PER_PAGE, *, timestamp: Optional[str] = None) -> Dict[str, Any]:
    """
    Window an already-fetched dataset.

    ``page`` is clamped to at least 1 and ``per_page`` to 1..MAX_PER_PAGE; unparseable
    values fall back to the defaults. Asking for a page past the end of a non-empty
    dataset returns an error payload instead of an empty page.

    Args:
        items: Full dataset, in source order.
        page: 1-based page number.
        per_page: Page size.

    Returns:
        Response payload with items, page, perPage, totalItems, totalPages and hasNext.
    """
    page = max(1, _coerce_int(page, 1) or 1)
    per_page = max(1, min(MAX_PER_PAGE, _coerce_int(per_page, DEFAULT_PER_PAGE) or DEFAULT_PER_PAGE))
    timestamp = timestamp or utc_timestamp()

    total_items = len(items)
    total_pages = math.ceil(total_items / per_page)

    if total_pages > 0 and page > total_pages:
        return {
            "status": "error",
            "message": f"Page {page} exceeds total pages ({total_pages})",
            "items": [],
            "page": page,
            "perPage": per_page,
            "totalItems": total_items,
            "totalPages": total_pages,
            "hasNext": False,
            "timestamp": timestamp,
        }

    start = (page - 1) * per_page
    window = items[start:start + per_page]

    return {
        "status": "success",
        "items": [item.model_dump(mode="json") if isinstance(item, BaseModel) else item for item in window],
        "page": page,
        "perPage": per_page,
        "totalItems": total_items,
        "totalPages": total_pages,
        "hasNext": page < total_pages,
        "timestamp": timestamp,
    }
