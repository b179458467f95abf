"""
Response envelope helpers.

Every response body has the shape
``{"success": bool, "data"?, "error"?: {"code", "message", "details"?}, "meta"?}``.
"""

from typing import Any, Dict, Optional


def success_response(data: Any = None, meta: Optional[Dict[str, Any]] = None) -> Dict[str, Any]:
    """Wrap a payload in a success envelope."""
    response: Dict[str, Any] = {"success": True, "data": data}
    if meta:
        response["meta"] = meta
    return response


def error_response(code: str, message: str, details: Any = None) -> Dict[str, Any]:
    """Build an error envelope; ``details`` is omitted when empty."""
    error: Dict[str, Any] = {"code": code, "message": message}
    if details:
        error["details"] = details
    return {"success": False, "error": error}


def create_pagination_meta(page: int, limit: int, total: int) -> Dict[str, Any]:
    """
    Pagination metadata for a page of results.

    Args:
        page: 1-based page number
        limit: Page size
        total: Total number of matching rows

    Returns:
        Dict with page, limit, total and hasMore (``page * limit < total``)
    """
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "hasMore": page * limit < total,
    }


def page_offset(page: int, limit: int) -> int:
    """Row offset of the first item on ``page``."""
    return (page - 1) * limit
