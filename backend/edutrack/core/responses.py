"""
Response envelope helpers.

Every endpoint returns ``{"success": true, "data": ..., "meta"?: ...}``;
failures are rendered by the exception handlers in edutrack.main as
``{"success": false, "message": ..., "errors"?: [...]}``.
"""
import math
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from fastapi import Query


def success(data: Any = None, meta: Optional[Dict[str, Any]] = None,
            message: Optional[str] = None) -> Dict[str, Any]:
    body: Dict[str, Any] = {"success": True, "data": data}
    if meta is not None:
        body["meta"] = meta
    if message:
        body["message"] = message
    return body


@dataclass
class Pagination:
    page: int = 1
    limit: int = 10

    @property
    def offset(self) -> int:
        return (self.page - 1) * self.limit

    def meta(self, total: int) -> Dict[str, int]:
        return {
            "currentPage": self.page,
            "totalPages": math.ceil(total / self.limit) if total else 0,
            "totalItems": total,
        }


def pagination_params(
    page: int = Query(1, ge=1),
    limit: int = Query(10, ge=1, le=100),
) -> Pagination:
    """FastAPI dependency for page/limit query parameters"""
    return Pagination(page=page, limit=limit)


def paginated(items: List[Any], pagination: Pagination, total: int) -> Dict[str, Any]:
    return success(items, meta=pagination.meta(total))
