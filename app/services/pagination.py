"""Page arithmetic shared by the listing endpoints."""

import math
from dataclasses import dataclass
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.ext.asyncio import AsyncSession

DEFAULT_PAGE = 1
DEFAULT_LIMIT = 10
MAX_LIMIT = 100


@dataclass
class Page:
    items: list[Any]
    total: int
    page: int
    limit: int

    @property
    def total_pages(self) -> int:
        return math.ceil(self.total / self.limit) if self.limit else 0

    def meta(self) -> dict:
        return {
            "count": len(self.items),
            "total": self.total,
            "totalPages": self.total_pages,
            "currentPage": self.page,
        }


async def paginate(db: AsyncSession, query: Select, page: int, limit: int, order_by) -> Page:
    """Run ``query`` for one page, newest first by ``order_by``, plus a total count."""
    total = await db.scalar(select(func.count()).select_from(query.order_by(None).subquery()))
    result = await db.execute(
        query.order_by(order_by.desc()).limit(limit).offset((page - 1) * limit)
    )
    return Page(items=list(result.scalars().all()), total=total or 0, page=page, limit=limit)
