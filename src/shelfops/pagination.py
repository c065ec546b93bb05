# shelfops/pagination.py
# Offset pagination over SQLAlchemy select statements

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Optional
from urllib.parse import urlencode

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


@dataclass
class Paginator:
    """One page of results plus what a template needs to link the others."""

    items: List[Any]
    total: int
    page: int
    per_page: int
    appends: Dict[str, Any] = field(default_factory=dict)

    @property
    def pages(self) -> int:
        if self.per_page <= 0:
            return 0
        return max(1, math.ceil(self.total / self.per_page))

    @property
    def has_prev(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.pages

    def url(self, page: int, base: str = "") -> str:
        params = dict(self.appends)
        params["page"] = page
        return f"{base}?{urlencode(params)}"

    def __iter__(self) -> Iterator[Any]:
        return iter(self.items)

    def __len__(self) -> int:
        return len(self.items)


def paginate(
    session: Session,
    stmt: Select,
    page: int = 1,
    per_page: int = 20,
    appends: Optional[Dict[str, Any]] = None,
) -> Paginator:
    page = max(1, int(page or 1))
    total = session.scalar(select(func.count()).select_from(stmt.order_by(None).subquery())) or 0
    items = list(session.scalars(stmt.limit(per_page).offset((page - 1) * per_page)).unique())
    return Paginator(items=items, total=total, page=page, per_page=per_page, appends=dict(appends or {}))
