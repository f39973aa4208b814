from __future__ import annotations

import math
from typing import Any

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def offset_for(page: int, limit: int) -> int:
    return (page - 1) * limit


def envelope(data: list[Any], *, total: int, page: int, limit: int) -> dict:
    return {
        'data': data,
        'pagination': {
            'total': total,
            'page': page,
            'limit': limit,
            'totalPages': math.ceil(total / limit) if limit else 0,
        },
    }


def count_rows(db: Session, query: Select) -> int:
    """Count the rows ``query`` would return, ignoring ordering and eager loads."""
    return db.execute(select(func.count()).select_from(query.order_by(None).subquery())).scalar_one()


def fetch_page(db: Session, query: Select, *, page: int, limit: int) -> tuple[list, int]:
    total = count_rows(db, query)
    rows = db.execute(query.offset(offset_for(page, limit)).limit(limit)).scalars().all()
    return list(rows), total
