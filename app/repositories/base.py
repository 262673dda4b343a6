# app/repositories/base.py - Shared query helpers
import math
from typing import Any, Dict, List, Tuple

from sqlalchemy import Select, func, select
from sqlalchemy.orm import Session


def paginate(db: Session, stmt: Select, page: int, limit: int) -> Tuple[List[Any], int]:
    """Run ``stmt`` for one page and return (items, total matching rows)"""
    total = db.execute(
        select(func.count()).select_from(stmt.order_by(None).subquery())
    ).scalar_one()
    items = db.execute(stmt.offset((page - 1) * limit).limit(limit)).scalars().all()
    return list(items), total


def page_meta(page: int, limit: int, total: int) -> Dict[str, int]:
    return {
        "page": page,
        "limit": limit,
        "total": total,
        "total_pages": math.ceil(total / limit) if limit else 0,
    }


def like(term: str) -> str:
    return f"%{term.strip().lower()}%"
