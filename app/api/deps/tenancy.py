# app/api/deps/tenancy.py - Which students a caller may see, plus request-scoped helpers
from fastapi import Depends, Query
from typing import Optional, FrozenSet, Tuple, Dict

from app.core.clock import Clock, system_clock
from app.core.config import settings
from app.core.errors import PermissionDenied
from app.core.security import CallerIdentity
from app.api.deps.auth import get_current_caller
from app.services.notification_channels import NotificationChannel, default_channels
from app.services.payment_gateway import PaymentGateway, get_gateway


def get_clock() -> Clock:
    """Overridden in tests with a fixed clock"""
    return system_clock


def get_channels() -> Dict[str, NotificationChannel]:
    return default_channels()


def get_payment_gateway() -> PaymentGateway:
    return get_gateway()


def student_scope(caller: CallerIdentity = Depends(get_current_caller)) -> Optional[FrozenSet[str]]:
    """
    None for staff (every student), otherwise the caller's accessible student set
    """
    if caller.is_staff:
        return None
    return caller.student_ids


def ensure_student_access(caller: CallerIdentity, student_id: str) -> None:
    if not caller.can_access_student(student_id):
        raise PermissionDenied(
            f"Not allowed to access student '{student_id}'",
            student_id=student_id,
        )


def pagination(
    page: int = Query(1, ge=1),
    limit: int = Query(None, ge=1),
) -> Tuple[int, int]:
    limit = min(limit or settings.DEFAULT_PAGE_SIZE, settings.MAX_PAGE_SIZE)
    return page, limit
