"""Audit trail search for administrators."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from equipment_lifecycle.api.deps import get_actor, get_engine
from equipment_lifecycle.core.config import settings
from equipment_lifecycle.core.errors import ForbiddenError
from equipment_lifecycle.core.policy import Actor
from equipment_lifecycle.core.timeutil import to_naive_utc
from equipment_lifecycle.models import AuditAction, AuditEventRead
from equipment_lifecycle.services.lifecycle import LifecycleEngine

router = APIRouter(prefix="/audit", tags=["audit"])


class AuditPage(BaseModel):
    items: List[AuditEventRead]
    total: int
    page: int
    page_size: int


@router.get("", response_model=AuditPage)
def search_audit(
    actor_user_id: Optional[str] = Query(default=None),
    action: Optional[AuditAction] = Query(default=None),
    equipment_id: Optional[str] = Query(default=None),
    since: Optional[datetime] = Query(default=None, alias="from"),
    until: Optional[datetime] = Query(default=None, alias="to"),
    page: int = Query(default=1, ge=1),
    page_size: int = Query(default=settings.audit_page_size_default, ge=1, le=settings.audit_page_size_max),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    if not engine.policy.is_elevated(actor):
        raise ForbiddenError("Audit log requires an elevated role.", {"action": "search_audit"})

    items, total = engine.audit.search(
        actor_user_id=actor_user_id,
        action=action,
        equipment_id=equipment_id,
        since=to_naive_utc(since),
        until=to_naive_utc(until),
        page=page,
        page_size=page_size,
    )
    return AuditPage(items=items, total=total, page=page, page_size=page_size)


__all__ = ["router"]
