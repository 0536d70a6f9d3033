"""Append-only audit trail."""

from __future__ import annotations

from datetime import datetime
from enum import Enum
from typing import Any, Dict, Optional

from sqlalchemy import JSON, Column
from sqlmodel import Field, SQLModel

from equipment_lifecycle.core.timeutil import utcnow


class AuditAction(str, Enum):
    EQUIPMENT_CREATED = "EQUIPMENT_CREATED"
    EQUIPMENT_UPDATED = "EQUIPMENT_UPDATED"
    EQUIPMENT_DELETED = "EQUIPMENT_DELETED"
    EQUIPMENT_RESERVED = "EQUIPMENT_RESERVED"
    EQUIPMENT_RESERVATION_CANCELLED = "EQUIPMENT_RESERVATION_CANCELLED"
    EQUIPMENT_CHECKED_OUT = "EQUIPMENT_CHECKED_OUT"
    EQUIPMENT_RELEASED = "EQUIPMENT_RELEASED"
    EQUIPMENT_RETIRED = "EQUIPMENT_RETIRED"
    MAINTENANCE_START = "MAINTENANCE_START"
    MAINTENANCE_END = "MAINTENANCE_END"
    MAINTENANCE_CANCELLED = "MAINTENANCE_CANCELLED"
    MAINTENANCE_RESCHEDULED = "MAINTENANCE_RESCHEDULED"
    STATUS_RECONCILED = "STATUS_RECONCILED"


# Events that do not count as usage history when deciding on hard deletion.
BOOKKEEPING_ACTIONS = frozenset({AuditAction.EQUIPMENT_CREATED, AuditAction.EQUIPMENT_UPDATED})


class AuditEvent(SQLModel, table=True):
    """Immutable record of one state-changing action.

    ``equipment_id`` is a weak reference (no foreign key) so history outlives
    hard-deleted equipment.
    """

    __tablename__ = "audit_events"

    id: Optional[int] = Field(default=None, primary_key=True)
    action: AuditAction = Field(index=True)
    actor_user_id: str = Field(index=True, max_length=128)
    equipment_id: Optional[str] = Field(default=None, index=True, max_length=32)
    event_metadata: Dict[str, Any] = Field(default_factory=dict, sa_column=Column(JSON, nullable=False))
    created_at: datetime = Field(default_factory=utcnow, nullable=False, index=True)


class AuditEventRead(SQLModel):
    id: int
    action: AuditAction
    actor_user_id: str
    equipment_id: Optional[str] = None
    event_metadata: Dict[str, Any]
    created_at: datetime


__all__ = ["AuditAction", "AuditEvent", "AuditEventRead", "BOOKKEEPING_ACTIONS"]
