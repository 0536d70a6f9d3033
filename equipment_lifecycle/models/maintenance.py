"""Scheduled maintenance windows."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlmodel import Field, SQLModel

from equipment_lifecycle.core.timeutil import utcnow


class MaintenanceWindow(SQLModel, table=True):
    """Half-open interval ``[starts_at, ends_at)`` during which an item is offline.

    A missing ``ends_at`` keeps the item offline until maintenance is ended
    explicitly.
    """

    __tablename__ = "maintenance_windows"

    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: str = Field(foreign_key="equipment.id", index=True, max_length=32)
    starts_at: datetime = Field(index=True)
    ends_at: Optional[datetime] = Field(default=None, description="Open-ended when null")
    reason: str = Field(max_length=500)
    created_by_user_id: str = Field(max_length=128)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    cancelled_at: Optional[datetime] = Field(default=None, index=True)

    def covers(self, at: datetime) -> bool:
        return self.starts_at <= at and (self.ends_at is None or at < self.ends_at)


class MaintenanceWindowRead(SQLModel):
    id: int
    equipment_id: str
    starts_at: datetime
    ends_at: Optional[datetime] = None
    reason: str
    created_by_user_id: str
    created_at: datetime
    cancelled_at: Optional[datetime] = None


__all__ = ["MaintenanceWindow", "MaintenanceWindowRead"]
