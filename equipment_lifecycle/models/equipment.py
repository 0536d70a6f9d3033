"""Equipment aggregate and its read model."""

from __future__ import annotations

import uuid
from datetime import datetime
from enum import Enum
from typing import Optional

from sqlmodel import Field, SQLModel

from equipment_lifecycle.core.timeutil import utcnow

from .maintenance import MaintenanceWindowRead


class EquipmentStatus(str, Enum):
    AVAILABLE = "AVAILABLE"
    RESERVED = "RESERVED"
    CHECKED_OUT = "CHECKED_OUT"
    MAINTENANCE = "MAINTENANCE"
    RETIRED = "RETIRED"


def _new_equipment_id() -> str:
    return uuid.uuid4().hex


class Equipment(SQLModel, table=True):
    """One physical item that can be claimed, serviced or retired.

    ``status`` is a cached projection of the open checkout, the active
    maintenance window and ``retired_at``; only the lifecycle engine writes it.
    """

    __tablename__ = "equipment"

    id: str = Field(default_factory=_new_equipment_id, primary_key=True, max_length=32)
    short_desc: str = Field(max_length=200)
    long_desc: str = Field(default="")
    slug: Optional[str] = Field(
        default=None,
        max_length=64,
        index=True,
        unique=True,
        description="Human-readable tag printed on the physical item",
    )
    status: EquipmentStatus = Field(default=EquipmentStatus.AVAILABLE, index=True)
    created_at: datetime = Field(default_factory=utcnow, nullable=False)
    updated_at: datetime = Field(default_factory=utcnow, nullable=False)
    retired_at: Optional[datetime] = Field(default=None, description="Set once, when retired")


class HolderRead(SQLModel):
    """Current custodian of an item (reserved or checked out)."""

    checkout_id: int
    user_id: str
    claimed_at: datetime
    checked_out_at: Optional[datetime] = None
    state: EquipmentStatus


class EquipmentRead(SQLModel):
    id: str
    short_desc: str
    long_desc: str
    slug: Optional[str] = None
    status: EquipmentStatus
    created_at: datetime
    updated_at: datetime
    retired_at: Optional[datetime] = None
    holder: Optional[HolderRead] = None
    active_window: Optional[MaintenanceWindowRead] = None


__all__ = ["Equipment", "EquipmentRead", "EquipmentStatus", "HolderRead"]
