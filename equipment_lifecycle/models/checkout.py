"""Checkout (custody) records."""

from __future__ import annotations

from datetime import datetime
from typing import Optional

from sqlalchemy import Index, text
from sqlmodel import Field, SQLModel


class Checkout(SQLModel, table=True):
    """One user's claim on one item; open while ``returned_at`` is null."""

    __tablename__ = "checkouts"
    __table_args__ = (
        # At most one open checkout per equipment.
        Index(
            "uq_checkouts_open_per_equipment",
            "equipment_id",
            unique=True,
            sqlite_where=text("returned_at IS NULL"),
            postgresql_where=text("returned_at IS NULL"),
        ),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    equipment_id: str = Field(foreign_key="equipment.id", index=True, max_length=32)
    holder_user_id: str = Field(index=True, max_length=128)
    claimed_at: datetime = Field(nullable=False)
    checked_out_at: Optional[datetime] = Field(
        default=None, description="Null while the claim is only a reservation"
    )
    returned_at: Optional[datetime] = Field(default=None)
    closed_by_user_id: Optional[str] = Field(default=None, max_length=128)
    close_reason: Optional[str] = Field(
        default=None, max_length=16, description="released | cancelled | retired"
    )

    @property
    def is_open(self) -> bool:
        return self.returned_at is None


class CheckoutRead(SQLModel):
    id: int
    equipment_id: str
    holder_user_id: str
    claimed_at: datetime
    checked_out_at: Optional[datetime] = None
    returned_at: Optional[datetime] = None
    closed_by_user_id: Optional[str] = None
    close_reason: Optional[str] = None


__all__ = ["Checkout", "CheckoutRead"]
