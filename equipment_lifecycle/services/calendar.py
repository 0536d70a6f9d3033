"""Reservation calendar: committed intervals per equipment and the status projection."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Optional

from sqlmodel import Session, select

from equipment_lifecycle.models import Checkout, Equipment, EquipmentStatus, MaintenanceWindow


def overlaps(
    a_start: datetime,
    a_end: Optional[datetime],
    b_start: datetime,
    b_end: Optional[datetime],
) -> bool:
    """Half-open overlap test where a ``None`` end means unbounded."""

    return (b_end is None or a_start < b_end) and (a_end is None or b_start < a_end)


@dataclass(frozen=True)
class Commitment:
    """An interval already promised to someone on one item."""

    kind: str  # "maintenance" | "checkout"
    ref_id: int
    starts_at: datetime
    ends_at: Optional[datetime]

    def as_dict(self) -> dict:
        return {
            "kind": self.kind,
            "id": self.ref_id,
            "starts_at": self.starts_at.isoformat(),
            "ends_at": self.ends_at.isoformat() if self.ends_at else None,
        }


def derive_status(
    equipment: Equipment,
    open_checkout: Optional[Checkout],
    active_window: Optional[MaintenanceWindow],
) -> EquipmentStatus:
    """Project the status from the facts it caches."""

    if equipment.retired_at is not None:
        return EquipmentStatus.RETIRED
    if open_checkout is not None:
        if open_checkout.checked_out_at is None:
            return EquipmentStatus.RESERVED
        return EquipmentStatus.CHECKED_OUT
    if active_window is not None:
        return EquipmentStatus.MAINTENANCE
    return EquipmentStatus.AVAILABLE


class ReservationCalendar:
    """Queries bound to the session of the current unit of work.

    Mutations that depend on an answer must ask inside the same unit so the
    check and the write cannot be separated by another transition.
    """

    def __init__(self, session: Session) -> None:
        self.session = session

    def open_checkout(self, equipment_id: str) -> Optional[Checkout]:
        return self.session.exec(
            select(Checkout).where(
                Checkout.equipment_id == equipment_id,
                Checkout.returned_at.is_(None),
            )
        ).first()

    def windows(self, equipment_id: str, include_cancelled: bool = False) -> list[MaintenanceWindow]:
        statement = select(MaintenanceWindow).where(MaintenanceWindow.equipment_id == equipment_id)
        if not include_cancelled:
            statement = statement.where(MaintenanceWindow.cancelled_at.is_(None))
        return list(self.session.exec(statement.order_by(MaintenanceWindow.starts_at)).all())

    def active_window(self, equipment_id: str, at: datetime) -> Optional[MaintenanceWindow]:
        for window in self.windows(equipment_id):
            if window.covers(at):
                return window
        return None

    def conflicts(
        self,
        equipment_id: str,
        starts_at: datetime,
        ends_at: Optional[datetime],
        exclude_window_id: Optional[int] = None,
    ) -> list[Commitment]:
        """Commitments overlapping ``[starts_at, ends_at)``.

        An open checkout occupies ``[claimed_at, +inf)`` until it is closed.
        """

        found: list[Commitment] = []
        for window in self.windows(equipment_id):
            if window.id == exclude_window_id:
                continue
            if overlaps(starts_at, ends_at, window.starts_at, window.ends_at):
                found.append(Commitment("maintenance", window.id, window.starts_at, window.ends_at))

        checkout = self.open_checkout(equipment_id)
        if checkout is not None and overlaps(starts_at, ends_at, checkout.claimed_at, None):
            found.append(Commitment("checkout", checkout.id, checkout.claimed_at, None))
        return found

    def is_free(self, equipment_id: str, starts_at: datetime, ends_at: Optional[datetime]) -> bool:
        return not self.conflicts(equipment_id, starts_at, ends_at)

    def status_at(self, equipment: Equipment, at: datetime) -> EquipmentStatus:
        return derive_status(
            equipment,
            self.open_checkout(equipment.id),
            self.active_window(equipment.id, at),
        )


__all__ = ["Commitment", "ReservationCalendar", "derive_status", "overlaps"]
