from __future__ import annotations

from datetime import datetime, timedelta

import pytest
from sqlmodel import Session

from equipment_lifecycle.models import Checkout, Equipment, EquipmentStatus, MaintenanceWindow
from equipment_lifecycle.services.calendar import ReservationCalendar, derive_status, overlaps

T0 = datetime(2025, 1, 1, 12, 0)


def h(hours: float) -> datetime:
    return T0 + timedelta(hours=hours)


@pytest.mark.parametrize(
    "a, b, expected",
    [
        ((h(0), h(2)), (h(1), h(3)), True),
        ((h(0), h(1)), (h(1), h(2)), False),  # touching half-open intervals
        ((h(1), h(2)), (h(0), h(1)), False),
        ((h(0), h(4)), (h(1), h(2)), True),  # containment
        ((h(0), None), (h(5), h(6)), True),  # unbounded start side covers the future
        ((h(5), None), (h(0), h(5)), False),
        ((h(5), None), (h(0), h(5.5)), True),
        ((h(0), None), (h(1), None), True),
    ],
)
def test_overlaps_half_open(a, b, expected):
    assert overlaps(a[0], a[1], b[0], b[1]) is expected
    assert overlaps(b[0], b[1], a[0], a[1]) is expected


def test_derive_status_precedence():
    equipment = Equipment(short_desc="Ladder")
    window = MaintenanceWindow(equipment_id=equipment.id, starts_at=h(0), reason="x", created_by_user_id="a")
    reserved = Checkout(equipment_id=equipment.id, holder_user_id="u", claimed_at=h(0))
    taken = Checkout(equipment_id=equipment.id, holder_user_id="u", claimed_at=h(0), checked_out_at=h(0))

    assert derive_status(equipment, None, None) is EquipmentStatus.AVAILABLE
    assert derive_status(equipment, None, window) is EquipmentStatus.MAINTENANCE
    assert derive_status(equipment, reserved, None) is EquipmentStatus.RESERVED
    assert derive_status(equipment, taken, None) is EquipmentStatus.CHECKED_OUT

    equipment.retired_at = h(1)
    assert derive_status(equipment, taken, window) is EquipmentStatus.RETIRED


@pytest.fixture
def seeded(db_engine):
    with Session(db_engine, expire_on_commit=False) as session:
        equipment = Equipment(short_desc="Generator")
        session.add(equipment)
        session.flush()
        session.add(
            MaintenanceWindow(
                equipment_id=equipment.id,
                starts_at=h(2),
                ends_at=h(4),
                reason="service",
                created_by_user_id="admin",
            )
        )
        session.add(
            MaintenanceWindow(
                equipment_id=equipment.id,
                starts_at=h(6),
                ends_at=h(8),
                reason="cancelled",
                created_by_user_id="admin",
                cancelled_at=h(0),
            )
        )
        session.commit()
        return equipment.id


def test_conflicts_with_windows(db_engine, seeded):
    with Session(db_engine) as session:
        calendar = ReservationCalendar(session)
        assert calendar.is_free(seeded, h(0), h(2))
        assert calendar.is_free(seeded, h(4), h(5))
        assert not calendar.is_free(seeded, h(3), h(5))

        # Cancelled windows no longer hold their slot.
        assert calendar.is_free(seeded, h(6), h(8))

        [conflict] = calendar.conflicts(seeded, h(1), None)
        assert conflict.kind == "maintenance"
        assert conflict.as_dict()["ends_at"] == h(4).isoformat()


def test_open_checkout_blocks_everything_after_claim(db_engine, seeded):
    with Session(db_engine) as session:
        session.add(Checkout(equipment_id=seeded, holder_user_id="alice", claimed_at=h(10), checked_out_at=h(10)))
        session.commit()

    with Session(db_engine) as session:
        calendar = ReservationCalendar(session)
        assert calendar.open_checkout(seeded).holder_user_id == "alice"
        assert calendar.is_free(seeded, h(9), h(10))
        kinds = {c.kind for c in calendar.conflicts(seeded, h(100), h(101))}
        assert kinds == {"checkout"}


def test_active_window_and_status(db_engine, seeded):
    with Session(db_engine) as session:
        calendar = ReservationCalendar(session)
        equipment = session.get(Equipment, seeded)
        assert calendar.active_window(seeded, h(1)) is None
        assert calendar.active_window(seeded, h(2)).reason == "service"
        assert calendar.active_window(seeded, h(4)) is None
        assert calendar.status_at(equipment, h(3)) is EquipmentStatus.MAINTENANCE
        assert calendar.status_at(equipment, h(4)) is EquipmentStatus.AVAILABLE
