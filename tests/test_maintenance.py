from __future__ import annotations

from datetime import timedelta

import pytest

from equipment_lifecycle.core.errors import ConflictError, ForbiddenError, NotFoundError, ValidationError
from equipment_lifecycle.models import AuditAction, EquipmentStatus


def later(clock, hours):
    return clock.now + timedelta(hours=hours)


def test_schedule_future_window_leaves_item_available(engine, drill, admin, clock):
    window = engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "annual service", admin)

    assert window.reason == "annual service"
    assert window.created_by_user_id == admin.user_id
    assert engine.get_equipment(drill.id).status is EquipmentStatus.AVAILABLE

    event = engine.get_history(drill.id)[-1]
    assert event.action is AuditAction.MAINTENANCE_START
    assert event.event_metadata["active"] is False
    assert event.event_metadata["window"]["id"] == window.id


def test_overlapping_windows_conflict(engine, drill, admin, clock):
    engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "service", admin)

    with pytest.raises(ConflictError) as excinfo:
        engine.schedule_maintenance(drill.id, later(clock, 3), later(clock, 5), "calibration", admin)
    [conflict] = excinfo.value.details["conflicts"]
    assert conflict["kind"] == "maintenance"

    # Touching windows do not overlap.
    engine.schedule_maintenance(drill.id, later(clock, 4), later(clock, 5), "calibration", admin)
    assert len(engine.list_maintenance(drill.id)) == 2


@pytest.mark.parametrize("reason", ["", "   "])
def test_reason_is_required(engine, drill, admin, clock, reason):
    with pytest.raises(ValidationError):
        engine.schedule_maintenance(drill.id, later(clock, 1), later(clock, 2), reason, admin)


def test_window_bounds_are_validated(engine, drill, admin, clock):
    with pytest.raises(ValidationError):
        engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 2), "service", admin)
    with pytest.raises(ValidationError):
        engine.schedule_maintenance(drill.id, later(clock, -3), later(clock, -1), "service", admin)
    assert engine.list_maintenance(drill.id) == []


def test_windows_cannot_start_in_the_past(engine, drill, admin, clock):
    with pytest.raises(ValidationError):
        engine.schedule_maintenance(drill.id, later(clock, -1), later(clock, 2), "service", admin)

    window = engine.schedule_maintenance(drill.id, later(clock, 1), later(clock, 2), "service", admin)
    with pytest.raises(ValidationError):
        engine.reschedule_maintenance(window.id, later(clock, -72), later(clock, 2), admin)

    [kept] = engine.list_maintenance(drill.id)
    assert kept.starts_at == later(clock, 1)
    assert engine.get_history(drill.id)[-1].action is AuditAction.MAINTENANCE_START

    # Starting exactly now is allowed.
    moved = engine.reschedule_maintenance(window.id, clock.now, later(clock, 2), admin)
    assert moved.starts_at == clock.now


def test_cannot_schedule_over_open_checkout(engine, drill, admin, alice, clock):
    engine.claim(drill.id, alice)

    with pytest.raises(ConflictError) as excinfo:
        engine.schedule_maintenance(drill.id, later(clock, 24), later(clock, 25), "service", admin)
    assert excinfo.value.details["conflicts"][0]["kind"] == "checkout"


def test_future_window_blocks_claim(engine, drill, admin, alice, clock):
    engine.schedule_maintenance(drill.id, later(clock, 48), later(clock, 50), "service", admin)

    with pytest.raises(ConflictError) as excinfo:
        engine.claim(drill.id, alice)
    assert excinfo.value.details["reason"] == "maintenance"


def test_start_and_end_maintenance(engine, drill, admin, alice, clock):
    window = engine.start_maintenance(drill.id, "blade replacement", admin)
    assert window.starts_at == clock.now
    assert window.ends_at is None

    snapshot = engine.get_equipment(drill.id)
    assert snapshot.status is EquipmentStatus.MAINTENANCE
    assert snapshot.active_window.id == window.id
    assert engine.stored_status(drill.id) is EquipmentStatus.MAINTENANCE

    with pytest.raises(ConflictError):
        engine.claim(drill.id, alice)

    clock.advance(hours=3)
    ended = engine.end_maintenance(drill.id, admin)
    assert ended.status is EquipmentStatus.AVAILABLE
    assert ended.active_window is None

    [closed] = engine.list_maintenance(drill.id)
    assert closed.ends_at == clock.now
    assert engine.claim(drill.id, alice).status is EquipmentStatus.CHECKED_OUT


def test_end_maintenance_requires_active_window(engine, drill, admin, clock):
    engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "service", admin)

    with pytest.raises(ConflictError):
        engine.end_maintenance(drill.id, admin)


def test_cancel_pending_window(engine, drill, admin, clock):
    window = engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "service", admin)

    cancelled = engine.cancel_maintenance(window.id, admin)

    assert cancelled.cancelled_at == clock.now
    assert engine.list_maintenance(drill.id) == []
    assert len(engine.list_maintenance(drill.id, include_cancelled=True)) == 1
    assert engine.get_history(drill.id)[-1].action is AuditAction.MAINTENANCE_CANCELLED

    with pytest.raises(ConflictError):
        engine.cancel_maintenance(window.id, admin)


def test_started_window_cannot_be_cancelled_or_rescheduled(engine, drill, admin, clock):
    window = engine.schedule_maintenance(drill.id, later(clock, 1), later(clock, 4), "service", admin)
    clock.advance(hours=2)

    with pytest.raises(ConflictError):
        engine.cancel_maintenance(window.id, admin)
    with pytest.raises(ConflictError):
        engine.reschedule_maintenance(window.id, later(clock, 5), later(clock, 6), admin)


def test_reschedule_moves_window(engine, drill, admin, clock):
    first = engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "service", admin)
    engine.schedule_maintenance(drill.id, later(clock, 10), later(clock, 12), "calibration", admin)

    moved = engine.reschedule_maintenance(first.id, later(clock, 3), later(clock, 6), admin)
    assert moved.starts_at == later(clock, 3)
    assert moved.ends_at == later(clock, 6)

    event = engine.get_history(drill.id)[-1]
    assert event.action is AuditAction.MAINTENANCE_RESCHEDULED
    assert event.event_metadata["previous"]["ends_at"] == later(clock, 4).isoformat()

    with pytest.raises(ConflictError):
        engine.reschedule_maintenance(first.id, later(clock, 3), later(clock, 11), admin)


def test_unknown_window(engine, admin):
    with pytest.raises(NotFoundError):
        engine.cancel_maintenance(999, admin)


def test_maintenance_requires_elevated_role(engine, drill, alice, admin, clock):
    with pytest.raises(ForbiddenError):
        engine.start_maintenance(drill.id, "service", alice)

    window = engine.schedule_maintenance(drill.id, later(clock, 2), later(clock, 4), "service", admin)
    with pytest.raises(ForbiddenError):
        engine.cancel_maintenance(window.id, alice)
    with pytest.raises(ForbiddenError):
        engine.reschedule_maintenance(window.id, later(clock, 5), later(clock, 6), alice)
    with pytest.raises(ForbiddenError):
        engine.end_maintenance(drill.id, alice)


def test_retired_equipment_rejects_maintenance(engine, drill, admin):
    engine.retire(drill.id, admin)

    with pytest.raises(ConflictError):
        engine.start_maintenance(drill.id, "service", admin)
