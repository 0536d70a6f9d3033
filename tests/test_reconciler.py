from __future__ import annotations

import time
from datetime import timedelta

from equipment_lifecycle.core.config import settings
from equipment_lifecycle.models import AuditAction, EquipmentStatus
from equipment_lifecycle.services.reconciler import StatusReconciler


def test_reconcile_persists_time_triggered_changes(engine, drill, admin, clock):
    engine.schedule_maintenance(
        drill.id, clock.now + timedelta(hours=1), clock.now + timedelta(hours=2), "service", admin
    )
    assert engine.reconcile_all() == 0

    clock.advance(minutes=90)
    # Reads project the status at "now" before anything is persisted.
    assert engine.get_equipment(drill.id).status is EquipmentStatus.MAINTENANCE
    assert engine.stored_status(drill.id) is EquipmentStatus.AVAILABLE

    assert engine.reconcile_all() == 1
    assert engine.stored_status(drill.id) is EquipmentStatus.MAINTENANCE
    event = engine.get_history(drill.id)[-1]
    assert event.action is AuditAction.STATUS_RECONCILED
    assert event.actor_user_id == settings.system_actor_id
    assert (event.event_metadata["from"], event.event_metadata["to"]) == ("AVAILABLE", "MAINTENANCE")

    clock.advance(hours=1)
    assert engine.reconcile_all() == 1
    assert engine.stored_status(drill.id) is EquipmentStatus.AVAILABLE


def test_reconcile_without_change_records_nothing(engine, drill, admin):
    before = len(engine.get_history(drill.id))

    snapshot = engine.reconcile(drill.id, admin)

    assert snapshot.status is EquipmentStatus.AVAILABLE
    assert len(engine.get_history(drill.id)) == before


def test_reconcile_skips_retired_equipment(engine, drill, admin):
    engine.retire(drill.id, admin)
    assert engine.reconcile_all() == 0


def test_reconciler_run_once(engine, drill, admin, clock):
    engine.schedule_maintenance(drill.id, clock.now + timedelta(minutes=5), None, "service", admin)
    clock.advance(minutes=10)

    reconciler = StatusReconciler(engine, interval_seconds=60)
    assert reconciler.run_once() == 1
    assert reconciler.run_once() == 0


def test_reconciler_thread_start_stop(engine, drill, admin, clock):
    engine.schedule_maintenance(drill.id, clock.now + timedelta(minutes=5), None, "service", admin)
    clock.advance(minutes=10)

    reconciler = StatusReconciler(engine, interval_seconds=0.05)
    reconciler.start()
    try:
        assert reconciler.running
        deadline = time.monotonic() + 5
        while engine.stored_status(drill.id) is not EquipmentStatus.MAINTENANCE:
            assert time.monotonic() < deadline
            time.sleep(0.02)
    finally:
        reconciler.stop()
    assert not reconciler.running


def test_requested_reconcile_is_attributed_to_system(engine, drill, admin, alice, clock):
    engine.schedule_maintenance(drill.id, clock.now + timedelta(minutes=5), None, "service", admin)
    clock.advance(minutes=10)

    snapshot = engine.reconcile(drill.id, alice)

    assert snapshot.status is EquipmentStatus.MAINTENANCE
    event = engine.get_history(drill.id)[-1]
    assert event.action is AuditAction.STATUS_RECONCILED
    assert event.actor_user_id == settings.system_actor_id
    assert event.event_metadata["requested_by"] == "alice"
    assert engine.audit.query_by_actor("alice") == []
