from __future__ import annotations

from datetime import datetime

import pytest
from sqlalchemy.exc import OperationalError

from equipment_lifecycle.core.errors import StoreUnavailableError
from equipment_lifecycle.db.session import make_engine
from equipment_lifecycle.models import AuditAction, EquipmentStatus
from equipment_lifecycle.services.lifecycle import LifecycleEngine

FUTURE = datetime(2030, 1, 1, 8, 0, 0)


@pytest.fixture
def offline(tmp_path, clock, policy):
    bind = make_engine(f"sqlite:///{tmp_path / 'missing' / 'store.db'}", echo=False)
    yield LifecycleEngine(bind=bind, policy=policy, clock=clock)
    bind.dispose()


@pytest.mark.parametrize(
    "call",
    [
        lambda engine, admin: engine.claim("abc", admin),
        lambda engine, admin: engine.cancel_maintenance(1, admin),
        lambda engine, admin: engine.reschedule_maintenance(1, FUTURE, None, admin),
        lambda engine, admin: engine.get_equipment("abc"),
        lambda engine, admin: engine.stored_status("abc"),
        lambda engine, admin: engine.list_equipment(),
        lambda engine, admin: engine.list_checkouts("abc"),
        lambda engine, admin: engine.list_maintenance("abc"),
        lambda engine, admin: engine.get_history("abc"),
        lambda engine, admin: engine.reconcile_all(),
    ],
)
def test_unreachable_store_is_reported_as_unavailable(offline, admin, call):
    with pytest.raises(StoreUnavailableError) as excinfo:
        call(offline, admin)
    assert excinfo.value.status_code == 503


def test_audit_log_reports_unreachable_store(offline):
    log = offline.audit

    with pytest.raises(StoreUnavailableError):
        log.append(AuditAction.EQUIPMENT_CREATED, "admin", equipment_id="abc")
    with pytest.raises(StoreUnavailableError):
        log.search(actor_user_id="admin")


def test_failure_mid_transition_applies_nothing(engine, drill, alice, monkeypatch):
    before = engine.get_history(drill.id)

    def broken_append(*args, **kwargs):
        raise OperationalError("INSERT INTO audit_events", {}, Exception("disk I/O error"))

    monkeypatch.setattr(engine.audit, "append", broken_append)
    with pytest.raises(StoreUnavailableError) as excinfo:
        engine.claim(drill.id, alice)
    assert excinfo.value.details == {"equipment_id": drill.id}
    monkeypatch.undo()

    assert engine.get_history(drill.id) == before
    assert engine.list_checkouts(drill.id) == []
    assert engine.stored_status(drill.id) is EquipmentStatus.AVAILABLE
    assert engine.claim(drill.id, alice).status is EquipmentStatus.CHECKED_OUT
