from __future__ import annotations

from datetime import datetime, timedelta, timezone

from sqlmodel import Session

from equipment_lifecycle.core.timeutil import to_naive_utc, utcnow
from equipment_lifecycle.models import Equipment


def test_utcnow_is_naive():
    assert utcnow().tzinfo is None


def test_aware_values_are_converted_to_naive_utc():
    aware = datetime(2025, 3, 3, 11, 0, tzinfo=timezone(timedelta(hours=2)))
    assert to_naive_utc(aware) == datetime(2025, 3, 3, 9, 0)
    assert to_naive_utc(datetime(2025, 3, 3, 9, 0)) == datetime(2025, 3, 3, 9, 0)
    assert to_naive_utc(None) is None


def test_store_round_trips_naive_timestamps(db_engine):
    stamp = datetime(2025, 3, 3, 9, 0, 0)
    with Session(db_engine) as session:
        session.add(Equipment(id="eq-naive", short_desc="Clamp", created_at=stamp, updated_at=stamp))
        session.commit()

    with Session(db_engine) as session:
        stored = session.get(Equipment, "eq-naive")
        assert stored.created_at == stamp
        assert stored.created_at.tzinfo is None


def test_engine_records_clock_time(engine, drill, clock):
    assert drill.created_at == clock.now
    [event] = engine.get_history(drill.id)
    assert event.created_at == clock.now
    assert event.created_at.tzinfo is None
