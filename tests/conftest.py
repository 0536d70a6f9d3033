from __future__ import annotations

from datetime import datetime, timedelta

import pytest

from equipment_lifecycle.core.policy import Actor, LifecyclePolicy
from equipment_lifecycle.db.session import init_db, make_engine
from equipment_lifecycle.services.lifecycle import LifecycleEngine

START = datetime(2025, 3, 3, 9, 0, 0)


class FakeClock:
    """Manually advanced naive-UTC clock."""

    def __init__(self, now: datetime = START) -> None:
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs: float) -> datetime:
        self.now += timedelta(**kwargs)
        return self.now


@pytest.fixture
def db_engine(tmp_path):
    bind = make_engine(f"sqlite:///{tmp_path / 'lifecycle.db'}", echo=False)
    init_db(bind)
    yield bind
    bind.dispose()


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def policy() -> LifecyclePolicy:
    return LifecyclePolicy()


@pytest.fixture
def engine(db_engine, clock, policy) -> LifecycleEngine:
    return LifecycleEngine(bind=db_engine, policy=policy, clock=clock)


@pytest.fixture
def admin() -> Actor:
    return Actor.of("admin-1", ["ADMIN"])


@pytest.fixture
def alice() -> Actor:
    return Actor.of("alice", ["WORKER"])


@pytest.fixture
def bob() -> Actor:
    return Actor.of("bob", ["WORKER"])


@pytest.fixture
def drill(engine, admin):
    return engine.create_equipment(admin, short_desc="Hammer drill", long_desc="18V SDS", slug="DRILL-01")
