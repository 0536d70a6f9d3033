"""Run one status reconciliation pass (for cron or a supervising scheduler)."""

from __future__ import annotations

import argparse

from equipment_lifecycle.core.logging_config import setup_logging
from equipment_lifecycle.core.policy import load_policy
from equipment_lifecycle.db.session import init_db, make_engine
from equipment_lifecycle.services.lifecycle import EquipmentFilter, LifecycleEngine


def main() -> None:
    parser = argparse.ArgumentParser(description="Persist status changes caused by maintenance windows.")
    parser.add_argument("--database-url", type=str, default=None, help="Override settings.database_url.")
    parser.add_argument("--policy", type=str, default=None, help="Override settings.policy_path.")
    parser.add_argument("--dry-run", action="store_true", help="Report drift without writing.")
    args = parser.parse_args()

    setup_logging("equipment-reconciler")
    bind = make_engine(args.database_url)
    init_db(bind)
    engine = LifecycleEngine(bind=bind, policy=load_policy(args.policy))

    if args.dry_run:
        # Read models carry the effective status; the stored value may lag.
        drifted = [
            item
            for item in engine.list_equipment(EquipmentFilter(include_retired=False))
            if item.status != engine.stored_status(item.id)
        ]
        print(f"[dry-run] {len(drifted)} equipment with stale status:")
        for item in drifted:
            print(f"{item.id} {item.short_desc} -> {item.status.value}")
        return

    changed = engine.reconcile_all()
    print(f"Reconciled {changed} equipment.")


if __name__ == "__main__":
    main()
