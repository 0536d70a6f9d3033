"""Equipment lifecycle engine: the only writer of equipment state."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Callable, ContextManager, Iterator, Optional

from sqlalchemy.engine import Engine
from sqlalchemy.exc import IntegrityError
from sqlmodel import Session, select

from equipment_lifecycle.core.config import settings
from equipment_lifecycle.core.errors import (
    ConflictError,
    ForbiddenError,
    NotFoundError,
    ValidationError,
)
from equipment_lifecycle.core.policy import Actor, LifecyclePolicy, load_policy
from equipment_lifecycle.core.timeutil import to_naive_utc, utcnow
from equipment_lifecycle.db.session import store_session
from equipment_lifecycle.models import (
    AuditAction,
    AuditEvent,
    AuditEventRead,
    Checkout,
    CheckoutRead,
    Equipment,
    EquipmentRead,
    EquipmentStatus,
    HolderRead,
    MaintenanceWindow,
    MaintenanceWindowRead,
)
from equipment_lifecycle.models.audit import BOOKKEEPING_ACTIONS
from equipment_lifecycle.services.audit_log import AuditLog
from equipment_lifecycle.services.calendar import ReservationCalendar, derive_status
from equipment_lifecycle.services.locks import KeyedLock

logger = logging.getLogger(__name__)

Context = Optional[dict[str, Any]]


@dataclass
class EquipmentFilter:
    statuses: Optional[set[EquipmentStatus]] = None
    holder_user_id: Optional[str] = None
    include_retired: bool = True


def _normalize_slug(slug: Optional[str]) -> Optional[str]:
    if slug is None:
        return None
    slug = slug.strip().lower()
    return slug or None


def _equipment_record(equipment: Equipment) -> dict[str, Any]:
    return {
        "id": equipment.id,
        "short_desc": equipment.short_desc,
        "slug": equipment.slug,
        "status": equipment.status.value,
    }


def _checkout_record(checkout: Checkout) -> dict[str, Any]:
    return CheckoutRead.model_validate(checkout, from_attributes=True).model_dump(mode="json")


def _window_record(window: MaintenanceWindow) -> dict[str, Any]:
    return MaintenanceWindowRead.model_validate(window, from_attributes=True).model_dump(mode="json")


class LifecycleEngine:
    """Validate and apply equipment transitions.

    Every command is one atomic unit scoped to a single equipment id: the
    in-process keyed lock and a ``SELECT ... FOR UPDATE`` on the equipment row
    serialize work on the same item while different items proceed in
    parallel. Each successful state change appends exactly one audit event in
    the same transaction; any failure leaves state and history untouched.
    """

    def __init__(
        self,
        bind: Engine | None = None,
        policy: LifecyclePolicy | None = None,
        locks: KeyedLock | None = None,
        clock: Callable[[], datetime] = utcnow,
        audit: AuditLog | None = None,
    ) -> None:
        self._bind = bind
        self.policy = policy or load_policy()
        self._locks = locks or KeyedLock()
        self._clock = clock
        self.audit = audit or AuditLog(bind)

    # ------------------------------------------------------------------
    # Unit of work helpers
    # ------------------------------------------------------------------
    @contextmanager
    def _transition(self, equipment_id: str) -> Iterator[Session]:
        with self._locks.hold(equipment_id):
            try:
                with self._store({"equipment_id": equipment_id}) as session:
                    yield session
                    session.commit()
            except IntegrityError as exc:
                logger.warning("Store rejected change on equipment %s: %s", equipment_id, exc.orig)
                raise ConflictError(
                    "Change conflicts with the current state; re-read and retry.",
                    {"equipment_id": equipment_id},
                ) from exc

    def _store(self, details: Context = None) -> ContextManager[Session]:
        return store_session(self._bind, details)

    def _load_locked(self, session: Session, equipment_id: str) -> Equipment:
        equipment = session.exec(
            select(Equipment).where(Equipment.id == equipment_id).with_for_update()
        ).first()
        if equipment is None:
            raise NotFoundError(f"Equipment {equipment_id} not found.", {"equipment_id": equipment_id})
        return equipment

    def _require_elevated(self, actor: Actor, action: str) -> None:
        if not self.policy.is_elevated(actor):
            logger.warning("User %s denied %s: elevated role required", actor.user_id, action)
            raise ForbiddenError(
                f"Requires role: {' or '.join(sorted(self.policy.elevated_roles))}",
                {"action": action},
            )

    def _apply_status(self, calendar: ReservationCalendar, equipment: Equipment, now: datetime) -> EquipmentStatus:
        status = calendar.status_at(equipment, now)
        if equipment.status != status:
            equipment.status = status
            equipment.updated_at = now
            calendar.session.add(equipment)
        return status

    def _record(
        self,
        session: Session,
        action: AuditAction,
        actor_user_id: str,
        equipment_id: str,
        metadata: dict[str, Any],
        now: datetime,
        context: Context = None,
    ) -> int:
        if context is not None:
            metadata["context"] = context
        return self.audit.append(
            action,
            actor_user_id,
            equipment_id=equipment_id,
            metadata=metadata,
            session=session,
            at=now,
        )

    def _snapshot(self, calendar: ReservationCalendar, equipment: Equipment, now: datetime) -> EquipmentRead:
        checkout = calendar.open_checkout(equipment.id)
        window = calendar.active_window(equipment.id, now)
        holder = None
        if checkout is not None:
            holder = HolderRead(
                checkout_id=checkout.id,
                user_id=checkout.holder_user_id,
                claimed_at=checkout.claimed_at,
                checked_out_at=checkout.checked_out_at,
                state=(
                    EquipmentStatus.CHECKED_OUT
                    if checkout.checked_out_at is not None
                    else EquipmentStatus.RESERVED
                ),
            )
        return EquipmentRead(
            id=equipment.id,
            short_desc=equipment.short_desc,
            long_desc=equipment.long_desc,
            slug=equipment.slug,
            status=derive_status(equipment, checkout, window),
            created_at=equipment.created_at,
            updated_at=equipment.updated_at,
            retired_at=equipment.retired_at,
            holder=holder,
            active_window=(
                MaintenanceWindowRead.model_validate(window, from_attributes=True) if window else None
            ),
        )

    # ------------------------------------------------------------------
    # Custody transitions
    # ------------------------------------------------------------------
    def claim(self, equipment_id: str, actor: Actor, context: Context = None) -> EquipmentRead:
        """Take custody of an available item for ``actor``."""

        direct = self.policy.claim_mode == "direct"
        return self._open_checkout(equipment_id, actor, actor.user_id, direct, context, {})

    def assign(
        self,
        equipment_id: str,
        holder_user_id: str,
        actor: Actor,
        context: Context = None,
    ) -> EquipmentRead:
        """Check an item out directly to another user (administrative)."""

        self._require_elevated(actor, "assign")
        return self._open_checkout(
            equipment_id, actor, holder_user_id, True, context, {"assigned_by": actor.user_id}
        )

    def _open_checkout(
        self,
        equipment_id: str,
        actor: Actor,
        holder_user_id: str,
        direct: bool,
        context: Context,
        extra: dict[str, Any],
    ) -> EquipmentRead:
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)
            self._ensure_claimable(calendar, equipment, now)

            checkout = Checkout(
                equipment_id=equipment.id,
                holder_user_id=holder_user_id,
                claimed_at=now,
                checked_out_at=now if direct else None,
            )
            session.add(checkout)
            session.flush()
            self._apply_status(calendar, equipment, now)

            action = AuditAction.EQUIPMENT_CHECKED_OUT if direct else AuditAction.EQUIPMENT_RESERVED
            metadata = {"equipment": _equipment_record(equipment), "checkout": _checkout_record(checkout)}
            metadata.update(extra)
            self._record(session, action, actor.user_id, equipment.id, metadata, now, context)
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Equipment %s %s for %s", equipment_id, snapshot.status.value, holder_user_id)
        return snapshot

    def _ensure_claimable(self, calendar: ReservationCalendar, equipment: Equipment, now: datetime) -> None:
        # Derived from the calendar at "now"; the cached status may be stale.
        if equipment.retired_at is not None:
            raise ConflictError("Equipment is retired.", {"equipment_id": equipment.id, "reason": "retired"})

        checkout = calendar.open_checkout(equipment.id)
        if checkout is not None:
            raise ConflictError(
                "Equipment is already reserved or checked out.",
                {"equipment_id": equipment.id, "reason": "in_use"},
            )

        conflicts = calendar.conflicts(equipment.id, now, None)
        if conflicts:
            raise ConflictError(
                "Equipment has maintenance scheduled.",
                {
                    "equipment_id": equipment.id,
                    "reason": "maintenance",
                    "conflicts": [c.as_dict() for c in conflicts],
                },
            )

    def check_out(
        self,
        equipment_id: str,
        actor: Actor,
        slug: Optional[str] = None,
        context: Context = None,
    ) -> EquipmentRead:
        """Confirm a reservation by taking the item (two-step flow)."""

        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            checkout = calendar.open_checkout(equipment.id)
            if (
                checkout is None
                or checkout.holder_user_id != actor.user_id
                or checkout.checked_out_at is not None
            ):
                raise ConflictError(
                    "No reservation awaiting check-out for this user.",
                    {"equipment_id": equipment.id, "user_id": actor.user_id},
                )

            if self.policy.require_tag_scan or slug is not None:
                self._verify_tag(equipment, slug)

            checkout.checked_out_at = now
            session.add(checkout)
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.EQUIPMENT_CHECKED_OUT,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment), "checkout": _checkout_record(checkout)},
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Equipment %s checked out by %s", equipment_id, actor.user_id)
        return snapshot

    @staticmethod
    def _verify_tag(equipment: Equipment, slug: Optional[str]) -> None:
        if not equipment.slug:
            raise ConflictError("This equipment has no tag to scan.", {"equipment_id": equipment.id})
        if _normalize_slug(slug) != equipment.slug:
            raise ValidationError("Scanned tag does not match this equipment.", {"equipment_id": equipment.id})

    def cancel_reservation(self, equipment_id: str, actor: Actor, context: Context = None) -> EquipmentRead:
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            checkout = calendar.open_checkout(equipment.id)
            if (
                checkout is None
                or checkout.checked_out_at is not None
                or checkout.holder_user_id != actor.user_id
            ):
                raise ConflictError(
                    "No active reservation to cancel.",
                    {"equipment_id": equipment.id, "user_id": actor.user_id},
                )

            checkout.returned_at = now
            checkout.closed_by_user_id = actor.user_id
            checkout.close_reason = "cancelled"
            session.add(checkout)
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.EQUIPMENT_RESERVATION_CANCELLED,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment), "checkout": _checkout_record(checkout)},
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Reservation on %s cancelled by %s", equipment_id, actor.user_id)
        return snapshot

    def release(
        self,
        equipment_id: str,
        actor: Actor,
        slug: Optional[str] = None,
        context: Context = None,
    ) -> EquipmentRead:
        """Return an item; elevated actors may force-release when policy allows.

        A scanned ``slug`` must match the item. The holder must present one
        when ``require_tag_scan`` is on; a force release is exempt since the
        item is not in hand.
        """

        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            checkout = calendar.open_checkout(equipment.id)
            if checkout is None or not self.policy.may_release(actor, checkout.holder_user_id):
                raise ConflictError(
                    "No open checkout held by this user.",
                    {"equipment_id": equipment.id, "user_id": actor.user_id},
                )

            forced = checkout.holder_user_id != actor.user_id
            tag_scanned = slug is not None or (self.policy.require_tag_scan and not forced)
            if tag_scanned:
                self._verify_tag(equipment, slug)

            checkout.returned_at = now
            checkout.closed_by_user_id = actor.user_id
            checkout.close_reason = "released"
            session.add(checkout)
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.EQUIPMENT_RELEASED,
                actor.user_id,
                equipment.id,
                {
                    "equipment": _equipment_record(equipment),
                    "checkout": _checkout_record(checkout),
                    "forced": forced,
                    "tag_scanned": tag_scanned,
                },
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        if forced:
            logger.warning(
                "Equipment %s force-released by %s (holder %s)",
                equipment_id,
                actor.user_id,
                checkout.holder_user_id,
            )
        else:
            logger.info("Equipment %s released by %s", equipment_id, actor.user_id)
        return snapshot

    def retire(self, equipment_id: str, actor: Actor, context: Context = None) -> EquipmentRead:
        """Take an item out of service for good; repeat calls are no-ops."""

        self._require_elevated(actor, "retire")
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            if equipment.retired_at is not None:
                return self._snapshot(calendar, equipment, now)

            closed_checkout = None
            checkout = calendar.open_checkout(equipment.id)
            if checkout is not None:
                checkout.returned_at = now
                checkout.closed_by_user_id = actor.user_id
                checkout.close_reason = "retired"
                session.add(checkout)
                closed_checkout = _checkout_record(checkout)

            cancelled: list[int] = []
            ended: Optional[int] = None
            for window in calendar.windows(equipment.id):
                if window.starts_at >= now:
                    window.cancelled_at = now
                    cancelled.append(window.id)
                elif window.covers(now):
                    window.ends_at = now
                    ended = window.id
                else:
                    continue
                session.add(window)

            equipment.retired_at = now
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.EQUIPMENT_RETIRED,
                actor.user_id,
                equipment.id,
                {
                    "equipment": _equipment_record(equipment),
                    "closed_checkout": closed_checkout,
                    "cancelled_windows": cancelled,
                    "ended_window": ended,
                },
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Equipment %s retired by %s", equipment_id, actor.user_id)
        return snapshot

    # ------------------------------------------------------------------
    # Maintenance
    # ------------------------------------------------------------------
    def schedule_maintenance(
        self,
        equipment_id: str,
        starts: Optional[datetime],
        ends: Optional[datetime],
        reason: str,
        actor: Actor,
        context: Context = None,
    ) -> MaintenanceWindowRead:
        """Book ``[starts, ends)``; ``starts=None`` means now, ``ends=None`` open-ended."""

        self._require_elevated(actor, "schedule_maintenance")
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("A maintenance reason is required.")
        starts = to_naive_utc(starts)
        ends = to_naive_utc(ends)
        if starts is not None and ends is not None and starts >= ends:
            raise ValidationError(
                "Maintenance must start before it ends.",
                {"starts_at": starts.isoformat(), "ends_at": ends.isoformat()},
            )

        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)
            starts_at = starts or now
            self._validate_window(equipment, starts_at, ends, now)

            conflicts = calendar.conflicts(equipment.id, starts_at, ends)
            if conflicts:
                raise ConflictError(
                    "Maintenance window overlaps existing commitments.",
                    {"equipment_id": equipment.id, "conflicts": [c.as_dict() for c in conflicts]},
                )

            window = MaintenanceWindow(
                equipment_id=equipment.id,
                starts_at=starts_at,
                ends_at=ends,
                reason=reason,
                created_by_user_id=actor.user_id,
                created_at=now,
            )
            session.add(window)
            session.flush()
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.MAINTENANCE_START,
                actor.user_id,
                equipment.id,
                {
                    "equipment": _equipment_record(equipment),
                    "window": _window_record(window),
                    "active": window.covers(now),
                },
                now,
                context,
            )
            result = MaintenanceWindowRead.model_validate(window, from_attributes=True)

        logger.info(
            "Maintenance scheduled on %s from %s to %s by %s",
            equipment_id,
            result.starts_at,
            result.ends_at or "open-ended",
            actor.user_id,
        )
        return result

    def start_maintenance(
        self,
        equipment_id: str,
        reason: str,
        actor: Actor,
        ends: Optional[datetime] = None,
        context: Context = None,
    ) -> MaintenanceWindowRead:
        """Take an item offline immediately."""

        return self.schedule_maintenance(equipment_id, None, ends, reason, actor, context)

    @staticmethod
    def _validate_window(
        equipment: Equipment,
        starts_at: datetime,
        ends_at: Optional[datetime],
        now: datetime,
    ) -> None:
        if ends_at is not None and starts_at >= ends_at:
            raise ValidationError(
                "Maintenance must start before it ends.",
                {"starts_at": starts_at.isoformat(), "ends_at": ends_at.isoformat()},
            )
        if starts_at < now:
            # Started windows are history; only "now" or later may be booked.
            raise ValidationError(
                "Maintenance cannot start in the past.",
                {"starts_at": starts_at.isoformat(), "now": now.isoformat()},
            )
        if ends_at is not None and ends_at <= now:
            raise ValidationError("Maintenance window is already over.", {"ends_at": ends_at.isoformat()})
        if equipment.retired_at is not None:
            raise ConflictError("Equipment is retired.", {"equipment_id": equipment.id, "reason": "retired"})

    def end_maintenance(self, equipment_id: str, actor: Actor, context: Context = None) -> EquipmentRead:
        """Close the active maintenance window now."""

        self._require_elevated(actor, "end_maintenance")
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            window = calendar.active_window(equipment.id, now)
            if window is None:
                raise ConflictError("No maintenance window is active.", {"equipment_id": equipment.id})

            if window.starts_at >= now:
                window.cancelled_at = now
            else:
                window.ends_at = now
            session.add(window)
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.MAINTENANCE_END,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment), "window": _window_record(window)},
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Maintenance on %s ended by %s", equipment_id, actor.user_id)
        return snapshot

    def cancel_maintenance(self, window_id: int, actor: Actor, context: Context = None) -> MaintenanceWindowRead:
        """Drop a window that has not started yet."""

        self._require_elevated(actor, "cancel_maintenance")
        equipment_id = self._window_equipment_id(window_id)
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            window = self._pending_window(session, window_id, now)

            window.cancelled_at = now
            session.add(window)
            self._apply_status(ReservationCalendar(session), equipment, now)
            self._record(
                session,
                AuditAction.MAINTENANCE_CANCELLED,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment), "window": _window_record(window)},
                now,
                context,
            )
            result = MaintenanceWindowRead.model_validate(window, from_attributes=True)

        logger.info("Maintenance window %s on %s cancelled by %s", window_id, equipment_id, actor.user_id)
        return result

    def reschedule_maintenance(
        self,
        window_id: int,
        starts: datetime,
        ends: Optional[datetime],
        actor: Actor,
        context: Context = None,
    ) -> MaintenanceWindowRead:
        """Move or shorten a window that has not started yet."""

        self._require_elevated(actor, "reschedule_maintenance")
        starts = to_naive_utc(starts)
        ends = to_naive_utc(ends)
        equipment_id = self._window_equipment_id(window_id)
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)
            window = self._pending_window(session, window_id, now)
            self._validate_window(equipment, starts, ends, now)

            conflicts = calendar.conflicts(equipment.id, starts, ends, exclude_window_id=window.id)
            if conflicts:
                raise ConflictError(
                    "Maintenance window overlaps existing commitments.",
                    {"equipment_id": equipment.id, "conflicts": [c.as_dict() for c in conflicts]},
                )

            previous = _window_record(window)
            window.starts_at = starts
            window.ends_at = ends
            session.add(window)
            self._apply_status(calendar, equipment, now)
            self._record(
                session,
                AuditAction.MAINTENANCE_RESCHEDULED,
                actor.user_id,
                equipment.id,
                {
                    "equipment": _equipment_record(equipment),
                    "previous": previous,
                    "window": _window_record(window),
                },
                now,
                context,
            )
            result = MaintenanceWindowRead.model_validate(window, from_attributes=True)

        logger.info("Maintenance window %s on %s rescheduled by %s", window_id, equipment_id, actor.user_id)
        return result

    def _window_equipment_id(self, window_id: int) -> str:
        with self._store() as session:
            window = session.get(MaintenanceWindow, window_id)
            if window is None:
                raise NotFoundError(f"Maintenance window {window_id} not found.", {"window_id": window_id})
            return window.equipment_id

    @staticmethod
    def _pending_window(session: Session, window_id: int, now: datetime) -> MaintenanceWindow:
        window = session.get(MaintenanceWindow, window_id)
        if window is None:
            raise NotFoundError(f"Maintenance window {window_id} not found.", {"window_id": window_id})
        if window.cancelled_at is not None:
            raise ConflictError("Maintenance window is cancelled.", {"window_id": window_id})
        if window.starts_at <= now:
            raise ConflictError(
                "Maintenance window has already started; end it instead.",
                {"window_id": window_id},
            )
        return window

    # ------------------------------------------------------------------
    # Administration
    # ------------------------------------------------------------------
    def create_equipment(
        self,
        actor: Actor,
        short_desc: str,
        long_desc: str = "",
        slug: Optional[str] = None,
        context: Context = None,
    ) -> EquipmentRead:
        self._require_elevated(actor, "create_equipment")
        short_desc = (short_desc or "").strip()
        if not short_desc:
            raise ValidationError("A short description is required.")

        equipment = Equipment(short_desc=short_desc, long_desc=long_desc or "", slug=_normalize_slug(slug))
        with self._transition(equipment.id) as session:
            now = self._clock()
            self._ensure_slug_free(session, equipment.slug, None)
            equipment.created_at = now
            equipment.updated_at = now
            session.add(equipment)
            session.flush()
            self._record(
                session,
                AuditAction.EQUIPMENT_CREATED,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment)},
                now,
                context,
            )
            snapshot = self._snapshot(ReservationCalendar(session), equipment, now)

        logger.info("Equipment %s created by %s", equipment.id, actor.user_id)
        return snapshot

    def update_equipment(
        self,
        equipment_id: str,
        actor: Actor,
        short_desc: Optional[str] = None,
        long_desc: Optional[str] = None,
        slug: Optional[str] = None,
        context: Context = None,
    ) -> EquipmentRead:
        """Edit descriptive fields; an empty ``slug`` clears the tag."""

        self._require_elevated(actor, "update_equipment")
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)
            if equipment.retired_at is not None:
                raise ConflictError("Equipment is retired.", {"equipment_id": equipment.id, "reason": "retired"})

            requested: dict[str, Any] = {}
            if short_desc is not None:
                short_desc = short_desc.strip()
                if not short_desc:
                    raise ValidationError("A short description is required.")
                requested["short_desc"] = short_desc
            if long_desc is not None:
                requested["long_desc"] = long_desc
            if slug is not None:
                requested["slug"] = _normalize_slug(slug)
                self._ensure_slug_free(session, requested["slug"], equipment.id)

            changes = {
                name: {"from": getattr(equipment, name), "to": value}
                for name, value in requested.items()
                if getattr(equipment, name) != value
            }
            if not changes:
                return self._snapshot(calendar, equipment, now)

            for name, change in changes.items():
                setattr(equipment, name, change["to"])
            equipment.updated_at = now
            session.add(equipment)
            self._record(
                session,
                AuditAction.EQUIPMENT_UPDATED,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment), "changes": changes},
                now,
                context,
            )
            snapshot = self._snapshot(calendar, equipment, now)

        logger.info("Equipment %s updated by %s: %s", equipment_id, actor.user_id, sorted(changes))
        return snapshot

    @staticmethod
    def _ensure_slug_free(session: Session, slug: Optional[str], equipment_id: Optional[str]) -> None:
        if slug is None:
            return
        owner = session.exec(select(Equipment).where(Equipment.slug == slug)).first()
        if owner is not None and owner.id != equipment_id:
            raise ConflictError("Slug already in use.", {"slug": slug, "equipment_id": owner.id})

    def delete_equipment(self, equipment_id: str, actor: Actor, context: Context = None) -> None:
        """Hard-delete an item that has no usage history; otherwise retire it."""

        self._require_elevated(actor, "delete_equipment")
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()

            has_checkouts = session.exec(
                select(Checkout.id).where(Checkout.equipment_id == equipment.id)
            ).first()
            has_windows = session.exec(
                select(MaintenanceWindow.id).where(MaintenanceWindow.equipment_id == equipment.id)
            ).first()
            has_events = session.exec(
                select(AuditEvent.id).where(
                    AuditEvent.equipment_id == equipment.id,
                    AuditEvent.action.not_in(list(BOOKKEEPING_ACTIONS)),
                )
            ).first()
            if has_checkouts is not None or has_windows is not None or has_events is not None:
                raise ConflictError(
                    "Equipment has history and can only be retired.",
                    {"equipment_id": equipment.id, "reason": "has_history"},
                )

            self._record(
                session,
                AuditAction.EQUIPMENT_DELETED,
                actor.user_id,
                equipment.id,
                {"equipment": _equipment_record(equipment)},
                now,
                context,
            )
            session.delete(equipment)

        logger.info("Equipment %s deleted by %s", equipment_id, actor.user_id)

    # ------------------------------------------------------------------
    # Reconciliation
    # ------------------------------------------------------------------
    def reconcile(self, equipment_id: str, actor: Optional[Actor] = None) -> EquipmentRead:
        """Persist a status change caused by time passing (window start/end).

        The change is attributed to the system actor; a requesting user is
        kept as ``requested_by`` in the event metadata.
        """

        snapshot, _ = self._reconcile(equipment_id, actor.user_id if actor else None)
        return snapshot

    def reconcile_all(self) -> int:
        """Reconcile every non-retired item, one unit each; return how many changed."""

        with self._store() as session:
            ids = list(session.exec(select(Equipment.id).where(Equipment.retired_at.is_(None))).all())

        changed = 0
        for equipment_id in ids:
            try:
                _, did_change = self._reconcile(equipment_id)
            except NotFoundError:
                # Deleted since the id list was read.
                continue
            changed += int(did_change)
        if changed:
            logger.info("Reconciled status for %s of %s equipment", changed, len(ids))
        return changed

    def _reconcile(self, equipment_id: str, requested_by: Optional[str] = None) -> tuple[EquipmentRead, bool]:
        with self._transition(equipment_id) as session:
            equipment = self._load_locked(session, equipment_id)
            now = self._clock()
            calendar = ReservationCalendar(session)

            before = equipment.status
            after = self._apply_status(calendar, equipment, now)
            changed = before != after
            if changed:
                metadata: dict[str, Any] = {
                    "equipment": _equipment_record(equipment),
                    "from": before.value,
                    "to": after.value,
                }
                if requested_by is not None:
                    metadata["requested_by"] = requested_by
                self._record(
                    session,
                    AuditAction.STATUS_RECONCILED,
                    settings.system_actor_id,
                    equipment.id,
                    metadata,
                    now,
                )
            snapshot = self._snapshot(calendar, equipment, now)

        if changed:
            logger.info("Equipment %s status %s -> %s", equipment_id, before.value, after.value)
        return snapshot, changed

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------
    def get_equipment(self, equipment_id: str) -> EquipmentRead:
        with self._store() as session:
            equipment = session.get(Equipment, equipment_id)
            if equipment is None:
                raise NotFoundError(f"Equipment {equipment_id} not found.", {"equipment_id": equipment_id})
            return self._snapshot(ReservationCalendar(session), equipment, self._clock())

    def stored_status(self, equipment_id: str) -> EquipmentStatus:
        """The cached status column, which may lag behind time-triggered changes."""

        with self._store() as session:
            equipment = session.get(Equipment, equipment_id)
            if equipment is None:
                raise NotFoundError(f"Equipment {equipment_id} not found.", {"equipment_id": equipment_id})
            return equipment.status

    def list_equipment(self, criteria: Optional[EquipmentFilter] = None) -> list[EquipmentRead]:
        criteria = criteria or EquipmentFilter()
        statement = select(Equipment).order_by(Equipment.created_at.desc(), Equipment.id)
        if not criteria.include_retired:
            statement = statement.where(Equipment.retired_at.is_(None))
        if criteria.holder_user_id:
            statement = statement.where(
                Equipment.id.in_(
                    select(Checkout.equipment_id).where(
                        Checkout.holder_user_id == criteria.holder_user_id,
                        Checkout.returned_at.is_(None),
                    )
                )
            )

        with self._store() as session:
            now = self._clock()
            calendar = ReservationCalendar(session)
            snapshots = [self._snapshot(calendar, row, now) for row in session.exec(statement).all()]

        if criteria.statuses:
            snapshots = [item for item in snapshots if item.status in criteria.statuses]
        return snapshots

    def get_history(self, equipment_id: str) -> list[AuditEventRead]:
        """Audit events for an item, oldest first; survives hard deletion."""

        events = self.audit.query_by_equipment(equipment_id)
        if not events:
            self._ensure_exists(equipment_id)
        return events

    def list_checkouts(self, equipment_id: str) -> list[CheckoutRead]:
        self._ensure_exists(equipment_id)
        with self._store() as session:
            rows = session.exec(
                select(Checkout)
                .where(Checkout.equipment_id == equipment_id)
                .order_by(Checkout.claimed_at, Checkout.id)
            ).all()
            return [CheckoutRead.model_validate(row, from_attributes=True) for row in rows]

    def list_maintenance(self, equipment_id: str, include_cancelled: bool = False) -> list[MaintenanceWindowRead]:
        self._ensure_exists(equipment_id)
        with self._store() as session:
            windows = ReservationCalendar(session).windows(equipment_id, include_cancelled=include_cancelled)
            return [MaintenanceWindowRead.model_validate(w, from_attributes=True) for w in windows]

    def _ensure_exists(self, equipment_id: str) -> None:
        with self._store() as session:
            if session.get(Equipment, equipment_id) is None:
                raise NotFoundError(f"Equipment {equipment_id} not found.", {"equipment_id": equipment_id})


__all__ = ["EquipmentFilter", "LifecycleEngine"]
