"""Append-only audit log backed by the ``audit_events`` table."""

from __future__ import annotations

import logging
from datetime import datetime
from typing import Any, Optional, Sequence

from sqlalchemy import func
from sqlalchemy.engine import Engine
from sqlmodel import Session, select

from equipment_lifecycle.core.config import settings
from equipment_lifecycle.core.timeutil import utcnow
from equipment_lifecycle.db.session import store_session
from equipment_lifecycle.models import AuditAction, AuditEvent, AuditEventRead

logger = logging.getLogger(__name__)


class AuditLog:
    """Durable record of every state change.

    There is no update or delete path. Inside a caller's session, store
    failures propagate to that unit of work; standalone appends and queries
    raise ``StoreUnavailableError``.
    """

    def __init__(self, bind: Engine | None = None) -> None:
        self._bind = bind

    def append(
        self,
        action: AuditAction,
        actor_user_id: str,
        equipment_id: Optional[str] = None,
        metadata: Optional[dict[str, Any]] = None,
        session: Session | None = None,
        at: Optional[datetime] = None,
    ) -> int:
        """Record an event and return its id.

        With ``session`` the event joins the caller's unit of work and is
        committed with it; otherwise it is committed on its own.
        """

        def _append(db: Session) -> AuditEvent:
            event = AuditEvent(
                action=action,
                actor_user_id=actor_user_id,
                equipment_id=equipment_id,
                event_metadata=metadata if metadata is not None else {},
                created_at=at or utcnow(),
            )
            db.add(event)
            db.flush()
            return event

        if session is not None:
            event = _append(session)
        else:
            with store_session(self._bind) as db:
                event = _append(db)
                db.commit()
        logger.debug("Audit %s by %s on %s (#%s)", action.value, actor_user_id, equipment_id, event.id)
        return event.id

    def query_by_equipment(self, equipment_id: str) -> list[AuditEventRead]:
        return self._query(AuditEvent.equipment_id == equipment_id)

    def query_by_actor(self, user_id: str) -> list[AuditEventRead]:
        return self._query(AuditEvent.actor_user_id == user_id)

    def _query(self, condition: Any) -> list[AuditEventRead]:
        with store_session(self._bind) as db:
            rows = db.exec(select(AuditEvent).where(condition).order_by(AuditEvent.id)).all()
            return [AuditEventRead.model_validate(row, from_attributes=True) for row in rows]

    def search(
        self,
        actor_user_id: Optional[str] = None,
        action: Optional[AuditAction] = None,
        equipment_id: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        page: int = 1,
        page_size: Optional[int] = None,
    ) -> tuple[list[AuditEventRead], int]:
        """Filtered, newest-first page of events plus the total match count."""

        page = max(page, 1)
        page_size = min(page_size or settings.audit_page_size_default, settings.audit_page_size_max)

        conditions = []
        if actor_user_id:
            conditions.append(AuditEvent.actor_user_id == actor_user_id)
        if action:
            conditions.append(AuditEvent.action == action)
        if equipment_id:
            conditions.append(AuditEvent.equipment_id == equipment_id)
        if since:
            conditions.append(AuditEvent.created_at >= since)
        if until:
            conditions.append(AuditEvent.created_at <= until)

        with store_session(self._bind) as db:
            total = db.exec(select(func.count()).select_from(AuditEvent).where(*conditions)).one()
            rows: Sequence[AuditEvent] = db.exec(
                select(AuditEvent)
                .where(*conditions)
                .order_by(AuditEvent.id.desc())
                .offset((page - 1) * page_size)
                .limit(page_size)
            ).all()
            items = [AuditEventRead.model_validate(row, from_attributes=True) for row in rows]
        return items, int(total)


__all__ = ["AuditLog"]
