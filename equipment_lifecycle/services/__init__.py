"""Service-layer utilities."""

from .audit_log import AuditLog
from .calendar import Commitment, ReservationCalendar, derive_status, overlaps
from .lifecycle import EquipmentFilter, LifecycleEngine
from .locks import KeyedLock
from .reconciler import StatusReconciler

__all__ = [
    "AuditLog",
    "Commitment",
    "EquipmentFilter",
    "KeyedLock",
    "LifecycleEngine",
    "ReservationCalendar",
    "StatusReconciler",
    "derive_status",
    "overlaps",
]
