"""Database models."""

from .audit import AuditAction, AuditEvent, AuditEventRead
from .checkout import Checkout, CheckoutRead
from .equipment import Equipment, EquipmentRead, EquipmentStatus, HolderRead
from .maintenance import MaintenanceWindow, MaintenanceWindowRead

__all__ = [
    "AuditAction",
    "AuditEvent",
    "AuditEventRead",
    "Checkout",
    "CheckoutRead",
    "Equipment",
    "EquipmentRead",
    "EquipmentStatus",
    "HolderRead",
    "MaintenanceWindow",
    "MaintenanceWindowRead",
]
