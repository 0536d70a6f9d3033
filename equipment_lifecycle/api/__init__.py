"""API router definitions."""

from fastapi import APIRouter

from .audit import router as audit_router
from .equipment import router as equipment_router
from .maintenance import router as maintenance_router
from .routes import system_router

api_router = APIRouter()
api_router.include_router(system_router)
api_router.include_router(equipment_router)
api_router.include_router(maintenance_router)
api_router.include_router(audit_router)

__all__ = ["api_router"]
