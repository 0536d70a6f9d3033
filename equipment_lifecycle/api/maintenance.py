"""Maintenance window endpoints."""

from __future__ import annotations

from datetime import datetime
from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from equipment_lifecycle.api.deps import get_actor, get_engine
from equipment_lifecycle.core.policy import Actor
from equipment_lifecycle.models import EquipmentRead, MaintenanceWindowRead
from equipment_lifecycle.services.lifecycle import LifecycleEngine

router = APIRouter(tags=["maintenance"])


class MaintenanceSchedulePayload(BaseModel):
    starts_at: Optional[datetime] = Field(default=None, description="Defaults to now")
    ends_at: Optional[datetime] = Field(default=None, description="Open-ended when omitted")
    reason: str = Field(max_length=500)
    context: Optional[dict[str, Any]] = None


class MaintenanceStartPayload(BaseModel):
    reason: str = Field(max_length=500)
    ends_at: Optional[datetime] = None
    context: Optional[dict[str, Any]] = None


class MaintenanceReschedulePayload(BaseModel):
    starts_at: datetime
    ends_at: Optional[datetime] = None
    context: Optional[dict[str, Any]] = None


class MaintenanceEndPayload(BaseModel):
    context: Optional[dict[str, Any]] = None


@router.get("/equipment/{equipment_id}/maintenance", response_model=List[MaintenanceWindowRead])
def list_windows(
    equipment_id: str,
    include_cancelled: bool = Query(default=False),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.list_maintenance(equipment_id, include_cancelled=include_cancelled)


@router.post(
    "/equipment/{equipment_id}/maintenance",
    response_model=MaintenanceWindowRead,
    status_code=201,
)
def schedule_window(
    equipment_id: str,
    payload: MaintenanceSchedulePayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.schedule_maintenance(
        equipment_id,
        payload.starts_at,
        payload.ends_at,
        payload.reason,
        actor,
        context=payload.context,
    )


@router.post(
    "/equipment/{equipment_id}/maintenance/start",
    response_model=MaintenanceWindowRead,
    status_code=201,
)
def start_maintenance(
    equipment_id: str,
    payload: MaintenanceStartPayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.start_maintenance(
        equipment_id, payload.reason, actor, ends=payload.ends_at, context=payload.context
    )


@router.post("/equipment/{equipment_id}/maintenance/end", response_model=EquipmentRead)
def end_maintenance(
    equipment_id: str,
    payload: Optional[MaintenanceEndPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.end_maintenance(equipment_id, actor, context=payload.context if payload else None)


@router.patch("/maintenance/{window_id}", response_model=MaintenanceWindowRead)
def reschedule_window(
    window_id: int,
    payload: MaintenanceReschedulePayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.reschedule_maintenance(
        window_id, payload.starts_at, payload.ends_at, actor, context=payload.context
    )


@router.delete("/maintenance/{window_id}", response_model=MaintenanceWindowRead)
def cancel_window(
    window_id: int,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.cancel_maintenance(window_id, actor)


__all__ = ["router"]
