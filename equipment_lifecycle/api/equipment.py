"""Equipment custody and administration endpoints."""

from __future__ import annotations

from typing import Any, List, Optional

from fastapi import APIRouter, Body, Depends, Query
from pydantic import BaseModel, Field

from equipment_lifecycle.api.deps import get_actor, get_engine
from equipment_lifecycle.core.policy import Actor
from equipment_lifecycle.models import AuditEventRead, CheckoutRead, EquipmentRead, EquipmentStatus
from equipment_lifecycle.services.lifecycle import EquipmentFilter, LifecycleEngine

router = APIRouter(prefix="/equipment", tags=["equipment"])


class CommandPayload(BaseModel):
    context: Optional[dict[str, Any]] = Field(
        default=None, description="Caller metadata stored verbatim on the audit event"
    )


class EquipmentCreatePayload(CommandPayload):
    short_desc: str = Field(max_length=200)
    long_desc: str = ""
    slug: Optional[str] = Field(default=None, max_length=64)


class EquipmentUpdatePayload(CommandPayload):
    short_desc: Optional[str] = Field(default=None, max_length=200)
    long_desc: Optional[str] = None
    slug: Optional[str] = Field(default=None, max_length=64, description="Empty string clears the tag")


class TagScanPayload(CommandPayload):
    slug: Optional[str] = Field(default=None, description="Tag scanned from the physical item")


class AssignPayload(CommandPayload):
    user_id: str = Field(min_length=1, max_length=128)


def _context(payload: Optional[CommandPayload]) -> Optional[dict[str, Any]]:
    return payload.context if payload else None


@router.get("", response_model=List[EquipmentRead])
def list_equipment(
    status: List[EquipmentStatus] = Query(default=[]),
    holder: Optional[str] = Query(default=None, description="Only items held by this user"),
    mine: bool = Query(default=False, description="Only items held by the caller"),
    include_retired: bool = Query(default=True),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    criteria = EquipmentFilter(
        statuses=set(status) or None,
        holder_user_id=actor.user_id if mine else holder,
        include_retired=include_retired,
    )
    return engine.list_equipment(criteria)


@router.post("", response_model=EquipmentRead, status_code=201)
def create_equipment(
    payload: EquipmentCreatePayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.create_equipment(
        actor,
        short_desc=payload.short_desc,
        long_desc=payload.long_desc,
        slug=payload.slug,
        context=payload.context,
    )


@router.get("/{equipment_id}", response_model=EquipmentRead)
def get_equipment(
    equipment_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.get_equipment(equipment_id)


@router.patch("/{equipment_id}", response_model=EquipmentRead)
def update_equipment(
    equipment_id: str,
    payload: EquipmentUpdatePayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.update_equipment(
        equipment_id,
        actor,
        short_desc=payload.short_desc,
        long_desc=payload.long_desc,
        slug=payload.slug,
        context=payload.context,
    )


@router.delete("/{equipment_id}")
def delete_equipment(
    equipment_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    engine.delete_equipment(equipment_id, actor)
    return {"deleted": equipment_id}


@router.post("/{equipment_id}/claim", response_model=EquipmentRead)
def claim(
    equipment_id: str,
    payload: Optional[CommandPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.claim(equipment_id, actor, context=_context(payload))


@router.post("/{equipment_id}/check-out", response_model=EquipmentRead)
def check_out(
    equipment_id: str,
    payload: Optional[TagScanPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.check_out(
        equipment_id,
        actor,
        slug=payload.slug if payload else None,
        context=_context(payload),
    )


@router.post("/{equipment_id}/cancel-reservation", response_model=EquipmentRead)
def cancel_reservation(
    equipment_id: str,
    payload: Optional[CommandPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.cancel_reservation(equipment_id, actor, context=_context(payload))


@router.post("/{equipment_id}/release", response_model=EquipmentRead)
def release(
    equipment_id: str,
    payload: Optional[TagScanPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.release(
        equipment_id,
        actor,
        slug=payload.slug if payload else None,
        context=_context(payload),
    )


@router.post("/{equipment_id}/assign", response_model=EquipmentRead)
def assign(
    equipment_id: str,
    payload: AssignPayload,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.assign(equipment_id, payload.user_id, actor, context=payload.context)


@router.post("/{equipment_id}/retire", response_model=EquipmentRead)
def retire(
    equipment_id: str,
    payload: Optional[CommandPayload] = Body(default=None),
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.retire(equipment_id, actor, context=_context(payload))


@router.post("/{equipment_id}/reconcile", response_model=EquipmentRead)
def reconcile(
    equipment_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.reconcile(equipment_id, actor)


@router.get("/{equipment_id}/history", response_model=List[AuditEventRead])
def history(
    equipment_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.get_history(equipment_id)


@router.get("/{equipment_id}/checkouts", response_model=List[CheckoutRead])
def checkouts(
    equipment_id: str,
    actor: Actor = Depends(get_actor),
    engine: LifecycleEngine = Depends(get_engine),
) -> Any:
    return engine.list_checkouts(equipment_id)


__all__ = ["router"]
