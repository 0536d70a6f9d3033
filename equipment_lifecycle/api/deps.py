"""API dependencies."""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Header, HTTPException

from equipment_lifecycle.core.policy import Actor
from equipment_lifecycle.services.lifecycle import LifecycleEngine


@lru_cache(maxsize=1)
def get_engine() -> LifecycleEngine:
    return LifecycleEngine()


def get_actor(
    x_user_id: Optional[str] = Header(default=None),
    x_user_roles: str = Header(default=""),
) -> Actor:
    """Identity resolved upstream by the access gate; the engine only authorizes."""

    if not x_user_id or not x_user_id.strip():
        raise HTTPException(status_code=401, detail="Sign in required")
    return Actor.of(x_user_id.strip(), x_user_roles.split(","))
