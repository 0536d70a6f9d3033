"""Lifecycle policy loader and actor authorization helpers."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Iterable, Literal

import yaml
from pydantic import BaseModel, Field, field_validator

from equipment_lifecycle.core.config import settings

logger = logging.getLogger(__name__)

ClaimMode = Literal["direct", "two_step"]
ReleasePolicy = Literal["holder_only", "holder_or_elevated"]


@dataclass(frozen=True)
class Actor:
    """Identity resolved by the access gate in front of the engine."""

    user_id: str
    roles: frozenset[str] = field(default_factory=frozenset)

    @classmethod
    def of(cls, user_id: str, roles: Iterable[str] = ()) -> "Actor":
        return cls(user_id=user_id, roles=frozenset(r.strip().upper() for r in roles if r.strip()))


class LifecyclePolicy(BaseModel):
    """Flow and authorization switches for the lifecycle engine."""

    claim_mode: ClaimMode = "direct"
    release_policy: ReleasePolicy = "holder_or_elevated"
    elevated_roles: frozenset[str] = Field(default_factory=lambda: frozenset({"ADMIN"}))
    require_tag_scan: bool = Field(
        default=False,
        description="Two-step check-out must present the equipment slug.",
    )

    @field_validator("elevated_roles", mode="before")
    @classmethod
    def _normalize_roles(cls, value: Any) -> Any:
        if isinstance(value, str):
            value = value.split(",")
        return frozenset(str(role).strip().upper() for role in value if str(role).strip())

    def is_elevated(self, actor: Actor) -> bool:
        return bool(actor.roles & self.elevated_roles)

    def may_release(self, actor: Actor, holder_user_id: str) -> bool:
        """Holders may always release; others only under the override policy."""

        if actor.user_id == holder_user_id:
            return True
        return self.release_policy == "holder_or_elevated" and self.is_elevated(actor)


def load_policy(path: str | Path | None = None) -> LifecyclePolicy:
    """Load the lifecycle policy from YAML, seeding missing keys from settings."""

    policy_path = Path(path or settings.policy_path)
    data: dict[str, Any] = {}
    if policy_path.exists():
        data = yaml.safe_load(policy_path.read_text(encoding="utf-8")) or {}
        logger.info("Loaded lifecycle policy from %s", policy_path)

    payload = dict(data.get("policy") or {})
    payload.setdefault("claim_mode", settings.claim_mode)
    payload.setdefault("release_policy", settings.release_policy)
    payload.setdefault("elevated_roles", list(settings.elevated_roles))
    payload.setdefault("require_tag_scan", settings.require_tag_scan)

    return LifecyclePolicy.model_validate(payload)


__all__ = ["Actor", "ClaimMode", "LifecyclePolicy", "ReleasePolicy", "load_policy"]
