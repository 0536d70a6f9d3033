"""Error taxonomy raised by the lifecycle engine."""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, ClassVar


@dataclass(eq=False)
class LifecycleError(Exception):
    """Base class for failures that leave equipment state untouched."""

    status_code: ClassVar[int] = 400
    code: ClassVar[str] = "LIFECYCLE_ERROR"

    message: str
    details: dict[str, Any] = field(default_factory=dict)

    def __str__(self) -> str:  # pragma: no cover - human-friendly
        return self.message

    def to_dict(self) -> dict[str, Any]:
        return {"code": self.code, "message": self.message, "details": self.details}


class NotFoundError(LifecycleError):
    """Unknown equipment, checkout or maintenance window identifier."""

    status_code = 404
    code = "NOT_FOUND"


class ConflictError(LifecycleError):
    """The transition is not allowed by the current state or calendar."""

    status_code = 409
    code = "CONFLICT"


class ValidationError(LifecycleError):
    """Malformed input such as an empty interval."""

    status_code = 422
    code = "INVALID_INPUT"


class ForbiddenError(LifecycleError):
    """The actor lacks the role required for a gated transition."""

    status_code = 403
    code = "FORBIDDEN"


class StoreUnavailableError(LifecycleError):
    """The atomic unit could not be executed; nothing was applied."""

    status_code = 503
    code = "STORE_UNAVAILABLE"


__all__ = [
    "LifecycleError",
    "NotFoundError",
    "ConflictError",
    "ValidationError",
    "ForbiddenError",
    "StoreUnavailableError",
]
