"""Map engine errors onto HTTP responses."""

from __future__ import annotations

import logging

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse

from equipment_lifecycle.core.errors import LifecycleError, StoreUnavailableError

logger = logging.getLogger(__name__)


def register_error_handlers(app: FastAPI) -> None:
    @app.exception_handler(LifecycleError)
    async def _lifecycle_error(request: Request, exc: LifecycleError) -> JSONResponse:
        if isinstance(exc, StoreUnavailableError):
            logger.error("%s %s failed: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


__all__ = ["register_error_handlers"]
