"""System endpoints."""

from fastapi import APIRouter

from equipment_lifecycle.core.config import settings

system_router = APIRouter(tags=["system"])


@system_router.get("/health", summary="Service health probe")
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@system_router.get("/version", summary="Service name and version")
async def version() -> dict[str, str]:
    return {"name": settings.app_name, "version": settings.app_version}
