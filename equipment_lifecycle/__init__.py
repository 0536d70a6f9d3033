"""Equipment lifecycle and reservation engine with its FastAPI adapter."""

import logging

from fastapi import FastAPI

from .api import api_router
from .api.deps import get_engine
from .api.errors import register_error_handlers
from .core.config import settings
from .core.logging_config import setup_logging
from .db.session import init_db
from .services.reconciler import StatusReconciler


def create_app() -> FastAPI:
    setup_logging()
    logger = logging.getLogger(__name__)
    logger.info("Initializing %s API", settings.app_name)

    app = FastAPI(title=settings.app_name, version=settings.app_version)
    app.include_router(api_router, prefix=settings.api_prefix)
    register_error_handlers(app)

    @app.get("/", include_in_schema=False)
    async def root() -> dict[str, str]:
        """Provide a friendly landing response for the bare hostname."""

        return {
            "message": (
                f"{settings.app_name} API is online. Try GET "
                f"{settings.api_prefix}/health for a health check."
            )
        }

    @app.on_event("startup")
    def _startup() -> None:
        init_db()
        if settings.reconcile_enabled:
            reconciler = StatusReconciler(get_engine())
            reconciler.start()
            app.state.reconciler = reconciler

    @app.on_event("shutdown")
    def _shutdown() -> None:
        reconciler = getattr(app.state, "reconciler", None)
        if reconciler is not None:
            reconciler.stop()

    return app


__all__ = ["create_app"]
