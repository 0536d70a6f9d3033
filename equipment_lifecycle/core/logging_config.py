"""JSON logging for the API process, the status reconciler and scripts."""

from __future__ import annotations

import logging
from typing import Optional

from pythonjsonlogger import jsonlogger

from equipment_lifecycle.core.config import settings

_CONFIGURED = False

# Engine modules log transitions with the equipment id in the message; the
# thread name tells request handlers apart from the reconciler.
_FORMAT = "%(asctime)s %(levelname)s %(name)s %(threadName)s %(message)s"
_RENAMED = {"asctime": "timestamp", "levelname": "level", "name": "logger", "threadName": "thread"}


def json_formatter(service_name: Optional[str] = None) -> jsonlogger.JsonFormatter:
    return jsonlogger.JsonFormatter(
        _FORMAT,
        rename_fields=_RENAMED,
        static_fields={
            "service": service_name or settings.service_name,
            "version": settings.app_version,
        },
    )


def setup_logging(
    service_name: Optional[str] = None,
    level: Optional[str] = None,
    force: bool = False,
) -> None:
    """Route root logging through one JSON handler.

    Runs once per process unless ``force`` is set; scripts pass their own
    ``service_name`` so their lines can be told apart from the API's.
    """

    global _CONFIGURED
    if _CONFIGURED and not force:
        return

    handler = logging.StreamHandler()
    handler.setFormatter(json_formatter(service_name))

    root = logging.getLogger()
    root.handlers.clear()
    root.addHandler(handler)
    root.setLevel((level or settings.log_level).upper())

    # SQL echo is controlled by database_echo, not by the root level.
    logging.getLogger("sqlalchemy.engine").setLevel(
        logging.INFO if settings.database_echo else logging.WARNING
    )
    logging.captureWarnings(True)
    _CONFIGURED = True


__all__ = ["json_formatter", "setup_logging"]
