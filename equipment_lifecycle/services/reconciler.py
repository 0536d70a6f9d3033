"""Background worker that persists time-triggered status changes."""

from __future__ import annotations

import logging
import threading

from equipment_lifecycle.core.config import settings
from equipment_lifecycle.core.errors import LifecycleError
from equipment_lifecycle.services.lifecycle import LifecycleEngine

logger = logging.getLogger(__name__)


class StatusReconciler:
    """Periodically reconcile cached status against maintenance windows.

    The engine has no clock of its own; claims always re-check the calendar,
    but listings and dashboards read the cached status, so something has to
    move it forward when a window starts or ends.
    """

    def __init__(self, engine: LifecycleEngine, interval_seconds: float | None = None) -> None:
        self.engine = engine
        self.interval_seconds = interval_seconds or settings.reconcile_interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._worker, name="status-reconciler", daemon=True)
        self._thread.start()
        logger.info("Status reconciler started (every %ss)", self.interval_seconds)

    def stop(self, timeout: float = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Status reconciler stopped")

    def run_once(self) -> int:
        return self.engine.reconcile_all()

    def _worker(self) -> None:
        while not self._stop.is_set():
            try:
                self.run_once()
            except LifecycleError as exc:
                logger.warning("Status reconciliation pass failed: %s", exc)
            except Exception as exc:  # pragma: no cover - runtime safety
                logger.error("Status reconciliation crashed: %s", exc, exc_info=True)
            self._stop.wait(self.interval_seconds)


__all__ = ["StatusReconciler"]
