"""It runs a background thread that keeps removing participants who went quiet"""

import logging
import os
import threading
from datetime import timedelta
from typing import Optional

from django.conf import settings

from .registry import PresenceRegistry, get_presence_registry

logger = logging.getLogger(__name__)

_sweeper_instance: Optional["PresenceSweeper"] = None


def presence_max_age() -> timedelta:
    return timedelta(seconds=getattr(settings, "PRESENCE_MAX_AGE_SECONDS", 300))


class PresenceSweeper:
    def __init__(self, registry: PresenceRegistry, max_age: timedelta, interval_seconds: int):
        self.registry = registry
        self.max_age = max_age
        self.interval_seconds = interval_seconds
        self._stop_event = threading.Event()
        self._thread = threading.Thread(target=self._run, name="presence-sweeper", daemon=True)

    def start(self):
        if not self._thread.is_alive():
            logger.info(
                "Starting presence sweeper (max_age=%ss interval=%ss)",
                int(self.max_age.total_seconds()),
                self.interval_seconds,
            )
            self._thread.start()

    def stop(self):
        self._stop_event.set()

    def sweep_once(self) -> int:
        removed = self.registry.sweep(self.max_age)
        if removed:
            logger.info("Presence sweep removed %s, %s still online", removed, self.registry.count())
        else:
            logger.debug("Presence sweep: %s online", self.registry.count())
        return removed

    def _run(self):
        while not self._stop_event.wait(self.interval_seconds):
            try:
                self.sweep_once()
            except Exception:  # pragma: no cover - best effort logging
                logger.exception("Presence sweeper encountered an error")


def start_presence_sweeper() -> Optional[PresenceSweeper]:
    global _sweeper_instance

    if getattr(settings, "PRESENCE_SWEEP_ENABLED", True) is False:
        return None

    # Avoid double-start in Django's autoreload parent process
    run_main = os.environ.get("RUN_MAIN")
    if run_main not in (None, "true"):
        return None

    if _sweeper_instance is None:
        interval_seconds = getattr(settings, "PRESENCE_SWEEP_INTERVAL_SECONDS", 60)
        _sweeper_instance = PresenceSweeper(get_presence_registry(), presence_max_age(), interval_seconds)
        _sweeper_instance.start()
    return _sweeper_instance
