"""
Background sweep that reclaims storage held by expired pastes.
"""
import logging
import threading
from typing import Optional

from pastevault.engine import PasteStore

logger = logging.getLogger(__name__)


class Reaper:
    """
    Periodically calls ``PasteStore.reap`` from a daemon thread.

    Expiry is already enforced on every read; this only frees pastes that
    nobody fetches again.
    """

    def __init__(self, store: PasteStore, interval_seconds: float = 60.0):
        self.store = store
        self.interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        if self.running:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="paste-reaper", daemon=True)
        self._thread.start()
        logger.info(f"Reaper started (every {self.interval_seconds}s)")

    def stop(self, timeout: Optional[float] = 5.0) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout)
            self._thread = None
            logger.info("Reaper stopped")

    def run_once(self) -> int:
        """Run a single sweep and return how many pastes were deleted."""
        return self.store.reap()

    def _loop(self) -> None:
        while not self._stop.wait(self.interval_seconds):
            try:
                self.run_once()
            except Exception as e:
                logger.exception(f"Error in reaper sweep: {e}")
