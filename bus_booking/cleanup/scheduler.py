import threading
from typing import Callable, Optional

from loguru import logger
from sqlalchemy.orm import Session

from bus_booking.cleanup.schemas import SweepResult
from bus_booking.cleanup.sweeper import ExpirySweeper
from bus_booking.config import settings
from bus_booking.database import SessionLocal


class ExpirySweepScheduler:
    """Runs the expiry sweep on a fixed interval in a daemon thread"""

    def __init__(self, session_factory: Callable[[], Session] = SessionLocal, interval_minutes: Optional[float] = None):
        self.session_factory = session_factory
        self.interval_seconds = (interval_minutes or settings.CLEANUP_INTERVAL_MINUTES) * 60
        self._stop_event = threading.Event()
        self._run_lock = threading.Lock()
        self._thread: Optional[threading.Thread] = None

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self):
        """Start sweeping in background"""
        if self.running:
            return
        self._stop_event.clear()
        self._thread = threading.Thread(target=self._sweep_loop, name="expiry-sweeper")
        self._thread.daemon = True
        self._thread.start()
        logger.info(f"Expiry sweeper started (every {self.interval_seconds / 60:g} min)")

    def stop(self, timeout: float = 5):
        """Stop sweeping"""
        self._stop_event.set()
        if self._thread:
            self._thread.join(timeout=timeout)
            self._thread = None
        logger.info("Expiry sweeper stopped")

    def run_once(self) -> Optional[SweepResult]:
        """One sweep with a fresh session; returns None if a sweep is already running"""
        if not self._run_lock.acquire(blocking=False):
            logger.warning("Previous expiry sweep still running; skipping this run")
            return None

        db = self.session_factory()
        try:
            return ExpirySweeper(db).sweep()
        finally:
            db.close()
            self._run_lock.release()

    def _sweep_loop(self):
        while not self._stop_event.is_set():
            try:
                self.run_once()
            except Exception:
                logger.exception("Expiry sweep failed")
            self._stop_event.wait(self.interval_seconds)
