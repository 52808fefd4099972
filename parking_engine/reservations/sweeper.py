from typing import Dict, Optional, Callable
from datetime import datetime
import logging
import threading

from parking_engine.config import settings
from parking_engine.database import SessionLocal

logger = logging.getLogger(__name__)

class ExpirySweeper:
    """Background loop expiring overdue reservations and reconciling orphaned slots"""

    def __init__(
        self,
        session_factory: Callable = SessionLocal,
        interval_seconds: Optional[float] = None,
        clock: Callable[[], datetime] = datetime.now
    ):
        self.session_factory = session_factory
        self.interval_seconds = settings.SWEEP_INTERVAL_SECONDS if interval_seconds is None else interval_seconds
        self.clock = clock
        self._stop_event = threading.Event()
        self._sweeper_thread = None

    @property
    def is_running(self) -> bool:
        return self._sweeper_thread is not None and self._sweeper_thread.is_alive()

    def start(self):
        """Start sweeping in background"""
        if not self.is_running:
            self._stop_event.clear()
            self._sweeper_thread = threading.Thread(target=self._sweep_loop, name="reservation-sweeper")
            self._sweeper_thread.daemon = True
            self._sweeper_thread.start()
            logger.info("Reservation sweeper started, every %s seconds", self.interval_seconds)

    def stop(self):
        """Stop sweeping"""
        self._stop_event.set()
        if self._sweeper_thread:
            self._sweeper_thread.join(timeout=5)
            self._sweeper_thread = None
            logger.info("Reservation sweeper stopped")

    def run_once(self) -> Dict[str, int]:
        """One sweep and reconciliation pass on a fresh session"""
        # Deferred: the ticket module imports the reservation manager
        from parking_engine.tickets.ticket_service import TicketLifecycleManager

        db = self.session_factory()
        try:
            manager = TicketLifecycleManager(db, clock=self.clock)
            counts = dict(manager.reservations.sweep_expired())
            counts.update(manager.reconcile_orphaned_slots())
            return counts
        finally:
            db.close()

    def _sweep_loop(self):
        """Main sweep loop"""
        while not self._stop_event.is_set():
            try:
                counts = self.run_once()
                logger.info("Sweep pass finished: %s", counts)
            except Exception:
                logger.exception("Error in reservation sweep")

            self._stop_event.wait(self.interval_seconds)
