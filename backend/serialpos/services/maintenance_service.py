# Overview: Periodic maintenance; releases serialized-unit reservations that outlived their TTL.

from __future__ import annotations

import logging
import threading
from datetime import datetime

from ..extensions import db
from ..time_utils import utcnow
from . import serial_service
from .ledger_service import append_audit_event

_log = logging.getLogger(__name__)


def release_expired_reservations(now: datetime | None = None) -> int:
    """
    Return RESERVED units whose reserved_until has passed to AVAILABLE.

    Idempotent; a second run releases nothing. Safe to run from several
    workers at once because the release is a single conditional UPDATE.
    """
    now = now or utcnow()
    released = serial_service.release_expired(now)
    if released:
        append_audit_event(
            event_type="serials.reservations_expired",
            entity_type="serialized_unit",
            entity_id=None,
            occurred_at=now,
            payload={"released": released},
        )
    db.session.commit()
    if released:
        _log.info("released %d expired serial reservations", released)
    return released


class ReservationSweeper:
    """
    Background thread calling release_expired_reservations every ``interval`` seconds.

    Started by create_app when RESERVATION_SWEEP_ENABLED is set. Each run gets
    its own app context so it uses its own database session.
    """

    def __init__(self, app, interval: float):
        self.app = app
        self.interval = interval
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def run_once(self) -> int:
        with self.app.app_context():
            try:
                return release_expired_reservations()
            except Exception:
                db.session.rollback()
                _log.exception("reservation sweep failed")
                return 0

    def _loop(self) -> None:
        while not self._stop.wait(self.interval):
            self.run_once()

    def start(self) -> "ReservationSweeper":
        if self._thread and self._thread.is_alive():
            return self
        self._stop.clear()
        self._thread = threading.Thread(target=self._loop, name="reservation-sweeper", daemon=True)
        self._thread.start()
        _log.info("reservation sweeper started (every %ss)", self.interval)
        return self

    def stop(self, timeout: float | None = None) -> None:
        self._stop.set()
        if self._thread:
            self._thread.join(timeout)
            self._thread = None

    @property
    def running(self) -> bool:
        return bool(self._thread and self._thread.is_alive())
