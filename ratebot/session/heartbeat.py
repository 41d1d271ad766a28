"""Periodic presence re-announcement."""

from __future__ import annotations

import logging
import threading

from ratebot.session.manager import SessionManager

logger = logging.getLogger(__name__)


class HeartbeatLoop:
    """Re-send presence every ``interval_seconds`` while the session is connected.

    A dead connection is only logged here; recovering it is the session
    manager's job.
    """

    def __init__(self, session: SessionManager, interval_seconds: float = 45) -> None:
        self._session = session
        self._interval_seconds = interval_seconds
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None

    def start(self) -> None:
        if self._thread is not None:
            return
        self._stop.clear()
        self._thread = threading.Thread(target=self._run, name="heartbeat", daemon=True)
        self._thread.start()

    def stop(self) -> None:
        self._stop.set()
        if self._thread is not None:
            self._thread.join(timeout=2)
        self._thread = None

    def tick(self) -> bool:
        """Run one heartbeat; True when presence was sent."""
        if not self._session.is_connected():
            logger.warning("lost connection")
            return False
        try:
            self._session.send_presence()
        except Exception as exc:
            logger.warning("presence failed: %s", exc)
            return False
        return True

    def _run(self) -> None:
        while not self._stop.wait(self._interval_seconds):
            self.tick()
