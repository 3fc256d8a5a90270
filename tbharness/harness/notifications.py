"""
notifications.py - One-shot notification cells

Process watchers and the sequencer never touch harness state directly. They
post payload-free notifications here, and the dispatcher loop is the only
consumer.

Each notification kind owns a single slot. A producer must not post a kind
again before the dispatcher has taken the pending one; a second post is
logged and dropped. When several kinds are pending, wait() hands out the
highest-priority one first and leaves the rest pending.
"""

import logging
import threading
import time
from enum import Enum
from typing import Dict, Optional

logger = logging.getLogger(__name__)


class Notification(Enum):
    """Notification kinds, listed in dispatch priority order."""
    PROCESS_FAILED = "process-failed"
    SCENARIO_ADVANCE = "scenario-advance"
    HARNESS_FINISHED = "harness-finished"


PRIORITY = (
    Notification.PROCESS_FAILED,
    Notification.SCENARIO_ADVANCE,
    Notification.HARNESS_FINISHED,
)


class NotificationBoard:
    """Single-slot cells for every Notification kind."""

    def __init__(self):
        self._cond = threading.Condition()
        self._pending: Dict[Notification, bool] = {kind: False for kind in Notification}

    def post(self, kind: Notification, source: str = "") -> bool:
        """
        Fill the slot for `kind`.

        Returns:
            False if the slot was already pending (notification dropped)
        """
        with self._cond:
            if self._pending[kind]:
                logger.warning("Dropping %s from %s: previous one not consumed yet",
                               kind.value, source or "unknown")
                return False
            self._pending[kind] = True
            self._cond.notify_all()

        logger.debug("Posted %s (%s)", kind.value, source or "unknown")
        return True

    def _take(self) -> Optional[Notification]:
        for kind in PRIORITY:
            if self._pending[kind]:
                self._pending[kind] = False
                return kind
        return None

    def wait(self, timeout: Optional[float] = None) -> Optional[Notification]:
        """
        Block until a notification is pending or `timeout` elapses.

        Args:
            timeout: Seconds to wait (None = forever)

        Returns:
            The highest-priority pending kind, or None on timeout
        """
        deadline = None if timeout is None else time.monotonic() + timeout

        with self._cond:
            while True:
                kind = self._take()
                if kind is not None:
                    return kind

                if deadline is None:
                    self._cond.wait()
                    continue

                remaining = deadline - time.monotonic()
                if remaining <= 0:
                    return None
                self._cond.wait(remaining)
