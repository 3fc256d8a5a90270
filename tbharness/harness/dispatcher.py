"""
dispatcher.py - Event dispatcher / failure monitor

The single control loop of the harness. It seeds the first scenario, then
blocks on the NotificationBoard (with the poll interval as timeout) and
reacts to whatever arrives:

- PROCESS_FAILED:   return code 1, abort the sequencer, leave the loop
- SCENARIO_ADVANCE: let the sequencer close/start scenarios, keep looping
- HARNESS_FINISHED: leave the loop, return code unchanged

When a failure and an advance are pending together the failure wins. The
loop is the only place the aggregate return code is decided.
"""

import logging
import time
from typing import Optional

from tbharness.harness.context import RETURN_FAILURE, HarnessContext
from tbharness.harness.notifications import Notification
from tbharness.harness.sequencer import ScenarioSequencer

logger = logging.getLogger(__name__)


class EventDispatcher:
    """Runs the notification loop for one harness run."""

    def __init__(self, context: HarnessContext, sequencer: ScenarioSequencer):
        self.context = context
        self.sequencer = sequencer
        self.wakeups = 0
        self._progress_at: Optional[float] = None

    def run(self) -> int:
        """
        Run until the catalogue is exhausted or something fails.

        Returns:
            Aggregate return code
        """
        ctx = self.context
        poll_interval_s = ctx.settings.timing.poll_interval_s

        # Trigger first scenario
        ctx.board.post(Notification.SCENARIO_ADVANCE, "dispatcher")

        while True:
            kind = ctx.board.wait(timeout=poll_interval_s)

            if kind is None:
                if self._watchdog_expired():
                    scenario = self.sequencer.active
                    logger.error("[%s] No result within %.1fs, giving up",
                                 scenario.label if scenario else "?",
                                 ctx.settings.timing.scenario_timeout_s)
                    self._fail()
                    return ctx.return_code
                continue

            self.wakeups += 1
            logger.debug("Dispatching %s", kind.value)

            if kind is Notification.PROCESS_FAILED:
                scenario = self.sequencer.active
                logger.error("Process failure during scenario %s",
                             scenario.label if scenario else "(none)")
                self._fail()
                return ctx.return_code

            if kind is Notification.HARNESS_FINISHED:
                logger.info("All scenarios done")
                return ctx.return_code

            # SCENARIO_ADVANCE
            self.sequencer.advance()
            self._progress_at = time.monotonic()

    def _fail(self):
        self.context.return_code = RETURN_FAILURE
        self.sequencer.abort()

    def _watchdog_expired(self) -> bool:
        timeout = self.context.settings.timing.scenario_timeout_s
        if timeout is None or self._progress_at is None or not self.context.active:
            return False
        return time.monotonic() - self._progress_at >= timeout
