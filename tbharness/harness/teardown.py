"""
teardown.py - Harness teardown

Runs once per harness run, after the dispatcher loop has exited for any
reason. It raises the harness-wide cancel signal first, so no scenario
thread sends anything after it. QUIT then goes to every known endpoint
whether or not something is still listening there, and the processes get a
bounded grace period to exit on their own before the harness cancels
whatever is left.
"""

import logging
import time
from typing import List, Optional

from tbharness.config.settings import PRIMARY, REFERENCE, SECONDARY
from tbharness.harness.context import HarnessContext
from tbharness.harness.control import quit_message
from tbharness.harness.sequencer import ScenarioSequencer

logger = logging.getLogger(__name__)

ENDPOINT_ORDER = (REFERENCE, PRIMARY, SECONDARY)


class TeardownCoordinator:
    """Broadcast QUIT, wait for voluntary exits, cancel the rest."""

    def __init__(self, context: HarnessContext,
                 sequencer: Optional[ScenarioSequencer] = None):
        self.context = context
        self.sequencer = sequencer
        self.quit_sent: List[str] = []
        self.completed = False

    def run(self) -> bool:
        """
        Tear everything down.

        Returns:
            False if teardown already ran (no-op)
        """
        if self.completed:
            logger.debug("Teardown already done")
            return False
        self.completed = True

        ctx = self.context
        timing = ctx.settings.timing
        logger.info("Initiating teardown...")

        # Scenario threads stop before the next control message
        ctx.cancel.set()
        if self.sequencer is not None:
            self.sequencer.stop(timeout=timing.settle_s + 1.0)

        for name in ENDPOINT_ORDER:
            client = ctx.clients.get(name)
            if client is None:
                continue
            client.send(quit_message())
            self.quit_sent.append(name)

        # Give the applications time to shut down gracefully
        self._grace(timing.teardown_grace_s)

        for handle in ctx.processes:
            handle.cancel()

        leftovers = ctx.live_processes()
        if leftovers:
            logger.warning("%d process(es) still alive after teardown: %s",
                           len(leftovers), ", ".join(h.name for h in leftovers))
        else:
            logger.info("Clean shutdown - no processes left")

        return True

    def _grace(self, grace_s: float):
        """Wait up to `grace_s`, returning early once every process has exited."""
        deadline = time.monotonic() + grace_s
        while self.context.live_processes():
            remaining = deadline - time.monotonic()
            if remaining <= 0:
                return
            time.sleep(min(0.1, remaining))
