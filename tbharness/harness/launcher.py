#!/usr/bin/env python3
"""
launcher.py - Harness Launcher

Wires one harness run together:
1. Validate preconditions (both executables present) before anything starts
2. Build the shared HarnessContext and the three control clients
3. Launch the reference engine
4. Run the dispatcher loop over the scenario catalogue
5. Always tear down, whichever way the loop ended

Design philosophy:
- Fail-fast during setup (validation before launch)
- Graceful during execution (failures end the run, never raise)
- Always cleanup on shutdown (no stray processes)
"""

import logging
import shutil
import time
from dataclasses import dataclass, field
from typing import List, Optional, Sequence

from tbharness.config.settings import REFERENCE, HarnessSettings
from tbharness.harness.commands import REFERENCE_LOG_STEM, output_log_path, reference_command
from tbharness.harness.context import (
    FAILED,
    PASSED,
    RETURN_SUCCESS,
    HarnessContext,
    ScenarioOutcome,
)
from tbharness.harness.control import ControlMessageClient
from tbharness.harness.dispatcher import EventDispatcher
from tbharness.harness.notifications import NotificationBoard
from tbharness.harness.process import ProcessHandle
from tbharness.harness.scenarios import SCENARIOS, ScenarioDefinition
from tbharness.harness.sequencer import ProcessFactory, ScenarioSequencer
from tbharness.harness.teardown import TeardownCoordinator

logger = logging.getLogger(__name__)


class PreconditionError(Exception):
    """Raised when the harness cannot start (missing executable)."""
    pass


@dataclass
class HarnessResult:
    """Results from one harness run."""
    return_code: int
    duration_sec: float
    outcomes: List[ScenarioOutcome] = field(default_factory=list)

    @property
    def success(self) -> bool:
        return self.return_code == RETURN_SUCCESS

    @property
    def passed(self) -> List[ScenarioOutcome]:
        return [o for o in self.outcomes if o.status == PASSED]

    @property
    def failed(self) -> List[ScenarioOutcome]:
        return [o for o in self.outcomes if o.status == FAILED]


class HarnessLauncher:
    """
    Manages one complete harness run.

    Responsibilities:
    1. Validate preconditions before launch
    2. Start the reference engine
    3. Drive the scenario catalogue through the dispatcher
    4. Tear down all processes on every exit path
    """

    def __init__(self, settings: HarnessSettings,
                 scenarios: Sequence[ScenarioDefinition] = SCENARIOS,
                 process_factory: ProcessFactory = ProcessHandle):
        """
        Initialize launcher.

        Args:
            settings: Harness settings
            scenarios: Scenario catalogue (defaults to the fixed one)
            process_factory: Builds process handles (tests swap in fakes)
        """
        self.settings = settings
        self.scenarios = tuple(scenarios)
        self.process_factory = process_factory
        self.context: Optional[HarnessContext] = None
        self.teardown: Optional[TeardownCoordinator] = None

    def validate(self) -> List[str]:
        """
        Check both executables can be found.

        Returns:
            List of validation errors (empty if valid)
        """
        errors = []
        binaries = self.settings.binaries
        for name, path in (("reference", binaries.reference), ("test binary", binaries.test_binary)):
            if shutil.which(path) is None:
                errors.append(f"[{path}] {name} executable could not be found")
        return errors

    def build_context(self) -> HarnessContext:
        """Create the shared state and one control client per endpoint."""
        endpoints = self.settings.endpoints
        settle_s = self.settings.timing.settle_s
        clients = {
            name: ControlMessageClient(name, endpoints.host, port, settle_s=settle_s)
            for name, port in endpoints.ports().items()
        }
        return HarnessContext(
            settings=self.settings,
            board=NotificationBoard(),
            clients=clients,
        )

    def _launch_reference(self, context: HarnessContext):
        handle = self.process_factory(
            role=REFERENCE,
            label="reference",
            command=reference_command(self.settings),
            board=context.board,
            output_path=output_log_path(self.settings, REFERENCE_LOG_STEM),
            driven=False,
            reap_timeout_s=self.settings.timing.reap_timeout_s,
        )
        context.register(REFERENCE, handle)
        handle.start()

    def run(self) -> HarnessResult:
        """
        Validate, launch and run all scenarios.

        Returns:
            HarnessResult with the aggregate return code

        Raises:
            PreconditionError: If an executable is missing (nothing is started)
        """
        errors = self.validate()
        if errors:
            raise PreconditionError("\n".join(errors))

        self.settings.log_dir.mkdir(parents=True, exist_ok=True)

        context = self.build_context()
        sequencer = ScenarioSequencer(context, self.scenarios, self.process_factory)
        dispatcher = EventDispatcher(context, sequencer)
        self.context = context
        self.teardown = TeardownCoordinator(context, sequencer)

        start = time.monotonic()
        try:
            self._launch_reference(context)
            dispatcher.run()
        finally:
            self.teardown.run()

        elapsed = time.monotonic() - start
        logger.info("Harness finished with return code %d after %.1fs",
                    context.return_code, elapsed)

        return HarnessResult(
            return_code=context.return_code,
            duration_sec=elapsed,
            outcomes=list(context.outcomes),
        )


def run_harness(settings: HarnessSettings) -> HarnessResult:
    """
    Convenience function to run the full catalogue.

    Raises:
        PreconditionError: If an executable is missing
    """
    return HarnessLauncher(settings).run()
