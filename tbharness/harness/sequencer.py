"""
sequencer.py - Scenario sequencing

Walks the fixed scenario catalogue one scenario at a time:

    IDLE -> LAUNCHING -> SCRIPTING -> AWAITING_RESULT -> LAUNCHING (next) ... -> DONE
                 \\____________\\________________\\________-> ABORTED

advance() is the scenario-advance handler and runs on the dispatcher
thread. It closes the scenario that just succeeded, then either posts
HARNESS_FINISHED (catalogue exhausted) or launches the next scenario's
binaries. The startup budget and the control script run on a short-lived
scenario thread, so the dispatcher keeps watching for failures meanwhile.

The startup budget is a plain bounded delay. The control protocol has no
readiness acknowledgement, so a binary that takes longer than the budget
to come up will miss the first messages and fail its scenario. Keep the
budget generous.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, List, Optional, Sequence

from tbharness.harness.commands import driver_command, driver_log_stem, output_log_path
from tbharness.harness.context import FAILED, PASSED, RUNNING, HarnessContext, ScenarioOutcome
from tbharness.harness.notifications import Notification
from tbharness.harness.process import ProcessHandle
from tbharness.harness.scenarios import SCENARIOS, ScenarioDefinition, ScriptStep

logger = logging.getLogger(__name__)


class SequencerPhase(Enum):
    IDLE = "idle"
    LAUNCHING = "launching"
    SCRIPTING = "scripting"
    AWAITING_RESULT = "awaiting-result"
    DONE = "done"
    ABORTED = "aborted"


ProcessFactory = Callable[..., ProcessHandle]


class ScenarioSequencer:
    """
    Drives the scenario catalogue.

    Usage:
        sequencer = ScenarioSequencer(context)
        sequencer.advance()   # on every SCENARIO_ADVANCE
        sequencer.abort()     # on PROCESS_FAILED
        sequencer.stop()      # at teardown
    """

    def __init__(self, context: HarnessContext,
                 scenarios: Sequence[ScenarioDefinition] = SCENARIOS,
                 process_factory: ProcessFactory = ProcessHandle):
        """
        Initialize sequencer.

        Args:
            context: Shared harness state
            scenarios: Catalogue to walk (defaults to the fixed one)
            process_factory: Callable building ProcessHandle-compatible objects
        """
        self.context = context
        self.scenarios = tuple(scenarios)
        self.process_factory = process_factory
        self.started: List[int] = []

        self._phase = SequencerPhase.IDLE
        self._phase_lock = threading.Lock()
        self._script_thread: Optional[threading.Thread] = None

        if not self.context.outcomes:
            self.context.outcomes = [
                ScenarioOutcome(index=s.index, label=s.label) for s in self.scenarios
            ]

    @property
    def phase(self) -> SequencerPhase:
        with self._phase_lock:
            return self._phase

    def _set_phase(self, phase: SequencerPhase):
        with self._phase_lock:
            previous = self._phase
            # Terminal phases stick even if the scenario thread is still unwinding
            if previous in (SequencerPhase.DONE, SequencerPhase.ABORTED):
                return
            self._phase = phase
        logger.debug("Sequencer %s -> %s", previous.value, phase.value)

    @property
    def active(self) -> Optional[ScenarioDefinition]:
        if not self.context.active:
            return None
        return self.scenarios[self.context.scenario_index]

    @property
    def finished(self) -> bool:
        return self.phase in (SequencerPhase.DONE, SequencerPhase.ABORTED)

    def advance(self):
        """Close the running scenario (if any) as passed and start the next one."""
        if self.finished:
            logger.warning("Ignoring scenario advance: sequencer is %s", self.phase.value)
            return

        ctx = self.context

        if ctx.active:
            self._join_script()
            outcome = ctx.outcomes[ctx.scenario_index]
            self._close(outcome, PASSED)
            logger.info("[%s] SUCCESS! (%.1fs)", outcome.label, outcome.duration_sec)
            ctx.active = False
            ctx.scenario_index += 1

        if ctx.scenario_index >= len(self.scenarios):
            logger.info("No scenario left. Exiting...")
            self._set_phase(SequencerPhase.DONE)
            ctx.board.post(Notification.HARNESS_FINISHED, "sequencer")
            return

        self._start(self.scenarios[ctx.scenario_index])

    def _start(self, scenario: ScenarioDefinition):
        ctx = self.context
        self._set_phase(SequencerPhase.LAUNCHING)
        ctx.active = True
        self.started.append(scenario.index)

        outcome = ctx.outcomes[scenario.index]
        outcome.status = RUNNING
        outcome.started_at = time.monotonic()

        logger.info("[%s] Starting scenario %d/%d",
                    scenario.label, scenario.index + 1, len(self.scenarios))

        for step in scenario.prelude:
            self._send(step)

        for spec in scenario.processes:
            self._supersede(spec.endpoint)
            port = ctx.settings.endpoints.ports()[spec.endpoint]
            handle = self.process_factory(
                role=spec.endpoint,
                label=spec.label,
                command=driver_command(ctx.settings, spec.label, port),
                board=ctx.board,
                output_path=output_log_path(ctx.settings, driver_log_stem(spec.label)),
                driven=spec.driven,
                reap_timeout_s=ctx.settings.timing.reap_timeout_s,
            )
            ctx.register(spec.endpoint, handle)
            handle.start()

        self._script_thread = threading.Thread(
            target=self._run_script,
            args=(scenario,),
            name=f"script-{scenario.label}",
            daemon=True
        )
        self._script_thread.start()

    def _supersede(self, endpoint: str):
        """Terminate a previous process still holding `endpoint`."""
        previous = self.context.handles.get(endpoint)
        if previous is not None and previous.is_alive():
            logger.warning("[%s] Still running, terminating before relaunch", previous.name)
            previous.cancel()

    def _run_script(self, scenario: ScenarioDefinition):
        """Scenario thread: startup budget, then the control script."""
        cancel = self.context.cancel
        startup_s = self.context.settings.timing.startup_s
        logger.debug("[%s] Waiting %.1fs for binaries to start", scenario.label, startup_s)
        if cancel.wait(startup_s) or self.finished:
            logger.info("[%s] Stopped before scripting", scenario.label)
            return

        self._set_phase(SequencerPhase.SCRIPTING)
        logger.info("[%s] Running test suite. %s", scenario.label, scenario.description)

        for step in scenario.script:
            if cancel.is_set() or self.finished:
                logger.info("[%s] Stopped while scripting", scenario.label)
                return
            self._send(step)

        self._set_phase(SequencerPhase.AWAITING_RESULT)
        logger.debug("[%s] Script sent, awaiting %s", scenario.label, scenario.driven.label)

    def _send(self, step: ScriptStep):
        self.context.clients[step.endpoint].send(step.message)

    def _join_script(self, timeout: Optional[float] = None):
        if self._script_thread is not None:
            self._script_thread.join(timeout)

    def _close(self, outcome: ScenarioOutcome, status: str):
        outcome.status = status
        if outcome.started_at is not None:
            outcome.duration_sec = time.monotonic() - outcome.started_at

    def abort(self):
        """
        Mark the running scenario failed and never start another one.

        A scenario thread still in its script stops before the next message.
        One still inside the startup budget sends nothing and ends when the
        harness-wide cancel signal is raised.
        """
        ctx = self.context
        if ctx.active:
            outcome = ctx.outcomes[ctx.scenario_index]
            self._close(outcome, FAILED)
            logger.error("[%s] FAILED", outcome.label)
            ctx.active = False
        self._set_phase(SequencerPhase.ABORTED)

    def stop(self, timeout: Optional[float] = None):
        """Raise the harness-wide cancel signal and wait for the scenario thread."""
        self.context.cancel.set()
        self._join_script(timeout)
