"""
context.py - Harness-wide state

Everything the dispatcher and the sequencer share lives in one
HarnessContext that is passed to both explicitly. Only the dispatcher
thread (the loop itself and the scenario-advance handler it calls) writes
to it. Process watchers talk to the dispatcher exclusively through the
NotificationBoard.
"""

import threading
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from tbharness.config.settings import HarnessSettings
from tbharness.harness.control import ControlMessageClient
from tbharness.harness.notifications import NotificationBoard
from tbharness.harness.process import ProcessHandle

RETURN_SUCCESS = 0
RETURN_FAILURE = 1
RETURN_PRECONDITION = 2

PASSED = "passed"
FAILED = "failed"
RUNNING = "running"
NOT_RUN = "not-run"


@dataclass
class ScenarioOutcome:
    """Result of one scenario, filled in as the run progresses."""
    index: int
    label: str
    status: str = NOT_RUN
    duration_sec: float = 0.0
    started_at: Optional[float] = None


@dataclass
class HarnessContext:
    """
    State of one harness run.

    Attributes:
        settings: Harness settings
        board: Notification cells read by the dispatcher
        clients: Endpoint name -> control client (reference, primary, secondary)
        scenario_index: Index of the active scenario, or of the next one to start
        active: True while scenario `scenario_index` is running
        return_code: Aggregate result (0 = every scenario passed so far)
        processes: Every process launched during the run, in launch order
        handles: Endpoint name -> most recent process on that endpoint
        outcomes: One entry per scenario in the catalogue
        cancel: Harness-wide cancel signal, raised at teardown; scenario threads
            stop on it
    """
    settings: HarnessSettings
    board: NotificationBoard
    clients: Dict[str, ControlMessageClient]
    scenario_index: int = 0
    active: bool = False
    return_code: int = RETURN_SUCCESS
    processes: List[ProcessHandle] = field(default_factory=list)
    handles: Dict[str, ProcessHandle] = field(default_factory=dict)
    outcomes: List[ScenarioOutcome] = field(default_factory=list)
    cancel: threading.Event = field(default_factory=threading.Event)

    def register(self, endpoint: str, handle: ProcessHandle):
        """Track a launched process as the current one on `endpoint`."""
        self.processes.append(handle)
        self.handles[endpoint] = handle

    def live_processes(self) -> List[ProcessHandle]:
        return [h for h in self.processes if h.is_alive()]
