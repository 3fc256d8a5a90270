"""
tbharness.harness - Timebase integration test orchestration

Process lifecycle, OSC control, scenario sequencing, dispatch and teardown.
"""

from .control import ControlMessage, ControlMessageClient
from .dispatcher import EventDispatcher
from .launcher import HarnessLauncher, HarnessResult, PreconditionError, run_harness
from .notifications import Notification, NotificationBoard
from .process import ProcessHandle, ProcessState
from .scenarios import SCENARIOS, ScenarioDefinition
from .sequencer import ScenarioSequencer, SequencerPhase
from .teardown import TeardownCoordinator

__all__ = [
    'ControlMessage',
    'ControlMessageClient',
    'EventDispatcher',
    'HarnessLauncher',
    'HarnessResult',
    'Notification',
    'NotificationBoard',
    'PreconditionError',
    'ProcessHandle',
    'ProcessState',
    'SCENARIOS',
    'ScenarioDefinition',
    'ScenarioSequencer',
    'SequencerPhase',
    'TeardownCoordinator',
    'run_harness',
]
