"""
scenarios.py - Fixed Timebase scenario catalogue

The harness runs exactly these scenarios, in this order. Each one names the
test binaries it launches and the control messages it sends once they are
up. The last message of every script is TransportTests, which makes the
driven binary run its checks and exit.

Endpoint names are the ones used in the settings: reference (the full
application), primary (the test binary that is checked) and secondary
(a second test binary, only used by the relocation scenario).
"""

from dataclasses import dataclass
from typing import Tuple

from tbharness.config.settings import PRIMARY, REFERENCE, SECONDARY
from tbharness.harness.control import (
    ControlMessage,
    activation,
    quit_message,
    start_test_driver,
    transport_tests,
)


@dataclass(frozen=True)
class ProcessSpec:
    """
    A test binary a scenario launches.

    Attributes:
        endpoint: Endpoint (and role) the binary listens on
        label: Log label, also used for the binary's log file name
        master: Whether the scenario registers it as Timebase master
        driven: Its clean exit completes the scenario
    """
    endpoint: str
    label: str
    master: bool
    driven: bool = True


@dataclass(frozen=True)
class ScriptStep:
    """One control message addressed to one endpoint."""
    endpoint: str
    message: ControlMessage


@dataclass(frozen=True)
class ScenarioDefinition:
    """
    One fixed test case.

    Attributes:
        index: Position in the catalogue
        label: Short name (log files, summary)
        description: Human-readable description logged before the script runs
        processes: Binaries to launch, in launch order
        script: Messages sent after the startup budget, in order
        prelude: Messages sent before anything is launched
        uses_reference: Whether the reference engine takes part
    """
    index: int
    label: str
    description: str
    processes: Tuple[ProcessSpec, ...]
    script: Tuple[ScriptStep, ...]
    prelude: Tuple[ScriptStep, ...] = ()
    uses_reference: bool = True

    def __post_init__(self):
        if not self.processes:
            raise ValueError(f"Scenario {self.label}: no processes")
        if not self.script:
            raise ValueError(f"Scenario {self.label}: empty script")

        driven = [p for p in self.processes if p.driven]
        if len(driven) != 1:
            raise ValueError(f"Scenario {self.label}: exactly one driven process required")

        final = self.script[-1]
        if final.endpoint != driven[0].endpoint or final.message != transport_tests():
            raise ValueError(
                f"Scenario {self.label}: script must end with TransportTests to the driven process")

        endpoints = [p.endpoint for p in self.processes]
        if len(set(endpoints)) != len(endpoints):
            raise ValueError(f"Scenario {self.label}: two processes on one endpoint")

        if not self.uses_reference and any(s.endpoint == REFERENCE for s in self.script):
            raise ValueError(f"Scenario {self.label}: script addresses the reference engine")

    @property
    def driven(self) -> ProcessSpec:
        return next(p for p in self.processes if p.driven)

    @property
    def endpoints(self) -> Tuple[str, ...]:
        return tuple(p.endpoint for p in self.processes)


def _pairing(index: int, label: str, description: str,
             reference_master: bool, binary_master: bool) -> ScenarioDefinition:
    """Test binary next to the reference engine, one of them (or none) Timebase master."""
    return ScenarioDefinition(
        index=index,
        label=label,
        description=description,
        processes=(ProcessSpec(PRIMARY, label, master=binary_master),),
        script=(
            ScriptStep(REFERENCE, activation(reference_master)),
            ScriptStep(PRIMARY, activation(binary_master)),
            ScriptStep(PRIMARY, transport_tests()),
        ),
    )


SCENARIOS: Tuple[ScenarioDefinition, ...] = (
    _pairing(
        0, "non-timebase",
        "Test binary is run next to the reference engine and none of them "
        "has JACK Timebase support enabled.",
        reference_master=False, binary_master=False,
    ),
    _pairing(
        1, "timebase-master",
        "Test binary is run next to the reference engine and the former is "
        "registered as JACK Timebase master.",
        reference_master=False, binary_master=True,
    ),
    _pairing(
        2, "timebase-listener",
        "Test binary is run next to the reference engine and the latter is "
        "registered as JACK Timebase master.",
        reference_master=True, binary_master=False,
    ),
    # Two patched test binaries talk to each other directly, so the
    # reference engine has to be gone before they start.
    ScenarioDefinition(
        index=3,
        label="bbt-relocation",
        description="Test binaries run as both master and listener. Checks "
                    "whether relocations in the Timebase master are handled "
                    "properly in the listener.",
        prelude=(ScriptStep(REFERENCE, quit_message()),),
        processes=(
            ProcessSpec(SECONDARY, "bbt-relocation-listener", master=False, driven=False),
            ProcessSpec(PRIMARY, "bbt-relocation-master", master=True),
        ),
        script=(
            ScriptStep(SECONDARY, activation(False)),
            ScriptStep(SECONDARY, start_test_driver()),
            ScriptStep(PRIMARY, activation(True)),
            ScriptStep(PRIMARY, transport_tests()),
        ),
        uses_reference=False,
    ),
)


def describe(scenarios: Tuple[ScenarioDefinition, ...] = SCENARIOS) -> str:
    """Multi-line listing of the catalogue (used by --list)."""
    lines = []
    for scenario in scenarios:
        roles = ", ".join(
            f"{p.endpoint}={'master' if p.master else 'listener'}"
            f"{'' if p.driven else ' (companion)'}"
            for p in scenario.processes
        )
        lines.append(f"  [{scenario.index}] {scenario.label}: {roles}")
        lines.append(f"      {scenario.description}")
    return "\n".join(lines)
