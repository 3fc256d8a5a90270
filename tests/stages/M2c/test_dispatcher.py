#!/usr/bin/env python3
"""
test_dispatcher.py - M2c Tests for the Event Dispatcher

Runs the dispatcher loop against a real sequencer whose fake processes exit
on their own with scripted exit codes.
"""

import sys
from pathlib import Path

# Add project root and tests dir to path
_project_root = Path(__file__).parent.parent.parent.parent
for _path in (_project_root, _project_root / "tests"):
    if str(_path) not in sys.path:
        sys.path.insert(0, str(_path))

import pytest

from fakes import EventLog, FakeProcessFactory, fake_clients
from tbharness.config.settings import HarnessSettings, TimingConfig
from tbharness.harness.context import FAILED, NOT_RUN, PASSED, HarnessContext
from tbharness.harness.dispatcher import EventDispatcher
from tbharness.harness.notifications import Notification, NotificationBoard
from tbharness.harness.scenarios import SCENARIOS
from tbharness.harness.sequencer import ScenarioSequencer, SequencerPhase

ALL_PASS = {
    "non-timebase": 0,
    "timebase-master": 0,
    "timebase-listener": 0,
    "bbt-relocation-master": 0,
}


def make_context(tmp_path, log, scenario_timeout_s=None):
    settings = HarnessSettings(
        timing=TimingConfig(startup_s=0, settle_s=0, teardown_grace_s=0,
                            poll_interval_s=0.01, scenario_timeout_s=scenario_timeout_s),
        log_dir=tmp_path,
    )
    return HarnessContext(settings=settings, board=NotificationBoard(), clients=fake_clients(log))


def run_dispatcher(tmp_path, exit_codes, scenario_timeout_s=None):
    log = EventLog()
    context = make_context(tmp_path, log, scenario_timeout_s)
    factory = FakeProcessFactory(log, exit_codes)
    sequencer = ScenarioSequencer(context, process_factory=factory)
    dispatcher = EventDispatcher(context, sequencer)

    return_code = dispatcher.run()
    sequencer.stop(timeout=2.0)
    return return_code, context, sequencer, factory


class TestOutcomes:
    """Aggregate return code."""

    def test_all_scenarios_pass(self, tmp_path):
        rc, context, sequencer, _ = run_dispatcher(tmp_path, ALL_PASS)

        assert rc == 0
        assert context.return_code == 0
        assert sequencer.started == [0, 1, 2, 3]
        assert sequencer.phase == SequencerPhase.DONE
        assert [o.status for o in context.outcomes] == [PASSED] * len(SCENARIOS)

    def test_failure_stops_at_failing_scenario(self, tmp_path):
        exit_codes = dict(ALL_PASS, **{"timebase-master": 1})

        rc, context, sequencer, factory = run_dispatcher(tmp_path, exit_codes)

        assert rc == 1
        assert sequencer.started == [0, 1]
        assert sequencer.phase == SequencerPhase.ABORTED
        assert [o.status for o in context.outcomes] == [PASSED, FAILED, NOT_RUN, NOT_RUN]
        assert [p.label for p in factory.created] == ["non-timebase", "timebase-master"]

    def test_failure_in_first_scenario(self, tmp_path):
        rc, context, sequencer, _ = run_dispatcher(tmp_path, {"non-timebase": 7})

        assert rc == 1
        assert sequencer.started == [0]
        assert context.outcomes[0].status == FAILED

    def test_companion_failure_in_relocation_scenario(self, tmp_path):
        exit_codes = dict(ALL_PASS, **{"bbt-relocation-listener": 1})
        exit_codes.pop("bbt-relocation-master")

        rc, context, sequencer, _ = run_dispatcher(tmp_path, exit_codes)

        assert rc == 1
        assert sequencer.started == [0, 1, 2, 3]
        assert context.outcomes[3].status == FAILED


class TestPrecedence:
    """Failure wins over a simultaneous advance."""

    def test_pending_failure_beats_seed(self, tmp_path):
        log = EventLog()
        context = make_context(tmp_path, log)
        factory = FakeProcessFactory(log)
        sequencer = ScenarioSequencer(context, process_factory=factory)
        dispatcher = EventDispatcher(context, sequencer)

        # e.g. the reference engine died right away
        context.board.post(Notification.PROCESS_FAILED, "reference")

        assert dispatcher.run() == 1
        assert sequencer.started == []
        assert factory.created == []
        assert dispatcher.wakeups == 1

    def test_failure_and_advance_pending_together(self, tmp_path):
        log = EventLog()
        context = make_context(tmp_path, log)
        sequencer = ScenarioSequencer(context, process_factory=FakeProcessFactory(log))
        dispatcher = EventDispatcher(context, sequencer)

        context.board.post(Notification.SCENARIO_ADVANCE, "test")
        context.board.post(Notification.PROCESS_FAILED, "test")

        assert dispatcher.run() == 1
        assert sequencer.started == []


class TestWatchdog:
    """Optional per-scenario timeout."""

    def test_hanging_scenario_times_out(self, tmp_path):
        # timebase-master never exits
        exit_codes = {"non-timebase": 0}

        rc, context, sequencer, _ = run_dispatcher(tmp_path, exit_codes, scenario_timeout_s=0.3)

        assert rc == 1
        assert sequencer.started == [0, 1]
        assert context.outcomes[1].status == FAILED


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
