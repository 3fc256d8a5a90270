"""
process.py - Managed process lifecycle

A ProcessHandle launches one external binary, captures its combined
stdout/stderr from a background watcher thread, and classifies the exit:

- exit status 0: clean. A *driven* process posts SCENARIO_ADVANCE, a
  companion process only logs.
- non-zero exit or spawn failure: posts PROCESS_FAILED exactly once and logs
  the captured output.
- terminated by the harness (cancel()): cancelled, posts nothing.

The captured output is written to `<log stem>.output.log` once the process
is gone, whatever the outcome.
"""

import logging
import subprocess
import threading
from enum import Enum
from pathlib import Path
from typing import List, Optional

from tbharness.harness.notifications import Notification, NotificationBoard

logger = logging.getLogger(__name__)


class ProcessState(Enum):
    """Completion state of a managed process."""
    PENDING = "pending"
    RUNNING = "running"
    EXITED_CLEAN = "exited-clean"
    EXITED_ERROR = "exited-error"
    CANCELLED = "cancelled"


class ProcessHandle:
    """
    One externally launched process.

    Usage:
        handle = ProcessHandle("primary", "non-timebase", command, board,
                               output_path=Path("test-non-timebase.output.log"),
                               driven=True)
        handle.start()
        ...
        handle.cancel()   # at teardown; never counts as a failure

    Only the watcher thread writes `state` and `returncode` after start().
    """

    def __init__(self, role: str, label: str, command: List[str],
                 board: NotificationBoard, output_path: Optional[Path] = None,
                 driven: bool = False, reap_timeout_s: float = 5.0):
        """
        Initialize handle (does not launch).

        Args:
            role: Role tag used in log lines (reference, primary, secondary)
            label: Scenario label the process belongs to
            command: Executable path followed by its arguments
            board: Board receiving the exit notification
            output_path: File receiving the captured stdout/stderr
            driven: Post SCENARIO_ADVANCE on clean exit
            reap_timeout_s: Grace between SIGTERM and SIGKILL in cancel()
        """
        self.role = role
        self.label = label
        self.command = list(command)
        self.board = board
        self.output_path = output_path
        self.driven = driven
        self.reap_timeout_s = reap_timeout_s

        self.state = ProcessState.PENDING
        self.returncode: Optional[int] = None
        self.output = ""
        self.process: Optional[subprocess.Popen] = None
        self._watcher: Optional[threading.Thread] = None
        self._cancelled = threading.Event()
        self._reported = False
        self._lock = threading.Lock()

    @property
    def name(self) -> str:
        return f"{self.role}/{self.label}"

    @property
    def pid(self) -> Optional[int]:
        return self.process.pid if self.process else None

    def start(self) -> 'ProcessHandle':
        """
        Launch the process and start the watcher thread.

        A spawn failure is reported as PROCESS_FAILED, never raised.
        """
        if self.state != ProcessState.PENDING:
            raise RuntimeError(f"[{self.name}] already started")

        logger.info("[%s] Launching: %s", self.name, " ".join(self.command))

        try:
            self.process = subprocess.Popen(
                self.command,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,  # Combined output, like a terminal would show it
                stdin=subprocess.DEVNULL,
                text=True,
                errors='replace',
            )
        except OSError as e:
            logger.error("[%s] Failed to launch %s: %s", self.name, self.command[0], e)
            self.output = str(e)
            self._finish(ProcessState.EXITED_ERROR)
            return self

        self.state = ProcessState.RUNNING
        logger.debug("[%s] Started (PID %d)", self.name, self.process.pid)

        self._watcher = threading.Thread(
            target=self._watch,
            name=f"watch-{self.role}-{self.label}",
            daemon=True
        )
        self._watcher.start()
        return self

    def _watch(self):
        """Wait for the process and classify its exit."""
        output, _ = self.process.communicate()
        self.output = output or ""
        self.returncode = self.process.returncode

        if self._cancelled.is_set():
            logger.info("[%s] Terminated by harness (exit code %s)", self.name, self.returncode)
            self._finish(ProcessState.CANCELLED)
        elif self.returncode == 0:
            logger.info("[%s] Exited cleanly", self.name)
            self._finish(ProcessState.EXITED_CLEAN)
        else:
            logger.error("[%s] ERROR: [%s] exited with code %s",
                         self.name, " ".join(self.command), self.returncode)
            logger.error("[%s] stdout/stderr:\n%s", self.name, self.output)
            self._finish(ProcessState.EXITED_ERROR)

    def _finish(self, state: ProcessState):
        """Record the final state, persist output and post at most one notification."""
        with self._lock:
            if self._reported:
                return
            self._reported = True
            self.state = state

        self._write_output()

        if state == ProcessState.EXITED_ERROR:
            self.board.post(Notification.PROCESS_FAILED, self.name)
        elif state == ProcessState.EXITED_CLEAN and self.driven:
            self.board.post(Notification.SCENARIO_ADVANCE, self.name)

    def _write_output(self):
        if self.output_path is None:
            return
        try:
            self.output_path.parent.mkdir(parents=True, exist_ok=True)
            self.output_path.write_text(self.output)
        except OSError as e:
            logger.warning("[%s] Could not write %s: %s", self.name, self.output_path, e)

    def is_alive(self) -> bool:
        return self.process is not None and self.process.poll() is None

    def cancel(self):
        """
        Terminate the process on behalf of the harness.

        Idempotent. SIGTERM first, SIGKILL after `reap_timeout_s`.
        """
        self._cancelled.set()

        if self.is_alive():
            logger.info("[%s] Terminating PID %d", self.name, self.process.pid)
            self.process.terminate()
            try:
                self.process.wait(timeout=self.reap_timeout_s)
            except subprocess.TimeoutExpired:
                logger.warning("[%s] PID %d didn't terminate, killing...",
                               self.name, self.process.pid)
                self.process.kill()
                self.process.wait()

        self.join(self.reap_timeout_s)

    def join(self, timeout: Optional[float] = None) -> bool:
        """
        Wait for the watcher thread to finish classification.

        Returns:
            True if the handle reached a final state
        """
        if self._watcher is not None:
            self._watcher.join(timeout)
        return self.state not in (ProcessState.PENDING, ProcessState.RUNNING)
