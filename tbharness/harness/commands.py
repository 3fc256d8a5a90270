"""
commands.py - Command lines and log file names for the binaries under test
"""

from pathlib import Path
from typing import List

from tbharness.config.settings import HarnessSettings

REFERENCE_LOG_STEM = "hydrogen"
TEST_BINARY_LOG_PREFIX = "test"


def binary_log_path(settings: HarnessSettings, stem: str) -> Path:
    """Log file the binary itself writes (-L)."""
    return settings.log_dir / f"{stem}.log"


def output_log_path(settings: HarnessSettings, stem: str) -> Path:
    """File receiving the captured stdout/stderr of a process."""
    return settings.log_dir / f"{stem}.output.log"


def driver_log_stem(label: str) -> str:
    return f"{TEST_BINARY_LOG_PREFIX}-{label}"


def reference_command(settings: HarnessSettings) -> List[str]:
    """Reference engine: JACK driver, fixture song, OSC port, Timebase-capable."""
    return [
        settings.binaries.reference,
        "--driver", "jack",
        "-s", settings.song,
        "-O", str(settings.endpoints.reference_port),
        "-L", str(binary_log_path(settings, REFERENCE_LOG_STEM)),
        "-T",
        "-V", settings.verbosity,
    ]


def driver_command(settings: HarnessSettings, label: str, port: int) -> List[str]:
    """Dedicated test binary listening for OSC on `port`."""
    return [
        settings.binaries.test_binary,
        "-L", str(binary_log_path(settings, driver_log_stem(label))),
        "-s", settings.song,
        "-O", str(port),
        "-V", settings.verbosity,
    ]
