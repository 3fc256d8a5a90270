"""
settings.py - YAML Harness Settings Parser

Parses harness settings (binary locations, control endpoints, timing budgets)
from an optional YAML file. Every section is optional and falls back to the
constants the Timebase integration test has always used.

Design philosophy:
- Keep it simple: minimal validation, no schema framework
- Fail fast: raise clear exceptions on errors
- No magic: explicit field names, no dynamic configuration

Example YAML:
    binaries:
      reference: ../../build/src/cli/h2cli
      test_binary: ../../build/tests/jackTimebase/h2JackTimebase/h2JackTimebase

    fixture:
      song: jackTimebaseTest.h2song

    endpoints:
      host: localhost
      reference_port: 9099
      primary_port: 8099
      secondary_port: 8100

    timing:
      startup_s: 5.0
      settle_s: 0.5
      teardown_grace_s: 3.0
      poll_interval_s: 0.1
      scenario_timeout_s: 600

    logging:
      log_dir: ./logs
      verbosity: Debug
"""

import os
import yaml
from dataclasses import dataclass, field, replace
from typing import Any, Callable, Dict, Optional
from pathlib import Path


VERBOSITY_LEVELS = ("None", "Error", "Warning", "Info", "Debug")

# Names of the three control endpoints addressed by the harness.
REFERENCE = "reference"
PRIMARY = "primary"
SECONDARY = "secondary"


@dataclass
class BinaryConfig:
    """Locations of the two executables under test."""
    reference: str = os.path.join("..", "..", "build", "src", "cli", "h2cli")
    test_binary: str = os.path.join(
        "..", "..", "build", "tests", "jackTimebase", "h2JackTimebase", "h2JackTimebase")


@dataclass
class EndpointConfig:
    """
    Control-message endpoints.

    Attributes:
        host: Host every driven process listens on
        reference_port: Port of the reference engine
        primary_port: Port of the primary test binary
        secondary_port: Port of the secondary test binary (dual-process scenario only)
    """
    host: str = "localhost"
    reference_port: int = 9099
    primary_port: int = 8099
    secondary_port: int = 8100

    def __post_init__(self):
        """Validate endpoint configuration."""
        ports = self.ports()
        for name, port in ports.items():
            if not (1 <= port <= 65535):
                raise ValueError(f"endpoints.{name}_port must be in [1, 65535], got {port}")

        if len(set(ports.values())) != len(ports):
            raise ValueError(f"endpoint ports must be distinct, got {ports}")

    def ports(self) -> Dict[str, int]:
        """Map endpoint name -> port."""
        return {
            REFERENCE: self.reference_port,
            PRIMARY: self.primary_port,
            SECONDARY: self.secondary_port,
        }


@dataclass
class TimingConfig:
    """
    Timing budgets (seconds).

    Attributes:
        startup_s: Upper bound for a freshly launched binary to accept control messages
        settle_s: Wait after every control message before the next one is sent
        teardown_grace_s: Wait after the QUIT broadcast before cancelling processes
        poll_interval_s: Dispatcher wait timeout between notification checks
        reap_timeout_s: Wait after SIGTERM before a cancelled process is killed
        scenario_timeout_s: Optional watchdog per scenario (None = wait forever)
    """
    startup_s: float = 5.0
    settle_s: float = 0.5
    teardown_grace_s: float = 3.0
    poll_interval_s: float = 0.1
    reap_timeout_s: float = 5.0
    scenario_timeout_s: Optional[float] = None

    def __post_init__(self):
        """Validate timing configuration."""
        for name in ("startup_s", "settle_s", "teardown_grace_s", "reap_timeout_s"):
            value = getattr(self, name)
            if value < 0:
                raise ValueError(f"timing.{name} must be non-negative, got {value}")

        if self.poll_interval_s <= 0:
            raise ValueError(f"timing.poll_interval_s must be positive, got {self.poll_interval_s}")

        if self.scenario_timeout_s is not None and self.scenario_timeout_s <= 0:
            raise ValueError(
                f"timing.scenario_timeout_s must be positive when set, got {self.scenario_timeout_s}")


@dataclass
class HarnessSettings:
    """
    Complete harness configuration.

    Attributes:
        binaries: Executable locations
        song: Test-fixture project file loaded by every binary
        endpoints: Control endpoints
        timing: Timing budgets
        log_dir: Directory receiving all per-process log files
        verbosity: Log level passed to the binaries (-V)
    """
    binaries: BinaryConfig = field(default_factory=BinaryConfig)
    song: str = "jackTimebaseTest.h2song"
    endpoints: EndpointConfig = field(default_factory=EndpointConfig)
    timing: TimingConfig = field(default_factory=TimingConfig)
    log_dir: Path = Path(".")
    verbosity: str = "Debug"

    def __post_init__(self):
        """Validate settings after initialization."""
        if self.verbosity not in VERBOSITY_LEVELS:
            raise ValueError(
                f"logging.verbosity must be one of {', '.join(VERBOSITY_LEVELS)}, got '{self.verbosity}'")

        if not self.song:
            raise ValueError("fixture.song must not be empty")

        self.log_dir = Path(self.log_dir)

    def with_overrides(self, reference: Optional[str] = None,
                       test_binary: Optional[str] = None,
                       log_dir: Optional[str] = None) -> 'HarnessSettings':
        """Return a copy with command-line overrides applied."""
        binaries = replace(
            self.binaries,
            reference=reference or self.binaries.reference,
            test_binary=test_binary or self.binaries.test_binary,
        )
        return replace(
            self,
            binaries=binaries,
            log_dir=Path(log_dir) if log_dir else self.log_dir,
        )


def _section(data: Dict[str, Any], name: str) -> Dict[str, Any]:
    """Fetch an optional dict section."""
    section = data.get(name, {})
    if section is None:
        return {}
    if not isinstance(section, dict):
        raise ValueError(f"'{name}' section must be a dict")
    return section


def _check_keys(section: Dict[str, Any], name: str, allowed) -> None:
    unknown = sorted(set(section) - set(allowed))
    if unknown:
        raise ValueError(f"Unknown key(s) in '{name}': {', '.join(unknown)}")


_KINDS = {int: "an integer", float: "a number", str: "a string", Path: "a path"}


def _value(section: Dict[str, Any], name: str, key: str, cast: Callable, default: Any,
           optional: bool = False) -> Any:
    """
    Fetch `key` from a section and convert it with `cast`.

    A missing key gives `default`. An explicit null is only accepted for
    `optional` keys.

    Raises:
        ValueError: If the value is null (and not optional) or cannot be converted
    """
    if key not in section:
        return default
    raw = section[key]
    if raw is None and optional:
        return None
    if raw is None or isinstance(raw, (dict, list)):
        raise ValueError(f"{name}.{key} must be {_KINDS[cast]}, got {raw!r}")
    try:
        return cast(raw)
    except (TypeError, ValueError):
        raise ValueError(f"{name}.{key} must be {_KINDS[cast]}, got {raw!r}")


def settings_from_dict(data: Dict[str, Any]) -> HarnessSettings:
    """
    Build settings from an already parsed mapping.

    Raises:
        ValueError: If a section has the wrong shape or a value is invalid
    """
    if not isinstance(data, dict):
        raise ValueError(f"Settings file must contain a YAML dict, got {type(data)}")

    defaults = HarnessSettings()

    binaries = _section(data, 'binaries')
    _check_keys(binaries, 'binaries', ('reference', 'test_binary'))

    fixture = _section(data, 'fixture')
    _check_keys(fixture, 'fixture', ('song',))

    endpoints = _section(data, 'endpoints')
    _check_keys(endpoints, 'endpoints', ('host', 'reference_port', 'primary_port', 'secondary_port'))

    timing = _section(data, 'timing')
    _check_keys(timing, 'timing', (
        'startup_s', 'settle_s', 'teardown_grace_s', 'poll_interval_s',
        'reap_timeout_s', 'scenario_timeout_s'))

    log = _section(data, 'logging')
    _check_keys(log, 'logging', ('log_dir', 'verbosity'))

    b, e, t, d = defaults.binaries, defaults.endpoints, defaults.timing, defaults

    return HarnessSettings(
        binaries=BinaryConfig(
            reference=_value(binaries, 'binaries', 'reference', str, b.reference),
            test_binary=_value(binaries, 'binaries', 'test_binary', str, b.test_binary),
        ),
        song=_value(fixture, 'fixture', 'song', str, d.song),
        endpoints=EndpointConfig(
            host=_value(endpoints, 'endpoints', 'host', str, e.host),
            reference_port=_value(endpoints, 'endpoints', 'reference_port', int, e.reference_port),
            primary_port=_value(endpoints, 'endpoints', 'primary_port', int, e.primary_port),
            secondary_port=_value(endpoints, 'endpoints', 'secondary_port', int, e.secondary_port),
        ),
        timing=TimingConfig(
            startup_s=_value(timing, 'timing', 'startup_s', float, t.startup_s),
            settle_s=_value(timing, 'timing', 'settle_s', float, t.settle_s),
            teardown_grace_s=_value(timing, 'timing', 'teardown_grace_s', float, t.teardown_grace_s),
            poll_interval_s=_value(timing, 'timing', 'poll_interval_s', float, t.poll_interval_s),
            reap_timeout_s=_value(timing, 'timing', 'reap_timeout_s', float, t.reap_timeout_s),
            scenario_timeout_s=_value(timing, 'timing', 'scenario_timeout_s', float,
                                      t.scenario_timeout_s, optional=True),
        ),
        log_dir=_value(log, 'logging', 'log_dir', Path, d.log_dir),
        verbosity=_value(log, 'logging', 'verbosity', str, d.verbosity),
    )


def load_settings(yaml_path: str) -> HarnessSettings:
    """
    Load harness settings from YAML file.

    Args:
        yaml_path: Path to YAML settings file

    Returns:
        HarnessSettings with parsed configuration

    Raises:
        FileNotFoundError: If YAML file doesn't exist
        ValueError: If fields are invalid
        yaml.YAMLError: If YAML syntax is invalid
    """
    path = Path(yaml_path)
    if not path.exists():
        raise FileNotFoundError(f"Settings file not found: {yaml_path}")

    with open(path, 'r') as f:
        try:
            data = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise yaml.YAMLError(f"Invalid YAML syntax in {yaml_path}: {e}")

    # An empty file means "all defaults"
    if data is None:
        data = {}

    return settings_from_dict(data)
