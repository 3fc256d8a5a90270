#!/usr/bin/env python3
"""
test_settings.py - M1a Unit Tests for Harness Settings

Tests YAML settings parsing, defaults and validation.
"""

import sys
from pathlib import Path

# Add project root to path
_project_root = Path(__file__).parent.parent.parent.parent
if str(_project_root) not in sys.path:
    sys.path.insert(0, str(_project_root))

import pytest
import yaml

from tbharness.config.settings import (
    EndpointConfig,
    HarnessSettings,
    TimingConfig,
    load_settings,
    settings_from_dict,
)


class TestDefaults:
    """Built-in settings reproduce the historical constants."""

    def test_default_ports(self):
        settings = HarnessSettings()
        assert settings.endpoints.host == "localhost"
        assert settings.endpoints.reference_port == 9099
        assert settings.endpoints.primary_port == 8099
        assert settings.endpoints.secondary_port == 8100

    def test_default_timing(self):
        timing = HarnessSettings().timing
        assert timing.startup_s == 5.0
        assert timing.settle_s == 0.5
        assert timing.teardown_grace_s == 3.0
        assert timing.poll_interval_s == 0.1
        assert timing.scenario_timeout_s is None

    def test_default_fixture_and_verbosity(self):
        settings = HarnessSettings()
        assert settings.song == "jackTimebaseTest.h2song"
        assert settings.verbosity == "Debug"
        assert settings.log_dir == Path(".")

    def test_ports_mapping(self):
        ports = EndpointConfig().ports()
        assert ports == {"reference": 9099, "primary": 8099, "secondary": 8100}


class TestLoadSettings:
    """Test loading settings from YAML files."""

    def test_load_full_file(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("""
binaries:
  reference: /opt/h2/h2cli
  test_binary: /opt/h2/h2JackTimebase

fixture:
  song: other.h2song

endpoints:
  host: 127.0.0.1
  reference_port: 19099
  primary_port: 18099
  secondary_port: 18100

timing:
  startup_s: 2
  settle_s: 0.25
  teardown_grace_s: 1
  poll_interval_s: 0.05
  scenario_timeout_s: 120

logging:
  log_dir: logs
  verbosity: Info
""")

        settings = load_settings(str(path))

        assert settings.binaries.reference == "/opt/h2/h2cli"
        assert settings.binaries.test_binary == "/opt/h2/h2JackTimebase"
        assert settings.song == "other.h2song"
        assert settings.endpoints.host == "127.0.0.1"
        assert settings.endpoints.primary_port == 18099
        assert settings.timing.startup_s == 2.0
        assert settings.timing.settle_s == 0.25
        assert settings.timing.scenario_timeout_s == 120.0
        assert settings.log_dir == Path("logs")
        assert settings.verbosity == "Info"

    def test_partial_file_keeps_defaults(self, tmp_path):
        path = tmp_path / "harness.yaml"
        path.write_text("timing:\n  startup_s: 10\n")

        settings = load_settings(str(path))

        assert settings.timing.startup_s == 10.0
        assert settings.timing.settle_s == 0.5
        assert settings.endpoints.reference_port == 9099

    def test_empty_file_gives_defaults(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("")

        settings = load_settings(str(path))

        assert settings == HarnessSettings()

    def test_shipped_config_matches_defaults(self):
        settings = load_settings(str(_project_root / "configs" / "timebase.yaml"))

        assert settings == HarnessSettings()

    def test_missing_file(self):
        with pytest.raises(FileNotFoundError):
            load_settings("nonexistent_settings.yaml")

    def test_invalid_yaml(self, tmp_path):
        path = tmp_path / "broken.yaml"
        path.write_text("timing: [unclosed\n")

        with pytest.raises(yaml.YAMLError):
            load_settings(str(path))

    def test_top_level_must_be_dict(self):
        with pytest.raises(ValueError, match="must contain a YAML dict"):
            settings_from_dict([1, 2, 3])

    def test_section_must_be_dict(self):
        with pytest.raises(ValueError, match="'timing' section must be a dict"):
            settings_from_dict({"timing": 5})

    def test_unknown_key_rejected(self):
        with pytest.raises(ValueError, match="Unknown key"):
            settings_from_dict({"endpoints": {"tertiary_port": 8101}})

    @pytest.mark.parametrize("section,key", [
        ("timing", "startup_s"),
        ("endpoints", "primary_port"),
        ("logging", "log_dir"),
        ("binaries", "reference"),
    ])
    def test_null_value_rejected(self, tmp_path, section, key):
        path = tmp_path / "harness.yaml"
        path.write_text(f"{section}:\n  {key}: null\n")

        with pytest.raises(ValueError, match=rf"{section}\.{key} must be .*got None"):
            load_settings(str(path))

    def test_null_scenario_timeout_means_unbounded(self):
        settings = settings_from_dict({"timing": {"scenario_timeout_s": None}})

        assert settings.timing.scenario_timeout_s is None

    def test_non_numeric_value_rejected(self):
        with pytest.raises(ValueError, match="timing.settle_s must be a number, got 'soon'"):
            settings_from_dict({"timing": {"settle_s": "soon"}})

    def test_list_where_port_expected_rejected(self):
        with pytest.raises(ValueError, match="endpoints.reference_port must be an integer"):
            settings_from_dict({"endpoints": {"reference_port": [9099]}})


class TestValidation:
    """Test __post_init__ validation."""

    def test_duplicate_ports_rejected(self):
        with pytest.raises(ValueError, match="distinct"):
            EndpointConfig(primary_port=9099)

    def test_port_out_of_range_rejected(self):
        with pytest.raises(ValueError, match="primary_port"):
            EndpointConfig(primary_port=70000)

    def test_negative_timing_rejected(self):
        with pytest.raises(ValueError, match="settle_s"):
            TimingConfig(settle_s=-1)

    def test_zero_poll_interval_rejected(self):
        with pytest.raises(ValueError, match="poll_interval_s"):
            TimingConfig(poll_interval_s=0)

    def test_zero_startup_allowed(self):
        assert TimingConfig(startup_s=0).startup_s == 0

    def test_non_positive_scenario_timeout_rejected(self):
        with pytest.raises(ValueError, match="scenario_timeout_s"):
            TimingConfig(scenario_timeout_s=0)

    def test_bad_verbosity_rejected(self):
        with pytest.raises(ValueError, match="verbosity"):
            HarnessSettings(verbosity="Chatty")


class TestOverrides:
    """Test command-line overrides."""

    def test_overrides_replace_binaries_and_log_dir(self):
        settings = HarnessSettings().with_overrides(
            reference="/bin/ref", test_binary="/bin/test", log_dir="/tmp/logs")

        assert settings.binaries.reference == "/bin/ref"
        assert settings.binaries.test_binary == "/bin/test"
        assert settings.log_dir == Path("/tmp/logs")

    def test_missing_overrides_keep_values(self):
        base = HarnessSettings()
        settings = base.with_overrides()

        assert settings == base
        assert settings is not base


if __name__ == "__main__":
    pytest.main([__file__, "-v"])
