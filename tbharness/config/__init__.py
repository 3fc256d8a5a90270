"""
tbharness.config - Harness configuration

Provides YAML-based settings parsing for the Timebase integration harness.
"""

from .settings import HarnessSettings, load_settings, settings_from_dict

__all__ = ['HarnessSettings', 'load_settings', 'settings_from_dict']
