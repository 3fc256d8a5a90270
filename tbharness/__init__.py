"""
tbharness - JACK Timebase integration test harness
"""

__version__ = "0.1.0"
