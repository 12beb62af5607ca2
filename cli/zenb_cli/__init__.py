"""ZenB CLI - headless driver for the breathing-session kernel."""

__version__ = "0.1.0"
