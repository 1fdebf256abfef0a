"""Launchpad Tracker - launch-platform token discovery and trade classification."""

__version__ = "0.1.0"
