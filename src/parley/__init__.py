"""Parley: realtime messaging and group-membership engine for team chat."""

__version__ = "0.1.0"
