"""Advertising experiment logbook."""

__version__ = "0.1.0"
