"""Acoustic echo ranging: emit a ping, record, locate echoes."""

__version__ = "0.1.0"
