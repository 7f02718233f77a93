"""Exceptions raised by echoping."""
from __future__ import annotations


class AllocationError(MemoryError):
    """Sample storage (ping or recording buffer) could not be allocated.

    Fatal at startup: a session cannot run without either buffer.
    """
