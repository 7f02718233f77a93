from __future__ import annotations

import threading
from typing import Sequence

import numpy as np

from echoping.errors import AllocationError


class SampleBuffer:
    """Fixed-capacity mono int16 recording with a write cursor.

    ``append`` is called from the audio thread; the control loop polls
    ``is_full``/``write_cursor``. The cursor is read and advanced under a lock.
    Contents must only be read once capture has been disabled.
    """

    def __init__(self, capacity: int):
        capacity = int(capacity)
        if capacity <= 0:
            raise ValueError(f"capacity must be > 0, got {capacity}")
        try:
            self._data = np.zeros(capacity, dtype=np.int16)
        except MemoryError as exc:
            raise AllocationError(f"Cannot allocate recording buffer of {capacity} samples") from exc
        self._capacity = capacity
        self._cursor = 0
        self._lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._capacity

    @property
    def write_cursor(self) -> int:
        with self._lock:
            return self._cursor

    @property
    def data(self) -> np.ndarray:
        """Full backing array (including the unwritten zero tail)."""
        return self._data

    def reset(self):
        """Zero the buffer and rewind the cursor. Call before capture starts."""
        with self._lock:
            self._data[:] = 0
            self._cursor = 0

    def append(self, frame: Sequence[int] | np.ndarray) -> int:
        """Copy as much of ``frame`` as fits; the rest is dropped.

        Float frames are treated as [-1, 1] audio and scaled to int16; wider
        integer frames saturate at the int16 limits.
        2-D frames (frames x channels) use the first channel.

        Returns:
            Number of samples written.
        """
        arr = np.asarray(frame)
        if arr.ndim == 2:
            arr = arr[:, 0]
        if arr.dtype.kind == "f":
            arr = np.clip(np.rint(arr * 32767.0), -32768, 32767)
        elif arr.dtype.kind in "iu" and arr.dtype != np.int16:
            arr = np.clip(arr.astype(np.int64), -32768, 32767)

        with self._lock:
            start = self._cursor
            n = min(arr.shape[0], self._capacity - start)
            if n <= 0:
                return 0
            self._data[start:start + n] = arr[:n]
            self._cursor = start + n
            return n

    def is_full(self) -> bool:
        with self._lock:
            return self._cursor >= self._capacity

    def samples(self) -> np.ndarray:
        """Copy of the written region ``data[:write_cursor]``."""
        with self._lock:
            return self._data[:self._cursor].copy()

    def __len__(self) -> int:
        return self.write_cursor
