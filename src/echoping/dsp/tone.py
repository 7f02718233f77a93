from __future__ import annotations

import numpy as np

from echoping.config import PingConfig
from echoping.errors import AllocationError

FULL_SCALE = 32767


def generate_ping(
    duration_ms: float = 50.0,
    frequency_hz: float = 1500.0,
    sample_rate: int = 44100,
    amplitude: float = 1.0,
) -> np.ndarray:
    """Generate the int16 sine burst emitted at the start of a test.

    Sample ``i`` is ``round(32767 * amplitude * sin(2*pi*f*i/sr))``.

    Raises:
        ValueError: If duration, frequency or sample rate is not positive, or
            amplitude is outside (0, 1].
        AllocationError: If the sample array cannot be allocated.
    """
    if duration_ms <= 0:
        raise ValueError(f"duration_ms must be > 0, got {duration_ms}")
    if frequency_hz <= 0:
        raise ValueError(f"frequency_hz must be > 0, got {frequency_hz}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be > 0, got {sample_rate}")
    if not 0.0 < amplitude <= 1.0:
        raise ValueError(f"amplitude must be in (0, 1], got {amplitude}")

    n = int(duration_ms / 1000.0 * sample_rate)
    try:
        t = np.arange(n, dtype=np.float64) / sample_rate
        signal = FULL_SCALE * amplitude * np.sin(2 * np.pi * frequency_hz * t)
        return np.rint(signal).astype(np.int16)
    except MemoryError as exc:
        raise AllocationError(f"Cannot allocate {n} ping samples") from exc


def ping_from_config(cfg: PingConfig, sample_rate: int) -> np.ndarray:
    return generate_ping(cfg.duration_ms, cfg.frequency_hz, sample_rate, cfg.amplitude)


def to_float32(samples: np.ndarray) -> np.ndarray:
    """Convert int16 samples to float32 in [-1, 1] for float streams and WAV files."""
    return (np.asarray(samples, dtype=np.float32) / FULL_SCALE).astype(np.float32)

