"""Direct pulse and echo detection on a completed recording.

The loudest sample in the recording is taken as the direct pulse (the ping
as heard by the microphone). Echoes are later samples that are strict local
maxima of ``|x|`` above ``threshold * direct amplitude``. Two windows keep the
ping itself from being counted as an echo:

- dead zone: ``1.5 * ping duration`` after the direct pulse is not searched;
- cooldown: after each echo, the next ``ping duration`` samples are skipped.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

import numpy as np

from echoping.config import MAX_PEAKS
from echoping.io.buffer import SampleBuffer


@dataclass(frozen=True)
class Peak:
    index: int
    amplitude: int
    time_s: float = 0.0
    distance_m: float = 0.0


def distance_from_delay(time_s: float, speed_of_sound: float = 343.0) -> float:
    """Round-trip delay to one-way distance."""
    return (time_s * speed_of_sound) / 2.0


def analyze(
    samples: Sequence[int] | np.ndarray,
    threshold: float,
    sample_rate: int = 44100,
    speed_of_sound: float = 343.0,
    beep_duration_ms: float = 50.0,
    max_peaks: int = MAX_PEAKS,
) -> list[Peak]:
    """Find the direct pulse and up to ``max_peaks - 1`` echoes.

    Args:
        samples: Valid recorded samples (int16), i.e. ``buffer[:write_cursor]``
        threshold: Minimum echo amplitude as a fraction of the direct pulse, in (0, 1]
        sample_rate: Sample rate of the recording (Hz)
        speed_of_sound: Propagation speed (m/s)
        beep_duration_ms: Duration of the emitted ping; sizes dead zone and cooldown
        max_peaks: Maximum number of peaks returned, direct pulse included

    Returns:
        Peaks ordered by index. Empty for an empty or silent recording.
    """
    if not 0.0 < threshold <= 1.0:
        raise ValueError(f"threshold must be in (0, 1], got {threshold}")
    if sample_rate <= 0:
        raise ValueError(f"sample_rate must be > 0, got {sample_rate}")
    if beep_duration_ms < 0:
        raise ValueError(f"beep_duration_ms must be >= 0, got {beep_duration_ms}")
    if max_peaks < 1:
        return []

    # int32 so that |-32768| does not wrap
    mag = np.abs(np.asarray(samples, dtype=np.int32))
    n = mag.shape[0]
    if n == 0:
        return []

    max_idx = int(np.argmax(mag))  # first occurrence on ties
    max_amplitude = int(mag[max_idx])
    if max_amplitude == 0:
        return []

    direct = Peak(index=max_idx, amplitude=max_amplitude)
    peaks = [direct]

    threshold_val = max_amplitude * threshold
    beep_samples = beep_duration_ms / 1000.0 * sample_rate
    search_start = max(max_idx + int(round(1.5 * beep_samples)), 1)
    cooldown = int(round(beep_samples))

    if search_start >= n - 1:
        return peaks

    centre = mag[search_start:n - 1]
    is_candidate = (
        (centre > threshold_val)
        & (centre > mag[search_start - 1:n - 2])
        & (centre > mag[search_start + 1:n])
    )
    candidates = np.flatnonzero(is_candidate) + search_start

    next_allowed = search_start
    for i in candidates:
        if len(peaks) >= max_peaks:
            break
        i = int(i)
        if i < next_allowed:
            continue
        time_s = (i - direct.index) / sample_rate
        peaks.append(
            Peak(
                index=i,
                amplitude=int(mag[i]),
                time_s=time_s,
                distance_m=distance_from_delay(time_s, speed_of_sound),
            )
        )
        next_allowed = i + 1 + cooldown

    return peaks


def analyze_buffer(buffer: SampleBuffer, threshold: float, **kwargs) -> list[Peak]:
    """Run :func:`analyze` on the valid region of ``buffer``."""
    return analyze(buffer.samples(), threshold, **kwargs)


def first_echo(peaks: Sequence[Peak]) -> Peak | None:
    """First echo after the direct pulse, if any."""
    return peaks[1] if len(peaks) > 1 else None
