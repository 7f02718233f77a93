"""DSP helpers: ping synthesis and echo peak detection."""

from echoping.dsp.peaks import (
    Peak,
    analyze,
    analyze_buffer,
    distance_from_delay,
    first_echo,
)
from echoping.dsp.tone import generate_ping, ping_from_config, to_float32

__all__ = [
    "Peak",
    "analyze",
    "analyze_buffer",
    "distance_from_delay",
    "first_echo",
    "generate_ping",
    "ping_from_config",
    "to_float32",
]
