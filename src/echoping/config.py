from __future__ import annotations

import json
from dataclasses import dataclass
from pathlib import Path


# Speed of sound (m/s)
SPEED_OF_SOUND = {
    "air": 343.0,      # 20°C, dry air
    "water": 1480.0,   # fresh water, 20°C
}

MAX_PEAKS = 20
THRESHOLD_MIN = 0.01
THRESHOLD_MAX = 1.0
THRESHOLD_STEP = 0.01

AUDIO_CONFIG_FILE = Path.home() / ".config" / "echoping" / "audio_config.json"


def validate_threshold(threshold: float) -> float:
    """Return ``threshold`` as a float, or raise ValueError if outside [0.01, 1.0]."""
    try:
        value = float(threshold)
    except (TypeError, ValueError):
        raise ValueError(f"threshold must be a number, got {threshold!r}") from None
    if not THRESHOLD_MIN <= value <= THRESHOLD_MAX:
        raise ValueError(f"threshold must be in [{THRESHOLD_MIN}, {THRESHOLD_MAX}], got {value}")
    return value


@dataclass
class AudioDeviceConfig:
    play_device: int | str | None = None
    rec_device: int | str | None = None
    sample_rate: int = 44100
    channels_play: int = 1
    channels_rec: int = 1
    frames_per_buffer: int = 4096
    latency: str | float | None = None  # "low", "high", float seconds or None
    recording_seconds: float = 1.0

    @property
    def capacity(self) -> int:
        """Number of samples held by one recording."""
        return int(self.sample_rate * self.recording_seconds)

    @classmethod
    def from_file(cls, config_path: str | Path | None = None) -> AudioDeviceConfig:
        """Load audio device config from file.
        
        Args:
            config_path: Path to config file. If None, uses AUDIO_CONFIG_FILE (~/.config/echoping/audio_config.json)
        """
        if config_path is None:
            config_path = AUDIO_CONFIG_FILE
        
        if not Path(config_path).exists():
            return cls()
        
        try:
            with open(config_path) as f:
                data = json.load(f)
            return cls(**{k: v for k, v in data.items() if hasattr(cls, k)})
        except (json.JSONDecodeError, OSError, TypeError):
            return cls()


@dataclass
class PingConfig:
    duration_ms: float = 50.0
    frequency_hz: float = 1500.0
    amplitude: float = 1.0  # fraction of int16 full scale


@dataclass
class AnalysisConfig:
    threshold: float = 0.15  # fraction of direct pulse amplitude
    medium: str = "air"
    max_peaks: int = MAX_PEAKS

    @property
    def speed_of_sound(self) -> float:
        try:
            return SPEED_OF_SOUND[self.medium]
        except KeyError:
            raise ValueError(f"Unknown medium {self.medium!r}, expected one of {sorted(SPEED_OF_SOUND)}") from None
