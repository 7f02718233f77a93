"""Configuration file management for echoping.

Handles loading and saving persistent settings like the echo threshold.
"""
from __future__ import annotations

import json
from pathlib import Path
from typing import Any

from echoping.config import (
    SPEED_OF_SOUND,
    THRESHOLD_MAX,
    THRESHOLD_MIN,
    AnalysisConfig,
    PingConfig,
    validate_threshold,
)


# Default configuration directory
CONFIG_DIR = Path.home() / ".config" / "echoping"
CONFIG_FILE = CONFIG_DIR / "init.json"

# Default settings
DEFAULT_SETTINGS = {
    "threshold": 0.15,            # Fraction of direct pulse amplitude
    "ping_duration_ms": 50.0,
    "ping_frequency_hz": 1500.0,
    "ping_amplitude": 1.0,
    "medium": "air",
    "version": "0.1.0"
}


def load_settings(config_file: Path | None = None) -> dict[str, Any]:
    """Load settings from init.json file.

    Returns:
        Dictionary with settings. If file doesn't exist, returns defaults.
    """
    config_file = config_file or CONFIG_FILE
    if not config_file.exists():
        return DEFAULT_SETTINGS.copy()

    try:
        with open(config_file, 'r') as f:
            settings = json.load(f)

        # Merge with defaults to ensure all keys exist
        result = DEFAULT_SETTINGS.copy()
        result.update(settings)
        return result

    except (json.JSONDecodeError, IOError) as e:
        print(f"Warning: Failed to load config from {config_file}: {e}")
        print("Using default settings")
        return DEFAULT_SETTINGS.copy()


def save_settings(settings: dict[str, Any], config_file: Path | None = None) -> bool:
    """Save settings to init.json file.

    Args:
        settings: Dictionary with settings to save
        config_file: Target file (defaults to ~/.config/echoping/init.json)

    Returns:
        True if successful, False otherwise
    """
    config_file = config_file or CONFIG_FILE
    try:
        config_file.parent.mkdir(parents=True, exist_ok=True)

        # Merge with existing settings to preserve other values
        current = load_settings(config_file)
        current.update(settings)

        with open(config_file, 'w') as f:
            json.dump(current, f, indent=2)

        return True

    except (IOError, OSError) as e:
        print(f"Error: Failed to save config to {config_file}: {e}")
        return False


def get_threshold(config_file: Path | None = None) -> float:
    """Get echo detection threshold (fraction of direct amplitude)."""
    value = load_settings(config_file).get("threshold", DEFAULT_SETTINGS["threshold"])
    try:
        value_f = float(value)
    except (TypeError, ValueError):
        value_f = float(DEFAULT_SETTINGS["threshold"])
    return min(THRESHOLD_MAX, max(THRESHOLD_MIN, value_f))


def set_threshold(threshold: float, config_file: Path | None = None) -> bool:
    """Save echo detection threshold to configuration."""
    return save_settings({"threshold": validate_threshold(threshold)}, config_file)


def get_ping_config(config_file: Path | None = None) -> PingConfig:
    s = load_settings(config_file)
    return PingConfig(
        duration_ms=float(s["ping_duration_ms"]),
        frequency_hz=float(s["ping_frequency_hz"]),
        amplitude=float(s["ping_amplitude"]),
    )


def get_analysis_config(config_file: Path | None = None) -> AnalysisConfig:
    s = load_settings(config_file)
    medium = str(s["medium"])
    if medium not in SPEED_OF_SOUND:
        print(f"Warning: unknown medium {medium!r} in config, using 'air'")
        medium = "air"
    return AnalysisConfig(threshold=get_threshold(config_file), medium=medium)


def get_config_file_path() -> Path:
    """Get path to configuration file.

    Returns:
        Path to init.json
    """
    return CONFIG_FILE
