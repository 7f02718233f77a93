from __future__ import annotations

import logging
import threading
import time
from typing import Callable

import numpy as np
import sounddevice as sd

from echoping.config import AudioDeviceConfig

logger = logging.getLogger(__name__)


class CaptureStream:
    """Microphone input stream that forwards int16 frames to a sink while enabled.

    The stream itself runs for the lifetime of the object; ``enable`` and
    ``disable`` gate whether frames reach the sink. The sink is called from
    the PortAudio thread and must not block.
    """

    def __init__(self, cfg: AudioDeviceConfig, sink: Callable[[np.ndarray], object]):
        self.cfg = cfg
        self.sink = sink
        self.stream: sd.InputStream | None = None
        self.status_count = 0
        self._enabled = threading.Event()

    def _callback(self, indata, frames, time_info, status):  # noqa: ANN001
        # Keep callback lean; no logging.
        if status:
            self.status_count += 1
        if self._enabled.is_set():
            self.sink(indata[:, 0])

    def start(self):
        if self.stream is not None:
            return
        self.stream = sd.InputStream(
            samplerate=self.cfg.sample_rate,
            blocksize=self.cfg.frames_per_buffer,
            dtype="int16",
            channels=self.cfg.channels_rec,
            device=self.cfg.rec_device,
            latency=self.cfg.latency,
            callback=self._callback,
        )
        self.stream.start()
        logger.debug("Capture stream started at %d Hz", self.cfg.sample_rate)

    def enable(self):
        if self.stream is None:
            self.start()
        self._enabled.set()

    def disable(self):
        self._enabled.clear()

    def close(self):
        self._enabled.clear()
        if self.stream is None:
            return
        try:
            self.stream.stop()
            self.stream.close()
        finally:
            self.stream = None
            if self.status_count:
                logger.warning("Capture stream reported %d status flags (xruns)", self.status_count)

    def __enter__(self) -> CaptureStream:
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):  # noqa: ANN001
        self.close()


class Player:
    """Fire-and-forget playback of int16 sample buffers."""

    def __init__(self, cfg: AudioDeviceConfig):
        self.cfg = cfg

    def play(self, samples: np.ndarray):
        sd.play(
            np.asarray(samples, dtype=np.int16),
            samplerate=self.cfg.sample_rate,
            device=self.cfg.play_device,
            blocking=False,
        )

    def play_blocking(self, samples: np.ndarray):
        sd.play(
            np.asarray(samples, dtype=np.int16),
            samplerate=self.cfg.sample_rate,
            device=self.cfg.play_device,
            blocking=True,
        )


def list_devices() -> list[dict]:
    devices = sd.query_devices()
    return [dict(d) for d in devices]


def default_devices() -> dict:
    return {
        "default_input": sd.default.device[0],
        "default_output": sd.default.device[1],
    }


def check_device(dev: int | str | None, kind: str) -> dict | None:
    """Return device info for ``dev``, or None for the system default."""
    if dev is None:
        return None
    return dict(sd.query_devices(dev, kind=kind))


def wait_for(predicate: Callable[[], bool], timeout: float, interval: float = 0.01) -> bool:
    """Poll ``predicate`` until it is true or ``timeout`` seconds pass."""
    deadline = time.monotonic() + timeout
    while not predicate():
        if time.monotonic() >= deadline:
            return False
        time.sleep(interval)
    return True
