"""Test session: one recording buffer, one threshold, one set of results.

States cycle Idle -> Recording -> Analyzing -> Done -> Recording ... and the
control loop drives them by calling :meth:`Session.poll` once per iteration.
The capture collaborator feeds :meth:`Session.on_audio` from its own thread.
"""
from __future__ import annotations

import enum
import logging
from dataclasses import dataclass
from typing import Protocol

import numpy as np

from echoping.config import (
    THRESHOLD_MAX,
    THRESHOLD_MIN,
    AnalysisConfig,
    AudioDeviceConfig,
    PingConfig,
    validate_threshold,
)
from echoping.dsp.peaks import Peak, analyze_buffer
from echoping.dsp.tone import ping_from_config
from echoping.io.buffer import SampleBuffer

logger = logging.getLogger(__name__)


class SessionState(enum.Enum):
    IDLE = "idle"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    DONE = "done"


class Capture(Protocol):
    def enable(self): ...

    def disable(self): ...


class Playback(Protocol):
    def play(self, samples: np.ndarray): ...


@dataclass(frozen=True)
class SessionSnapshot:
    """Everything the presentation layer draws for one frame."""

    state: SessionState
    waveform: np.ndarray
    write_cursor: int
    capacity: int
    peaks: tuple[Peak, ...]
    threshold: float
    sample_rate: int


def clamp_threshold(value: float) -> float:
    return round(min(THRESHOLD_MAX, max(THRESHOLD_MIN, value)), 2)


class Session:
    def __init__(
        self,
        audio_cfg: AudioDeviceConfig | None = None,
        ping_cfg: PingConfig | None = None,
        analysis_cfg: AnalysisConfig | None = None,
        capture: Capture | None = None,
        player: Playback | None = None,
    ):
        self.audio_cfg = audio_cfg or AudioDeviceConfig()
        self.ping_cfg = ping_cfg or PingConfig()
        self.analysis_cfg = analysis_cfg or AnalysisConfig()
        self.capture = capture
        self.player = player

        # Both allocations are startup-fatal (AllocationError propagates).
        self._buffer = SampleBuffer(self.audio_cfg.capacity)
        self.ping = ping_from_config(self.ping_cfg, self.audio_cfg.sample_rate)

        self._threshold = validate_threshold(self.analysis_cfg.threshold)
        self._speed_of_sound = self.analysis_cfg.speed_of_sound
        self._peaks: list[Peak] = []
        self._state = SessionState.IDLE

    @property
    def state(self) -> SessionState:
        return self._state

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def peaks(self) -> tuple[Peak, ...]:
        return tuple(self._peaks)

    @property
    def buffer(self) -> SampleBuffer:
        return self._buffer

    def _set_state(self, state: SessionState):
        logger.debug("Session %s -> %s", self._state.value, state.value)
        self._state = state

    def start_test(self) -> bool:
        """Begin a new recording. Ignored unless Idle or Done.

        Returns:
            True if a test was started
        """
        if self._state not in (SessionState.IDLE, SessionState.DONE):
            logger.debug("start_test ignored in state %s", self._state.value)
            return False

        self._buffer.reset()
        self._peaks = []
        self._set_state(SessionState.RECORDING)
        if self.capture is not None:
            self.capture.enable()
        if self.player is not None:
            self.player.play(self.ping)
        return True

    def on_audio(self, frame: np.ndarray) -> int:
        """Capture callback target; frames outside Recording are dropped."""
        if self._state is not SessionState.RECORDING:
            return 0
        return self._buffer.append(frame)

    def poll(self) -> SessionState:
        """One control-loop tick: finish the test once the buffer is full."""
        if self._state is SessionState.RECORDING and self._buffer.is_full():
            self._set_state(SessionState.ANALYZING)
            if self.capture is not None:
                self.capture.disable()
            self.analyze()
            self._set_state(SessionState.DONE)
        return self._state

    def analyze(self) -> list[Peak]:
        self._peaks = analyze_buffer(
            self._buffer,
            self._threshold,
            sample_rate=self.audio_cfg.sample_rate,
            speed_of_sound=self._speed_of_sound,
            beep_duration_ms=self.ping_cfg.duration_ms,
            max_peaks=self.analysis_cfg.max_peaks,
        )
        logger.debug("Found %d peaks at threshold %.2f", len(self._peaks), self._threshold)
        return list(self._peaks)

    def adjust_threshold(self, delta: float) -> float:
        """Shift the threshold by ``delta``; re-analyzes the last recording when Done."""
        self._threshold = clamp_threshold(self._threshold + delta)
        if self._state is SessionState.DONE:
            self.analyze()
        return self._threshold

    def snapshot(self) -> SessionSnapshot:
        cursor = self._buffer.write_cursor
        return SessionSnapshot(
            state=self._state,
            waveform=self._buffer.data[:cursor].copy(),
            write_cursor=cursor,
            capacity=self._buffer.capacity,
            peaks=tuple(self._peaks),
            threshold=self._threshold,
            sample_rate=self.audio_cfg.sample_rate,
        )
