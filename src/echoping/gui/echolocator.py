"""Echolocator GUI for echoping.

This GUI is a frontend only: it draws the state of a :class:`Session` and
forwards two commands to it (start test, adjust threshold). All detection
logic lives in echoping.dsp and echoping.session.
"""
from __future__ import annotations

import os
import sys

import numpy as np
import pyqtgraph as pg
from pyqtgraph.Qt import QtCore, QtWidgets

from echoping.config import THRESHOLD_STEP, AnalysisConfig, AudioDeviceConfig, PingConfig
from echoping.gui.status import STATUS_TEXT, format_peak_table, format_status
from echoping.io.audio import CaptureStream, Player
from echoping.session import Session, SessionSnapshot, SessionState

WAVEFORM_PEN = "#7FFFD4"  # aquamarine
MARKER_PEN = "#FF4500"    # orange red


def _check_x11_display() -> bool:
    """Checks if an X11 display is available."""
    display = os.environ.get("DISPLAY")
    if not display:
        return False

    if display.startswith(":"):
        x11_socket = f"/tmp/.X11-unix/X{display[1:]}"
        return os.path.exists(x11_socket)

    return True


class _KeyWidget(QtWidgets.QWidget):
    key_pressed = QtCore.pyqtSignal(int)

    def keyPressEvent(self, event):  # noqa: N802
        self.key_pressed.emit(int(event.key()))
        super().keyPressEvent(event)


class EcholocatorGUI(QtCore.QObject):
    """Waveform view with peak markers driven by a polling timer."""

    def __init__(self, session: Session, fullscreen: bool = False, update_interval_ms: int = 16):
        super().__init__()
        self.session = session
        self.fullscreen = fullscreen
        self.update_interval_ms = update_interval_ms
        self._last_state: SessionState | None = None
        self._last_threshold: float | None = None
        self._markers: list[pg.InfiniteLine] = []
        self._setup_ui()

    def _setup_ui(self):
        pg.setConfigOptions(antialias=False)
        self.app = pg.mkQApp("echoping")

        self.win = _KeyWidget()
        self.win.setWindowTitle("Acoustic Echolocator")
        self.win.setFocusPolicy(QtCore.Qt.FocusPolicy.StrongFocus)
        self.win.key_pressed.connect(self._on_key)
        if self.fullscreen:
            self.win.showFullScreen()
        else:
            self.win.resize(1280, 720)

        layout = QtWidgets.QVBoxLayout()
        self.win.setLayout(layout)

        self.status_label = QtWidgets.QLabel("")
        self.status_label.setStyleSheet("font-size: 18px; font-weight: bold;")
        layout.addWidget(self.status_label)

        self.threshold_label = QtWidgets.QLabel("")
        self.threshold_label.setStyleSheet("font-size: 14px;")
        layout.addWidget(self.threshold_label)

        self.result_label = QtWidgets.QLabel("")
        self.result_label.setStyleSheet("font-size: 14px; color: #7FFFD4;")
        layout.addWidget(self.result_label)

        graph_widget = pg.GraphicsLayoutWidget()
        graph_widget.setFocusPolicy(QtCore.Qt.FocusPolicy.NoFocus)
        layout.addWidget(graph_widget, stretch=1)

        cfg = self.session.audio_cfg
        self.plot = graph_widget.addPlot(title="Recording")
        self.plot.setLabel("bottom", "Time", units="s")
        self.plot.setLabel("left", "Amplitude")
        self.plot.showGrid(x=True, y=True, alpha=0.3)
        self.plot.setXRange(0, cfg.recording_seconds)
        self.plot.setYRange(-32768, 32767)
        self.curve = self.plot.plot(pen=pg.mkPen(WAVEFORM_PEN, width=1))

        self.peak_table = QtWidgets.QLabel("")
        self.peak_table.setStyleSheet("font-family: monospace; font-size: 12px;")
        layout.addWidget(self.peak_table)

        self.win.show()
        self.win.setFocus()

        self.timer = QtCore.QTimer()
        self.timer.timeout.connect(self._tick)

    def _on_key(self, key: int):
        if key == int(QtCore.Qt.Key.Key_Space):
            self.session.start_test()
        elif key == int(QtCore.Qt.Key.Key_Up):
            self.session.adjust_threshold(THRESHOLD_STEP)
        elif key == int(QtCore.Qt.Key.Key_Down):
            self.session.adjust_threshold(-THRESHOLD_STEP)

    def _tick(self):
        self.session.poll()
        snapshot = self.session.snapshot()
        # Redraw only when something visible changed
        if snapshot.state is self._last_state and snapshot.threshold == self._last_threshold \
                and snapshot.state is not SessionState.RECORDING:
            return
        self._render(snapshot)
        self._last_state = snapshot.state
        self._last_threshold = snapshot.threshold

    def _render(self, snapshot: SessionSnapshot):
        text, color = STATUS_TEXT[snapshot.state]
        self.status_label.setText(text)
        self.status_label.setStyleSheet(f"font-size: 18px; font-weight: bold; color: {color};")

        lines = format_status(snapshot)
        self.threshold_label.setText(lines[1])
        self.result_label.setText("\n".join(lines[2:]))

        for marker in self._markers:
            self.plot.removeItem(marker)
        self._markers = []

        if snapshot.state is not SessionState.DONE:
            self.curve.setData([], [])
            self.peak_table.setText("")
            return

        t = np.arange(snapshot.write_cursor, dtype=np.float32) / snapshot.sample_rate
        self.curve.setData(t, snapshot.waveform.astype(np.float32))

        for peak in snapshot.peaks:
            marker = pg.InfiniteLine(
                pos=peak.index / snapshot.sample_rate,
                angle=90,
                pen=pg.mkPen(MARKER_PEN, width=1),
            )
            self.plot.addItem(marker)
            self._markers.append(marker)

        self.peak_table.setText(format_peak_table(snapshot))

    def run(self):
        """Run the application."""
        self._render(self.session.snapshot())
        self.timer.start(self.update_interval_ms)
        try:
            self.app.exec()
        finally:
            self.timer.stop()


def run_echolocator_gui(
    cfg: AudioDeviceConfig,
    ping_cfg: PingConfig | None = None,
    analysis_cfg: AnalysisConfig | None = None,
    fullscreen: bool = False,
):
    """Launch the interactive echolocator window.

    Args:
        cfg: Audio device configuration
        ping_cfg: Emitted ping parameters
        analysis_cfg: Initial threshold and propagation medium
        fullscreen: Run in fullscreen mode
    """
    if not _check_x11_display():
        print("ERROR: No X11 display available!", file=sys.stderr)
        print("\nNo X11 server is running on this device.", file=sys.stderr)
        sys.exit(1)

    session = Session(cfg, ping_cfg, analysis_cfg, player=Player(cfg))
    capture = CaptureStream(cfg, session.on_audio)
    session.capture = capture

    print("Initializing audio stream...")
    with capture:
        print("✓ Audio stream initialized")
        gui = EcholocatorGUI(session, fullscreen=fullscreen)
        gui.run()
