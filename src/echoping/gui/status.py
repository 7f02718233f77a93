"""Status text shown by the echolocator window."""
from __future__ import annotations

from echoping.dsp.peaks import first_echo
from echoping.session import SessionSnapshot, SessionState


STATUS_TEXT = {
    SessionState.IDLE: ("Press SPACE to start test", "#FFFFFF"),
    SessionState.RECORDING: ("Recording...", "#FF4500"),
    SessionState.ANALYZING: ("Analyzing...", "#FF4500"),
    SessionState.DONE: ("Test complete. Press SPACE for new test.", "#7FFFD4"),
}


def format_status(snapshot: SessionSnapshot) -> list[str]:
    """Text lines shown above the waveform."""
    lines = [
        STATUS_TEXT[snapshot.state][0],
        f"Echo Threshold: {snapshot.threshold * 100:.0f}% (Up/Down keys to change)",
    ]
    if snapshot.state is SessionState.DONE:
        lines.append(f"Peaks Found: {len(snapshot.peaks)}")
        echo = first_echo(snapshot.peaks)
        if echo is not None:
            lines.append(f"First Echo Distance: {echo.distance_m:.2f} m")
    return lines


def format_peak_table(snapshot: SessionSnapshot) -> str:
    rows = [f"{'#':>3} {'index':>7} {'amp':>6} {'time ms':>9} {'dist m':>7}"]
    for i, peak in enumerate(snapshot.peaks):
        rows.append(
            f"{i:>3} {peak.index:>7d} {peak.amplitude:>6d} {peak.time_s * 1000:>9.2f} {peak.distance_m:>7.2f}"
        )
    return "\n".join(rows)
