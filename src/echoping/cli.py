from __future__ import annotations

import argparse
import functools
import logging
import sys
from pathlib import Path

import soundfile as sf

from echoping import settings
from echoping.config import SPEED_OF_SOUND, AudioDeviceConfig, PingConfig, validate_threshold
from echoping.dsp.peaks import Peak, analyze, first_echo
from echoping.dsp.tone import ping_from_config, to_float32
from echoping.errors import AllocationError
from echoping.session import Session, SessionState


def _parse_args(argv: list[str]) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="echoping acoustic echo ranging")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("devices", help="List audio devices")

    p_gen = sub.add_parser("generate-ping", help="Save ping to wav file")
    p_gen.add_argument("output", type=Path)
    p_gen.add_argument("--sr", type=int, default=None)
    _add_ping_flags(p_gen)

    p_tone = sub.add_parser("tone", help="Play the ping once")
    _add_ping_flags(p_tone)
    _add_audio_flags(p_tone, playback_only=True)

    p_measure = sub.add_parser("measure", help="Run one test and print detected peaks")
    _add_ping_flags(p_measure)
    _add_analysis_flags(p_measure)
    _add_audio_flags(p_measure)

    p_analyze = sub.add_parser("analyze", help="Detect peaks in a wav file")
    p_analyze.add_argument("file", type=Path)
    p_analyze.add_argument("--duration", type=float, default=None, help="Ping duration used for dead zone/cooldown (ms)")
    _add_analysis_flags(p_analyze)

    p_gui = sub.add_parser("gui", help="Interactive echolocator window")
    _add_ping_flags(p_gui)
    _add_analysis_flags(p_gui)
    _add_audio_flags(p_gui)
    p_gui.add_argument("--fullscreen", action="store_true", help="Run in fullscreen mode")

    p_check = sub.add_parser("check-device", help="Verify that input/output devices are available")
    _add_audio_flags(p_check)

    p_config = sub.add_parser("config", help="View or edit configuration")
    p_config.add_argument("--show", action="store_true", help="Show current configuration")
    p_config.add_argument("--set-threshold", type=float, metavar="FRACTION", help="Set default echo threshold (0.01-1.0)")

    return parser.parse_args(argv)


def _add_audio_flags(parser: argparse.ArgumentParser, playback_only: bool = False):
    parser.add_argument("--play-device", type=str, default=None, help="Playback device index or name")
    if not playback_only:
        parser.add_argument("--rec-device", type=str, default=None, help="Input device index or name")
    parser.add_argument("--sr", type=int, default=None, help="Sample rate (default from config file or 44100)")
    parser.add_argument("--frames", type=int, default=None, help="Frames per buffer")


def _add_ping_flags(parser: argparse.ArgumentParser):
    parser.add_argument("--duration", type=float, default=None, help="Ping duration (ms, default: from config)")
    parser.add_argument("--freq", type=float, default=None, help="Ping frequency (Hz, default: from config)")
    parser.add_argument("--amp", type=float, default=None, help="Amplitude 0-1 (default: from config)")


def _add_analysis_flags(parser: argparse.ArgumentParser):
    parser.add_argument("--threshold", type=float, default=None, help="Echo threshold as fraction of direct pulse (default: from config)")
    parser.add_argument("--medium", type=str, default=None, choices=sorted(SPEED_OF_SOUND), help="Propagation medium")


def _build_audio_cfg(args: argparse.Namespace) -> AudioDeviceConfig:
    # Start with config from file
    cfg = AudioDeviceConfig.from_file()

    # Override with command-line arguments if provided
    if getattr(args, "play_device", None) is not None:
        cfg.play_device = _parse_device(args.play_device)
    if getattr(args, "rec_device", None) is not None:
        cfg.rec_device = _parse_device(args.rec_device)
    if getattr(args, "sr", None) is not None:
        cfg.sample_rate = args.sr
    if getattr(args, "frames", None) is not None:
        cfg.frames_per_buffer = args.frames

    return cfg


def _build_ping_cfg(args: argparse.Namespace) -> PingConfig:
    cfg = settings.get_ping_config()
    if getattr(args, "duration", None) is not None:
        cfg.duration_ms = args.duration
    if getattr(args, "freq", None) is not None:
        cfg.frequency_hz = args.freq
    if getattr(args, "amp", None) is not None:
        cfg.amplitude = args.amp
    return cfg


def _build_analysis_cfg(args: argparse.Namespace):
    cfg = settings.get_analysis_config()
    if getattr(args, "threshold", None) is not None:
        cfg.threshold = validate_threshold(args.threshold)
    if getattr(args, "medium", None) is not None:
        cfg.medium = args.medium
    return cfg


def _parse_device(value: str | None) -> int | str | None:
    if value is None:
        return None
    try:
        return int(value)
    except ValueError:
        return value


def format_peaks(peaks: list[Peak] | tuple[Peak, ...]) -> str:
    """Render peaks as a fixed-width table."""
    if not peaks:
        return "No peaks found (silent recording)"
    lines = [f"{'#':>3}  {'index':>7}  {'amplitude':>9}  {'time ms':>9}  {'distance m':>10}"]
    for i, p in enumerate(peaks):
        label = "direct" if i == 0 else ""
        lines.append(
            f"{i:>3}  {p.index:>7d}  {p.amplitude:>9d}  {p.time_s * 1000:>9.3f}  {p.distance_m:>10.3f}  {label}"
        )
    return "\n".join(line.rstrip() for line in lines)


def _print_result(peaks, threshold: float):
    print(f"Echo threshold: {threshold * 100:.0f}%")
    print(f"Peaks found: {len(peaks)}")
    print()
    print(format_peaks(peaks))
    echo = first_echo(peaks)
    if echo is not None:
        print()
        print("=" * 60)
        print(f"First echo distance: {echo.distance_m:.2f} m ({echo.distance_m * 100:.0f} cm)")
        print("=" * 60)


def _uses_audio_device(func):
    """Import sounddevice on first use and turn PortAudio failures into exit code 1."""

    @functools.wraps(func)
    def wrapper(args: argparse.Namespace):
        try:
            import sounddevice as sd
        except (ImportError, OSError) as exc:
            print(f"Error: audio backend not available: {exc}", file=sys.stderr)
            raise SystemExit(1) from exc
        try:
            return func(args)
        except sd.PortAudioError as exc:
            print(f"Error: {exc}", file=sys.stderr)
            raise SystemExit(1) from exc

    return wrapper


@_uses_audio_device
def cmd_devices(args: argparse.Namespace):
    from echoping.io import audio

    devices = audio.list_devices()
    defaults = audio.default_devices()
    print("Default input/output:", defaults)
    for idx, dev in enumerate(devices):
        mark = []
        if defaults["default_input"] == idx:
            mark.append("IN")
        if defaults["default_output"] == idx:
            mark.append("OUT")
        marker = "*" if mark else " "
        print(f"{marker} [{idx:02d}] {dev['name']} :: in={dev['max_input_channels']} out={dev['max_output_channels']} sr={dev['default_samplerate']}")


def cmd_generate_ping(args: argparse.Namespace):
    ping_cfg = _build_ping_cfg(args)
    sr = args.sr or AudioDeviceConfig.from_file().sample_rate
    ping = ping_from_config(ping_cfg, sr)
    sf.write(args.output, to_float32(ping), sr, subtype="PCM_16")
    print(f"Saved {args.output} ({len(ping)/sr*1000:.1f} ms, {ping_cfg.frequency_hz:.0f} Hz)")


@_uses_audio_device
def cmd_tone(args: argparse.Namespace):
    from echoping.io import audio

    cfg_audio = _build_audio_cfg(args)
    ping = ping_from_config(_build_ping_cfg(args), cfg_audio.sample_rate)
    audio.Player(cfg_audio).play_blocking(ping)


@_uses_audio_device
def cmd_measure(args: argparse.Namespace):
    from echoping.io import audio

    analysis_cfg = _build_analysis_cfg(args)
    cfg_audio = _build_audio_cfg(args)
    session = Session(cfg_audio, _build_ping_cfg(args), analysis_cfg, player=audio.Player(cfg_audio))
    capture = audio.CaptureStream(cfg_audio, session.on_audio)
    session.capture = capture

    with capture:
        session.start_test()
        print(f"Recording {cfg_audio.recording_seconds:.2f}s at {cfg_audio.sample_rate} Hz...")
        timeout_s = cfg_audio.recording_seconds + 2.0
        if not audio.wait_for(lambda: session.poll() is SessionState.DONE, timeout=timeout_s):
            raise TimeoutError(f"Recording did not complete within {timeout_s:.1f}s")

    _print_result(session.peaks, session.threshold)


def cmd_analyze(args: argparse.Namespace):
    data, sr = sf.read(args.file, dtype="int16", always_2d=True)
    samples = data[:, 0]
    analysis_cfg = _build_analysis_cfg(args)
    duration_ms = args.duration if args.duration is not None else settings.get_ping_config().duration_ms
    print(f"File: {args.file} ({len(samples)} samples, {sr} Hz, {len(samples)/sr:.2f}s)")
    peaks = analyze(
        samples,
        analysis_cfg.threshold,
        sample_rate=sr,
        speed_of_sound=analysis_cfg.speed_of_sound,
        beep_duration_ms=duration_ms,
        max_peaks=analysis_cfg.max_peaks,
    )
    _print_result(peaks, analysis_cfg.threshold)


@_uses_audio_device
def cmd_gui(args: argparse.Namespace):
    # Imported lazily so headless commands do not need Qt
    from echoping.gui.echolocator import run_echolocator_gui

    run_echolocator_gui(
        _build_audio_cfg(args),
        ping_cfg=_build_ping_cfg(args),
        analysis_cfg=_build_analysis_cfg(args),
        fullscreen=args.fullscreen,
    )


@_uses_audio_device
def cmd_check_device(args: argparse.Namespace):
    import sounddevice as sd

    from echoping.io import audio

    ok = True

    def check(dev, kind: str) -> bool:
        try:
            info = audio.check_device(_parse_device(dev), kind)
        except (ValueError, sd.PortAudioError) as exc:
            print(f"{kind}: ERROR for {dev}: {exc}")
            return False
        if info is not None:
            print(f"{kind}: ok -> name='{info['name']}' index={info['index']} max_in={info['max_input_channels']} max_out={info['max_output_channels']}")
        return True

    ok &= check(args.rec_device, "input")
    ok &= check(args.play_device, "output")
    defaults = audio.default_devices()
    print(f"System defaults: input={defaults['default_input']} output={defaults['default_output']}")
    if not ok:
        raise SystemExit(1)


def cmd_config(args: argparse.Namespace):
    """Show or edit configuration."""
    config_file = settings.get_config_file_path()

    if args.set_threshold is not None:
        if settings.set_threshold(args.set_threshold):
            print(f"✓ Echo threshold set to {args.set_threshold * 100:.0f}%")
            print(f"  Saved to {config_file}")
        else:
            print(f"✗ Failed to save threshold to {config_file}")
            return

    if args.show or args.set_threshold is not None:
        config_settings = settings.load_settings()
        print()
        print("=" * 60)
        print(f"echoping Configuration ({config_file})")
        print("=" * 60)
        for key, value in config_settings.items():
            print(f"  {key:20s}: {value}")
        print("=" * 60)


COMMANDS = {
    "devices": cmd_devices,
    "generate-ping": cmd_generate_ping,
    "tone": cmd_tone,
    "measure": cmd_measure,
    "analyze": cmd_analyze,
    "gui": cmd_gui,
    "check-device": cmd_check_device,
    "config": cmd_config,
}


def main(argv: list[str] | None = None):
    args = _parse_args(sys.argv[1:] if argv is None else argv)
    if args.verbose:
        logging.basicConfig(level=logging.DEBUG, format="%(asctime)s %(levelname)s %(name)s: %(message)s")
    handler = COMMANDS.get(args.command)
    if handler is None:
        raise SystemExit(f"Unknown command {args.command}")
    try:
        handler(args)
    except (ValueError, AllocationError, TimeoutError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        raise SystemExit(1) from exc


if __name__ == "__main__":
    main()
