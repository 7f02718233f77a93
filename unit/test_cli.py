import argparse
import contextlib
import importlib
import io
import json
import sys
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
import soundfile as sf

from echoping import cli, config, settings


class TestCli(unittest.TestCase):
    def setUp(self):
        self._tmp = tempfile.TemporaryDirectory()
        self.tmp = Path(self._tmp.name)
        for patcher in (
            mock.patch.object(settings, "CONFIG_FILE", self.tmp / "init.json"),
            mock.patch.object(config, "AUDIO_CONFIG_FILE", self.tmp / "audio_config.json"),
        ):
            patcher.start()
            self.addCleanup(patcher.stop)

    def tearDown(self):
        self._tmp.cleanup()

    def run_cli(self, *argv, main=None):
        out = io.StringIO()
        with contextlib.redirect_stdout(out):
            (main or cli.main)(list(argv))
        return out.getvalue()

    def test_analyze_wav(self):
        rec = np.zeros(44100, dtype=np.int16)
        rec[1000] = 32767
        rec[5000] = 10000
        path = self.tmp / "rec.wav"
        sf.write(path, rec, 44100, subtype="PCM_16")

        output = self.run_cli("analyze", str(path), "--threshold", "0.15")
        self.assertIn("Peaks found: 2", output)
        self.assertIn("First echo distance: 15.56 m", output)

        output = self.run_cli("analyze", str(path), "--threshold", "0.9")
        self.assertIn("Peaks found: 1", output)

    def test_generate_ping(self):
        path = self.tmp / "ping.wav"
        output = self.run_cli("generate-ping", str(path), "--sr", "44100", "--duration", "20")
        self.assertIn("Saved", output)
        data, sr = sf.read(path, dtype="int16")
        self.assertEqual(sr, 44100)
        self.assertEqual(len(data), 882)

    def test_generate_ping_uses_audio_config_sample_rate(self):
        (self.tmp / "audio_config.json").write_text(json.dumps({"sample_rate": 48000}))
        path = self.tmp / "ping.wav"
        self.run_cli("generate-ping", str(path), "--duration", "20")
        data, sr = sf.read(path, dtype="int16")
        self.assertEqual(sr, 48000)
        self.assertEqual(len(data), 960)

    def test_audio_config_file_reaches_device_config(self):
        (self.tmp / "audio_config.json").write_text(json.dumps({"sample_rate": 48000, "recording_seconds": 2.0}))
        cfg = cli._build_audio_cfg(argparse.Namespace())
        self.assertEqual(cfg.sample_rate, 48000)
        self.assertEqual(cfg.recording_seconds, 2.0)
        self.assertEqual(cfg.capacity, 96000)

        # Command-line flags still win
        cfg = cli._build_audio_cfg(argparse.Namespace(sr=22050, rec_device="3"))
        self.assertEqual(cfg.sample_rate, 22050)
        self.assertEqual(cfg.rec_device, 3)

    def test_threshold_flag_validated(self):
        cfg = cli._build_analysis_cfg(argparse.Namespace(threshold=0.155, medium=None))
        self.assertEqual(cfg.threshold, 0.155)
        with self.assertRaises(ValueError):
            cli._build_analysis_cfg(argparse.Namespace(threshold=3.0, medium=None))

    def test_out_of_range_threshold_exits_for_every_command(self):
        path = self.tmp / "rec.wav"
        sf.write(path, np.zeros(100, dtype=np.int16), 44100, subtype="PCM_16")
        for argv in (("analyze", str(path), "--threshold", "3"), ("measure", "--threshold", "3")):
            with self.subTest(argv=argv):
                with contextlib.redirect_stderr(io.StringIO()):
                    with self.assertRaises(SystemExit) as ctx:
                        self.run_cli(*argv)
                self.assertEqual(ctx.exception.code, 1)

    def test_file_commands_run_without_sounddevice(self):
        with mock.patch.dict(sys.modules, {"sounddevice": None}):
            sys.modules.pop("echoping.cli", None)
            sys.modules.pop("echoping.io.audio", None)
            fresh = importlib.import_module("echoping.cli")

            path = self.tmp / "ping.wav"
            output = self.run_cli("generate-ping", str(path), "--sr", "8000", main=fresh.main)
            self.assertIn("Saved", output)

            err = io.StringIO()
            with contextlib.redirect_stderr(err):
                with self.assertRaises(SystemExit) as ctx:
                    self.run_cli("devices", main=fresh.main)
            self.assertEqual(ctx.exception.code, 1)
            self.assertIn("audio backend not available", err.getvalue())

    def test_device_flags_per_command(self):
        args = cli._parse_args(["tone", "--play-device", "2"])
        self.assertEqual(args.play_device, "2")
        self.assertFalse(hasattr(args, "rec_device"))
        for command in ("measure", "gui", "check-device"):
            args = cli._parse_args([command, "--play-device", "1", "--rec-device", "mic"])
            self.assertEqual((args.play_device, args.rec_device), ("1", "mic"))

    def test_config_set_threshold(self):
        output = self.run_cli("config", "--set-threshold", "0.25")
        self.assertIn("25%", output)
        self.assertEqual(settings.get_threshold(), 0.25)

    def test_invalid_threshold_exits(self):
        with contextlib.redirect_stderr(io.StringIO()):
            with self.assertRaises(SystemExit) as ctx:
                self.run_cli("config", "--set-threshold", "3")
        self.assertEqual(ctx.exception.code, 1)

    def test_format_peaks(self):
        from echoping.dsp.peaks import Peak

        self.assertIn("No peaks", cli.format_peaks([]))
        table = cli.format_peaks([Peak(10, 300), Peak(5000, 100, 0.1, 17.15)])
        self.assertIn("direct", table.splitlines()[1])
        self.assertIn("17.150", table)


if __name__ == '__main__':
    unittest.main()
