import unittest

import numpy as np

from echoping.config import AnalysisConfig, AudioDeviceConfig, PingConfig
from echoping.session import Session, SessionState, clamp_threshold


class FakeCapture:
    def __init__(self):
        self.enabled = False
        self.enable_calls = 0
        self.disable_calls = 0
        self.on_disable = None

    def enable(self):
        self.enabled = True
        self.enable_calls += 1

    def disable(self):
        self.enabled = False
        self.disable_calls += 1
        if self.on_disable is not None:
            self.on_disable()


class FakePlayer:
    def __init__(self):
        self.played = []

    def play(self, samples):
        self.played.append(samples)


def echo_recording(n=44100):
    rec = np.zeros(n, dtype=np.int16)
    rec[1000] = 32767
    rec[5000] = 10000
    return rec


class TestSession(unittest.TestCase):
    def setUp(self):
        self.capture = FakeCapture()
        self.player = FakePlayer()
        self.session = Session(
            AudioDeviceConfig(sample_rate=44100, recording_seconds=1.0),
            PingConfig(duration_ms=50, frequency_hz=1500),
            AnalysisConfig(threshold=0.15),
            capture=self.capture,
            player=self.player,
        )

    def feed(self, rec, block=4096):
        for start in range(0, len(rec), block):
            self.session.on_audio(rec[start:start + block])

    def test_initial_state(self):
        self.assertIs(self.session.state, SessionState.IDLE)
        self.assertEqual(self.session.threshold, 0.15)
        self.assertEqual(self.session.peaks, ())
        self.assertEqual(self.session.buffer.capacity, 44100)

    def test_start_test(self):
        self.assertTrue(self.session.start_test())
        self.assertIs(self.session.state, SessionState.RECORDING)
        self.assertTrue(self.capture.enabled)
        self.assertEqual(len(self.player.played), 1)
        self.assertEqual(len(self.player.played[0]), 2205)

    def test_start_rejected_while_recording(self):
        self.session.start_test()
        self.assertFalse(self.session.start_test())
        self.assertEqual(self.capture.enable_calls, 1)
        self.assertEqual(len(self.player.played), 1)

    def test_start_rejected_while_analyzing(self):
        results = []
        self.capture.on_disable = lambda: results.append(
            (self.session.state, self.session.start_test())
        )
        self.session.start_test()
        self.feed(echo_recording())
        self.session.poll()
        self.assertEqual(results, [(SessionState.ANALYZING, False)])
        self.assertIs(self.session.state, SessionState.DONE)

    def test_audio_ignored_outside_recording(self):
        self.assertEqual(self.session.on_audio(np.ones(10, dtype=np.int16)), 0)
        self.assertEqual(self.session.buffer.write_cursor, 0)

    def test_poll_waits_for_full_buffer(self):
        self.session.start_test()
        self.feed(echo_recording()[:40000])
        self.assertIs(self.session.poll(), SessionState.RECORDING)
        self.assertEqual(self.capture.disable_calls, 0)

    def test_full_cycle(self):
        self.session.start_test()
        # Device delivers more than one second; the tail is dropped
        self.feed(np.concatenate([echo_recording(), np.full(5000, 20000, dtype=np.int16)]))
        self.assertEqual(self.session.buffer.write_cursor, 44100)

        self.assertIs(self.session.poll(), SessionState.DONE)
        self.assertFalse(self.capture.enabled)
        self.assertEqual(self.capture.disable_calls, 1)
        peaks = self.session.peaks
        self.assertEqual([p.index for p in peaks], [1000, 5000])
        self.assertAlmostEqual(peaks[1].time_s, 4000 / 44100)

        # Polling again in Done changes nothing
        self.assertIs(self.session.poll(), SessionState.DONE)
        self.assertEqual(self.capture.disable_calls, 1)

    def test_threshold_adjust_reanalyzes_when_done(self):
        self.session.start_test()
        self.feed(echo_recording())
        self.session.poll()
        self.assertEqual(len(self.session.peaks), 2)

        self.assertEqual(self.session.adjust_threshold(0.75), 0.90)
        self.assertEqual([p.index for p in self.session.peaks], [1000])
        self.assertIs(self.session.state, SessionState.DONE)
        self.assertEqual(len(self.player.played), 1)

        self.session.adjust_threshold(-0.75)
        self.assertEqual(len(self.session.peaks), 2)

    def test_threshold_adjust_outside_done_does_not_analyze(self):
        self.session.start_test()
        self.feed(echo_recording()[:10000])
        self.session.adjust_threshold(0.01)
        self.assertEqual(self.session.threshold, 0.16)
        self.assertEqual(self.session.peaks, ())
        self.assertIs(self.session.state, SessionState.RECORDING)

    def test_threshold_clamped(self):
        self.assertEqual(self.session.adjust_threshold(-5), 0.01)
        self.assertEqual(self.session.adjust_threshold(5), 1.0)
        for _ in range(3):
            self.session.adjust_threshold(0.01)
        self.assertEqual(self.session.threshold, 1.0)
        self.assertEqual(clamp_threshold(0.15 + 0.01 + 0.01), 0.17)

    def test_new_test_resets_results(self):
        self.session.start_test()
        self.feed(echo_recording())
        self.session.poll()
        self.assertTrue(self.session.start_test())
        self.assertIs(self.session.state, SessionState.RECORDING)
        self.assertEqual(self.session.peaks, ())
        self.assertEqual(self.session.buffer.write_cursor, 0)
        self.assertEqual(int(np.abs(self.session.buffer.data).max()), 0)

    def test_silent_recording(self):
        self.session.start_test()
        self.feed(np.zeros(44100, dtype=np.int16))
        self.assertIs(self.session.poll(), SessionState.DONE)
        self.assertEqual(self.session.peaks, ())

    def test_snapshot(self):
        self.session.start_test()
        self.feed(echo_recording())
        self.session.poll()
        snap = self.session.snapshot()
        self.assertIs(snap.state, SessionState.DONE)
        self.assertEqual(snap.write_cursor, 44100)
        self.assertEqual(snap.capacity, 44100)
        self.assertEqual(snap.waveform[1000], 32767)
        self.assertEqual(len(snap.peaks), 2)
        self.assertEqual(snap.threshold, 0.15)
        self.assertEqual(snap.sample_rate, 44100)

    def test_without_collaborators(self):
        session = Session(AudioDeviceConfig(sample_rate=8000, recording_seconds=0.5))
        self.assertTrue(session.start_test())
        session.on_audio(np.zeros(4000, dtype=np.int16))
        self.assertIs(session.poll(), SessionState.DONE)

    def test_initial_threshold_kept_exactly(self):
        session = Session(analysis_cfg=AnalysisConfig(threshold=0.155))
        self.assertEqual(session.threshold, 0.155)

    def test_initial_threshold_out_of_range(self):
        with self.assertRaises(ValueError):
            Session(analysis_cfg=AnalysisConfig(threshold=3.0))
        with self.assertRaises(ValueError):
            Session(analysis_cfg=AnalysisConfig(threshold=0.0))

    def test_unknown_medium(self):
        with self.assertRaises(ValueError):
            Session(analysis_cfg=AnalysisConfig(medium="vacuum"))


if __name__ == '__main__':
    unittest.main()
