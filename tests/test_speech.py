from __future__ import annotations

import threading
import time
import unittest
from unittest import mock

import speech_recognition as sr

from dream_weaver.errors import InvalidTransition, UnsupportedCapability
from dream_weaver.speech import (
    CaptureSession,
    MicrophoneSpeechEngine,
    SpeechCapture,
    TranscriptBuffer,
)


class FakeEngine:
    def __init__(self, available: bool = True, listen_error: Exception | None = None) -> None:
        self.available = available
        self.listen_error = listen_error
        self.on_segment = None
        self.stop_calls = 0
        self.final_on_stop: str | None = None

    def is_available(self) -> bool:
        return self.available

    def listen(self, on_segment):
        if self.listen_error is not None:
            raise self.listen_error
        self.on_segment = on_segment
        return self._stop

    def _stop(self) -> None:
        self.stop_calls += 1
        if self.final_on_stop:
            self.on_segment(self.final_on_stop, True)


class TranscriptBufferTests(unittest.TestCase):
    def test_snapshot_joins_finals_and_interim(self) -> None:
        buffer = TranscriptBuffer()
        self.assertEqual(buffer.apply("I was", True), "I was")
        self.assertEqual(buffer.apply("in a", False), "I was in a")
        self.assertEqual(buffer.apply("in a forest", True), "I was in a forest")
        self.assertEqual(buffer.final_text, "I was in a forest")

    def test_empty_interim_clears_placeholder(self) -> None:
        buffer = TranscriptBuffer()
        buffer.apply("hello", True)
        buffer.apply("...", False)
        self.assertEqual(buffer.apply("", False), "hello")
        self.assertEqual(buffer.final_text, "hello")


class CaptureSessionTests(unittest.TestCase):
    def test_updates_stop_after_session_ends(self) -> None:
        updates: list[str] = []
        session = CaptureSession(updates.append)
        session.handle_segment("a dark sea", True)
        self.assertEqual(session.stop(), "a dark sea")
        session.handle_segment("ignored", True)
        self.assertEqual(updates, ["a dark sea"])
        self.assertFalse(session.is_active)
        self.assertEqual(session.stop(), "a dark sea")

    def test_subscriber_errors_are_logged(self) -> None:
        def explode(_text: str) -> None:
            raise RuntimeError("boom")

        session = CaptureSession(explode)
        with self.assertLogs("dream_weaver.speech", level="ERROR"):
            session.handle_segment("hello", True)
        self.assertEqual(session.stop(), "hello")


class SpeechCaptureTests(unittest.TestCase):
    def test_session_streams_snapshots_and_returns_final_text(self) -> None:
        engine = FakeEngine()
        capture = SpeechCapture(engine)
        updates: list[str] = []
        session = capture.start(updates.append)

        engine.on_segment("...", False)
        engine.on_segment("I was flying", True)
        engine.final_on_stop = "over the mountains"
        self.assertEqual(session.stop(), "I was flying over the mountains")
        self.assertEqual(updates, ["...", "I was flying", "I was flying over the mountains"])
        self.assertEqual(engine.stop_calls, 1)

    def test_unavailable_engine_is_unsupported(self) -> None:
        for capture in (SpeechCapture(None), SpeechCapture(FakeEngine(available=False))):
            with self.subTest(capture=capture):
                self.assertFalse(capture.is_available())
                with self.assertRaises(UnsupportedCapability):
                    capture.start(lambda _text: None)

    def test_microphone_open_failure_is_unsupported(self) -> None:
        capture = SpeechCapture(FakeEngine(listen_error=OSError("no device")))
        with self.assertRaises(UnsupportedCapability):
            capture.start(lambda _text: None)

    def test_one_session_at_a_time(self) -> None:
        capture = SpeechCapture(FakeEngine())
        session = capture.start(lambda _text: None)
        with self.assertRaises(InvalidTransition):
            capture.start(lambda _text: None)
        session.stop()
        capture.start(lambda _text: None).stop()


class MicrophoneSpeechEngineTests(unittest.TestCase):
    def setUp(self) -> None:
        self.engine = MicrophoneSpeechEngine(language="en-GB", ambient_duration=0)
        self.recognizer = mock.Mock()
        self.engine._recognizer = self.recognizer
        self.segments: list[tuple[str, bool]] = []
        patcher = mock.patch("dream_weaver.speech.sr.Microphone")
        patcher.start()
        self.addCleanup(patcher.stop)

    def _collect(self, text: str, is_final: bool) -> None:
        self.segments.append((text, is_final))

    def test_phrase_in_progress_at_stop_is_transcribed(self) -> None:
        phrase_started = threading.Event()
        phrase_done = threading.Event()

        def fake_listen(source, timeout=None, phrase_time_limit=None):
            if phrase_started.is_set():
                time.sleep(0.01)
                raise sr.WaitTimeoutError("silence")
            phrase_started.set()
            phrase_done.wait(5)
            return "audio"

        self.recognizer.listen.side_effect = fake_listen
        self.recognizer.recognize_google.return_value = "and then I woke up"

        stop = self.engine.listen(self._collect)
        self.assertTrue(phrase_started.wait(5))
        stopper = threading.Thread(target=stop)
        stopper.start()
        time.sleep(0.05)
        phrase_done.set()
        stopper.join(5)

        self.assertFalse(stopper.is_alive())
        self.assertEqual(self.segments, [("...", False), ("and then I woke up", True)])
        self.recognizer.recognize_google.assert_called_once_with("audio", language="en-GB")

    def test_recognition_errors_clear_the_placeholder(self) -> None:
        self.recognizer.recognize_google.side_effect = sr.UnknownValueError()
        self.engine._transcribe("audio", self._collect)
        self.recognizer.recognize_google.side_effect = sr.RequestError("quota")
        with self.assertLogs("dream_weaver.speech", level="WARNING"):
            self.engine._transcribe("audio", self._collect)
        self.assertEqual(
            self.segments,
            [("...", False), ("", False), ("...", False), ("", False)],
        )


if __name__ == "__main__":
    unittest.main()
