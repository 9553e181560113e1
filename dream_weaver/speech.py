"""Speech capture: live transcript snapshots from a recognition engine.

A :class:`SpeechCapture` hands out one :class:`CaptureSession` at a time.
Each session owns a fresh :class:`TranscriptBuffer`, pushes a snapshot string
(finalized segments plus the current interim segment) to its subscriber on
every recognition event, and returns the finalized text from ``stop()``.
"""

from __future__ import annotations

import logging
import threading
from typing import Callable, Optional, Protocol

import speech_recognition as sr

from .errors import InvalidTransition, UnsupportedCapability

SegmentCallback = Callable[[str, bool], None]
UpdateCallback = Callable[[str], None]
Stopper = Callable[[], None]

INTERIM_PLACEHOLDER = "..."
LISTEN_POLL_SECONDS = 1.0

logger = logging.getLogger(__name__)


class SpeechEngine(Protocol):
    def is_available(self) -> bool:
        ...

    def listen(self, on_segment: SegmentCallback) -> Stopper:
        ...


class TranscriptBuffer:
    def __init__(self) -> None:
        self._final: list[str] = []
        self._interim = ""

    def apply(self, segment: str, is_final: bool) -> str:
        text = (segment or "").strip()
        if is_final:
            if text:
                self._final.append(text)
            self._interim = ""
        else:
            self._interim = text
        return self.snapshot()

    @property
    def final_text(self) -> str:
        return " ".join(self._final).strip()

    def snapshot(self) -> str:
        return " ".join(part for part in [*self._final, self._interim] if part)


class CaptureSession:
    def __init__(self, on_update: UpdateCallback):
        self._on_update = on_update
        self._buffer = TranscriptBuffer()
        self._lock = threading.Lock()
        self._stopper: Optional[Stopper] = None
        self._stopped = False
        self._final_text = ""

    @property
    def is_active(self) -> bool:
        return not self._stopped

    def handle_segment(self, segment: str, is_final: bool) -> None:
        with self._lock:
            if self._stopped:
                return
            snapshot = self._buffer.apply(segment, is_final)
        try:
            self._on_update(snapshot)
        except Exception:  # noqa: BLE001
            logger.exception("Transcript subscriber failed.")

    def stop(self) -> str:
        with self._lock:
            if self._stopped:
                return self._final_text
            stopper = self._stopper
            self._stopper = None
        # The engine may deliver its last phrase while it winds down.
        if stopper is not None:
            stopper()
        with self._lock:
            self._stopped = True
            self._final_text = self._buffer.final_text
            return self._final_text


class SpeechCapture:
    def __init__(self, engine: Optional[SpeechEngine]):
        self._engine = engine
        self._lock = threading.Lock()
        self._session: Optional[CaptureSession] = None

    def is_available(self) -> bool:
        return self._engine is not None and self._engine.is_available()

    def start(self, on_update: UpdateCallback) -> CaptureSession:
        with self._lock:
            if self._session is not None and self._session.is_active:
                raise InvalidTransition("A capture session is already running.")
            if self._engine is None or not self._engine.is_available():
                raise UnsupportedCapability("No speech recognition facility available.")
            session = CaptureSession(on_update)
            try:
                session._stopper = self._engine.listen(session.handle_segment)
            except OSError as exc:
                raise UnsupportedCapability(f"Microphone could not be opened: {exc}") from exc
            self._session = session
        logger.info("Speech capture started.")
        return session


class MicrophoneSpeechEngine:
    """Default microphone + Google Web Speech recognition engine."""

    def __init__(
        self,
        language: str = "en-US",
        phrase_time_limit: Optional[float] = 15.0,
        ambient_duration: float = 0.5,
    ):
        self.language = language
        self.phrase_time_limit = phrase_time_limit
        self.ambient_duration = ambient_duration
        self._recognizer = sr.Recognizer()

    def is_available(self) -> bool:
        try:
            sr.Microphone.get_pyaudio()
        except AttributeError:
            logger.info("PyAudio is not installed; speech capture unavailable.")
            return False
        try:
            names = sr.Microphone.list_microphone_names()
        except OSError as exc:
            logger.info("No audio input devices: %s", exc)
            return False
        return bool(names)

    def listen(self, on_segment: SegmentCallback) -> Stopper:
        microphone = sr.Microphone()
        with microphone as source:
            self._recognizer.adjust_for_ambient_noise(source, duration=self.ambient_duration)

        stop_requested = threading.Event()

        def _capture() -> None:
            try:
                with microphone as source:
                    while not stop_requested.is_set():
                        try:
                            audio = self._recognizer.listen(
                                source,
                                timeout=LISTEN_POLL_SECONDS,
                                phrase_time_limit=self.phrase_time_limit,
                            )
                        except sr.WaitTimeoutError:
                            continue
                        # Transcribed even when stop was requested mid-phrase.
                        self._transcribe(audio, on_segment)
            except OSError as exc:
                logger.error("Microphone capture stopped: %s", exc)

        thread = threading.Thread(target=_capture, name="dream-weaver-speech", daemon=True)
        thread.start()

        def _stop() -> None:
            stop_requested.set()
            thread.join()

        return _stop

    def _transcribe(self, audio: sr.AudioData, on_segment: SegmentCallback) -> None:
        on_segment(INTERIM_PLACEHOLDER, False)
        try:
            text = self._recognizer.recognize_google(audio, language=self.language)
        except sr.UnknownValueError:
            on_segment("", False)
            return
        except sr.RequestError as exc:
            logger.warning("Speech recognition request failed: %s", exc)
            on_segment("", False)
            return
        on_segment(str(text), True)
