"""Dream workflow state machine.

::

    IDLE --start_recording--> RECORDING --stop_recording--> ANALYZING
    ANALYZING --success--> COMPLETE --save_dream--> IDLE
    ANALYZING --failure--> ERROR --retry--> IDLE
    IDLE/COMPLETE --view_dream--> COMPLETE

Gateway calls are blocking and run outside the state lock; the UI invokes
``stop_recording`` and ``send_message`` from worker threads and re-renders
from the snapshots pushed to subscribers.
"""

from __future__ import annotations

import logging
import threading
import time
from typing import Callable, Iterable, Optional

from .errors import (
    AnalysisFailure,
    ChatFailure,
    InvalidTransition,
    TranscriptTooShort,
    UnsupportedCapability,
)
from .gateways import AnalysisGateway, ChatGateway
from .journal import Journal
from .models import ChatTurn, DreamEntry, Role, WorkflowSnapshot, WorkflowState
from .speech import CaptureSession, SpeechCapture

MIN_TRANSCRIPT_LENGTH = 10

UNSUPPORTED_MESSAGE = "Speech recognition is not supported on this system."
TOO_SHORT_MESSAGE = (
    "Dream recording is too short. Please try again and describe your dream in more detail."
)
ANALYSIS_FAILED_MESSAGE = "Failed to analyze the dream. The spirits are troubled. Please try again."
CHAT_FALLBACK_REPLY = "I'm sorry, I lost my train of thought. Could you ask that again?"

Listener = Callable[[WorkflowSnapshot], None]

logger = logging.getLogger(__name__)


def validate_transcript(transcript: str) -> str:
    text = (transcript or "").strip()
    if len(text) < MIN_TRANSCRIPT_LENGTH:
        raise TranscriptTooShort(
            f"Transcript has {len(text)} characters; at least {MIN_TRANSCRIPT_LENGTH} are required."
        )
    return text


class WorkflowController:
    def __init__(
        self,
        speech: SpeechCapture,
        analysis: AnalysisGateway,
        chat: ChatGateway,
        journal: Journal,
        clock: Callable[[], float] = time.time,
    ):
        self.speech = speech
        self.analysis = analysis
        self.chat = chat
        self.journal = journal
        self._clock = clock

        self._lock = threading.RLock()
        self._listeners: list[Listener] = []
        self._state = WorkflowState.IDLE
        self._active_dream: Optional[DreamEntry] = None
        self._chat_history: list[ChatTurn] = []
        self._chat_pending = False
        self._error_message: Optional[str] = None
        self._live_transcript = ""
        self._session: Optional[CaptureSession] = None
        # Bumped whenever the active dream changes so stale chat replies are dropped.
        self._dream_session = 0

    @property
    def state(self) -> WorkflowState:
        with self._lock:
            return self._state

    def snapshot(self) -> WorkflowSnapshot:
        with self._lock:
            return WorkflowSnapshot(
                state=self._state,
                active_dream=self._active_dream,
                chat_history=tuple(self._chat_history),
                error_message=self._error_message,
                live_transcript=self._live_transcript,
                chat_pending=self._chat_pending,
            )

    def subscribe(self, listener: Listener) -> Callable[[], None]:
        with self._lock:
            self._listeners.append(listener)

        def _unsubscribe() -> None:
            with self._lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return _unsubscribe

    def _notify(self) -> None:
        snapshot = self.snapshot()
        with self._lock:
            listeners = list(self._listeners)
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001
                logger.exception("Workflow listener failed.")

    def _require(self, *allowed: WorkflowState) -> None:
        if self._state not in allowed:
            names = ", ".join(s.name for s in allowed)
            raise InvalidTransition(f"Cannot do that while {self._state.name}; expected {names}.")

    def _fail(self, message: str) -> None:
        self._state = WorkflowState.ERROR
        self._error_message = message
        self._live_transcript = ""

    def _set_active(self, entry: Optional[DreamEntry]) -> None:
        self._active_dream = entry
        self._chat_history = []
        self._chat_pending = False
        self._dream_session += 1

    # Recording

    def start_recording(self) -> bool:
        with self._lock:
            self._require(WorkflowState.IDLE)
            self._live_transcript = ""
            try:
                if not self.speech.is_available():
                    raise UnsupportedCapability("Speech capture is unavailable.")
                self._session = self.speech.start(self._on_transcript)
            except UnsupportedCapability as exc:
                logger.warning("Cannot start recording: %s", exc)
                self._session = None
                self._fail(UNSUPPORTED_MESSAGE)
                started = False
            else:
                self._state = WorkflowState.RECORDING
                started = True
        self._notify()
        return started

    def _on_transcript(self, text: str) -> None:
        with self._lock:
            if self._state is not WorkflowState.RECORDING:
                return
            self._live_transcript = text
        self._notify()

    def stop_recording(self) -> Optional[DreamEntry]:
        with self._lock:
            self._require(WorkflowState.RECORDING)
            if self._session is None:
                raise InvalidTransition("Recording is already stopping.")
            session, self._session = self._session, None
        # The state stays RECORDING while the engine delivers its last phrase.
        final_text = session.stop()

        with self._lock:
            if self._state is not WorkflowState.RECORDING:
                logger.warning("Recording ended while stopping; discarding transcript.")
                return None
            try:
                transcript = validate_transcript(final_text)
            except TranscriptTooShort as exc:
                logger.info("Discarding recording: %s", exc)
                self._fail(TOO_SHORT_MESSAGE)
                transcript = None
            else:
                self._state = WorkflowState.ANALYZING
                self._live_transcript = transcript
        self._notify()
        if transcript is None:
            return None

        try:
            result = self.analysis.analyze(transcript)
        except AnalysisFailure as exc:
            logger.error("Dream analysis failed: %s", exc)
            with self._lock:
                self._fail(ANALYSIS_FAILED_MESSAGE)
            self._notify()
            return None

        entry = DreamEntry.create(transcript, result, now=self._clock())
        with self._lock:
            self._set_active(entry)
            self._state = WorkflowState.COMPLETE
            self._live_transcript = ""
        logger.info("Dream %s analyzed.", entry.id)
        self._notify()
        return entry

    # Dream session

    def view_dream(self, entry: DreamEntry) -> None:
        with self._lock:
            self._require(WorkflowState.IDLE, WorkflowState.COMPLETE)
            self._set_active(entry)
            self._state = WorkflowState.COMPLETE
        self._notify()

    def set_tags(self, tags: Iterable[str]) -> DreamEntry:
        return self._edit_active(lambda entry: entry.with_tags(tags))

    def add_tag(self, tag: str) -> DreamEntry:
        return self._edit_active(lambda entry: entry.add_tag(tag))

    def remove_tag(self, tag: str) -> DreamEntry:
        return self._edit_active(lambda entry: entry.remove_tag(tag))

    def _edit_active(self, edit: Callable[[DreamEntry], DreamEntry]) -> DreamEntry:
        with self._lock:
            updated = edit(self._require_active())
            self._active_dream = updated
        self._notify()
        return updated

    def _require_active(self) -> DreamEntry:
        self._require(WorkflowState.COMPLETE)
        if self._active_dream is None:
            raise InvalidTransition("No active dream.")
        return self._active_dream

    def save_dream(self) -> DreamEntry:
        with self._lock:
            entry = self._require_active()
            self.journal.upsert(entry)
            self._set_active(None)
            self._state = WorkflowState.IDLE
            self._live_transcript = ""
        logger.info("Dream %s saved to journal.", entry.id)
        self._notify()
        return entry

    def retry(self) -> None:
        with self._lock:
            self._require(WorkflowState.ERROR)
            self._error_message = None
            self._live_transcript = ""
            self._set_active(None)
            self._state = WorkflowState.IDLE
        self._notify()

    # Chat

    def send_message(self, text: str) -> Optional[str]:
        message = (text or "").strip()
        if not message:
            return None
        with self._lock:
            entry = self._require_active()
            self._chat_history.append(ChatTurn(Role.USER, message))
            history = tuple(self._chat_history)
            self._chat_pending = True
            dream_session = self._dream_session
        self._notify()

        try:
            reply = self.chat.respond(entry.transcript, entry.interpretation, history)
        except ChatFailure as exc:
            logger.warning("Chat failed, answering with fallback: %s", exc)
            reply = CHAT_FALLBACK_REPLY

        with self._lock:
            if dream_session != self._dream_session:
                logger.info("Dropping chat reply for a dream that is no longer active.")
                return None
            self._chat_history.append(ChatTurn(Role.ASSISTANT, reply))
            self._chat_pending = False
        self._notify()
        return reply

    # Journal

    def filtered_journal(self, term: str = "") -> list[DreamEntry]:
        return self.journal.search(term)
