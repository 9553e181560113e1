from __future__ import annotations

import logging
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from typing import Optional, Protocol, Sequence

from .errors import AnalysisFailure, ChatFailure, InvalidHistory
from .models import AnalysisResult, ChatTurn, Role

logger = logging.getLogger(__name__)


class AnalysisTimeout(TimeoutError):
    pass


class DreamProvider(Protocol):
    def interpret_dream(self, transcript: str) -> str:
        ...

    def illustrate_dream(self, transcript: str) -> str:
        ...

    def continue_chat(
        self,
        transcript: str,
        interpretation: str,
        message: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        ...


class AnalysisGateway:
    """Interpretation and image for a transcript, requested together.

    Both sub-requests must succeed; a dream without its image or its text is
    not kept.
    """

    def __init__(self, provider: Optional[DreamProvider], timeout_seconds: float = 120.0):
        self.provider = provider
        self.timeout_seconds = timeout_seconds

    def analyze(self, transcript: str) -> AnalysisResult:
        text = (transcript or "").strip()
        if not text:
            raise AnalysisFailure("Transcript is empty.")
        if self.provider is None:
            raise AnalysisFailure("No AI provider configured.")

        executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="dream-analysis")
        try:
            interpretation_future = executor.submit(self.provider.interpret_dream, text)
            image_future = executor.submit(self.provider.illustrate_dream, text)
            _, pending = wait(
                [interpretation_future, image_future],
                timeout=self.timeout_seconds,
                return_when=FIRST_EXCEPTION,
            )
            try:
                # A failed future is finished, so its error wins over a pending sibling.
                for future in (interpretation_future, image_future):
                    if future.done():
                        future.result()
                if pending:
                    raise AnalysisTimeout(f"Dream analysis timed out after {self.timeout_seconds:g}s.")
                interpretation = interpretation_future.result()
                image_url = image_future.result()
            except AnalysisTimeout as exc:
                logger.error("%s", exc)
                raise AnalysisFailure(str(exc)) from exc
            except Exception as exc:  # noqa: BLE001
                logger.exception("Dream analysis request failed.")
                raise AnalysisFailure("Failed to generate dream analysis.") from exc
        finally:
            # A timed-out request keeps its worker thread until the provider's own
            # request timeout fires; the app keeps that at or below this join timeout.
            executor.shutdown(wait=False, cancel_futures=True)

        interpretation = (interpretation or "").strip() if isinstance(interpretation, str) else ""
        image_url = (image_url or "").strip() if isinstance(image_url, str) else ""
        if not interpretation or not image_url:
            logger.error("Dream analysis incomplete (interpretation=%s, image=%s).",
                         bool(interpretation), bool(image_url))
            raise AnalysisFailure("Failed to get complete analysis from API.")
        return AnalysisResult(interpretation=interpretation, image_url=image_url)


class ChatGateway:
    """Next assistant turn in a conversation grounded on one dream.

    Only the latest user turn is sent as the new message; earlier turns are
    left to the conversational service unless ``transmit_history`` is set.
    """

    def __init__(self, provider: Optional[DreamProvider], transmit_history: bool = False):
        self.provider = provider
        self.transmit_history = transmit_history

    def respond(
        self,
        transcript: str,
        interpretation: str,
        history: Sequence[ChatTurn],
    ) -> str:
        if not history:
            raise InvalidHistory("Chat history is empty.")
        latest = history[-1]
        if latest.role is not Role.USER:
            raise InvalidHistory("Last message in history is not from the user.")
        if self.provider is None:
            raise ChatFailure("No AI provider configured.")

        prior = tuple(history[:-1]) if self.transmit_history else ()
        try:
            reply = self.provider.continue_chat(transcript, interpretation, latest.text, prior)
        except Exception as exc:  # noqa: BLE001
            logger.exception("Chat request failed.")
            raise ChatFailure("Failed to get chat response.") from exc
        if not isinstance(reply, str) or not reply.strip():
            raise ChatFailure("Chat response was empty.")
        return reply.strip()
