from __future__ import annotations

import logging
from typing import Any, Sequence

import google.generativeai as genai
import requests

from .models import ChatTurn, Role

API_BASE = "https://generativelanguage.googleapis.com/v1beta"
DEFAULT_TEXT_MODEL = "gemini-2.5-flash"
DEFAULT_IMAGE_MODEL = "imagen-4.0-generate-001"

logger = logging.getLogger(__name__)


class GeminiProvider:
    """Gemini text + Imagen image provider for dream analysis and chat."""

    def __init__(
        self,
        api_key: str,
        text_model: str = DEFAULT_TEXT_MODEL,
        image_model: str = DEFAULT_IMAGE_MODEL,
        timeout_seconds: float = 90.0,
    ):
        if not api_key.strip():
            raise ValueError("Gemini API key is required.")
        self.api_key = api_key.strip()
        self.text_model = text_model.strip() or DEFAULT_TEXT_MODEL
        self.image_model = image_model.strip() or DEFAULT_IMAGE_MODEL
        self.timeout_seconds = timeout_seconds
        genai.configure(api_key=self.api_key)

    def interpret_dream(self, transcript: str) -> str:
        model = genai.GenerativeModel(self.text_model)
        response = model.generate_content(
            _interpretation_prompt(transcript),
            request_options={"timeout": self.timeout_seconds},
        )
        return _response_text(response)

    def illustrate_dream(self, transcript: str) -> str:
        payload = {
            "instances": [{"prompt": _image_prompt(transcript)}],
            "parameters": {"sampleCount": 1, "aspectRatio": "1:1"},
        }
        data = _http_post_json(
            f"{API_BASE}/models/{self.image_model}:predict",
            payload,
            headers={"x-goog-api-key": self.api_key},
            timeout=self.timeout_seconds,
        )
        return _extract_image_data_uri(data)

    def continue_chat(
        self,
        transcript: str,
        interpretation: str,
        message: str,
        history: Sequence[ChatTurn] = (),
    ) -> str:
        model = genai.GenerativeModel(
            self.text_model,
            system_instruction=chat_system_instruction(transcript, interpretation),
        )
        chat = model.start_chat(history=_history_contents(history))
        response = chat.send_message(
            message,
            request_options={"timeout": self.timeout_seconds},
        )
        return _response_text(response)


def _interpretation_prompt(transcript: str) -> str:
    return (
        "You are a dream analyst specializing in Jungian psychology. "
        "Analyze the following dream transcript. Provide a structured interpretation "
        "focusing on archetypes, symbols, and the dreamer's potential emotional state. "
        "Structure your response in Markdown with clear headings for "
        "'Core Emotional Theme', 'Key Symbols & Archetypes', and 'Potential Meaning'. "
        f"Dream: \"{transcript.strip()}\""
    )


def _image_prompt(transcript: str) -> str:
    return (
        "Create a surrealist, dream-like painting representing the core emotional theme "
        "of the following dream. Focus on symbolism and abstract concepts over literal "
        "depiction. Do not include any text or words in the image. "
        f"Dream: \"{transcript.strip()}\""
    )


def chat_system_instruction(transcript: str, interpretation: str) -> str:
    return (
        "You are a helpful assistant specializing in dream interpretation, continuing a "
        "conversation about a specific dream. Your task is to answer the user's follow-up "
        "questions about symbols and themes.\n"
        "---\n"
        f"ORIGINAL DREAM: \"{transcript.strip()}\"\n"
        "---\n"
        f"INITIAL INTERPRETATION: \"{interpretation.strip()}\"\n"
        "---\n"
        "Now, answer the user's question based on this context."
    )


def _history_contents(history: Sequence[ChatTurn]) -> list[dict[str, Any]]:
    contents: list[dict[str, Any]] = []
    for turn in history:
        role = "user" if turn.role is Role.USER else "model"
        contents.append({"role": role, "parts": [turn.text]})
    return contents


def _response_text(response: Any) -> str:
    try:
        text = response.text
    except ValueError as exc:
        # Raised by the SDK when the candidate was blocked or has no text part.
        raise RuntimeError(f"Gemini response did not include text output: {exc}") from exc
    if not isinstance(text, str) or not text.strip():
        raise RuntimeError("Gemini response did not include text output.")
    return text.strip()


def _http_post_json(
    url: str,
    payload: dict[str, Any],
    headers: dict[str, str],
    timeout: float,
) -> dict[str, Any]:
    try:
        response = requests.post(
            url,
            json=payload,
            headers={"Content-Type": "application/json", **headers},
            timeout=timeout,
        )
    except requests.Timeout as exc:
        raise RuntimeError(f"AI request timed out after {timeout:g}s.") from exc
    except requests.RequestException as exc:
        raise RuntimeError(f"AI request failed: {exc}") from exc

    if response.status_code >= 400:
        raise RuntimeError(f"AI request failed ({response.status_code}): {response.text[:500]}")

    try:
        data = response.json()
    except ValueError as exc:
        raise RuntimeError("AI provider returned non-JSON response.") from exc
    if not isinstance(data, dict):
        raise RuntimeError("AI provider returned an unexpected payload.")
    return data


def _extract_image_data_uri(data: dict[str, Any]) -> str:
    predictions = data.get("predictions")
    if not isinstance(predictions, list) or not predictions:
        raise RuntimeError("Imagen response missing predictions.")
    first = predictions[0]
    if not isinstance(first, dict):
        raise RuntimeError("Imagen response prediction is malformed.")
    encoded = first.get("bytesBase64Encoded")
    if not isinstance(encoded, str) or not encoded.strip():
        reason = first.get("raiFilteredReason")
        if reason:
            raise RuntimeError(f"Imagen filtered the image: {reason}")
        raise RuntimeError("Imagen response did not include image bytes.")
    mime_type = str(first.get("mimeType") or "image/png")
    return f"data:{mime_type};base64,{encoded.strip()}"
