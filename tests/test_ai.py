from __future__ import annotations

import unittest
from unittest import mock

import requests

from dream_weaver.ai import (
    GeminiProvider,
    _extract_image_data_uri,
    _history_contents,
    _http_post_json,
    _response_text,
    chat_system_instruction,
)
from dream_weaver.models import ChatTurn, Role

TRANSCRIPT = "I was swimming in an ocean of stars."


def _http_response(status: int = 200, payload=None, text: str = "") -> mock.Mock:
    response = mock.Mock()
    response.status_code = status
    response.text = text
    if isinstance(payload, Exception):
        response.json.side_effect = payload
    else:
        response.json.return_value = payload
    return response


class _BlockedResponse:
    @property
    def text(self):
        raise ValueError("candidate was blocked")


class HelperTests(unittest.TestCase):
    def test_extract_image_data_uri(self) -> None:
        uri = _extract_image_data_uri(
            {"predictions": [{"bytesBase64Encoded": "iVBORw0K", "mimeType": "image/jpeg"}]}
        )
        self.assertEqual(uri, "data:image/jpeg;base64,iVBORw0K")
        self.assertEqual(
            _extract_image_data_uri({"predictions": [{"bytesBase64Encoded": "AAAA"}]}),
            "data:image/png;base64,AAAA",
        )

    def test_extract_image_data_uri_errors(self) -> None:
        with self.assertRaisesRegex(RuntimeError, "filtered"):
            _extract_image_data_uri({"predictions": [{"raiFilteredReason": "unsafe"}]})
        for data in ({}, {"predictions": []}, {"predictions": ["x"]}, {"predictions": [{}]}):
            with self.subTest(data=data):
                with self.assertRaises(RuntimeError):
                    _extract_image_data_uri(data)

    def test_history_contents_maps_assistant_to_model(self) -> None:
        contents = _history_contents(
            [ChatTurn(Role.USER, "Why stars?"), ChatTurn(Role.ASSISTANT, "Aspiration.")]
        )
        self.assertEqual(
            contents,
            [
                {"role": "user", "parts": ["Why stars?"]},
                {"role": "model", "parts": ["Aspiration."]},
            ],
        )

    def test_response_text(self) -> None:
        self.assertEqual(_response_text(mock.Mock(text="  hello \n")), "hello")
        with self.assertRaises(RuntimeError):
            _response_text(mock.Mock(text="   "))
        with self.assertRaises(RuntimeError):
            _response_text(_BlockedResponse())

    def test_chat_system_instruction_embeds_dream(self) -> None:
        instruction = chat_system_instruction(TRANSCRIPT, "## Theme\nWonder.")
        self.assertIn(f"ORIGINAL DREAM: \"{TRANSCRIPT}\"", instruction)
        self.assertIn("INITIAL INTERPRETATION", instruction)


class HttpPostTests(unittest.TestCase):
    def test_returns_json_object(self) -> None:
        with mock.patch("dream_weaver.ai.requests.post", return_value=_http_response(payload={"ok": 1})) as post:
            data = _http_post_json("https://example.test", {"a": 1}, {"x-key": "k"}, timeout=5)
        self.assertEqual(data, {"ok": 1})
        kwargs = post.call_args.kwargs
        self.assertEqual(kwargs["headers"]["x-key"], "k")
        self.assertEqual(kwargs["headers"]["Content-Type"], "application/json")
        self.assertEqual(kwargs["timeout"], 5)

    def test_errors_become_runtime_errors(self) -> None:
        cases = [
            mock.Mock(side_effect=requests.Timeout("slow")),
            mock.Mock(side_effect=requests.ConnectionError("down")),
            mock.Mock(return_value=_http_response(status=500, text="server error")),
            mock.Mock(return_value=_http_response(payload=ValueError("not json"))),
            mock.Mock(return_value=_http_response(payload=["not", "a", "dict"])),
        ]
        for post in cases:
            with self.subTest(post=post):
                with mock.patch("dream_weaver.ai.requests.post", post):
                    with self.assertRaises(RuntimeError):
                        _http_post_json("https://example.test", {}, {}, timeout=5)


class GeminiProviderTests(unittest.TestCase):
    def setUp(self) -> None:
        patcher = mock.patch("dream_weaver.ai.genai")
        self.genai = patcher.start()
        self.addCleanup(patcher.stop)

    def test_requires_api_key(self) -> None:
        with self.assertRaises(ValueError):
            GeminiProvider("   ")
        provider = GeminiProvider(" key ", text_model="", image_model="")
        self.genai.configure.assert_called_once_with(api_key="key")
        self.assertEqual(provider.text_model, "gemini-2.5-flash")
        self.assertEqual(provider.image_model, "imagen-4.0-generate-001")

    def test_interpret_dream_sends_transcript(self) -> None:
        model = self.genai.GenerativeModel.return_value
        model.generate_content.return_value = mock.Mock(text="## Core Emotional Theme\nWonder.")
        provider = GeminiProvider("key", timeout_seconds=12)

        self.assertEqual(provider.interpret_dream(TRANSCRIPT), "## Core Emotional Theme\nWonder.")
        prompt = model.generate_content.call_args.args[0]
        self.assertIn(TRANSCRIPT, prompt)
        self.assertIn("Jungian", prompt)
        self.assertEqual(model.generate_content.call_args.kwargs["request_options"], {"timeout": 12})

    def test_illustrate_dream_posts_predict_request(self) -> None:
        payload = {"predictions": [{"bytesBase64Encoded": "AAAA", "mimeType": "image/png"}]}
        provider = GeminiProvider("key", image_model="imagen-test")
        with mock.patch("dream_weaver.ai.requests.post", return_value=_http_response(payload=payload)) as post:
            uri = provider.illustrate_dream(TRANSCRIPT)

        self.assertEqual(uri, "data:image/png;base64,AAAA")
        url = post.call_args.args[0]
        self.assertTrue(url.endswith("/models/imagen-test:predict"))
        body = post.call_args.kwargs["json"]
        self.assertIn(TRANSCRIPT, body["instances"][0]["prompt"])
        self.assertEqual(body["parameters"]["sampleCount"], 1)
        self.assertEqual(post.call_args.kwargs["headers"]["x-goog-api-key"], "key")

    def test_continue_chat_seeds_history(self) -> None:
        model = self.genai.GenerativeModel.return_value
        chat = model.start_chat.return_value
        chat.send_message.return_value = mock.Mock(text="Stars are guides.")
        provider = GeminiProvider("key")

        reply = provider.continue_chat(
            TRANSCRIPT,
            "Wonder.",
            "And the water?",
            history=[ChatTurn(Role.USER, "Why stars?"), ChatTurn(Role.ASSISTANT, "Aspiration.")],
        )

        self.assertEqual(reply, "Stars are guides.")
        instruction = self.genai.GenerativeModel.call_args.kwargs["system_instruction"]
        self.assertIn(TRANSCRIPT, instruction)
        history = model.start_chat.call_args.kwargs["history"]
        self.assertEqual([item["role"] for item in history], ["user", "model"])
        self.assertEqual(chat.send_message.call_args.args[0], "And the water?")


if __name__ == "__main__":
    unittest.main()
