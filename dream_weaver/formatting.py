from __future__ import annotations

import base64
import binascii
from datetime import datetime
from typing import Sequence

LOADING_MESSAGES: tuple[str, ...] = (
    "Consulting the oracle...",
    "Painting your subconscious...",
    "Decoding the symbols...",
    "Navigating the dreamscape...",
    "Translating whispers from Morpheus...",
    "Weaving the threads of fate...",
)
LOADING_INTERVAL_MS = 2500


def loading_message(tick: int, messages: Sequence[str] = LOADING_MESSAGES) -> str:
    return messages[tick % len(messages)]


def interpretation_blocks(text: str) -> list[tuple[str, str]]:
    """Split an interpretation into ("heading" | "paragraph", text) blocks."""
    blocks: list[tuple[str, str]] = []
    for line in (text or "").split("\n"):
        stripped = line.strip()
        if stripped.startswith("##") or stripped.startswith("# "):
            heading = stripped.replace("#", "").strip()
            if heading:
                blocks.append(("heading", heading))
            continue
        if stripped:
            blocks.append(("paragraph", stripped))
    return blocks


def format_created_at(created_at_ms: int) -> str:
    moment = datetime.fromtimestamp(created_at_ms / 1000).astimezone()
    return moment.strftime("%x")


def transcript_preview(transcript: str, limit: int = 120) -> str:
    text = " ".join((transcript or "").split())
    if len(text) > limit:
        text = text[: limit - 3].rstrip() + "..."
    return f"\"{text}\""


def tag_labels(tags: Sequence[str], limit: int = 3) -> list[str]:
    return [f"#{tag}" for tag in tags[:limit]]


def decode_data_uri(uri: str) -> tuple[str, bytes]:
    """Return (mime_type, payload) for a base64 ``data:`` URI."""
    if not uri.startswith("data:") or "," not in uri:
        raise ValueError("Not a data URI.")
    header, encoded = uri[5:].split(",", 1)
    parts = header.split(";")
    if "base64" not in parts[1:]:
        raise ValueError("Only base64 data URIs are supported.")
    mime_type = parts[0] or "application/octet-stream"
    try:
        payload = base64.b64decode(encoded, validate=True)
    except (binascii.Error, ValueError) as exc:
        raise ValueError("Data URI payload is not valid base64.") from exc
    return mime_type, payload
