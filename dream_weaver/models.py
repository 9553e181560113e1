from __future__ import annotations

import time
import uuid
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Any, Iterable

# Largest integer a JSON number round-trips exactly.
MAX_CREATED_AT = 2 ** 53 - 1


class WorkflowState(Enum):
    IDLE = "idle"
    RECORDING = "recording"
    ANALYZING = "analyzing"
    COMPLETE = "complete"
    ERROR = "error"


class Role(str, Enum):
    USER = "user"
    ASSISTANT = "assistant"


@dataclass(frozen=True)
class ChatTurn:
    role: Role
    text: str

    def __post_init__(self) -> None:
        if not self.text.strip():
            raise ValueError("Chat turn text cannot be empty.")


@dataclass(frozen=True)
class AnalysisResult:
    interpretation: str
    image_url: str


def normalize_tags(tags: Iterable[str]) -> tuple[str, ...]:
    seen: list[str] = []
    for raw in tags:
        tag = str(raw).strip().lower()
        if tag and tag not in seen:
            seen.append(tag)
    return tuple(seen)


@dataclass(frozen=True)
class DreamEntry:
    id: str
    transcript: str
    image_url: str
    interpretation: str
    created_at: int
    tags: tuple[str, ...] = field(default=())

    @classmethod
    def create(
        cls,
        transcript: str,
        analysis: AnalysisResult,
        now: float | None = None,
    ) -> "DreamEntry":
        timestamp = time.time() if now is None else now
        created = datetime.fromtimestamp(timestamp).astimezone()
        return cls(
            id=f"{created.isoformat()}-{uuid.uuid4().hex[:8]}",
            transcript=transcript,
            image_url=analysis.image_url,
            interpretation=analysis.interpretation,
            created_at=int(timestamp * 1000),
        )

    def with_tags(self, tags: Iterable[str]) -> "DreamEntry":
        return replace(self, tags=normalize_tags(tags))

    def add_tag(self, tag: str) -> "DreamEntry":
        return self.with_tags([*self.tags, tag])

    def remove_tag(self, tag: str) -> "DreamEntry":
        target = tag.strip().lower()
        return self.with_tags(t for t in self.tags if t != target)

    def to_record(self) -> dict[str, Any]:
        return {
            "id": self.id,
            "transcript": self.transcript,
            "imageUrl": self.image_url,
            "interpretation": self.interpretation,
            "tags": list(self.tags),
            "createdAt": self.created_at,
        }

    @classmethod
    def from_record(cls, record: Any) -> "DreamEntry":
        if not isinstance(record, dict):
            raise ValueError("Dream record must be an object.")
        entry_id = str(record.get("id", "")).strip()
        transcript = str(record.get("transcript", "")).strip()
        if not entry_id or not transcript:
            raise ValueError("Dream record is missing id or transcript.")
        raw_tags = record.get("tags") or []
        if not isinstance(raw_tags, list):
            raise ValueError("Dream record tags must be a list.")
        created_at = record.get("createdAt", 0)
        if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
            raise ValueError("Dream record createdAt must be a number.")
        # NaN and infinities fail the range check too.
        if not 0 <= created_at <= MAX_CREATED_AT:
            raise ValueError("Dream record createdAt is out of range.")
        return cls(
            id=entry_id,
            transcript=transcript,
            image_url=str(record.get("imageUrl", "")),
            interpretation=str(record.get("interpretation", "")),
            created_at=int(created_at),
            tags=normalize_tags(raw_tags),
        )


@dataclass(frozen=True)
class WorkflowSnapshot:
    state: WorkflowState
    active_dream: DreamEntry | None
    chat_history: tuple[ChatTurn, ...]
    error_message: str | None
    live_transcript: str
    chat_pending: bool
