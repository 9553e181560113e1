"""Failure taxonomy for the dream workflow.

User-facing failures end up as a message in the ``ERROR`` workflow state,
except :class:`ChatFailure`, which the controller masks with a fallback reply.
:class:`InvalidHistory` and :class:`InvalidTransition` signal programming
errors and are never shown to the user.
"""

from __future__ import annotations


class DreamWeaverError(Exception):
    pass


class UnsupportedCapability(DreamWeaverError):
    """No speech capture facility exists on this host."""


class TranscriptTooShort(DreamWeaverError):
    pass


class AnalysisFailure(DreamWeaverError):
    """Interpretation or image generation failed; nothing partial is kept."""


class ChatFailure(DreamWeaverError):
    pass


class PersistenceFailure(DreamWeaverError):
    pass


class InvalidHistory(DreamWeaverError, ValueError):
    """Chat history was empty or did not end with a user turn."""


class InvalidTransition(DreamWeaverError, RuntimeError):
    """An operation was invoked from a workflow state that does not allow it."""
