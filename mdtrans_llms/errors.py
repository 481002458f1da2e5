"""
Exception hierarchy for MdTrans-LLMs.

The parser, chunk planner, diff engine and merge never raise on content;
malformed Markdown degrades to a best-effort classification. Everything
below is raised by stateful components or generation backends and is
caught by the translation pipeline, which keeps partial progress.
"""

from __future__ import annotations


class MdTransError(RuntimeError):
    """Base class for all MdTrans-LLMs errors."""

    user_message = "Translation failed."


class NoActiveSessionError(MdTransError):
    """A session operation was called before a session was started."""

    user_message = "No active translation session. Please translate the full document first."


class CancellationRequested(MdTransError):
    """The cancellation token was triggered during a pass."""

    user_message = "Translation cancelled."


class GenerationUnavailable(MdTransError):
    """No generation backend can be used (missing library, key or model)."""

    user_message = "No language models available. Check the backend and API key."


class PermissionDenied(MdTransError):
    user_message = "Permission denied. Check the API key and try again."


class NotFound(MdTransError):
    user_message = "Language model not found."


class Blocked(MdTransError):
    """The request was blocked or rate limited."""

    user_message = "Request was blocked. Please try again later."


class GenerationFailed(MdTransError):
    """Generic backend failure carrying the backend's message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message

    @property
    def user_message(self) -> str:
        return f"Language model error: {self.message}"


class TranslationTimeout(MdTransError):
    user_message = "Translation timed out."
