"""
Error taxonomy for comic generation.

ValidationError and StateError are raised synchronously and never touch the
session. GenerationError is stored on the session as ``last_error``.
"""
from typing import Optional


class ComicError(Exception):
    """Base class for every comic pipeline error."""


class ValidationError(ComicError):
    """Malformed input, e.g. a cast member without a portrait."""


class StateError(ComicError):
    """Operation is not valid for the current session state."""


class InvalidPageIndexError(StateError, ValidationError):
    """Regenerate was asked for a page that does not exist."""

    def __init__(self, page_index: int, page_count: int):
        self.page_index = page_index
        self.page_count = page_count
        super().__init__(
            f"Page index {page_index} out of range (session has {page_count} pages)"
        )


class GenerationError(ComicError):
    """A narrative or image call failed or returned an unusable response."""

    def __init__(self, message: str, stage: Optional[str] = None, page_index: Optional[int] = None):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.page_index = page_index

    def __str__(self) -> str:
        return self.message
