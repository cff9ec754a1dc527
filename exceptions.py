"""
Error taxonomy.

Every error carries a short user-facing message; the bot renders that
message as-is and never needs to inspect the exception type.

  BuscanimeError
    ├── NormalizationError      payload problems, user must pick another image
    │     ├── DecodeError
    │     └── SizeUnachievable
    └── SubmitError             problems talking to the search service
          ├── TransientSubmitError   retried by the orchestrator
          └── CollaboratorError      well-formed refusal, never retried
"""
from __future__ import annotations

from typing import Optional


class BuscanimeError(Exception):
    """Base class for every error the bot knows how to show to a user."""

    default_message = "Something went wrong. Please try again."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class NormalizationError(BuscanimeError):
    default_message = "Could not prepare this image. Please choose another one."


class DecodeError(NormalizationError):
    default_message = "This file could not be read as an image."


class SizeUnachievable(NormalizationError):
    default_message = "This image is too large even after compression. Try a smaller one."


class SubmitError(BuscanimeError):
    default_message = "The search failed. Please try again."

    def __init__(self, message: Optional[str] = None, status: Optional[int] = None) -> None:
        self.status = status
        super().__init__(message)


class TransientSubmitError(SubmitError):
    default_message = "The search service is unreachable right now. Please try again later."


class CollaboratorError(SubmitError):
    default_message = "The search service could not process this image."
