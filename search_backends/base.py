"""
Abstract base for reverse-image search backends.
Every backend must return the same SearchMatch list; the orchestrator
doesn't care which service answered.
"""
from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Optional

from image_normalizer import NormalizedImage
from title_extractor import extract_title


@dataclass(frozen=True)
class SearchMatch:
    filename: str                   # source video filename, may embed [bracketed] tags
    episode: Optional[str]          # "1", "12.5", "1|2" … or None for films
    similarity: float               # 0–1
    video: Optional[str]            # preview clip URL
    image: Optional[str] = None     # preview frame URL
    anilist_id: Optional[int] = None
    from_seconds: Optional[float] = None
    to_seconds: Optional[float] = None

    @property
    def title(self) -> str:
        return extract_title(self.filename)

    @property
    def similarity_percent(self) -> str:
        """e.g. 0.9412 → '94.12%'"""
        return f"{self.similarity * 100:.2f}%"

    @property
    def timestamp(self) -> Optional[str]:
        """Scene start as m:ss, when the service reported it."""
        if self.from_seconds is None:
            return None
        minutes, seconds = divmod(int(self.from_seconds), 60)
        return f"{minutes}:{seconds:02d}"


class SearchBackend(ABC):
    """All backends must implement this interface."""

    @abstractmethod
    async def search(self, image: NormalizedImage) -> list[SearchMatch]:
        """
        Submit `image` and return matches, best-first (service order is kept).

        Raises:
            TransientSubmitError: network / 5xx-class failure, safe to retry.
            CollaboratorError:    the service answered but refused or found nothing.
        """
        ...

    @property
    @abstractmethod
    def name(self) -> str:
        """Human-readable backend name for logs/display."""
        ...
