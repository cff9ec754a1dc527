"""
trace.moe backend.

API docs: https://soruly.github.io/trace.moe-api/

  POST https://api.trace.moe/search
  Content-Type: multipart/form-data; field "image" = the picture

Response:
  {
    "frameCount": 745506,
    "error": "",
    "result": [
      {
        "anilist": 99939,
        "filename": "[Ohys-Raws] Nekopara - 03 (AT-X 1280x720 x264 AAC).mp4",
        "episode": 3,
        "from": 97.75, "to": 98.92,
        "similarity": 0.9440424588727485,
        "video": "https://media.trace.moe/video/…",
        "image": "https://media.trace.moe/image/…"
      },
      …
    ]
  }

Results are already sorted best-first; we keep that order.

Failure classification (drives the orchestrator's retry policy):
  • connection errors, timeouts, 5xx, 429   → TransientSubmitError
  • other 4xx, non-empty "error", bad JSON,
    empty "result"                          → CollaboratorError
"""
from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

import config
from exceptions import CollaboratorError, TransientSubmitError
from image_normalizer import NormalizedImage
from search_backends.base import SearchBackend, SearchMatch

logger = logging.getLogger(__name__)


class TraceMoeBackend(SearchBackend):

    def __init__(
        self,
        url: str = config.SEARCH_URL,
        timeout: float = config.REQUEST_TIMEOUT_SECONDS,
    ) -> None:
        self._url = url
        self._timeout = timeout

    @property
    def name(self) -> str:
        return "trace.moe"

    async def search(self, image: NormalizedImage) -> list[SearchMatch]:
        data = await self._post(image)

        error = data.get("error")
        if error:
            raise CollaboratorError(f"trace.moe: {error}")

        raw_results = data.get("result") or []
        matches = [m for m in (_parse_match(raw) for raw in raw_results) if m is not None]
        logger.info("trace.moe returned %d matches for %s", len(matches), image.filename)

        if not matches:
            raise CollaboratorError("No match found for this image.")
        return matches

    # ── HTTP helper ───────────────────────────────────────────────────────────

    async def _post(self, image: NormalizedImage) -> dict:
        """Single multipart POST. Returns the decoded JSON body."""
        form = aiohttp.FormData()
        form.add_field(
            "image",
            image.content,
            filename=image.filename,
            content_type=image.media_type,
        )
        try:
            async with aiohttp.ClientSession() as session:
                async with session.post(
                    self._url,
                    data=form,
                    timeout=aiohttp.ClientTimeout(total=self._timeout),
                ) as resp:
                    if resp.status >= 500 or resp.status == 429:
                        text = await resp.text()
                        logger.warning("trace.moe error %d: %s", resp.status, text[:200])
                        raise TransientSubmitError(status=resp.status)
                    if resp.status != 200:
                        text = await resp.text()
                        logger.warning("trace.moe rejected request %d: %s", resp.status, text[:200])
                        raise CollaboratorError(_rejection_message(resp.status), status=resp.status)
                    try:
                        data = await resp.json(content_type=None)
                    except ValueError as exc:
                        raise CollaboratorError("The search service sent an unreadable response.") from exc
        except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
            logger.warning("trace.moe request failed: %s", exc)
            raise TransientSubmitError() from exc

        if not isinstance(data, dict):
            raise CollaboratorError("The search service sent an unreadable response.")
        return data


# ── Parser ────────────────────────────────────────────────────────────────────

def _parse_match(raw: dict) -> Optional[SearchMatch]:
    try:
        if not raw or not isinstance(raw, dict):
            return None
        filename = raw.get("filename")
        if not filename or raw.get("similarity") is None:
            return None

        anilist = raw.get("anilist")
        # With anilistInfo enabled the service nests the id in an object
        if isinstance(anilist, dict):
            anilist = anilist.get("id")

        episode = raw.get("episode")
        if isinstance(episode, list):
            episode = "|".join(str(e) for e in episode)

        return SearchMatch(
            filename=str(filename),
            episode=str(episode) if episode not in (None, "") else None,
            similarity=max(0.0, min(1.0, float(raw["similarity"]))),
            video=raw.get("video"),
            image=raw.get("image"),
            anilist_id=int(anilist) if anilist is not None else None,
            from_seconds=_float_or_none(raw.get("from")),
            to_seconds=_float_or_none(raw.get("to")),
        )
    except (ValueError, TypeError) as exc:
        logger.warning("Failed to parse trace.moe match %s: %s", raw.get("filename", "?"), exc)
        return None


# ── Helpers ───────────────────────────────────────────────────────────────────

def _float_or_none(value) -> Optional[float]:
    try:
        return float(value) if value is not None else None
    except (ValueError, TypeError):
        return None


def _rejection_message(status: int) -> str:
    if status == 413:
        return "The image is too large for the search service."
    if status == 402:
        return "The search quota is used up for now. Please try again later."
    return f"The search service rejected the image (HTTP {status})."
