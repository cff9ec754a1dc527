"""
orchestrator.py — state machine for one search attempt.

    IDLE → NORMALIZING → IMAGE_READY | FAILED
    IMAGE_READY → AWAITING_RESULT → READY | FAILED

select_image() may be called from any state and always starts over.
execute() is only ever triggered explicitly (the "verify" button); picking an
image never submits it.

Everything runs on one asyncio loop. The awaits in select_image() / execute()
are where another call can sneak in, so every commit is guarded by a
generation token: a result is written only if no newer select_image() or
execute() started while it was in flight. Stale results are dropped, not
cancelled.
"""
from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from enum import Enum
from typing import Awaitable, Callable, Optional

import config
import image_search
from exceptions import BuscanimeError, NormalizationError, SubmitError, TransientSubmitError
from image_normalizer import NormalizedImage, RawImage, normalize
from search_backends.base import SearchBackend, SearchMatch

logger = logging.getLogger(__name__)

Normalizer = Callable[[RawImage, int], Awaitable[NormalizedImage]]


class Phase(str, Enum):
    IDLE            = "idle"
    NORMALIZING     = "normalizing"
    IMAGE_READY     = "image_ready"
    AWAITING_RESULT = "awaiting_result"
    READY           = "ready"
    FAILED          = "failed"


@dataclass(frozen=True)
class SearchSession:
    """Snapshot of the orchestrator's state. Replaced on every transition, never mutated."""
    phase: Phase = Phase.IDLE
    image: Optional[NormalizedImage] = None
    results: tuple[SearchMatch, ...] = ()
    error: Optional[BuscanimeError] = None
    generation: int = 0
    attempts: int = 0               # submit attempts made by the last execute()

    @property
    def has_image(self) -> bool:
        return self.image is not None

    @property
    def best_match(self) -> Optional[SearchMatch]:
        return self.results[0] if self.results else None

    @property
    def error_message(self) -> Optional[str]:
        return self.error.message if self.error else None

    @property
    def is_busy(self) -> bool:
        return self.phase in (Phase.NORMALIZING, Phase.AWAITING_RESULT)


class SearchOrchestrator:
    """Owns the single live SearchSession for one user."""

    def __init__(
        self,
        backend: Optional[SearchBackend] = None,
        *,
        max_bytes: int = config.MAX_UPLOAD_BYTES,
        retries: Optional[int] = None,
        retry_delay: Optional[float] = None,
        normalizer: Normalizer = normalize,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
    ) -> None:
        self._backend = backend
        self._max_bytes = max_bytes
        self._retries = config.SUBMIT_RETRIES if retries is None else retries
        self._retry_delay = config.RETRY_BACKOFF_SECONDS if retry_delay is None else retry_delay
        self._normalize = normalizer
        self._sleep = sleep
        self._generation = 0
        self._session = SearchSession()

    @property
    def session(self) -> SearchSession:
        return self._session

    @property
    def backend(self) -> SearchBackend:
        return self._backend or image_search.get_backend()

    def is_current(self, session: SearchSession) -> bool:
        """False for a session returned by a call that a newer one superseded."""
        return session.generation == self._generation

    def reset(self) -> SearchSession:
        self._session = SearchSession(generation=self._next_generation())
        return self._session

    # ── Selection ─────────────────────────────────────────────────────────────

    async def select_image(self, raw: Optional[RawImage]) -> SearchSession:
        """
        Normalise a newly picked image. Discards any previous image, results
        or error. Normalisation failures end in FAILED with no image held.
        """
        if raw is None:
            return self._session

        token = self._next_generation()
        self._session = SearchSession(phase=Phase.NORMALIZING, generation=token)

        try:
            image = await self._normalize(raw, self._max_bytes)
        except NormalizationError as exc:
            logger.info("Selection %d rejected: %s", token, exc.message)
            return self._commit(token, SearchSession(phase=Phase.FAILED, error=exc, generation=token))

        return self._commit(token, SearchSession(phase=Phase.IMAGE_READY, image=image, generation=token))

    # ── Submission ────────────────────────────────────────────────────────────

    async def execute(self) -> SearchSession:
        """
        Submit the held image. A no-op when there is nothing to submit.

        Transient failures are retried up to `retries` more times with an
        exponential back-off; collaborator refusals are surfaced at once.
        The image is kept after a failed submit so the user can verify again.
        """
        image = self._session.image
        if image is None:
            logger.debug("execute() with no image — nothing to submit")
            return self._session

        token = self._next_generation()
        self._session = SearchSession(phase=Phase.AWAITING_RESULT, image=image, generation=token)
        backend = self.backend

        attempts = 0
        try:
            while True:
                attempts += 1
                try:
                    results = await backend.search(image)
                    break
                except TransientSubmitError as exc:
                    if attempts > self._retries:
                        raise
                    delay = min(
                        self._retry_delay * 2 ** (attempts - 1),
                        config.RETRY_BACKOFF_MAX_SECONDS,
                    )
                    logger.warning(
                        "[%s] attempt %d/%d failed (%s) — retrying in %.1fs",
                        backend.name, attempts, self._retries + 1, exc.message, delay,
                    )
                    await self._sleep(delay)
                    if token != self._generation:
                        logger.info("Search %d superseded during back-off — not retrying", token)
                        return SearchSession(
                            phase=Phase.FAILED, image=image, error=exc,
                            generation=token, attempts=attempts,
                        )
        except SubmitError as exc:
            logger.warning("[%s] search %d failed after %d attempt(s): %s",
                           backend.name, token, attempts, exc.message)
            return self._commit(token, SearchSession(
                phase=Phase.FAILED, image=image, error=exc, generation=token, attempts=attempts,
            ))
        except Exception as exc:
            logger.error("[%s] unexpected search failure: %s", backend.name, exc, exc_info=True)
            return self._commit(token, SearchSession(
                phase=Phase.FAILED, image=image, error=SubmitError(), generation=token, attempts=attempts,
            ))

        logger.info("[%s] search %d ready: %d match(es) after %d attempt(s)",
                    backend.name, token, len(results), attempts)
        return self._commit(token, SearchSession(
            phase=Phase.READY,
            image=image,
            results=tuple(results),
            generation=token,
            attempts=attempts,
        ))

    # ── Internals ─────────────────────────────────────────────────────────────

    def _next_generation(self) -> int:
        self._generation += 1
        return self._generation

    def _commit(self, token: int, session: SearchSession) -> SearchSession:
        """
        Write `session` only if `token` is still the latest invocation.
        A stale session is returned uncommitted so the caller can see it lost.
        """
        if token != self._generation:
            logger.info(
                "Discarding stale %s result (generation %d, current %d)",
                session.phase.value, token, self._generation,
            )
            return session
        self._session = session
        return session
