"""
image_search.py — public entry point for the search collaborator.

The rest of the bot imports only from here:
  from image_search import get_backend, SearchMatch

There is a single backend today (trace.moe). It is built lazily on first use
and cached, so tests can swap it by assigning `_backend` or calling
set_backend().
"""
from __future__ import annotations

import logging
from typing import Optional

from search_backends.base import SearchBackend, SearchMatch

logger = logging.getLogger(__name__)

# Re-export SearchMatch so callers don't need to know about search_backends
__all__ = ["SearchMatch", "SearchBackend", "get_backend", "set_backend", "backend_name"]

_backend: Optional[SearchBackend] = None


def get_backend() -> SearchBackend:
    """Return the active backend, initialising it once on first call."""
    global _backend
    if _backend is not None:
        return _backend
    from search_backends.tracemoe_backend import TraceMoeBackend
    _backend = TraceMoeBackend()
    logger.info("Search backend: %s", _backend.name)
    return _backend


def set_backend(backend: Optional[SearchBackend]) -> None:
    """Replace the cached backend (None → rebuild on next call)."""
    global _backend
    _backend = backend


def backend_name() -> str:
    return get_backend().name
