"""
Shared pytest fixtures.

Every test starts with no cached search backend and no per-user
orchestrators, so nothing leaks between tests and nothing ever reaches
the real trace.moe endpoint by accident.
"""
from __future__ import annotations

import sys
from io import BytesIO
from pathlib import Path

import pytest

# ── Make the project root importable without installing the package ────────────
PROJECT_ROOT = Path(__file__).parent.parent
sys.path.insert(0, str(PROJECT_ROOT))


@pytest.fixture(autouse=True)
def clean_state(monkeypatch):
    from collections import OrderedDict

    import bot
    import image_search
    monkeypatch.setattr(image_search, "_backend", None)
    monkeypatch.setattr(bot, "_orchestrators", OrderedDict())
    yield


def image_bytes(width: int = 64, height: int = 48, fmt: str = "JPEG",
                mode: str = "RGB", color=(200, 40, 40), **save_kwargs) -> bytes:
    """Encode a solid-colour test image."""
    from PIL import Image
    buffer = BytesIO()
    Image.new(mode, (width, height), color).save(buffer, fmt, **save_kwargs)
    return buffer.getvalue()
