"""
Tests for style.py — MarkdownV2 formatting helpers.

Covers:
  - esc(): all MarkdownV2 special characters are escaped
  - fmt_bytes() / similarity_icon()
  - welcome() / help_text(): non-empty, mention the upload budget
  - image_ready(): resized vs untouched images
  - match_card(): title, episode, similarity with two decimals, scene time
  - error_card(): falls back to a generic message
"""
from __future__ import annotations

import style
from image_normalizer import NormalizedImage
from search_backends.base import SearchMatch


def make_image(width=640, height=360, source=(1280, 720), size=150_000) -> NormalizedImage:
    return NormalizedImage(
        content=b"x" * size, width=width, height=height, quality=0.7,
        source_width=source[0], source_height=source[1],
    )


def make_match(**overrides) -> SearchMatch:
    fields = dict(
        filename="[Ohys-Raws] Nekopara - 03 (AT-X 1280x720).mp4",
        episode="3",
        similarity=0.9412,
        video="https://media.trace.moe/video/x.mp4",
        from_seconds=97.75,
    )
    fields.update(overrides)
    return SearchMatch(**fields)


# ── esc() ─────────────────────────────────────────────────────────────────────

class TestEsc:
    MDV2_SPECIALS = r"\_*[]()~`>#+-=|{}.!"

    def test_all_special_characters_escaped(self):
        for ch in self.MDV2_SPECIALS:
            escaped = style.esc(ch)
            assert escaped == f"\\{ch}", f"Character {ch!r} not escaped"

    def test_plain_text_unchanged(self):
        assert style.esc("Hello World") == "Hello World"


# ── Small helpers ─────────────────────────────────────────────────────────────

class TestFmtBytes:
    def test_bytes(self):
        assert style.fmt_bytes(512) == "512 B"

    def test_kib(self):
        assert style.fmt_bytes(2048) == "2.0 KiB"

    def test_mib(self):
        assert style.fmt_bytes(20 * 1024 * 1024) == "20.0 MiB"


class TestSimilarityIcon:
    def test_thresholds(self):
        assert style.similarity_icon(0.95) == "🟢"
        assert style.similarity_icon(0.85) == "🟡"
        assert style.similarity_icon(0.5) == "🔴"


# ── Cards ─────────────────────────────────────────────────────────────────────

class TestStaticTexts:
    def test_welcome(self):
        assert "BUSCANIME" in style.welcome()

    def test_help_mentions_budget(self):
        assert "20 MiB" in style.help_text()

    def test_not_an_image(self):
        assert "Send an Image" in style.not_an_image()


class TestImageReady:
    def test_resized_shows_both_sizes(self):
        text = style.image_ready(make_image())
        assert "1280×720 → 640×360" in text
        assert "146\\.5 KiB" in text

    def test_untouched_shows_single_size(self):
        text = style.image_ready(make_image(width=640, height=360, source=(640, 360)))
        assert "640×360" in text
        assert "→" not in text


class TestMatchCard:
    def test_contains_fields(self):
        text = style.match_card(make_match())
        assert "Nekopara" in text
        assert "*Episode:* 3" in text
        assert "94\\.12%" in text
        assert "1:37" in text

    def test_missing_episode(self):
        text = style.match_card(make_match(episode=None))
        assert "_n/a_" in text

    def test_unknown_title(self):
        text = style.match_card(make_match(filename="random_clip.mp4"))
        assert "Title not found" in text

    def test_no_scene_time(self):
        assert "Scene" not in style.match_card(make_match(from_seconds=None))

    def test_title_is_escaped(self):
        text = style.match_card(make_match(filename="[G][K-On!][01].mkv"))
        assert "K\\-On\\!" in text


class TestErrorCard:
    def test_message_escaped(self):
        assert "Try again\\." in style.error_card("Try again.")

    def test_default_message(self):
        assert "Something went wrong" in style.error_card(None)
