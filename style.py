"""
style.py — every piece of text the bot sends.

Design language:
  • Structured cards with consistent emoji icons
  • Unicode box-drawing dividers
  • MarkdownV2 throughout

All text that goes into Telegram messages should be formatted through this module.
"""
from __future__ import annotations

from typing import Optional

import config

# ── Escape ────────────────────────────────────────────────────────────────────

def esc(text: str) -> str:
    """Escape all MarkdownV2 special characters."""
    for ch in r"\_*[]()~`>#+-=|{}.!":
        text = text.replace(ch, f"\\{ch}")
    return text


# ── Visual constants ──────────────────────────────────────────────────────────

DIV   = "━━━━━━━━━━━━━━━━━━━━━━━━━━"    # thick divider
SDIV  = "┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄┄"    # subtle divider


def fmt_bytes(count: int) -> str:
    if count >= 1024 * 1024:
        return f"{count / (1024 * 1024):.1f} MiB"
    if count >= 1024:
        return f"{count / 1024:.1f} KiB"
    return f"{count} B"


def similarity_icon(similarity: float) -> str:
    # trace.moe: below ~0.9 the match is usually wrong
    if similarity >= 0.9:
        return "🟢"
    if similarity >= 0.8:
        return "🟡"
    return "🔴"


# ══════════════════════════════════════════════════════════════════════════════
# START / HELP
# ══════════════════════════════════════════════════════════════════════════════

def welcome() -> str:
    return (
        f"🎬 *BUSCANIME*\n"
        f"{DIV}\n\n"
        f"Send me a screenshot from an anime and I'll tell you\n"
        f"which anime it is and which episode is playing\\.\n\n"
        f"{DIV}\n"
        f"_📸 Just send an image to get started_"
    )


def help_text() -> str:
    return (
        f"📖 *HOW TO USE*\n"
        f"{DIV}\n\n"
        f"*1️⃣  Send an image*\n"
        f"_As a photo or as a file, up to any size_\n\n"
        f"*2️⃣  Check the preview*\n"
        f"_Large images are shrunk to fit {config.MAX_UPLOAD_MB} MiB_\n\n"
        f"*3️⃣  Tap 🔎 Verify*\n"
        f"_The best match is shown with a preview clip_\n\n"
        f"💡  *Tips for best results*\n"
        f"▸ Use an uncropped frame from the episode\n"
        f"▸ Avoid screenshots with overlays or subtitles edited in\n\n"
        f"{DIV}\n"
        f"_Commands: /start · /help_"
    )


# ══════════════════════════════════════════════════════════════════════════════
# SELECTION / LOADING
# ══════════════════════════════════════════════════════════════════════════════

def normalizing() -> str:
    return f"🖼️ *Preparing your image*\n{SDIV}\n⠋ Resizing…"


def image_ready(image) -> str:
    """Caption for the normalised-image preview."""
    resized = (
        f"📐 {image.source_width}×{image.source_height} → {image.width}×{image.height}\n"
        if image.was_resized
        else f"📐 {image.width}×{image.height}\n"
    )
    return (
        f"✅ *Image selected*\n"
        f"{SDIV}\n"
        f"{esc(resized)}"
        f"📦 {esc(fmt_bytes(image.byte_length))}\n\n"
        f"_Tap 🔎 Verify to search_"
    )


def loading_search(backend_name: str) -> str:
    return (
        f"🔎 *Searching*\n"
        f"{SDIV}\n"
        f"⠙ Asking {esc(backend_name)}…"
    )


# ══════════════════════════════════════════════════════════════════════════════
# RESULT
# ══════════════════════════════════════════════════════════════════════════════

def match_card(match) -> str:
    """Best-match card: title, episode, similarity, scene time."""
    episode = esc(match.episode) if match.episode else "_n/a_"
    scene = f"\n⏱️ *Scene:* `{esc(match.timestamp)}`" if match.timestamp else ""
    return (
        f"✨ *MATCH FOUND*\n"
        f"{DIV}\n\n"
        f"🎬 *Anime:* {esc(match.title)}\n"
        f"📺 *Episode:* {episode}\n"
        f"{similarity_icon(match.similarity)} *Similarity:* {esc(match.similarity_percent)}"
        f"{scene}\n\n"
        f"{SDIV}\n"
        f"_{esc(match.filename[:200])}_"
    )


# ══════════════════════════════════════════════════════════════════════════════
# ERROR MESSAGES
# ══════════════════════════════════════════════════════════════════════════════

def error_card(message: Optional[str]) -> str:
    return (
        f"❌ *Error*\n"
        f"{DIV}\n\n"
        f"{esc(message or 'Something went wrong.')}"
    )


def download_failed() -> str:
    return error_card(
        "Could not fetch that file from Telegram. "
        "Bots can only download files up to 20 MB, so try sending it as a photo."
    )


def session_expired() -> str:
    return "⚠️ Session expired — please send a new image\\."


def not_an_image() -> str:
    return (
        f"📸 *Send an Image*\n"
        f"{SDIV}\n"
        f"I need a screenshot to search for the anime\\.\n"
        f"_Send it as a photo or as an image file\\!_"
    )
