"""
bot.py — Telegram bot handlers.

All visual formatting is delegated to style.py.
Each user gets one SearchOrchestrator, kept in-memory per user_id.

Flow:
  photo / image file → orchestrator.select_image() → preview + 🔎 Verify button
  🔎 Verify          → orchestrator.execute()      → match card + preview clip
"""
from __future__ import annotations

import logging
from collections import OrderedDict
from typing import Optional

from telegram import InlineKeyboardButton, InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import (
    Application,
    CallbackQueryHandler,
    CommandHandler,
    ContextTypes,
    MessageHandler,
    filters,
)

import config
import style
from image_normalizer import NormalizedImage, RawImage
from orchestrator import Phase, SearchOrchestrator, SearchSession

logger = logging.getLogger(__name__)

# ── Callback data ──────────────────────────────────────────────────────────────
CB_VERIFY = "search:verify"

# Bot API refuses photos above 10 MB; larger previews go out as documents
PHOTO_UPLOAD_LIMIT = 10 * 1024 * 1024


# ── Orchestrators ──────────────────────────────────────────────────────────────

# Least recently active first; bounded by config.MAX_ACTIVE_USERS
_orchestrators: OrderedDict[int, SearchOrchestrator] = OrderedDict()


def get_orchestrator(user_id: int) -> SearchOrchestrator:
    if user_id in _orchestrators:
        _orchestrators.move_to_end(user_id)
        return _orchestrators[user_id]
    orchestrator = _orchestrators[user_id] = SearchOrchestrator()
    while len(_orchestrators) > max(1, config.MAX_ACTIVE_USERS):
        evicted, _ = _orchestrators.popitem(last=False)
        logger.info("Dropping idle session for user %d", evicted)
    return orchestrator


# ── Keyboards ──────────────────────────────────────────────────────────────────

def verify_keyboard(label: str = "🔎  Verify") -> InlineKeyboardMarkup:
    return InlineKeyboardMarkup([[InlineKeyboardButton(label, callback_data=CB_VERIFY)]])


def match_keyboard(session: SearchSession) -> InlineKeyboardMarkup:
    rows = []
    match = session.best_match
    if match and match.video:
        rows.append([InlineKeyboardButton("▶️  Preview clip", url=match.video)])
    rows.append([InlineKeyboardButton("🔁  Search again", callback_data=CB_VERIFY)])
    return InlineKeyboardMarkup(rows)


# ── Handlers ───────────────────────────────────────────────────────────────────

async def cmd_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    get_orchestrator(update.effective_user.id).reset()
    await update.message.reply_text(style.welcome(), parse_mode="MarkdownV2")


async def cmd_help(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.help_text(), parse_mode="MarkdownV2")


async def _download(update: Update, context: ContextTypes.DEFAULT_TYPE, file_id: str) -> Optional[bytes]:
    """Fetch a file from Telegram. Tells the user and returns None on failure."""
    try:
        tg_file = await context.bot.get_file(file_id)
        return bytes(await tg_file.download_as_bytearray())
    except TelegramError as exc:
        logger.warning("Download of %s failed: %s", file_id, exc)
        await update.message.reply_text(style.download_failed(), parse_mode="MarkdownV2")
        return None


async def handle_photo(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    photo = update.message.photo[-1]
    content = await _download(update, context, photo.file_id)
    if content is None:
        return
    # Telegram re-encodes photos as JPEG
    raw = RawImage(content=content, media_type="image/jpeg", filename=f"{photo.file_unique_id}.jpg")
    await _select(update, raw)


async def handle_image_document(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    document = update.message.document
    content = await _download(update, context, document.file_id)
    if content is None:
        return
    raw = RawImage(
        content=content,
        media_type=document.mime_type,
        filename=document.file_name or f"{document.file_unique_id}",
    )
    await _select(update, raw)


async def _select(update: Update, raw: RawImage) -> None:
    orchestrator = get_orchestrator(update.effective_user.id)
    msg = await update.message.reply_text(style.normalizing(), parse_mode="MarkdownV2")

    session = await orchestrator.select_image(raw)

    if not orchestrator.is_current(session):
        # A newer image arrived while this one was being prepared
        await msg.delete()
        return

    if session.phase == Phase.FAILED:
        await msg.edit_text(style.error_card(session.error_message), parse_mode="MarkdownV2")
        return

    await msg.delete()
    await _send_preview(update, session.image)


async def _send_preview(update: Update, image: NormalizedImage) -> None:
    """
    Show the normalised image with the Verify button. Telegram refuses some
    photos (over 10 MB, extreme aspect ratios, huge dimensions), so fall back
    to a document, then to a text-only caption.
    """
    caption = style.image_ready(image)
    if image.byte_length <= PHOTO_UPLOAD_LIMIT:
        try:
            await update.message.reply_photo(
                photo=image.content,
                caption=caption,
                parse_mode="MarkdownV2",
                reply_markup=verify_keyboard(),
            )
            return
        except TelegramError as exc:
            logger.warning("Preview of %s refused as a photo: %s", image.filename, exc)

    try:
        await update.message.reply_document(
            document=image.content,
            filename=image.filename,
            caption=caption,
            parse_mode="MarkdownV2",
            reply_markup=verify_keyboard(),
        )
    except TelegramError as exc:
        logger.warning("Preview of %s refused as a document: %s", image.filename, exc)
        await update.message.reply_text(caption, parse_mode="MarkdownV2", reply_markup=verify_keyboard())


async def handle_callback(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    await query.answer()

    if query.data != CB_VERIFY:
        return

    orchestrator = get_orchestrator(update.effective_user.id)
    if not orchestrator.session.has_image:
        await query.message.reply_text(style.session_expired(), parse_mode="MarkdownV2")
        return

    msg = await query.message.reply_text(
        style.loading_search(orchestrator.backend.name),
        parse_mode="MarkdownV2",
    )

    session = await orchestrator.execute()

    if not orchestrator.is_current(session):
        # Superseded by a newer selection or search
        await msg.delete()
        return

    if session.phase == Phase.FAILED:
        await msg.edit_text(
            style.error_card(session.error_message),
            parse_mode="MarkdownV2",
            reply_markup=verify_keyboard("🔁  Try again"),
        )
        return

    if session.phase != Phase.READY:
        await msg.delete()
        return

    match = session.best_match
    await msg.edit_text(
        style.match_card(match),
        parse_mode="MarkdownV2",
        reply_markup=match_keyboard(session),
        disable_web_page_preview=True,
    )

    if match.video:
        try:
            await query.message.reply_video(video=match.video)
        except TelegramError as exc:
            # The card already carries the clip link
            logger.warning("Could not send preview clip %s: %s", match.video, exc)


async def handle_non_image(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    await update.message.reply_text(style.not_an_image(), parse_mode="MarkdownV2")


# ── App factory ────────────────────────────────────────────────────────────────

def build_application() -> Application:
    app = (
        Application.builder()
        .token(config.TELEGRAM_BOT_TOKEN)
        # Lets a new image arrive while a search is in flight; the
        # orchestrator's generation token discards the stale answer.
        .concurrent_updates(True)
        .build()
    )

    app.add_handler(CommandHandler("start", cmd_start))
    app.add_handler(CommandHandler("help",  cmd_help))
    app.add_handler(MessageHandler(filters.PHOTO,          handle_photo))
    app.add_handler(MessageHandler(filters.Document.IMAGE, handle_image_document))
    app.add_handler(CallbackQueryHandler(handle_callback))
    app.add_handler(MessageHandler(
        (filters.TEXT & ~filters.COMMAND) | filters.Document.ALL,
        handle_non_image,
    ))
    return app
