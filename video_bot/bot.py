"""
Usage (local):
  export BOT_TOKEN="..."
  python -m video_bot

Optional local Bot API server (lifts the upload limit to 2000 MB):
  export TELEGRAM_API_BASE_URL="http://localhost:8081"
"""

import asyncio
import logging
from pathlib import Path
from time import monotonic

from telegram import InlineKeyboardMarkup, Update
from telegram.error import TelegramError
from telegram.ext import Application, CallbackQueryHandler, CommandHandler, ContextTypes, MessageHandler, filters

from video_bot.config import (
    BOT_TOKEN,
    DOWNLOAD_DIR,
    HEARTBEAT_INTERVAL_SECONDS,
    MAX_CONCURRENT_DOWNLOADS,
    MAX_FILE_SIZE_BYTES,
    MAX_FILE_SIZE_MB,
    PENDING_EXPIRY_SECONDS,
    TELEGRAM_API_BASE_URL,
    YTDLP_COOKIES_FILE,
    configure_logging,
)
from video_bot.delivery import DEFAULT_RETRY_POLICY, deliver_video
from video_bot.downloader import DownloadOutcome, YtDlpTool, execute_download
from video_bot.formats import build_format_selector, partition_formats, probe_formats
from video_bot.menu import (
    ACTION_PATTERN,
    BEST_ACTION,
    CANCEL_ACTION,
    build_quality_keyboard,
    build_selection_prompt,
    parse_action,
)
from video_bot.pending import PendingSelection, PendingSelectionStore
from video_bot.urls import find_download_target

logger = logging.getLogger("video-bot")

WELCOME_TEXT = (
    "Welcome! Send me a YouTube or TikTok link and I'll download the video for you.\n\n"
    "Supported links:\n"
    "- YouTube (youtube.com, youtu.be, shorts)\n"
    "- TikTok (tiktok.com, vm.tiktok.com)"
)
INVALID_LINK_TEXT = "Please send a valid YouTube or TikTok link."
EXPIRED_TEXT = "Selection expired. Please send the link again."
FAILED_TEXT = "Failed to download the video. Please check the link and try again."

# -------------------------
# Bot State
# -------------------------
download_semaphore = asyncio.Semaphore(MAX_CONCURRENT_DOWNLOADS)
pending_selections = PendingSelectionStore()
media_tool = YtDlpTool(cookiefile=Path(YTDLP_COOKIES_FILE) if YTDLP_COOKIES_FILE else None)


async def safe_edit_status(
    bot,
    chat_id: int,
    message_id: int,
    text: str,
    reply_markup: InlineKeyboardMarkup | None = None,
) -> None:
    try:
        await bot.edit_message_text(text, chat_id=chat_id, message_id=message_id, reply_markup=reply_markup)
    except TelegramError as edit_err:
        logger.info("Could not edit status message: chat_id=%s message_id=%s err=%s", chat_id, message_id, edit_err)


def describe_result(result) -> str:
    if result.outcome is DownloadOutcome.SENT:
        return f"Video sent ({result.size_mb} MB)."
    if result.outcome is DownloadOutcome.TOO_LARGE:
        return f"Video is {result.size_mb} MB (limit {MAX_FILE_SIZE_MB} MB). Too large to send."
    return FAILED_TEXT


async def download_and_report(bot, chat_id: int, status_message_id: int, url: str, format_selector: str | None) -> None:
    async def _deliver(file_path: Path) -> bool:
        return await deliver_video(bot, chat_id, file_path, DEFAULT_RETRY_POLICY)

    async with download_semaphore:
        logger.info("Download started: chat_id=%s url=%s", chat_id, url)
        result = await execute_download(
            url,
            format_selector,
            _deliver,
            tool=media_tool,
            limit_bytes=MAX_FILE_SIZE_BYTES,
            scratch_root=DOWNLOAD_DIR,
        )
    logger.info("Download finished: chat_id=%s url=%s outcome=%s", chat_id, url, result.outcome.value)
    await safe_edit_status(bot, chat_id, status_message_id, describe_result(result))


# -------------------------
# Handlers
# -------------------------
async def handle_start(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if message:
        await message.reply_text(WELCOME_TEXT)


async def handle_message(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    message = update.effective_message
    if not message or not message.text:
        return

    chat = update.effective_chat
    if not chat:
        return

    logger.info("Received message: chat_id=%s text=%s", chat.id, message.text)
    url = await find_download_target(message.text.strip())
    if not url:
        await message.reply_text(INVALID_LINK_TEXT)
        return
    logger.info("Extracted URL: chat_id=%s url=%s", chat.id, url)

    status_msg = await chat.send_message("Checking available qualities...")
    status_id = status_msg.message_id

    formats = await probe_formats(url, media_tool)
    if len(formats) <= 1:
        await safe_edit_status(context.bot, chat.id, status_id, "Downloading your video...")
        await download_and_report(context.bot, chat.id, status_id, url, None)
        return

    sendable, too_large = partition_formats(formats, MAX_FILE_SIZE_BYTES)
    if not sendable:
        await safe_edit_status(
            context.bot,
            chat.id,
            status_id,
            f"This video is too large for Telegram (limit {MAX_FILE_SIZE_MB} MB) at all available qualities.",
        )
        return

    if len(sendable) == 1 and not too_large:
        await safe_edit_status(context.bot, chat.id, status_id, "Downloading your video...")
        await download_and_report(context.bot, chat.id, status_id, url, None)
        return

    pending_selections.put(chat.id, PendingSelection(url, status_id, monotonic()))
    await safe_edit_status(
        context.bot,
        chat.id,
        status_id,
        build_selection_prompt(too_large, MAX_FILE_SIZE_MB),
        reply_markup=build_quality_keyboard(sendable),
    )


async def handle_quality_choice(update: Update, context: ContextTypes.DEFAULT_TYPE) -> None:
    query = update.callback_query
    if not query or not query.message:
        return

    try:
        await query.answer()
    except TelegramError as answer_err:
        logger.error("Failed to answer callback: %s", answer_err)

    chat_id = query.message.chat.id
    pressed_id = query.message.message_id
    try:
        action = parse_action(query.data or "")
    except ValueError as parse_err:
        logger.warning("Ignoring callback: chat_id=%s err=%s", chat_id, parse_err)
        return

    pending = pending_selections.take_if_valid(
        chat_id, monotonic(), PENDING_EXPIRY_SECONDS, message_id=pressed_id
    )
    if pending is None:
        await safe_edit_status(context.bot, chat_id, pressed_id, EXPIRED_TEXT)
        return

    if action == CANCEL_ACTION:
        logger.info("Selection cancelled: chat_id=%s url=%s", chat_id, pending.source_url)
        await safe_edit_status(context.bot, chat_id, pending.status_message_id, "Download cancelled.")
        return

    if action == BEST_ACTION:
        format_selector = None
        quality_label = "best quality"
    else:
        format_selector = build_format_selector(action)
        quality_label = f"{action}p"

    await safe_edit_status(context.bot, chat_id, pending.status_message_id, f"Downloading in {quality_label}...")
    await download_and_report(context.bot, chat_id, pending.status_message_id, pending.source_url, format_selector)


async def handle_error(update: object, context: ContextTypes.DEFAULT_TYPE) -> None:
    logger.error("Exception while handling an update: %s", context.error, exc_info=context.error)


async def log_heartbeat(_: ContextTypes.DEFAULT_TYPE) -> None:
    logger.info("Bot is listening...")


# -------------------------
# Main
# -------------------------
def build_application(token: str) -> Application:
    builder = (
        Application.builder()
        .token(token)
        .concurrent_updates(True)
        .connect_timeout(60)
        .read_timeout(300)
        .write_timeout(300)
        .pool_timeout(60)
    )
    if TELEGRAM_API_BASE_URL:
        builder = (
            builder.base_url(f"{TELEGRAM_API_BASE_URL}/bot")
            .base_file_url(f"{TELEGRAM_API_BASE_URL}/file/bot")
            .local_mode(True)
        )
        logger.info("Using local API server: %s", TELEGRAM_API_BASE_URL)

    app = builder.build()
    app.add_handler(CommandHandler("start", handle_start))
    app.add_handler(MessageHandler(filters.TEXT & ~filters.COMMAND, handle_message))
    app.add_handler(CallbackQueryHandler(handle_quality_choice, pattern=ACTION_PATTERN))
    app.add_error_handler(handle_error)
    return app


def main() -> None:
    configure_logging()
    if not BOT_TOKEN:
        raise RuntimeError("BOT_TOKEN is required.")

    app = build_application(BOT_TOKEN)
    app.job_queue.run_repeating(log_heartbeat, interval=HEARTBEAT_INTERVAL_SECONDS, first=0)
    logger.info("Bot started. Polling and waiting for updates...")
    app.run_polling(close_loop=False)


if __name__ == "__main__":
    main()
