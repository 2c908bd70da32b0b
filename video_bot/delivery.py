import asyncio
import dataclasses
import logging
from pathlib import Path
from typing import Awaitable, Callable

from telegram import Bot
from telegram.error import BadRequest, NetworkError, TelegramError

from video_bot.config import DELIVERY_MAX_ATTEMPTS, DELIVERY_RETRY_DELAY_SECONDS
from video_bot.formats import to_megabytes

logger = logging.getLogger("video-bot")


def is_transport_error(err: BaseException) -> bool:
    # BadRequest subclasses NetworkError but is not a transport failure.
    return isinstance(err, NetworkError) and not isinstance(err, BadRequest)


@dataclasses.dataclass(frozen=True)
class RetryPolicy:
    max_attempts: int = 2
    delay_seconds: float = 3.0
    should_retry: Callable[[BaseException], bool] = is_transport_error


DEFAULT_RETRY_POLICY = RetryPolicy(max_attempts=DELIVERY_MAX_ATTEMPTS, delay_seconds=DELIVERY_RETRY_DELAY_SECONDS)


async def _wait_or_cancel(delay_seconds: float, cancel_event: asyncio.Event | None) -> bool:
    """Sleep for the retry delay; return False if ``cancel_event`` fires first."""
    if cancel_event is None:
        await asyncio.sleep(delay_seconds)
        return True
    try:
        await asyncio.wait_for(cancel_event.wait(), timeout=delay_seconds)
    except asyncio.TimeoutError:
        return True
    return False


async def deliver_with_retry(
    send: Callable[[], Awaitable[object]],
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    cancel_event: asyncio.Event | None = None,
) -> bool:
    for attempt in range(1, policy.max_attempts + 1):
        try:
            await send()
            if attempt > 1:
                logger.info("Delivery succeeded on retry: attempt=%s", attempt)
            return True
        except (TelegramError, OSError) as send_err:
            if not policy.should_retry(send_err):
                logger.error("Delivery failed with non-retryable error: %s", send_err)
                return False
            if attempt >= policy.max_attempts:
                logger.error("Delivery failed after %s attempts: %s", attempt, send_err)
                return False
            logger.warning(
                "Delivery attempt %s failed, retrying in %.1fs: %s", attempt, policy.delay_seconds, send_err
            )
        if not await _wait_or_cancel(policy.delay_seconds, cancel_event):
            logger.info("Delivery retry cancelled")
            return False
    return False


async def deliver_video(
    bot: Bot,
    chat_id: int,
    file_path: Path,
    policy: RetryPolicy = DEFAULT_RETRY_POLICY,
    cancel_event: asyncio.Event | None = None,
) -> bool:
    size_mb = to_megabytes(file_path.stat().st_size)
    logger.info("Sending video: chat_id=%s file=%s size_mb=%s", chat_id, file_path.name, size_mb)

    async def _send() -> object:
        return await bot.send_video(chat_id=chat_id, video=file_path, supports_streaming=True)

    delivered = await deliver_with_retry(_send, policy, cancel_event)
    if delivered:
        logger.info("Video sent successfully: chat_id=%s file=%s size_mb=%s", chat_id, file_path.name, size_mb)
    return delivered
