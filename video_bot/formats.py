import asyncio
import dataclasses
import logging
from typing import Any

logger = logging.getLogger("video-bot")

MEGABYTE = 1024 * 1024
DEFAULT_FORMAT = "bestvideo[ext=mp4]+bestaudio[ext=m4a]/best[ext=mp4]/best"


@dataclasses.dataclass(frozen=True)
class FormatInfo:
    height: int
    estimated_size_bytes: int = 0

    @property
    def estimated_size_mb(self) -> int:
        return to_megabytes(self.estimated_size_bytes)


def to_megabytes(size_bytes: int) -> int:
    return size_bytes // MEGABYTE


def _has_codec(value: Any) -> bool:
    return bool(value) and value != "none"


def _entry_size(fmt: dict) -> int:
    for key in ("filesize", "filesize_approx"):
        value = fmt.get(key)
        if value and value > 0:
            return int(value)
    return 0


def summarize_formats(info: dict) -> list[FormatInfo]:
    """Collapse yt-dlp format entries into one estimate per video height.

    Every height gets the size of its largest video stream plus the size of
    the largest audio-only stream, since the final file muxes both. Unknown
    sizes stay 0.
    """
    formats = info.get("formats") if isinstance(info, dict) else None
    if not isinstance(formats, list):
        return []

    best_audio_bytes = 0
    for fmt in formats:
        if _has_codec(fmt.get("acodec")) and not _has_codec(fmt.get("vcodec")):
            best_audio_bytes = max(best_audio_bytes, _entry_size(fmt))

    height_to_size: dict[int, int] = {}
    for fmt in formats:
        if not _has_codec(fmt.get("vcodec")):
            continue
        height = int(fmt.get("height") or 0)
        if height <= 0:
            continue
        height_to_size[height] = max(height_to_size.get(height, 0), _entry_size(fmt))

    return [
        FormatInfo(height=height, estimated_size_bytes=size + best_audio_bytes)
        for height, size in sorted(height_to_size.items())
    ]


async def probe_formats(url: str, tool) -> list[FormatInfo]:
    """Probe available qualities; any failure means "no quality data" and yields []."""
    logger.info("Probing formats for: %s", url)
    try:
        info = await asyncio.to_thread(tool.extract_info, url)
        return summarize_formats(info)
    except Exception as probe_err:
        logger.warning("Failed to probe formats for %s: %s", url, probe_err)
        return []


def is_too_large(fmt: FormatInfo, limit_bytes: int) -> bool:
    if fmt.estimated_size_bytes <= 0:
        return False
    return fmt.estimated_size_mb >= to_megabytes(limit_bytes)


def partition_formats(formats: list[FormatInfo], limit_bytes: int) -> tuple[list[FormatInfo], list[FormatInfo]]:
    sendable = [fmt for fmt in formats if not is_too_large(fmt, limit_bytes)]
    too_large = [fmt for fmt in formats if is_too_large(fmt, limit_bytes)]
    return sendable, too_large


def build_format_selector(height: int) -> str:
    return (
        f"bestvideo[height<={height}][ext=mp4]+bestaudio[ext=m4a]"
        f"/best[height<={height}][ext=mp4]"
        f"/best[height<={height}]"
    )
