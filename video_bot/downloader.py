import asyncio
import contextlib
import dataclasses
import enum
import logging
import shutil
import tempfile
import traceback
from pathlib import Path
from typing import Awaitable, Callable, Iterator

import yt_dlp

from video_bot.config import CHROME_USER_AGENT, DOWNLOAD_DIR, MAX_FILE_SIZE_BYTES
from video_bot.formats import DEFAULT_FORMAT, to_megabytes

logger = logging.getLogger("video-bot")

OUTPUT_TEMPLATE = "%(title).80s.%(ext)s"
PARTIAL_SUFFIXES = {".part", ".ytdl", ".temp"}


class MediaDownloadError(RuntimeError):
    pass


# -------------------------
# yt-dlp
# -------------------------
class YtDlpTool:
    def __init__(self, cookiefile: Path | None = None) -> None:
        self.cookiefile = cookiefile

    def _base_ydl_opts(self) -> dict:
        ydl_opts = {
            "noplaylist": True,
            "retries": 2,
            "extractor_retries": 2,
            "fragment_retries": 2,
            "http_headers": {"User-Agent": CHROME_USER_AGENT},
            "quiet": True,
            "no_warnings": True,
        }
        if self.cookiefile and self.cookiefile.exists():
            ydl_opts["cookiefile"] = str(self.cookiefile)
        elif self.cookiefile:
            logger.warning("Cookies file is missing: %s", self.cookiefile)
        return ydl_opts

    def extract_info(self, url: str) -> dict:
        ydl_opts = self._base_ydl_opts()
        ydl_opts["skip_download"] = True
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            return ydl.extract_info(url, download=False)

    def fetch(self, url: str, format_selector: str, output_dir: Path) -> Path:
        ydl_opts = self._base_ydl_opts()
        ydl_opts.update(
            {
                "format": format_selector,
                "merge_output_format": "mp4",
                "outtmpl": str(output_dir / OUTPUT_TEMPLATE),
            }
        )
        logger.info("Starting download: %s with format: %s", url, format_selector)
        with yt_dlp.YoutubeDL(ydl_opts) as ydl:
            try:
                retcode = ydl.download([url])
            except yt_dlp.utils.DownloadError as err:
                raise MediaDownloadError(f"yt-dlp failed for {url}") from err
        if retcode:
            raise MediaDownloadError(f"yt-dlp exited with code {retcode}")

        file_path = pick_output_file(output_dir)
        logger.info("Download complete: %s", file_path.name)
        return file_path


def pick_output_file(output_dir: Path) -> Path:
    files = [p for p in output_dir.iterdir() if p.is_file() and p.suffix.lower() not in PARTIAL_SUFFIXES]
    if not files:
        raise MediaDownloadError("yt-dlp produced no output files")
    return max(files, key=lambda p: p.stat().st_mtime)


@contextlib.contextmanager
def scratch_directory(root: Path, prefix: str = "yt-dlp-") -> Iterator[Path]:
    """Per-download directory under ``root``, removed on every exit path."""
    root.mkdir(parents=True, exist_ok=True)
    path = Path(tempfile.mkdtemp(prefix=prefix, dir=root))
    try:
        yield path
    finally:
        try:
            shutil.rmtree(path)
        except OSError as cleanup_err:
            logger.warning("Failed to clean up temp directory %s: %s", path, cleanup_err)


# -------------------------
# Orchestration
# -------------------------
class DownloadOutcome(enum.Enum):
    SENT = "sent"
    TOO_LARGE = "too_large"
    FAILED = "failed"


@dataclasses.dataclass(frozen=True)
class DownloadResult:
    outcome: DownloadOutcome
    size_bytes: int = 0

    @property
    def size_mb(self) -> int:
        return to_megabytes(self.size_bytes)


async def execute_download(
    url: str,
    format_selector: str | None,
    deliver: Callable[[Path], Awaitable[bool]],
    *,
    tool: YtDlpTool,
    limit_bytes: int = MAX_FILE_SIZE_BYTES,
    scratch_root: Path = DOWNLOAD_DIR,
) -> DownloadResult:
    selector = format_selector or DEFAULT_FORMAT
    try:
        with scratch_directory(scratch_root) as scratch_dir:
            file_path = await asyncio.to_thread(tool.fetch, url, selector, scratch_dir)
            size_bytes = file_path.stat().st_size
            if to_megabytes(size_bytes) >= to_megabytes(limit_bytes):
                logger.info(
                    "Downloaded file too large to send: url=%s size_mb=%s limit_mb=%s",
                    url,
                    to_megabytes(size_bytes),
                    to_megabytes(limit_bytes),
                )
                return DownloadResult(DownloadOutcome.TOO_LARGE, size_bytes)

            if not await deliver(file_path):
                return DownloadResult(DownloadOutcome.FAILED, size_bytes)
            return DownloadResult(DownloadOutcome.SENT, size_bytes)
    except Exception as e:
        logger.error("Failed to download video %s: %s", url, e)
        logger.error(traceback.format_exc())
        return DownloadResult(DownloadOutcome.FAILED)
