import asyncio
import logging
import re
from urllib.parse import urlparse

import requests

from video_bot.config import CHROME_USER_AGENT, URL_EXPAND_TIMEOUT_SECONDS

logger = logging.getLogger("video-bot")

# -------------------------
# URL Detection
# -------------------------
URL_REGEX = re.compile(r"(https?://[^\s]+)", re.IGNORECASE)
YOUTUBE_REGEX = re.compile(
    r"https?://(www\.|m\.)?(youtube\.com/(watch|shorts)|youtu\.be/)[\w?=&/.%-]+",
    re.IGNORECASE,
)
TIKTOK_REGEX = re.compile(r"https?://(www\.|m\.|vm\.|vt\.)?tiktok\.com/[\w@./?=&%-]+", re.IGNORECASE)
SHORT_LINK_HOSTS = {"vm.tiktok.com", "vt.tiktok.com"}


def extract_links(text: str) -> list[str]:
    raw_links = URL_REGEX.findall(text or "")
    return [link.rstrip(".,;:!?)]}>") for link in raw_links]


def detect_platform(url: str) -> str | None:
    if YOUTUBE_REGEX.match(url):
        return "youtube"
    if TIKTOK_REGEX.match(url):
        return "tiktok"
    return None


def _expand_url_sync(url: str) -> str:
    headers = {"User-Agent": CHROME_USER_AGENT}
    try:
        response = requests.head(url, headers=headers, allow_redirects=True, timeout=URL_EXPAND_TIMEOUT_SECONDS)
        return response.url
    except requests.RequestException as head_err:
        logger.info("HEAD expand failed for %s: %s", url, head_err)

    with requests.get(
        url, headers=headers, allow_redirects=True, timeout=URL_EXPAND_TIMEOUT_SECONDS, stream=True
    ) as response:
        return response.url


async def expand_url(url: str) -> str:
    try:
        final_url = await asyncio.to_thread(_expand_url_sync, url)
        if final_url != url:
            logger.info("Expanded URL: original=%s final=%s", url, final_url)
        return final_url
    except requests.RequestException as expand_err:
        logger.warning("Could not expand URL %s: %s", url, expand_err)
        return url


async def find_download_target(text: str) -> str | None:
    """Return the first YouTube or TikTok link in ``text``, with short links resolved."""
    for raw_url in extract_links(text):
        if not detect_platform(raw_url):
            continue
        host = (urlparse(raw_url).hostname or "").lower()
        if host in SHORT_LINK_HOSTS:
            final_url = await expand_url(raw_url)
            if detect_platform(final_url):
                return final_url
        return raw_url
    return None
