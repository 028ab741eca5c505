# YouTube chat source (no API key, scrapes public pages).
#
# Snapshot:  GET /live_chat?is_popout=1&v={video_id}
#            The popout page embeds the most recent chat items as JSON;
#            see sources/parser.py for the extraction.
#
# Resolve:   GET /@{handle}/live
#            Redirects to (or embeds) the current live video when the
#            channel is streaming; the video id is pulled out with a list of
#            regex strategies, first hit wins.
#
# Usage:
#   from sources.youtube import fetch_chat_messages, get_live_video_id
#   video_id = await get_live_video_id("somechannel")
#   messages = await fetch_chat_messages(video_id)

import asyncio
import re

import aiohttp

import services.logger as log
from services.config_schema import FetchOptions
from services.error import ChatParseError, ChatTransportError
from services.message import ChatMessage
from sources.parser import extract_initial_data, parse_chat_data

l = log.get_logger()

YOUTUBE_URL = "https://www.youtube.com"

DEFAULT_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/120.0.0.0 Safari/537.36"
    ),
    "Accept": (
        "text/html,application/xhtml+xml,application/xml;q=0.9,"
        "image/avif,image/webp,image/apng,*/*;q=0.8"
    ),
    "Accept-Language":           "en-US,en;q=0.9",
    "Upgrade-Insecure-Requests": "1",
    "Sec-Fetch-Dest":            "document",
    "Sec-Fetch-Mode":            "navigate",
    "Sec-Fetch-Site":            "none",
    "Sec-Fetch-User":            "?1",
    "Cache-Control":             "max-age=0",
}

_VIDEO_ID_PATTERNS = [
    re.compile(r'"videoId":"([a-zA-Z0-9_-]{11})"'),
    re.compile(r"watch\?v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"embed/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
]

_session: aiohttp.ClientSession | None = None


def _get_session() -> aiohttp.ClientSession:
    global _session
    if _session is None or _session.closed:
        _session = aiohttp.ClientSession()
    return _session


async def close_session() -> None:
    """Close the shared session created by the module-level helpers."""
    global _session
    if _session is not None and not _session.closed:
        await _session.close()
    _session = None


async def fetch_chat_messages(
    video_id: str,
    fetch_options: FetchOptions | None = None,
    *,
    session: aiohttp.ClientSession | None = None,
    base_url: str = YOUTUBE_URL,
) -> list[ChatMessage]:
    """
    Fetch the chat messages currently visible for *video_id*, oldest first.

    Raises ChatTransportError when the page cannot be downloaded and
    ChatParseError when it does not contain chat data.  Individual malformed
    messages are dropped silently.
    """
    opts = fetch_options or FetchOptions()
    session = session or _get_session()
    url = f"{base_url.rstrip('/')}/live_chat"

    try:
        async with session.get(
            url,
            params={"is_popout": "1", "v": video_id},
            headers={**DEFAULT_HEADERS, **opts.headers},
            proxy=opts.proxy,
            timeout=aiohttp.ClientTimeout(total=opts.timeout),
        ) as resp:
            if resp.status >= 400:
                raise ChatTransportError(
                    f"Failed to fetch chat messages for video {video_id}: HTTP {resp.status}",
                    video_id,
                    status=resp.status,
                )
            html = await resp.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        raise ChatTransportError(
            f"Failed to fetch chat messages for video {video_id}: {e!r}", video_id
        ) from e
    except (UnicodeDecodeError, LookupError) as e:
        raise ChatParseError(
            f"Failed to decode chat page for video {video_id}: {e}", video_id
        ) from e

    try:
        return parse_chat_data(extract_initial_data(html))
    except ChatParseError as e:
        raise ChatParseError(
            f"Failed to parse chat messages for video {video_id}: {e}", video_id
        ) from e


async def get_live_video_id(
    handle: str,
    *,
    session: aiohttp.ClientSession | None = None,
    base_url: str = YOUTUBE_URL,
) -> str | None:
    """
    Return the id of the video *handle* is currently streaming, or None.

    Lookup failures (network, HTTP status, undecodable page, no match) all
    come back as None; they are logged, never raised.
    """
    handle = handle.strip().lstrip("@")
    if not handle:
        return None

    session = session or _get_session()
    url = f"{base_url.rstrip('/')}/@{handle}/live"

    try:
        async with session.get(
            url,
            headers=DEFAULT_HEADERS,
            timeout=aiohttp.ClientTimeout(total=15),
        ) as resp:
            if resp.status >= 400:
                l.warning(f"YouTube [@{handle}] live page returned HTTP {resp.status}")
                return None
            html = await resp.text()
    except (aiohttp.ClientError, asyncio.TimeoutError) as e:
        l.error(f"YouTube [@{handle}] error fetching live page: {e!r}")
        return None
    except (UnicodeDecodeError, LookupError) as e:
        l.warning(f"YouTube [@{handle}] live page could not be decoded: {e}")
        return None

    for pattern in _VIDEO_ID_PATTERNS:
        match = pattern.search(html)
        if match:
            l.info(f"YouTube [@{handle}] live video id: {match.group(1)}")
            return match.group(1)

    l.info(f"YouTube [@{handle}] no live video found")
    return None

