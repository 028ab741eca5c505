"""
Chat sources.

The poll loop only depends on the two callable shapes below, so any coroutine
function with a matching signature can stand in for the YouTube scraper
(tests pass in-memory fakes).
"""

from typing import Awaitable, Callable, Optional, Sequence

from services.config_schema import FetchOptions
from services.message import ChatMessage

# fetch(video_id, fetch_options) -> messages currently visible, in page order
Fetcher = Callable[[str, Optional[FetchOptions]], Awaitable[Sequence[ChatMessage]]]

# resolve(handle) -> live video id, or None when nothing is live
Resolver = Callable[[str], Awaitable[Optional[str]]]
