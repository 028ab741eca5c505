import asyncio
import os
from datetime import datetime, timezone

# No log files from the test run; must be set before services.logger is imported
os.environ["CHATTAP_LOG_DIR"] = ""

from services.message import ChatMessage, TextRun


def make_message(msg_id: str, text: str = "hello", author: str = "viewer") -> ChatMessage:
    return ChatMessage(
        text=text,
        author=author,
        id=msg_id,
        author_id=f"UC{msg_id}",
        timestamp=datetime(2024, 1, 1, tzinfo=timezone.utc),
        text_parts=(TextRun(text),),
    )


class FakeFetcher:
    """Returns one scripted snapshot per call; exceptions are raised. Empty once exhausted."""

    def __init__(self, *snapshots):
        self.snapshots = list(snapshots)
        self.calls: list[tuple] = []

    async def __call__(self, video_id, fetch_options=None):
        self.calls.append((video_id, fetch_options))
        if not self.snapshots:
            return []
        snapshot = self.snapshots.pop(0)
        if isinstance(snapshot, Exception):
            raise snapshot
        return list(snapshot)


async def wait_for(predicate, timeout: float = 1.0):
    loop = asyncio.get_running_loop()
    deadline = loop.time() + timeout
    while not predicate():
        if loop.time() > deadline:
            raise AssertionError("condition not met in time")
        await asyncio.sleep(0.005)
