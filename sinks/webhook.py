# Outgoing webhook sink.
#
# Each new chat message is sent as JSON to the configured URL.  Requests run
# as background tasks so a slow endpoint never delays the poll loop; they are
# awaited on close().
#
# Config keys (under webhook.<instance_id>):
#   url     – HTTP endpoint to send to (required)
#   method  – HTTP method: "POST" (default), "PUT", "PATCH"
#   headers – Dict of extra request headers (e.g. {"Authorization": "Bearer ..."}).
#             Values are masked in log output.
#
# Payload sent on each message:
#   { "video_id": "...", "id", "text", "author", "author_id", "timestamp",
#     "author_thumbnails", "badges", "text_parts" }

import asyncio
from typing import Literal

import aiohttp
from pydantic import Field

import services.logger as log
from services.config_schema import _SinkConfig
from services.message import ChatMessage
from sinks import BaseSink


class WebhookSinkConfig(_SinkConfig):
    url:     str
    method:  Literal["POST", "PUT", "PATCH"] = "POST"
    headers: dict[str, str]                  = Field(default_factory=dict)
    timeout: float                           = Field(default=10.0, gt=0)

l = log.get_logger()


class WebhookSink(BaseSink[WebhookSinkConfig]):

    def __init__(self, instance_id: str, config: WebhookSinkConfig):
        super().__init__(instance_id, config)
        self._session: aiohttp.ClientSession | None = None
        self._pending: set[asyncio.Task] = set()
        log.register_sensitive(config.headers.values())

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def open(self):
        self._session = aiohttp.ClientSession()
        l.info(f"Webhook [{self.instance_id}] targeting {self.config.url}")

    async def close(self):
        if self._pending:
            await asyncio.gather(*self._pending, return_exceptions=True)
        if self._session is not None:
            await self._session.close()
            self._session = None

    # ------------------------------------------------------------------
    # Send
    # ------------------------------------------------------------------

    def __call__(self, message: ChatMessage, video_id: str = "") -> None:
        if self._session is None:
            l.warning(f"Webhook [{self.instance_id}] session not ready, message dropped")
            return
        task = asyncio.get_running_loop().create_task(self.send(message, video_id))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def send(self, message: ChatMessage, video_id: str = "") -> bool:
        if self._session is None:
            return False

        payload = {"video_id": video_id, **message.to_dict()}
        headers = {"Content-Type": "application/json", **self.config.headers}

        try:
            async with self._session.request(
                self.config.method,
                self.config.url,
                json=payload,
                headers=headers,
                timeout=aiohttp.ClientTimeout(total=self.config.timeout),
            ) as resp:
                if resp.status not in (200, 201, 202, 204):
                    body = await resp.text()
                    l.error(
                        f"Webhook [{self.instance_id}] send failed "
                        f"HTTP {resp.status}: {body[:200]}"
                    )
                    return False
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            l.error(f"Webhook [{self.instance_id}] send failed: {e!r}")
            return False
        return True


from sinks.registry import register
register("webhook", WebhookSinkConfig, WebhookSink)
