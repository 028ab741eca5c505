import asyncio
from collections import OrderedDict
from typing import Callable

import services.logger as log
from services.config_schema import ChatListenerOptions
from services.error import ChatFetchError, ObserverError, raise_and_log
from services.message import ChatMessage
from sources import Fetcher
from sources.youtube import fetch_chat_messages

l = log.get_logger()

Observer = Callable[[ChatMessage], object]
ErrorHandler = Callable[[Exception], object]

_BACKOFF_FACTOR = 1.5


class SeenIds:
    """Bounded, insertion-ordered set of message ids.

    Once full, adding an id evicts the oldest one (FIFO).  Adding an id that
    is already present is a no-op and does not refresh its position.
    """

    def __init__(self, maxsize: int):
        if maxsize <= 0:
            raise ValueError("maxsize must be positive")
        self.maxsize = maxsize
        self._ids: OrderedDict[str, None] = OrderedDict()

    def __contains__(self, msg_id: object) -> bool:
        return msg_id in self._ids

    def __len__(self) -> int:
        return len(self._ids)

    def __iter__(self):
        return iter(self._ids)

    def add(self, msg_id: str) -> None:
        if msg_id in self._ids:
            return
        while len(self._ids) >= self.maxsize:
            self._ids.popitem(last=False)
        self._ids[msg_id] = None


class ChatListener:
    """
    Polls one video's chat and hands each message to observers exactly once.

    Every tick fetches a snapshot, drops ids already delivered, notifies the
    observers for the rest, then sleeps before the next tick.  With dynamic
    polling the sleep grows by 1.5x per empty tick (capped at
    ``max_interval``) and snaps back to ``interval`` as soon as anything new
    shows up.

    Ticks run one after another on a single asyncio task, so the seen-id set
    and interval state need no locking.  The seen-id set belongs to the
    instance and survives ``stop()`` / ``start()``.
    """

    def __init__(
        self,
        video_id: str,
        options: ChatListenerOptions | None = None,
        *,
        fetcher: Fetcher = fetch_chat_messages,
    ):
        if not video_id:
            raise_and_log("ChatListener requires a video_id", ValueError)

        opts = options or ChatListenerOptions()
        self.video_id = video_id
        self.interval = opts.interval
        self.fetch_options = opts.fetch_options
        self.dynamic_polling = opts.dynamic_polling
        self.max_interval = opts.max_interval
        self.max_stored_ids = opts.max_stored_ids

        self._fetcher = fetcher
        self._current_interval: float = self.interval
        self._running = False
        self._task: asyncio.Task | None = None
        self._seen = SeenIds(self.max_stored_ids)
        # dicts as ordered sets: idempotent add, notification in add order
        self._observers: dict[Observer, None] = {}
        self._error_handlers: dict[ErrorHandler, None] = {}

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def running(self) -> bool:
        return self._running

    @property
    def current_interval(self) -> float:
        """Delay in ms before the next tick."""
        return self._current_interval

    @property
    def seen_ids(self) -> SeenIds:
        return self._seen

    # ------------------------------------------------------------------
    # Subscribers
    # ------------------------------------------------------------------

    def on_message(self, callback: Observer) -> Observer:
        """Register *callback* for every new message; usable as a decorator."""
        self._observers[callback] = None
        return callback

    def remove_observer(self, callback: Observer) -> None:
        self._observers.pop(callback, None)

    def on_error(self, callback: ErrorHandler) -> ErrorHandler:
        """Register *callback* for fetch, parse and observer failures."""
        self._error_handlers[callback] = None
        return callback

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin polling on the running event loop.  No-op if already running."""
        if self._running:
            return
        self._running = True
        self._task = asyncio.get_running_loop().create_task(
            self._run(), name=f"chat-listener/{self.video_id}"
        )
        l.info(f"Listener [{self.video_id}] started (interval {self.interval} ms)")

    def stop(self) -> None:
        """Stop polling.  No-op if not running.

        A pending sleep or in-flight fetch is cancelled, so nothing is fetched
        or delivered once this returns.
        """
        if not self._running:
            return
        self._running = False
        if self._task is not None and not self._task.done():
            self._task.cancel()
        l.info(f"Listener [{self.video_id}] stopped")

    async def wait_closed(self) -> None:
        """Wait for the polling task to finish (i.e. until stopped)."""
        task = self._task
        if task is None:
            return
        try:
            await asyncio.shield(task)
        except asyncio.CancelledError:
            # only swallow our own task's cancellation, not the caller's
            if not task.cancelled():
                raise

    def set_dynamic_polling(self, enabled: bool) -> None:
        self.dynamic_polling = enabled
        self._current_interval = self.interval

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    async def _run(self) -> None:
        while self._running:
            await self.poll_once()
            if not self._running:
                break
            await asyncio.sleep(self._current_interval / 1000)

    async def poll_once(self) -> list[ChatMessage]:
        """Run one fetch → dedup → notify → re-pace cycle.

        Returns the messages delivered in this cycle.  Does not schedule
        anything; the background task calls this in a loop.
        """
        # a cycle started while running ends as soon as an observer stops us;
        # a manual cycle on a stopped listener always runs to completion
        live = self._running
        new_messages: list[ChatMessage] = []
        try:
            messages = await self._fetcher(self.video_id, self.fetch_options)
        except ChatFetchError as e:
            self._report(e, f"Listener [{self.video_id}] fetch failed: {e}")
        except Exception as e:
            self._report(e, f"Listener [{self.video_id}] unexpected fetch error: {e!r}")
        else:
            for msg in messages:
                if live and not self._running:
                    break
                if not msg.is_valid() or msg.id in self._seen:
                    continue
                self._seen.add(msg.id)
                new_messages.append(msg)
                self._notify(msg, live)

        self._update_interval(bool(new_messages))
        return new_messages

    def _notify(self, msg: ChatMessage, live: bool = False) -> None:
        # snapshot: observers may (un)subscribe while being notified
        for callback in list(self._observers):
            if live and not self._running:
                break
            try:
                callback(msg)
            except Exception as e:
                err = ObserverError(callback, msg)
                err.__cause__ = e
                self._report(err, f"Listener [{self.video_id}] {err}: {e!r}")

    def _update_interval(self, had_new: bool) -> None:
        if not self.dynamic_polling or had_new:
            self._current_interval = self.interval
        else:
            self._current_interval = min(
                self._current_interval * _BACKOFF_FACTOR, self.max_interval
            )

    def _report(self, error: Exception, text: str) -> None:
        l.error(text)
        for handler in list(self._error_handlers):
            try:
                handler(error)
            except Exception as e:
                l.error(f"Listener [{self.video_id}] error handler failed: {e!r}")
