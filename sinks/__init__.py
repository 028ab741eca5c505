from abc import ABC, abstractmethod
from typing import Generic, TypeVar

from pydantic import BaseModel

from services.message import ChatMessage

T = TypeVar("T", bound=BaseModel)


class BaseSink(ABC, Generic[T]):
    """Abstract base class for message sinks.

    A sink is a listener observer: ``__call__`` runs synchronously inside the
    poll tick, so anything slow must be handed off to a task.
    """

    def __init__(self, instance_id: str, config: T):
        self.instance_id = instance_id
        self.config: T = config

    async def open(self):
        """Acquire resources (sessions, files) before the first message."""

    async def close(self):
        """Release whatever ``open`` acquired and flush pending work."""

    @abstractmethod
    def __call__(self, message: ChatMessage, video_id: str = "") -> None:
        """Handle one new chat *message* from the listener on *video_id*."""
