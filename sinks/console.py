# Console sink: writes each chat message to the application log.
#
# Config keys (under console.<instance_id>):
#   format – str.format template; available keys:
#            {video_id} {author} {author_id} {text} {id} {timestamp}
#            (default "[{video_id}] {author}: {text}")

from __future__ import annotations

import string

from pydantic import model_validator

import services.logger as log
from services.config_schema import _SinkConfig
from services.message import ChatMessage
from sinks import BaseSink


class ConsoleSinkConfig(_SinkConfig):
    format: str = "[{video_id}] {author}: {text}"

    @model_validator(mode="after")
    def _check_format(self) -> ConsoleSinkConfig:
        try:
            list(string.Formatter().parse(self.format))
        except ValueError as e:
            raise ValueError(f"malformed 'format' template: {e}") from e
        return self


l = log.get_logger()


class ConsoleSink(BaseSink[ConsoleSinkConfig]):

    def format(self, message: ChatMessage, video_id: str = "") -> str:
        ctx = {
            "video_id":  video_id,
            "author":    message.author,
            "author_id": message.author_id,
            "text":      message.text,
            "id":        message.id,
            "timestamp": message.timestamp.isoformat(),
        }
        try:
            return self.config.format.format(**ctx)
        except (KeyError, IndexError, ValueError) as e:
            l.warning(f"Console [{self.instance_id}] cannot format message ({e!r}); using default")
            return ConsoleSinkConfig().format.format(**ctx)

    def __call__(self, message: ChatMessage, video_id: str = "") -> None:
        l.info(self.format(message, video_id))


from sinks.registry import register
register("console", ConsoleSinkConfig, ConsoleSink)
