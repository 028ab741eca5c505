# JSON Lines sink: appends every chat message to a file, one object per line.
#
# Config keys (under jsonl.<instance_id>):
#   path – Output file; relative paths are resolved against the data
#          directory (default "chat.jsonl")
#
# Line format: ChatMessage.to_dict() plus a "video_id" field.

import json
from pathlib import Path
from typing import TextIO

import services.logger as log
import services.util as u
from services.config_schema import _SinkConfig
from services.message import ChatMessage
from sinks import BaseSink


class JsonlSinkConfig(_SinkConfig):
    path: str = "chat.jsonl"


l = log.get_logger()


class JsonlSink(BaseSink[JsonlSinkConfig]):

    def __init__(self, instance_id: str, config: JsonlSinkConfig):
        super().__init__(instance_id, config)
        self._file: TextIO | None = None

    @property
    def path(self) -> Path:
        p = Path(self.config.path)
        return p if p.is_absolute() else Path(u.get_data_path()) / p

    async def open(self):
        self.path.parent.mkdir(parents=True, exist_ok=True)
        self._file = open(self.path, "a", encoding="utf-8")
        l.info(f"JSONL [{self.instance_id}] appending to {self.path}")

    async def close(self):
        if self._file is not None:
            self._file.close()
            self._file = None

    def __call__(self, message: ChatMessage, video_id: str = "") -> None:
        if self._file is None:
            l.warning(f"JSONL [{self.instance_id}] not opened, message dropped")
            return
        record = {"video_id": video_id, **message.to_dict()}
        self._file.write(json.dumps(record, ensure_ascii=False) + "\n")
        self._file.flush()


from sinks.registry import register
register("jsonl", JsonlSinkConfig, JsonlSink)
