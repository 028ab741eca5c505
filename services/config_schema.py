from __future__ import annotations

from typing import Annotated

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, model_validator


# ---------------------------------------------------------------------------
# Reusable bool coercion: "true" / "1" / "yes" → True
# ---------------------------------------------------------------------------

def _coerce_bool(v: object) -> object:
    if isinstance(v, str):
        return v.lower() in ("true", "1", "yes")
    return v


CoercedBool = Annotated[bool, BeforeValidator(_coerce_bool)]


# ---------------------------------------------------------------------------
# Base for all config blocks — unknown keys are a validation error
# ---------------------------------------------------------------------------

class _StrictConfig(BaseModel):
    model_config = ConfigDict(extra="forbid")


class _SinkConfig(_StrictConfig):
    """Base for per-sink config models (declared next to each sink)."""


# ---------------------------------------------------------------------------
# Listener config
# ---------------------------------------------------------------------------

class FetchOptions(_StrictConfig):
    """Passed through untouched by the listener to the fetcher."""
    headers: dict[str, str] = Field(default_factory=dict)
    proxy:   str | None     = None
    timeout: float          = Field(default=10.0, gt=0)  # seconds


class ChatListenerOptions(_StrictConfig):
    interval:        int          = Field(default=1000, gt=0)  # ms
    fetch_options:   FetchOptions = Field(default_factory=FetchOptions)
    dynamic_polling: CoercedBool  = False
    max_interval:    int          = Field(default=5000, gt=0)  # ms
    max_stored_ids:  int          = Field(default=100, gt=0)

    @model_validator(mode="after")
    def _check_intervals(self) -> ChatListenerOptions:
        if self.max_interval < self.interval:
            raise ValueError("'max_interval' must be >= 'interval'")
        return self


class ListenerConfig(ChatListenerOptions):
    video_id: str       = ""
    handle:   str       = ""
    sinks:    list[str] = Field(default_factory=list)  # empty = every sink

    @model_validator(mode="after")
    def _require_target(self) -> ListenerConfig:
        if not self.video_id and not self.handle:
            raise ValueError("requires 'video_id' or 'handle'")
        return self
