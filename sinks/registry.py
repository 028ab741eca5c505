"""
Sink registry.

Each sink module calls ``register()`` at import time.  ``main.py`` then
auto-discovers all sink modules via ``pkgutil.iter_modules`` so no central
list needs to be maintained — drop a file into ``sinks/`` and it's live.
"""

from __future__ import annotations

_REGISTRY: dict[str, tuple[type, type]] = {}


def register(name: str, config_cls: type, sink_cls: type) -> None:
    """Register a sink under *name*.

    Args:
        name:       Key used in the config file  (e.g. ``"webhook"``).
        config_cls: Pydantic model class for per-instance config validation.
        sink_cls:   ``BaseSink`` subclass to instantiate.
    """
    _REGISTRY[name] = (config_cls, sink_cls)


def all_sinks() -> dict[str, tuple[type, type]]:
    """Return a snapshot of ``{name: (config_cls, sink_cls)}``."""
    return dict(_REGISTRY)
