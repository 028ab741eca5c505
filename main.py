import argparse
import asyncio
import functools
import importlib
import pkgutil
import sys
from pathlib import Path

from pydantic import ValidationError

import services.error as error
import services.logger as log
import services.util as u
import services.config_io as config_io
from services.config_schema import ListenerConfig
from services.listener import ChatListener
from sources import Resolver, youtube

import sinks as _sinks_pkg

l = log.get_logger()


def _load_all_sinks() -> None:
    """Import every module in the ``sinks/`` package.

    Each sink module calls ``sinks.registry.register()`` at import time,
    so this one pass is enough to populate the registry.
    """
    for _, mod_name, _ in pkgutil.iter_modules(_sinks_pkg.__path__):
        if mod_name != "registry":
            importlib.import_module(f"sinks.{mod_name}")


def cmd_convert(src: str, dst: str) -> None:
    src_path = Path(src)
    dst_path = Path(dst)

    if not src_path.is_file():
        print(f"Error: source file not found: {src_path}", file=sys.stderr)
        sys.exit(1)

    try:
        data = config_io.load_config(src_path)
    except Exception as e:
        print(f"Error reading {src_path}: {e}", file=sys.stderr)
        sys.exit(1)

    try:
        config_io.save_config(data, dst_path)
    except Exception as e:
        print(f"Error writing {dst_path}: {e}", file=sys.stderr)
        sys.exit(1)

    print(f"Converted {src_path} → {dst_path}")


async def cmd_resolve(handle: str) -> int:
    try:
        video_id = await youtube.get_live_video_id(handle)
    finally:
        await youtube.close_session()
    if video_id is None:
        print(f"No live video found for {handle}", file=sys.stderr)
        return 1
    print(video_id)
    return 0


def validate_config(raw: dict):
    """Validate sink instances and listeners; returns None on any error."""
    from sinks.registry import all_sinks

    ok = True
    sinks: dict[str, object] = {}
    for kind, (config_cls, sink_cls) in all_sinks().items():
        for inst_id, inst_raw in (raw.get(kind) or {}).items():
            try:
                cfg = config_cls.model_validate(inst_raw or {})
            except ValidationError as exc:
                l.critical(f"Config error in {kind}.{inst_id}:\n{exc}")
                ok = False
                continue
            if inst_id in sinks:
                l.critical(f"Duplicate sink id '{inst_id}' (in {kind})")
                ok = False
                continue
            sinks[inst_id] = sink_cls(inst_id, cfg)

    listeners: dict[str, ListenerConfig] = {}
    for name, lst_raw in (raw.get("listeners") or {}).items():
        try:
            listeners[name] = ListenerConfig.model_validate(lst_raw or {})
        except ValidationError as exc:
            l.critical(f"Config error in listeners.{name}:\n{exc}")
            ok = False
            continue
        unknown = [s for s in listeners[name].sinks if s not in sinks]
        if unknown:
            l.critical(f"listeners.{name} refers to unknown sink(s): {', '.join(unknown)}")
            ok = False

    if not ok:
        return None
    return sinks, listeners


async def build_listener(
    name: str,
    cfg: ListenerConfig,
    sinks: dict,
    resolver: Resolver = youtube.get_live_video_id,
) -> ChatListener | None:
    video_id = cfg.video_id
    if not video_id:
        video_id = await resolver(cfg.handle)
        if video_id is None:
            l.error(f"Listener '{name}': @{cfg.handle.lstrip('@')} is not live, skipping")
            return None

    listener = ChatListener(video_id, cfg)
    for sink_id in cfg.sinks or list(sinks):
        listener.on_message(functools.partial(sinks[sink_id], video_id=video_id))
    l.info(f"Listener '{name}' → {video_id} ({len(cfg.sinks or sinks)} sink(s))")
    return listener


async def main():
    _load_all_sinks()

    l.info("ChatTap starting…")

    config_path = config_io.find_config(Path(u.get_data_path()))
    if config_path is None:
        l.critical(f"No config file found in: {u.get_data_path()} (tried config.json / .yaml / .toml)")
        return

    l.info(f"Loading config from: {config_path}")
    with error.catch_and_log(f"loading {config_path}"):
        raw: dict = config_io.load_config(config_path)

    validated = validate_config(raw)
    if validated is None:
        return
    sinks, listener_cfgs = validated

    if not listener_cfgs:
        l.error("No listeners configured — nothing to do, exiting.")
        return
    if not sinks:
        l.warning("No sinks configured — messages will be fetched but not delivered anywhere")

    for sink in sinks.values():
        await sink.open()

    listeners: list[ChatListener] = []
    try:
        for name, cfg in listener_cfgs.items():
            listener = await build_listener(name, cfg, sinks)
            if listener is not None:
                listener.start()
                listeners.append(listener)

        if not listeners:
            l.error("No listener could be started, exiting.")
            return

        await asyncio.gather(*(lst.wait_closed() for lst in listeners))
    except asyncio.CancelledError:
        l.info("ChatTap shutting down…")
        raise
    finally:
        for listener in listeners:
            listener.stop()
        await asyncio.gather(*(lst.wait_closed() for lst in listeners), return_exceptions=True)
        for sink in sinks.values():
            await sink.close()
        await youtube.close_session()
        l.info("ChatTap stopped.")


if __name__ == "__main__":
    error.install_excepthook()

    parser = argparse.ArgumentParser(prog="chattap", description="ChatTap live chat listener")
    subparsers = parser.add_subparsers(dest="command")

    res = subparsers.add_parser("resolve", help="Print the live video id for a channel handle")
    res.add_argument("handle", help="Channel handle, with or without '@'")

    conv = subparsers.add_parser("convert", help="Convert a config file between formats (json/yaml/toml)")
    conv.add_argument("src", help="Source config file (e.g. config.json)")
    conv.add_argument("dst", help="Destination config file (e.g. config.yaml)")

    args = parser.parse_args()

    if args.command == "convert":
        cmd_convert(args.src, args.dst)
        sys.exit(0)

    if args.command == "resolve":
        sys.exit(asyncio.run(cmd_resolve(args.handle)))

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        pass
