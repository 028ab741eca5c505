import asyncio
import json

import aiohttp
import pytest
from aiohttp import test_utils, web
from pydantic import ValidationError

import main
from conftest import make_message
from sinks.console import ConsoleSink, ConsoleSinkConfig
from sinks.jsonl import JsonlSink, JsonlSinkConfig
from sinks.webhook import WebhookSink, WebhookSinkConfig


def test_console_format():
    sink = ConsoleSink("out", ConsoleSinkConfig(format="{author} ({author_id}) said {text} on {video_id}"))
    assert sink.format(make_message("1", text="hey", author="Bob"), "vid") == "Bob (UC1) said hey on vid"


def test_console_format_bad_key_falls_back():
    sink = ConsoleSink("out", ConsoleSinkConfig(format="{nope}"))
    assert sink.format(make_message("1", text="hey", author="Bob"), "vid") == "[vid] Bob: hey"


def test_console_bad_format_spec_falls_back():
    sink = ConsoleSink("out", ConsoleSinkConfig(format="{text:d}"))
    assert sink.format(make_message("1", text="hey", author="Bob"), "vid") == "[vid] Bob: hey"


@pytest.mark.parametrize("template", ["{author", "oops }"])
def test_console_malformed_template_rejected(template):
    with pytest.raises(ValidationError):
        ConsoleSinkConfig(format=template)
    assert main.validate_config({"console": {"out": {"format": template}}}) is None


@pytest.mark.asyncio
async def test_jsonl_appends_lines(tmp_path):
    path = tmp_path / "out" / "chat.jsonl"
    sink = JsonlSink("archive", JsonlSinkConfig(path=str(path)))
    await sink.open()
    sink(make_message("1", text="first"), "vid")
    sink(make_message("2", text="second"), "vid")
    await sink.close()

    lines = [json.loads(line) for line in path.read_text(encoding="utf-8").splitlines()]
    assert [(r["video_id"], r["id"], r["text"]) for r in lines] == [("vid", "1", "first"), ("vid", "2", "second")]
    assert lines[0]["timestamp"] == "2024-01-01T00:00:00+00:00"
    assert lines[0]["text_parts"] == [{"type": "text", "text": "first"}]


@pytest.mark.asyncio
async def test_webhook_posts_message():
    received = []

    async def hook(request: web.Request) -> web.Response:
        received.append((request.headers.get("Authorization"), await request.json()))
        return web.Response(status=204)

    app = web.Application()
    app.router.add_post("/hook", hook)

    async with test_utils.TestServer(app) as server:
        cfg = WebhookSinkConfig(url=str(server.make_url("/hook")), headers={"Authorization": "Bearer sekrit-token"})
        sink = WebhookSink("relay", cfg)
        await sink.open()
        sink(make_message("42", text="ping"), "vid")
        await sink.close()

    assert len(received) == 1
    auth, payload = received[0]
    assert auth == "Bearer sekrit-token"
    assert payload["video_id"] == "vid"
    assert payload["id"] == "42"
    assert payload["text"] == "ping"


@pytest.mark.asyncio
async def test_webhook_failure_is_logged_not_raised():
    sink = WebhookSink("relay", WebhookSinkConfig(url="http://127.0.0.1:1/hook", timeout=2))
    await sink.open()
    try:
        assert await sink.send(make_message("1"), "vid") is False
    finally:
        await sink.close()


def test_webhook_drops_when_not_open():
    sink = WebhookSink("relay", WebhookSinkConfig(url="http://example.invalid"))
    sink(make_message("1"), "vid")  # no running loop needed, nothing scheduled


# ---------------------------------------------------------------------------
# main.validate_config
# ---------------------------------------------------------------------------

def test_validate_config_builds_sinks_and_listeners():
    main._load_all_sinks()
    raw = {
        "listeners": {"a": {"video_id": "abc", "sinks": ["out"]}, "b": {"handle": "chan"}},
        "console": {"out": {}},
        "jsonl": {"file": {"path": "x.jsonl"}},
    }
    sinks, listeners = main.validate_config(raw)

    assert set(sinks) == {"out", "file"}
    assert isinstance(sinks["out"], ConsoleSink)
    assert listeners["a"].video_id == "abc"
    assert listeners["b"].handle == "chan"


@pytest.mark.parametrize(
    "raw",
    [
        {"listeners": {"a": {"video_id": "abc", "sinks": ["missing"]}}},
        {"listeners": {"a": {}}},
        {"listeners": {"a": {"video_id": "abc"}}, "webhook": {"w": {"method": "POST"}}},
        {"console": {"dup": {}}, "jsonl": {"dup": {}}},
    ],
)
def test_validate_config_rejects(raw):
    main._load_all_sinks()
    assert main.validate_config(raw) is None


@pytest.mark.asyncio
async def test_build_listener_subscribes_sinks():
    main._load_all_sinks()
    sinks, listeners = main.validate_config({
        "listeners": {"a": {"video_id": "abc", "sinks": ["out"]}},
        "console": {"out": {}, "other": {}},
    })
    listener = await main.build_listener("a", listeners["a"], sinks)

    assert listener.video_id == "abc"
    assert len(listener._observers) == 1


@pytest.mark.asyncio
async def test_build_listener_resolves_handle():
    main._load_all_sinks()
    sinks, listeners = main.validate_config({
        "listeners": {"live": {"handle": "@live"}, "idle": {"handle": "idle"}},
        "console": {"out": {}},
    })
    asked = []

    async def resolver(handle):
        asked.append(handle)
        return "LIVEvideo01" if handle == "@live" else None

    live = await main.build_listener("live", listeners["live"], sinks, resolver=resolver)
    idle = await main.build_listener("idle", listeners["idle"], sinks, resolver=resolver)

    assert live.video_id == "LIVEvideo01"
    assert idle is None
    assert asked == ["@live", "idle"]
