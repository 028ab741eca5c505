import logging
from datetime import datetime, timezone

import services.logger as log
from services.message import Badge, ChatMessage, EmojiRun, TextRun, Thumbnail


def test_to_dict_tags_parts_and_serialises_badges():
    msg = ChatMessage(
        text="hi :wave:",
        author="Ann",
        id="m",
        author_id="UCann",
        timestamp=datetime(2024, 5, 1, 12, 0, 0, 500000, tzinfo=timezone.utc),
        author_thumbnails=(Thumbnail(64, 64, "https://a/64"),),
        badges=(Badge("Owner", "OWNER"), Badge("Member", thumbnail=Thumbnail(16, 16, "https://b/16"))),
        text_parts=(TextRun("hi"), EmojiRun("https://e", ":wave:", False, "👋")),
    )
    d = msg.to_dict()

    assert d["timestamp"] == "2024-05-01T12:00:00.500000+00:00"
    assert d["author_thumbnails"] == [{"width": 64, "height": 64, "url": "https://a/64"}]
    assert d["badges"][0] == {"label": "Owner", "icon_type": "OWNER", "thumbnail": None}
    assert d["badges"][1]["thumbnail"]["url"] == "https://b/16"
    assert d["text_parts"] == [
        {"type": "text", "text": "hi"},
        {"type": "emoji", "url": "https://e", "alt": ":wave:", "is_custom_emoji": False, "emoji_text": "👋"},
    ]


def test_is_valid():
    ts = datetime.now(timezone.utc)
    assert ChatMessage("t", "a", "i", "", ts).is_valid()
    assert not ChatMessage("", "a", "i", "", ts).is_valid()
    assert not ChatMessage("t", "", "i", "", ts).is_valid()
    assert not ChatMessage("t", "a", "", "", ts).is_valid()


def test_masking_filter_redacts_registered_secrets():
    log.register_sensitive(["supersecretvalue", "short"])
    record = logging.LogRecord("chattap", logging.INFO, __file__, 1, "token=%s short", ("supersecretvalue",), None)

    assert log.MaskingFilter().filter(record)
    assert record.getMessage() == "token=*** short"
