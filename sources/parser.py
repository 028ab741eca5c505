# Extraction of chat messages from the YouTube popout chat page.
#
# The page embeds its initial state as a JSON object assigned to
# ``ytInitialData`` inside a <script> tag:
#
#   window["ytInitialData"] = {"responseContext": ..., "contents": {...}};
#
# Chat items live under contents.liveChatRenderer.actions[*]; each plain text
# message is an addChatItemAction whose item is a liveChatTextMessageRenderer:
#
#   {
#     "id":                      "<message id>",
#     "message":                 {"runs": [{"text": ...} | {"emoji": {...}}]},
#     "authorName":              {"simpleText": "<display name>"},
#     "authorPhoto":             {"thumbnails": [{"url", "width", "height"}]},
#     "authorBadges":            [{"liveChatAuthorBadgeRenderer": {...}}],
#     "authorExternalChannelId": "<channel id>",
#     "timestampUsec":           "<microseconds since epoch>"
#   }
#
# Paid messages, memberships, tickers etc. use other renderers and are skipped.

import json
from datetime import datetime, timedelta, timezone

import services.logger as log
from services.error import ChatParseError, MessageShapeError
from services.message import Badge, ChatMessage, EmojiRun, TextPart, TextRun, Thumbnail

l = log.get_logger()

_MARKERS = ('window["ytInitialData"] = ', 'var ytInitialData = ')
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

# Errors that mean "this action is not the shape we expect"
_SHAPE_ERRORS = (MessageShapeError, KeyError, TypeError, ValueError, AttributeError, IndexError)


# ---------------------------------------------------------------------------
# Page → JSON
# ---------------------------------------------------------------------------

def _balanced_object(text: str, start: int) -> str | None:
    """Return the JSON object starting at *start*, up to its matching brace."""
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
        elif ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start:i + 1]
    return None


def extract_initial_data(html: str) -> dict:
    """Pull the ``ytInitialData`` object out of a chat page."""
    for marker in _MARKERS:
        pos = html.find(marker)
        if pos == -1:
            continue
        start = html.find("{", pos + len(marker))
        if start == -1:
            raise ChatParseError("no object after ytInitialData marker")
        blob = _balanced_object(html, start)
        if blob is None:
            raise ChatParseError("ytInitialData object is not terminated")
        try:
            data = json.loads(blob)
        except json.JSONDecodeError as e:
            raise ChatParseError(f"ytInitialData is not valid JSON: {e}") from e
        if not isinstance(data, dict):
            raise ChatParseError("ytInitialData is not a JSON object")
        return data
    raise ChatParseError("ytInitialData marker not found in page")


# ---------------------------------------------------------------------------
# JSON → ChatMessage
# ---------------------------------------------------------------------------

def _thumbnail(raw: dict) -> Thumbnail:
    return Thumbnail(
        width=int(raw.get("width", 0)),
        height=int(raw.get("height", 0)),
        url=raw["url"],
    )


def _emoji_label(emoji: dict) -> str:
    label = (
        emoji.get("image", {})
        .get("accessibility", {})
        .get("accessibilityData", {})
        .get("label")
    )
    if label:
        return f":{label}:"
    shortcuts = emoji.get("shortcuts") or []
    if len(shortcuts) > 1 and shortcuts[1]:
        return shortcuts[1]
    return shortcuts[0] if shortcuts else ""


def _text_part(run: dict) -> TextPart:
    if "text" in run:
        return TextRun(text=str(run["text"]))
    emoji = run.get("emoji")
    if not isinstance(emoji, dict):
        raise MessageShapeError(f"unknown message run: {sorted(run)}")

    thumbnails = emoji.get("image", {}).get("thumbnails") or []
    shortcuts = emoji.get("shortcuts") or []
    is_custom = bool(emoji.get("isCustomEmoji"))
    shortcut = shortcuts[0] if shortcuts else ""
    return EmojiRun(
        url=thumbnails[0]["url"] if thumbnails else "",
        alt=shortcut,
        is_custom_emoji=is_custom,
        emoji_text=shortcut if is_custom else emoji.get("emojiId", ""),
    )


def _badge(raw: dict) -> Badge:
    renderer = raw["liveChatAuthorBadgeRenderer"]
    label = (
        renderer.get("accessibility", {}).get("accessibilityData", {}).get("label")
        or renderer.get("tooltip", "")
    )
    custom = renderer.get("customThumbnail", {}).get("thumbnails") or []
    return Badge(
        label=label,
        icon_type=renderer.get("icon", {}).get("iconType", ""),
        thumbnail=_thumbnail(custom[0]) if custom else None,
    )


def parse_action(action: dict) -> ChatMessage:
    """Build a ChatMessage from one ``actions[*]`` entry.

    Raises MessageShapeError (or a KeyError/TypeError from a missing key) for
    anything that is not a plain text chat message.
    """
    item = action.get("addChatItemAction", {}).get("item", {})
    renderer = item.get("liveChatTextMessageRenderer")
    if renderer is None:
        raise MessageShapeError(f"not a text message: {sorted(item) or sorted(action)}")

    runs = renderer["message"]["runs"]
    parts = tuple(_text_part(run) for run in runs)

    words: list[str] = []
    for run, part in zip(runs, parts):
        if isinstance(part, TextRun):
            words.append(part.text.strip())
        else:
            words.append(_emoji_label(run["emoji"]))

    usec = int(renderer["timestampUsec"])
    return ChatMessage(
        text=" ".join(words),
        author=renderer.get("authorName", {}).get("simpleText", ""),
        id=renderer.get("id", ""),
        author_id=renderer.get("authorExternalChannelId", ""),
        timestamp=_EPOCH + timedelta(milliseconds=usec // 1000),
        author_thumbnails=tuple(
            _thumbnail(t) for t in renderer.get("authorPhoto", {}).get("thumbnails", [])
        ),
        badges=tuple(_badge(b) for b in renderer.get("authorBadges", [])),
        text_parts=parts,
    )


def parse_chat_data(data: dict) -> list[ChatMessage]:
    """Return the valid text messages in a decoded ``ytInitialData`` object.

    Malformed actions and invalid messages are dropped one by one; only a
    missing ``liveChatRenderer`` fails the whole snapshot.
    """
    try:
        renderer = data["contents"]["liveChatRenderer"]
    except (KeyError, TypeError) as e:
        raise ChatParseError(f"no liveChatRenderer in page data ({e!r})") from e

    if not isinstance(renderer, dict):
        raise ChatParseError("liveChatRenderer is not an object")

    messages: list[ChatMessage] = []
    for action in renderer.get("actions") or []:
        try:
            msg = parse_action(action)
        except _SHAPE_ERRORS as e:
            l.debug(f"Skipping chat action: {e!r}")
            continue
        if msg.is_valid():
            messages.append(msg)
    return messages
