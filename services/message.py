from dataclasses import dataclass, field
from datetime import datetime


@dataclass(frozen=True)
class Thumbnail:
    """An image rendition (author avatar, badge or emoji)."""
    width: int
    height: int
    url: str


@dataclass(frozen=True)
class Badge:
    """A badge shown next to an author's name."""
    label: str                          # e.g. "Moderator", "Member (6 months)"
    icon_type: str = ""                 # built-in badges: "OWNER" | "MODERATOR" | "VERIFIED"
    thumbnail: Thumbnail | None = None  # custom (member) badges carry an image instead


@dataclass(frozen=True)
class TextRun:
    """A plain-text segment of a message."""
    text: str


@dataclass(frozen=True)
class EmojiRun:
    """An emoji segment of a message."""
    url: str              # first image thumbnail ("" when unavailable)
    alt: str              # first shortcut, e.g. ":smile:"
    is_custom_emoji: bool
    emoji_text: str       # shortcut for custom emoji, unicode emoji id otherwise


TextPart = TextRun | EmojiRun


@dataclass(frozen=True)
class ChatMessage:
    """One live chat message, as scraped from the chat page."""
    text: str           # flattened text, emoji rendered as :label:
    author: str         # display name
    id: str             # platform-assigned, globally unique
    author_id: str      # author's channel id
    timestamp: datetime  # UTC, millisecond precision
    author_thumbnails: tuple[Thumbnail, ...] = ()
    badges: tuple[Badge, ...] = ()
    text_parts: tuple[TextPart, ...] = field(default_factory=tuple)

    def is_valid(self) -> bool:
        """Messages without text, author or id are never surfaced."""
        for value in (self.text, self.author, self.id):
            if not isinstance(value, str) or not value:
                return False
        return True

    def to_dict(self) -> dict:
        """JSON-serialisable form used by the sinks."""
        parts: list[dict] = []
        for part in self.text_parts:
            if isinstance(part, TextRun):
                parts.append({"type": "text", "text": part.text})
            else:
                parts.append({
                    "type":            "emoji",
                    "url":             part.url,
                    "alt":             part.alt,
                    "is_custom_emoji": part.is_custom_emoji,
                    "emoji_text":      part.emoji_text,
                })

        return {
            "id":        self.id,
            "text":      self.text,
            "author":    self.author,
            "author_id": self.author_id,
            "timestamp": self.timestamp.isoformat(),
            "author_thumbnails": [
                {"width": t.width, "height": t.height, "url": t.url}
                for t in self.author_thumbnails
            ],
            "badges": [
                {
                    "label":     b.label,
                    "icon_type": b.icon_type,
                    "thumbnail": (
                        {"width": b.thumbnail.width, "height": b.thumbnail.height, "url": b.thumbnail.url}
                        if b.thumbnail else None
                    ),
                }
                for b in self.badges
            ],
            "text_parts": parts,
        }
