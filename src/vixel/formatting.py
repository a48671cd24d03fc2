"""Display helpers for video cards and the watch page."""

from __future__ import annotations

import re
from datetime import datetime, timezone

NO_DESCRIPTION = "No description available."
DESCRIPTION_PREVIEW_LENGTH = 500

_URL_PATTERN = re.compile(r"https?://\S+")
_MENTION_PATTERN = re.compile(r"@[a-zA-Z0-9_]+")
_HASHTAG_PATTERN = re.compile(r"#[a-zA-Z0-9_]+")
_WHITESPACE_SPLIT = re.compile(r"(\s+)")

_UNITS = (
    ("year", 365 * 24 * 3600),
    ("month", 30 * 24 * 3600),
    ("day", 24 * 3600),
    ("hour", 3600),
    ("minute", 60),
)


def _parse_timestamp(value: str) -> datetime | None:
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def relative_time(published_at: str | None, now: datetime | None = None) -> str:
    """Describe how long ago ``published_at`` was, e.g. ``"3 days ago"``."""

    if not published_at:
        return ""
    published = _parse_timestamp(published_at)
    if published is None:
        return ""
    reference = now or datetime.now(timezone.utc)
    seconds = int((reference - published).total_seconds())
    if seconds < 60:
        return "just now"
    for unit, size in _UNITS:
        if seconds >= size:
            count = seconds // size
            plural = "" if count == 1 else "s"
            return f"{count} {unit}{plural} ago"
    return "just now"  # pragma: no cover - minute branch always matches


def truncate_title(title: str | None, max_length: int = 40) -> str:
    text = title or ""
    return text[:max_length] + "..." if len(text) > max_length else text


def linkify_description(text: str | None) -> list[dict[str, str]]:
    """Split a description into text, URL, mention and hashtag tokens.

    Whitespace is preserved as ``text`` tokens so templates can render the
    description with ``white-space: pre-wrap``.
    """

    tokens: list[dict[str, str]] = []
    if not text:
        return tokens
    for part in _WHITESPACE_SPLIT.split(text):
        if not part:
            continue
        if _URL_PATTERN.match(part):
            kind = "url"
        elif _MENTION_PATTERN.search(part):
            kind = "mention"
        elif _HASHTAG_PATTERN.search(part):
            kind = "hashtag"
        else:
            kind = "text"
        if tokens and kind == "text" and tokens[-1]["kind"] == "text":
            tokens[-1]["value"] += part
        else:
            tokens.append({"kind": kind, "value": part})
    return tokens


def description_preview(
    text: str | None, limit: int = DESCRIPTION_PREVIEW_LENGTH
) -> tuple[str, bool]:
    """Return the collapsed description and whether it was shortened."""

    description = text or NO_DESCRIPTION
    if len(description) > limit:
        return description[:limit], True
    return description, False


__all__ = [
    "NO_DESCRIPTION",
    "description_preview",
    "linkify_description",
    "relative_time",
    "truncate_title",
]
