from __future__ import annotations

from datetime import datetime, timezone

from vixel import formatting

NOW = datetime(2024, 6, 15, 12, 0, tzinfo=timezone.utc)


def test_relative_time_picks_largest_unit() -> None:
    assert formatting.relative_time("2024-06-15T11:59:30Z", NOW) == "just now"
    assert formatting.relative_time("2024-06-15T11:58:00Z", NOW) == "2 minutes ago"
    assert formatting.relative_time("2024-06-15T11:00:00Z", NOW) == "1 hour ago"
    assert formatting.relative_time("2024-06-12T12:00:00Z", NOW) == "3 days ago"
    assert formatting.relative_time("2024-04-01T12:00:00Z", NOW) == "2 months ago"
    assert formatting.relative_time("2021-06-01T12:00:00Z", NOW) == "3 years ago"


def test_relative_time_ignores_missing_or_malformed_values() -> None:
    assert formatting.relative_time(None, NOW) == ""
    assert formatting.relative_time("yesterday", NOW) == ""


def test_truncate_title() -> None:
    assert formatting.truncate_title("Short") == "Short"
    assert formatting.truncate_title("x" * 41) == "x" * 40 + "..."
    assert formatting.truncate_title("x" * 40) == "x" * 40
    assert formatting.truncate_title(None) == ""


def test_linkify_description_tags_urls_mentions_and_hashtags() -> None:
    tokens = formatting.linkify_description("Follow @vixel at https://vixel.app #epic\nthanks")

    assert tokens == [
        {"kind": "text", "value": "Follow "},
        {"kind": "mention", "value": "@vixel"},
        {"kind": "text", "value": " at "},
        {"kind": "url", "value": "https://vixel.app"},
        {"kind": "text", "value": " "},
        {"kind": "hashtag", "value": "#epic"},
        {"kind": "text", "value": "\nthanks"},
    ]


def test_linkify_description_handles_empty_text() -> None:
    assert formatting.linkify_description("") == []
    assert formatting.linkify_description(None) == []


def test_description_preview_truncates_long_text() -> None:
    text, truncated = formatting.description_preview("a" * 600)

    assert text == "a" * 500
    assert truncated is True
    assert formatting.description_preview(None) == (formatting.NO_DESCRIPTION, False)
    assert formatting.description_preview("short") == ("short", False)


def test_linkify_description_only_links_words_starting_with_http() -> None:
    tokens = formatting.linkify_description(
        "javascript:alert(document.cookie)//https://x.io see (https://vixel.app)"
    )

    assert [token["kind"] for token in tokens] == ["text"]
    assert formatting.linkify_description("http://vixel.app/watch?v=1") == [
        {"kind": "url", "value": "http://vixel.app/watch?v=1"}
    ]
