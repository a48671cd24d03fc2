"""Tests for related-video recommendations."""

from __future__ import annotations

import pytest

from vixel import related, youtube


def _current_video(fake_youtube):
    return fake_youtube.add_video(
        "cur", title="Amazing Guitar Solo Live", category_id="10", channel_id="UCcur"
    )


def test_extract_keywords_keeps_first_long_words() -> None:
    assert related.extract_keywords("The Best Pasta Recipe Ever!") == "Best Pasta"
    assert related.extract_keywords("How to fix a bike", limit=3) == "bike"
    assert related.extract_keywords("") == ""


def test_extract_keywords_keeps_non_ascii_letters() -> None:
    assert related.extract_keywords("¡Café olé para todos!") == "Café para"


def test_dedupe_videos_keeps_first_occurrence() -> None:
    videos = [
        {"id": {"videoId": "a"}, "source": "category"},
        {"id": "b"},
        {"id": {"videoId": "a"}, "source": "keyword"},
        {"id": {}},
    ]

    unique = related.dedupe_videos(videos)

    assert [youtube.video_identifier(video) for video in unique] == ["a", "b"]
    assert unique[0]["source"] == "category"


@pytest.mark.asyncio
async def test_related_videos_merge_category_keyword_and_channel(fake_youtube) -> None:
    current = _current_video(fake_youtube)
    for video_id in ("a", "b", "c", "d"):
        fake_youtube.add_video(video_id)
    fake_youtube.on_search(["cur", "a", "b"], videoCategoryId="10")
    fake_youtube.on_search(["b", "c"], q="Amazing Guitar")
    fake_youtube.on_search(["d", "cur"], channelId="UCcur")

    listing = await related.fetch_related_videos(current, "US", 12)

    assert listing.error is None
    assert [video["id"] for video in listing.items] == ["a", "b", "c", "d"]
    assert listing.page_info == {"totalResults": 4, "resultsPerPage": 4}

    category_search, keyword_search, channel_search = fake_youtube.calls_to("search")
    assert category_search["maxResults"] == "5"
    assert category_search["order"] == "relevance"
    assert keyword_search["maxResults"] == "5"
    assert channel_search["maxResults"] == "3"
    assert channel_search["order"] == "date"
    assert "publishedAfter" not in channel_search


@pytest.mark.asyncio
async def test_related_videos_are_capped_at_max_results(fake_youtube) -> None:
    current = _current_video(fake_youtube)
    ids = [f"v{index}" for index in range(6)]
    for video_id in ids:
        fake_youtube.add_video(video_id)
    fake_youtube.on_search(ids[:3], videoCategoryId="10")
    fake_youtube.on_search(ids[3:], q="Amazing Guitar")

    listing = await related.fetch_related_videos(current, "US", 4)

    assert [video["id"] for video in listing.items] == ids[:4]


@pytest.mark.asyncio
async def test_related_videos_skip_failed_stages(fake_youtube) -> None:
    current = _current_video(fake_youtube)
    fake_youtube.add_video("k1")
    fake_youtube.fail("search", youtube.classify_api_error(500, "boom"), videoCategoryId="10")
    fake_youtube.on_search(["k1"], q="Amazing Guitar")

    listing = await related.fetch_related_videos(current, "US")

    assert [video["id"] for video in listing.items] == ["k1"]


@pytest.mark.asyncio
async def test_related_videos_look_up_missing_category(fake_youtube) -> None:
    fake_youtube.add_video("cur", category_id="27", title="Tiny")
    fake_youtube.add_video("e1")
    fake_youtube.on_search(["e1"], videoCategoryId="27")
    current = {"id": "cur", "snippet": {"title": "Tiny", "channelId": ""}}

    listing = await related.fetch_related_videos(current, "US")

    assert [video["id"] for video in listing.items] == ["e1"]
    lookup = fake_youtube.calls_to("videos")[0]
    assert lookup == {"part": "snippet", "id": "cur"}


@pytest.mark.asyncio
async def test_related_videos_fall_back_to_popular_without_candidates(fake_youtube) -> None:
    current = _current_video(fake_youtube)
    fake_youtube.add_video("p1")
    fake_youtube.add_video("p2")
    fake_youtube.popular = ["cur", "p1", "p2"]

    listing = await related.fetch_related_videos(current, "JP", 12)

    assert [video["id"] for video in listing.items] == ["p1", "p2"]
    chart_call = next(params for params in fake_youtube.calls_to("videos") if "chart" in params)
    assert chart_call["regionCode"] == "JP"


@pytest.mark.asyncio
async def test_related_videos_fall_back_to_popular_on_detail_errors(fake_youtube) -> None:
    current = _current_video(fake_youtube)
    fake_youtube.add_video("a")
    fake_youtube.add_video("p1")
    fake_youtube.popular = ["p1"]
    fake_youtube.on_search(["a"], videoCategoryId="10")
    fake_youtube.fail("videos", youtube.classify_api_error(403, "quota exceeded"), id="a")

    listing = await related.fetch_related_videos(current, "US")

    assert [video["id"] for video in listing.items] == ["p1"]
