"""Related-video recommendations for the watch page."""

from __future__ import annotations

import logging
import math
import re
from collections.abc import Iterable, Mapping
from typing import Any

from .youtube import (
    VideoListing,
    YouTubeAPIError,
    api_get,
    enrich_videos,
    fetch_popular_videos,
    published_after,
    video_identifier,
)

logger = logging.getLogger(__name__)

CATEGORY_SHARE = 0.40
KEYWORD_SHARE = 0.35
CHANNEL_SHARE = 0.25

_PUNCTUATION = re.compile(r"[^\w\s]")


def extract_keywords(title: str, limit: int = 2) -> str:
    """Pick the first few words longer than three characters from a title."""

    cleaned = _PUNCTUATION.sub("", title or "")
    words = [word for word in cleaned.split() if len(word) > 3]
    return " ".join(words[:limit])


def dedupe_videos(videos: Iterable[Mapping[str, Any]]) -> list[Mapping[str, Any]]:
    """Keep the first occurrence of every video ID."""

    seen: set[str] = set()
    unique: list[Mapping[str, Any]] = []
    for video in videos:
        video_id = video_identifier(video)
        if not video_id or video_id in seen:
            continue
        seen.add(video_id)
        unique.append(video)
    return unique


async def _search_candidates(
    stage: str, params: dict[str, str], exclude_id: str | None
) -> list[dict[str, Any]]:
    query = {"part": "snippet", "type": "video", "videoDuration": "medium", **params}
    try:
        data = await api_get("search", query)
    except YouTubeAPIError as exc:
        logger.warning("%s videos fetch failed: %s", stage, exc.message)
        return []
    return [
        item
        for item in data.get("items") or []
        if video_identifier(item) != exclude_id
    ]


async def category_candidates(
    category_id: str, count: int, exclude_id: str | None
) -> list[dict[str, Any]]:
    return await _search_candidates(
        "Category",
        {
            "videoCategoryId": category_id,
            "maxResults": str(count),
            "order": "relevance",
            "publishedAfter": published_after(90),
        },
        exclude_id,
    )


async def keyword_candidates(
    title: str, count: int, exclude_id: str | None
) -> list[dict[str, Any]]:
    keywords = extract_keywords(title)
    if not keywords:
        return []
    return await _search_candidates(
        "Keyword",
        {
            "q": keywords,
            "maxResults": str(count),
            "order": "relevance",
            "publishedAfter": published_after(180),
        },
        exclude_id,
    )


async def channel_candidates(
    channel_id: str | None, count: int, exclude_id: str | None
) -> list[dict[str, Any]]:
    if not channel_id:
        return []
    return await _search_candidates(
        "Channel",
        {"channelId": channel_id, "maxResults": str(count), "order": "date"},
        exclude_id,
    )


async def _resolve_category(video_id: str | None, snippet: Mapping[str, Any]) -> str | None:
    category_id = snippet.get("categoryId")
    if category_id:
        return str(category_id)
    if not video_id:
        return None
    data = await api_get("videos", {"part": "snippet", "id": video_id})
    items = data.get("items") or []
    if not items:
        return None
    value = (items[0].get("snippet") or {}).get("categoryId")
    return str(value) if value else None


async def _popular_fallback(
    region_code: str, max_results: int, exclude_id: str | None
) -> VideoListing:
    fallback = await fetch_popular_videos(region_code, max_results)
    fallback.items = [
        item for item in fallback.items if video_identifier(item) != exclude_id
    ]
    return fallback


async def fetch_related_videos(
    current_video: Mapping[str, Any], region_code: str, max_results: int = 12
) -> VideoListing:
    """Build a list of videos related to ``current_video``.

    Candidates are gathered from the same category, from a keyword search
    on the title and from the same channel, in that order. Duplicates are
    dropped and the first ``max_results`` are enriched. When nothing turns
    up, or the lookup itself fails, the region's popular videos are used.
    """

    current_id = video_identifier(current_video)
    snippet = current_video.get("snippet") or {}

    try:
        category_id = await _resolve_category(current_id, snippet)

        candidates: list[dict[str, Any]] = []
        if category_id:
            candidates.extend(
                await category_candidates(
                    category_id, math.ceil(max_results * CATEGORY_SHARE), current_id
                )
            )
        candidates.extend(
            await keyword_candidates(
                snippet.get("title") or "",
                math.ceil(max_results * KEYWORD_SHARE),
                current_id,
            )
        )
        candidates.extend(
            await channel_candidates(
                snippet.get("channelId"),
                math.ceil(max_results * CHANNEL_SHARE),
                current_id,
            )
        )

        unique = dedupe_videos(candidates)[:max_results]
        if not unique:
            return await _popular_fallback(region_code, max_results, current_id)

        video_ids = [video_identifier(video) for video in unique]
        details = await api_get(
            "videos",
            {"part": "snippet,contentDetails,statistics", "id": ",".join(video_ids)},
        )
        items = await enrich_videos(details.get("items") or [])
    except YouTubeAPIError as exc:
        logger.error("Error fetching related videos for %s: %s", current_id, exc.message)
        return await _popular_fallback(region_code, max_results, current_id)

    return VideoListing(
        items=items,
        page_info={"totalResults": len(items), "resultsPerPage": len(items)},
    )


__all__ = [
    "dedupe_videos",
    "extract_keywords",
    "fetch_related_videos",
]
