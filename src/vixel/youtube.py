"""Helpers for interacting with the YouTube Data API."""

from __future__ import annotations

import json
import logging
import os
import re
from collections.abc import Iterable, Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from pathlib import Path
from typing import Any
import urllib.error
import urllib.parse
import urllib.request

from fastapi import HTTPException
from starlette.concurrency import run_in_threadpool


logger = logging.getLogger(__name__)

YOUTUBE_API_BASE_URL = "https://www.googleapis.com/youtube/v3"

_DURATION_PATTERN = re.compile(r"PT(?:(\d+)H)?(?:(\d+)M)?(?:(\d+)S)?")
_MIN_VIDEO_SECONDS = 60
_CHANNEL_CHUNK_SIZE = 50

CATEGORIES = (
    ("all", "All", "red"),
    ("10", "Music", "purple"),
    ("20", "Gaming", "blue"),
    ("22", "Vlogs", "green"),
    ("23", "Comedy", "orange"),
    ("24", "Entertainment", "pink"),
    ("25", "News", "cyan"),
    ("26", "Howto", "yellow"),
    ("27", "Education", "indigo"),
    ("28", "Tech", "teal"),
)

CATEGORY_KEYWORDS = {
    "10": "music songs artist album",
    "20": "gaming gameplay games video game",
    "22": "vlog daily life lifestyle",
    "23": "comedy funny humor jokes",
    "24": "entertainment shows movies",
    "25": "news current events politics",
    "26": "how to tutorial guide diy",
    "27": "education learning science",
    "28": "technology tech review gadgets",
}

_ERROR_STATUS_CODES = {
    "quota": 429,
    "network": 502,
    "not_found": 404,
    "unauthorized": 401,
    "unknown": 502,
}


class YouTubeAPIError(HTTPException):
    """Upstream failure classified into something we can show to a viewer."""

    def __init__(
        self,
        kind: str,
        message: str,
        user_message: str,
        *,
        can_retry: bool,
        upstream_status: int | None = None,
    ) -> None:
        super().__init__(status_code=_ERROR_STATUS_CODES.get(kind, 502), detail=message)
        self.kind = kind
        self.message = message
        self.user_message = user_message
        self.can_retry = can_retry
        self.upstream_status = upstream_status

    def as_dict(self) -> dict[str, Any]:
        return {
            "type": self.kind,
            "message": self.message,
            "userMessage": self.user_message,
            "canRetry": self.can_retry,
        }


def classify_api_error(status: int | None, message: str) -> YouTubeAPIError:
    """Map an upstream status/message pair onto a :class:`YouTubeAPIError`."""

    text = message or ""
    if "quota" in text or (status == 403 and "exceeded" in text):
        return YouTubeAPIError(
            "quota",
            "YouTube API quota exceeded",
            "We've hit our daily limit for YouTube videos! Try again tomorrow or check back later.",
            can_retry=False,
            upstream_status=status,
        )
    if status is None:
        return YouTubeAPIError(
            "network",
            "Network connection failed",
            "Connection problems! Check your internet and try again.",
            can_retry=True,
        )
    if status == 404:
        return YouTubeAPIError(
            "not_found",
            "Resource not found",
            "Video not found! It might have been removed or made private.",
            can_retry=False,
            upstream_status=status,
        )
    if status == 401:
        return YouTubeAPIError(
            "unauthorized",
            "Unauthorized access",
            "Authentication failed! Please sign in again.",
            can_retry=False,
            upstream_status=status,
        )
    return YouTubeAPIError(
        "unknown",
        text or "Unknown error occurred",
        "Something went wrong! Please try again in a few minutes.",
        can_retry=True,
        upstream_status=status,
    )


@dataclass
class VideoListing:
    """A page of enriched videos, or the error that prevented loading one."""

    items: list[dict[str, Any]] = field(default_factory=list)
    page_info: dict[str, Any] = field(
        default_factory=lambda: {"totalResults": 0, "resultsPerPage": 0}
    )
    error: YouTubeAPIError | None = None


def load_youtube_api_key() -> str:
    """Load the YouTube API key from the environment or helper file."""

    key = os.environ.get("YOUTUBE_API_KEY")
    if key:
        stripped = key.strip()
        if stripped:
            return stripped

    key_path = Path.cwd() / ".youtube-apikey"
    if key_path.exists():
        file_key = key_path.read_text(encoding="utf-8").strip()
        if file_key:
            return file_key

    raise HTTPException(status_code=500, detail="YouTube API key is not configured")


def _extract_error_message(body: str, fallback: str) -> str:
    try:
        payload = json.loads(body)
    except json.JSONDecodeError:
        return fallback
    error = payload.get("error") if isinstance(payload, dict) else None
    if isinstance(error, dict):
        message = error.get("message")
        if isinstance(message, str) and message:
            return message
        # quotaExceeded shows up in the reason list rather than the message
        for entry in error.get("errors") or []:
            if isinstance(entry, dict) and isinstance(entry.get("reason"), str):
                return f"{fallback} ({entry['reason']})"
    return fallback


def _youtube_api_request(endpoint: str, params: dict[str, str]) -> tuple[str, dict[str, Any]]:
    query_params = dict(params)
    query_params["key"] = load_youtube_api_key()
    query = urllib.parse.urlencode(query_params)
    url = f"{YOUTUBE_API_BASE_URL}/{endpoint}?{query}"
    try:
        with urllib.request.urlopen(url) as response:
            charset = response.headers.get_content_charset("utf-8")
            payload = response.read().decode(charset)
    except urllib.error.HTTPError as exc:  # pragma: no cover - network response paths
        try:
            error_body = exc.read().decode("utf-8", "ignore")
        except OSError:  # pragma: no cover
            error_body = ""
        fallback = f"YouTube API error: {exc.code} - {exc.reason}"
        message = _extract_error_message(error_body, fallback)
        raise classify_api_error(exc.code, message) from exc
    except urllib.error.URLError as exc:  # pragma: no cover - network response paths
        raise classify_api_error(None, f"Failed to contact YouTube API: {exc.reason}") from exc

    try:
        data = json.loads(payload)
    except json.JSONDecodeError as exc:  # pragma: no cover
        raise classify_api_error(502, "Invalid response from YouTube API") from exc
    return url, data


async def api_get(endpoint: str, params: dict[str, str]) -> dict[str, Any]:
    _, data = await run_in_threadpool(_youtube_api_request, endpoint, params)
    return data if isinstance(data, dict) else {}


def published_after(days: int) -> str:
    moment = datetime.now(timezone.utc) - timedelta(days=days)
    return moment.isoformat(timespec="milliseconds").replace("+00:00", "Z")


def duration_seconds(iso_duration: str | None) -> int | None:
    """Return the total seconds of an ISO-8601 ``PT#H#M#S`` duration."""

    if not isinstance(iso_duration, str):
        return None
    match = _DURATION_PATTERN.search(iso_duration)
    if not match:
        return None
    hours, minutes, seconds = (int(part or 0) for part in match.groups())
    return hours * 3600 + minutes * 60 + seconds


def parse_duration(iso_duration: str | None) -> str:
    """Format an ISO-8601 duration as ``H:MM:SS`` or ``M:SS``."""

    total = duration_seconds(iso_duration)
    if total is None:
        return "0:00"
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    if hours > 0:
        return f"{hours}:{minutes:02d}:{seconds:02d}"
    return f"{minutes}:{seconds:02d}"


def format_view_count(count: Any) -> str:
    """Abbreviate a view or subscriber count (``1.2M``, ``3.4K``...)."""

    text = str(count) if count is not None else "0"
    try:
        number = int(text)
    except ValueError:
        return text
    if number >= 1_000_000_000:
        return f"{number / 1_000_000_000:.1f}B"
    if number >= 1_000_000:
        return f"{number / 1_000_000:.1f}M"
    if number >= 1_000:
        return f"{number / 1_000:.1f}K"
    return text


def video_identifier(video: Mapping[str, Any]) -> str | None:
    """Return the video ID for both ``videos`` and ``search`` resources."""

    raw_id = video.get("id")
    if isinstance(raw_id, str):
        return raw_id or None
    if isinstance(raw_id, Mapping):
        value = raw_id.get("videoId")
        if isinstance(value, str) and value:
            return value
    return None


def filter_shorts(videos: Iterable[dict[str, Any]]) -> list[dict[str, Any]]:
    """Drop videos shorter than a minute; keep ones with unknown duration."""

    kept: list[dict[str, Any]] = []
    for video in videos:
        content_details = video.get("contentDetails")
        duration = (
            content_details.get("duration") if isinstance(content_details, dict) else None
        )
        total = duration_seconds(duration) if duration else None
        if total is not None and total < _MIN_VIDEO_SECONDS:
            continue
        kept.append(video)
    return kept


async def fetch_channel_details(channel_ids: Iterable[str]) -> list[dict[str, Any]]:
    """Fetch snippet and statistics for the given channels."""

    ids: list[str] = []
    for channel_id in channel_ids:
        if channel_id and channel_id not in ids:
            ids.append(channel_id)
    if not ids:
        return []

    items: list[dict[str, Any]] = []
    for index in range(0, len(ids), _CHANNEL_CHUNK_SIZE):
        chunk = ids[index : index + _CHANNEL_CHUNK_SIZE]
        data = await api_get(
            "channels", {"part": "snippet,statistics", "id": ",".join(chunk)}
        )
        items.extend(data.get("items") or [])
    return items


async def enrich_videos(videos: list[dict[str, Any]]) -> list[dict[str, Any]]:
    """Attach display fields and channel information to video resources."""

    if not videos:
        return []

    channel_ids = [
        (video.get("snippet") or {}).get("channelId") for video in videos
    ]
    channels = await fetch_channel_details(cid for cid in channel_ids if cid)
    channel_map = {channel.get("id"): channel for channel in channels}

    enriched: list[dict[str, Any]] = []
    for video in videos:
        snippet = video.get("snippet") or {}
        channel = channel_map.get(snippet.get("channelId")) or {}
        channel_snippet = channel.get("snippet") or {}
        avatar = ((channel_snippet.get("thumbnails") or {}).get("default") or {}).get("url")
        subscribers = (channel.get("statistics") or {}).get("subscriberCount")
        content_details = video.get("contentDetails")
        statistics = video.get("statistics")
        enriched.append(
            {
                **video,
                "formatted_duration": (
                    parse_duration(content_details.get("duration"))
                    if isinstance(content_details, dict)
                    else "0:00"
                ),
                "formatted_view_count": (
                    format_view_count(statistics.get("viewCount"))
                    if isinstance(statistics, dict)
                    else "0"
                ),
                "channel_avatar": avatar or None,
                "channel_subscribers": format_view_count(subscribers) if subscribers else None,
            }
        )
    return enriched


async def fetch_popular_videos(region_code: str, max_results: int = 24) -> VideoListing:
    """Fetch the most popular videos for a region."""

    params = {
        "part": "snippet,contentDetails,statistics",
        "chart": "mostPopular",
        "regionCode": region_code,
        "maxResults": str(max_results),
    }
    try:
        data = await api_get("videos", params)
        videos = filter_shorts(data.get("items") or [])
        items = await enrich_videos(videos)
    except YouTubeAPIError as exc:
        logger.error("Fetching popular videos for %s failed: %s", region_code, exc.message)
        return VideoListing(error=exc)
    return VideoListing(items=items, page_info=data.get("pageInfo") or {})


async def search_videos(query: str = "trending", max_results: int = 24) -> VideoListing:
    """Search for recent, medium-length videos matching ``query``."""

    search_params = {
        "part": "snippet",
        "type": "video",
        "q": query,
        "maxResults": str(max_results),
        "order": "viewCount",
        "videoDuration": "medium",
        "publishedAfter": published_after(30),
    }
    try:
        search_data = await api_get("search", search_params)
        hits = search_data.get("items") or []
        if not hits:
            return VideoListing(
                error=YouTubeAPIError(
                    "not_found",
                    "No videos found",
                    f'No videos found for "{query}". Try different keywords!',
                    can_retry=False,
                )
            )

        video_ids = [video_id for video_id in map(video_identifier, hits) if video_id]
        details = await api_get(
            "videos",
            {"part": "snippet,contentDetails,statistics", "id": ",".join(video_ids)},
        )
        videos = filter_shorts(details.get("items") or [])
        items = await enrich_videos(videos)
    except YouTubeAPIError as exc:
        logger.error("Searching videos for %r failed: %s", query, exc.message)
        return VideoListing(error=exc)
    return VideoListing(items=items, page_info=search_data.get("pageInfo") or {})


async def fetch_video_by_id(video_id: str) -> dict[str, Any] | None:
    """Fetch a single enriched video, or ``None`` when it does not exist."""

    data = await api_get(
        "videos", {"part": "snippet,contentDetails,statistics", "id": video_id}
    )
    items = data.get("items") or []
    if not items:
        return None
    enriched = await enrich_videos([items[0]])
    return enriched[0]


def category_keywords(category_id: str) -> str:
    return CATEGORY_KEYWORDS.get(category_id, "trending")


async def fetch_videos_by_category(
    category_id: str, region_code: str, max_results: int = 24
) -> VideoListing:
    """Fetch popular videos in a category, falling back to a keyword search."""

    if category_id == "all":
        return await fetch_popular_videos(region_code, max_results)

    params = {
        "part": "snippet,contentDetails,statistics",
        "chart": "mostPopular",
        "videoCategoryId": category_id,
        "regionCode": region_code,
        "maxResults": str(max_results),
    }
    try:
        data = await api_get("videos", params)
        if data.get("items"):
            videos = filter_shorts(data["items"])
            items = await enrich_videos(videos)
            return VideoListing(items=items, page_info=data.get("pageInfo") or {})
    except YouTubeAPIError as exc:
        logger.warning(
            "Category %s failed, trying search fallback: %s", category_id, exc.message
        )

    keywords = category_keywords(category_id)
    if keywords:
        return await search_videos(keywords, max_results)
    return await fetch_popular_videos(region_code, max_results)


__all__ = [
    "CATEGORIES",
    "VideoListing",
    "YouTubeAPIError",
    "api_get",
    "category_keywords",
    "classify_api_error",
    "duration_seconds",
    "enrich_videos",
    "fetch_channel_details",
    "fetch_popular_videos",
    "fetch_video_by_id",
    "fetch_videos_by_category",
    "filter_shorts",
    "format_view_count",
    "load_youtube_api_key",
    "parse_duration",
    "published_after",
    "search_videos",
    "video_identifier",
]
