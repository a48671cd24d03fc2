from __future__ import annotations

import sys
from pathlib import Path
from typing import Any, Iterable

import pytest

ROOT = Path(__file__).resolve().parents[1]
SRC = ROOT / "src"
if str(SRC) not in sys.path:
    sys.path.insert(0, str(SRC))

from vixel import region, storage, youtube  # noqa: E402


def _matches(params: dict[str, str], criteria: dict[str, str]) -> bool:
    return all(params.get(key) == value for key, value in criteria.items())


class FakeYouTube:
    """In-memory stand-in for the YouTube Data API endpoints Vixel calls."""

    def __init__(self) -> None:
        self.calls: list[tuple[str, dict[str, str]]] = []
        self.videos: dict[str, dict[str, Any]] = {}
        self.channels: dict[str, dict[str, Any]] = {}
        self.popular: list[str] = []
        self.category_charts: dict[str, list[str]] = {}
        self._search_rules: list[tuple[dict[str, str], list[str]]] = []
        self._failures: list[tuple[str, dict[str, str], Exception]] = []

    def add_video(
        self,
        video_id: str,
        *,
        title: str | None = None,
        duration: str = "PT5M",
        category_id: str = "10",
        channel_id: str = "UC1",
        views: str = "1500",
        description: str = "",
        published_at: str = "2024-01-01T00:00:00Z",
    ) -> dict[str, Any]:
        video = {
            "kind": "youtube#video",
            "id": video_id,
            "snippet": {
                "title": title or f"Video {video_id}",
                "description": description,
                "channelId": channel_id,
                "channelTitle": f"Channel {channel_id}",
                "categoryId": category_id,
                "publishedAt": published_at,
                "thumbnails": {
                    "default": {"url": f"https://i.ytimg.com/{video_id}/default.jpg", "width": 120},
                    "medium": {"url": f"https://i.ytimg.com/{video_id}/mq.jpg", "width": 320},
                    "high": {"url": f"https://i.ytimg.com/{video_id}/hq.jpg", "width": 480},
                },
            },
            "contentDetails": {"duration": duration},
            "statistics": {"viewCount": views},
        }
        self.videos[video_id] = video
        return video

    def add_channel(self, channel_id: str, *, subscribers: str = "2500000") -> None:
        self.channels[channel_id] = {
            "id": channel_id,
            "snippet": {
                "title": f"Channel {channel_id}",
                "thumbnails": {"default": {"url": f"https://yt3.ggpht.com/{channel_id}.jpg"}},
            },
            "statistics": {"subscriberCount": subscribers},
        }

    def on_search(self, ids: Iterable[str], **criteria: str) -> None:
        self._search_rules.append((criteria, list(ids)))

    def fail(self, endpoint: str, error: Exception, **criteria: str) -> None:
        self._failures.append((endpoint, criteria, error))

    def calls_to(self, endpoint: str) -> list[dict[str, str]]:
        return [params for name, params in self.calls if name == endpoint]

    def _page(self, items: list[dict[str, Any]]) -> dict[str, Any]:
        return {
            "items": items,
            "pageInfo": {"totalResults": len(items), "resultsPerPage": len(items)},
        }

    def _videos(self, params: dict[str, str]) -> dict[str, Any]:
        if "chart" in params:
            category_id = params.get("videoCategoryId")
            ids = self.category_charts.get(category_id, []) if category_id else self.popular
        else:
            ids = params.get("id", "").split(",")
        return self._page([dict(self.videos[video_id]) for video_id in ids if video_id in self.videos])

    def _search(self, params: dict[str, str]) -> dict[str, Any]:
        for criteria, ids in self._search_rules:
            if _matches(params, criteria):
                items = [
                    {
                        "kind": "youtube#searchResult",
                        "id": {"kind": "youtube#video", "videoId": video_id},
                        "snippet": dict(self.videos.get(video_id, {}).get("snippet") or {}),
                    }
                    for video_id in ids
                ]
                return self._page(items)
        return self._page([])

    def _channels(self, params: dict[str, str]) -> dict[str, Any]:
        ids = params.get("id", "").split(",")
        return self._page([self.channels[cid] for cid in ids if cid in self.channels])

    def __call__(self, endpoint: str, params: dict[str, str]) -> tuple[str, dict[str, Any]]:
        params = dict(params)
        self.calls.append((endpoint, params))
        for name, criteria, error in self._failures:
            if name == endpoint and _matches(params, criteria):
                raise error
        handlers = {"videos": self._videos, "search": self._search, "channels": self._channels}
        data = handlers[endpoint](params) if endpoint in handlers else {}
        return f"{youtube.YOUTUBE_API_BASE_URL}/{endpoint}", data


class FakeGeolocation:
    """Answers geolocation lookups by URL prefix; anything else is offline."""

    def __init__(self) -> None:
        self.responses: dict[str, Any] = {}
        self.requested: list[str] = []

    def respond(self, prefix: str, payload: Any) -> None:
        self.responses[prefix] = payload

    def __call__(self, url: str) -> Any:
        self.requested.append(url)
        for prefix, payload in self.responses.items():
            if url.startswith(prefix):
                if isinstance(payload, Exception):
                    raise payload
                return payload
        raise region.RegionLookupError(f"Failed to contact {url}: offline")


@pytest.fixture(autouse=True)
def isolate_storage(tmp_path, monkeypatch):
    monkeypatch.setattr(storage, "DATA_PATH", tmp_path / "vixel.json")


@pytest.fixture(autouse=True)
def fake_geolocation(monkeypatch) -> FakeGeolocation:
    fake = FakeGeolocation()
    monkeypatch.setattr(region, "_fetch_json", fake)
    return fake


@pytest.fixture
def fake_youtube(monkeypatch) -> FakeYouTube:
    fake = FakeYouTube()
    monkeypatch.setattr(youtube, "_youtube_api_request", fake)
    return fake
