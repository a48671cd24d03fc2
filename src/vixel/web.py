"""FastAPI application serving the Vixel video browser."""

from __future__ import annotations

import json
import logging
from pathlib import Path
from typing import Any, Mapping
from urllib.parse import quote

from fastapi import FastAPI, HTTPException, Query, Request
from fastapi.staticfiles import StaticFiles
from fastapi.templating import Jinja2Templates
from pydantic import ValidationError
from starlette.responses import HTMLResponse, JSONResponse, RedirectResponse, Response

from .formatting import (
    description_preview,
    linkify_description,
    relative_time,
    truncate_title,
)
from .region import RegionDetector, RegionHints, popular_regions
from .related import fetch_related_videos
from .settings import (
    DATA_USAGE_OPTIONS,
    FONT_SIZES,
    PLAYBACK_SPEEDS,
    SETTING_FIELDS,
    SettingsStore,
    VIDEO_QUALITIES,
    VixelSettings,
)
from .themes import (
    CATEGORY_ACCENTS,
    THEME_OPTIONS,
    root_classes,
    theme_classes,
    theme_color,
)
from .youtube import (
    CATEGORIES,
    VideoListing,
    YouTubeAPIError,
    fetch_popular_videos,
    fetch_video_by_id,
    fetch_videos_by_category,
    search_videos,
    video_identifier,
)

logger = logging.getLogger(__name__)

BASE_DIR = Path(__file__).resolve().parent
templates = Jinja2Templates(directory=str(BASE_DIR / "templates"))
static_directory = BASE_DIR / "static"

APP_TITLE = "Vixel"
GRID_SIZE = 24
RELATED_FETCH_SIZE = 24
RELATED_SHOWN = 10
FALLBACK_QUERY = "trending videos"

LATITUDE_COOKIE = "vixel_lat"
LONGITUDE_COOKIE = "vixel_lon"
TIMEZONE_COOKIE = "vixel_tz"
HINT_COOKIE_MAX_AGE = 30 * 24 * 3600

BOOLEAN_SETTINGS = tuple(
    name
    for name, field in VixelSettings.model_fields.items()
    if field.annotation is bool
)

SETTINGS_SECTIONS = (
    ("appearance", "Appearance"),
    ("playback", "Playback"),
    ("privacy", "Privacy & Data"),
    ("notifications", "Notifications"),
    ("accessibility", "Accessibility"),
    ("backup", "Backup"),
)

NOTIFICATION_TOGGLES = (
    ("new_videos_from_subscriptions", "New videos from subscriptions"),
    ("trending_in_your_area", "Trending in your area"),
    ("system_notifications", "System notifications"),
)


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("x-forwarded-for")
    if forwarded:
        first = forwarded.split(",")[0].strip()
        if first:
            return first
    return request.client.host if request.client else None


def _parse_coordinate(value: str | None, limit: float) -> float | None:
    if value is None:
        return None
    try:
        number = float(value)
    except ValueError:
        return None
    if not -limit <= number <= limit:
        return None
    return number


def _region_hints(request: Request) -> RegionHints:
    """Collect detection signals from the request and the browser's cookies."""

    cookies = request.cookies
    latitude = _parse_coordinate(cookies.get(LATITUDE_COOKIE), 90.0)
    longitude = _parse_coordinate(cookies.get(LONGITUDE_COOKIE), 180.0)
    if latitude is None or longitude is None:
        latitude = longitude = None
    return RegionHints(
        client_ip=_client_ip(request),
        latitude=latitude,
        longitude=longitude,
        timezone=cookies.get(TIMEZONE_COOKIE) or None,
        accept_language=request.headers.get("accept-language"),
    )


def _select_thumbnail_url(video: Any, desired_width: int = 320) -> str | None:
    if not isinstance(video, dict):
        return None

    snippet = video.get("snippet")
    if not isinstance(snippet, dict):
        return None

    thumbnails = snippet.get("thumbnails")
    if not isinstance(thumbnails, dict):
        return None

    best_url: str | None = None
    best_diff = float("inf")
    best_width: int | None = None
    fallback_url: str | None = None

    for data in thumbnails.values():
        if not isinstance(data, dict):
            continue
        url = data.get("url")
        if not isinstance(url, str) or not url:
            continue
        if fallback_url is None:
            fallback_url = url
        width_value = data.get("width")
        width = width_value if isinstance(width_value, int) else None
        if width is None:
            continue
        diff = abs(width - desired_width)
        if diff < best_diff:
            best_diff = diff
            best_url = url
            best_width = width
        elif diff == best_diff and best_width is not None and width > best_width:
            best_url = url
            best_width = width

    if best_url:
        return best_url
    return fallback_url


def _video_card_content(video: Mapping[str, Any], title_length: int = 40) -> dict[str, Any] | None:
    video_id = video_identifier(video)
    if not video_id:
        return None
    snippet = video.get("snippet") or {}
    title = snippet.get("title") or video_id
    return {
        "video_id": video_id,
        "title": title,
        "short_title": truncate_title(title, title_length),
        "channel_title": snippet.get("channelTitle") or "Unknown channel",
        "channel_avatar": video.get("channel_avatar"),
        "thumbnail_url": _select_thumbnail_url(dict(video)),
        "duration": video.get("formatted_duration") or "0:00",
        "view_count": video.get("formatted_view_count") or "---",
        "published": relative_time(snippet.get("publishedAt")),
        "url": f"/watch?v={quote(video_id, safe='')}",
    }


def _video_cards(videos: list[dict[str, Any]], title_length: int = 40) -> list[dict[str, Any]]:
    cards: list[dict[str, Any]] = []
    for video in videos:
        card = _video_card_content(video, title_length)
        if card:
            cards.append(card)
    return cards


def _error_content(error: YouTubeAPIError | None) -> dict[str, Any] | None:
    if error is None:
        return None
    return {
        "kind": error.kind,
        "message": error.user_message,
        "can_retry": error.can_retry,
    }


def _watch_content(
    video: Mapping[str, Any], related: list[dict[str, Any]]
) -> dict[str, Any]:
    snippet = video.get("snippet") or {}
    description, truncated = description_preview(snippet.get("description"))
    full_description = snippet.get("description") or description
    related_cards = _video_cards(related, title_length=60)
    next_video = related_cards[0] if related_cards else None
    return {
        "video": {
            "id": video_identifier(video),
            "title": snippet.get("title") or "Untitled video",
            "channel_title": snippet.get("channelTitle") or "Unknown channel",
            "channel_avatar": video.get("channel_avatar"),
            "channel_subscribers": video.get("channel_subscribers"),
            "published": relative_time(snippet.get("publishedAt")),
            "view_count": video.get("formatted_view_count") or "0",
            "duration": video.get("formatted_duration") or "0:00",
            "thumbnail_url": _select_thumbnail_url(dict(video), desired_width=1280),
            "description_preview": linkify_description(description),
            "description_full": linkify_description(full_description),
            "description_truncated": truncated,
        },
        "related": related_cards[:RELATED_SHOWN],
        "next_video": next_video,
    }


def _category_links(selected: str) -> list[dict[str, Any]]:
    links: list[dict[str, Any]] = []
    for category_id, name, color in CATEGORIES:
        links.append(
            {
                "id": category_id,
                "name": name.upper(),
                "accent": CATEGORY_ACCENTS.get(color, ""),
                "url": "/" if category_id == "all" else f"/?category={category_id}",
                "active": category_id == selected,
            }
        )
    return links


def _settings_content(settings: VixelSettings, notice: str | None = None) -> dict[str, Any]:
    return {
        "values": settings.model_dump(),
        "themes": [
            {"id": slug, "name": name, "description": desc, "active": slug == settings.theme}
            for slug, name, desc in THEME_OPTIONS
        ],
        "regions": popular_regions(),
        "qualities": VIDEO_QUALITIES,
        "speeds": PLAYBACK_SPEEDS,
        "data_usage_options": DATA_USAGE_OPTIONS,
        "font_sizes": FONT_SIZES,
        "notifications": NOTIFICATION_TOGGLES,
        "sections": SETTINGS_SECTIONS,
        "notice": notice,
    }


def _settings_form_payload(form: Mapping[str, Any]) -> dict[str, Any]:
    """Translate a submitted settings form into setting values.

    Unchecked checkboxes are absent from the form, so boolean settings are
    only touched when the form declares it carries them.
    """

    payload: dict[str, Any] = {}
    for key in SETTING_FIELDS:
        if key in BOOLEAN_SETTINGS:
            continue
        value = form.get(key)
        if isinstance(value, str) and value.strip():
            payload[key] = value.strip()
    if form.get("has_toggles"):
        for key in BOOLEAN_SETTINGS:
            payload[key] = form.get(key) in ("on", "true", "1")
    return payload


def create_app() -> FastAPI:
    """Create a configured FastAPI application instance."""

    app = FastAPI(title=APP_TITLE)

    region_detector = RegionDetector()
    settings_store = SettingsStore(region_detector)
    app.state.region_detector = region_detector
    app.state.settings_store = settings_store

    if static_directory.exists():
        app.mount("/static", StaticFiles(directory=str(static_directory)), name="static")

    async def _detect_region(request: Request) -> str:
        return await region_detector.detect(_region_hints(request))

    async def _load_settings(request: Request) -> VixelSettings:
        return await settings_store.load(lambda: _detect_region(request))

    def _render(
        request: Request,
        template_name: str,
        settings: VixelSettings,
        *,
        page_title: str = APP_TITLE,
        context: dict[str, Any] | None = None,
        status_code: int = 200,
        search_query: str = "",
    ) -> HTMLResponse:
        template_context: dict[str, Any] = {
            "page_title": page_title,
            "settings": settings.model_dump(),
            "theme": settings.theme,
            "classes": theme_classes(settings.theme),
            "theme_color": theme_color(settings.theme),
            "root_classes": root_classes(
                settings.theme,
                reduced_motion=settings.reduced_motion,
                high_contrast=settings.high_contrast,
                font_size=settings.font_size,
            ),
            "search_query": search_query,
            "region_hints_url": app.url_path_for("store_region_hints"),
        }
        if context:
            template_context.update(context)
        return templates.TemplateResponse(
            request, template_name, template_context, status_code=status_code
        )

    def _render_error(
        request: Request,
        settings: VixelSettings,
        message: str,
        status_code: int,
        *,
        can_retry: bool = False,
    ) -> HTMLResponse:
        return _render(
            request,
            "error.html",
            settings,
            page_title=f"{APP_TITLE} - Error",
            context={"error": {"message": message, "can_retry": can_retry}},
            status_code=status_code,
        )

    @app.get("/", response_class=HTMLResponse, name="home")
    async def home(
        request: Request,
        q: str | None = Query(default=None, description="Search query."),
        category: str = Query(default="all", description="Video category ID."),
    ) -> HTMLResponse:
        settings = await _load_settings(request)
        query = (q or "").strip()
        if query:
            listing = await search_videos(query, GRID_SIZE)
        elif category != "all":
            listing = await fetch_videos_by_category(category, settings.region, GRID_SIZE)
        else:
            listing = await fetch_popular_videos(settings.region, GRID_SIZE)
            if listing.error is not None:
                logger.warning(
                    "Popular videos unavailable (%s); searching %r instead.",
                    listing.error.kind,
                    FALLBACK_QUERY,
                )
                listing = await search_videos(FALLBACK_QUERY, GRID_SIZE)

        heading = f'Results for "{query}"' if query else "Trending"
        return _render(
            request,
            "home.html",
            settings,
            page_title=f"{query} - {APP_TITLE}" if query else APP_TITLE,
            search_query=query,
            context={
                "heading": heading,
                "categories": _category_links("all" if query else category),
                "videos": _video_cards(listing.items),
                "error": _error_content(listing.error),
            },
        )

    @app.get("/watch", response_class=HTMLResponse, name="watch")
    async def watch(
        request: Request,
        v: str | None = Query(default=None, description="Video ID to watch."),
    ) -> HTMLResponse:
        settings = await _load_settings(request)
        video_id = (v or "").strip()
        if not video_id:
            return _render_error(request, settings, "No video ID provided", 400)

        try:
            video = await fetch_video_by_id(video_id)
        except YouTubeAPIError as exc:
            logger.warning("Unable to load video %s: %s", video_id, exc.message)
            return _render_error(
                request,
                settings,
                exc.user_message,
                exc.status_code,
                can_retry=exc.can_retry,
            )
        if not video:
            return _render_error(request, settings, "Video not found!", 404)

        related = await fetch_related_videos(video, settings.region, RELATED_FETCH_SIZE)
        content = _watch_content(video, related.items)
        return _render(
            request,
            "watch.html",
            settings,
            page_title=f"{content['video']['title']} - {APP_TITLE}",
            context={
                **content,
                "related_api_url": app.url_path_for("related_videos", video_id=video_id),
            },
        )

    @app.get("/api/videos/{video_id}/related", name="related_videos")
    async def related_videos(
        request: Request,
        video_id: str,
        limit: int = Query(default=12, ge=1, le=50),
    ) -> dict[str, Any]:
        settings = await _load_settings(request)
        video = await fetch_video_by_id(video_id)
        if not video:
            raise HTTPException(status_code=404, detail="Video not found")
        listing: VideoListing = await fetch_related_videos(video, settings.region, limit)
        return {
            "items": _video_cards(listing.items, title_length=60),
            "pageInfo": listing.page_info,
            "error": listing.error.as_dict() if listing.error else None,
        }

    @app.get("/settings", response_class=HTMLResponse, name="settings_page")
    async def settings_page(
        request: Request,
        notice: str | None = Query(default=None),
    ) -> HTMLResponse:
        settings = await _load_settings(request)
        notices = {
            "saved": "Settings saved.",
            "reset": "Settings reset to defaults.",
            "imported": "Settings imported.",
            "import-failed": "Could not import settings. Check the JSON and try again.",
            "invalid": "Some values were not valid and were not saved.",
        }
        return _render(
            request,
            "settings.html",
            settings,
            page_title=f"Settings - {APP_TITLE}",
            context=_settings_content(settings, notices.get(notice or "")),
        )

    def _redirect_to_settings(notice: str) -> RedirectResponse:
        url = f"{app.url_path_for('settings_page')}?notice={notice}"
        return RedirectResponse(url=url, status_code=303)

    @app.post("/settings", name="save_settings")
    async def save_settings_handler(request: Request) -> Response:
        form_data = await request.form()
        payload = _settings_form_payload(form_data)
        try:
            await settings_store.update_many(payload)
        except ValidationError as exc:
            logger.warning("Rejected settings update: %s", exc)
            return _redirect_to_settings("invalid")
        return _redirect_to_settings("saved")

    @app.post("/api/settings/{key}", name="update_setting")
    async def update_setting(key: str, request: Request) -> dict[str, Any]:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload.") from exc
        if not isinstance(payload, dict) or "value" not in payload:
            raise HTTPException(status_code=400, detail="A value is required.")
        try:
            settings = await settings_store.update(key, payload["value"])
        except KeyError as exc:
            raise HTTPException(status_code=404, detail="Unknown setting") from exc
        except ValidationError as exc:
            raise HTTPException(status_code=422, detail=str(exc)) from exc
        return settings.model_dump()

    @app.get("/api/settings", name="current_settings")
    async def current_settings(request: Request) -> dict[str, Any]:
        settings = await _load_settings(request)
        return settings.model_dump()

    @app.post("/settings/reset", name="reset_settings")
    async def reset_settings_handler() -> Response:
        await settings_store.reset()
        return _redirect_to_settings("reset")

    @app.get("/settings/export", name="export_settings")
    async def export_settings_handler() -> Response:
        exported = await settings_store.export()
        return Response(
            content=exported,
            media_type="application/json",
            headers={"Content-Disposition": 'attachment; filename="vixel-settings.json"'},
        )

    @app.post("/settings/import", name="import_settings")
    async def import_settings_handler(request: Request) -> Response:
        form_data = await request.form()
        raw_value = form_data.get("settings_json")
        text = raw_value if isinstance(raw_value, str) else ""
        imported = await settings_store.import_json(text)
        return _redirect_to_settings("imported" if imported else "import-failed")

    @app.get("/api/region", name="current_region")
    async def current_region(request: Request) -> dict[str, Any]:
        region = await _detect_region(request)
        return {"region": region, "popular": popular_regions()}

    @app.get("/api/region/details", name="region_details")
    async def region_details(request: Request) -> dict[str, Any]:
        details = await region_detector.detailed_region_info(_client_ip(request))
        if details is None:
            raise HTTPException(status_code=502, detail="Region details are unavailable.")
        return details

    @app.post("/api/region/hints", name="store_region_hints")
    async def store_region_hints(request: Request) -> JSONResponse:
        try:
            payload = await request.json()
        except ValueError as exc:
            raise HTTPException(status_code=400, detail="Invalid JSON payload.") from exc
        if not isinstance(payload, dict):
            raise HTTPException(status_code=400, detail="Expected a JSON object.")

        response = JSONResponse({"status": "ok"})
        latitude = _parse_coordinate(_as_text(payload.get("latitude")), 90.0)
        longitude = _parse_coordinate(_as_text(payload.get("longitude")), 180.0)
        if latitude is not None and longitude is not None:
            for name, value in ((LATITUDE_COOKIE, latitude), (LONGITUDE_COOKIE, longitude)):
                response.set_cookie(
                    name, f"{value:.4f}", max_age=HINT_COOKIE_MAX_AGE, samesite="lax"
                )
        timezone_name = payload.get("timezone")
        if isinstance(timezone_name, str) and timezone_name.strip():
            response.set_cookie(
                TIMEZONE_COOKIE,
                timezone_name.strip(),
                max_age=HINT_COOKIE_MAX_AGE,
                samesite="lax",
            )
        return response

    @app.post("/api/region/clear", name="clear_region")
    async def clear_region() -> dict[str, str]:
        await region_detector.clear_cache()
        return {"status": "ok"}

    return app


def _as_text(value: Any) -> str | None:
    if value is None:
        return None
    return str(value)


__all__ = ["create_app"]
