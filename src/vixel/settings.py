"""Viewer preferences persisted in local storage."""

from __future__ import annotations

import json
import logging
from collections.abc import Awaitable, Callable, Mapping
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, ValidationError, field_validator
from starlette.concurrency import run_in_threadpool

from .region import RegionDetector
from .storage import fetch_values, store_values

logger = logging.getLogger(__name__)

SETTINGS_KEY = "settings"

Theme = Literal["brutal", "dark", "light"]
VideoQuality = Literal["auto", "high", "medium", "low"]
DataUsage = Literal["unlimited", "wifi-only", "limited"]
FontSize = Literal["small", "medium", "large"]

PLAYBACK_SPEEDS = (0.25, 0.5, 0.75, 1.0, 1.25, 1.5, 1.75, 2.0)
THEMES = ("brutal", "dark", "light")
VIDEO_QUALITIES = ("auto", "high", "medium", "low")
DATA_USAGE_OPTIONS = ("unlimited", "wifi-only", "limited")
FONT_SIZES = ("small", "medium", "large")


class VixelSettings(BaseModel):
    """All viewer preferences with their defaults."""

    model_config = ConfigDict(extra="ignore", validate_assignment=True)

    # Appearance
    theme: Theme = "brutal"
    region: str = "US"
    language: str = "en"

    # Video preferences
    autoplay: bool = True
    default_quality: VideoQuality = "auto"
    default_speed: float = 1.0
    subtitles: bool = False

    # Privacy & data
    save_watch_history: bool = True
    personalized_ads: bool = True
    data_usage: DataUsage = "unlimited"

    # Notifications
    new_videos_from_subscriptions: bool = True
    trending_in_your_area: bool = True
    system_notifications: bool = True

    # Accessibility
    reduced_motion: bool = False
    high_contrast: bool = False
    font_size: FontSize = "medium"

    @field_validator("region")
    @classmethod
    def _normalize_region(cls, value: str) -> str:
        normalized = value.strip().upper()
        if len(normalized) != 2 or not normalized.isalpha():
            raise ValueError("region must be a two-letter country code")
        return normalized

    @field_validator("default_speed")
    @classmethod
    def _check_speed(cls, value: float) -> float:
        if value not in PLAYBACK_SPEEDS:
            raise ValueError(f"playback speed must be one of {PLAYBACK_SPEEDS}")
        return value


DEFAULT_SETTINGS = VixelSettings()
SETTING_FIELDS = tuple(VixelSettings.model_fields)


def merge_over_defaults(values: Mapping[str, Any]) -> VixelSettings:
    """Overlay ``values`` on the defaults, dropping any invalid entries."""

    merged = DEFAULT_SETTINGS.model_dump()
    for key, value in values.items():
        if key not in merged:
            continue
        candidate = {**merged, key: value}
        try:
            VixelSettings.model_validate(candidate)
        except ValidationError:
            logger.warning("Ignoring invalid stored setting %s=%r", key, value)
            continue
        merged = candidate
    return VixelSettings.model_validate(merged)


RegionCallback = Callable[[], Awaitable[str]]


class SettingsStore:
    """Load, update and persist :class:`VixelSettings`."""

    def __init__(self, region_detector: RegionDetector) -> None:
        self._region_detector = region_detector

    async def _read(self) -> dict[str, Any] | None:
        stored = await run_in_threadpool(fetch_values, [SETTINGS_KEY])
        value = stored.get(SETTINGS_KEY)
        return value if isinstance(value, dict) else None

    async def _write(self, settings: VixelSettings) -> None:
        await run_in_threadpool(store_values, {SETTINGS_KEY: settings.model_dump()})

    async def load(self, detect_region: RegionCallback | None = None) -> VixelSettings:
        """Return stored settings, auto-detecting the region when unset."""

        stored = await self._read()
        if stored is None:
            settings = DEFAULT_SETTINGS.model_copy()
            if detect_region is not None:
                settings.region = await detect_region()
            await self._write(settings)
            return settings

        settings = merge_over_defaults(stored)
        stored_region = stored.get("region")
        if detect_region is not None and (not stored_region or stored_region == "US"):
            settings.region = await detect_region()
        return settings

    async def update(self, key: str, value: Any) -> VixelSettings:
        """Validate and persist a single setting."""

        if key not in SETTING_FIELDS:
            raise KeyError(key)
        current = await self._read() or {}
        settings = merge_over_defaults(current)
        updated = VixelSettings.model_validate({**settings.model_dump(), key: value})
        await self._write(updated)
        if key == "region":
            await self._region_detector.set_manual_region(updated.region)
        return updated

    async def update_many(self, values: Mapping[str, Any]) -> VixelSettings:
        current = merge_over_defaults(await self._read() or {})
        payload = current.model_dump()
        payload.update({key: value for key, value in values.items() if key in SETTING_FIELDS})
        updated = VixelSettings.model_validate(payload)
        await self._write(updated)
        if updated.region != current.region:
            await self._region_detector.set_manual_region(updated.region)
        return updated

    async def reset(self) -> VixelSettings:
        settings = DEFAULT_SETTINGS.model_copy()
        await self._write(settings)
        await self._region_detector.clear_cache()
        return settings

    async def export(self) -> str:
        settings = merge_over_defaults(await self._read() or {})
        return json.dumps(settings.model_dump(), indent=2)

    async def import_json(self, settings_json: str) -> bool:
        """Replace stored settings from an exported document."""

        try:
            imported = json.loads(settings_json)
        except json.JSONDecodeError:
            logger.warning("Failed to import settings: not valid JSON")
            return False
        if not isinstance(imported, dict):
            logger.warning("Failed to import settings: expected a JSON object")
            return False
        try:
            settings = VixelSettings.model_validate(
                {**DEFAULT_SETTINGS.model_dump(), **imported}
            )
        except ValidationError as exc:
            logger.warning("Failed to import settings: %s", exc)
            return False
        await self._write(settings)
        return True


__all__ = [
    "DATA_USAGE_OPTIONS",
    "DEFAULT_SETTINGS",
    "FONT_SIZES",
    "PLAYBACK_SPEEDS",
    "SETTING_FIELDS",
    "SettingsStore",
    "THEMES",
    "VIDEO_QUALITIES",
    "VixelSettings",
    "merge_over_defaults",
]
