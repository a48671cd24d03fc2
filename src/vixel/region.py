"""Best-effort detection of the viewer's country for regional charts."""

from __future__ import annotations

import ipaddress
import json
import logging
import time
import urllib.error
import urllib.parse
import urllib.request
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any

from starlette.concurrency import run_in_threadpool

from .storage import fetch_values, remove_values, store_values

logger = logging.getLogger(__name__)

CACHE_DURATION_SECONDS = 24 * 60 * 60
DEFAULT_REGION = "US"
USER_AGENT = "Vixel/1.0 (https://vixel.app)"
REQUEST_TIMEOUT_SECONDS = 8.0

REGION_KEY = "region"
REGION_TIMESTAMP_KEY = "region_timestamp"

TIMEZONE_REGIONS = {
    "America/New_York": "US",
    "America/Chicago": "US",
    "America/Denver": "US",
    "America/Los_Angeles": "US",
    "America/Toronto": "CA",
    "America/Vancouver": "CA",
    "America/Mexico_City": "MX",
    "Europe/London": "GB",
    "Europe/Paris": "FR",
    "Europe/Berlin": "DE",
    "Europe/Rome": "IT",
    "Europe/Madrid": "ES",
    "Europe/Amsterdam": "NL",
    "Europe/Stockholm": "SE",
    "Europe/Moscow": "RU",
    "Asia/Tokyo": "JP",
    "Asia/Seoul": "KR",
    "Asia/Shanghai": "CN",
    "Asia/Hong_Kong": "HK",
    "Asia/Singapore": "SG",
    "Asia/Kolkata": "IN",
    "Asia/Mumbai": "IN",
    "Asia/Dubai": "AE",
    "Australia/Sydney": "AU",
    "Australia/Melbourne": "AU",
    "Pacific/Auckland": "NZ",
    "America/Sao_Paulo": "BR",
    "America/Argentina/Buenos_Aires": "AR",
    "America/Santiago": "CL",
    "Africa/Cairo": "EG",
    "Africa/Johannesburg": "ZA",
    "Africa/Lagos": "NG",
}

CONTINENT_REGIONS = {
    "America": "US",
    "Europe": "DE",
    "Asia": "IN",
    "Australia": "AU",
    "Africa": "ZA",
    "Pacific": "AU",
}

LANGUAGE_REGIONS = {
    "en-US": "US",
    "en-GB": "GB",
    "en-CA": "CA",
    "en-AU": "AU",
    "en-IN": "IN",
    "es-ES": "ES",
    "es-MX": "MX",
    "es-AR": "AR",
    "fr-FR": "FR",
    "fr-CA": "CA",
    "de-DE": "DE",
    "de-AT": "AT",
    "it-IT": "IT",
    "pt-BR": "BR",
    "pt-PT": "PT",
    "ja-JP": "JP",
    "ko-KR": "KR",
    "zh-CN": "CN",
    "zh-TW": "TW",
    "zh-HK": "HK",
    "hi-IN": "IN",
    "ar-SA": "SA",
    "ru-RU": "RU",
    "nl-NL": "NL",
    "sv-SE": "SE",
    "da-DK": "DK",
    "no-NO": "NO",
    "fi-FI": "FI",
}

POPULAR_REGIONS = (
    ("US", "United States", "🇺🇸"),
    ("GB", "United Kingdom", "🇬🇧"),
    ("CA", "Canada", "🇨🇦"),
    ("AU", "Australia", "🇦🇺"),
    ("DE", "Germany", "🇩🇪"),
    ("FR", "France", "🇫🇷"),
    ("JP", "Japan", "🇯🇵"),
    ("KR", "South Korea", "🇰🇷"),
    ("IN", "India", "🇮🇳"),
    ("BR", "Brazil", "🇧🇷"),
)

_LOOKUP_ERRORS = (urllib.error.URLError, OSError, ValueError)


class RegionLookupError(RuntimeError):
    """Raised when a geolocation service cannot answer."""


@dataclass
class RegionHints:
    """Signals about the viewer that the detection cascade can use."""

    client_ip: str | None = None
    latitude: float | None = None
    longitude: float | None = None
    timezone: str | None = None
    accept_language: str | None = None


def popular_regions() -> list[dict[str, str]]:
    return [{"code": code, "name": name, "flag": flag} for code, name, flag in POPULAR_REGIONS]


def _fetch_json(url: str) -> Any:
    request = urllib.request.Request(
        url, headers={"Accept": "application/json", "User-Agent": USER_AGENT}
    )
    try:
        with urllib.request.urlopen(request, timeout=REQUEST_TIMEOUT_SECONDS) as response:
            charset = response.headers.get_content_charset("utf-8")
            payload = response.read().decode(charset)
    except urllib.error.HTTPError as exc:
        raise RegionLookupError(f"HTTP {exc.code} from {url}") from exc
    except _LOOKUP_ERRORS as exc:
        raise RegionLookupError(f"Failed to contact {url}: {exc}") from exc
    try:
        return json.loads(payload)
    except json.JSONDecodeError as exc:
        raise RegionLookupError(f"Invalid JSON from {url}") from exc


def _public_ip(client_ip: str | None) -> str | None:
    """Return ``client_ip`` when it can be geolocated, ``None`` otherwise."""

    if not client_ip:
        return None
    try:
        address = ipaddress.ip_address(client_ip)
    except ValueError:
        return None
    if address.is_private or address.is_loopback or address.is_unspecified:
        return None
    return str(address)


def region_from_timezone(timezone_name: str | None) -> str | None:
    """Map an IANA timezone onto a country, falling back to its continent."""

    if not timezone_name:
        return None
    region_code = TIMEZONE_REGIONS.get(timezone_name)
    if region_code:
        return region_code
    continent = timezone_name.split("/")[0]
    return CONTINENT_REGIONS.get(continent)


def region_from_language(accept_language: str | None) -> str | None:
    """Map the primary ``Accept-Language`` tag onto a country."""

    if not accept_language:
        return None
    primary = accept_language.split(",")[0].split(";")[0].strip()
    if not primary:
        return None
    language, _, country = primary.partition("-")
    normalized = f"{language.lower()}-{country.upper()}" if country else language.lower()
    region_code = LANGUAGE_REGIONS.get(normalized)
    if not region_code and len(country) == 2 and country.isalpha():
        region_code = country.upper()
    return region_code


class RegionDetector:
    """Walk the fallback cascade and remember the answer for a day."""

    def __init__(self, clock: Callable[[], float] = time.time) -> None:
        self._clock = clock
        self.cached_region: str | None = None
        self.cache_expiry: float = 0.0

    async def detect(self, hints: RegionHints | None = None) -> str:
        hints = hints or RegionHints()
        if self.cached_region and self._clock() < self.cache_expiry:
            return self.cached_region

        try:
            region_code = await self.region_from_ip(hints.client_ip)
            if region_code:
                await self.cache_region(region_code)
                return region_code
        except RegionLookupError as exc:
            logger.warning("IP-based region detection failed: %s", exc)

        if hints.latitude is not None and hints.longitude is not None:
            try:
                region_code = await self.region_from_coordinates(hints.latitude, hints.longitude)
                if region_code:
                    await self.cache_region(region_code)
                    return region_code
            except RegionLookupError as exc:
                logger.warning("Coordinate-based region detection failed: %s", exc)

        region_code = region_from_timezone(hints.timezone)
        if region_code:
            logger.info("Region detected via timezone: %s (%s)", region_code, hints.timezone)
            await self.cache_region(region_code)
            return region_code

        region_code = region_from_language(hints.accept_language)
        if region_code:
            logger.info("Region detected via language: %s", region_code)
            await self.cache_region(region_code)
            return region_code

        fallback = await self.fallback_region()
        await self.cache_region(fallback)
        return fallback

    async def region_from_ip(self, client_ip: str | None) -> str | None:
        public_ip = _public_ip(client_ip)
        path = f"{public_ip}/json/" if public_ip else "json/"
        try:
            data = await run_in_threadpool(_fetch_json, f"https://ipapi.co/{path}")
            country_code = data.get("country_code") if isinstance(data, dict) else None
            if country_code:
                logger.info("Region detected via IP: %s", country_code)
                return str(country_code).upper()
        except RegionLookupError as exc:
            logger.warning("IP geolocation service failed: %s", exc)
            suffix = public_ip or ""
            data = await run_in_threadpool(_fetch_json, f"https://api.country.is/{suffix}")
            country = data.get("country") if isinstance(data, dict) else None
            if country:
                logger.info("Region detected via fallback IP service: %s", country)
                return str(country).upper()
        return None

    async def region_from_coordinates(self, latitude: float, longitude: float) -> str | None:
        query = urllib.parse.urlencode(
            {"format": "json", "lat": latitude, "lon": longitude, "addressdetails": 1}
        )
        data = await run_in_threadpool(
            _fetch_json, f"https://nominatim.openstreetmap.org/reverse?{query}"
        )
        address = data.get("address") if isinstance(data, dict) else None
        country_code = address.get("country_code") if isinstance(address, dict) else None
        if country_code:
            region_code = str(country_code).upper()
            logger.info("Region detected via coordinates: %s", region_code)
            return region_code
        return None

    async def fallback_region(self) -> str:
        stored = await run_in_threadpool(fetch_values, [REGION_KEY])
        saved_region = stored.get(REGION_KEY)
        if isinstance(saved_region, str) and saved_region:
            logger.info("Using saved region preference: %s", saved_region)
            return saved_region
        logger.info("Using default region: %s", DEFAULT_REGION)
        return DEFAULT_REGION

    async def cache_region(self, region_code: str) -> None:
        now = self._clock()
        self.cached_region = region_code
        self.cache_expiry = now + CACHE_DURATION_SECONDS
        await run_in_threadpool(
            store_values,
            {REGION_KEY: region_code, REGION_TIMESTAMP_KEY: int(now * 1000)},
        )

    async def set_manual_region(self, region_code: str) -> str:
        valid_region = region_code.strip().upper()
        await self.cache_region(valid_region)
        logger.info("Manual region set: %s", valid_region)
        return valid_region

    async def clear_cache(self) -> None:
        self.cached_region = None
        self.cache_expiry = 0.0
        await run_in_threadpool(remove_values, [REGION_KEY, REGION_TIMESTAMP_KEY])

    async def detailed_region_info(self, client_ip: str | None = None) -> dict[str, Any] | None:
        public_ip = _public_ip(client_ip)
        path = f"{public_ip}/json/" if public_ip else "json/"
        try:
            data = await run_in_threadpool(_fetch_json, f"https://ipapi.co/{path}")
        except RegionLookupError as exc:
            logger.warning("Detailed region info failed: %s", exc)
            return None
        if not isinstance(data, dict):
            return None
        return {
            "country": data.get("country_name"),
            "country_code": data.get("country_code"),
            "region": data.get("region"),
            "region_code": data.get("region_code"),
            "city": data.get("city"),
            "timezone": data.get("timezone"),
            "currency": data.get("currency"),
            "language": data.get("languages"),
        }


__all__ = [
    "RegionDetector",
    "RegionHints",
    "RegionLookupError",
    "popular_regions",
    "region_from_language",
    "region_from_timezone",
]
