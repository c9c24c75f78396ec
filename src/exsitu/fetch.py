"""Data-fetch layer for the Strapi museum-object API and Nominatim place search."""

import json
import logging
import math
import time
from dataclasses import dataclass, replace
from typing import Any, Callable

import httpx

from exsitu.config import Settings
from exsitu.errors import ApiError, GeocodingError, RateLimitError
from exsitu.models import (
    WORLD_BOUNDS,
    DestinationLabels,
    GeoPoint,
    OriginLabels,
    Record,
    ViewBounds,
)

logger = logging.getLogger(__name__)

_NOMINATIM_URL = "https://nominatim.openstreetmap.org/search"
_INITIAL_PAGE_SIZE_CAP = 200


@dataclass(frozen=True)
class RecordPage:
    """One page of parsed records plus the backend's pagination metadata."""

    records: tuple[Record, ...]
    page: int
    page_size: int
    page_count: int
    total: int


@dataclass(frozen=True)
class SearchResult:
    name: str  # First two parts of the geocoder's display name
    longitude: float
    latitude: float


def _to_float(value: Any) -> float | None:
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, (int, float)):
        return float(value)
    if isinstance(value, str):
        try:
            return float(value.strip())
        except ValueError:
            return None
    return None


def _to_str(value: Any) -> str | None:
    if value is None:
        return None
    text = str(value).strip()
    return text or None


def _point(longitude: Any, latitude: Any) -> GeoPoint | None:
    lng, lat = _to_float(longitude), _to_float(latitude)
    if lng is None and lat is None:
        return None
    return GeoPoint(longitude=lng, latitude=lat)


def parse_record(raw: dict[str, Any]) -> Record:
    """Convert one Strapi item into a Record.

    Accepts both the nested ``{"id", "attributes": {...}}`` shape and a flat
    item. Unparseable numbers become None; the engine drops them later.
    """
    attrs = raw.get("attributes")
    if not isinstance(attrs, dict):
        attrs = raw
    return Record(
        id=raw.get("id", attrs.get("id")),
        origin=_point(attrs.get("longitude"), attrs.get("latitude")),
        destination=_point(
            attrs.get("institution_longitude"), attrs.get("institution_latitude")
        ),
        origin_labels=OriginLabels(
            place=_to_str(attrs.get("place_name")),
            city=_to_str(attrs.get("city_en")),
            country=_to_str(attrs.get("country_en")),
        ),
        destination_labels=DestinationLabels(
            institution=_to_str(attrs.get("institution_name")),
            place=_to_str(attrs.get("institution_place")),
            city=_to_str(attrs.get("institution_city_en")),
            country=_to_str(attrs.get("institution_country_en")),
        ),
        title=_to_str(attrs.get("title")),
        inventory_number=_to_str(attrs.get("inventory_number")),
    )


class ResponseCache:
    """TTL cache for decoded API responses, owned by whoever creates it.

    When more than ``max_entries`` are stored, the ``evict_count`` oldest
    entries are dropped.
    """

    def __init__(
        self,
        ttl_seconds: float = 600.0,
        max_entries: int = 100,
        evict_count: int = 20,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.ttl_seconds = ttl_seconds
        self.max_entries = max_entries
        self.evict_count = evict_count
        self._clock = clock
        self._entries: dict[str, tuple[float, Any]] = {}

    def __len__(self) -> int:
        return len(self._entries)

    def get(self, key: str) -> Any | None:
        entry = self._entries.get(key)
        if entry is None:
            return None
        stored_at, value = entry
        if self._clock() - stored_at >= self.ttl_seconds:
            del self._entries[key]
            return None
        return value

    def set(self, key: str, value: Any) -> None:
        self._entries[key] = (self._clock(), value)
        if len(self._entries) > self.max_entries:
            oldest = sorted(self._entries.items(), key=lambda item: item[1][0])
            for stale_key, _ in oldest[: self.evict_count]:
                del self._entries[stale_key]

    def clear(self) -> None:
        self._entries.clear()


class RateLimiter:
    """Keeps consecutive requests at least ``min_interval`` seconds apart."""

    def __init__(
        self,
        min_interval: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self.min_interval = min_interval
        self._clock = clock
        self._sleep = sleep
        self._last_request: float | None = None

    def wait(self) -> float:
        """Block until the next request may go out. Returns the seconds slept."""
        delay = 0.0
        if self._last_request is not None:
            elapsed = self._clock() - self._last_request
            if elapsed < self.min_interval:
                delay = self.min_interval - elapsed
                logger.debug("Rate limiting: waiting %.3fs before next request", delay)
                self._sleep(delay)
        self._last_request = self._clock()
        return delay


def bounds_cache_key(bounds: ViewBounds, page: int, page_size: int, zoom: float) -> str:
    """Cache key with bounds rounded to 0.1° so small pans reuse responses."""
    rounded = {
        "north": round(bounds.north, 1),
        "south": round(bounds.south, 1),
        "east": round(bounds.east, 1),
        "west": round(bounds.west, 1),
    }
    return (
        f"bounds:{json.dumps(rounded, separators=(',', ':'))}"
        f":page:{page}:size:{page_size}:zoom:{math.floor(zoom)}"
    )


def _retry_delay(response: httpx.Response, retries_left: int) -> float:
    header = response.headers.get("retry-after")
    try:
        seconds = float(header) if header is not None else 0.0
    except ValueError:
        seconds = 0.0
    if seconds > 0:
        return seconds
    return float(2 ** (4 - retries_left))


def _page_from(data: dict[str, Any], page: int, page_size: int) -> RecordPage:
    records = tuple(parse_record(item) for item in data["data"] if isinstance(item, dict))
    pagination = (data.get("meta") or {}).get("pagination") or {}
    if not pagination:
        # Without metadata a full page means there may be another one
        return RecordPage(
            records=records,
            page=page,
            page_size=page_size,
            page_count=page + 1 if len(records) >= page_size else page,
            total=(page - 1) * page_size + len(records),
        )
    total = int(pagination.get("total", len(records)))
    return RecordPage(
        records=records,
        page=int(pagination.get("page", page)),
        page_size=int(pagination.get("pageSize", page_size)),
        page_count=int(pagination.get("pageCount", max(1, math.ceil(total / page_size)))),
        total=total,
    )


class MuseumApiClient:
    """Client for the ``/museum-objects`` collection of the CMS.

    Cache and rate limiter are injected so that several clients can share
    them, or tests can swap them out. When no ``http_client`` is passed the
    client creates its own and closes it in ``close()``.
    """

    def __init__(
        self,
        settings: Settings,
        http_client: httpx.Client | None = None,
        cache: ResponseCache | None = None,
        rate_limiter: RateLimiter | None = None,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._base_url = settings.require_api_base_url()
        self._max_retries = settings.max_retries
        self._sleep = sleep
        self._owns_http = http_client is None
        self._http = (
            http_client
            if http_client is not None
            else httpx.Client(
                timeout=settings.http_timeout,
                headers={
                    "Content-Type": "application/json",
                    "User-Agent": settings.user_agent,
                },
            )
        )
        self.cache = (
            cache if cache is not None else ResponseCache(ttl_seconds=settings.cache_seconds)
        )
        self._rate_limiter = (
            rate_limiter
            if rate_limiter is not None
            else RateLimiter(settings.min_request_interval, sleep=sleep)
        )

    def __enter__(self) -> "MuseumApiClient":
        return self

    def __exit__(self, *exc_info: object) -> None:
        self.close()

    def close(self) -> None:
        if self._owns_http:
            self._http.close()

    def clear_cache(self) -> None:
        self.cache.clear()
        logger.info("API cache cleared")

    def _get_json(
        self, params: dict[str, str], cache_key: str | None = None
    ) -> dict[str, Any]:
        """GET /museum-objects with caching, rate limiting and 429 retries.

        Raises:
            RateLimitError: Still rate limited after all retries.
            ApiError: Transport failure, error status, or a body without a data list.
        """
        if cache_key is not None:
            cached = self.cache.get(cache_key)
            if cached is not None:
                logger.debug("Using cached data for %s", cache_key)
                return cached

        url = f"{self._base_url}/museum-objects"
        retries_left = self._max_retries
        while True:
            self._rate_limiter.wait()
            logger.debug("Fetching %s params=%s", url, params)
            try:
                response = self._http.get(url, params=params)
            except httpx.HTTPError as e:
                raise ApiError(f"Request to {url} failed: {e}") from e

            if response.status_code == 429:
                delay = _retry_delay(response, retries_left)
                if retries_left <= 0:
                    raise RateLimitError(
                        "Rate limit exceeded. Please try again later.", retry_after=delay
                    )
                retries_left -= 1
                logger.warning(
                    "Rate limited. Retrying after %.1fs. Retries left: %d",
                    delay,
                    retries_left,
                )
                self._sleep(delay)
                continue

            if response.is_error:
                raise ApiError(
                    f"HTTP error {response.status_code}: {response.text}",
                    status_code=response.status_code,
                )
            try:
                data = response.json()
            except ValueError as e:
                raise ApiError("Response body is not valid JSON") from e
            if not isinstance(data, dict) or not isinstance(data.get("data"), list):
                raise ApiError("Invalid data structure received from API")

            if cache_key is not None:
                self.cache.set(cache_key, data)
            return data

    def fetch_records(
        self,
        bounds: ViewBounds = WORLD_BOUNDS,
        page: int = 1,
        page_size: int = 50,
        zoom: float = 0,
    ) -> RecordPage:
        """Fetch one page of records whose origin lies inside bounds.

        A viewport crossing the antimeridian is fetched as two longitude
        ranges (west..180 and -180..east) and the pages are merged.

        Args:
            bounds: Viewport; clamped to the world extent before use.
            page: 1-based page number.
            page_size: Items per page, per longitude range.
            zoom: Only used to partition the cache.

        Returns:
            RecordPage with parsed records and pagination metadata.
        """
        valid = bounds.clamped()
        if valid.crosses_antimeridian:
            west_part = self._fetch_range(
                replace(valid, east=WORLD_BOUNDS.east), page, page_size, zoom
            )
            east_part = self._fetch_range(
                replace(valid, west=WORLD_BOUNDS.west), page, page_size, zoom
            )
            result = RecordPage(
                records=west_part.records + east_part.records,
                page=page,
                page_size=page_size,
                page_count=max(west_part.page_count, east_part.page_count),
                total=west_part.total + east_part.total,
            )
        else:
            result = self._fetch_range(valid, page, page_size, zoom)
        if not result.records:
            logger.info(
                "No objects found in the current bounds. Try zooming out or panning."
            )
        return result

    def _fetch_range(
        self, valid: ViewBounds, page: int, page_size: int, zoom: float
    ) -> RecordPage:
        params = {
            "filters[latitude][$gte]": str(valid.south),
            "filters[latitude][$lte]": str(valid.north),
            "filters[longitude][$gte]": str(valid.west),
            "filters[longitude][$lte]": str(valid.east),
            "pagination[pageSize]": str(page_size),
            "pagination[page]": str(page),
            "populate": "*",
        }
        data = self._get_json(
            params, cache_key=bounds_cache_key(valid, page, page_size, zoom)
        )
        return _page_from(data, page, page_size)

    def fetch_initial_records(self, page_size: int = 50) -> RecordPage:
        """First page for the initial view, with page_count derived from the total.

        Reads the total with a one-item request, then fetches up to 200 items.
        """
        count_data = self._get_json(
            {"pagination[pageSize]": "1", "pagination[page]": "1"}
        )
        total = int(
            ((count_data.get("meta") or {}).get("pagination") or {}).get("total", 0)
        )
        actual_page_size = min(_INITIAL_PAGE_SIZE_CAP, page_size)
        logger.info(
            "Fetching %d objects (total available: %d)", actual_page_size, total
        )
        data = self._get_json(
            {
                "pagination[pageSize]": str(actual_page_size),
                "pagination[page]": "1",
                "populate": "*",
            }
        )
        records = _page_from(data, 1, actual_page_size).records
        return RecordPage(
            records=records,
            page=1,
            page_size=len(records),
            page_count=max(1, math.ceil(total / actual_page_size)),
            total=total,
        )

    def fetch_all_records(
        self,
        bounds: ViewBounds = WORLD_BOUNDS,
        page_size: int = 100,
        max_pages: int | None = None,
    ) -> list[Record]:
        """Walk pages until the backend's page_count or max_pages is reached."""
        records: list[Record] = []
        page = 1
        while True:
            result = self.fetch_records(bounds, page=page, page_size=page_size)
            records.extend(result.records)
            if page >= result.page_count or not result.records:
                break
            if max_pages is not None and page >= max_pages:
                break
            page += 1
        logger.info("Fetched %d records over %d pages", len(records), page)
        return records


def search_location(
    query: str, client: httpx.Client | None = None, user_agent: str = "ExSitu/1.0"
) -> SearchResult | None:
    """Look up a place name with Nominatim (OpenStreetMap).

    Returns:
        The best match, or None if nothing was found.

    Raises:
        GeocodingError: On transport or HTTP failure.
    """
    params = {"q": query, "format": "json", "limit": 1}
    headers = {"User-Agent": user_agent}
    try:
        if client is None:
            resp = httpx.get(_NOMINATIM_URL, params=params, headers=headers, timeout=10)
        else:
            resp = client.get(_NOMINATIM_URL, params=params, headers=headers)
        resp.raise_for_status()
        results = resp.json()
    except (httpx.HTTPError, ValueError) as e:
        raise GeocodingError(f"Location search failed for {query!r}: {e}") from e

    if not results:
        logger.info("No location found for query: %s", query)
        return None
    hit = results[0]
    parts = [p.strip() for p in str(hit.get("display_name", "")).split(",")]
    name = ", ".join([p for p in parts if p][:2]) or query
    return SearchResult(name=name, longitude=float(hit["lon"]), latitude=float(hit["lat"]))
