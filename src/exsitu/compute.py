"""Arc aggregation engine: record validation, clustering and zoom/bounds selection.

Every function here is pure: arguments in, new objects out, nothing retained
between calls. Memoization belongs to the caller.
"""

import logging
from collections.abc import Sequence

from exsitu.errors import InvalidArgumentError
from exsitu.models import (
    Arc,
    CountryAggregate,
    GeoPoint,
    Granularity,
    Record,
    ViewBounds,
    is_finite_number,
)

logger = logging.getLogger(__name__)

# 2 decimal places ≈ 1.1 km. Used for the object-level key and the no-displacement test.
OBJECT_KEY_PRECISION = 2

DEFAULT_ZOOM = 0.0
GLOBAL_ZOOM_MAX = 4.0
CITY_ZOOM_MAX = 8.0
DETAIL_ZOOM_MIN = 12.0

GLOBAL_MAX_ARCS = 100
CITY_MAX_ARCS = 500
LOCAL_MAX_ARCS = 1000
DETAIL_MAX_ARCS = 2000

DEFAULT_BOUNDS_PADDING = 1.0


def require_sequence(value: object, name: str) -> Sequence:
    # str is a Sequence too, but never a record list
    if not isinstance(value, (list, tuple)):
        raise InvalidArgumentError(
            f"{name} must be a list or tuple, got {type(value).__name__}"
        )
    return value


def is_arc_eligible(record: Record) -> bool:
    """All four coordinates present and finite."""
    origin = record.origin
    destination = record.destination
    return (
        origin is not None
        and destination is not None
        and is_finite_number(origin.longitude)
        and is_finite_number(origin.latitude)
        and is_finite_number(destination.longitude)
        and is_finite_number(destination.latitude)
    )


def valid_records(records: Sequence[Record]) -> list[Record]:
    """Return the arc-eligible subset of records, preserving input order.

    Records with missing or non-finite coordinates are dropped silently.

    Raises:
        InvalidArgumentError: If records is not a list or tuple.
    """
    require_sequence(records, "records")
    return [r for r in records if is_arc_eligible(r)]


def _rounded(value: float, precision: int) -> float:
    # + 0.0 folds -0.0 into 0.0 so tiny negatives share a key with tiny positives
    return round(value, precision) + 0.0


def object_key(
    source: tuple[float, float],
    target: tuple[float, float],
    precision: int = OBJECT_KEY_PRECISION,
) -> str | None:
    """Dedup key for an origin/destination pair, or None if there is no displacement.

    Format: ``"slng,slat-tlng,tlat"`` with each value at ``precision`` decimals.
    """
    s_lng, s_lat = (_rounded(v, precision) for v in source)
    t_lng, t_lat = (_rounded(v, precision) for v in target)
    if (s_lng, s_lat) == (t_lng, t_lat):
        return None
    return (
        f"{s_lng:.{precision}f},{s_lat:.{precision}f}"
        f"-{t_lng:.{precision}f},{t_lat:.{precision}f}"
    )


def city_key(record: Record) -> str | None:
    """Key for the record's city pair, or None if either label is missing or both match."""
    source_city = (record.origin_labels.city or "").strip()
    target_city = (record.destination_labels.city or "").strip()
    if not source_city or not target_city or source_city == target_city:
        return None
    return f"{source_city}-to-{target_city}"


def _cap(arcs: list[Arc], max_arcs: int | None) -> list[Arc]:
    if max_arcs is None or max_arcs <= 0 or len(arcs) <= max_arcs:
        return arcs
    # sorted() is stable: equal counts keep first-encountered order
    return sorted(arcs, key=lambda a: a.count, reverse=True)[:max_arcs]


def cluster_arcs(
    records: Sequence[Record],
    granularity: Granularity = "object",
    max_arcs: int | None = DETAIL_MAX_ARCS,
) -> list[Arc]:
    """Fold records sharing an origin/destination into weighted arcs.

    Object granularity keys on coordinates rounded to OBJECT_KEY_PRECISION;
    city granularity keys on the (origin city, destination city) label pair.
    Either way the arc's endpoints are the exact coordinates of the first
    record that opened the cluster.

    Args:
        records: Input records. Invalid ones are skipped.
        granularity: "object" or "city".
        max_arcs: Keep only the heaviest arcs when exceeded. None or <= 0 means no cap.

    Returns:
        Arcs in first-encountered order, or sorted by count descending when capped.

    Raises:
        InvalidArgumentError: On a non-sequence input or unknown granularity.
    """
    if granularity == "object":
        key_fn = _object_record_key
    elif granularity == "city":
        key_fn = city_key
    else:
        raise InvalidArgumentError(f"Unsupported granularity: {granularity!r}")

    clusters: dict[str, list[Record]] = {}
    for record in valid_records(records):
        # No-displacement records never form an arc, whatever their labels say
        if _object_record_key(record) is None:
            continue
        key = key_fn(record)
        if key is None:
            continue
        clusters.setdefault(key, []).append(record)

    arcs = [
        Arc(
            id=key,
            source_position=members[0].origin.as_position(),  # type: ignore[union-attr]
            target_position=members[0].destination.as_position(),  # type: ignore[union-attr]
            count=len(members),
            members=tuple(members),
            granularity=granularity,
        )
        for key, members in clusters.items()
    ]
    return _cap(arcs, max_arcs)


def _object_record_key(record: Record) -> str | None:
    return object_key(
        record.origin.as_position(),  # type: ignore[union-attr]
        record.destination.as_position(),  # type: ignore[union-attr]
    )


def aggregate_by_country(records: Sequence[Record]) -> list[CountryAggregate]:
    """Group records by origin country label.

    All records count, arc-eligible or not; records without a country label
    are left out entirely. The centroid is a running pairwise average: the
    first member with usable origin coordinates seeds it and each later one
    moves it halfway toward itself. That weights recent members more than a
    true mean would, and is kept that way so output stays comparable with the
    existing map.

    Returns:
        One aggregate per country, in first-seen order.
    """
    require_sequence(records, "records")

    buckets: dict[str, list[Record]] = {}
    centroids: dict[str, tuple[float, float] | None] = {}
    for record in records:
        country = (record.origin_labels.country or "").strip()
        if not country:
            continue
        if country not in buckets:
            buckets[country] = []
            centroids[country] = None
        buckets[country].append(record)

        if record.origin is None or not record.origin.is_valid:
            continue
        lng, lat = record.origin.as_position()
        current = centroids[country]
        if current is None:
            centroids[country] = (lng, lat)
        else:
            centroids[country] = ((current[0] + lng) / 2, (current[1] + lat) / 2)

    aggregates: list[CountryAggregate] = []
    for country, members in buckets.items():
        centroid = centroids[country]
        aggregates.append(
            CountryAggregate(
                country=country,
                count=len(members),
                centroid=(
                    GeoPoint(longitude=centroid[0], latitude=centroid[1])
                    if centroid is not None
                    else None
                ),
                members=tuple(members),
            )
        )
    return aggregates


def zoom_band(zoom: float) -> tuple[Granularity, int, bool]:
    """Map a zoom level to (granularity, max_arcs, use_bounds).

    Non-finite zoom values fall back to DEFAULT_ZOOM.
    """
    if not is_finite_number(zoom):
        logger.debug("Invalid zoom %r, using default %s", zoom, DEFAULT_ZOOM)
        zoom = DEFAULT_ZOOM
    if zoom <= GLOBAL_ZOOM_MAX:
        return "object", GLOBAL_MAX_ARCS, False
    if zoom <= CITY_ZOOM_MAX:
        return "city", CITY_MAX_ARCS, False
    max_arcs = DETAIL_MAX_ARCS if zoom >= DETAIL_ZOOM_MIN else LOCAL_MAX_ARCS
    return "object", max_arcs, True


def select_arcs(
    records: Sequence[Record],
    zoom: float,
    bounds: ViewBounds | None = None,
) -> list[Arc]:
    """Pick the arcs to draw for the current view.

    Global view (zoom <= 4) shows the 100 heaviest object arcs, regional view
    (zoom <= 8) the 500 heaviest city-pair arcs. Closer in, records are first
    restricted to those whose origin lies inside ``bounds`` and clustered at
    object level, capped at 1000 (2000 from zoom 12).

    Invalid bounds disable the pre-filter instead of failing.
    """
    require_sequence(records, "records")
    if not records:
        return []

    granularity, max_arcs, use_bounds = zoom_band(zoom)
    logger.debug(
        "Zoom %s: %s arcs, cap %d, bounds filter %s",
        zoom,
        granularity,
        max_arcs,
        use_bounds,
    )

    to_cluster = records
    if use_bounds and bounds is not None:
        if bounds.is_valid:
            to_cluster = [
                r
                for r in records
                if r.origin is not None
                and bounds.contains(r.origin.longitude, r.origin.latitude)
            ]
        else:
            logger.debug("Ignoring invalid bounds %r", bounds)

    return cluster_arcs(to_cluster, granularity, max_arcs)


def filter_arcs_by_bounds(
    arcs: Sequence[Arc],
    bounds: ViewBounds | None,
    padding: float = DEFAULT_BOUNDS_PADDING,
) -> list[Arc]:
    """Keep arcs with either endpoint inside the padded bounds.

    An arc with only one endpoint on screen is still kept, so routes leaving
    the viewport don't vanish at its edge. Invalid bounds keep everything.
    """
    require_sequence(arcs, "arcs")
    if bounds is None or not bounds.is_valid or not arcs:
        return list(arcs)
    if not is_finite_number(padding):
        padding = DEFAULT_BOUNDS_PADDING

    padded = bounds.padded(padding)
    return [
        arc
        for arc in arcs
        if padded.contains(*arc.source_position)
        or padded.contains(*arc.target_position)
    ]
