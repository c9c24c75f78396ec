"""Summary counts, record filters, and paging for the side panels."""

import math
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field
from typing import Callable, TypeVar

from exsitu.compute import object_key, require_sequence, valid_records
from exsitu.errors import InvalidArgumentError
from exsitu.models import Record

T = TypeVar("T")


@dataclass(frozen=True)
class NamedCount:
    name: str
    count: int


@dataclass(frozen=True)
class DatasetSummary:
    """Headline numbers for the stats panel."""

    total_records: int
    arc_count: int  # Distinct object-level arcs
    countries: tuple[NamedCount, ...]  # Origin countries, most records first
    cities: tuple[NamedCount, ...]  # Origin cities
    institutions: tuple[NamedCount, ...]  # Holding institutions


@dataclass(frozen=True)
class RouteSummary:
    """Records grouped by (origin place, destination place) label pair."""

    origin_place: str
    destination_place: str
    origin_city: str
    origin_country: str
    destination_city: str
    destination_country: str
    longitude: float | None  # Origin of the first record on the route
    latitude: float | None
    count: int
    institutions: tuple[str, ...]  # Sorted, distinct


@dataclass(frozen=True)
class InstitutionSummary:
    name: str
    count: int
    place: str | None
    city: str | None
    country: str | None


@dataclass(frozen=True)
class RecordFilters:
    """Active label filters. An empty set means "don't filter on this"."""

    origin_places: frozenset[str] = field(default_factory=frozenset)
    destination_places: frozenset[str] = field(default_factory=frozenset)
    institutions: frozenset[str] = field(default_factory=frozenset)
    countries: frozenset[str] = field(default_factory=frozenset)

    @property
    def is_empty(self) -> bool:
        return not (
            self.origin_places
            or self.destination_places
            or self.institutions
            or self.countries
        )


@dataclass(frozen=True)
class Page:
    items: tuple
    page: int  # 1-based
    page_size: int
    page_count: int
    total: int


def _label(value: str | None) -> str:
    return (value or "").strip()


def count_unique_arcs(records: Sequence[Record]) -> int:
    """Number of distinct object-level arcs among displaced, arc-eligible records."""
    keys = {
        object_key(r.origin.as_position(), r.destination.as_position())  # type: ignore[union-attr]
        for r in valid_records(records)
    }
    keys.discard(None)
    return len(keys)


def _count_labels(labels: Iterable[str]) -> tuple[NamedCount, ...]:
    counts: dict[str, int] = {}
    for label in labels:
        if label:
            counts[label] = counts.get(label, 0) + 1
    ordered = sorted(counts.items(), key=lambda item: item[1], reverse=True)
    return tuple(NamedCount(name=name, count=count) for name, count in ordered)


def summarize(records: Sequence[Record]) -> DatasetSummary:
    """Count records per origin country, origin city and institution."""
    require_sequence(records, "records")
    return DatasetSummary(
        total_records=len(records),
        arc_count=count_unique_arcs(records),
        countries=_count_labels(_label(r.origin_labels.country) for r in records),
        cities=_count_labels(_label(r.origin_labels.city) for r in records),
        institutions=_count_labels(
            _label(r.destination_labels.institution) for r in records
        ),
    )


def list_routes(records: Sequence[Record]) -> list[RouteSummary]:
    """Group records by origin place → destination place, busiest first.

    Records without an origin place label are skipped.
    """
    require_sequence(records, "records")
    routes: dict[tuple[str, str], list[Record]] = {}
    for record in records:
        origin_place = _label(record.origin_labels.place)
        if not origin_place:
            continue
        key = (origin_place, _label(record.destination_labels.place))
        routes.setdefault(key, []).append(record)

    summaries = []
    for (origin_place, destination_place), members in routes.items():
        first = members[0]
        institutions = {_label(m.destination_labels.institution) for m in members}
        institutions.discard("")
        summaries.append(
            RouteSummary(
                origin_place=origin_place,
                destination_place=destination_place,
                origin_city=_label(first.origin_labels.city),
                origin_country=_label(first.origin_labels.country),
                destination_city=_label(first.destination_labels.city),
                destination_country=_label(first.destination_labels.country),
                longitude=first.origin.longitude if first.origin else None,
                latitude=first.origin.latitude if first.origin else None,
                count=len(members),
                institutions=tuple(sorted(institutions)),
            )
        )
    summaries.sort(key=lambda s: s.count, reverse=True)
    return summaries


def list_institutions(records: Sequence[Record]) -> list[InstitutionSummary]:
    """Group records by holding institution, largest collection first."""
    require_sequence(records, "records")
    groups: dict[str, list[Record]] = {}
    for record in records:
        name = _label(record.destination_labels.institution)
        if name:
            groups.setdefault(name, []).append(record)

    summaries = [
        InstitutionSummary(
            name=name,
            count=len(members),
            place=members[0].destination_labels.place,
            city=members[0].destination_labels.city,
            country=members[0].destination_labels.country,
        )
        for name, members in groups.items()
    ]
    summaries.sort(key=lambda s: s.count, reverse=True)
    return summaries


_FILTER_FIELDS: tuple[tuple[str, Callable[[Record], str | None]], ...] = (
    ("origin_places", lambda r: r.origin_labels.place),
    ("destination_places", lambda r: r.destination_labels.place),
    ("institutions", lambda r: r.destination_labels.institution),
    ("countries", lambda r: r.origin_labels.country),
)


def filter_records(records: Sequence[Record], filters: RecordFilters) -> list[Record]:
    """Keep records whose labels match every non-empty filter."""
    require_sequence(records, "records")
    active = [
        (getattr(filters, name), getter)
        for name, getter in _FILTER_FIELDS
        if getattr(filters, name)
    ]
    return [
        r
        for r in records
        if all(getter(r) and getter(r) in allowed for allowed, getter in active)
    ]


def filter_options(records: Sequence[Record]) -> RecordFilters:
    """Every distinct non-empty label per filter field."""
    require_sequence(records, "records")
    values: dict[str, set[str]] = {name: set() for name, _ in _FILTER_FIELDS}
    for record in records:
        for name, getter in _FILTER_FIELDS:
            value = getter(record)
            if value:
                values[name].add(value)
    return RecordFilters(**{name: frozenset(v) for name, v in values.items()})


def paginate(items: Sequence[T], page: int, page_size: int) -> Page:
    """Slice one page out of items. Out-of-range pages are clamped."""
    require_sequence(items, "items")
    if page_size < 1:
        raise InvalidArgumentError(f"page_size must be >= 1, got {page_size}")
    total = len(items)
    page_count = max(1, math.ceil(total / page_size))
    page = min(max(page, 1), page_count)
    start = (page - 1) * page_size
    return Page(
        items=tuple(items[start : start + page_size]),
        page=page,
        page_size=page_size,
        page_count=page_count,
        total=total,
    )
