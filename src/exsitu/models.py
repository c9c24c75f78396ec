"""Data model definitions — explicit boundaries between fetch, compute, and render layers."""

import math
import numbers
from dataclasses import dataclass
from typing import Literal

Granularity = Literal["object", "city", "country"]

# Web Mercator world extent
WORLD_NORTH = 90.0
WORLD_SOUTH = -90.0
WORLD_EAST = 180.0
WORLD_WEST = -180.0


def is_finite_number(value: object) -> bool:
    """True for finite real numbers, numpy scalars included. bool is not a coordinate."""
    if isinstance(value, bool) or not isinstance(value, numbers.Real):
        return False
    return math.isfinite(value)


def _wrap_longitude(longitude: float) -> float:
    if WORLD_WEST <= longitude <= WORLD_EAST:
        return longitude
    return (longitude - WORLD_WEST) % 360.0 + WORLD_WEST


@dataclass(frozen=True)
class GeoPoint:
    """A longitude/latitude pair. Not validated on construction."""

    longitude: float | None  # Decimal degrees, east positive
    latitude: float | None  # Decimal degrees, north positive

    @property
    def is_valid(self) -> bool:
        return is_finite_number(self.longitude) and is_finite_number(self.latitude)

    def as_position(self) -> tuple[float, float]:
        """(longitude, latitude) in the order map layers expect."""
        return (float(self.longitude), float(self.latitude))  # type: ignore[arg-type]


@dataclass(frozen=True)
class OriginLabels:
    """Where the object came from, as labelled in the CMS."""

    place: str | None = None
    city: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class DestinationLabels:
    """The holding institution and its location labels."""

    institution: str | None = None
    place: str | None = None
    city: str | None = None
    country: str | None = None


@dataclass(frozen=True)
class Record:
    """One museum object's provenance link. Read-only input to the engine."""

    id: str | int  # Opaque CMS identifier
    origin: GeoPoint | None = None
    destination: GeoPoint | None = None
    origin_labels: OriginLabels = OriginLabels()
    destination_labels: DestinationLabels = DestinationLabels()
    title: str | None = None
    inventory_number: str | None = None


@dataclass(frozen=True)
class Arc:
    """An origin → destination connection folding one or more Records."""

    id: str  # Cluster key (rounded coordinates or city pair)
    source_position: tuple[float, float]  # (longitude, latitude) of the first member's origin
    target_position: tuple[float, float]  # (longitude, latitude) of the first member's destination
    count: int
    members: tuple[Record, ...]  # Input order
    granularity: Granularity


@dataclass(frozen=True)
class CountryAggregate:
    """Records grouped by origin country."""

    country: str
    count: int
    centroid: GeoPoint | None  # Running pairwise average; None if no member had coordinates
    members: tuple[Record, ...]


@dataclass(frozen=True)
class ViewBounds:
    """Axis-aligned viewport in degrees.

    When ``west > east`` the box crosses the antimeridian.
    """

    north: float
    south: float
    east: float
    west: float

    @property
    def is_valid(self) -> bool:
        return all(
            is_finite_number(v) for v in (self.north, self.south, self.east, self.west)
        )

    @property
    def crosses_antimeridian(self) -> bool:
        return self.west > self.east

    def padded(self, degrees: float) -> "ViewBounds":
        """Expand on all sides.

        A box crossing the antimeridian stays a crossing box with its edges
        wrapped back into [-180, 180], or covers every longitude once the
        padding closes the gap between its edges.
        """
        north = self.north + degrees
        south = self.south - degrees
        if not self.crosses_antimeridian:
            return ViewBounds(
                north=north, south=south, east=self.east + degrees, west=self.west - degrees
            )
        span = self.east + 360.0 - self.west
        if span + 2 * degrees >= 360.0:
            return ViewBounds(north=north, south=south, east=WORLD_EAST, west=WORLD_WEST)
        return ViewBounds(
            north=north,
            south=south,
            east=_wrap_longitude(self.east + degrees),
            west=_wrap_longitude(self.west - degrees),
        )

    def clamped(self) -> "ViewBounds":
        return ViewBounds(
            north=min(self.north, WORLD_NORTH),
            south=max(self.south, WORLD_SOUTH),
            east=min(self.east, WORLD_EAST),
            west=max(self.west, WORLD_WEST),
        )

    @classmethod
    def around(cls, longitude: float, latitude: float, zoom: float) -> "ViewBounds":
        """Viewport centred on a point; each zoom step halves the span."""
        lng_span = 360.0 / 2**zoom
        lat_span = 180.0 / 2**zoom
        return cls(
            north=latitude + lat_span / 2,
            south=latitude - lat_span / 2,
            east=longitude + lng_span / 2,
            west=longitude - lng_span / 2,
        ).clamped()

    def contains(self, longitude: object, latitude: object) -> bool:
        """Inclusive containment test. Non-finite points are never contained."""
        if not (is_finite_number(longitude) and is_finite_number(latitude)):
            return False
        if not self.south <= latitude <= self.north:  # type: ignore[operator]
            return False
        if self.west <= self.east:
            return self.west <= longitude <= self.east  # type: ignore[operator]
        return longitude >= self.west or longitude <= self.east  # type: ignore[operator]


WORLD_BOUNDS = ViewBounds(
    north=WORLD_NORTH, south=WORLD_SOUTH, east=WORLD_EAST, west=WORLD_WEST
)
