"""CSV export of the records currently on display."""

from collections.abc import Sequence
from datetime import date

import polars as pl

from exsitu.models import GeoPoint, Record, is_finite_number

CSV_COLUMNS: tuple[str, ...] = (
    "ID",
    "Title",
    "Inventory Number",
    "From Place",
    "From City",
    "From Country",
    "To Institution",
    "To Place",
    "To City",
    "To Country",
    "Longitude",
    "Latitude",
    "Institution Longitude",
    "Institution Latitude",
)

_SCHEMA = {
    name: (pl.Float64 if name.endswith(("Longitude", "Latitude")) else pl.Utf8)
    for name in CSV_COLUMNS
}


def _coord(point: GeoPoint | None, attr: str) -> float | None:
    if point is None:
        return None
    value = getattr(point, attr)
    return float(value) if is_finite_number(value) else None


def records_to_frame(records: Sequence[Record]) -> pl.DataFrame:
    """One row per record, fixed column order. Missing values are null."""
    rows = [
        {
            "ID": str(r.id) if r.id is not None else None,
            "Title": r.title,
            "Inventory Number": r.inventory_number,
            "From Place": r.origin_labels.place,
            "From City": r.origin_labels.city,
            "From Country": r.origin_labels.country,
            "To Institution": r.destination_labels.institution,
            "To Place": r.destination_labels.place,
            "To City": r.destination_labels.city,
            "To Country": r.destination_labels.country,
            "Longitude": _coord(r.origin, "longitude"),
            "Latitude": _coord(r.origin, "latitude"),
            "Institution Longitude": _coord(r.destination, "longitude"),
            "Institution Latitude": _coord(r.destination, "latitude"),
        }
        for r in records
    ]
    return pl.DataFrame(rows, schema=_SCHEMA)


def records_to_csv(records: Sequence[Record]) -> str:
    """Render records as CSV text. Fields containing commas or quotes are quoted."""
    return records_to_frame(records).write_csv()


def export_filename(day: date) -> str:
    return f"ex-situ-objects-{day.isoformat()}.csv"
