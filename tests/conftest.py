"""Shared fixtures."""

import itertools

import pytest

from exsitu.models import DestinationLabels, GeoPoint, OriginLabels, Record


@pytest.fixture
def make_record():
    """Factory fixture: build a Record from plain coordinates and labels."""
    ids = itertools.count(1)

    def _make(
        origin=None,
        destination=None,
        *,
        country=None,
        city=None,
        place=None,
        institution=None,
        to_city=None,
        to_place=None,
        to_country=None,
        title=None,
        record_id=None,
    ) -> Record:
        return Record(
            id=record_id if record_id is not None else next(ids),
            origin=GeoPoint(*origin) if origin is not None else None,
            destination=GeoPoint(*destination) if destination is not None else None,
            origin_labels=OriginLabels(place=place, city=city, country=country),
            destination_labels=DestinationLabels(
                institution=institution,
                place=to_place,
                city=to_city,
                country=to_country,
            ),
            title=title,
        )

    return _make
