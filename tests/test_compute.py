import math

import numpy as np
import pytest

from exsitu.compute import (
    aggregate_by_country,
    cluster_arcs,
    filter_arcs_by_bounds,
    object_key,
    select_arcs,
    valid_records,
    zoom_band,
)
from exsitu.errors import InvalidArgumentError
from exsitu.models import Arc, GeoPoint, Record, ViewBounds


def _arc(source, target, count=1):
    return Arc(
        id=f"{source}-{target}",
        source_position=source,
        target_position=target,
        count=count,
        members=(),
        granularity="object",
    )


# --- Coordinate validator ---


def test_valid_records_drops_missing_and_non_finite(make_record):
    good = make_record((4.5, 52.1), (2.35, 48.85))
    records = [
        good,
        make_record(None, (2.35, 48.85)),
        make_record((4.5, 52.1), None),
        make_record((math.nan, 52.1), (2.35, 48.85)),
        make_record((4.5, math.inf), (2.35, 48.85)),
        make_record((4.5, 52.1), (None, 48.85)),
        Record(id="str", origin=GeoPoint("4.5", 52.1), destination=GeoPoint(1.0, 2.0)),  # type: ignore[arg-type]
        Record(id="bool", origin=GeoPoint(True, 52.1), destination=GeoPoint(1.0, 2.0)),  # type: ignore[arg-type]
    ]
    assert valid_records(records) == [good]


def test_valid_records_preserves_order_and_is_idempotent(make_record):
    records = [
        make_record((1.0, 1.0), (2.0, 2.0)),
        make_record(None, None),
        make_record((3.0, 3.0), (4.0, 4.0)),
        make_record((0.0, 0.0), (5.0, 5.0)),
    ]
    once = valid_records(records)
    assert [r.id for r in once] == [records[0].id, records[2].id, records[3].id]
    assert valid_records(once) == once


def test_valid_records_rejects_non_sequence():
    with pytest.raises(InvalidArgumentError):
        valid_records(None)  # type: ignore[arg-type]
    with pytest.raises(InvalidArgumentError):
        valid_records("records")  # type: ignore[arg-type]


# --- Arc clusterer ---


def test_object_clustering_folds_identical_routes(make_record):
    a = make_record((10.0, 20.0), (30.0, 40.0))
    b = make_record((10.0, 20.0), (30.0, 40.0))
    still = make_record((5.0, 5.0), (5.0, 5.0))

    arcs = cluster_arcs([a, still, b], "object", 0)

    assert len(arcs) == 1
    arc = arcs[0]
    assert arc.id == "10.00,20.00-30.00,40.00"
    assert arc.count == 2
    assert arc.members == (a, b)
    assert arc.granularity == "object"
    assert arc.source_position == (10.0, 20.0)
    assert arc.target_position == (30.0, 40.0)


def test_object_clustering_uses_first_member_positions(make_record):
    first = make_record((10.001, 20.002), (30.0, 40.0))
    second = make_record((10.004, 19.998), (30.003, 40.0))

    (arc,) = cluster_arcs([first, second], "object", 0)

    assert arc.count == 2
    assert arc.source_position == (10.001, 20.002)
    assert arc.target_position == (30.0, 40.0)


def test_no_displacement_after_rounding_is_excluded(make_record):
    nearly_still = make_record((1.001, 2.001), (1.004, 2.004))
    moving = make_record((1.0, 2.0), (3.0, 4.0))

    arcs = cluster_arcs([nearly_still, moving], "object", 0)

    assert [a.members for a in arcs] == [(moving,)]
    assert all(nearly_still not in a.members for a in arcs)


def test_tiny_negative_and_positive_coordinates_share_a_key():
    assert object_key((-0.001, 10.0), (5.0, 5.0)) == object_key((0.001, 10.0), (5.0, 5.0))
    assert object_key((-0.001, 10.0), (5.0, 5.0)) == "0.00,10.00-5.00,5.00"


def test_cluster_count_conservation(make_record):
    records = [
        make_record((0.0, 0.0), (10.0, 10.0)),
        make_record((0.0, 0.0), (10.0, 10.0)),
        make_record((1.0, 1.0), (1.0, 1.0)),
        make_record((2.0, 2.0), (12.0, 12.0)),
        make_record(None, (12.0, 12.0)),
        make_record((3.0, 3.0), (13.0, 13.0)),
        make_record((3.0, 3.0), (13.0, 13.0)),
        make_record((3.0, 3.0), (13.0, 13.0)),
    ]
    arcs = cluster_arcs(records, "object", None)

    no_displacement = 1
    assert sum(a.count for a in arcs) == len(valid_records(records)) - no_displacement
    assert len({a.id for a in arcs}) == len(arcs)


def test_city_clustering_keys_on_label_pair(make_record):
    first = make_record((2.35, 48.85), (4.49, 52.16), city="Paris", to_city="Leiden")
    second = make_record((2.40, 48.80), (4.50, 52.10), city="Paris", to_city="Leiden")
    same_city = make_record((2.35, 48.85), (2.30, 48.90), city="Paris", to_city="Paris")
    no_city = make_record((2.35, 48.85), (4.49, 52.16), to_city="Leiden")
    blank_city = make_record((2.35, 48.85), (4.49, 52.16), city="  ", to_city="Leiden")
    invalid = make_record(None, (4.49, 52.16), city="Paris", to_city="Leiden")

    arcs = cluster_arcs(
        [first, same_city, second, no_city, blank_city, invalid], "city", 500
    )

    assert len(arcs) == 1
    arc = arcs[0]
    assert arc.id == "Paris-to-Leiden"
    assert arc.count == 2
    assert arc.members == (first, second)
    assert arc.granularity == "city"
    assert arc.source_position == (2.35, 48.85)
    assert arc.target_position == (4.49, 52.16)


def test_cap_keeps_heaviest_with_stable_ties(make_record):
    records = []
    # route i: origin (i, 0) → (50, 50); multiplicities 1, 3, 1, 3, 2
    for i, times in enumerate([1, 3, 1, 3, 2]):
        records += [make_record((float(i), 0.0), (50.0, 50.0)) for _ in range(times)]

    arcs = cluster_arcs(records, "object", 3)

    assert [a.count for a in arcs] == [3, 3, 2]
    assert [a.source_position[0] for a in arcs] == [1.0, 3.0, 4.0]

    arcs = cluster_arcs(records, "object", 4)
    assert [a.source_position[0] for a in arcs] == [1.0, 3.0, 4.0, 0.0]


def test_uncapped_output_keeps_first_encountered_order(make_record):
    records = [
        make_record((1.0, 0.0), (50.0, 50.0)),
        make_record((2.0, 0.0), (50.0, 50.0)),
        make_record((2.0, 0.0), (50.0, 50.0)),
    ]
    arcs = cluster_arcs(records, "object", 10)
    assert [a.count for a in arcs] == [1, 2]


@pytest.mark.parametrize("max_arcs", [0, -1, None])
def test_non_positive_max_arcs_means_uncapped(make_record, max_arcs):
    records = [make_record((float(i), 0.0), (90.0, 45.0)) for i in range(25)]
    assert len(cluster_arcs(records, "object", max_arcs)) == 25


def test_cluster_edge_cases(make_record):
    assert cluster_arcs([], "object", 10) == []
    assert cluster_arcs([make_record(None, None)], "city", 10) == []
    with pytest.raises(InvalidArgumentError):
        cluster_arcs([], "country", 10)  # type: ignore[arg-type]


# --- Geographic aggregator ---


def test_aggregate_by_country_example(make_record):
    a = make_record((2.0, 48.0), None, country="France")
    b = make_record((3.0, 49.0), None, country="France")
    nowhere = make_record((1.0, 1.0), None, country=None)

    (france,) = aggregate_by_country([a, b, nowhere])

    assert france.country == "France"
    assert france.count == 2
    assert france.members == (a, b)
    assert france.centroid == GeoPoint(longitude=2.5, latitude=48.5)


def test_centroid_is_running_pairwise_average(make_record):
    records = [
        make_record((0.0, 0.0), None, country="Peru"),
        make_record((4.0, 4.0), None, country="Peru"),
        make_record((8.0, 8.0), None, country="Peru"),
    ]
    (peru,) = aggregate_by_country(records)
    # (0,0) → (2,2) → (5,5); a true mean would be (4,4)
    assert peru.centroid == GeoPoint(longitude=5.0, latitude=5.0)


def test_aggregate_counts_records_without_coordinates(make_record):
    records = [
        make_record(None, None, country="Ghana"),
        make_record((math.nan, 5.0), None, country="Ghana"),
        make_record((-1.0, 7.0), None, country="Ghana"),
        make_record(None, None, country="Mali"),
        make_record((0.0, 0.0), None, country=""),
    ]
    ghana, mali = aggregate_by_country(records)

    assert (ghana.country, ghana.count) == ("Ghana", 3)
    assert ghana.centroid == GeoPoint(longitude=-1.0, latitude=7.0)
    assert (mali.country, mali.count, mali.centroid) == ("Mali", 1, None)
    for aggregate in (ghana, mali):
        assert all(m.origin_labels.country for m in aggregate.members)


def test_aggregate_preserves_first_seen_order(make_record):
    records = [
        make_record(None, None, country="Japan"),
        make_record(None, None, country="Chile"),
        make_record(None, None, country="Japan"),
    ]
    assert [a.country for a in aggregate_by_country(records)] == ["Japan", "Chile"]
    assert aggregate_by_country([]) == []


# --- Zoom/bounds selector ---


@pytest.mark.parametrize(
    "zoom, expected",
    [
        (0, ("object", 100, False)),
        (4, ("object", 100, False)),
        (4.5, ("city", 500, False)),
        (8, ("city", 500, False)),
        (8.01, ("object", 1000, True)),
        (11.9, ("object", 1000, True)),
        (12, ("object", 2000, True)),
        (18, ("object", 2000, True)),
        (math.nan, ("object", 100, False)),
        (math.inf, ("object", 100, False)),
        (None, ("object", 100, False)),
    ],
)
def test_zoom_band(zoom, expected):
    assert zoom_band(zoom) == expected


def test_global_view_returns_heaviest_hundred(make_record):
    records = []
    for i in range(150):
        times = 3 if i % 3 == 0 else 2 if i % 3 == 1 else 1
        records += [
            make_record((-100.0 + i, 10.0), (50.0, 50.0)) for _ in range(times)
        ]

    arcs = select_arcs(records, zoom=2)

    assert len(arcs) == 100
    assert [a.count for a in arcs] == [3] * 50 + [2] * 50
    assert [a.source_position[0] for a in arcs[:2]] == [-100.0, -97.0]
    assert arcs[50].source_position[0] == -99.0


def test_regional_view_clusters_by_city(make_record):
    records = [
        make_record((2.35, 48.85), (4.49, 52.16), city="Paris", to_city="Leiden"),
        make_record((2.36, 48.86), (4.49, 52.16), city="Paris", to_city="Leiden"),
    ]
    arcs = select_arcs(records, zoom=6)
    assert [(a.id, a.count, a.granularity) for a in arcs] == [
        ("Paris-to-Leiden", 2, "city")
    ]


def test_local_view_prefilters_on_origin(make_record):
    bounds = ViewBounds(north=10, south=0, east=10, west=0)
    inside = make_record((5.0, 5.0), (50.0, 50.0))
    on_edge = make_record((10.0, 0.0), (50.0, 50.0))
    outside = make_record((20.0, 20.0), (5.0, 5.0))
    no_origin = make_record(None, (5.0, 5.0))

    arcs = select_arcs([inside, outside, on_edge, no_origin], zoom=9, bounds=bounds)

    assert [a.members for a in arcs] == [(inside,), (on_edge,)]


def test_invalid_bounds_disable_prefilter(make_record):
    records = [
        make_record((5.0, 5.0), (50.0, 50.0)),
        make_record((20.0, 20.0), (50.0, 50.0)),
    ]
    bounds = ViewBounds(north=math.nan, south=0, east=10, west=0)
    assert len(select_arcs(records, zoom=10, bounds=bounds)) == 2
    assert len(select_arcs(records, zoom=10, bounds=None)) == 2


def test_select_arcs_short_circuits_on_empty_input():
    assert select_arcs([], zoom=math.nan) == []


def test_select_arcs_is_deterministic(make_record):
    records = [
        make_record((float(i % 7), float(i % 5)), (40.0, 40.0), city=f"c{i % 4}", to_city="x")
        for i in range(60)
    ]
    bounds = ViewBounds(north=4, south=0, east=6, west=0)
    for zoom in (1, 5, 9, 13):
        first = select_arcs(records, zoom, bounds)
        second = select_arcs(records, zoom, bounds)
        assert [(a.id, a.source_position, a.target_position, a.count) for a in first] == [
            (a.id, a.source_position, a.target_position, a.count) for a in second
        ]


def test_select_arcs_rejects_non_sequence():
    with pytest.raises(InvalidArgumentError):
        select_arcs({"not": "a list"}, zoom=3)  # type: ignore[arg-type]


def test_filter_arcs_by_bounds_is_inclusive_or():
    bounds = ViewBounds(north=10, south=0, east=10, west=0)
    source_inside = _arc((5.0, 5.0), (100.0, 50.0))
    target_inside = _arc((100.0, 50.0), (5.0, 5.0))
    in_padding = _arc((10.5, 5.0), (100.0, 50.0))
    outside = _arc((12.0, 5.0), (100.0, 50.0))

    kept = filter_arcs_by_bounds(
        [source_inside, target_inside, in_padding, outside], bounds
    )

    assert kept == [source_inside, target_inside, in_padding]
    assert filter_arcs_by_bounds([in_padding], bounds, padding=0) == []


def test_filter_arcs_by_bounds_invalid_bounds_keeps_all():
    arcs = [_arc((5.0, 5.0), (100.0, 50.0))]
    assert filter_arcs_by_bounds(arcs, None) == arcs
    assert filter_arcs_by_bounds(arcs, ViewBounds(math.nan, 0, 10, 0)) == arcs
    assert filter_arcs_by_bounds([], ViewBounds(10, 0, 10, 0)) == []


def test_filter_arcs_by_bounds_across_antimeridian():
    bounds = ViewBounds(north=10, south=-10, east=-170, west=170)
    east_side = _arc((175.0, 0.0), (0.0, 50.0))
    west_side = _arc((0.0, 50.0), (-175.0, 0.0))
    elsewhere = _arc((0.0, 0.0), (100.0, 50.0))

    assert filter_arcs_by_bounds([east_side, west_side, elsewhere], bounds) == [
        east_side,
        west_side,
    ]


def test_city_clustering_skips_records_without_displacement(make_record):
    in_place = make_record(
        (4.49, 52.16), (4.49, 52.16), city="Oegstgeest", to_city="Leiden"
    )
    moved = make_record((4.47, 52.17), (4.49, 52.16), city="Oegstgeest", to_city="Leiden")

    assert select_arcs([in_place], zoom=6) == []

    (arc,) = cluster_arcs([in_place, moved], "city", None)
    assert arc.members == (moved,)
    assert arc.source_position != arc.target_position


def test_filter_arcs_by_bounds_wide_antimeridian_box_keeps_inside_arcs():
    bounds = ViewBounds(north=80, south=-80, east=5, west=10)
    arc = _arc((100.0, 0.0), (-100.0, 0.0))

    assert bounds.contains(100, 0)
    assert filter_arcs_by_bounds([arc], bounds, padding=3) == [arc]


def test_numpy_zoom_and_bounds_are_accepted(make_record):
    assert zoom_band(np.float32(6.0)) == ("city", 500, False)

    bounds = ViewBounds(
        north=np.float32(10), south=np.float64(0), east=np.float32(10), west=np.int64(0)
    )
    inside = make_record((5.0, 5.0), (50.0, 50.0))
    outside = make_record((20.0, 20.0), (50.0, 50.0))

    arcs = select_arcs([inside, outside], zoom=np.float64(9.5), bounds=bounds)
    assert [a.members for a in arcs] == [(inside,)]
