"""Plotly interactive arc map renderer.

Draws each Arc as a great-circle line on a Scattergeo layer, with origin and
destination markers carrying hover text. Supports wheel zoom and drag panning.
"""

from collections.abc import Sequence

import numpy as np
import plotly.graph_objects as go

from exsitu.models import Arc, CountryAggregate, ViewBounds

_BG = "#0d1b35"
_LAND = "#1a2f55"
_ARC_COLOR = "#c9a96e"
_SOURCE_COLOR = "#7ec8e3"
_TARGET_COLOR = "#f5e6b8"
_COUNTRY_COLOR = "rgba(126, 200, 227, 0.35)"


def _arc_label(arc: Arc) -> str:
    first = arc.members[0]
    source = first.origin_labels.city or first.origin_labels.place or "?"
    if arc.granularity == "city":
        target = first.destination_labels.city or "?"
    else:
        target = first.destination_labels.institution or first.destination_labels.city or "?"
    links = "link" if arc.count == 1 else "links"
    return f"{source} → {target}<br>{arc.count} {links}"


def render_arc_map(
    arcs: Sequence[Arc],
    countries: Sequence[CountryAggregate] = (),
    bounds: ViewBounds | None = None,
) -> go.Figure:
    """Render arcs (and optional country bubbles) as a Plotly geo figure.

    Args:
        arcs: Arcs to draw, typically from select_arcs.
        countries: Country aggregates drawn as bubbles sized by count.
        bounds: Viewport to frame. Invalid or None shows the whole world.

    Returns:
        Plotly Figure object.
    """
    # All arcs in a single trace using None separators
    lon: list[float | None] = []
    lat: list[float | None] = []
    for arc in arcs:
        lon += [arc.source_position[0], arc.target_position[0], None]
        lat += [arc.source_position[1], arc.target_position[1], None]

    arc_trace = go.Scattergeo(
        lon=lon,
        lat=lat,
        mode="lines",
        line=dict(color=_ARC_COLOR, width=1),
        opacity=0.6,
        hoverinfo="skip",
        name="arcs",
    )

    labels = [_arc_label(arc) for arc in arcs]
    counts = np.array([arc.count for arc in arcs], dtype=float)
    sizes = np.clip(3 + np.sqrt(counts), 3, 14) if len(arcs) else []

    source_trace = go.Scattergeo(
        lon=[arc.source_position[0] for arc in arcs],
        lat=[arc.source_position[1] for arc in arcs],
        mode="markers",
        marker=dict(size=list(sizes), color=_SOURCE_COLOR, line=dict(width=0)),
        text=labels,
        hoverinfo="text",
        name="origins",
    )
    target_trace = go.Scattergeo(
        lon=[arc.target_position[0] for arc in arcs],
        lat=[arc.target_position[1] for arc in arcs],
        mode="markers",
        marker=dict(size=5, color=_TARGET_COLOR, symbol="diamond", line=dict(width=0)),
        text=labels,
        hoverinfo="text",
        name="institutions",
    )

    traces = [arc_trace, source_trace, target_trace]

    located = [c for c in countries if c.centroid is not None and c.centroid.is_valid]
    if located:
        country_counts = np.array([c.count for c in located], dtype=float)
        traces.insert(
            0,
            go.Scattergeo(
                lon=[c.centroid.longitude for c in located],  # type: ignore[union-attr]
                lat=[c.centroid.latitude for c in located],  # type: ignore[union-attr]
                mode="markers",
                marker=dict(
                    size=list(np.clip(6 + 2 * np.sqrt(country_counts), 6, 40)),
                    color=_COUNTRY_COLOR,
                    line=dict(width=0),
                ),
                text=[f"{c.country}: {c.count}" for c in located],
                hoverinfo="text",
                name="countries",
            ),
        )

    fig = go.Figure(data=traces)

    geo = dict(
        projection_type="natural earth",
        showland=True,
        landcolor=_LAND,
        showcountries=True,
        countrycolor="#334466",
        showocean=True,
        oceancolor=_BG,
        bgcolor=_BG,
        showframe=False,
    )
    if bounds is not None and bounds.is_valid and bounds.west <= bounds.east:
        geo["lonaxis"] = dict(range=[bounds.west, bounds.east])
        geo["lataxis"] = dict(range=[bounds.south, bounds.north])
        geo["projection_type"] = "equirectangular"

    fig.update_layout(
        paper_bgcolor=_BG,
        plot_bgcolor=_BG,
        showlegend=False,
        margin=dict(l=0, r=0, t=0, b=0),
        height=600,
        dragmode="pan",
        geo=geo,
    )

    # st.plotly_chart call also requires config={"scrollZoom": True}
    fig._config = {"scrollZoom": True, "displayModeBar": False}  # type: ignore[attr-defined]

    return fig
