"""Matplotlib static PNG renderer."""

from collections.abc import Sequence
from datetime import datetime
from pathlib import Path

import matplotlib.pyplot as plt
import numpy as np
from matplotlib.collections import LineCollection
from matplotlib.figure import Figure

from exsitu.models import Arc, CountryAggregate, ViewBounds

_ROOT = Path(__file__).parent.parent.parent.parent
_BG = "#0d1b35"


def render_static_map(
    arcs: Sequence[Arc],
    countries: Sequence[CountryAggregate] = (),
    bounds: ViewBounds | None = None,
    chart_size: int = 12,
) -> Figure:
    """Render arcs on plain longitude/latitude axes.

    Args:
        arcs: Arcs to draw.
        countries: Optional country bubbles.
        bounds: Axis limits. Invalid or None shows the whole world.
        chart_size: Output width in inches (height is half).

    Returns:
        matplotlib Figure object.
    """
    fig, ax = plt.subplots(figsize=(chart_size, chart_size / 2))
    fig.patch.set_facecolor(_BG)
    ax.set_facecolor(_BG)

    segments = [[arc.source_position, arc.target_position] for arc in arcs]
    if segments:
        counts = np.array([arc.count for arc in arcs], dtype=float)
        widths = np.clip(0.5 + np.log1p(counts), 0.5, 4)
        ax.add_collection(
            LineCollection(
                segments, colors="#c9a96e", linewidths=widths, alpha=0.6, zorder=1
            )
        )
        ax.scatter(
            [a.source_position[0] for a in arcs],
            [a.source_position[1] for a in arcs],
            s=8,
            color="#7ec8e3",
            linewidths=0,
            zorder=2,
        )
        ax.scatter(
            [a.target_position[0] for a in arcs],
            [a.target_position[1] for a in arcs],
            s=12,
            color="#f5e6b8",
            marker="D",
            linewidths=0,
            zorder=3,
        )

    located = [c for c in countries if c.centroid is not None and c.centroid.is_valid]
    if located:
        ax.scatter(
            [c.centroid.longitude for c in located],  # type: ignore[union-attr]
            [c.centroid.latitude for c in located],  # type: ignore[union-attr]
            s=[20 + 4 * c.count for c in located],
            color="#7ec8e3",
            alpha=0.25,
            linewidths=0,
            zorder=0,
        )

    if bounds is not None and bounds.is_valid and bounds.west <= bounds.east:
        ax.set_xlim(bounds.west, bounds.east)
        ax.set_ylim(bounds.south, bounds.north)
    else:
        ax.set_xlim(-180, 180)
        ax.set_ylim(-90, 90)
    ax.set_aspect("equal", adjustable="box")
    ax.axis("off")

    return fig


def save_static_map(
    arcs: Sequence[Arc],
    output_path: Path | None = None,
    countries: Sequence[CountryAggregate] = (),
    bounds: ViewBounds | None = None,
) -> Path:
    """Save arcs as a PNG file.

    Args:
        arcs: Arcs to draw.
        output_path: Destination path. Auto-generated under results/ if None.
        countries: Optional country bubbles.
        bounds: Axis limits.

    Returns:
        Path to the saved file.
    """
    if output_path is None:
        stamp = datetime.now().strftime("%Y_%m_%d_%H_%M_%S")
        output_path = _ROOT / "results" / f"ex_situ_arcs__{stamp}.png"

    output_path.parent.mkdir(parents=True, exist_ok=True)
    fig = render_static_map(arcs, countries=countries, bounds=bounds)
    fig.savefig(output_path, facecolor=_BG)
    plt.close(fig)
    return output_path
