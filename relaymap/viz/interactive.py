# relaymap/viz/interactive.py
from __future__ import annotations

import math
from typing import Iterable, Optional

import plotly.graph_objects as go

from relaymap.models import AggregatedMarker, NetworkSummary, Role
from relaymap.processing.aggregate import unproject
from relaymap.viz.svg import BACKGROUND, LAND_FILL, ROLE_COLORS, draw_order


def build_relay_figure(
        markers: Iterable[AggregatedMarker],
        width: int = 1200,
        height: int = 600,
        summary: Optional[NetworkSummary] = None,
        title: str = "Tor Relay World Map",
) -> go.Figure:
    """
    Interactive companion of the SVG map: one Scattergeo trace per role,
    same markers, hover shows the number of relays merged into each dot.
    """
    markers = draw_order(markers)
    fig = go.Figure()

    for role, label in ((Role.MIDDLE, "Middle"), (Role.GUARD, "Guard"), (Role.EXIT, "Exit")):
        sub = [m for m in markers if m.role is role]
        coords = [unproject(m.x, m.y, width, height) for m in sub]
        fig.add_trace(go.Scattergeo(
            name=label,
            lat=[round(lat, 4) for lat, _ in coords],
            lon=[round(lon, 4) for _, lon in coords],
            text=[f"{label}: {m.count} relay(s)" for m in sub],
            hoverinfo="text",
            mode="markers",
            marker=dict(
                color=ROLE_COLORS[role],
                size=[4 + 2 * math.log2(m.count) for m in sub],
                line=dict(width=0.5, color=BACKGROUND),
            ),
        ))

    if summary is not None:
        title = (
            f"{title} (total {summary.total}, guards {summary.guards}, "
            f"exits {summary.exits}, middles {summary.middles})"
        )

    fig.update_layout(
        title=title,
        paper_bgcolor=BACKGROUND,
        font=dict(color="#e2e8f0", family="monospace"),
        legend=dict(itemsizing="constant"),
        margin=dict(l=0, r=0, t=40, b=0),
        geo=dict(
            projection_type="equirectangular",
            showland=True,
            landcolor=LAND_FILL,
            showocean=True,
            oceancolor=BACKGROUND,
            showcountries=True,
            countrycolor="#2d4a7a",
            bgcolor=BACKGROUND,
        ),
    )
    return fig
