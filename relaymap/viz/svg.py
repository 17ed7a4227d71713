# relaymap/viz/svg.py
"""
Self-contained SVG world map of relay markers.

Layers, bottom to top: background, graticule, landmasses, markers (Middle,
then Guard, then Exit), legend and the top-countries box. Everything is
inline, so the file can be committed and opened on its own. Numbers are
written with fixed precision and markers in a fixed order, so identical
input gives a byte-identical document.
"""
from __future__ import annotations

import math
from typing import Iterable, Optional
from xml.sax.saxutils import escape

from relaymap.models import AggregatedMarker, NetworkSummary, Role
from relaymap.processing.aggregate import project
from relaymap.processing.classify import precedence_rank
from relaymap.viz.basemap import base_map_paths, load_base_map

BACKGROUND = "#0c1a2e"
GRATICULE = "#162032"
LAND_FILL = "#1d3461"
LAND_STROKE = "#2d4a7a"
TEXT = "#e2e8f0"
MUTED = "#64748b"

ROLE_COLORS: dict[Role, str] = {
    Role.MIDDLE: "#fde047",
    Role.GUARD: "#c084fc",
    Role.EXIT: "#f87171",
}

R_MIDDLE = 3.0
R_NOTABLE = 4.0


def marker_radius(marker: AggregatedMarker, scale_by_count: bool = True) -> float:
    base = R_MIDDLE if marker.role is Role.MIDDLE else R_NOTABLE
    if scale_by_count and marker.count > 1:
        return base + math.log2(marker.count)
    return base


def draw_order(markers: Iterable[AggregatedMarker]) -> list[AggregatedMarker]:
    """Middles first, then guards, exits on top; (y, x) within a role."""
    return sorted(markers, key=lambda m: (precedence_rank(m.role), m.y, m.x, -m.count))


def _graticule(width: float, height: float, step: int = 30) -> list[str]:
    lines = []
    for lon in range(-180, 181, step):
        x, _ = project(0.0, lon, width, height)
        lines.append(f"    <line x1='{x:.1f}' y1='0' x2='{x:.1f}' y2='{height}'/>")
    for lat in range(-90, 91, step):
        _, y = project(lat, 0.0, width, height)
        lines.append(f"    <line x1='0' y1='{y:.1f}' x2='{width}' y2='{y:.1f}'/>")
    return lines


def _legend(summary: Optional[NetworkSummary], height: float) -> list[str]:
    out = [f"  <g font-family='monospace' font-size='12' fill='{TEXT}'>"]
    lx = 16.0
    ly = height - 70.0
    for role, label in ((Role.MIDDLE, "Middle"), (Role.GUARD, "Guard"), (Role.EXIT, "Exit")):
        out.append(
            f"    <circle cx='{lx + 6:.1f}' cy='{ly:.1f}' r='6' fill='{ROLE_COLORS[role]}'"
            f" stroke='{BACKGROUND}' stroke-width='0.8'/>"
        )
        out.append(f"    <text x='{lx + 16:.1f}' y='{ly + 4.5:.1f}'>{label}</text>")
        ly += 20.0
    if summary is not None:
        out.append(
            f"    <text x='{lx:.1f}' y='{height - 8:.1f}' font-size='10' fill='{MUTED}'>"
            f"total: {summary.total}  guards: {summary.guards}  exits: {summary.exits}"
            f"  middles: {summary.middles}  mapped: {summary.resolved}</text>"
        )
    out.append("  </g>")
    return out


def _top_countries(summary: NetworkSummary, width: float) -> list[str]:
    if not summary.top_countries:
        return []
    cx = width - 95.0
    cy = 20.0
    out = [
        "  <g font-family='monospace' font-size='10' fill='#94a3b8'>",
        f"    <text x='{cx:.1f}' y='{cy:.1f}' font-size='11' fill='#cbd5e1'>Top countries</text>",
    ]
    cy += 14.0
    for cc, count in summary.top_countries:
        out.append(f"    <text x='{cx:.1f}' y='{cy:.1f}'>{escape(cc)}  {count}</text>")
        cy += 13.0
    out.append("  </g>")
    return out


def render_svg(
        markers: Iterable[AggregatedMarker],
        summary: Optional[NetworkSummary] = None,
        base_map: Optional[dict] = None,
        width: int = 1200,
        height: int = 600,
        scale_by_count: bool = True,
        title: str = "Tor Relay World Map",
) -> str:
    """
    Render markers onto the world map and return the SVG document as text.

    `base_map` is a GeoJSON FeatureCollection; the bundled outline is used
    when omitted.
    """
    if base_map is None:
        base_map = load_base_map()
    markers = draw_order(markers)

    s = [
        '<?xml version="1.0" encoding="UTF-8"?>',
        f'<svg xmlns="http://www.w3.org/2000/svg" width="{width}" height="{height}"'
        f' viewBox="0 0 {width} {height}">',
        f"  <title>{escape(title)}</title>",
        "  <desc>Running Tor relays. Guards: purple, Exits: red, Middles: yellow.</desc>",
        f"  <rect width='{width}' height='{height}' fill='{BACKGROUND}'/>",
        f"  <g stroke='{GRATICULE}' stroke-width='0.5'>",
        *_graticule(width, height),
        "  </g>",
        f"  <g fill='{LAND_FILL}' stroke='{LAND_STROKE}' stroke-width='0.5'>",
        *(f"    <path d='{d}'/>" for d in base_map_paths(base_map, width, height)),
        "  </g>",
        f"  <g stroke='{BACKGROUND}' stroke-width='0.6'>",
    ]

    for m in markers:
        r = marker_radius(m, scale_by_count)
        s.append(
            f"    <circle cx='{m.x:.1f}' cy='{m.y:.1f}' r='{r:.2f}'"
            f" fill='{ROLE_COLORS[m.role]}'><title>{m.count}</title></circle>"
        )
    s.append("  </g>")

    s.extend(_legend(summary, height))
    if summary is not None:
        s.extend(_top_countries(summary, width))
    s.append("</svg>")
    return "\n".join(s) + "\n"
