# relaymap/pipeline.py
"""
One run: fetch -> classify -> CSV listings, and geolocate -> aggregate ->
SVG map.

Outputs are staged and renamed into place together at the end, so a run
that fails before the commit leaves the previous files untouched. A broken
geo database only costs the map; the listings are still written.
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional, Sequence

from relaymap.config import MAP_HTML, MAP_SVG, Settings
from relaymap.datasources.onionoo import OnionooClient
from relaymap.errors import BaseMapError, FetchError, GeoDatabaseError, RelayMapError
from relaymap.export.listings import stage_listings
from relaymap.models import RelayRecord
from relaymap.processing.aggregate import aggregate
from relaymap.processing.geo import GeoResolver
from relaymap.processing.stats import summarize
from relaymap.utils.fs import StagedWriter
from relaymap.utils.logging import get_logger
from relaymap.viz.basemap import load_base_map
from relaymap.viz.export import figure_to_html
from relaymap.viz.interactive import build_relay_figure
from relaymap.viz.svg import render_svg

log = get_logger(__name__)


@dataclass
class MapOutput:
    svg: str
    html: Optional[str] = None
    markers: int = 0
    resolved: int = 0


@dataclass
class RunResult:
    relays: int
    written: list[Path] = field(default_factory=list)
    map_error: Optional[RelayMapError] = None

    @property
    def exit_code(self) -> int:
        return 2 if self.map_error is not None else 0


def build_map(
        relays: Sequence[RelayRecord],
        settings: Settings,
        resolver: GeoResolver,
) -> MapOutput:
    base_map = load_base_map(settings.base_map)
    located = resolver.resolve_all(relays)
    markers = aggregate(
        located,
        width=settings.width,
        height=settings.height,
        snap_radius=settings.snap_radius,
    )
    summary = summarize(located, limit=settings.top_countries)
    log.info("Rendering %d markers for %d mapped relays", len(markers), summary.resolved)

    svg = render_svg(
        markers,
        summary=summary,
        base_map=base_map,
        width=settings.width,
        height=settings.height,
        scale_by_count=settings.scale_by_count,
    )
    html = None
    if settings.render_html:
        fig = build_relay_figure(markers, settings.width, settings.height, summary=summary)
        html = figure_to_html(fig)
    return MapOutput(svg=svg, html=html, markers=len(markers), resolved=summary.resolved)


def _render_map(
        relays: Sequence[RelayRecord],
        settings: Settings,
        resolver: Optional[GeoResolver],
) -> MapOutput:
    if resolver is not None:
        return build_map(relays, settings, resolver)
    with GeoResolver.open(settings.geoip_db) as opened:
        return build_map(relays, settings, opened)


def run_once(
        settings: Settings,
        client: Optional[OnionooClient] = None,
        resolver: Optional[GeoResolver] = None,
) -> RunResult:
    """
    Execute one full run.

    Raises FetchError (nothing written) or WriteError. A map failure is
    reported through RunResult.map_error instead, after the listings are
    written.
    """
    client = client or OnionooClient.from_settings(settings)
    relays = client.fetch_running_relays()
    if not relays:
        raise FetchError("directory returned no usable running relays")

    result = RunResult(relays=len(relays))
    with StagedWriter() as writer:
        stage_listings(relays, settings.output_dir, writer)

        if settings.render_map:
            try:
                out = _render_map(relays, settings, resolver)
            except (GeoDatabaseError, BaseMapError) as e:
                log.error("Map not rendered: %s", e)
                result.map_error = e
            else:
                writer.stage(settings.output_path(MAP_SVG), out.svg)
                if out.html is not None:
                    writer.stage(settings.output_path(MAP_HTML), out.html)

        result.written = writer.commit()
    return result
