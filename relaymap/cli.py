from __future__ import annotations

import sys
from pathlib import Path
from typing import Optional

import typer

from relaymap.config import DEFAULT_GEOIP_DB, ONIONOO_URL, Settings
from relaymap.errors import FetchError, RelayMapError, WriteError
from relaymap.pipeline import run_once
from relaymap.utils.logging import configure_logging, get_logger

app = typer.Typer(
    help="Fetch running Tor relays from Onionoo; write role CSV listings and a world map.",
    add_completion=False,
)

log = get_logger(__name__)


@app.command()
def run(
        output_dir: Path = typer.Option(
            Path("."),
            "--output-dir",
            "-o",
            envvar="RELAYMAP_OUTPUT_DIR",
            file_okay=False,
            help="Directory for all.csv, guards.csv, exits.csv and map.svg.",
        ),
        geoip_db: Path = typer.Option(
            DEFAULT_GEOIP_DB,
            "--geoip-db",
            envvar="RELAYMAP_GEOIP_DB",
            help="MaxMind GeoLite2-City .mmdb used to place relays on the map.",
        ),
        base_map: Optional[Path] = typer.Option(
            None,
            "--base-map",
            envvar="RELAYMAP_BASE_MAP",
            help="GeoJSON FeatureCollection drawn under the markers (default: bundled outline).",
        ),
        onionoo_url: str = typer.Option(
            ONIONOO_URL,
            "--onionoo-url",
            envvar="RELAYMAP_ONIONOO_URL",
            help="Base URL of the Onionoo service.",
        ),
        page_size: int = typer.Option(
            0,
            "--page-size",
            envvar="RELAYMAP_PAGE_SIZE",
            min=0,
            help="Relays per request; 0 fetches everything in one request.",
        ),
        max_attempts: int = typer.Option(
            5,
            "--max-attempts",
            envvar="RELAYMAP_MAX_ATTEMPTS",
            min=1,
            help="Attempts per request before giving up on transient failures.",
        ),
        timeout: float = typer.Option(
            60.0,
            "--timeout",
            envvar="RELAYMAP_TIMEOUT",
            min=1.0,
            help="Per-request timeout in seconds.",
        ),
        snap_radius: float = typer.Option(
            1.0,
            "--snap-radius",
            envvar="RELAYMAP_SNAP_RADIUS",
            min=0.1,
            help="Relays within this many pixels share one marker.",
        ),
        width: int = typer.Option(
            1200,
            "--width",
            envvar="RELAYMAP_WIDTH",
            min=100,
            help="Map width in pixels.",
        ),
        height: int = typer.Option(
            600,
            "--height",
            envvar="RELAYMAP_HEIGHT",
            min=50,
            help="Map height in pixels.",
        ),
        no_map: bool = typer.Option(
            False,
            "--no-map",
            envvar="RELAYMAP_NO_MAP",
            help="Only write the CSV listings.",
        ),
        html: bool = typer.Option(
            False,
            "--html/--no-html",
            envvar="RELAYMAP_HTML",
            help="Also write an interactive map.html (plotly).",
        ),
        verbose: bool = typer.Option(
            False,
            "--verbose",
            "-v",
            envvar="RELAYMAP_VERBOSE",
            help="Debug logging.",
        ),
):
    """
    Run the pipeline once.

    Exit codes: 0 success, 1 fetch/write failure (previous outputs untouched),
    2 map could not be rendered (listings were still written).

    Example:

        relaymap -o out/ --geoip-db GeoLite2-City.mmdb
    """
    configure_logging(verbose)

    settings = Settings(
        output_dir=output_dir.expanduser(),
        geoip_db=geoip_db,
        base_map=base_map,
        onionoo_url=onionoo_url,
        page_size=page_size,
        timeout=timeout,
        max_attempts=max_attempts,
        width=width,
        height=height,
        snap_radius=snap_radius,
        render_map=not no_map,
        render_html=html and not no_map,
    )

    try:
        result = run_once(settings)
    except FetchError as e:
        typer.echo(f"Fetch failed: {e}", err=True)
        raise typer.Exit(code=1)
    except WriteError as e:
        typer.echo(f"Write failed ({e.path}): {e}", err=True)
        raise typer.Exit(code=1)
    except RelayMapError as e:
        typer.echo(f"Run failed: {e}", err=True)
        raise typer.Exit(code=1)

    for path in result.written:
        typer.echo(f"Wrote {path}")
    if result.map_error is not None:
        typer.echo(f"Map not written: {result.map_error}", err=True)
        raise typer.Exit(code=result.exit_code)


def main() -> None:
    """Entry point for console_scripts."""
    try:
        app()
    except KeyboardInterrupt:
        # Graceful Ctrl+C handling
        typer.echo("Interrupted by user.", err=True)
        sys.exit(130)


if __name__ == "__main__":
    main()
