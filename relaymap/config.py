# relaymap/config.py
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Optional

ONIONOO_URL = "https://onionoo.torproject.org"
DETAILS_SEARCH = "type:relay running:true"
DETAILS_FIELDS = "fingerprint,nickname,or_addresses,flags,running,country"
USER_AGENT = "relaymap/0.3 (+https://onionoo.torproject.org)"
# Upper bound on limit/offset requests in one fetch.
MAX_PAGES = 1000

DEFAULT_GEOIP_DB = Path("assets/GeoLite2-City.mmdb")

# Output file names, relative to the output directory.
ALL_CSV = "all.csv"
GUARDS_CSV = "guards.csv"
EXITS_CSV = "exits.csv"
MAP_SVG = "map.svg"
MAP_HTML = "map.html"


@dataclass
class Settings:
    """Everything a single run needs. Built by the CLI from options / RELAYMAP_* env vars."""

    output_dir: Path = Path(".")
    geoip_db: Path = DEFAULT_GEOIP_DB
    base_map: Optional[Path] = None     # None -> bundled coarse landmass outline

    onionoo_url: str = ONIONOO_URL
    page_size: int = 0                  # 0 -> one request, no pagination
    timeout: float = 60.0
    max_attempts: int = 5
    backoff_base: float = 2.0
    max_backoff: float = 60.0

    width: int = 1200
    height: int = 600
    snap_radius: float = 1.0
    scale_by_count: bool = True
    top_countries: int = 10

    render_map: bool = True
    render_html: bool = False

    def __post_init__(self) -> None:
        self.output_dir = Path(self.output_dir)
        self.geoip_db = Path(self.geoip_db)
        if self.base_map is not None:
            self.base_map = Path(self.base_map)
        if self.page_size < 0:
            raise ValueError("page_size must be >= 0")
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be >= 1")
        if self.snap_radius <= 0:
            raise ValueError("snap_radius must be > 0")
        if self.width <= 0 or self.height <= 0:
            raise ValueError("canvas width and height must be positive")

    def output_path(self, name: str) -> Path:
        return self.output_dir / name
