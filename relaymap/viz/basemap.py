# relaymap/viz/basemap.py
from __future__ import annotations

import json
from importlib import resources
from pathlib import Path
from typing import Any, Iterator, Optional, Union

from relaymap.errors import BaseMapError
from relaymap.processing.aggregate import project
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]


def load_base_map(path: Optional[PathLike] = None) -> dict:
    """
    Load a GeoJSON FeatureCollection of landmasses.

    With no path, the coarse outline bundled with the package is used. Any
    GeoJSON with Polygon/MultiPolygon features works (e.g. Natural Earth
    110m countries).
    """
    try:
        if path is None:
            text = resources.files("relaymap").joinpath("assets/world.geojson").read_text("utf-8")
            source = "bundled world.geojson"
        else:
            text = Path(path).expanduser().read_text("utf-8")
            source = str(path)
        doc = json.loads(text)
    except (OSError, ValueError) as e:
        raise BaseMapError(f"cannot load base map {path or 'world.geojson'}: {e}") from e

    if not isinstance(doc, dict) or not isinstance(doc.get("features"), list):
        raise BaseMapError(f"base map {source} is not a GeoJSON FeatureCollection")
    log.debug("Loaded base map from %s (%d features)", source, len(doc["features"]))
    return doc


def _ring_to_path(ring: list, width: float, height: float) -> Optional[str]:
    parts = []
    for pt in ring:
        if not isinstance(pt, (list, tuple)) or len(pt) < 2:
            continue
        lon, lat = pt[0], pt[1]
        if not isinstance(lon, (int, float)) or not isinstance(lat, (int, float)):
            continue
        x, y = project(lat, lon, width, height)
        parts.append(f"{'M' if not parts else 'L'}{x:.2f},{y:.2f}")
    if len(parts) < 3:
        return None
    return "".join(parts) + "Z"


def _geometry_rings(geometry: Any) -> Iterator[list]:
    if not isinstance(geometry, dict):
        return
    coords = geometry.get("coordinates") or []
    kind = geometry.get("type")
    if kind == "Polygon":
        yield from coords
    elif kind == "MultiPolygon":
        for polygon in coords:
            yield from polygon
    elif kind == "GeometryCollection":
        for sub in geometry.get("geometries") or []:
            yield from _geometry_rings(sub)


def base_map_paths(doc: dict, width: float, height: float) -> list[str]:
    """SVG path data for every ring of every feature, in document order."""
    paths = []
    for feature in doc.get("features", []):
        if not isinstance(feature, dict):
            continue
        for ring in _geometry_rings(feature.get("geometry")):
            d = _ring_to_path(ring, width, height)
            if d:
                paths.append(d)
    return paths
