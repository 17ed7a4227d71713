# relaymap/processing/aggregate.py
from __future__ import annotations

from typing import Iterable

import pandas as pd

from relaymap.models import AggregatedMarker, GeoPoint, RelayRecord, Role
from relaymap.processing.classify import PRECEDENCE, classify, precedence_rank, primary_role
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

_RANK_TO_ROLE = {precedence_rank(role): role for role in PRECEDENCE}


def project(lat: float, lon: float, width: float, height: float) -> tuple[float, float]:
    """Equirectangular (plate carree) projection onto a width x height canvas."""
    x = (lon + 180.0) / 360.0 * width
    y = (90.0 - lat) / 180.0 * height
    return x, y


def unproject(x: float, y: float, width: float, height: float) -> tuple[float, float]:
    """Inverse of project(); returns (lat, lon)."""
    lon = x / width * 360.0 - 180.0
    lat = 90.0 - y / height * 180.0
    return lat, lon


def _frame(
        resolved: Iterable[tuple[RelayRecord, GeoPoint]],
        width: float,
        height: float,
        snap_radius: float,
) -> pd.DataFrame:
    rows = []
    for record, point in resolved:
        if not point.resolved:
            continue
        x, y = project(point.latitude, point.longitude, width, height)
        rows.append({
            "fingerprint": record.fingerprint,
            # Python's round() is half-to-even and independent of input order.
            "key_x": round(x / snap_radius),
            "key_y": round(y / snap_radius),
            "rank": precedence_rank(primary_role(classify(record))),
        })
    return pd.DataFrame(rows, columns=["fingerprint", "key_x", "key_y", "rank"])


def aggregate(
        resolved: Iterable[tuple[RelayRecord, GeoPoint]],
        width: float = 1200,
        height: float = 600,
        snap_radius: float = 1.0,
) -> list[AggregatedMarker]:
    """
    Merge relays that land in the same snap cell into one marker.

    Cells are `snap_radius` pixels wide (1.0 -> same rounded pixel). The
    marker takes the highest-precedence role among its relays
    (Exit > Guard > Middle) and is placed at the cell's anchor. Unresolved
    points are ignored. Output is sorted by (y, x) and does not depend on
    the order of the input.
    """
    if snap_radius <= 0:
        raise ValueError("snap_radius must be > 0")

    df = _frame(resolved, width, height, snap_radius)
    if df.empty:
        return []

    counts = (
        df.groupby(["key_y", "key_x", "rank"], sort=True)
        .size()
        .unstack("rank", fill_value=0)
    )

    markers = []
    for (key_y, key_x), row in counts.iterrows():
        role_counts = tuple(
            (_RANK_TO_ROLE[rank], int(row[rank]))
            for rank in sorted(counts.columns, reverse=True)
            if row[rank] > 0
        )
        markers.append(AggregatedMarker(
            x=float(key_x * snap_radius),
            y=float(key_y * snap_radius),
            role=role_counts[0][0],
            count=sum(n for _, n in role_counts),
            role_counts=role_counts,
        ))

    log.debug("Aggregated %d relays into %d markers", len(df), len(markers))
    return markers


def markers_by_role(markers: Iterable[AggregatedMarker]) -> dict[Role, int]:
    """Relay totals per primary role across markers."""
    totals = {role: 0 for role in PRECEDENCE}
    for marker in markers:
        for role, n in marker.role_counts:
            totals[role] += n
    return totals
