# relaymap/processing/stats.py
from __future__ import annotations

from typing import Iterable, Optional

import pandas as pd

from relaymap.models import GeoPoint, NetworkSummary, RelayRecord, Role
from relaymap.processing.classify import classify


def top_countries(countries: Iterable[Optional[str]], limit: int = 10) -> tuple[tuple[str, int], ...]:
    """
    Most common country codes, count descending then code ascending.
    Missing codes are ignored.
    """
    series = pd.Series([c.upper() for c in countries if c], dtype="object")
    if series.empty or limit <= 0:
        return ()
    counts = series.value_counts().rename_axis("country").reset_index(name="count")
    counts = counts.sort_values(["count", "country"], ascending=[False, True], kind="mergesort")
    return tuple((str(cc), int(n)) for cc, n in counts.head(limit).itertuples(index=False))


def summarize(
        located: Iterable[tuple[RelayRecord, GeoPoint]],
        limit: int = 10,
) -> NetworkSummary:
    """
    Role totals and the busiest countries for the map legend.

    The country comes from the geo database when resolved, otherwise from the
    directory's own `country` field.
    """
    located = list(located)
    guards = exits = middles = resolved = 0
    countries = []
    for record, point in located:
        roles = classify(record)
        guards += Role.GUARD in roles
        exits += Role.EXIT in roles
        middles += Role.MIDDLE in roles
        resolved += point.resolved
        countries.append(point.country or record.country)

    return NetworkSummary(
        total=len(located),
        guards=guards,
        exits=exits,
        middles=middles,
        resolved=resolved,
        top_countries=top_countries(countries, limit=limit),
    )
