# relaymap/datasources/base.py
from __future__ import annotations

from typing import Iterable

import pandas as pd

from relaymap.models import RelayRecord

COLUMNS = ["fingerprint", "ip", "port", "is_guard", "is_exit", "nickname", "country"]


def records_to_dataframe(records: Iterable[RelayRecord]) -> pd.DataFrame:
    """
    Flatten RelayRecords into a DataFrame with one row per relay.

    Guard/Exit flags become boolean columns so listings can be selected with
    plain masks.
    """
    rows = [
        {
            "fingerprint": r.fingerprint,
            "ip": r.ip,
            "port": r.port,
            "is_guard": r.has_flag("Guard"),
            "is_exit": r.has_flag("Exit"),
            "nickname": r.nickname,
            "country": r.country,
        }
        for r in records
    ]
    df = pd.DataFrame(rows, columns=COLUMNS)
    return df.astype({"port": "int64", "is_guard": "bool", "is_exit": "bool"})
