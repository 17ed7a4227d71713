# relaymap/export/listings.py
"""
Role-partitioned CSV listings: `fingerprint,ip,port`, no header, one
newline-terminated row per relay, sorted by fingerprint.

The surrounding automation commits the files only when they change, so the
output must be byte-identical for an unchanged relay set.
"""
from __future__ import annotations

from pathlib import Path
from typing import Iterable, Union

import pandas as pd

from relaymap.config import ALL_CSV, EXITS_CSV, GUARDS_CSV
from relaymap.datasources.base import records_to_dataframe
from relaymap.models import RelayRecord, Role
from relaymap.utils.fs import StagedWriter, atomic_write_text
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]

LISTINGS: dict[Role, str] = {
    Role.ALL: ALL_CSV,
    Role.GUARD: GUARDS_CSV,
    Role.EXIT: EXITS_CSV,
}

LISTING_COLUMNS = ["fingerprint", "ip", "port"]


def select_role(df: pd.DataFrame, role: Role) -> pd.DataFrame:
    if role is Role.ALL:
        return df
    if role is Role.GUARD:
        return df[df["is_guard"]]
    if role is Role.EXIT:
        return df[df["is_exit"]]
    return df[~(df["is_guard"] | df["is_exit"])]


def frame_to_listing(df: pd.DataFrame) -> str:
    if df.empty:
        return ""
    df = (
        df.drop_duplicates(subset="fingerprint", keep="first")
        .sort_values("fingerprint", kind="mergesort")
    )
    return df[LISTING_COLUMNS].to_csv(header=False, index=False, lineterminator="\n")


def render_listing(relays: Iterable[RelayRecord], role: Role = Role.ALL) -> str:
    """CSV text for the relays that belong to `role`."""
    return frame_to_listing(select_role(records_to_dataframe(relays), role))


def emit(role: Role, relays: Iterable[RelayRecord], destination: PathLike) -> Path:
    """Write the listing for `role` to `destination`, replacing it atomically."""
    out_path = Path(destination)
    text = render_listing(relays, role)
    atomic_write_text(out_path, text)
    log.info("Wrote %s listing to %s (%d rows)", role.value, out_path, text.count("\n"))
    return out_path


def stage_listings(
        relays: Iterable[RelayRecord],
        output_dir: PathLike,
        writer: StagedWriter,
) -> dict[Role, Path]:
    """Stage all.csv, guards.csv and exits.csv in `writer` (committed by the caller)."""
    df = records_to_dataframe(relays)
    staged = {}
    for role, name in LISTINGS.items():
        path = Path(output_dir) / name
        text = frame_to_listing(select_role(df, role))
        writer.stage(path, text)
        log.debug("Staged %s (%d rows)", path, text.count("\n"))
        staged[role] = path
    return staged
