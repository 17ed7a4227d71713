# relaymap/processing/classify.py
from __future__ import annotations

from typing import Iterable

from relaymap.models import RelayRecord, Role

# Highest first. Picks the marker color when relays of mixed roles share a pixel.
PRECEDENCE: tuple[Role, ...] = (Role.EXIT, Role.GUARD, Role.MIDDLE)


def classify(record: RelayRecord) -> frozenset[Role]:
    """
    Roles a relay belongs to. Always contains Role.ALL; GUARD and EXIT follow
    the flags and may both be present; MIDDLE only when neither is.
    """
    roles = {Role.ALL}
    if record.has_flag("Guard"):
        roles.add(Role.GUARD)
    if record.has_flag("Exit"):
        roles.add(Role.EXIT)
    if len(roles) == 1:
        roles.add(Role.MIDDLE)
    return frozenset(roles)


def primary_role(roles: Iterable[Role]) -> Role:
    roles = set(roles)
    for role in PRECEDENCE:
        if role in roles:
            return role
    return Role.MIDDLE


def precedence_rank(role: Role) -> int:
    """Larger means drawn on top / wins a merge. MIDDLE=0, GUARD=1, EXIT=2."""
    return len(PRECEDENCE) - 1 - PRECEDENCE.index(role)


def partition(records: Iterable[RelayRecord]) -> dict[Role, list[RelayRecord]]:
    buckets: dict[Role, list[RelayRecord]] = {role: [] for role in Role}
    for record in records:
        for role in classify(record):
            buckets[role].append(record)
    return buckets
