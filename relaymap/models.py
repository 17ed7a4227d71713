# relaymap/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from enum import Enum
from typing import Optional


class Role(str, Enum):
    ALL = "all"
    GUARD = "guard"
    EXIT = "exit"
    MIDDLE = "middle"


@dataclass(frozen=True)
class RelayRecord:
    fingerprint: str                # 40 upper-case hex chars
    ip: str                         # normalized "1.2.3.4" or "2001:db8::1"
    port: int
    flags: frozenset[str] = field(default_factory=frozenset)
    running: bool = True
    nickname: Optional[str] = None
    country: Optional[str] = None   # two-letter code as reported by Onionoo

    def has_flag(self, flag: str) -> bool:
        flag = flag.lower()
        return any(f.lower() == flag for f in self.flags)


@dataclass(frozen=True)
class GeoPoint:
    latitude: Optional[float]
    longitude: Optional[float]
    country: Optional[str] = None

    @property
    def resolved(self) -> bool:
        return self.latitude is not None and self.longitude is not None


GeoPoint.UNRESOLVED = GeoPoint(latitude=None, longitude=None)


@dataclass(frozen=True)
class AggregatedMarker:
    x: float
    y: float
    role: Role                      # dominant role, picks the color
    count: int                      # relays collapsed into this marker
    role_counts: tuple[tuple[Role, int], ...] = ()

    def count_for(self, role: Role) -> int:
        return dict(self.role_counts).get(role, 0)


@dataclass(frozen=True)
class NetworkSummary:
    total: int
    guards: int
    exits: int
    middles: int
    resolved: int = 0
    top_countries: tuple[tuple[str, int], ...] = ()
