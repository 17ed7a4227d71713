# relaymap/processing/geo.py
"""
Offline IP geolocation backed by a MaxMind DB (GeoLite2-City).

The database is read fully into memory once; lookups walk its binary search
tree (a longest-prefix match over the address bits), so the reader is
read-only for the rest of the run and safe to share.
"""
from __future__ import annotations

import ipaddress
from pathlib import Path
from typing import Iterable, Union

import geoip2.database
import geoip2.errors
import maxminddb

from relaymap.errors import GeoDatabaseError
from relaymap.models import GeoPoint, RelayRecord
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

PathLike = Union[str, Path]


def is_routable(ip: str) -> bool:
    """False for private, loopback, link-local, reserved and other non-global space."""
    try:
        addr = ipaddress.ip_address(ip)
    except ValueError:
        return False
    if isinstance(addr, ipaddress.IPv6Address) and addr.ipv4_mapped is not None:
        addr = addr.ipv4_mapped
    return addr.is_global and not addr.is_multicast


class GeoResolver:
    """
    Resolves IP addresses to GeoPoints.

    `reader` is anything with a geoip2-style `city(ip)` method; use
    GeoResolver.open() for a real database file.
    """

    def __init__(self, reader):
        self._reader = reader

    @classmethod
    def open(cls, path: PathLike) -> "GeoResolver":
        db_path = Path(path).expanduser()
        if not db_path.is_file():
            raise GeoDatabaseError(f"GeoIP database not found at {db_path}")
        try:
            reader = geoip2.database.Reader(str(db_path), mode=maxminddb.MODE_MEMORY)
        except (OSError, ValueError, maxminddb.InvalidDatabaseError) as e:
            raise GeoDatabaseError(f"cannot read GeoIP database {db_path}: {e}") from e
        database_type = reader.metadata().database_type
        if "City" not in database_type:
            reader.close()
            raise GeoDatabaseError(
                f"{db_path} is a {database_type} database; a City database is required"
            )
        log.info("Loaded GeoIP database %s (%s)", db_path, database_type)
        return cls(reader)

    def close(self) -> None:
        close = getattr(self._reader, "close", None)
        if close is not None:
            close()

    def __enter__(self) -> "GeoResolver":
        return self

    def __exit__(self, exc_type, exc, tb) -> None:
        self.close()

    def resolve(self, ip: str) -> GeoPoint:
        if not is_routable(ip):
            return GeoPoint.UNRESOLVED
        try:
            response = self._reader.city(ip)
        except (geoip2.errors.AddressNotFoundError, ValueError):
            return GeoPoint.UNRESOLVED
        except maxminddb.InvalidDatabaseError as e:
            raise GeoDatabaseError(f"corrupt GeoIP database while looking up {ip}: {e}") from e
        except TypeError as e:
            # geoip2 refuses city() on ASN, Country and other database types
            raise GeoDatabaseError(f"GeoIP database cannot answer city lookups: {e}") from e

        lat = response.location.latitude
        lon = response.location.longitude
        if lat is None or lon is None:
            return GeoPoint.UNRESOLVED
        return GeoPoint(latitude=float(lat), longitude=float(lon), country=response.country.iso_code)

    def resolve_all(self, records: Iterable[RelayRecord]) -> list[tuple[RelayRecord, GeoPoint]]:
        results = [(record, self.resolve(record.ip)) for record in records]
        resolved = sum(1 for _, point in results if point.resolved)
        log.info("Geolocated %d/%d relays", resolved, len(results))
        return results
