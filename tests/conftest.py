from __future__ import annotations

from types import SimpleNamespace
from typing import Optional

import geoip2.errors
import pytest

from relaymap.config import Settings
from relaymap.models import RelayRecord


def fp(n: int, prefix: str = "A") -> str:
    """40-char hex fingerprint, e.g. fp(1) -> 'AAAA...0001'."""
    tail = f"{n:04X}"
    return (prefix * (40 - len(tail)) + tail).upper()


def raw_relay(
        fingerprint: str,
        addr: str = "1.2.3.4:9001",
        flags: Optional[list] = None,
        running: bool = True,
        country: Optional[str] = None,
) -> dict:
    obj = {
        "fingerprint": fingerprint,
        "or_addresses": [addr],
        "flags": ["Running", "Valid"] if flags is None else flags,
        "running": running,
    }
    if country is not None:
        obj["country"] = country
    return obj


def relay(fingerprint: str, ip: str = "1.2.3.4", port: int = 9001, flags=("Running",), **kw) -> RelayRecord:
    return RelayRecord(fingerprint=fingerprint, ip=ip, port=port, flags=frozenset(flags), **kw)


class FakeResponse:
    def __init__(self, payload=None, status_code: int = 200, headers=None, body_error: Optional[Exception] = None):
        self.payload = payload
        self.status_code = status_code
        self.headers = headers or {}
        self.body_error = body_error

    def json(self):
        if self.body_error is not None:
            raise self.body_error
        return self.payload


class FakeSession:
    """Replays scripted responses (or raises scripted exceptions) in order."""

    def __init__(self, script):
        self.script = list(script)
        self.calls = []
        self.headers = {}

    def get(self, url, params=None, timeout=None):
        self.calls.append({"url": url, "params": dict(params or {}), "timeout": timeout})
        if not self.script:
            raise AssertionError("unexpected extra request")
        item = self.script.pop(0)
        if isinstance(item, Exception):
            raise item
        return item


class FakeCityReader:
    """geoip2-like reader backed by a dict of ip -> (lat, lon, country)."""

    def __init__(self, table: dict):
        self.table = table
        self.lookups = []
        self.closed = False

    def city(self, ip):
        self.lookups.append(ip)
        if ip not in self.table:
            raise geoip2.errors.AddressNotFoundError(f"{ip} not in database")
        lat, lon, cc = self.table[ip]
        return SimpleNamespace(
            location=SimpleNamespace(latitude=lat, longitude=lon),
            country=SimpleNamespace(iso_code=cc),
        )

    def close(self):
        self.closed = True


class FakeAsnReader:
    """geoip2-like reader over a non-City database: city() is refused."""

    database_type = "GeoLite2-ASN"

    def __init__(self, *args, **kwargs):
        self.closed = False

    def metadata(self):
        return SimpleNamespace(database_type=self.database_type)

    def city(self, ip):
        raise TypeError(f"The city method cannot be used with the {self.database_type} database")

    def close(self):
        self.closed = True


@pytest.fixture
def no_sleep():
    delays = []
    return delays, delays.append


@pytest.fixture
def settings(tmp_path):
    return Settings(output_dir=tmp_path / "out", geoip_db=tmp_path / "missing.mmdb")
