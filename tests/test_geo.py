from types import SimpleNamespace

import geoip2.database
import pytest

from conftest import FakeAsnReader, FakeCityReader, fp, relay
from relaymap.errors import GeoDatabaseError
from relaymap.models import GeoPoint
from relaymap.processing.geo import GeoResolver, is_routable


@pytest.fixture
def resolver():
    return GeoResolver(FakeCityReader({
        "1.2.3.4": (52.52, 13.40, "DE"),
        "2a01:4f8::1": (50.47, 12.37, "DE"),
    }))


@pytest.mark.parametrize("ip", [
    "10.0.0.1", "172.16.5.4", "192.168.1.1", "127.0.0.1", "169.254.0.1",
    "0.0.0.0", "224.0.0.1", "::1", "fe80::1", "fc00::1", "2001:db8::1",
    "::ffff:10.0.0.1", "not-an-ip",
])
def test_non_routable(ip):
    assert not is_routable(ip)


@pytest.mark.parametrize("ip", ["1.2.3.4", "8.8.8.8", "2a01:4f8::1", "::ffff:8.8.8.8"])
def test_routable(ip):
    assert is_routable(ip)


def test_resolves_ipv4_and_ipv6(resolver):
    assert resolver.resolve("1.2.3.4") == GeoPoint(52.52, 13.40, "DE")
    point = resolver.resolve("2a01:4f8::1")
    assert point.resolved
    assert (point.latitude, point.longitude) == (50.47, 12.37)


def test_private_range_is_unresolved_without_lookup(resolver):
    point = resolver.resolve("10.1.2.3")
    assert point is GeoPoint.UNRESOLVED
    assert not point.resolved
    assert resolver._reader.lookups == []


def test_address_missing_from_database_is_unresolved(resolver):
    assert resolver.resolve("8.8.8.8") is GeoPoint.UNRESOLVED


def test_entry_without_coordinates_is_unresolved():
    class NoLocation:
        def city(self, ip):
            return SimpleNamespace(
                location=SimpleNamespace(latitude=None, longitude=None),
                country=SimpleNamespace(iso_code="US"),
            )

    assert not GeoResolver(NoLocation()).resolve("8.8.8.8").resolved


def test_resolve_all_keeps_every_record(resolver):
    records = [relay(fp(1), ip="1.2.3.4"), relay(fp(2), ip="10.0.0.1")]
    located = resolver.resolve_all(records)
    assert [r for r, _ in located] == records
    assert [p.resolved for _, p in located] == [True, False]


def test_missing_database_fails_fast(tmp_path):
    with pytest.raises(GeoDatabaseError, match="not found"):
        GeoResolver.open(tmp_path / "nope.mmdb")


def test_corrupt_database_fails_fast(tmp_path):
    bogus = tmp_path / "GeoLite2-City.mmdb"
    bogus.write_bytes(b"this is not a maxmind database" * 10)
    with pytest.raises(GeoDatabaseError, match="cannot read"):
        GeoResolver.open(bogus)


def test_context_manager_closes_reader():
    reader = FakeCityReader({})
    with GeoResolver(reader):
        pass
    assert reader.closed


def test_wrong_database_type_is_rejected_on_open(tmp_path, monkeypatch):
    opened = []

    def fake_reader(path, mode=None):
        opened.append(FakeAsnReader())
        return opened[-1]

    monkeypatch.setattr(geoip2.database, "Reader", fake_reader)
    db = tmp_path / "GeoLite2-ASN.mmdb"
    db.write_bytes(b"\0")
    with pytest.raises(GeoDatabaseError, match="GeoLite2-ASN database"):
        GeoResolver.open(db)
    assert opened[0].closed


def test_city_database_is_accepted_on_open(tmp_path, monkeypatch):
    class CityReader(FakeAsnReader):
        database_type = "GeoLite2-City"

    monkeypatch.setattr(geoip2.database, "Reader", CityReader)
    db = tmp_path / "GeoLite2-City.mmdb"
    db.write_bytes(b"\0")
    with GeoResolver.open(db) as resolver:
        assert isinstance(resolver._reader, CityReader)


def test_refused_city_lookup_is_a_database_error():
    with pytest.raises(GeoDatabaseError, match="cannot answer city lookups"):
        GeoResolver(FakeAsnReader()).resolve("8.8.8.8")
