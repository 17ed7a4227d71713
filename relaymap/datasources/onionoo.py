# relaymap/datasources/onionoo.py
"""
Onionoo "details" client.

Fetches every running relay, following limit/offset pagination, and turns the
raw JSON objects into RelayRecord instances. Malformed records are dropped
with a warning; duplicate fingerprints keep the first occurrence.
"""
from __future__ import annotations

import ipaddress
import re
import time
from typing import Any, Callable, Optional

import requests

from relaymap.config import DETAILS_FIELDS, DETAILS_SEARCH, MAX_PAGES, USER_AGENT, Settings
from relaymap.datasources.retry import RequestMachine, RetryPolicy, TransientError
from relaymap.errors import FetchError, ParseError
from relaymap.models import RelayRecord
from relaymap.utils.logging import get_logger

log = get_logger(__name__)

_FINGERPRINT_RE = re.compile(r"^[0-9A-Fa-f]{40}$")


def parse_or_address(addr: str) -> tuple[str, int]:
    """
    Parse an Onionoo OR address into (ip, port).

    Onionoo uses two formats:
      IPv4 - "1.2.3.4:9001"
      IPv6 - "[2001:db8::1]:443"
    """
    if not isinstance(addr, str):
        raise ParseError(f"OR address is not a string: {addr!r}")

    if addr.startswith("["):
        ip_str, sep, rest = addr[1:].partition("]")
        if not sep or not rest.startswith(":"):
            raise ParseError(f"bad IPv6 OR address: {addr!r}")
        port_str = rest[1:]
    else:
        ip_str, sep, port_str = addr.rpartition(":")
        if not sep or ":" in ip_str:
            raise ParseError(f"bad IPv4 OR address: {addr!r}")

    try:
        ip = ipaddress.ip_address(ip_str)
    except ValueError:
        raise ParseError(f"bad IP in OR address: {addr!r}") from None

    if not (port_str.isascii() and port_str.isdigit()):
        raise ParseError(f"bad port in OR address: {addr!r}")
    port = int(port_str)
    if port > 65535:
        raise ParseError(f"port out of range in OR address: {addr!r}")

    return str(ip), port


def parse_relay(obj: Any) -> RelayRecord:
    """Build a RelayRecord from one element of the "relays" array."""
    if not isinstance(obj, dict):
        raise ParseError(f"relay entry is not an object: {type(obj).__name__}")

    fingerprint = obj.get("fingerprint")
    if not isinstance(fingerprint, str) or not _FINGERPRINT_RE.match(fingerprint):
        raise ParseError(f"missing or invalid fingerprint: {fingerprint!r}")
    fingerprint = fingerprint.upper()

    addresses = obj.get("or_addresses") or []
    if not isinstance(addresses, list) or not addresses:
        raise ParseError(f"{fingerprint}: no OR address")
    # The first OR address is the relay's primary one.
    try:
        ip, port = parse_or_address(addresses[0])
    except ParseError as e:
        raise ParseError(f"{fingerprint}: {e}") from None

    flags = obj.get("flags") or []
    if not isinstance(flags, list) or not all(isinstance(f, str) for f in flags):
        raise ParseError(f"{fingerprint}: flags is not a list of strings")

    running = obj.get("running", True)
    if not isinstance(running, bool):
        raise ParseError(f"{fingerprint}: running is not a boolean: {running!r}")

    country = obj.get("country")
    return RelayRecord(
        fingerprint=fingerprint,
        ip=ip,
        port=port,
        flags=frozenset(flags),
        running=running,
        nickname=obj.get("nickname") if isinstance(obj.get("nickname"), str) else None,
        country=country.upper() if isinstance(country, str) and country else None,
    )


def parse_relays(raw_relays: list) -> list[RelayRecord]:
    """
    Parse a list of raw relay objects. Drops malformed and non-running relays,
    deduplicates by fingerprint and returns the result sorted by fingerprint.
    """
    seen: dict[str, RelayRecord] = {}
    dropped = skipped = dupes = 0

    for raw in raw_relays:
        try:
            record = parse_relay(raw)
        except ParseError as e:
            dropped += 1
            log.warning("Dropping malformed relay record: %s", e)
            continue

        if not record.running:
            skipped += 1
            continue
        if record.fingerprint in seen:
            dupes += 1
            log.warning("Duplicate fingerprint %s; keeping first occurrence", record.fingerprint)
            continue
        seen[record.fingerprint] = record

    if dropped or skipped or dupes:
        log.info(
            "Parsed %d relays (%d malformed, %d not running, %d duplicates)",
            len(seen), dropped, skipped, dupes,
        )
    return [seen[fp] for fp in sorted(seen)]


def _raw_fingerprint(obj: Any) -> Optional[str]:
    if isinstance(obj, dict) and isinstance(obj.get("fingerprint"), str):
        return obj["fingerprint"].upper()
    return None


def _retry_after(response: requests.Response) -> Optional[float]:
    value = response.headers.get("Retry-After")
    if value is None:
        return None
    try:
        return float(value)
    except ValueError:
        # HTTP-date form; fall back to the regular backoff
        return None


class OnionooClient:
    """
    Client for the Onionoo "details" document.

    page_size=0 fetches everything in one request; otherwise pages of
    `page_size` relays are requested with limit/offset until exhausted.
    """

    def __init__(
            self,
            base_url: str = "https://onionoo.torproject.org",
            page_size: int = 0,
            timeout: float = 60.0,
            policy: Optional[RetryPolicy] = None,
            session: Optional[requests.Session] = None,
            sleep: Callable[[float], None] = time.sleep,
            max_pages: int = MAX_PAGES,
    ):
        self.base_url = base_url.rstrip("/")
        self.page_size = page_size
        self.max_pages = max_pages
        self.timeout = timeout
        self.policy = policy or RetryPolicy()
        self.sleep = sleep
        self.session = session or requests.Session()
        self.session.headers.update({"User-Agent": USER_AGENT})

    @classmethod
    def from_settings(cls, settings: Settings, **kwargs) -> "OnionooClient":
        return cls(
            base_url=settings.onionoo_url,
            page_size=settings.page_size,
            timeout=settings.timeout,
            policy=RetryPolicy(
                max_attempts=settings.max_attempts,
                backoff_base=settings.backoff_base,
                max_backoff=settings.max_backoff,
            ),
            **kwargs,
        )

    @property
    def details_url(self) -> str:
        return f"{self.base_url}/details"

    def _params(self, offset: int) -> dict[str, Any]:
        params: dict[str, Any] = {"search": DETAILS_SEARCH, "fields": DETAILS_FIELDS}
        if self.page_size:
            params["limit"] = self.page_size
            params["offset"] = offset
        return params

    def _request_page(self, offset: int) -> dict:
        """One HTTP round-trip. Raises TransientError or FetchError."""
        try:
            response = self.session.get(
                self.details_url, params=self._params(offset), timeout=self.timeout
            )
        except requests.Timeout as e:
            raise TransientError(f"timeout: {e}") from e
        except (requests.ConnectionError, requests.exceptions.ChunkedEncodingError) as e:
            raise TransientError(f"connection error: {e}") from e
        except requests.RequestException as e:
            raise FetchError(f"request to {self.details_url} failed: {e}") from e

        status = response.status_code
        if status == 429:
            raise TransientError("rate limited (HTTP 429)", retry_after=_retry_after(response))
        if status >= 500:
            raise TransientError(f"server error (HTTP {status})")
        if status >= 400:
            raise FetchError(f"{self.details_url} returned HTTP {status}")

        try:
            doc = response.json()
        except ValueError as e:
            raise FetchError(f"malformed JSON from {self.details_url}: {e}") from e

        if not isinstance(doc, dict) or not isinstance(doc.get("relays"), list):
            raise FetchError(f"response from {self.details_url} has no 'relays' list")
        return doc

    def fetch_page(self, offset: int = 0) -> dict:
        machine = RequestMachine(
            self.policy, sleep=self.sleep, label=f"GET details offset={offset}"
        )
        return machine.run(lambda: self._request_page(offset))

    def fetch_raw_relays(self) -> list:
        """
        Fetch raw relay objects, following limit/offset when paging.

        Paging stops early when a page brings no fingerprint not already seen
        (a server that ignores offset), and more than `max_pages` requests is
        a FetchError.
        """
        relays: list = []
        seen: set[str] = set()
        offset = 0
        pages = 0
        while True:
            if pages >= self.max_pages:
                raise FetchError(f"still paging after {pages} requests at offset {offset}")
            doc = self.fetch_page(offset)
            page = doc["relays"]
            pages += 1
            log.debug("Page %d at offset %d: %d relays", pages, offset, len(page))

            fresh = {_raw_fingerprint(obj) for obj in page} - seen - {None}
            if pages > 1 and page and not fresh:
                log.warning("Page at offset %d repeats earlier relays; stopping pagination", offset)
                break
            seen |= fresh
            relays.extend(page)

            if not self.page_size or len(page) < self.page_size:
                break
            if doc.get("relays_truncated") == 0:
                break
            offset += len(page)

        log.info("Fetched %d relay entries in %d page(s)", len(relays), pages)
        return relays

    def fetch_running_relays(self) -> list[RelayRecord]:
        log.info("Fetching running relays from %s", self.details_url)
        records = parse_relays(self.fetch_raw_relays())
        log.info("Got %d running relays", len(records))
        return records


def fetch_running_relays(settings: Optional[Settings] = None, **kwargs) -> list[RelayRecord]:
    """Fetch every running relay using the given (or default) settings."""
    client = OnionooClient.from_settings(settings or Settings(), **kwargs)
    return client.fetch_running_relays()
