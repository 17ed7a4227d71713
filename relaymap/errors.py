# relaymap/errors.py
from __future__ import annotations

from pathlib import Path
from typing import Optional, Union


class RelayMapError(Exception):
    """Base class for every error raised by relaymap."""


class FetchError(RelayMapError):
    """The directory could not be fetched (retries exhausted or a permanent failure)."""


class ParseError(RelayMapError):
    """A single relay record is malformed. Recovered by dropping the record."""


class GeoDatabaseError(RelayMapError):
    """The geolocation database is missing or unreadable."""


class WriteError(RelayMapError):
    """An output file could not be written."""

    def __init__(self, path: Union[str, Path], cause: Optional[BaseException] = None):
        self.path = Path(path)
        self.cause = cause
        msg = f"could not write {self.path}"
        if cause is not None:
            msg += f": {cause}"
        super().__init__(msg)


class BaseMapError(RelayMapError):
    """The base-map GeoJSON is missing or invalid. Fatal for the map path only."""
