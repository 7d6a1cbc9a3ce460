"""
Postcode geocoding.

Contract:
- `geocode(postcode)` never raises.
- Malformed input and unknown postcodes are NOT_FOUND.
- A timeout is NOT_FOUND: the pipeline proceeds without coordinates.
- Any other service failure (connection error, non-2xx, unreadable body) is
  FAILED, so callers can tell "retry later" from "no such postcode".
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Protocol

import httpx

from domain.geo import Coordinates, is_valid_postcode, normalize_postcode, postcode_prefix

logger = logging.getLogger(__name__)

_POINT_RE = re.compile(r"POINT\(\s*(-?\d+(?:\.\d+)?)\s+(-?\d+(?:\.\d+)?)\s*\)")


class GeocodeStatus(str, Enum):
    FOUND = "found"
    NOT_FOUND = "not_found"
    FAILED = "failed"


@dataclass(frozen=True, slots=True)
class GeocodeResult:
    status: GeocodeStatus
    coordinates: Optional[Coordinates] = None
    message: str = ""

    @classmethod
    def found(cls, coordinates: Coordinates) -> "GeocodeResult":
        return cls(GeocodeStatus.FOUND, coordinates)

    @classmethod
    def not_found(cls, message: str) -> "GeocodeResult":
        return cls(GeocodeStatus.NOT_FOUND, None, message)

    @classmethod
    def failed(cls, message: str) -> "GeocodeResult":
        return cls(GeocodeStatus.FAILED, None, message)


class Geocoder(Protocol):
    def geocode(self, postcode: str) -> GeocodeResult:
        ...


class PdokGeocoder:
    """
    Geocoder backed by the PDOK Locatieserver (Dutch national address service).

    Uses the free-search endpoint filtered to postcode documents and reads the
    WGS84 centroid (`centroide_ll`, "POINT(lng lat)") of the first hit.
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        client: Optional[httpx.Client] = None,
    ) -> None:
        self.base_url = base_url
        self.timeout = timeout
        self._client = client

    def _get_client(self) -> httpx.Client:
        if self._client is None:
            self._client = httpx.Client(timeout=httpx.Timeout(self.timeout, connect=min(self.timeout, 3.0)))
        return self._client

    def close(self) -> None:
        if self._client is not None:
            self._client.close()
            self._client = None

    def geocode(self, postcode: str) -> GeocodeResult:
        if not isinstance(postcode, str) or not is_valid_postcode(postcode):
            return GeocodeResult.not_found(f"Malformed postcode: {postcode!r}")

        cleaned = normalize_postcode(postcode)
        params = {"q": cleaned, "fq": "type:postcode", "rows": 1, "fl": "postcode,centroide_ll"}
        if len(cleaned) == 4:
            # A bare area code has no postcode document of its own; take any match inside it.
            params["fq"] = f"postcode:{cleaned}*"

        try:
            response = self._get_client().get(self.base_url, params=params)
            response.raise_for_status()
            payload = response.json()
        except httpx.TimeoutException:
            logger.warning("Geocoder timed out for postcode %s", cleaned)
            return GeocodeResult.not_found(f"Geocoder timed out for {cleaned}")
        except httpx.HTTPStatusError as e:
            logger.warning("Geocoder returned HTTP %s for postcode %s", e.response.status_code, cleaned)
            return GeocodeResult.failed(f"Geocoder returned HTTP {e.response.status_code}")
        except httpx.HTTPError as e:
            logger.warning("Geocoder request failed for postcode %s: %s", cleaned, e)
            return GeocodeResult.failed(f"Geocoder request failed: {e}")
        except ValueError as e:
            return GeocodeResult.failed(f"Geocoder returned an unreadable body: {e}")

        return self._parse(cleaned, payload)

    @staticmethod
    def _parse(postcode: str, payload: Any) -> GeocodeResult:
        try:
            docs = payload["response"]["docs"]
        except (KeyError, TypeError):
            return GeocodeResult.failed("Geocoder response has no 'response.docs'")

        if not isinstance(docs, list):
            return GeocodeResult.failed("Geocoder response 'docs' is not a list")
        if not docs:
            return GeocodeResult.not_found(f"No coordinates found for {postcode}")
        if not isinstance(docs[0], Mapping):
            return GeocodeResult.failed("Geocoder response document is not an object")

        match = _POINT_RE.search(str(docs[0].get("centroide_ll", "")))
        if match is None:
            return GeocodeResult.failed("Geocoder response has no parsable centroid")

        lng, lat = float(match.group(1)), float(match.group(2))
        try:
            return GeocodeResult.found(Coordinates(lat, lng))
        except ValueError as e:
            return GeocodeResult.failed(str(e))


# Area-code centroids for offline use (operator scripts, local development).
DEFAULT_POSTCODE_TABLE: Dict[str, Coordinates] = {
    # Zwolle
    "8011": Coordinates(52.5125, 6.0939),
    "8012": Coordinates(52.5100, 6.1000),
    "8013": Coordinates(52.5168, 6.0830),
    "8014": Coordinates(52.5168, 6.0830),
    # Amsterdam
    "1000": Coordinates(52.3676, 4.9041),
    "1011": Coordinates(52.3676, 4.9041),
    "1012": Coordinates(52.3676, 4.9041),
    "1013": Coordinates(52.3800, 4.9100),
    # Rotterdam
    "3000": Coordinates(51.9244, 4.4777),
    "3011": Coordinates(51.9225, 4.4792),
    "3012": Coordinates(51.9244, 4.4777),
    # Den Haag
    "2511": Coordinates(52.0705, 4.3007),
    # Utrecht
    "3511": Coordinates(52.0907, 5.1214),
    # Eindhoven
    "5611": Coordinates(51.4416, 5.4697),
    # Groningen
    "9711": Coordinates(53.2194, 6.5665),
}


class StaticPostcodeGeocoder:
    """
    Lookup-table geocoder: exact postcode first, then the 4-digit area code.

    Unknown postcodes are NOT_FOUND; there is no default location.
    """

    def __init__(self, table: Optional[Mapping[str, Coordinates]] = None) -> None:
        source = DEFAULT_POSTCODE_TABLE if table is None else table
        self._table = {normalize_postcode(k): v for k, v in source.items()}

    def geocode(self, postcode: str) -> GeocodeResult:
        if not isinstance(postcode, str) or not is_valid_postcode(postcode):
            return GeocodeResult.not_found(f"Malformed postcode: {postcode!r}")

        cleaned = normalize_postcode(postcode)
        coordinates = self._table.get(cleaned) or self._table.get(postcode_prefix(cleaned))
        if coordinates is None:
            return GeocodeResult.not_found(f"No coordinates found for {cleaned}")
        return GeocodeResult.found(coordinates)


__all__ = [
    "DEFAULT_POSTCODE_TABLE",
    "GeocodeResult",
    "GeocodeStatus",
    "Geocoder",
    "PdokGeocoder",
    "StaticPostcodeGeocoder",
]
