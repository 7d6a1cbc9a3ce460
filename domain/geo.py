"""
Domain: geographic primitives (pure).

- Coordinates value object with range validation.
- Great-circle distance (Haversine, spherical earth).
- Dutch postcode normalization helpers.
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass

EARTH_RADIUS_KM = 6371.0

# 1234AB, 1234 AB, or a bare 4-digit area code.
_POSTCODE_RE = re.compile(r"^\d{4}([A-Z]{2})?$")


@dataclass(frozen=True, slots=True)
class Coordinates:
    """A WGS84 latitude/longitude pair in decimal degrees."""

    lat: float
    lng: float

    def __post_init__(self) -> None:
        if not -90.0 <= self.lat <= 90.0:
            raise ValueError(f"lat must be within [-90, 90], got {self.lat}")
        if not -180.0 <= self.lng <= 180.0:
            raise ValueError(f"lng must be within [-180, 180], got {self.lng}")


def haversine_km(a: Coordinates, b: Coordinates) -> float:
    """Compute distance between two coordinates using the Haversine formula."""

    phi1, phi2 = math.radians(a.lat), math.radians(b.lat)
    d_phi = math.radians(b.lat - a.lat)
    d_lambda = math.radians(b.lng - a.lng)

    h = math.sin(d_phi / 2) ** 2 + math.cos(phi1) * math.cos(phi2) * math.sin(d_lambda / 2) ** 2
    c = 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))
    return EARTH_RADIUS_KM * c


def normalize_postcode(postcode: str) -> str:
    """Remove all whitespace and upper-case ("8011 aa" -> "8011AA")."""

    return re.sub(r"\s+", "", postcode).upper()


def is_valid_postcode(postcode: str) -> bool:
    return bool(_POSTCODE_RE.match(normalize_postcode(postcode)))


def postcode_prefix(postcode: str) -> str:
    """The 4-digit area code of a (valid) postcode."""

    return normalize_postcode(postcode)[:4]


__all__ = [
    "Coordinates",
    "EARTH_RADIUS_KM",
    "haversine_km",
    "is_valid_postcode",
    "normalize_postcode",
    "postcode_prefix",
]
