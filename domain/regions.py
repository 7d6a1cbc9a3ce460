"""
Domain: administrative regions (Dutch provinces).

Region membership for a `regions` territory is resolved by assigning a lead to
the province whose centroid is nearest to the lead's coordinates. Centroids are
approximate; borders are not modelled.
"""

from __future__ import annotations

from typing import Dict, Optional

from .geo import Coordinates, haversine_km

PROVINCE_CENTROIDS: Dict[str, Coordinates] = {
    "Noord-Holland": Coordinates(52.5200, 4.7885),
    "Zuid-Holland": Coordinates(51.9244, 4.4777),
    "Utrecht": Coordinates(52.0907, 5.1214),
    "Noord-Brabant": Coordinates(51.4827, 5.2322),
    "Gelderland": Coordinates(52.0452, 5.8722),
    "Overijssel": Coordinates(52.4388, 6.5016),
    "Flevoland": Coordinates(52.5277, 5.5950),
    "Friesland": Coordinates(53.1642, 5.7818),
    "Groningen": Coordinates(53.2194, 6.5665),
    "Drenthe": Coordinates(52.9476, 6.6231),
    "Zeeland": Coordinates(51.4940, 3.8497),
    "Limburg": Coordinates(50.8476, 5.7070),
}


def normalize_region(name: str) -> str:
    """Comparison key for region names ("noord holland" == "Noord-Holland")."""

    return "".join(ch for ch in name.casefold() if ch.isalnum())


def resolve_region(coordinates: Optional[Coordinates]) -> Optional[str]:
    """Return the province nearest to `coordinates`, or None when unknown."""

    if coordinates is None:
        return None
    return min(PROVINCE_CENTROIDS, key=lambda name: haversine_km(coordinates, PROVINCE_CENTROIDS[name]))


__all__ = ["PROVINCE_CENTROIDS", "normalize_region", "resolve_region"]
