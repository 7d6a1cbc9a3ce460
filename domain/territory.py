"""
Domain: batch territory descriptors.

A customer batch restricts the leads it accepts geographically in one of three
ways. The stored form is a string discriminator (`territory_type`) with
type-specific optional columns; in the domain it is a closed union:

    Territory = FullCountry | Radius | Regions

The eligibility evaluator branches on the concrete class, so adding a new kind
means adding a class here and a branch there.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, FrozenSet, Mapping, Optional, Union

from .geo import Coordinates


class TerritoryType(str, Enum):
    FULL_COUNTRY = "full_country"
    RADIUS = "radius"
    REGIONS = "regions"


@dataclass(frozen=True, slots=True)
class FullCountry:
    """No geographic restriction."""

    @property
    def territory_type(self) -> TerritoryType:
        return TerritoryType.FULL_COUNTRY


@dataclass(frozen=True, slots=True)
class Radius:
    """
    Leads within `radius_km` of `center`.

    `center` may be None when the batch was stored with a center postcode that
    could not be geocoded; such a batch never matches.
    """

    radius_km: float
    center: Optional[Coordinates] = None
    center_postcode: Optional[str] = None

    def __post_init__(self) -> None:
        if self.radius_km <= 0:
            raise ValueError(f"radius_km must be positive, got {self.radius_km}")

    @property
    def territory_type(self) -> TerritoryType:
        return TerritoryType.RADIUS


@dataclass(frozen=True, slots=True)
class Regions:
    """Leads located in one of the named administrative regions."""

    regions: FrozenSet[str] = frozenset()

    @property
    def territory_type(self) -> TerritoryType:
        return TerritoryType.REGIONS


Territory = Union[FullCountry, Radius, Regions]


def territory_from_row(row: Mapping[str, Any]) -> Territory:
    """
    Build a Territory from a `customer_batches` row.

    Raises:
        ValueError: unknown discriminator or a radius batch without radius_km.
    """

    raw_type = row.get("territory_type") or TerritoryType.FULL_COUNTRY.value
    try:
        territory_type = TerritoryType(str(raw_type))
    except ValueError:
        raise ValueError(f"Unknown territory_type: {raw_type!r}") from None

    if territory_type is TerritoryType.FULL_COUNTRY:
        return FullCountry()

    if territory_type is TerritoryType.RADIUS:
        radius_km = row.get("radius_km")
        if radius_km is None:
            raise ValueError("radius territory requires radius_km")
        lat, lng = row.get("center_lat"), row.get("center_lng")
        center = Coordinates(float(lat), float(lng)) if lat is not None and lng is not None else None
        return Radius(
            radius_km=float(radius_km),
            center=center,
            center_postcode=row.get("center_postcode") or None,
        )

    return Regions(regions=frozenset(str(r) for r in (row.get("allowed_regions") or [])))


def territory_to_row(territory: Territory) -> dict[str, Any]:
    """Inverse of `territory_from_row` (only the territory columns)."""

    row: dict[str, Any] = {
        "territory_type": territory.territory_type.value,
        "center_postcode": None,
        "center_lat": None,
        "center_lng": None,
        "radius_km": None,
        "allowed_regions": None,
    }
    if isinstance(territory, Radius):
        row["radius_km"] = territory.radius_km
        row["center_postcode"] = territory.center_postcode
        if territory.center is not None:
            row["center_lat"] = territory.center.lat
            row["center_lng"] = territory.center.lng
    elif isinstance(territory, Regions):
        row["allowed_regions"] = sorted(territory.regions)
    return row


def describe_territory(territory: Territory) -> str:
    if isinstance(territory, FullCountry):
        return "Nationwide"
    if isinstance(territory, Radius):
        where = territory.center_postcode or "center"
        return f"{territory.radius_km:g}km around {where}"
    if len(territory.regions) == 1:
        return next(iter(territory.regions))
    return f"{len(territory.regions)} regions"


__all__ = [
    "FullCountry",
    "Radius",
    "Regions",
    "Territory",
    "TerritoryType",
    "describe_territory",
    "territory_from_row",
    "territory_to_row",
]
