"""
Server-side price computation.

Totals are always rebuilt from the stored base price and the add-on
selection frozen on the booking, never copied from a request body.
All amounts are integer minor units except the transport tiers, which
are published in whole currency units.
"""

import math
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from typing import Any, Iterable, Mapping, Optional, Sequence

from ..core.exceptions import NotFoundError, ValidationError

MINOR_UNITS_PER_UNIT = 100
EARTH_RADIUS_KM = 6371.0


@dataclass(frozen=True)
class FrozenAddon:
    """An add-on line on a booking with the unit price captured at selection."""

    addon_id: str
    quantity: int
    unit_price: int

    @property
    def line_total(self) -> int:
        return self.quantity * self.unit_price

    def to_record(self) -> dict[str, Any]:
        return {"addon_id": self.addon_id, "quantity": self.quantity, "unit_price": self.unit_price}

    @classmethod
    def from_record(cls, record: Mapping[str, Any]) -> "FrozenAddon":
        return cls(
            addon_id=str(record["addon_id"]),
            quantity=int(record["quantity"]),
            unit_price=int(record["unit_price"]),
        )


@dataclass(frozen=True)
class AddonRequest:
    """A requested add-on line, before its price is frozen."""

    addon_id: str
    quantity: int


@dataclass(frozen=True)
class CatalogPrice:
    """The slice of a catalog add-on that pricing consumes."""

    addon_id: str
    price: int
    is_active: bool = True


def addon_total(selected: Iterable[FrozenAddon]) -> int:
    """Sum of quantity x frozen unit price."""
    return sum(line.line_total for line in selected)


def compute_total(base_price: int, selected: Iterable[FrozenAddon]) -> int:
    """Authoritative booking total: stored base price plus the frozen add-ons."""
    return base_price + addon_total(selected)


def load_selection(records: Optional[Sequence[Mapping[str, Any]]]) -> list[FrozenAddon]:
    """Rebuild the frozen selection persisted on a booking."""
    return [FrozenAddon.from_record(record) for record in records or []]


def dump_selection(selected: Iterable[FrozenAddon]) -> list[dict[str, Any]]:
    return [line.to_record() for line in selected]


def freeze_selection(
    requested: Sequence[AddonRequest],
    catalog: Mapping[str, CatalogPrice],
    existing: Sequence[FrozenAddon] = (),
) -> list[FrozenAddon]:
    """
    Turn a requested add-on selection into frozen booking lines.

    Lines with quantity 0 are dropped. An add-on already on the booking
    keeps the unit price it was frozen at; a newly selected one copies the
    current catalog price and must be active.

    Raises:
        ValidationError: On a negative quantity or a repeated add-on id
        NotFoundError: If a new add-on is unknown or inactive
    """
    errors = {}
    seen = set()
    for line in requested:
        if line.quantity < 0:
            errors[line.addon_id] = "quantity must not be negative"
        if line.addon_id in seen:
            errors[line.addon_id] = "add-on selected more than once"
        seen.add(line.addon_id)

    if errors:
        raise ValidationError(detail="Invalid add-on selection", errors=errors)

    frozen_prices = {line.addon_id: line.unit_price for line in existing}
    selection = []
    for line in requested:
        if line.quantity == 0:
            continue

        if line.addon_id in frozen_prices:
            unit_price = frozen_prices[line.addon_id]
        else:
            entry = catalog.get(line.addon_id)
            if entry is None or not entry.is_active:
                raise NotFoundError(resource_type="addon", resource_id=line.addon_id)
            unit_price = entry.price

        selection.append(FrozenAddon(addon_id=line.addon_id, quantity=line.quantity, unit_price=unit_price))

    return selection


def rebase_for_total(total_price: int, selected: Iterable[FrozenAddon]) -> int:
    """
    Base price that makes ``total_price`` hold for the given selection.

    Raises:
        ValidationError: If the total is below the add-on total
    """
    base_price = total_price - addon_total(selected)
    if base_price < 0:
        raise ValidationError(
            detail="Total price cannot be lower than the selected add-ons",
            errors={"total_price": f"must be at least {total_price - base_price}"},
        )
    return base_price


# Transport route quotes

@dataclass(frozen=True)
class Destination:
    code: str
    name: str
    lat: float
    lon: float


@dataclass(frozen=True)
class PricingTier:
    max_km: float
    base_price: Decimal
    per_km: Decimal


DESTINATION_COORDS: dict[str, Destination] = {
    d.code: d
    for d in (
        Destination("GUA", "Guatemala City", 14.5833, -90.5275),
        Destination("ANTIGUA", "Antigua Guatemala", 14.5586, -90.7339),
        Destination("ATITLAN", "Lake Atitlan", 14.6906, -91.2025),
        Destination("TIKAL", "Tikal", 17.2221, -89.6236),
        Destination("FRS", "Flores", 16.9183, -89.8942),
        Destination("SEMUC", "Semuc Champey", 15.4839, -90.2311),
        Destination("MONTERRICO", "Monterrico Beach", 13.9333, -90.8333),
    )
}

PRICING_TIERS: tuple[PricingTier, ...] = (
    PricingTier(max_km=50, base_price=Decimal("300"), per_km=Decimal("5")),
    PricingTier(max_km=150, base_price=Decimal("500"), per_km=Decimal("4")),
    PricingTier(max_km=300, base_price=Decimal("800"), per_km=Decimal("3.5")),
    PricingTier(max_km=math.inf, base_price=Decimal("1200"), per_km=Decimal("3")),
)

ROUND_TRIP_FACTOR = Decimal("1.8")
EXTRA_PASSENGER_RATE = Decimal("0.2")


@dataclass(frozen=True)
class TransportQuote:
    """Quoted price of a transport flight, in whole currency units."""

    origin: Destination
    destination: Destination
    distance_km: float
    passengers: int
    round_trip: bool
    tier: PricingTier
    base_price: int
    total_price: int

    @property
    def total_price_minor(self) -> int:
        return self.total_price * MINOR_UNITS_PER_UNIT

    @property
    def price_per_passenger(self) -> int:
        return _round_units(Decimal(self.total_price) / self.passengers)


def _round_units(value: Decimal) -> int:
    return int(value.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


def haversine_km(a: Destination, b: Destination) -> float:
    d_lat = math.radians(b.lat - a.lat)
    d_lon = math.radians(b.lon - a.lon)
    h = (
        math.sin(d_lat / 2) ** 2
        + math.cos(math.radians(a.lat)) * math.cos(math.radians(b.lat)) * math.sin(d_lon / 2) ** 2
    )
    return EARTH_RADIUS_KM * 2 * math.atan2(math.sqrt(h), math.sqrt(1 - h))


def tier_for_distance(distance_km: float) -> PricingTier:
    for tier in PRICING_TIERS:
        if distance_km <= tier.max_km:
            return tier
    return PRICING_TIERS[-1]


def is_known_route(from_code: Optional[str], to_code: Optional[str]) -> bool:
    return from_code in DESTINATION_COORDS and to_code in DESTINATION_COORDS


def quote_transport(from_code: str, to_code: str, passengers: int = 1, round_trip: bool = False) -> TransportQuote:
    """
    Price a transport flight between two known destination codes.

    Raises:
        ValidationError: If a code is unknown or the passenger count is not positive
    """
    unknown = [code for code in (from_code, to_code) if code not in DESTINATION_COORDS]
    if unknown:
        raise ValidationError(
            detail="Invalid destination code",
            errors={"codes": unknown},
        )
    if passengers < 1:
        raise ValidationError(detail="Passenger count must be at least 1")

    origin = DESTINATION_COORDS[from_code]
    destination = DESTINATION_COORDS[to_code]
    distance = haversine_km(origin, destination)
    tier = tier_for_distance(distance)

    base = tier.base_price + Decimal(str(distance)) * tier.per_km
    if round_trip:
        base = base * ROUND_TRIP_FACTOR

    passenger_modifier = 1 + (passengers - 1) * EXTRA_PASSENGER_RATE
    total = _round_units(base * passenger_modifier)

    return TransportQuote(
        origin=origin,
        destination=destination,
        distance_km=distance,
        passengers=passengers,
        round_trip=round_trip,
        tier=tier,
        base_price=_round_units(base),
        total_price=total,
    )
