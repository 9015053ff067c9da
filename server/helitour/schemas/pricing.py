"""Transport quote Pydantic schemas."""

from pydantic import BaseModel, Field

from .common import Money


class QuoteRequest(BaseModel):
    """Request schema for a transport price quote."""

    from_code: str = Field(..., min_length=1, max_length=64, description="Origin destination code")
    to_code: str = Field(..., min_length=1, max_length=64, description="Arrival destination code")
    passengers: int = Field(1, ge=1, le=20, description="Number of passengers")
    round_trip: bool = Field(False, description="Price a return flight as well")


class QuoteBreakdown(BaseModel):
    tier_base_price: int = Field(..., description="Tier base price in whole units")
    per_km_rate: float = Field(..., description="Tier rate per km in whole units")
    distance_cost: int = Field(..., description="Distance component in whole units")
    passenger_modifier: str | None = Field(None, description="Surcharge for extra passengers")
    round_trip_discount: str | None = Field(None, description="Discount applied to round trips")


class QuoteResponse(BaseModel):
    """Response schema for a transport price quote."""

    from_name: str
    to_name: str
    distance_km: int
    passengers: int
    round_trip: bool
    base_price: Money
    total_price: Money
    price_per_passenger: Money
    breakdown: QuoteBreakdown


class DestinationInfo(BaseModel):
    code: str
    name: str
    lat: float
    lon: float


class PricingTierInfo(BaseModel):
    max_km: float | None = Field(None, description="Upper bound of the tier; null means unlimited")
    base_price: int
    per_km: float


class DestinationsResponse(BaseModel):
    """Response schema listing quotable destinations and the price tiers."""

    destinations: list[DestinationInfo]
    pricing_tiers: list[PricingTierInfo]
