"""Pricing router for public transport quotes."""

import logging
import math

from fastapi import APIRouter
from fastapi.responses import JSONResponse

from ..schemas.common import Money
from ..schemas.pricing import (
    DestinationInfo,
    DestinationsResponse,
    PricingTierInfo,
    QuoteBreakdown,
    QuoteRequest,
    QuoteResponse,
)
from ..services.pricing import DESTINATION_COORDS, MINOR_UNITS_PER_UNIT, PRICING_TIERS, quote_transport

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/v1/pricing", tags=["pricing"])


@router.post("/quote", response_model=QuoteResponse)
async def quote(request: QuoteRequest) -> JSONResponse:
    """
    Quote a transport flight between two destination codes.

    Prices scale with distance tier, passenger count and round trip.
    """
    result = quote_transport(
        request.from_code,
        request.to_code,
        passengers=request.passengers,
        round_trip=request.round_trip,
    )

    response_data = QuoteResponse(
        from_name=result.origin.name,
        to_name=result.destination.name,
        distance_km=round(result.distance_km),
        passengers=result.passengers,
        round_trip=result.round_trip,
        base_price=Money.of(result.base_price * MINOR_UNITS_PER_UNIT),
        total_price=Money.of(result.total_price_minor),
        price_per_passenger=Money.of(result.price_per_passenger * MINOR_UNITS_PER_UNIT),
        breakdown=QuoteBreakdown(
            tier_base_price=int(result.tier.base_price),
            per_km_rate=float(result.tier.per_km),
            distance_cost=round(result.distance_km * float(result.tier.per_km)),
            passenger_modifier=f"+{(result.passengers - 1) * 20}%" if result.passengers > 1 else None,
            round_trip_discount="-10%" if result.round_trip else None,
        ),
    )

    logger.debug(
        "Transport quote computed",
        extra={
            "from_code": request.from_code,
            "to_code": request.to_code,
            "distance_km": response_data.distance_km,
            "total_price": result.total_price,
        }
    )

    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))


@router.post("/destinations", response_model=DestinationsResponse)
async def destinations() -> JSONResponse:
    """Destination codes that can be quoted, with the distance tiers."""
    response_data = DestinationsResponse(
        destinations=[
            DestinationInfo(code=d.code, name=d.name, lat=d.lat, lon=d.lon)
            for d in DESTINATION_COORDS.values()
        ],
        pricing_tiers=[
            PricingTierInfo(
                max_km=None if math.isinf(tier.max_km) else tier.max_km,
                base_price=int(tier.base_price),
                per_km=float(tier.per_km),
            )
            for tier in PRICING_TIERS
        ],
    )
    return JSONResponse(status_code=200, content=response_data.model_dump(mode="json"))
