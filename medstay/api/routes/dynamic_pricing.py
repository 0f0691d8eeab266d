"""
Dynamic Pricing API
"""
from fastapi import APIRouter, Depends, HTTPException, status
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ...database import get_session
from ...errors import BookingEngineError
from ...schemas import DynamicPricingRequest, DynamicPricingResponse, PriceSuggestion
from ...services.dynamic_pricing import DynamicPricingGenerator
from ..deps import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Dynamic Pricing"])


@router.post("/properties/{property_id}/dynamic-pricing", response_model=DynamicPricingResponse)
async def generate_dynamic_pricing(
    property_id: str,
    pricing_request: DynamicPricingRequest,
    session: AsyncSession = Depends(get_session)
):
    """
    Suggest nightly prices from season, weekday and demand.

    With **apply** (the default) the prices are written as calendar overrides;
    availability flags and notes already on those dates are kept.
    """
    try:
        generator = DynamicPricingGenerator(session)
        args = (
            property_id,
            pricing_request.start_date,
            pricing_request.end_date,
            pricing_request.demand_factor,
            pricing_request.seasonal_factor,
        )
        if pricing_request.apply:
            prices = await generator.apply(*args)
        else:
            prices = await generator.generate(*args)

        return DynamicPricingResponse(
            property_id=property_id,
            applied=pricing_request.apply,
            prices=[PriceSuggestion.model_validate(price) for price in prices]
        )

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error generating dynamic pricing for property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to generate dynamic pricing"
        )
