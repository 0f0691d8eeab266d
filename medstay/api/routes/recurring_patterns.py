"""
Recurring Patterns API
"""
from fastapi import APIRouter, Depends, HTTPException, Query, status
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List
import logging

from ...database import get_session
from ...errors import BookingEngineError
from ...schemas import PatternCreate, PatternResponse, PatternUpdate
from ...services.recurring import RecurringPatternService
from ..deps import http_error

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/api", tags=["Recurring Patterns"])


@router.get("/properties/{property_id}/recurring-patterns", response_model=List[PatternResponse])
async def list_patterns(property_id: str, session: AsyncSession = Depends(get_session)):
    try:
        patterns = await RecurringPatternService(session).list_patterns(property_id)
        return [PatternResponse.model_validate(p) for p in patterns]
    except Exception as e:
        logger.error(f"Error listing patterns for property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to list recurring patterns"
        )


@router.post(
    "/properties/{property_id}/recurring-patterns",
    response_model=PatternResponse,
    status_code=status.HTTP_201_CREATED
)
async def create_pattern(
    property_id: str,
    pattern: PatternCreate,
    session: AsyncSession = Depends(get_session)
):
    """
    Create a recurring pattern and write its overrides to the calendar.

    - **days_of_week**: 0 (Sunday) to 6 (Saturday)
    - **start_date** / **end_date**: inclusive range the pattern covers
    """
    try:
        created = await RecurringPatternService(session).create_pattern(property_id, **pattern.model_dump())
        return PatternResponse.model_validate(created)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error creating pattern for property {property_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to create recurring pattern"
        )


@router.patch("/properties/{property_id}/recurring-patterns/{pattern_id}", response_model=PatternResponse)
async def update_pattern(
    property_id: str,
    pattern_id: str,
    changes: PatternUpdate,
    session: AsyncSession = Depends(get_session)
):
    """
    Edit a pattern and re-apply it.

    Overrides on dates the pattern no longer covers are kept unless
    **clear_stale** is true.
    """
    try:
        values = changes.model_dump(exclude_unset=True, exclude={"clear_stale"})
        updated = await RecurringPatternService(session).update_pattern(
            pattern_id, values, property_id=property_id, clear_stale=changes.clear_stale
        )
        return PatternResponse.model_validate(updated)

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error updating pattern {pattern_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to update recurring pattern"
        )


@router.delete("/properties/{property_id}/recurring-patterns/{pattern_id}")
async def delete_pattern(
    property_id: str,
    pattern_id: str,
    clear_generated: bool = Query(False, description="Also remove the overrides this pattern wrote"),
    session: AsyncSession = Depends(get_session)
):
    try:
        cleared = await RecurringPatternService(session).delete_pattern(
            pattern_id, property_id=property_id, clear_generated=clear_generated
        )
        return {"pattern_id": pattern_id, "deleted": True, "cleared_overrides": cleared}

    except BookingEngineError as e:
        raise http_error(e)
    except Exception as e:
        logger.error(f"Error deleting pattern {pattern_id}: {e}")
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail="Failed to delete recurring pattern"
        )
