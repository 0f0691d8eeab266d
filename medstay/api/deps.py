"""
Shared dependencies and error translation for the API routers.
"""
from fastapi import Depends, HTTPException
from sqlalchemy.ext.asyncio import AsyncSession
import logging

from ..database import get_session
from ..errors import BookingEngineError
from ..services.booking import BookingEngine

logger = logging.getLogger(__name__)


def http_error(error: BookingEngineError) -> HTTPException:
    """Map a domain error onto the HTTP status and ``{"error", "message"}`` detail it carries."""
    if error.status_code >= 500:
        logger.error(f"{error.code}: {error.message}")
    else:
        logger.warning(f"{error.code}: {error.message}")
    return HTTPException(status_code=error.status_code, detail=error.to_dict())


async def get_engine(session: AsyncSession = Depends(get_session)) -> BookingEngine:
    return BookingEngine(session)
