"""
MedStay booking engine API server.

Run with: uvicorn medstay.server:app
"""
from contextlib import asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI, APIRouter
from fastapi.middleware.cors import CORSMiddleware
import logging

from .config import settings
from .database import close_db, init_db, ping_db
from .redis_service import redis_service
from .services.events import booking_events
from .api.routes import availability, bookings, dynamic_pricing, recurring_patterns

# Configure logging
logging.basicConfig(
    level=getattr(logging, settings.log_level, logging.INFO),
    format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
)
logger = logging.getLogger(__name__)


# Startup and shutdown
@asynccontextmanager
async def lifespan(app: FastAPI):
    await init_db()
    if settings.redis_enabled:
        try:
            await redis_service.connect()
        except Exception as e:
            # Calendar cache and event fan-out degrade to no-ops without Redis
            logger.warning(f"⚠️ Continuing without Redis: {e}")
    logger.info("🚀 MedStay booking engine started")

    yield

    await booking_events.drain()
    await redis_service.disconnect()
    await close_db()
    logger.info("Database and Redis disconnected")


app = FastAPI(title="MedStay Booking Engine", version="1.0.0", lifespan=lifespan)
api_router = APIRouter(prefix="/api")

# CORS Configuration
app.add_middleware(
    CORSMiddleware,
    allow_credentials=True,
    allow_origins=settings.cors_origins,
    allow_methods=["*"],
    allow_headers=["*"],
)


@api_router.get("/health")
async def health_check():
    """Health check endpoint"""
    try:
        await ping_db()
        db_status = "healthy"
    except Exception as e:
        db_status = f"error: {str(e)}"

    if not settings.redis_enabled:
        redis_status = "disabled"
    else:
        try:
            redis_status = "healthy" if await redis_service.ping() else "disconnected"
        except Exception as e:
            redis_status = f"error: {str(e)}"

    return {
        "status": "healthy" if db_status == "healthy" and redis_status in ("healthy", "disabled") else "unhealthy",
        "database": db_status,
        "redis": redis_status,
        "timestamp": datetime.now(timezone.utc).isoformat()
    }


app.include_router(api_router)
app.include_router(bookings.router)
app.include_router(availability.router)
app.include_router(recurring_patterns.router)
app.include_router(dynamic_pricing.router)
