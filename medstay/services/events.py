"""
Booking lifecycle events for the notification subsystem.

Publishing is fire-and-forget: delivery runs in background tasks and any
subscriber or Redis failure is logged, never raised into the booking flow.
"""

import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Dict, List, Optional, Set

from ..config import settings
from ..redis_service import RedisService, redis_service

logger = logging.getLogger(__name__)

BOOKING_CREATED = "booking.created"
BOOKING_STATUS_CHANGED = "booking.status_changed"
BOOKING_CONFIRMED = "booking.confirmed"
BOOKING_CANCELLED = "booking.cancelled"

Subscriber = Callable[[Dict[str, Any]], Awaitable[None]]


def booking_payload(booking) -> Dict[str, Any]:
    return {
        "booking_id": booking.id,
        "property_id": booking.property_id,
        "guest_id": booking.guest_id,
        "check_in": booking.check_in.isoformat(),
        "check_out": booking.check_out.isoformat(),
        "guest_count": booking.guest_count,
        "total_amount": booking.total_amount,
        "status": booking.status.value,
        "guest_email": booking.guest_email,
    }


class BookingEventPublisher:
    def __init__(self, redis: Optional[RedisService] = None, channel: Optional[str] = None):
        self.redis = redis or redis_service
        self.channel = channel or settings.events_channel
        self._subscribers: List[Subscriber] = []
        self._pending: Set[asyncio.Task] = set()

    def subscribe(self, callback: Subscriber) -> None:
        self._subscribers.append(callback)

    def unsubscribe(self, callback: Subscriber) -> None:
        if callback in self._subscribers:
            self._subscribers.remove(callback)

    def publish(self, event: str, booking, **extra: Any) -> None:
        """Schedule delivery of ``event`` for ``booking`` and return immediately."""
        message = {
            "event": event,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "booking": booking_payload(booking),
        }
        message.update(extra)

        logger.info(f"📣 {event} for booking {booking.id}")
        task = asyncio.create_task(self._deliver(message))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

    async def _deliver(self, message: Dict[str, Any]) -> None:
        for subscriber in list(self._subscribers):
            try:
                await subscriber(message)
            except Exception as e:
                logger.error(f"Event subscriber failed for {message['event']}: {e}")

        if self.redis.connected:
            try:
                await self.redis.publish_json(self.channel, message)
            except Exception as e:
                logger.error(f"Failed to publish {message['event']} to Redis: {e}")

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)


# Global publisher instance
booking_events = BookingEventPublisher()
