"""
Forwards committed ``TripEvent``s to a Redis pub/sub channel.

Subscribed to the in-process ``EventBus``; publication happens after the
transition commits, so a Redis outage never blocks or undoes a transition.
"""

from __future__ import annotations

import json
import logging

from ridecore.domain.events import EventBus, TripEvent

logger = logging.getLogger(__name__)


class RedisEventPublisher:
    def __init__(self, redis, channel: str):
        self.redis = redis
        self.channel = channel

    def attach(self, bus: EventBus) -> None:
        bus.subscribe(self.publish)

    def detach(self, bus: EventBus) -> None:
        bus.unsubscribe(self.publish)

    async def publish(self, event: TripEvent) -> None:
        message = json.dumps(event.to_dict(), default=str)
        receivers = await self.redis.publish(self.channel, message)
        logger.debug(
            "Published %s for trip %s to %s (%s receivers)",
            event.kind, event.trip_id, self.channel, receivers,
        )
