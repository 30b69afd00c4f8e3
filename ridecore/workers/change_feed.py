"""
Change-feed worker: external trip commands arriving over Redis pub/sub.

Messages are JSON objects such as::

    {"command": "cancel",   "trip_id": "...", "reason": "rider no-show"}
    {"command": "complete", "trip_id": "...", "drop_code": "4821"}
    {"command": "arrive",   "trip_id": "..."}

Each is dispatched through the trip state machine as the system actor, so
it races provider actions on equal terms: the first compare-and-swap wins
and the loser is logged, not retried.  Every (re)subscription is followed
by a full availability resync, since commands may have been missed while
disconnected.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional

import redis.asyncio as redis

from ridecore.domain.entities import Actor
from ridecore.domain.enums import AvailabilityStatus
from ridecore.domain.errors import Conflict, InvalidTransition, TripError
from ridecore.services.availability import AvailabilityReconciler
from ridecore.services.trip_state_machine import TripStateMachine

logger = logging.getLogger(__name__)


async def handle_message(
    machine: TripStateMachine,
    availability: AvailabilityReconciler,
    raw: Any,
) -> str:
    """Dispatch one change-feed message; returns a short outcome label."""
    try:
        data = json.loads(raw)
    except (TypeError, ValueError):
        logger.warning("Invalid JSON on change feed: %r", raw)
        return "invalid"
    if not isinstance(data, dict):
        logger.warning("Change-feed message is not an object: %r", data)
        return "invalid"

    command = data.get("command")
    trip_id = data.get("trip_id")
    system = Actor.system()

    try:
        if command == "cancel" and trip_id:
            await machine.cancel(trip_id, data.get("reason") or "", system)
        elif command == "complete" and trip_id:
            await machine.complete(trip_id, system, drop_code=data.get("drop_code"))
        elif command == "arrive" and trip_id:
            await machine.mark_arrived(trip_id, system)
        elif command == "assign" and trip_id and data.get("provider_id"):
            await machine.assign(trip_id, data["provider_id"], system)
        elif command == "availability" and data.get("provider_id"):
            await availability.set_manual(
                data["provider_id"], AvailabilityStatus(data.get("status"))
            )
        elif command == "resync":
            await availability.resync_all()
        else:
            logger.warning("Unknown change-feed command: %r", data)
            return "unknown"
    except (Conflict, InvalidTransition) as e:
        # lost the race to another writer
        logger.info("Change-feed %s on %s superseded: %s", command, trip_id, e.message)
        return "superseded"
    except TripError as e:
        logger.warning("Change-feed %s on %s rejected: %s", command, trip_id, e.message)
        return "rejected"
    except ValueError as e:
        logger.warning("Change-feed %s malformed: %s", command, e)
        return "invalid"
    return "applied"


class ChangeFeedSubscriber:
    def __init__(
        self,
        redis_client,
        machine: TripStateMachine,
        availability: AvailabilityReconciler,
        channel: str,
        reconnect_delay: float = 5,
    ):
        self.redis_client = redis_client
        self.machine = machine
        self.availability = availability
        self.channel = channel
        self.reconnect_delay = reconnect_delay
        self.task: Optional[asyncio.Task] = None

    async def start(self) -> None:
        self.task = asyncio.create_task(self._subscribe_and_dispatch())
        logger.info("Change-feed subscriber started on %s", self.channel)

    async def stop(self) -> None:
        if self.task:
            self.task.cancel()
            try:
                await self.task
            except asyncio.CancelledError:
                pass
        logger.info("Change-feed subscriber stopped")

    async def _subscribe_and_dispatch(self) -> None:
        while True:
            try:
                await self._listen()
            except redis.RedisError as e:
                logger.error(
                    "Change feed lost Redis (%s), reconnecting in %ss...",
                    e, self.reconnect_delay,
                )
                await asyncio.sleep(self.reconnect_delay)
            except asyncio.CancelledError:
                break

    async def _listen(self) -> None:
        pubsub = self.redis_client.pubsub()
        try:
            await pubsub.subscribe(self.channel)
            await self._resync_after_subscribe()

            async for message in pubsub.listen():
                if message["type"] != "message":
                    continue
                try:
                    await handle_message(
                        self.machine, self.availability, message["data"]
                    )
                except Exception:
                    logger.exception(
                        "Change-feed message failed: %r", message["data"]
                    )
        finally:
            await self._close(pubsub)

    @staticmethod
    async def _close(pubsub) -> None:
        try:
            await pubsub.aclose()
        except redis.RedisError as e:
            logger.warning("Closing change-feed pubsub failed: %s", e)

    async def _resync_after_subscribe(self) -> None:
        try:
            changed = await self.availability.resync_all()
            logger.info("Change feed (re)subscribed; %d provider flags resynced", changed)
        except Exception:
            logger.exception("Availability resync after subscribe failed")
