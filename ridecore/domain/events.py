"""
Trip transition events.

The trip state machine is the only writer of trip state.  After each
committed transition it publishes a ``TripEvent`` on the ``EventBus``;
readers (change publication, notifications, reporting) subscribe instead of
polling trip rows.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Awaitable, Callable, Optional

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class TripEvent:
    trip_id: str
    kind: str  # assigned, arrived, code_issued, started, completed, cancelled, ...
    from_status: Optional[str]
    to_status: str
    version: int
    occurred_at: datetime
    provider_id: Optional[str] = None
    payload: dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> dict[str, Any]:
        return {
            "trip_id": self.trip_id,
            "kind": self.kind,
            "from_status": self.from_status,
            "to_status": self.to_status,
            "version": self.version,
            "occurred_at": self.occurred_at.isoformat(),
            "provider_id": self.provider_id,
            "payload": self.payload,
        }


EventHandler = Callable[[TripEvent], Awaitable[None]]


class EventBus:
    """In-process fan-out of committed transition events."""

    def __init__(self) -> None:
        self._handlers: list[EventHandler] = []

    def subscribe(self, handler: EventHandler) -> None:
        self._handlers.append(handler)

    def unsubscribe(self, handler: EventHandler) -> None:
        if handler in self._handlers:
            self._handlers.remove(handler)

    async def publish(self, event: TripEvent) -> None:
        # the transition is already durable; a failing reader must not undo it
        for handler in list(self._handlers):
            try:
                await handler(event)
            except Exception:
                logger.exception(
                    "Event handler %r failed for %s on trip %s",
                    handler, event.kind, event.trip_id,
                )
