"""
Availability Reconciler
=======================

Keeps each provider's availability flag consistent with the trip store.

* ``engage`` / ``release`` run inside the trip state machine's transaction
  and write unconditionally.
* ``set_manual`` is the provider's own toggle.  It refuses while a live trip
  exists, and its write is a compare-and-swap against ``engaged`` so it can
  never overwrite an assignment that commits concurrently.
* ``resync`` re-derives the flag from the trip store; it runs at process
  start, after a change-feed reconnect and on every reconciliation tick.
"""

from __future__ import annotations

import logging

from sqlalchemy.ext.asyncio import AsyncSession

from ridecore.domain.enums import AvailabilityStatus
from ridecore.domain.errors import HasActiveTrip, InvalidCommand, ProviderNotFound
from ridecore.infrastructure.repositories import ProviderRepository, TripRepository

logger = logging.getLogger(__name__)

_MANUAL = {AvailabilityStatus.AVAILABLE, AvailabilityStatus.UNAVAILABLE}


class AvailabilityReconciler:
    def __init__(self, session_factory):
        self.session_factory = session_factory

    # ── Instructions from the state machine (caller's transaction) ────

    async def engage(self, session: AsyncSession, provider_id: str) -> None:
        await ProviderRepository(session).set_status(
            provider_id, AvailabilityStatus.ENGAGED
        )

    async def release(self, session: AsyncSession, provider_id: str) -> None:
        await ProviderRepository(session).set_status(
            provider_id, AvailabilityStatus.AVAILABLE
        )

    # ── Provider toggle ───────────────────────────────────────────────

    async def set_manual(
        self, provider_id: str, status: AvailabilityStatus
    ) -> AvailabilityStatus:
        if status not in _MANUAL:
            raise InvalidCommand(
                f"Availability can only be set to available or unavailable, "
                f"not {status.value}"
            )

        async with self.session_factory() as session:
            try:
                providers = ProviderRepository(session)
                if await providers.get(provider_id) is None:
                    raise ProviderNotFound(f"Provider {provider_id} not found")

                active = await TripRepository(session).active_for_provider(provider_id)
                if active is not None:
                    raise HasActiveTrip(
                        f"Provider {provider_id} holds trip {active.id} "
                        f"({active.status.value})"
                    )

                written = await providers.set_status_unless(
                    provider_id, status, unless=AvailabilityStatus.ENGAGED
                )
                if not written and await providers.release_if_idle(provider_id):
                    # stale engaged flag with nothing behind it
                    written = await providers.set_status_unless(
                        provider_id, status, unless=AvailabilityStatus.ENGAGED
                    )
                if not written:
                    raise HasActiveTrip(f"Provider {provider_id} is engaged")

                await session.commit()
            except Exception:
                await session.rollback()
                raise

        logger.info("Provider %s set %s", provider_id, status.value)
        return status

    # ── Re-derivation ─────────────────────────────────────────────────

    async def resync(self, provider_id: str) -> AvailabilityStatus:
        """Re-derive one provider's flag from its trips."""
        _, after = await self._resync(provider_id)
        return after

    async def _resync(
        self, provider_id: str
    ) -> tuple[AvailabilityStatus, AvailabilityStatus]:
        async with self.session_factory() as session:
            try:
                providers = ProviderRepository(session)
                provider = await providers.get(provider_id)
                if provider is None:
                    raise ProviderNotFound(f"Provider {provider_id} not found")
                before = AvailabilityStatus(provider.status)

                active = await TripRepository(session).active_for_provider(provider_id)
                # the read above may be stale; both writes re-check live trips
                if active is not None and await providers.engage_if_live(provider_id):
                    after = AvailabilityStatus.ENGAGED
                elif await providers.release_if_idle(provider_id):
                    after = AvailabilityStatus.AVAILABLE
                else:
                    after = await providers.current_status(provider_id) or before

                await session.commit()
            except Exception:
                await session.rollback()
                raise

        if after != before:
            logger.info(
                "Resynced provider %s: %s -> %s", provider_id, before.value, after.value
            )
        return before, after

    async def resync_all(self) -> int:
        """Resync every provider; returns how many flags changed."""
        async with self.session_factory() as session:
            provider_ids = await ProviderRepository(session).list_ids()

        changed = 0
        for provider_id in provider_ids:
            try:
                before, after = await self._resync(provider_id)
            except ProviderNotFound:
                continue
            if before != after:
                changed += 1
        return changed
