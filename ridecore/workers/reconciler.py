"""
Availability Reconciliation Worker
==================================

Re-derives every provider's availability flag from the trip store at
start-up and then every ``RECONCILE_INTERVAL_SECONDS`` (default 60 s).

It repairs flags left stale by a crash between a transition and its
publication, or by a change-feed outage.  Each provider is resynced in its
own short transaction; no lock is taken.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from ridecore.services.availability import AvailabilityReconciler

logger = logging.getLogger(__name__)

_task: Optional[asyncio.Task] = None
_stop_event: Optional[asyncio.Event] = None


# ── Public API ────────────────────────────────────────────────────────


async def start_reconcile_loop(
    reconciler: AvailabilityReconciler, interval_seconds: float
) -> None:
    global _task, _stop_event
    _stop_event = asyncio.Event()
    _task = asyncio.create_task(_loop(reconciler, interval_seconds))
    logger.info("Reconciliation worker started (interval=%ss)", interval_seconds)


async def stop_reconcile_loop() -> None:
    global _task, _stop_event
    if _stop_event:
        _stop_event.set()
    if _task:
        _task.cancel()
        try:
            await _task
        except asyncio.CancelledError:
            pass
    _task, _stop_event = None, None
    logger.info("Reconciliation worker stopped")


# ── Internals ─────────────────────────────────────────────────────────


async def _loop(reconciler: AvailabilityReconciler, interval_seconds: float) -> None:
    assert _stop_event is not None
    stop = _stop_event
    while not stop.is_set():
        try:
            await run_reconcile_cycle(reconciler)
        except Exception:
            logger.exception("Unhandled error in reconciliation cycle")
        try:
            await asyncio.wait_for(stop.wait(), timeout=interval_seconds)
            break
        except asyncio.TimeoutError:
            pass


async def run_reconcile_cycle(reconciler: AvailabilityReconciler) -> int:
    """One pass over all providers.  Returns the number of flags changed."""
    changed = await reconciler.resync_all()
    if changed:
        logger.info("Reconciliation cycle: %d provider flags corrected", changed)
    return changed
