"""Availability reconciler: manual toggle, resync and the worker cycle."""

import asyncio

import pytest

from ridecore.domain.entities import Trip
from ridecore.domain.enums import AvailabilityStatus, TripStatus
from ridecore.domain.errors import HasActiveTrip, InvalidCommand, ProviderNotFound
from ridecore.infrastructure.repositories import TripRepository
from ridecore.workers import reconciler as worker
from tests.support import provider_status, set_provider_status


class TestManualToggle:
    @pytest.mark.asyncio
    async def test_idle_provider_goes_offline_and_back(self, services, seeded):
        availability = services.availability

        await availability.set_manual("prov-1", AvailabilityStatus.UNAVAILABLE)
        assert await provider_status(seeded, "prov-1") == "unavailable"

        await availability.set_manual("prov-1", AvailabilityStatus.AVAILABLE)
        assert await provider_status(seeded, "prov-1") == "available"

    @pytest.mark.asyncio
    async def test_rejected_while_holding_a_trip(self, services, drive_trip, seeded):
        await drive_trip(TripStatus.ASSIGNED)

        with pytest.raises(HasActiveTrip):
            await services.availability.set_manual("prov-1", AvailabilityStatus.UNAVAILABLE)
        assert await provider_status(seeded, "prov-1") == "engaged"

    @pytest.mark.asyncio
    async def test_engaged_cannot_be_set_by_hand(self, services):
        with pytest.raises(InvalidCommand):
            await services.availability.set_manual("prov-1", AvailabilityStatus.ENGAGED)

    @pytest.mark.asyncio
    async def test_unknown_provider(self, services):
        with pytest.raises(ProviderNotFound):
            await services.availability.set_manual("prov-404", AvailabilityStatus.AVAILABLE)

    @pytest.mark.asyncio
    async def test_stale_engaged_flag_heals(self, services, seeded):
        # engaged with no trip behind it, e.g. after a crash mid-release
        await set_provider_status(seeded, "prov-1", "engaged")

        await services.availability.set_manual("prov-1", AvailabilityStatus.UNAVAILABLE)
        assert await provider_status(seeded, "prov-1") == "unavailable"


class TestResync:
    @pytest.mark.asyncio
    async def test_live_trip_forces_engaged(self, services, drive_trip, seeded):
        await drive_trip(TripStatus.ASSIGNED)
        await set_provider_status(seeded, "prov-1", "available")

        assert await services.availability.resync("prov-1") == AvailabilityStatus.ENGAGED
        assert await provider_status(seeded, "prov-1") == "engaged"

    @pytest.mark.asyncio
    async def test_idle_engaged_provider_released(self, services, seeded):
        await set_provider_status(seeded, "prov-2", "engaged")
        assert await services.availability.resync("prov-2") == AvailabilityStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_manual_offline_kept(self, services, seeded):
        await set_provider_status(seeded, "prov-2", "unavailable")
        assert await services.availability.resync("prov-2") == AvailabilityStatus.UNAVAILABLE

    @pytest.mark.asyncio
    async def test_terminal_trips_do_not_engage(self, services, drive_trip, machine, requester, seeded):
        trip = await drive_trip(TripStatus.ASSIGNED)
        await machine.cancel(trip.id, "changed plans", requester)
        await set_provider_status(seeded, "prov-1", "engaged")

        assert await services.availability.resync("prov-1") == AvailabilityStatus.AVAILABLE

    @pytest.mark.asyncio
    async def test_resync_all_counts_changes(self, services, drive_trip, seeded):
        await drive_trip(TripStatus.ASSIGNED)
        await set_provider_status(seeded, "prov-1", "available")
        await set_provider_status(seeded, "prov-2", "engaged")

        assert await services.availability.resync_all() == 2
        assert await services.availability.resync_all() == 0

    @pytest.mark.asyncio
    async def test_unknown_provider(self, services):
        with pytest.raises(ProviderNotFound):
            await services.availability.resync("prov-404")

    @pytest.mark.asyncio
    async def test_stale_live_trip_read_does_not_engage(self, services, seeded, monkeypatch):
        # the trip completed between the read and the write
        async def finished_elsewhere(self, provider_id):
            return Trip(id="trip-gone", provider_id=provider_id, status=TripStatus.IN_PROGRESS)

        monkeypatch.setattr(TripRepository, "active_for_provider", finished_elsewhere)

        assert await services.availability.resync("prov-1") == AvailabilityStatus.AVAILABLE
        assert await provider_status(seeded, "prov-1") == "available"

    @pytest.mark.asyncio
    async def test_stale_read_keeps_manual_offline(self, services, seeded, monkeypatch):
        async def finished_elsewhere(self, provider_id):
            return Trip(id="trip-gone", provider_id=provider_id, status=TripStatus.ASSIGNED)

        monkeypatch.setattr(TripRepository, "active_for_provider", finished_elsewhere)
        await set_provider_status(seeded, "prov-2", "unavailable")

        assert await services.availability.resync("prov-2") == AvailabilityStatus.UNAVAILABLE
        assert await provider_status(seeded, "prov-2") == "unavailable"


class TestReconcileWorker:
    @pytest.mark.asyncio
    async def test_cycle_reports_corrections(self, services, seeded):
        await set_provider_status(seeded, "prov-2", "engaged")
        assert await worker.run_reconcile_cycle(services.availability) == 1
        assert await worker.run_reconcile_cycle(services.availability) == 0

    @pytest.mark.asyncio
    async def test_loop_runs_at_start_and_stops(self, services, seeded):
        await set_provider_status(seeded, "prov-2", "engaged")

        await worker.start_reconcile_loop(services.availability, interval_seconds=3600)
        try:
            for _ in range(200):
                if await provider_status(seeded, "prov-2") == "available":
                    break
                await asyncio.sleep(0.01)
            else:
                pytest.fail("reconcile loop never ran")
        finally:
            await worker.stop_reconcile_loop()

        assert worker._task is None
