"""Unit tests for trip entity state transitions (State Pattern)."""

import pytest

from ridecore.domain.entities import Actor, Trip
from ridecore.domain.enums import ActorRole, CodeKind, TripStatus
from ridecore.domain.errors import InvalidTransition


class TestTripStateMachine:
    def test_initial_status_is_requested(self):
        trip = Trip()
        assert trip.status == TripStatus.REQUESTED
        assert trip.version == 0

    # ── Valid transitions ─────────────────────────────────────────

    @pytest.mark.parametrize(
        "current,target",
        [
            (TripStatus.REQUESTED, TripStatus.ASSIGNED),
            (TripStatus.ASSIGNED, TripStatus.PROVIDER_ARRIVED),
            (TripStatus.PROVIDER_ARRIVED, TripStatus.IN_PROGRESS),
            (TripStatus.IN_PROGRESS, TripStatus.COMPLETED),
            (TripStatus.REQUESTED, TripStatus.CANCELLED),
            (TripStatus.ASSIGNED, TripStatus.CANCELLED),
            (TripStatus.PROVIDER_ARRIVED, TripStatus.CANCELLED),
            (TripStatus.IN_PROGRESS, TripStatus.CANCELLED),
        ],
    )
    def test_valid_transition(self, current, target):
        trip = Trip(status=current)
        trip.transition_to(target)
        assert trip.status == target
        assert trip.version == 1

    # ── Invalid transitions ───────────────────────────────────────

    def test_requested_to_completed_fails(self):
        trip = Trip(status=TripStatus.REQUESTED)
        with pytest.raises(InvalidTransition):
            trip.transition_to(TripStatus.COMPLETED)

    def test_skipping_arrival_fails(self):
        trip = Trip(status=TripStatus.ASSIGNED)
        with pytest.raises(InvalidTransition):
            trip.transition_to(TripStatus.IN_PROGRESS)

    def test_completed_is_terminal(self):
        trip = Trip(status=TripStatus.COMPLETED)
        assert trip.is_terminal
        for status in TripStatus:
            with pytest.raises(InvalidTransition):
                trip.transition_to(status)

    def test_cancelled_is_terminal(self):
        trip = Trip(status=TripStatus.CANCELLED)
        with pytest.raises(InvalidTransition):
            trip.transition_to(TripStatus.CANCELLED)

    def test_failed_transition_leaves_trip_untouched(self):
        trip = Trip(status=TripStatus.ASSIGNED, version=3)
        with pytest.raises(InvalidTransition):
            trip.transition_to(TripStatus.COMPLETED)
        assert trip.status == TripStatus.ASSIGNED
        assert trip.version == 3


class TestOneTimeCodes:
    def test_code_bound_to_issuing_status(self):
        trip = Trip(status=TripStatus.PROVIDER_ARRIVED)
        code = trip.issue_code(CodeKind.PICKUP, "4821")
        assert code.issued_in == TripStatus.PROVIDER_ARRIVED
        assert trip.live_code(CodeKind.PICKUP) == code
        assert trip.live_code(CodeKind.DROP) is None

    def test_transition_drops_the_code(self):
        trip = Trip(status=TripStatus.PROVIDER_ARRIVED)
        trip.issue_code(CodeKind.PICKUP, "4821")
        trip.transition_to(TripStatus.IN_PROGRESS)
        assert trip.code is None
        assert trip.live_code(CodeKind.PICKUP) is None

    def test_reissue_replaces_previous_code(self):
        trip = Trip(status=TripStatus.IN_PROGRESS)
        trip.issue_code(CodeKind.DROP, "1111")
        trip.issue_code(CodeKind.DROP, "2222")
        assert trip.live_code(CodeKind.DROP).value == "2222"
        assert trip.version == 2

    def test_code_from_another_status_is_not_live(self):
        trip = Trip(status=TripStatus.PROVIDER_ARRIVED)
        trip.issue_code(CodeKind.PICKUP, "4821")
        # a row that kept the code across a status change must not honour it
        trip.status = TripStatus.IN_PROGRESS
        assert trip.live_code(CodeKind.PICKUP) is None


class TestParties:
    def test_requester_and_assigned_provider_are_parties(self):
        trip = Trip(requester_id="rider-1", provider_id="prov-1")
        assert trip.is_party(Actor("rider-1", ActorRole.REQUESTER))
        assert trip.is_party(Actor("prov-1", ActorRole.PROVIDER))
        assert trip.is_party(Actor.system())

    def test_strangers_are_not_parties(self):
        trip = Trip(requester_id="rider-1", provider_id="prov-1")
        assert not trip.is_party(Actor("rider-2", ActorRole.REQUESTER))
        assert not trip.is_party(Actor("prov-2", ActorRole.PROVIDER))

    def test_no_provider_before_assignment(self):
        trip = Trip(requester_id="rider-1")
        assert not trip.is_party(Actor("prov-1", ActorRole.PROVIDER))

    def test_copy_is_independent(self):
        trip = Trip(status=TripStatus.REQUESTED)
        other = trip.copy()
        other.transition_to(TripStatus.ASSIGNED)
        assert trip.status == TripStatus.REQUESTED
        assert trip.version == 0
