"""Tests for flight status tracking."""
import asyncio
from datetime import date, datetime, timedelta, timezone

import pytest

from app.models import FlightTrack, TrackingStatus
from app.services.flight_data import FlightStatus, FlightStatusCode, ProviderError, Segment
from app.services.flight_tracker import should_notify
from app.services.repository import OwnershipError, TrackingNotFound, TrackingRepository

FLIGHT_DATE = (date.today() + timedelta(days=10)).isoformat()


def _status(carrier="AA", number="100", departure="2024-12-25T10:00:00Z", checked_at=None, **kwargs) -> FlightStatus:
    return FlightStatus(
        carrier_code=carrier,
        flight_number=number,
        departure_airport=kwargs.pop("departure_airport", "JFK"),
        arrival_airport=kwargs.pop("arrival_airport", "LAX"),
        scheduled_departure=departure,
        scheduled_arrival=kwargs.pop("arrival", "2024-12-25T13:00:00Z"),
        checked_at=checked_at or datetime.now(timezone.utc).isoformat(),
        **kwargs,
    )


def _make_track(db_session, user_id="100", carrier="AA", number="100") -> FlightTrack:
    return TrackingRepository(db_session).create_flight_track(user_id, carrier, number, FLIGHT_DATE)


def _reload(db_session, track_id: int) -> FlightTrack:
    db_session.expire_all()
    return db_session.get(FlightTrack, track_id)


class TestShouldNotify:
    def test_first_check(self):
        assert should_notify(None, _status())

    def test_small_shift_is_quiet(self):
        previous = _status(departure="2024-12-25T10:00:00Z")
        assert not should_notify(previous, _status(departure="2024-12-25T10:05:00Z"))

    def test_large_shift_notifies(self):
        previous = _status(departure="2024-12-25T10:00:00Z")
        assert should_notify(previous, _status(departure="2024-12-25T10:15:00Z"))

    def test_gate_assigned(self):
        assert should_notify(_status(), _status(gate="B22"))

    def test_terminal_change(self):
        assert should_notify(_status(terminal="4"), _status(terminal="8"))

    def test_status_change(self):
        assert should_notify(_status(), _status(status=FlightStatusCode.CANCELLED))

    def test_missing_time_on_one_side_is_not_a_change(self):
        assert not should_notify(_status(departure=None), _status())

    def test_heartbeat(self):
        now = datetime(2024, 12, 24, 12, 0, tzinfo=timezone.utc)
        stale = _status(checked_at=(now - timedelta(hours=25)).isoformat())
        fresh = _status(checked_at=(now - timedelta(hours=23)).isoformat())

        assert should_notify(stale, _status(), now=now)
        assert not should_notify(fresh, _status(), now=now)


class TestCheckSingleFlightStatus:
    async def test_first_check_always_notifies(self, db_session, provider, transport, flight_tracker):
        track = _make_track(db_session)
        provider.statuses["AA100"] = _status(gate="B22")

        assert await flight_tracker.check_single_flight_status(track.id) is True

        stored = _reload(db_session, track.id)
        assert stored.last_status["gate"] == "B22"
        assert stored.last_checked is not None
        assert "Flight Status Update" in transport.last_text
        assert "Gate: B22" in transport.last_text

    async def test_unchanged_status_is_quiet(self, db_session, provider, transport, flight_tracker):
        track = _make_track(db_session)
        provider.statuses["AA100"] = _status()
        await flight_tracker.check_single_flight_status(track.id)
        transport.messages.clear()

        provider.statuses["AA100"] = _status(departure="2024-12-25T10:05:00Z")
        assert await flight_tracker.check_single_flight_status(track.id) is False
        assert transport.messages == []

    async def test_fifteen_minute_delay_notifies(self, db_session, provider, transport, flight_tracker):
        track = _make_track(db_session)
        provider.statuses["AA100"] = _status()
        await flight_tracker.check_single_flight_status(track.id)

        provider.statuses["AA100"] = _status(departure="2024-12-25T10:15:00Z")
        assert await flight_tracker.check_single_flight_status(track.id) is True
        assert _reload(db_session, track.id).last_status["scheduled_departure"] == "2024-12-25T10:15:00Z"

    async def test_provider_failure_keeps_snapshot(self, db_session, provider, transport, flight_tracker):
        track = _make_track(db_session)
        provider.error = ProviderError("timeout")

        assert await flight_tracker.check_single_flight_status(track.id) is False
        assert _reload(db_session, track.id).last_status is None
        assert transport.messages == []

    async def test_flight_number_track_learns_route(self, db_session, provider, flight_tracker):
        track = _make_track(db_session)
        provider.statuses["AA100"] = _status(departure_airport="JFK", arrival_airport="SFO")

        await flight_tracker.check_single_flight_status(track.id)

        stored = _reload(db_session, track.id)
        assert (stored.origin, stored.destination) == ("JFK", "SFO")


class TestCreateFlightTrack:
    async def test_three_segment_journey(self, db_session, provider, transport, flight_tracker):
        segments = [
            Segment("AA", "1", "JFK", "ORD", departure_at=f"{FLIGHT_DATE}T08:00:00"),
            Segment("AA", "2", "ORD", "DFW", departure_at=f"{FLIGHT_DATE}T12:00:00"),
            Segment("AA", "3", "DFW", "LAX", departure_at=f"{FLIGHT_DATE}T18:00:00"),
        ]
        for segment in segments:
            provider.statuses[segment.designator] = _status("AA", segment.flight_number)

        tracks_seen_at_check = []
        original = provider.fetch_status

        async def counting(carrier_code, flight_number, flight_date):
            db_session.expire_all()
            tracks_seen_at_check.append(db_session.query(FlightTrack).count())
            return await original(carrier_code, flight_number, flight_date)

        provider.fetch_status = counting

        track_ids = await flight_tracker.create_flight_track(
            "100", FLIGHT_DATE, origin="JFK", destination="LAX", segments=segments
        )

        assert len(track_ids) == 3
        tracks = [_reload(db_session, track_id) for track_id in track_ids]
        assert [t.segment_index for t in tracks] == [0, 1, 2]
        assert all(t.is_segment for t in tracks)
        assert len({t.parent_route for t in tracks}) == 1
        assert tracks[0].parent_route.startswith("JFK-LAX/")
        # Each leg is checked before the next one exists
        assert tracks_seen_at_check == [1, 2, 3]
        assert [call[1] for call in provider.status_calls] == ["1", "2", "3"]
        assert "multi-segment journey" in transport.texts[0]

    async def test_single_segment_offer_becomes_plain_track(self, db_session, provider, flight_tracker):
        segments = [Segment("UA", "55", "SFO", "SEA")]
        provider.statuses["UA55"] = _status("UA", "55")

        track_ids = await flight_tracker.create_flight_track("100", FLIGHT_DATE, segments=segments)

        track = _reload(db_session, track_ids[0])
        assert track.designator == "UA55"
        assert not track.is_segment
        assert (track.origin, track.destination) == ("SFO", "SEA")

    async def test_flight_number_track(self, db_session, provider, transport, flight_tracker):
        provider.statuses["BA117"] = _status("BA", "117")

        track_ids = await flight_tracker.create_flight_track(
            "100", FLIGHT_DATE, carrier_code="BA", flight_number="117"
        )

        assert len(track_ids) == 1
        assert "Flight tracking enabled!" in transport.texts[0]
        assert "Flight Status Update" in transport.texts[1]


class TestCancelFlightTrack:
    async def _journey(self, provider, flight_tracker):
        segments = [Segment("AA", "1", "JFK", "ORD"), Segment("AA", "2", "ORD", "LAX")]
        return await flight_tracker.create_flight_track(
            "owner", FLIGHT_DATE, origin="JFK", destination="LAX", segments=segments
        )

    async def test_cancelling_a_segment_cancels_the_journey(self, db_session, provider, flight_tracker):
        track_ids = await self._journey(provider, flight_tracker)

        cancelled = flight_tracker.cancel_flight_track("owner", track_ids[1])

        assert len(cancelled) == 2
        assert all(_reload(db_session, i).status == TrackingStatus.CANCELLED for i in track_ids)

    async def test_foreign_track_is_rejected(self, db_session, provider, flight_tracker):
        track_ids = await self._journey(provider, flight_tracker)

        with pytest.raises(OwnershipError):
            flight_tracker.cancel_flight_track("intruder", track_ids[0])

        assert all(_reload(db_session, i).status == TrackingStatus.ACTIVE for i in track_ids)

    async def test_missing_track(self, db_session, flight_tracker):
        with pytest.raises(TrackingNotFound):
            flight_tracker.cancel_flight_track("owner", 999)


class TestCheckAllTrackedFlights:
    async def test_summary(self, db_session, provider, flight_tracker):
        first = _make_track(db_session, user_id="1")
        _make_track(db_session, user_id="2", carrier="UA", number="9")
        provider.statuses["AA100"] = _status()
        await flight_tracker.check_single_flight_status(first.id)

        summary = await flight_tracker.check_all_tracked_flights()

        # AA100 unchanged, UA9 unknown to the provider
        assert summary == {"checked": 2, "notified": 0, "errors": 0}

    async def test_second_call_while_running_is_a_no_op(self, db_session, provider, flight_tracker):
        _make_track(db_session)
        provider.statuses["AA100"] = _status()
        release = asyncio.Event()
        started = asyncio.Event()
        original = provider.fetch_status

        async def slow(*args):
            started.set()
            await release.wait()
            return await original(*args)

        provider.fetch_status = slow

        first = asyncio.create_task(flight_tracker.check_all_tracked_flights())
        await started.wait()
        assert flight_tracker.is_running
        second = await flight_tracker.check_all_tracked_flights()
        release.set()

        assert second["skipped_reason"] == "already_running"
        assert (await first)["notified"] == 1


class TestShowUserFlightTracks:
    async def test_journeys_are_grouped(self, db_session, provider, transport, flight_tracker):
        segments = [Segment("AA", "1", "JFK", "ORD"), Segment("AA", "2", "ORD", "LAX")]
        journey_ids = await flight_tracker.create_flight_track(
            "100", FLIGHT_DATE, origin="JFK", destination="LAX", segments=segments
        )
        single = _make_track(db_session, carrier="BA", number="117")
        transport.messages.clear()

        await flight_tracker.show_user_flight_tracks("100")

        text = transport.last_text
        assert "Multi-segment journey" in text
        assert "AA1 → AA2" in text
        assert "BA117" in text
        assert transport.callback_actions() == [f"cancel_track:{journey_ids[0]}", f"cancel_track:{single.id}"]

    async def test_empty(self, db_session, transport, flight_tracker):
        await flight_tracker.show_user_flight_tracks("100")
        assert "not tracking any flights" in transport.last_text
