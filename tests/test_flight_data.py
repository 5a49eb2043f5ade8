"""Tests for the canonical flight data shapes."""
from decimal import Decimal

from app.services.flight_data import (
    FlightStatus,
    FlightStatusCode,
    Offer,
    cheapest_offer,
    time_shift_minutes,
)


class TestCheapestOffer:
    def test_compares_numerically(self):
        offers = [Offer(price="1000.00"), Offer(price="999.5"), Offer(price="85")]
        assert cheapest_offer(offers).price == "85"

    def test_skips_unparseable_prices(self):
        offers = [Offer(price="n/a"), Offer(price="420.10")]
        assert cheapest_offer(offers).price_value == Decimal("420.10")

    def test_empty(self):
        assert cheapest_offer([]) is None
        assert cheapest_offer([Offer(price="")]) is None


class TestTimeShift:
    def test_across_offsets(self):
        assert time_shift_minutes("2024-12-25T10:15:00Z", "2024-12-25T05:00:00-05:00") == 15

    def test_naive_times_are_utc(self):
        assert time_shift_minutes("2024-12-25T10:05:00", "2024-12-25T10:00:00Z") == 5

    def test_missing_side(self):
        assert time_shift_minutes(None, "2024-12-25T10:00:00Z") is None
        assert time_shift_minutes("later", "2024-12-25T10:00:00Z") is None


class TestFlightStatus:
    def test_snapshot_survives_storage(self):
        status = FlightStatus("AA", "100", "JFK", "LAX", gate="B22", status=FlightStatusCode.DELAYED)

        stored = status.to_dict()

        assert stored["status"] == "DELAYED"
        assert FlightStatus.from_dict(stored) == status

    def test_unknown_stored_status(self):
        restored = FlightStatus.from_dict({"carrier_code": "AA", "flight_number": 100, "status": "DIVERTED"})

        assert restored.status == FlightStatusCode.UNKNOWN
        assert restored.flight_number == "100"
        assert FlightStatus.from_dict(None) is None

    def test_changes_since(self):
        previous = FlightStatus("AA", "100", scheduled_arrival="2024-12-25T13:00:00Z", terminal="4")
        current = FlightStatus("AA", "100", scheduled_arrival="2024-12-25T13:30:00Z", terminal=None)

        assert current.changes_since(previous) == ["scheduled_arrival", "terminal"]
        assert current.changes_since(current) == []
