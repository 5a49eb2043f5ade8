"""Tests for the Amadeus client: auth, retries and response normalisation."""
from unittest.mock import AsyncMock, MagicMock

import httpx
import pytest

from app.services.amadeus import AmadeusClient, format_duration
from app.services.flight_data import FlightStatusCode, ProviderError


def _response(status_code: int, payload=None) -> MagicMock:
    response = MagicMock()
    response.status_code = status_code
    response.json.return_value = payload if payload is not None else {}
    response.text = str(payload)
    return response


TOKEN = _response(200, {"access_token": "tok123", "expires_in": 1799})


def _make_client(get_responses=None, post_responses=None) -> AmadeusClient:
    client = AmadeusClient(
        client_id="cid",
        client_secret="csec",
        base_url="https://test.api.amadeus.com/",
        currency="USD",
        min_request_interval=0,
        retry_delay=0,
    )
    mock_http = AsyncMock()
    mock_http.is_closed = False
    mock_http.post = AsyncMock(side_effect=post_responses or [TOKEN] * 5)
    mock_http.get = AsyncMock(side_effect=get_responses or [])
    client._client = mock_http
    return client


OFFER_PAYLOAD = {
    "data": [
        {
            "id": "1",
            "price": {"total": "512.40", "currency": "USD"},
            "validatingAirlineCodes": ["AA"],
            "itineraries": [{
                "duration": "PT7H45M",
                "segments": [
                    {
                        "carrierCode": "AA",
                        "number": "10",
                        "departure": {"iataCode": "JFK", "at": "2025-12-25T08:00:00", "terminal": "8"},
                        "arrival": {"iataCode": "ORD", "at": "2025-12-25T10:00:00"},
                        "duration": "PT3H",
                    },
                    {
                        "carrierCode": "AA",
                        "number": "20",
                        "departure": {"iataCode": "ORD", "at": "2025-12-25T11:30:00"},
                        "arrival": {"iataCode": "LAX", "at": "2025-12-25T13:45:00"},
                        "duration": "PT4H15M",
                    },
                ],
            }],
        },
        {"id": "2", "price": {}, "itineraries": []},
    ]
}


class TestFormatDuration:
    def test_hours_and_minutes(self):
        assert format_duration("PT14H15M") == "14h 15m"

    def test_hours_only(self):
        assert format_duration("PT2H") == "2h"

    def test_minutes_only(self):
        assert format_duration("PT45M") == "45m"

    def test_missing(self):
        assert format_duration(None) == "Unknown"

    def test_unrecognised_passes_through(self):
        assert format_duration("P1DT2H") == "P1DT2H"


class TestAuthentication:
    async def test_token_is_cached(self):
        client = _make_client(get_responses=[_response(200, {"data": []})] * 2)

        await client.search_offers("JFK", "LAX", "2025-12-25")
        await client.search_offers("JFK", "LAX", "2025-12-26")

        assert client._client.post.call_count == 1
        headers = client._client.get.call_args.kwargs["headers"]
        assert headers == {"Authorization": "Bearer tok123"}

    async def test_token_failures_are_retried_then_raised(self):
        client = _make_client(post_responses=[_response(500)] * 3)

        with pytest.raises(ProviderError):
            await client.search_offers("JFK", "LAX", "2025-12-25")

        assert client._client.post.call_count == 3
        assert client._client.get.call_count == 0

    async def test_unreadable_token_body_is_a_provider_error(self):
        client = _make_client(post_responses=[_response(200, {"error": "invalid_client"})] * 3)

        with pytest.raises(ProviderError):
            await client.search_offers("JFK", "LAX", "2025-12-25")

        assert client._token is None
        assert client._client.post.call_count == 3

    async def test_401_reauthenticates_once(self):
        client = _make_client(
            get_responses=[_response(401), _response(200, {"data": []})],
            post_responses=[TOKEN, TOKEN],
        )

        assert await client.search_offers("JFK", "LAX", "2025-12-25") == []
        assert client._client.post.call_count == 2

    async def test_missing_credentials(self):
        client = AmadeusClient(client_id="", client_secret="", min_request_interval=0)

        assert not client.is_available()
        with pytest.raises(ProviderError):
            await client.search_offers("JFK", "LAX", "2025-12-25")


class TestRetries:
    async def test_rate_limit_is_retried(self):
        client = _make_client(get_responses=[_response(429), _response(200, {"data": []})])

        assert await client.search_offers("JFK", "LAX", "2025-12-25") == []
        assert client._client.get.call_count == 2

    async def test_network_error_is_retried(self):
        client = _make_client(get_responses=[
            httpx.ConnectError("connection refused"),
            _response(200, {"data": []}),
        ])

        assert await client.search_offers("JFK", "LAX", "2025-12-25") == []

    async def test_server_errors_exhaust_retries(self):
        client = _make_client(get_responses=[_response(503)] * 3)

        with pytest.raises(ProviderError) as exc_info:
            await client.search_offers("JFK", "LAX", "2025-12-25")

        assert exc_info.value.status_code == 503
        assert client._client.get.call_count == 3

    async def test_client_errors_are_not_retried(self):
        client = _make_client(get_responses=[_response(400)])

        with pytest.raises(ProviderError) as exc_info:
            await client.search_offers("JFK", "LAX", "2025-12-25")

        assert exc_info.value.status_code == 400
        assert client._client.get.call_count == 1

    async def test_unreadable_body_is_a_provider_error(self):
        gateway_page = _response(200)
        gateway_page.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        client = _make_client(get_responses=[gateway_page])

        with pytest.raises(ProviderError):
            await client.search_offers("JFK", "LAX", "2025-12-25")


class TestSearchOffers:
    async def test_offers_are_normalised(self):
        client = _make_client(get_responses=[_response(200, OFFER_PAYLOAD)])

        offers = await client.search_offers("JFK", "LAX", "2025-12-25", "2026-01-02")

        assert len(offers) == 1
        offer = offers[0]
        assert offer.price == "512.40"
        assert offer.airline == "AA"
        assert offer.duration == "7h 45m"
        assert offer.stops == 1
        assert offer.departure_time == "2025-12-25T08:00:00"
        assert offer.arrival_time == "2025-12-25T13:45:00"
        assert [s.designator for s in offer.segments] == ["AA10", "AA20"]
        assert offer.segments[0].departure_terminal == "8"
        assert "rtn=1" in offer.booking_url

        params = client._client.get.call_args.kwargs["params"]
        assert params["returnDate"] == "2026-01-02"
        assert params["max"] == 20
        assert params["currencyCode"] == "USD"


class TestFetchStatus:
    async def test_schedule_is_normalised(self):
        payload = {"data": [{
            "flightDesignator": {"carrierCode": "BA", "flightNumber": 117},
            "flightPoints": [
                {"iataCode": "LHR", "departure": {"timings": [{"qualifier": "STD", "value": "2025-12-25T08:25+00:00"}]}},
                {"iataCode": "JFK", "arrival": {
                    "timings": [{"qualifier": "STA", "value": "2025-12-25T11:20-05:00"}],
                    "terminal": {"code": "7"},
                    "gate": {"mainGate": "B3"},
                }},
            ],
        }]}
        client = _make_client(get_responses=[_response(200, payload)])

        status = await client.fetch_status("BA", "117", "2025-12-25")

        assert status.designator == "BA117"
        assert (status.departure_airport, status.arrival_airport) == ("LHR", "JFK")
        assert status.scheduled_departure == "2025-12-25T08:25+00:00"
        assert status.terminal == "7"
        assert status.gate == "B3"
        assert status.status == FlightStatusCode.SCHEDULED
        assert status.checked_at is not None

    async def test_unknown_flight(self):
        client = _make_client(get_responses=[_response(200, {"data": []})])
        assert await client.fetch_status("BA", "9999", "2025-12-25") is None


class TestFindLocations:
    async def test_deduplicates_codes(self):
        payload = {"data": [
            {"iataCode": "PAR", "name": "PARIS"},
            {"iataCode": "CDG", "name": "CHARLES DE GAULLE"},
            {"iataCode": "CDG", "name": "CHARLES DE GAULLE"},
        ]}
        client = _make_client(get_responses=[_response(200, payload)])

        matches = await client.find_locations("Paris")

        assert [m.code for m in matches] == ["PAR", "CDG"]


class TestLifecycle:
    async def test_close_stops_token_refresh(self):
        client = _make_client()
        client.start_token_refresh()
        assert client._refresh_task is not None

        await client.close()

        assert client._refresh_task is None
        assert client._client is None

    async def test_health_check_reports_failure(self):
        client = _make_client(get_responses=[_response(400)])
        assert await client.check_health() is False
