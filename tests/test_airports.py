"""Tests for city/airline resolution."""
import pytest

from app.services.airlines import find_airline_code
from app.services.airports import AirportResolver, lookup_static
from app.services.flight_data import AirportMatch, ProviderError


class TestFindAirlineCode:
    def test_two_letter_code(self):
        assert find_airline_code("aa") == "AA"
        assert find_airline_code("6e") == "6E"

    def test_exact_name(self):
        assert find_airline_code("Lufthansa") == "LH"
        assert find_airline_code("air india") == "AI"

    def test_partial_name(self):
        assert find_airline_code("American Airlines") == "AA"
        assert find_airline_code("brit") == "BA"

    def test_unknown_falls_back_to_input(self):
        assert find_airline_code("zzz") == "ZZZ"


class TestLookupStatic:
    def test_exact_city_leads_the_list(self):
        assert [a.code for a in lookup_static("london")] == ["LHR", "LGW", "LCY", "STN", "LTN"]
        assert [a.code for a in lookup_static("New York")] == ["JFK", "LGA", "EWR"]

    def test_named_airport_comes_before_its_city(self):
        assert [a.code for a in lookup_static("london gatwick")][:2] == ["LGW", "LHR"]

    def test_single_airport_city(self):
        assert [a.code for a in lookup_static("Delhi")] == ["DEL"]

    def test_partial_match_lists_every_airport(self):
        codes = [a.code for a in lookup_static("lond")]
        assert codes == ["LHR", "LGW", "LCY", "STN", "LTN"]

    def test_no_match(self):
        assert lookup_static("atlantis") == []


class TestAirportResolver:
    async def test_static_hit_skips_provider(self, provider):
        provider.locations = [AirportMatch("XXX", "Should not be used")]
        resolver = AirportResolver(provider)

        matches = await resolver.resolve("Delhi")

        assert [a.code for a in matches] == ["DEL"]

    async def test_falls_back_to_provider_and_caches(self, provider):
        provider.locations = [AirportMatch("ZRH", "Zurich Airport")]
        resolver = AirportResolver(provider)

        first = await resolver.resolve("Zurich")
        provider.locations = []
        second = await resolver.resolve("zurich ")

        assert [a.code for a in first] == ["ZRH"]
        assert second == first

    async def test_empty_results_are_not_cached(self, provider):
        resolver = AirportResolver(provider)
        assert await resolver.resolve("Zurich") == []

        provider.locations = [AirportMatch("ZRH", "Zurich Airport")]
        assert [a.code for a in await resolver.resolve("Zurich")] == ["ZRH"]

    async def test_provider_errors_propagate(self, provider):
        provider.error = ProviderError("down", 503)
        resolver = AirportResolver(provider)

        with pytest.raises(ProviderError):
            await resolver.resolve("Zurich")
