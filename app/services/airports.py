"""
City to airport resolution.

A static table covers the cities users type most; anything else falls
through to the provider's location search.
"""
import logging
from typing import Optional

from app.services.flight_data import AirportMatch, FlightDataProvider

logger = logging.getLogger(__name__)


CITY_AIRPORTS: dict[str, AirportMatch] = {
    # India
    'delhi': AirportMatch('DEL', 'Indira Gandhi International Airport'),
    'mumbai': AirportMatch('BOM', 'Chhatrapati Shivaji Maharaj International Airport'),
    'bangalore': AirportMatch('BLR', 'Kempegowda International Airport'),
    'chennai': AirportMatch('MAA', 'Chennai International Airport'),
    'kolkata': AirportMatch('CCU', 'Netaji Subhas Chandra Bose International Airport'),
    'hyderabad': AirportMatch('HYD', 'Rajiv Gandhi International Airport'),
    'ahmedabad': AirportMatch('AMD', 'Sardar Vallabhbhai Patel International Airport'),
    'guwahati': AirportMatch('GAU', 'Lokpriya Gopinath Bordoloi International Airport'),
    'cochin': AirportMatch('COK', 'Cochin International Airport'),
    'pune': AirportMatch('PNQ', 'Pune Airport'),

    # London
    'london': AirportMatch('LHR', 'London Heathrow Airport'),
    'london heathrow': AirportMatch('LHR', 'London Heathrow Airport'),
    'london gatwick': AirportMatch('LGW', 'London Gatwick Airport'),
    'london city': AirportMatch('LCY', 'London City Airport'),
    'london stansted': AirportMatch('STN', 'London Stansted Airport'),
    'london luton': AirportMatch('LTN', 'London Luton Airport'),

    # New York
    'new york': AirportMatch('JFK', 'John F. Kennedy International Airport'),
    'new york jfk': AirportMatch('JFK', 'John F. Kennedy International Airport'),
    'new york lga': AirportMatch('LGA', 'LaGuardia Airport'),
    'new york ewr': AirportMatch('EWR', 'Newark Liberty International Airport'),

    # Hubs
    'dubai': AirportMatch('DXB', 'Dubai International Airport'),
    'singapore': AirportMatch('SIN', 'Singapore Changi Airport'),
    'bangkok': AirportMatch('BKK', 'Suvarnabhumi Airport'),
    'paris': AirportMatch('CDG', 'Paris Charles de Gaulle Airport'),
    'amsterdam': AirportMatch('AMS', 'Amsterdam Airport Schiphol'),
    'frankfurt': AirportMatch('FRA', 'Frankfurt Airport'),
    'hong kong': AirportMatch('HKG', 'Hong Kong International Airport'),
    'sydney': AirportMatch('SYD', 'Sydney Kingsford Smith Airport'),
}


def lookup_static(text: str) -> list[AirportMatch]:
    """
    Match against the static table.

    An exact city match comes first, followed by every entry where one side
    contains the other, deduplicated by airport code in table order.
    """
    city = text.lower().strip()
    if not city:
        return []

    matches: list[AirportMatch] = []
    seen: set[str] = set()
    if city in CITY_AIRPORTS:
        matches.append(CITY_AIRPORTS[city])
        seen.add(CITY_AIRPORTS[city].code)

    for name, airport in CITY_AIRPORTS.items():
        if (city in name or name in city) and airport.code not in seen:
            seen.add(airport.code)
            matches.append(airport)
    return matches


class AirportResolver:
    """
    Resolves free text to airports, static table first, then the provider.

    Non-empty results are cached per normalised text. Provider failures
    propagate so the conversation can tell the user to retry.
    """

    def __init__(self, provider: Optional[FlightDataProvider] = None):
        self.provider = provider
        self._cache: dict[str, list[AirportMatch]] = {}

    async def resolve(self, text: str) -> list[AirportMatch]:
        key = text.lower().strip()
        if not key:
            return []
        if key in self._cache:
            return self._cache[key]

        matches = lookup_static(key)
        if not matches and self.provider is not None:
            logger.info(f"No static airport match for '{text}', asking provider")
            matches = await self.provider.find_locations(text.strip())

        if matches:
            self._cache[key] = matches
        return matches
