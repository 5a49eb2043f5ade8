"""
Amadeus self-service API client.

Docs: https://developers.amadeus.com/self-service
Authentication: OAuth2 client credentials, bearer token valid ~30 minutes.
The token is cached until five minutes before expiry and renewed in the
background every `token_refresh_minutes` so batch cycles never stall on auth.
"""
import asyncio
import logging
import random
import re
import time
from datetime import datetime, timedelta, timezone
from typing import List, Optional

import httpx

from app.config import get_settings
from app.services.flight_data import (
    AirportMatch,
    FlightDataProvider,
    FlightStatus,
    FlightStatusCode,
    Offer,
    ProviderError,
    Segment,
)

logger = logging.getLogger(__name__)

TOKEN_PATH = "/v1/security/oauth2/token"
OFFERS_PATH = "/v2/shopping/flight-offers"
SCHEDULE_PATH = "/v2/schedule/flights"
LOCATIONS_PATH = "/v1/reference-data/locations"

TOKEN_EXPIRY_MARGIN_SECONDS = 300
RETRYABLE_STATUS = {429, 500, 502, 503, 504}

_ISO_DURATION = re.compile(r"^PT(?:(\d+)H)?(?:(\d+)M)?$")


def format_duration(duration: Optional[str]) -> str:
    """PT14H15M -> "14h 15m". Unknown formats are returned unchanged."""
    if not duration:
        return "Unknown"
    match = _ISO_DURATION.match(duration)
    if not match or not any(match.groups()):
        return duration
    hours = int(match.group(1) or 0)
    minutes = int(match.group(2) or 0)
    if hours and minutes:
        return f"{hours}h {minutes}m"
    if hours:
        return f"{hours}h"
    return f"{minutes}m"


def _code_of(value) -> Optional[str]:
    """Schedule API terminals/gates come either as plain strings or {"code": ...} objects."""
    if isinstance(value, dict):
        return value.get("code") or value.get("mainGate")
    return value or None


class AmadeusClient(FlightDataProvider):
    """
    Rate-limited Amadeus client.

    Usage:
        client = AmadeusClient()
        offers = await client.search_offers("DEL", "BOM", "2026-03-01")
    """

    def __init__(
        self,
        client_id: Optional[str] = None,
        client_secret: Optional[str] = None,
        base_url: Optional[str] = None,
        currency: Optional[str] = None,
        min_request_interval: Optional[float] = None,
        token_refresh_minutes: Optional[int] = None,
        max_retries: int = 3,
        retry_delay: float = 1.0,
    ):
        settings = get_settings()
        self.client_id = client_id if client_id is not None else settings.amadeus_client_id
        self.client_secret = client_secret if client_secret is not None else settings.amadeus_client_secret
        self.base_url = (base_url or settings.amadeus_base_url).rstrip("/")
        self.currency = currency or settings.amadeus_currency
        self.min_request_interval = (
            min_request_interval if min_request_interval is not None else settings.amadeus_min_request_interval
        )
        self.token_refresh_minutes = token_refresh_minutes or settings.amadeus_token_refresh_minutes
        self.max_retries = max_retries
        self.retry_delay = retry_delay

        self._client: Optional[httpx.AsyncClient] = None
        self._token: Optional[str] = None
        self._token_expires: Optional[datetime] = None
        self._token_lock = asyncio.Lock()
        self._throttle_lock = asyncio.Lock()
        self._last_request_at = 0.0
        self._refresh_task: Optional[asyncio.Task] = None

    def is_available(self) -> bool:
        return bool(self.client_id and self.client_secret)

    async def _get_client(self) -> httpx.AsyncClient:
        if self._client is None or self._client.is_closed:
            self._client = httpx.AsyncClient(base_url=self.base_url, timeout=30.0)
        return self._client

    async def close(self):
        if self._refresh_task is not None:
            self._refresh_task.cancel()
            try:
                await self._refresh_task
            except asyncio.CancelledError:
                pass
            self._refresh_task = None
        if self._client and not self._client.is_closed:
            await self._client.aclose()
        self._client = None

    # ------------------------------------------------------------------
    # Token lifecycle
    # ------------------------------------------------------------------

    def _token_valid(self) -> bool:
        return bool(
            self._token
            and self._token_expires
            and datetime.now(timezone.utc) < self._token_expires
        )

    def invalidate_token(self):
        self._token = None
        self._token_expires = None

    async def _get_token(self, force: bool = False) -> str:
        if not force and self._token_valid():
            return self._token

        async with self._token_lock:
            # Another waiter may have refreshed while we queued
            if not force and self._token_valid():
                return self._token
            return await self._fetch_token()

    async def _fetch_token(self) -> str:
        if not self.is_available():
            raise ProviderError("Amadeus credentials not configured")

        client = await self._get_client()
        last_error = None

        for attempt in range(self.max_retries):
            if attempt > 0:
                delay = self.retry_delay * (2 ** attempt) + random.uniform(0, self.retry_delay)
                logger.info(f"Amadeus auth: retry {attempt}/{self.max_retries - 1} after {delay:.1f}s")
                await asyncio.sleep(delay)

            try:
                response = await client.post(
                    TOKEN_PATH,
                    data={
                        "grant_type": "client_credentials",
                        "client_id": self.client_id,
                        "client_secret": self.client_secret,
                    },
                    headers={"Content-Type": "application/x-www-form-urlencoded"},
                )
            except httpx.RequestError as e:
                last_error = f"auth request failed: {e}"
                logger.warning(f"Amadeus {last_error}")
                continue

            if response.status_code != 200:
                last_error = f"auth returned HTTP {response.status_code}"
                logger.warning(f"Amadeus {last_error}")
                continue

            try:
                data = response.json()
                token = data["access_token"]
                expires_in = int(data.get("expires_in", 1799))
            except (ValueError, KeyError, TypeError) as e:
                last_error = f"auth returned an unreadable body: {e!r}"
                logger.warning(f"Amadeus {last_error}")
                continue

            self._token = token
            self._token_expires = datetime.now(timezone.utc) + timedelta(
                seconds=expires_in - TOKEN_EXPIRY_MARGIN_SECONDS
            )
            logger.info(f"Amadeus token acquired, valid until {self._token_expires.isoformat()}")
            return self._token

        raise ProviderError(f"Amadeus authentication failed: {last_error}")

    def start_token_refresh(self):
        """Start proactive renewal. Needs a running event loop."""
        if self._refresh_task is None or self._refresh_task.done():
            self._refresh_task = asyncio.create_task(self._refresh_loop())

    async def _refresh_loop(self):
        while True:
            await asyncio.sleep(self.token_refresh_minutes * 60)
            try:
                await self._get_token(force=True)
                logger.info("Amadeus token refreshed")
            except ProviderError as e:
                logger.error(f"Scheduled Amadeus token refresh failed: {e}")

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def _throttle(self):
        async with self._throttle_lock:
            wait = self.min_request_interval - (time.monotonic() - self._last_request_at)
            if wait > 0:
                await asyncio.sleep(wait)
            self._last_request_at = time.monotonic()

    async def _get(self, path: str, params: dict) -> dict:
        """
        GET with auth, throttling and retries.

        Network errors, 429 and 5xx are retried with exponential backoff.
        A 401 drops the cached token and retries once with a fresh one.
        """
        client = await self._get_client()
        reauthed = False
        last_error = None
        attempt = 0

        while attempt < self.max_retries:
            if attempt > 0:
                delay = self.retry_delay * (2 ** attempt) + random.uniform(0, self.retry_delay)
                logger.info(f"Amadeus {path}: retry {attempt}/{self.max_retries - 1} after {delay:.1f}s")
                await asyncio.sleep(delay)

            token = await self._get_token()
            await self._throttle()

            try:
                response = await client.get(
                    path,
                    params=params,
                    headers={"Authorization": f"Bearer {token}"},
                )
            except httpx.RequestError as e:
                last_error = ProviderError(f"Amadeus request to {path} failed: {e}")
                logger.warning(str(last_error))
                attempt += 1
                continue

            if response.status_code == 200:
                try:
                    return response.json()
                except ValueError as e:
                    raise ProviderError(f"Amadeus {path} returned an unreadable body: {e}") from e

            if response.status_code == 401 and not reauthed:
                logger.warning("Amadeus returned 401, refreshing token")
                self.invalidate_token()
                reauthed = True
                continue

            last_error = ProviderError(
                f"Amadeus {path} returned HTTP {response.status_code}",
                status_code=response.status_code,
            )
            if response.status_code not in RETRYABLE_STATUS:
                raise last_error

            logger.warning(str(last_error))
            attempt += 1

        raise last_error or ProviderError(f"Amadeus {path} failed")

    # ------------------------------------------------------------------
    # Capabilities
    # ------------------------------------------------------------------

    async def search_offers(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
    ) -> List[Offer]:
        params = {
            "originLocationCode": origin,
            "destinationLocationCode": destination,
            "departureDate": departure_date,
            "adults": 1,
            "currencyCode": self.currency,
            "max": 20,
        }
        if return_date:
            params["returnDate"] = return_date

        logger.info(
            f"Searching offers {origin}->{destination} on {departure_date}"
            f"{f' returning {return_date}' if return_date else ' (one-way)'}"
        )
        data = await self._get(OFFERS_PATH, params)
        booking_url = self.build_booking_url(origin, destination, departure_date, return_date)

        offers = []
        for raw in data.get("data", []):
            offer = self._parse_offer(raw, booking_url)
            if offer is not None:
                offers.append(offer)

        logger.info(f"Amadeus returned {len(offers)} offers for {origin}->{destination}")
        return offers

    def _parse_offer(self, raw: dict, booking_url: str) -> Optional[Offer]:
        price = (raw.get("price") or {}).get("total")
        itineraries = raw.get("itineraries") or []
        if not price or not itineraries:
            logger.debug(f"Skipping offer {raw.get('id')}: missing price or itinerary")
            return None

        outbound = itineraries[0]
        segments = []
        for seg in outbound.get("segments", []):
            departure = seg.get("departure") or {}
            arrival = seg.get("arrival") or {}
            segments.append(Segment(
                carrier_code=seg.get("carrierCode", ""),
                flight_number=str(seg.get("number", "")),
                departure_airport=departure.get("iataCode"),
                arrival_airport=arrival.get("iataCode"),
                departure_at=departure.get("at"),
                arrival_at=arrival.get("at"),
                departure_terminal=departure.get("terminal"),
                arrival_terminal=arrival.get("terminal"),
                duration=format_duration(seg.get("duration")),
                aircraft=(seg.get("aircraft") or {}).get("code"),
            ))

        airlines = raw.get("validatingAirlineCodes") or []
        return Offer(
            price=str(price),
            currency=(raw.get("price") or {}).get("currency", self.currency),
            airline=airlines[0] if airlines else "Unknown",
            segments=segments,
            booking_url=booking_url,
            duration=format_duration(outbound.get("duration")),
            stops=max(0, len(segments) - 1),
            departure_time=segments[0].departure_at if segments else None,
            arrival_time=segments[-1].arrival_at if segments else None,
            offer_id=raw.get("id"),
        )

    async def fetch_status(self, carrier_code: str, flight_number: str, date: str) -> Optional[FlightStatus]:
        data = await self._get(SCHEDULE_PATH, {
            "carrierCode": carrier_code,
            "flightNumber": flight_number,
            "scheduledDepartureDate": date,
        })

        flights = data.get("data") or []
        if not flights:
            return None

        flight = flights[0]
        points = flight.get("flightPoints") or []
        if len(points) < 2:
            return None

        departure_point, arrival_point = points[0], points[-1]
        departure = departure_point.get("departure") or {}
        arrival = arrival_point.get("arrival") or {}
        departure_timings = departure.get("timings") or [{}]
        arrival_timings = arrival.get("timings") or [{}]
        departure_time = departure_timings[0].get("value")
        arrival_time = arrival_timings[0].get("value")
        designator = flight.get("flightDesignator") or {}

        # The schedule API carries no live status, only the timetable
        return FlightStatus(
            carrier_code=designator.get("carrierCode", carrier_code),
            flight_number=str(designator.get("flightNumber", flight_number)),
            departure_airport=departure_point.get("iataCode"),
            arrival_airport=arrival_point.get("iataCode"),
            scheduled_departure=departure_time,
            scheduled_arrival=arrival_time,
            actual_departure=departure_time,
            actual_arrival=arrival_time,
            terminal=_code_of(arrival.get("terminal")),
            gate=_code_of(arrival.get("gate")),
            status=FlightStatusCode.SCHEDULED,
            checked_at=datetime.now(timezone.utc).isoformat(),
        )

    async def find_locations(self, keyword: str) -> List[AirportMatch]:
        data = await self._get(LOCATIONS_PATH, {
            "keyword": keyword,
            "subType": "AIRPORT,CITY",
            "page[limit]": 5,
        })
        matches = []
        seen = set()
        for item in data.get("data", []):
            code = item.get("iataCode")
            if not code or code in seen:
                continue
            seen.add(code)
            matches.append(AirportMatch(code=code, name=item.get("name") or code))
        return matches

    async def check_health(self) -> bool:
        """One-item locations query; logs and returns False instead of raising."""
        try:
            await self._get(LOCATIONS_PATH, {"keyword": "LON", "subType": "CITY", "page[limit]": 1})
            return True
        except ProviderError as e:
            logger.warning(f"Amadeus health check failed: {e}")
            return False
