"""
Canonical flight data shapes and the provider capability the core consumes.

Providers normalise their responses into these types so the price monitor,
flight tracker and conversation flows never see raw API payloads.
"""
import enum
import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, asdict
from datetime import datetime, timezone
from decimal import Decimal, InvalidOperation
from typing import List, Optional

from app.utils.links import build_booking_url

logger = logging.getLogger(__name__)


class ProviderError(Exception):
    """Transient flight-data provider failure (network, HTTP status, auth, rate limit)."""

    def __init__(self, message: str, status_code: Optional[int] = None):
        super().__init__(message)
        self.status_code = status_code


@dataclass
class Segment:
    carrier_code: str
    flight_number: str
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    departure_at: Optional[str] = None  # local ISO datetime as returned by the provider
    arrival_at: Optional[str] = None
    departure_terminal: Optional[str] = None
    arrival_terminal: Optional[str] = None
    duration: Optional[str] = None  # "2h 30m"
    aircraft: Optional[str] = None

    @property
    def designator(self) -> str:
        return f"{self.carrier_code}{self.flight_number}"

    @property
    def departure_date(self) -> Optional[str]:
        return self.departure_at[:10] if self.departure_at else None


@dataclass
class Offer:
    price: str  # decimal-as-string, compared numerically via price_value
    currency: str = "USD"
    airline: str = "Unknown"
    segments: List[Segment] = field(default_factory=list)
    booking_url: Optional[str] = None
    duration: Optional[str] = None
    stops: int = 0
    departure_time: Optional[str] = None
    arrival_time: Optional[str] = None
    offer_id: Optional[str] = None

    @property
    def price_value(self) -> Optional[Decimal]:
        try:
            return Decimal(str(self.price))
        except (InvalidOperation, ValueError):
            return None


@dataclass
class AirportMatch:
    code: str
    name: str


class FlightStatusCode(str, enum.Enum):
    SCHEDULED = "SCHEDULED"
    DELAYED = "DELAYED"
    CANCELLED = "CANCELLED"
    DEPARTED = "DEPARTED"
    LANDED = "LANDED"
    UNKNOWN = "UNKNOWN"


def _parse_time(value: Optional[str]) -> Optional[datetime]:
    if not value:
        return None
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def time_shift_minutes(new: Optional[str], old: Optional[str]) -> Optional[float]:
    """Absolute difference in minutes, or None when either side is missing/unparseable."""
    new_dt, old_dt = _parse_time(new), _parse_time(old)
    if new_dt is None or old_dt is None:
        return None
    return abs((new_dt - old_dt).total_seconds()) / 60


@dataclass(frozen=True)
class FlightStatus:
    """
    Snapshot of one flight's schedule.

    Stored as JSON on the FlightTrack; compared field by field, never as a blob.
    """
    carrier_code: str
    flight_number: str
    departure_airport: Optional[str] = None
    arrival_airport: Optional[str] = None
    scheduled_departure: Optional[str] = None
    scheduled_arrival: Optional[str] = None
    actual_departure: Optional[str] = None
    actual_arrival: Optional[str] = None
    terminal: Optional[str] = None
    gate: Optional[str] = None
    status: FlightStatusCode = FlightStatusCode.SCHEDULED
    checked_at: Optional[str] = None

    @property
    def designator(self) -> str:
        return f"{self.carrier_code}{self.flight_number}"

    @property
    def checked_at_dt(self) -> Optional[datetime]:
        return _parse_time(self.checked_at)

    def to_dict(self) -> dict:
        data = asdict(self)
        data["status"] = self.status.value
        return data

    @classmethod
    def from_dict(cls, data: Optional[dict]) -> Optional["FlightStatus"]:
        if not data:
            return None
        try:
            status = FlightStatusCode(data.get("status") or FlightStatusCode.UNKNOWN.value)
        except ValueError:
            status = FlightStatusCode.UNKNOWN
        return cls(
            carrier_code=data.get("carrier_code", ""),
            flight_number=str(data.get("flight_number", "")),
            departure_airport=data.get("departure_airport"),
            arrival_airport=data.get("arrival_airport"),
            scheduled_departure=data.get("scheduled_departure"),
            scheduled_arrival=data.get("scheduled_arrival"),
            actual_departure=data.get("actual_departure"),
            actual_arrival=data.get("actual_arrival"),
            terminal=data.get("terminal"),
            gate=data.get("gate"),
            status=status,
            checked_at=data.get("checked_at"),
        )

    def changes_since(self, previous: "FlightStatus", threshold_minutes: int = 10) -> List[str]:
        """
        Names of the fields that changed materially since `previous`.

        Times count only when both sides are known and moved by more than the
        threshold. Terminal and gate count only when at least one side is set.
        """
        changes = []
        if self.carrier_code != previous.carrier_code or self.flight_number != previous.flight_number:
            changes.append("designator")

        for name, new, old in (
            ("scheduled_departure", self.scheduled_departure, previous.scheduled_departure),
            ("scheduled_arrival", self.scheduled_arrival, previous.scheduled_arrival),
        ):
            shift = time_shift_minutes(new, old)
            if shift is not None and shift > threshold_minutes:
                changes.append(name)

        for name, new, old in (
            ("terminal", self.terminal, previous.terminal),
            ("gate", self.gate, previous.gate),
        ):
            if new != old and (new or old):
                changes.append(name)

        if self.status != previous.status:
            changes.append("status")

        return changes


class FlightDataProvider(ABC):
    """
    What the core needs from a flight-data provider.

    Every method may raise ProviderError; callers treat that as "no data this
    cycle", never as a state change.
    """

    @abstractmethod
    async def search_offers(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
    ) -> List[Offer]:
        pass

    @abstractmethod
    async def fetch_status(self, carrier_code: str, flight_number: str, date: str) -> Optional[FlightStatus]:
        pass

    @abstractmethod
    async def find_locations(self, keyword: str) -> List[AirportMatch]:
        pass

    def build_booking_url(
        self,
        origin: str,
        destination: str,
        departure_date: str,
        return_date: Optional[str] = None,
    ) -> str:
        return build_booking_url(origin, destination, departure_date, return_date)

    async def close(self):
        pass


def cheapest_offer(offers: List[Offer]) -> Optional[Offer]:
    """Minimum-price offer by numeric comparison; offers with unparseable prices are ignored."""
    priced = [o for o in offers if o.price_value is not None]
    if not priced:
        return None
    return min(priced, key=lambda o: o.price_value)
