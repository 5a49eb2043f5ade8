"""
Test fixtures for AeroWizard tests.
"""
from typing import Dict, List, Optional

import pytest
from sqlalchemy import create_engine, event
from sqlalchemy.orm import sessionmaker
from sqlalchemy.pool import StaticPool
from httpx import AsyncClient, ASGITransport

from app.database import Base, get_db
from app.main import app
from app.services.airports import AirportResolver
from app.services.bot import BotRouter
from app.services.chat import ChatTransport
from app.services.conversation import ConversationService
from app.services.flight_data import (
    AirportMatch,
    FlightDataProvider,
    FlightStatus,
    Offer,
    ProviderError,
    Segment,
)
from app.services.flight_tracker import FlightTracker
from app.services.notification import Notifier
from app.services.price_monitor import PriceMonitor
from app.services.sessions import InMemorySessionStore


# Create test database engine (SQLite in-memory). Services open their own
# sessions, so every session must share the single in-memory connection.
TEST_DATABASE_URL = "sqlite:///:memory:"

test_engine = create_engine(
    TEST_DATABASE_URL,
    connect_args={"check_same_thread": False},
    poolclass=StaticPool,
)


# Enable foreign key constraints for SQLite
@event.listens_for(test_engine, "connect")
def set_sqlite_pragma(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


TestSessionLocal = sessionmaker(
    autocommit=False, autoflush=False, expire_on_commit=False, bind=test_engine
)


class FakeProvider(FlightDataProvider):
    """In-memory flight data; set `error` to make every call raise ProviderError."""

    def __init__(self):
        self.offers: List[Offer] = []
        self.statuses: Dict[str, FlightStatus] = {}
        self.locations: List[AirportMatch] = []
        self.error: Optional[ProviderError] = None
        self.searches: List[tuple] = []
        self.status_calls: List[tuple] = []

    async def search_offers(self, origin, destination, departure_date, return_date=None):
        self.searches.append((origin, destination, departure_date, return_date))
        if self.error:
            raise self.error
        return list(self.offers)

    async def fetch_status(self, carrier_code, flight_number, date):
        self.status_calls.append((carrier_code, flight_number, date))
        if self.error:
            raise self.error
        return self.statuses.get(f"{carrier_code}{flight_number}")

    async def find_locations(self, keyword):
        if self.error:
            raise self.error
        return list(self.locations)


class FakeTransport(ChatTransport):
    """Records everything the bot would have sent."""

    def __init__(self):
        self.messages: List[dict] = []
        self.answers: List[dict] = []

    async def send_message(self, user_id, text, choices=None, keyboard=None):
        self.messages.append({"user_id": str(user_id), "text": text, "choices": choices, "keyboard": keyboard})
        return True

    async def answer_callback(self, callback_id, text=None, show_alert=False):
        self.answers.append({"callback_id": callback_id, "text": text, "show_alert": show_alert})
        return True

    @property
    def texts(self) -> List[str]:
        return [m["text"] for m in self.messages]

    @property
    def last_text(self) -> Optional[str]:
        return self.messages[-1]["text"] if self.messages else None

    def callback_actions(self, index: int = -1) -> List[str]:
        """Callback payloads of the choices on one sent message."""
        choices = self.messages[index]["choices"] or []
        return [c.action for row in choices for c in row if c.action]


def make_offer(price: str, airline: str = "AA", segments: Optional[List[Segment]] = None, **kwargs) -> Offer:
    segments = segments if segments is not None else [
        Segment(carrier_code=airline, flight_number="100", departure_airport="JFK", arrival_airport="LAX",
                departure_at="2030-01-15T08:00:00", arrival_at="2030-01-15T11:00:00")
    ]
    return Offer(
        price=price,
        airline=airline,
        segments=segments,
        booking_url=kwargs.pop("booking_url", "https://example.com/book"),
        duration=kwargs.pop("duration", "6h 0m"),
        stops=max(len(segments) - 1, 0),
        departure_time=segments[0].departure_at if segments else None,
        arrival_time=segments[-1].arrival_at if segments else None,
        **kwargs,
    )


@pytest.fixture(scope="function")
def db_session():
    """
    Create a fresh database session for each test.
    Creates all tables before the test and drops them after.
    """
    # Create all tables
    Base.metadata.create_all(bind=test_engine)

    session = TestSessionLocal()
    try:
        yield session
    finally:
        session.close()
        # Drop all tables after test
        Base.metadata.drop_all(bind=test_engine)


@pytest.fixture(scope="function")
def override_get_db(db_session):
    """
    Override the get_db dependency to use the test database session.
    """
    def _override_get_db():
        try:
            yield db_session
        finally:
            pass

    return _override_get_db


@pytest.fixture(scope="function")
async def client(override_get_db):
    """
    Create an async test client with the database dependency overridden.
    """
    app.dependency_overrides[get_db] = override_get_db

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    # Clear overrides after test
    app.dependency_overrides.clear()


@pytest.fixture
def provider():
    return FakeProvider()


@pytest.fixture
def transport():
    return FakeTransport()


@pytest.fixture
def notifier(transport):
    return Notifier(transport)


@pytest.fixture
def price_monitor(db_session, provider, notifier):
    return PriceMonitor(provider, notifier, TestSessionLocal, delay_seconds=0, summary_delay_seconds=0)


@pytest.fixture
def flight_tracker(db_session, provider, notifier):
    return FlightTracker(provider, notifier, TestSessionLocal, delay_seconds=0, segment_delay_seconds=0)


@pytest.fixture
def sessions():
    return InMemorySessionStore()


@pytest.fixture
def conversation(transport, sessions, provider, price_monitor, flight_tracker):
    return ConversationService(
        transport, sessions, AirportResolver(provider), provider, price_monitor, flight_tracker, TestSessionLocal
    )


@pytest.fixture
def bot(transport, sessions, conversation, price_monitor, flight_tracker):
    return BotRouter(transport, sessions, conversation, price_monitor, flight_tracker, TestSessionLocal)


@pytest.fixture
def offer_factory():
    return make_offer
