"""Process-wide service wiring shared by the webhook, cron endpoints and scheduler."""
import logging
from dataclasses import dataclass
from typing import Optional

from app.database import SessionLocal
from app.services.airports import AirportResolver
from app.services.amadeus import AmadeusClient
from app.services.bot import BotRouter
from app.services.conversation import ConversationService
from app.services.flight_tracker import FlightTracker
from app.services.notification import Notifier, get_global_notifier, shutdown_notifier
from app.services.price_monitor import PriceMonitor
from app.services.sessions import InMemorySessionStore

logger = logging.getLogger(__name__)


@dataclass
class Services:
    provider: AmadeusClient
    notifier: Notifier
    resolver: AirportResolver
    price_monitor: PriceMonitor
    flight_tracker: FlightTracker
    sessions: InMemorySessionStore
    conversation: ConversationService
    bot: BotRouter


_services: Optional[Services] = None


def get_services() -> Services:
    global _services
    if _services is None:
        provider = AmadeusClient()
        notifier = get_global_notifier()
        transport = notifier.transport
        resolver = AirportResolver(provider)
        sessions = InMemorySessionStore()
        price_monitor = PriceMonitor(provider, notifier, SessionLocal)
        flight_tracker = FlightTracker(provider, notifier, SessionLocal)
        conversation = ConversationService(
            transport, sessions, resolver, provider, price_monitor, flight_tracker, SessionLocal
        )
        bot = BotRouter(transport, sessions, conversation, price_monitor, flight_tracker, SessionLocal)
        _services = Services(
            provider=provider,
            notifier=notifier,
            resolver=resolver,
            price_monitor=price_monitor,
            flight_tracker=flight_tracker,
            sessions=sessions,
            conversation=conversation,
            bot=bot,
        )
        logger.info("Services initialised")
    return _services


async def shutdown_services():
    """Close provider and transport clients."""
    global _services
    if _services is not None:
        await _services.provider.close()
        _services = None
    await shutdown_notifier()
