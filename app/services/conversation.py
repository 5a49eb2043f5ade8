"""
Multi-step chat dialogs.

Four flows share one per-user ConversationState:

- search:        origin -> destination -> departure date -> return date -> results
- price alert:   origin -> destination -> departure date -> return date -> target price
- track (route): method -> origin -> destination -> date -> pick a flight
- track (number): method -> airline -> flight number -> date

Each step validates one input. Invalid input re-prompts and leaves the state
untouched; the step only advances once the input is accepted. Anything
unexpected ends the flow and clears the state.
"""
import logging
import re
from decimal import Decimal
from typing import Awaitable, Callable, Dict, List, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.services.airlines import find_airline_code
from app.services.airports import AirportResolver
from app.services.callbacks import CallbackAction, CallbackKind
from app.services.chat import ChatTransport, Choice, MAIN_MENU, TRACK_METHOD_MENU
from app.services.flight_data import AirportMatch, FlightDataProvider, Offer, ProviderError, cheapest_offer
from app.services.flight_tracker import FlightTracker
from app.services.notification import format_price, format_time
from app.services.price_monitor import PriceMonitor
from app.services.repository import TrackingRepository
from app.services.sessions import ConversationState, SessionStore, Step
from app.utils.dates import is_one_way, is_valid_return_date, is_valid_travel_date, parse_date
from app.utils.links import is_http_url

logger = logging.getLogger(__name__)

GENERIC_ERROR = "❌ Something went wrong. Please try again or use /start"
SESSION_EXPIRED = "Session expired. Please start a new search."

ASK_ORIGIN = "🏠 Which city are you flying FROM? (e.g., NYC, London, Delhi)"
ASK_DESTINATION = "🎯 Which city are you flying TO? (e.g., NYC, London, Delhi)"
ASK_DEPARTURE = "📅 What's your departure date? (YYYY-MM-DD format, e.g., 2025-12-25)"
ASK_RETURN = '🔄 Return date? (Same format as departure date, or type "oneway" for one-way flight)'
ASK_TARGET = "💰 What's your target price? I'll alert you when flights drop to this price or below. (e.g., 500)"
ASK_METHOD = "✈️ How would you like to track a flight?"
ASK_AIRLINE = '✈️ Enter airline name or code (e.g., "American" or "AA"):'
ASK_FLIGHT_DATE = "📅 What's the flight date? (YYYY-MM-DD format, e.g., 2025-12-25)"

BAD_DATE = "❌ Please use a valid date format (e.g., YYYY-MM-DD, DD-MM-YYYY, DD-MM-YY)"
BAD_RETURN_FORMAT = '❌ Please use a valid date format or type "oneway"'
RETURN_BEFORE_DEPARTURE = "❌ Return date must be after departure date."
NO_AIRPORTS = "❌ No airports found for this city. Please try another city name."
AIRPORT_LOOKUP_FAILED = "❌ Error finding airports. Please try again with a different city name."

METHOD_ROUTE = "Search by Route"
METHOD_FLIGHT_NUMBER = "Search by Flight Number"

MAX_TRACKABLE_OFFERS = 10
MAX_AIRPORT_CHOICES = 5
TOP_OFFERS = 5

_FLIGHT_NUMBER = re.compile(r"^\d{1,4}$")
_AIRLINE_CODE = re.compile(r"^[A-Z0-9]{2,3}$")
_PRICE = re.compile(r"^\$?\s*(\d[\d,]*)$")

StepHandler = Callable[[str, ConversationState, str], Awaitable[None]]


def parse_target_price(text: str) -> Optional[int]:
    """Positive whole amount; tolerates a leading $ and thousands separators."""
    match = _PRICE.match(text.strip())
    if not match:
        return None
    value = int(match.group(1).replace(",", ""))
    return value if value > 0 else None


class ConversationService:

    def __init__(
        self,
        transport: ChatTransport,
        sessions: SessionStore,
        resolver: AirportResolver,
        provider: FlightDataProvider,
        price_monitor: PriceMonitor,
        flight_tracker: FlightTracker,
        session_factory: Callable[[], Session],
    ):
        self.transport = transport
        self.sessions = sessions
        self.resolver = resolver
        self.provider = provider
        self.price_monitor = price_monitor
        self.flight_tracker = flight_tracker
        self.session_factory = session_factory
        self.horizon_days = get_settings().booking_horizon_days

        self._text_handlers: Dict[Step, StepHandler] = {
            Step.SEARCH_ORIGIN: self._search_origin,
            Step.SEARCH_DESTINATION: self._search_destination,
            Step.SEARCH_DEPARTURE_DATE: self._search_departure_date,
            Step.SEARCH_RETURN_DATE: self._search_return_date,
            Step.TRACK_FLIGHT_METHOD: self._track_method,
            Step.TRACK_FLIGHT_ORIGIN: self._track_origin,
            Step.TRACK_FLIGHT_DESTINATION: self._track_destination,
            Step.TRACK_FLIGHT_AIRLINE: self._track_airline,
            Step.TRACK_FLIGHT_NUMBER: self._track_number,
            Step.TRACK_FLIGHT_DATE: self._track_date,
            Step.ALERT_ORIGIN: self._alert_origin,
            Step.ALERT_DESTINATION: self._alert_destination,
            Step.ALERT_DEPARTURE_DATE: self._alert_departure_date,
            Step.ALERT_RETURN_DATE: self._alert_return_date,
            Step.ALERT_TARGET_PRICE: self._alert_target_price,
        }

    async def _say(self, user_id: str, text: str, **kwargs) -> bool:
        return await self.transport.send_message(user_id, text, **kwargs)

    def _advance(self, user_id: str, state: ConversationState, step: Step, **data) -> None:
        state.data.update(data)
        state.step = step
        self.sessions.set(user_id, state)

    def has_state(self, user_id: str) -> bool:
        return self.sessions.get(user_id) is not None

    def cancel(self, user_id: str) -> bool:
        had_state = self.has_state(user_id)
        self.sessions.delete(user_id)
        return had_state

    # ------------------------------------------------------------------
    # Flow entry points
    # ------------------------------------------------------------------

    async def start_search(self, user_id: str):
        self.sessions.set(user_id, ConversationState(Step.SEARCH_ORIGIN))
        await self._say(user_id, ASK_ORIGIN)

    async def start_price_alert(self, user_id: str):
        self.sessions.set(user_id, ConversationState(Step.ALERT_ORIGIN))
        await self._say(user_id, "✈️ Flight price tracking is currently available for all.")
        await self._say(user_id, ASK_ORIGIN)

    async def start_flight_tracking(self, user_id: str):
        self.sessions.set(user_id, ConversationState(Step.TRACK_FLIGHT_METHOD))
        await self._say(user_id, ASK_METHOD, keyboard=TRACK_METHOD_MENU)

    # ------------------------------------------------------------------
    # Input dispatch
    # ------------------------------------------------------------------

    async def handle_text(self, user_id: str, text: str) -> bool:
        """
        Feed free text into the user's current step.

        Returns False when the user has no dialog in progress.
        """
        state = self.sessions.get(user_id)
        if state is None:
            return False

        handler = self._text_handlers.get(state.step)
        if handler is None:
            await self._say(user_id, "👆 Please pick one of the options above, or /cancel to start over.")
            return True

        logger.info(f"Processing step {state.step.value} for user {user_id}")
        try:
            await handler(user_id, state, text.strip())
        except Exception:
            logger.exception(f"Conversation step {state.step.value} failed for user {user_id}")
            self.sessions.delete(user_id)
            await self._say(user_id, GENERIC_ERROR)
        return True

    async def handle_selection(self, user_id: str, action: CallbackAction, callback_id: str):
        """Airport or flight picked from an inline list."""
        state = self.sessions.get(user_id)
        expected = {
            CallbackKind.SELECT_ORIGIN: Step.SELECT_ORIGIN_AIRPORT,
            CallbackKind.SELECT_DESTINATION: Step.SELECT_DESTINATION_AIRPORT,
            CallbackKind.SELECT_FLIGHT: Step.SELECT_FLIGHT_TO_TRACK,
        }[action.kind]
        if state is None or state.step != expected:
            await self.transport.answer_callback(callback_id, SESSION_EXPIRED)
            return

        try:
            if action.kind == CallbackKind.SELECT_FLIGHT:
                await self._select_flight(user_id, state, action.int_arg(), callback_id)
            else:
                await self._select_airport(user_id, state, action, callback_id)
        except Exception:
            logger.exception(f"Selection {action.encode()} failed for user {user_id}")
            self.sessions.delete(user_id)
            await self.transport.answer_callback(callback_id, "Error processing request", show_alert=True)
            await self._say(user_id, GENERIC_ERROR)

    # ------------------------------------------------------------------
    # Shared step helpers
    # ------------------------------------------------------------------

    async def _resolve_airports(self, user_id: str, text: str) -> Optional[List[AirportMatch]]:
        """Matches, or None after telling the user why there are none."""
        try:
            airports = await self.resolver.resolve(text)
        except ProviderError as e:
            logger.warning(f"Airport lookup for '{text}' failed: {e}")
            await self._say(user_id, AIRPORT_LOOKUP_FAILED)
            return None
        if not airports:
            await self._say(user_id, NO_AIRPORTS)
            return None
        return airports

    async def _read_travel_date(self, user_id: str, text: str) -> Optional[str]:
        value = parse_date(text)
        if value is None:
            await self._say(user_id, BAD_DATE)
            return None
        if not is_valid_travel_date(value, self.horizon_days):
            await self._say(user_id, f"❌ Please enter a future date within the next {self.horizon_days} days.")
            return None
        return value

    async def _read_return_date(self, user_id: str, departure: str, text: str):
        """(accepted, value): value is None for one-way."""
        if is_one_way(text):
            return True, None
        value = parse_date(text)
        if value is None:
            await self._say(user_id, BAD_RETURN_FORMAT)
            return False, None
        if not is_valid_return_date(departure, value):
            await self._say(user_id, RETURN_BEFORE_DEPARTURE)
            return False, None
        if not is_valid_travel_date(value, self.horizon_days):
            await self._say(user_id, f"❌ Return date must be within the next {self.horizon_days} days.")
            return False, None
        return True, value

    # ------------------------------------------------------------------
    # Search flow
    # ------------------------------------------------------------------

    async def _search_origin(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        if len(airports) == 1:
            self._advance(user_id, state, Step.SEARCH_DESTINATION,
                          origin=airports[0].code, origin_name=airports[0].name)
            await self._say(user_id, f"✅ Selected departure: {airports[0].name} ({airports[0].code})\n\n{ASK_DESTINATION}")
            return

        airports = airports[:MAX_AIRPORT_CHOICES]
        self._advance(user_id, state, Step.SELECT_ORIGIN_AIRPORT, airports=airports)
        await self._say(
            user_id,
            "🛫 Multiple airports found. Please select your departure airport:",
            choices=self._airport_choices(airports, CallbackKind.SELECT_ORIGIN),
        )

    async def _search_destination(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        if len(airports) == 1:
            self._advance(user_id, state, Step.SEARCH_DEPARTURE_DATE,
                          destination=airports[0].code, destination_name=airports[0].name)
            await self._say(user_id, f"✅ Selected destination: {airports[0].name} ({airports[0].code})\n\n{ASK_DEPARTURE}")
            return

        airports = airports[:MAX_AIRPORT_CHOICES]
        self._advance(user_id, state, Step.SELECT_DESTINATION_AIRPORT, airports=airports)
        await self._say(
            user_id,
            "🛬 Multiple airports found. Please select your destination airport:",
            choices=self._airport_choices(airports, CallbackKind.SELECT_DESTINATION),
        )

    @staticmethod
    def _airport_choices(airports: List[AirportMatch], kind: CallbackKind):
        return [
            [Choice(f"{airport.name} ({airport.code})", CallbackAction.of(kind, index).encode())]
            for index, airport in enumerate(airports)
        ]

    async def _select_airport(self, user_id: str, state: ConversationState, action: CallbackAction, callback_id: str):
        airports = state.data.get("airports") or []
        index = action.int_arg()
        if index >= len(airports):
            await self.transport.answer_callback(callback_id, "Invalid selection. Please pick again.")
            return

        airport = airports[index]
        state.data.pop("airports", None)
        if action.kind == CallbackKind.SELECT_ORIGIN:
            self._advance(user_id, state, Step.SEARCH_DESTINATION, origin=airport.code, origin_name=airport.name)
            await self._say(user_id, f"✅ Selected departure: {airport.name} ({airport.code})\n\n{ASK_DESTINATION}")
        else:
            self._advance(user_id, state, Step.SEARCH_DEPARTURE_DATE,
                          destination=airport.code, destination_name=airport.name)
            await self._say(user_id, f"✅ Selected destination: {airport.name} ({airport.code})\n\n{ASK_DEPARTURE}")
        await self.transport.answer_callback(callback_id)

    async def _search_departure_date(self, user_id: str, state: ConversationState, text: str):
        departure = await self._read_travel_date(user_id, text)
        if departure is None:
            return
        self._advance(user_id, state, Step.SEARCH_RETURN_DATE, departure_date=departure)
        await self._say(user_id, ASK_RETURN)

    async def _search_return_date(self, user_id: str, state: ConversationState, text: str):
        accepted, return_date = await self._read_return_date(user_id, state.data["departure_date"], text)
        if not accepted:
            return
        state.data["return_date"] = return_date
        try:
            await self._send_search_results(user_id, state.data)
        finally:
            self.sessions.delete(user_id)

    async def _send_search_results(self, user_id: str, data: dict):
        origin, destination = data["origin"], data["destination"]
        departure, return_date = data["departure_date"], data.get("return_date")

        await self._say(user_id, "🔍 Let me search for flights... Hold on.")
        try:
            offers = await self.provider.search_offers(origin, destination, departure, return_date)
        except ProviderError as e:
            logger.warning(f"Search {origin}->{destination} failed for user {user_id}: {e}")
            await self._say(
                user_id,
                "❌ Error searching for flights. Flight data provider is temporarily unavailable. "
                "Please try again later.",
            )
            return

        cheapest = cheapest_offer(offers)
        if cheapest is None:
            await self._say(user_id, "❌ No flights found for this route and date. Please try different dates or cities.")
            return

        ranked = sorted((o for o in offers if o.price_value is not None), key=lambda o: o.price_value)
        stops = "direct" if cheapest.stops == 0 else f"{cheapest.stops} stop{'s' if cheapest.stops > 1 else ''}"
        lines = [
            f"✅ Found {len(offers)} flights from {origin} to {destination}!",
            "",
            f"💰 Most affordable option: {format_price(cheapest.price_value)} ({cheapest.airline})",
            f"⏱️ Duration: {cheapest.duration or 'Unknown'} ({stops})",
            f"🕒 Departure: {format_time(cheapest.departure_time)} ({origin} local time)",
            f"🛬 Arrival: {format_time(cheapest.arrival_time)} ({destination} local time)",
            "",
            f"🏆 Top {min(TOP_OFFERS, len(ranked))} most affordable options:",
        ]
        for index, offer in enumerate(ranked[:TOP_OFFERS], start=1):
            lines.append(f"{index}. {format_price(offer.price_value)} - {offer.airline} - {offer.duration or 'Unknown'}")
        lines.append("\n🔔 Tap \"Track Price Changes\" to get notified when the price moves.")

        booking_url = self.provider.build_booking_url(origin, destination, departure, return_date)
        choices = []
        if is_http_url(booking_url):
            choices.append([Choice("✈️ Book Now", url=booking_url)])
        choices.append([Choice(
            "🔔 Track Price Changes",
            CallbackAction.of(CallbackKind.TRACK_ROUTE, origin, destination, departure, return_date).encode(),
        )])
        await self._say(user_id, "\n".join(lines), choices=choices)

    # ------------------------------------------------------------------
    # Direct tracking from search results
    # ------------------------------------------------------------------

    async def track_route(self, user_id: str, action: CallbackAction, callback_id: str):
        """Create an any-change alert for a searched route, seeded with today's cheapest price."""
        origin, destination, departure = action.args[:3]
        return_date = action.args[3] if len(action.args) > 3 else None
        if parse_date(departure) != departure or (return_date and parse_date(return_date) != return_date):
            await self.transport.answer_callback(callback_id, "Invalid tracking data", show_alert=True)
            return

        try:
            offers = await self.provider.search_offers(origin, destination, departure, return_date)
        except ProviderError as e:
            logger.warning(f"Direct tracking search failed for user {user_id}: {e}")
            await self.transport.answer_callback(callback_id, "Error setting up tracking. Please try again.", show_alert=True)
            return

        cheapest = cheapest_offer(offers)
        if cheapest is None:
            await self.transport.answer_callback(callback_id, "No flights found to track", show_alert=True)
            return

        db = self.session_factory()
        try:
            alert = TrackingRepository(db).create_alert(
                user_id,
                origin,
                destination,
                departure,
                return_date,
                target_price=0,
                current_price=cheapest.price_value,
                booking_url=self.provider.build_booking_url(origin, destination, departure, return_date),
            )
            alert_id = alert.id
        finally:
            db.close()

        await self._say(
            user_id,
            "✅ Flight tracking enabled!\n\n"
            f"📍 Route: {origin} → {destination}\n"
            f"📅 Departure: {departure}\n"
            f"{f'🔄 Return: {return_date}' if return_date else '🎫 One-way flight'}\n"
            f"💰 Current Price: {format_price(cheapest.price_value)}\n"
            f"🆔 Alert ID: {alert_id}\n\n"
            "I'll notify you of ANY price changes for this route! 🔔",
        )
        await self.transport.answer_callback(callback_id, "Flight tracking enabled!")
        await self._initial_price_check(alert_id)

    async def _initial_price_check(self, alert_id: int):
        try:
            await self.price_monitor.check_single_alert(alert_id)
        except Exception as e:
            logger.error(f"Initial price check failed for alert {alert_id}: {e}")

    # ------------------------------------------------------------------
    # Price alert flow
    # ------------------------------------------------------------------

    async def _alert_origin(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        self._advance(user_id, state, Step.ALERT_DESTINATION, origin=airports[0].code, origin_name=airports[0].name)
        await self._say(user_id, f"✅ Departure: {airports[0].name} ({airports[0].code})\n\n{ASK_DESTINATION}")

    async def _alert_destination(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        self._advance(user_id, state, Step.ALERT_DEPARTURE_DATE,
                      destination=airports[0].code, destination_name=airports[0].name)
        await self._say(user_id, f"✅ Destination: {airports[0].name} ({airports[0].code})\n\n{ASK_DEPARTURE}")

    async def _alert_departure_date(self, user_id: str, state: ConversationState, text: str):
        departure = await self._read_travel_date(user_id, text)
        if departure is None:
            return
        self._advance(user_id, state, Step.ALERT_RETURN_DATE, departure_date=departure)
        await self._say(user_id, ASK_RETURN)

    async def _alert_return_date(self, user_id: str, state: ConversationState, text: str):
        accepted, return_date = await self._read_return_date(user_id, state.data["departure_date"], text)
        if not accepted:
            return
        self._advance(user_id, state, Step.ALERT_TARGET_PRICE, return_date=return_date)
        await self._say(user_id, ASK_TARGET)

    async def _alert_target_price(self, user_id: str, state: ConversationState, text: str):
        target = parse_target_price(text)
        if target is None:
            await self._say(user_id, "❌ Please enter a valid price number (e.g., 500)")
            return

        data = state.data
        booking_url = self.provider.build_booking_url(
            data["origin"], data["destination"], data["departure_date"], data.get("return_date")
        )
        db = self.session_factory()
        try:
            alert = TrackingRepository(db).create_alert(
                user_id,
                data["origin"],
                data["destination"],
                data["departure_date"],
                data.get("return_date"),
                target_price=Decimal(target),
                booking_url=booking_url,
            )
            alert_id = alert.id
        finally:
            db.close()

        self.sessions.delete(user_id)
        await self._say(
            user_id,
            "✅ Flight alert created successfully!\n\n"
            f"📍 Route: {data['origin']} → {data['destination']}\n"
            f"📅 Departure: {data['departure_date']}\n"
            f"{'🔄 Return: ' + data['return_date'] if data.get('return_date') else '🎫 One-way flight'}\n"
            f"💰 Target Price: {format_price(target)}\n"
            f"🆔 Alert ID: {alert_id}\n\n"
            "I'll start monitoring prices and notify you of any drops! 🔔",
            keyboard=MAIN_MENU,
        )
        await self._initial_price_check(alert_id)

    # ------------------------------------------------------------------
    # Flight tracking flows
    # ------------------------------------------------------------------

    async def _track_method(self, user_id: str, state: ConversationState, text: str):
        if text == METHOD_ROUTE:
            self._advance(user_id, state, Step.TRACK_FLIGHT_ORIGIN, tracking_method="route")
            await self._say(user_id, ASK_ORIGIN)
        elif text == METHOD_FLIGHT_NUMBER:
            self._advance(user_id, state, Step.TRACK_FLIGHT_AIRLINE, tracking_method="flight_number")
            await self._say(user_id, ASK_AIRLINE)
        else:
            await self._say(user_id, "❌ Please select one of the provided options.", keyboard=TRACK_METHOD_MENU)

    async def _track_origin(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        # Route tracking always takes the best match
        airport = airports[0]
        self._advance(user_id, state, Step.TRACK_FLIGHT_DESTINATION, origin=airport.code, origin_name=airport.name)
        await self._say(user_id, f"✅ Selected departure: {airport.name} ({airport.code})\n\n{ASK_DESTINATION}")

    async def _track_destination(self, user_id: str, state: ConversationState, text: str):
        airports = await self._resolve_airports(user_id, text)
        if airports is None:
            return
        airport = airports[0]
        self._advance(user_id, state, Step.TRACK_FLIGHT_DATE, destination=airport.code, destination_name=airport.name)
        await self._say(user_id, f"✅ Selected destination: {airport.name} ({airport.code})\n\n{ASK_FLIGHT_DATE}")

    async def _track_airline(self, user_id: str, state: ConversationState, text: str):
        code = find_airline_code(text)
        if not _AIRLINE_CODE.match(code):
            await self._say(user_id, f"❌ I don't recognise that airline. {ASK_AIRLINE}")
            return
        self._advance(user_id, state, Step.TRACK_FLIGHT_NUMBER, carrier_code=code)
        await self._say(user_id, f"✅ Airline code: {code}\n\n📝 Please enter the flight number (digits only, e.g., 123):")

    async def _track_number(self, user_id: str, state: ConversationState, text: str):
        if not _FLIGHT_NUMBER.match(text):
            await self._say(user_id, "❌ Please enter only digits for the flight number (e.g., 123)")
            return
        self._advance(user_id, state, Step.TRACK_FLIGHT_DATE, flight_number=text)
        await self._say(user_id, ASK_FLIGHT_DATE)

    async def _track_date(self, user_id: str, state: ConversationState, text: str):
        flight_date = await self._read_travel_date(user_id, text)
        if flight_date is None:
            return
        state.data["date"] = flight_date

        if state.data.get("tracking_method") == "route":
            await self._offer_flights_to_track(user_id, state)
        else:
            await self._track_by_number(user_id, state)

    async def _offer_flights_to_track(self, user_id: str, state: ConversationState):
        origin, destination, flight_date = state.data["origin"], state.data["destination"], state.data["date"]
        await self._say(user_id, f"🔍 Searching for flights from {origin} to {destination} on {flight_date}... Hold on.")

        try:
            offers = await self.provider.search_offers(origin, destination, flight_date)
        except ProviderError as e:
            logger.warning(f"Route search for tracking failed for user {user_id}: {e}")
            self.sessions.delete(user_id)
            await self._say(user_id, "❌ Error searching flights. Please try again later.", keyboard=MAIN_MENU)
            return

        offers = [o for o in offers if o.segments][:MAX_TRACKABLE_OFFERS]
        if not offers:
            self.sessions.delete(user_id)
            await self._say(
                user_id,
                "❌ No flights found for this route and date. Please try a different date or route.",
                keyboard=MAIN_MENU,
            )
            return

        lines = [f"✅ Found {len(offers)} flights from {origin} to {destination} on {flight_date}.", "",
                 "Please select a flight to track:", ""]
        choices = []
        for index, offer in enumerate(offers):
            legs = " + ".join(s.designator for s in offer.segments)
            departs = format_time(offer.departure_time)
            lines.append(f"{index + 1}. {legs} - {departs} → {format_time(offer.arrival_time)}")
            choices.append([Choice(
                f"{index + 1}. {legs} at {departs}",
                CallbackAction.of(CallbackKind.SELECT_FLIGHT, index).encode(),
            )])

        self._advance(user_id, state, Step.SELECT_FLIGHT_TO_TRACK, flights=offers)
        await self._say(user_id, "\n".join(lines), choices=choices)

    async def _select_flight(self, user_id: str, state: ConversationState, index: int, callback_id: str):
        flights: List[Offer] = state.data.get("flights") or []
        if index >= len(flights):
            await self.transport.answer_callback(callback_id, "Invalid selection. Please pick again.")
            return

        offer = flights[index]
        data = dict(state.data)
        self.sessions.delete(user_id)

        await self.flight_tracker.create_flight_track(
            user_id,
            data["date"],
            origin=data["origin"],
            destination=data["destination"],
            segments=offer.segments,
        )
        await self.transport.answer_callback(callback_id, "Flight tracking enabled successfully!")

    async def _track_by_number(self, user_id: str, state: ConversationState):
        carrier, number, flight_date = state.data["carrier_code"], state.data["flight_number"], state.data["date"]
        await self._say(user_id, f"🔍 Checking flight {carrier}{number} on {flight_date}...")

        status = await self.flight_tracker.get_flight_status(carrier, number, flight_date)
        self.sessions.delete(user_id)
        if status is None:
            await self._say(
                user_id,
                "❌ Flight not found. Please check the airline, flight number, and date.",
                keyboard=MAIN_MENU,
            )
            return

        await self.flight_tracker.create_flight_track(
            user_id,
            flight_date,
            origin=status.departure_airport,
            destination=status.arrival_airport,
            carrier_code=carrier,
            flight_number=number,
        )
