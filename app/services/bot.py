"""
Telegram update routing.

Commands and main-menu buttons always win over an in-progress dialog; any
other text is fed to the user's current conversation step. Inline-button
callbacks are decoded into CallbackActions and dispatched by kind.
"""
import logging
from typing import Awaitable, Callable, Dict, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.services.callbacks import CallbackAction, CallbackKind
from app.services.chat import ChatTransport, Choice, MAIN_MENU
from app.services.conversation import ConversationService, GENERIC_ERROR
from app.services.flight_tracker import FlightTracker
from app.services.price_monitor import PriceMonitor
from app.services.repository import OwnershipError, TrackingNotFound, TrackingRepository
from app.services.sessions import SessionStore
from app.utils.links import build_share_link, build_telegram_share_url

logger = logging.getLogger(__name__)

BACK_TO_MENU = "🔙 Back to Main Menu"

HELP_TEXT = (
    "❓ AeroWizard Help\n\n"
    "🔍 /search - Search flights between two cities\n"
    "💰 /track - Create a price alert with a target price\n"
    "🛫 /trackflight - Track a flight's schedule, gate and terminal\n"
    "📋 /myalerts - View and manage your price alerts\n"
    "✈️ /myflights - View and manage your tracked flights\n"
    "⭐ /premium - Your subscription\n"
    "🔗 /share - Share the bot with friends\n"
    "🚫 /cancel - Stop the current dialog\n\n"
    "Prices are checked every few hours and you'll get a message whenever "
    "they move. Tracked flights are checked every 30 minutes."
)

Handler = Callable[[str], Awaitable[None]]


class BotRouter:

    def __init__(
        self,
        transport: ChatTransport,
        sessions: SessionStore,
        conversation: ConversationService,
        price_monitor: PriceMonitor,
        flight_tracker: FlightTracker,
        session_factory: Callable[[], Session],
    ):
        settings = get_settings()
        self.transport = transport
        self.sessions = sessions
        self.conversation = conversation
        self.price_monitor = price_monitor
        self.flight_tracker = flight_tracker
        self.session_factory = session_factory
        self.bot_username = settings.bot_username
        self.support_contact = settings.support_contact

        self._commands: Dict[str, Handler] = {
            "/start": self.send_welcome,
            "/search": self.conversation.start_search,
            "/track": self.conversation.start_price_alert,
            "/trackflight": self.conversation.start_flight_tracking,
            "/myalerts": self.price_monitor.show_user_alerts,
            "/myflights": self.flight_tracker.show_user_flight_tracks,
            "/premium": self.send_premium,
            "/help": self.send_help,
            "/share": self.send_share,
            "/cancel": self.cancel_dialog,
        }
        self._menu: Dict[str, Handler] = {
            "🔍 Search Flights": self.conversation.start_search,
            "💰 My Price Alerts": self.price_monitor.show_user_alerts,
            "✈️ My Tracked Flights": self.flight_tracker.show_user_flight_tracks,
            "🛫 Track Flights": self.conversation.start_flight_tracking,
            "❓ Help": self.send_help,
            "⭐ Premium": self.send_premium,
            "🔗 Share": self.send_share,
            BACK_TO_MENU: self.cancel_dialog,
        }

    async def handle_update(self, update: dict):
        """Entry point for one webhook update."""
        if "callback_query" in update:
            query = update["callback_query"]
            sender = query.get("from") or {}
            chat = (query.get("message") or {}).get("chat") or {}
            user_id = str(chat.get("id") or sender.get("id") or "")
            if not user_id:
                logger.warning(f"Callback without a user: {query.get('id')}")
                return
            async with self.sessions.lock(user_id):
                self._touch_user(user_id, sender.get("username"))
                await self.handle_callback(user_id, query.get("id"), query.get("data") or "")
            return

        message = update.get("message")
        if not message or "text" not in message:
            logger.debug(f"Ignoring update {update.get('update_id')} without text")
            return

        sender = message.get("from") or {}
        user_id = str(message["chat"]["id"])
        async with self.sessions.lock(user_id):
            self._touch_user(user_id, sender.get("username"))
            await self.handle_text(user_id, message["text"])

    def _touch_user(self, user_id: str, username: Optional[str]):
        db = self.session_factory()
        try:
            TrackingRepository(db).touch_user(user_id, username)
        finally:
            db.close()

    async def handle_text(self, user_id: str, text: str):
        text = text.strip()
        # "/start@aerowizard_bot ref_123" -> "/start"
        command = text.split()[0].split("@")[0].lower() if text.startswith("/") else None

        handler = self._commands.get(command) if command else self._menu.get(text)
        if handler is not None:
            if handler != self.cancel_dialog:
                self.sessions.delete(user_id)
            logger.info(f"User {user_id} -> {command or text}")
            try:
                await handler(user_id)
            except Exception:
                logger.exception(f"Handler for {command or text} failed for user {user_id}")
                self.sessions.delete(user_id)
                await self.transport.send_message(user_id, GENERIC_ERROR)
            return

        if await self.conversation.handle_text(user_id, text):
            return

        await self.transport.send_message(
            user_id,
            "🤔 I didn't understand that. Please use the menu below or /help.",
            keyboard=MAIN_MENU,
        )

    async def handle_callback(self, user_id: str, callback_id: str, payload: str):
        try:
            action = CallbackAction.decode(payload)
        except ValueError as e:
            logger.warning(f"Rejected callback from {user_id}: {e}")
            await self.transport.answer_callback(callback_id, "Invalid request")
            return

        logger.info(f"User {user_id} callback {action.kind.value}")
        try:
            if action.is_stateful:
                await self.conversation.handle_selection(user_id, action, callback_id)
            elif action.kind == CallbackKind.TRACK_ROUTE:
                await self.conversation.track_route(user_id, action, callback_id)
            elif action.kind == CallbackKind.ALERT_HISTORY:
                await self.transport.answer_callback(callback_id)
                await self.price_monitor.send_price_history(user_id, action.int_arg())
            elif action.kind == CallbackKind.CANCEL_ALERT:
                await self._cancel_alert(user_id, action.int_arg(), callback_id)
            elif action.kind == CallbackKind.CANCEL_TRACK:
                await self._cancel_track(user_id, action.int_arg(), callback_id)
            elif action.kind == CallbackKind.SEARCH_NEW:
                await self.transport.answer_callback(callback_id)
                await self.conversation.start_search(user_id)
            elif action.kind == CallbackKind.COPY_SHARE_LINK:
                await self.transport.answer_callback(callback_id, "Link sent!")
                await self.transport.send_message(
                    user_id, f"📋 Here's your share link:\n{build_share_link(self.bot_username)}"
                )
        except Exception:
            logger.exception(f"Callback {payload} failed for user {user_id}")
            await self.transport.answer_callback(callback_id, "Error processing request", show_alert=True)

    async def _cancel_alert(self, user_id: str, alert_id: int, callback_id: str):
        try:
            self.price_monitor.cancel_alert(user_id, alert_id)
        except TrackingNotFound:
            await self.transport.answer_callback(callback_id, "Alert not found", show_alert=True)
            return
        except OwnershipError:
            await self.transport.answer_callback(callback_id, "You can only cancel your own alerts", show_alert=True)
            return

        await self.transport.answer_callback(callback_id, "Alert cancelled")
        await self.transport.send_message(user_id, f"✅ Price alert #{alert_id} cancelled.")

    async def _cancel_track(self, user_id: str, track_id: int, callback_id: str):
        try:
            tracks = self.flight_tracker.cancel_flight_track(user_id, track_id)
        except TrackingNotFound:
            await self.transport.answer_callback(callback_id, "Flight track not found", show_alert=True)
            return
        except OwnershipError:
            await self.transport.answer_callback(
                callback_id, "You can only cancel your own flight tracks", show_alert=True
            )
            return

        await self.transport.answer_callback(callback_id, "Flight tracking cancelled")
        if len(tracks) > 1:
            text = f"✅ Stopped tracking all {len(tracks)} segments of this journey."
        else:
            text = f"✅ Stopped tracking {tracks[0].designator}."
        await self.transport.send_message(user_id, text)

    # ------------------------------------------------------------------
    # Static screens
    # ------------------------------------------------------------------

    async def send_welcome(self, user_id: str):
        await self.transport.send_message(
            user_id,
            "✈️ Welcome to AeroWizard!\n\n"
            "I search flights, watch prices for you and keep an eye on your flight's schedule.\n\n"
            "Pick an option from the menu below to get started.",
            keyboard=MAIN_MENU,
        )

    async def send_help(self, user_id: str):
        await self.transport.send_message(
            user_id, f"{HELP_TEXT}\n\nQuestions? Contact {self.support_contact}", keyboard=MAIN_MENU
        )

    async def send_premium(self, user_id: str):
        db = self.session_factory()
        try:
            user = TrackingRepository(db).get_user(user_id)
        finally:
            db.close()

        if user is not None and user.is_premium:
            expiry = f"until {user.subscription_expiry:%Y-%m-%d}" if user.subscription_expiry else "with no expiry"
            text = f"⭐ You're a Premium member {expiry}.\n\nThank you for supporting AeroWizard!"
        else:
            text = (
                "⭐ AeroWizard Premium\n\n"
                "You're on the Free plan. All features are currently available to everyone.\n\n"
                f"To hear about Premium, contact {self.support_contact}"
            )
        await self.transport.send_message(user_id, text)

    async def send_share(self, user_id: str):
        await self.transport.send_message(
            user_id,
            "🔗 Enjoying AeroWizard? Share it with your friends!",
            choices=[
                [Choice("📤 Share on Telegram", url=build_telegram_share_url(self.bot_username))],
                [Choice("📋 Copy Link", CallbackAction.of(CallbackKind.COPY_SHARE_LINK).encode())],
            ],
        )

    async def cancel_dialog(self, user_id: str):
        if self.conversation.cancel(user_id):
            text = "🚫 Cancelled. What would you like to do next?"
        else:
            text = "🏠 Main menu"
        await self.transport.send_message(user_id, text, keyboard=MAIN_MENU)
