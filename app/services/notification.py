from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Optional, List, Dict
import uuid
import logging

from app.services.callbacks import CallbackAction, CallbackKind
from app.services.chat import ChatTransport, Choice
from app.services.flight_data import FlightStatus, Offer
from app.services.price_policy import AlertReason
from app.services.telegram import TelegramClient
from app.utils.links import is_http_url

logger = logging.getLogger(__name__)


@dataclass
class Notification:
    """Notification record."""
    id: str
    user_id: str
    title: str
    message: str
    priority: str
    timestamp: datetime
    type: str  # "price_alert", "flight_status", "summary" or "system"
    delivered: bool = False


class NotificationHistory:
    """In-memory notification history for the operator API."""

    def __init__(self, max_notifications: int = 100):
        self._notifications: List[Notification] = []
        self._max_notifications = max_notifications

    def add(self, notification: Notification):
        self._notifications.append(notification)
        if len(self._notifications) > self._max_notifications:
            self._notifications.pop(0)

    def get_recent(
        self,
        limit: int = 50,
        user_id: Optional[str] = None,
        type: Optional[str] = None,
        undelivered_only: bool = False,
    ) -> List[Dict]:
        """Newest first, filtered before the limit is applied."""
        recent = [
            n for n in self._notifications
            if (user_id is None or n.user_id == str(user_id))
            and (type is None or n.type == type)
            and not (undelivered_only and n.delivered)
        ]
        if limit:
            recent = recent[-limit:]
        return [asdict(n) for n in reversed(recent)]

    def clear(self):
        self._notifications.clear()

    def __len__(self) -> int:
        return len(self._notifications)


def format_price(value) -> str:
    if value is None:
        return "Checking..."
    return f"${Decimal(str(value)):.2f}"


def format_time(value: Optional[str]) -> str:
    """ISO timestamp -> "Dec 25 10:00"; unknown input passes through."""
    if not value:
        return "Unknown"
    try:
        return datetime.fromisoformat(value.replace("Z", "+00:00")).strftime("%b %d %H:%M")
    except ValueError:
        return value


REASON_HEADLINES = {
    AlertReason.TARGET_REACHED: "🎯 TARGET PRICE REACHED!",
    AlertReason.SIGNIFICANT_DROP: "📉 SIGNIFICANT PRICE DROP!",
    AlertReason.PRICE_DROP: "📉 PRICE DROPPED!",
    AlertReason.PRICE_INCREASE: "📈 PRICE INCREASED!",
    AlertReason.FIRST_CHECK: "✅ Flight tracking started!",
}

REASON_PRIORITY = {
    AlertReason.TARGET_REACHED: "high",
    AlertReason.SIGNIFICANT_DROP: "high",
}


class Notifier:
    """
    Formats monitor decisions and hands them to the chat transport.

    Delivery is fire-and-forget: failures are logged by the transport and
    recorded in history, never raised back to the monitors.
    """

    def __init__(self, transport: ChatTransport, history: Optional[NotificationHistory] = None):
        self.transport = transport
        self.history = history or NotificationHistory()

    async def _deliver(
        self,
        user_id: str,
        title: str,
        message: str,
        notification_type: str,
        priority: str = "default",
        choices=None,
    ) -> bool:
        text = f"{title}\n\n{message}" if title else message
        try:
            delivered = await self.transport.send_message(str(user_id), text, choices=choices)
        except Exception as e:
            logger.error(f"Failed to deliver {notification_type} to {user_id}: {e}")
            delivered = False

        self.history.add(Notification(
            id=str(uuid.uuid4()),
            user_id=str(user_id),
            title=title,
            message=message,
            priority=priority,
            timestamp=datetime.now(timezone.utc),
            type=notification_type,
            delivered=delivered,
        ))
        if delivered:
            logger.info(f"Notification sent to {user_id}: {title}")
        return delivered

    async def send_price_alert(
        self,
        alert,  # PriceAlert
        offer: Offer,
        reason: AlertReason,
        previous_price: Optional[Decimal] = None,
    ) -> bool:
        lines = [f"📍 Route: {alert.origin} → {alert.destination}", f"📅 Departure: {alert.departure_date}"]
        if alert.return_date:
            lines.append(f"🔄 Return: {alert.return_date}")
        lines.append("")
        lines.append(f"💰 Current Price: {format_price(offer.price_value)}")

        if previous_price is not None and reason != AlertReason.FIRST_CHECK:
            savings = Decimal(str(previous_price)) - offer.price_value
            if savings > 0:
                lines.append(f"💸 You saved: {format_price(savings)} (was {format_price(previous_price)})")

        # Target of 0 is "any change" mode, nothing to show
        if alert.target_price and alert.target_price > 0:
            lines.append(f"🎯 Your target: {format_price(alert.target_price)}")
        lines.append(f"✈️ Airline: {offer.airline}")

        booking_url = offer.booking_url or alert.booking_url
        if is_http_url(booking_url):
            lines.append(f"\n🔗 Book now: {booking_url}")
        else:
            lines.append("\n🔗 Book now: Not available")
        lines.append(f"\n🆔 Alert ID: {alert.id}")

        choices = [[
            Choice("📊 Price History", CallbackAction.of(CallbackKind.ALERT_HISTORY, alert.id).encode()),
            Choice("❌ Cancel Alert", CallbackAction.of(CallbackKind.CANCEL_ALERT, alert.id).encode()),
        ]]
        if is_http_url(booking_url):
            choices.append([Choice("✈️ View Flight", url=booking_url)])

        return await self._deliver(
            alert.user_id,
            REASON_HEADLINES[reason],
            "\n".join(lines),
            "price_alert",
            priority=REASON_PRIORITY.get(reason, "default"),
            choices=choices,
        )

    async def send_status_update(self, track, status: FlightStatus) -> bool:
        lines = [
            f"Flight: {status.designator}",
            f"Route: {status.departure_airport or track.origin or 'N/A'} → "
            f"{status.arrival_airport or track.destination or 'N/A'}",
            f"Date: {track.flight_date}",
            "",
            f"🛫 Departure: {format_time(status.scheduled_departure)} from {status.departure_airport or 'N/A'}",
            f"🛬 Arrival: {format_time(status.scheduled_arrival)} at {status.arrival_airport or 'N/A'}",
        ]
        if status.terminal:
            lines.append(f"🏢 Terminal: {status.terminal}")
        if status.gate:
            lines.append(f"🚪 Gate: {status.gate}")
        lines.append(f"📊 Status: {status.status.value}")
        if track.is_segment:
            lines.append(f"🧩 Segment {track.segment_index + 1} of journey {track.journey_label}")

        choices = [[
            Choice("❌ Stop Tracking This Flight", CallbackAction.of(CallbackKind.CANCEL_TRACK, track.id).encode()),
        ]]
        return await self._deliver(
            track.user_id,
            "✈️ Flight Status Update!",
            "\n".join(lines),
            "flight_status",
            priority="high" if status.status.value in ("CANCELLED", "DELAYED") else "default",
            choices=choices,
        )

    async def send_weekly_summary(self, user_id: str, alerts: list, stats: dict) -> bool:
        active = [a for a in alerts if a.is_active]
        priced = [a.current_price for a in active if a.current_price is not None]
        lines = [f"✈️ Active Alerts: {len(active)}"]
        if priced:
            average = sum(priced, Decimal("0")) / len(priced)
            lines.append(f"💰 Average Price: {format_price(average)}")
        if stats.get("best_price") is not None:
            lines.append(f"🏆 Best Price Seen: {format_price(stats['best_price'])}")

        lines.append("\n📈 Recent Activity:")
        for index, alert in enumerate(active[:3], start=1):
            lines.append(f"{index}. {alert.origin} → {alert.destination}")
            lines.append(
                f"   Current: {format_price(alert.current_price)} | Target: {format_price(alert.target_price)}"
            )
        lines.append("\nUse /myalerts to manage your alerts.")

        return await self._deliver(user_id, "📊 Your Weekly Flight Summary", "\n".join(lines), "summary")

    async def send_system_message(self, user_id: str, title: str, message: str) -> bool:
        return await self._deliver(user_id, title, message, "system")

    def get_notifications(self, limit: int = 50, **filters) -> List[Dict]:
        """Get recent notifications for the operator API."""
        return self.history.get_recent(limit, **filters)

    def clear_notifications(self) -> int:
        """Clear notification history, returning how many records were dropped."""
        dropped = len(self.history)
        self.history.clear()
        return dropped


# Create global notifier instance
_global_notifier: Optional[Notifier] = None


def get_global_notifier() -> Notifier:
    global _global_notifier
    if _global_notifier is None:
        _global_notifier = Notifier(TelegramClient())
    return _global_notifier


async def shutdown_notifier():
    """Close the global notifier's transport."""
    global _global_notifier
    if _global_notifier is not None:
        await _global_notifier.transport.close()
        _global_notifier = None
