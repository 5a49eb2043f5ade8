"""
Price alert monitoring.

Re-prices every active alert on a schedule, stores what it saw and decides
whether the movement is worth a notification. State updates and
notifications are separate: history is recorded even on quiet checks.
"""
import asyncio
import logging
from decimal import Decimal
from typing import Callable, Optional

from sqlalchemy.orm import Session

from app.config import get_settings
from app.services.chat import Choice
from app.services.callbacks import CallbackAction, CallbackKind
from app.services.flight_data import FlightDataProvider, ProviderError, cheapest_offer
from app.services.notification import Notifier, format_price
from app.services.price_policy import AlertReason, DropPolicy, decide_notification
from app.services.repository import TrackingRepository
from app.utils.dates import today_utc

logger = logging.getLogger(__name__)

HISTORY_VIEW_LIMIT = 10


class PriceMonitor:
    """
    Checks price alerts against the flight-data provider.

    Only one full cycle runs at a time; a call that finds a cycle in
    progress returns immediately with skipped_reason "already_running".
    """

    def __init__(
        self,
        provider: FlightDataProvider,
        notifier: Notifier,
        session_factory: Callable[[], Session],
        policy: Optional[DropPolicy] = None,
        delay_seconds: Optional[float] = None,
        summary_delay_seconds: float = 1.0,
    ):
        settings = get_settings()
        self.provider = provider
        self.notifier = notifier
        self.session_factory = session_factory
        self.policy = policy or DropPolicy.from_settings(settings)
        self.delay_seconds = settings.alert_check_delay_seconds if delay_seconds is None else delay_seconds
        self.summary_delay_seconds = summary_delay_seconds
        self._cycle_lock = asyncio.Lock()

    @property
    def is_running(self) -> bool:
        return self._cycle_lock.locked()

    async def check_all_alerts(self) -> dict:
        """
        Run one full cycle: expire past alerts, then check each active alert.

        Returns summary: {checked, notified, errors, expired}
        """
        if self._cycle_lock.locked():
            logger.info("Price check cycle already running, skipping")
            return {"checked": 0, "notified": 0, "errors": 0, "expired": 0, "skipped_reason": "already_running"}

        async with self._cycle_lock:
            db = self.session_factory()
            summary = {"checked": 0, "notified": 0, "errors": 0, "expired": 0}
            try:
                repo = TrackingRepository(db)
                summary["expired"] = repo.expire_past_alerts(today_utc())

                alert_ids = [alert.id for alert in repo.get_active_alerts()]
                logger.info(f"Checking {len(alert_ids)} active price alerts")

                for index, alert_id in enumerate(alert_ids):
                    try:
                        reason = await self._check_alert(repo, alert_id)
                        summary["checked"] += 1
                        if reason is not None:
                            summary["notified"] += 1
                    except Exception as e:
                        logger.error(f"Error checking alert {alert_id}: {e}")
                        db.rollback()
                        summary["errors"] += 1

                    if index < len(alert_ids) - 1 and self.delay_seconds:
                        await asyncio.sleep(self.delay_seconds)
            finally:
                db.close()

        logger.info(f"Price check complete: {summary}")
        return summary

    async def check_single_alert(self, alert_id: int) -> Optional[AlertReason]:
        """Check one alert. Returns the notification reason, or None if nothing was sent."""
        db = self.session_factory()
        try:
            return await self._check_alert(TrackingRepository(db), alert_id)
        finally:
            db.close()

    async def _check_alert(self, repo: TrackingRepository, alert_id: int) -> Optional[AlertReason]:
        alert = repo.get_alert(alert_id)
        if alert is None or not alert.is_active:
            logger.debug(f"Alert {alert_id} missing or inactive, skipping")
            return None

        departure = alert.departure_date.isoformat()
        return_date = alert.return_date.isoformat() if alert.return_date else None

        try:
            offers = await self.provider.search_offers(alert.origin, alert.destination, departure, return_date)
        except ProviderError as e:
            logger.warning(f"Offer search failed for alert {alert_id}: {e}")
            repo.record_alert_check(alert)
            return None

        best = cheapest_offer(offers)
        if best is None:
            logger.info(f"No offers for alert {alert_id} ({alert.route} on {departure})")
            repo.record_alert_check(alert)
            return None

        new_price = best.price_value
        previous_price = Decimal(str(alert.current_price)) if alert.current_price is not None else None
        reason = decide_notification(alert.target_price, new_price, previous_price, self.policy)

        repo.record_alert_price(alert, new_price, airline=best.airline, booking_url=best.booking_url)
        logger.info(
            f"Alert {alert_id} {alert.route}: {previous_price} -> {new_price}"
            f"{f' ({reason.value})' if reason else ''}"
        )

        if reason is not None:
            await self.notifier.send_price_alert(alert, best, reason, previous_price)
        return reason

    # ------------------------------------------------------------------
    # User-facing views
    # ------------------------------------------------------------------

    async def send_price_history(self, user_id: str, alert_id: int) -> bool:
        """Last entries newest-first plus lowest/highest/average; owner only."""
        transport = self.notifier.transport
        db = self.session_factory()
        try:
            repo = TrackingRepository(db)
            alert = repo.get_alert(alert_id)
            if alert is None or alert.user_id != str(user_id):
                return await transport.send_message(user_id, "❌ Alert not found or access denied.")

            entries = repo.get_price_history(alert_id)
            if not entries:
                return await transport.send_message(user_id, "📊 No price history available yet.")

            prices = [Decimal(str(e.price)) for e in entries]
            lines = [f"📊 Price History for {alert.origin} → {alert.destination}", ""]
            for index, entry in enumerate(entries[:HISTORY_VIEW_LIMIT], start=1):
                lines.append(f"{index}. {format_price(entry.price)} - {entry.recorded_at:%Y-%m-%d %H:%M}")
                if entry.airline:
                    lines.append(f"   ✈️ {entry.airline}")

            average = sum(prices, Decimal("0")) / len(prices)
            lines.extend([
                "",
                "📈 Statistics:",
                f"• Lowest: {format_price(min(prices))}",
                f"• Highest: {format_price(max(prices))}",
                f"• Average: {format_price(average)}",
                f"• Your target: {'Any change' if alert.is_any_change_mode else format_price(alert.target_price)}",
            ])
            return await transport.send_message(user_id, "\n".join(lines))
        finally:
            db.close()

    async def show_user_alerts(self, user_id: str) -> bool:
        transport = self.notifier.transport
        db = self.session_factory()
        try:
            alerts = TrackingRepository(db).get_user_alerts(user_id)
        finally:
            db.close()

        search_new = [Choice("🔍 Search New Flights", CallbackAction.of(CallbackKind.SEARCH_NEW).encode())]
        if not alerts:
            return await transport.send_message(
                user_id,
                "📭 You don't have any active price alerts. Search for flights and tap "
                "\"Track Price Changes\" or use /track to create one.",
                choices=[search_new],
            )

        lines = ["💰 Your Price Alerts:", ""]
        choices = []
        for index, alert in enumerate(alerts, start=1):
            lines.append(f"{index}. {alert.origin} → {alert.destination} on {alert.departure_date}")
            if alert.return_date:
                lines.append(f"   Return: {alert.return_date}")
            target = "Any change" if alert.is_any_change_mode else format_price(alert.target_price)
            lines.append(f"   Target: {target} | Current: {format_price(alert.current_price)}")
            if alert.lowest_price is not None:
                lines.append(f"   Lowest seen: {format_price(alert.lowest_price)}")
            lines.append("")
            choices.append([
                Choice(f"📊 History (#{index})", CallbackAction.of(CallbackKind.ALERT_HISTORY, alert.id).encode()),
                Choice(f"❌ Cancel (#{index})", CallbackAction.of(CallbackKind.CANCEL_ALERT, alert.id).encode()),
            ])
        choices.append(search_new)
        return await transport.send_message(user_id, "\n".join(lines).rstrip(), choices=choices)

    def cancel_alert(self, user_id: str, alert_id: int):
        """Soft-cancel; raises TrackingNotFound or OwnershipError."""
        db = self.session_factory()
        try:
            return TrackingRepository(db).cancel_alert(alert_id, user_id)
        finally:
            db.close()

    # ------------------------------------------------------------------
    # Weekly summary
    # ------------------------------------------------------------------

    async def send_weekly_summaries(self) -> dict:
        db = self.session_factory()
        summary = {"sent": 0, "errors": 0}
        try:
            repo = TrackingRepository(db)
            user_ids = repo.users_with_active_alerts()
            logger.info(f"Sending weekly summaries to {len(user_ids)} users")

            for index, user_id in enumerate(user_ids):
                try:
                    alerts = repo.get_user_alerts(user_id)
                    stats = repo.user_stats(user_id)
                    if await self.notifier.send_weekly_summary(user_id, alerts, stats):
                        summary["sent"] += 1
                except Exception as e:
                    logger.error(f"Error sending weekly summary to {user_id}: {e}")
                    summary["errors"] += 1

                if index < len(user_ids) - 1 and self.summary_delay_seconds:
                    await asyncio.sleep(self.summary_delay_seconds)
        finally:
            db.close()

        logger.info(f"Weekly summaries complete: {summary}")
        return summary
