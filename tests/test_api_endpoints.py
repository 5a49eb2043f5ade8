"""Tests for API endpoints."""
from datetime import datetime, timezone
from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from app.config import get_settings
from app.services.notification import Notification, get_global_notifier


@pytest.fixture
def cron_secret(monkeypatch):
    monkeypatch.setattr(get_settings(), "cron_secret", "s3cret")
    return "s3cret"


@pytest.fixture
def webhook_secret(monkeypatch):
    monkeypatch.setattr(get_settings(), "telegram_webhook_secret", "hook-secret")
    return "hook-secret"


def _services(price_summary=None, flight_summary=None, error=None) -> MagicMock:
    services = MagicMock()
    services.price_monitor.check_all_alerts = AsyncMock(return_value=price_summary, side_effect=error)
    services.flight_tracker.check_all_tracked_flights = AsyncMock(return_value=flight_summary, side_effect=error)
    return services


class TestPing:
    async def test_ping(self, client):
        response = await client.get("/ping")
        assert response.status_code == 200


class TestCronAPI:
    async def test_missing_secret_is_forbidden(self, client, cron_secret):
        response = await client.get("/cron/check-prices")
        assert response.status_code == 403

    async def test_wrong_secret_is_forbidden(self, client, cron_secret):
        response = await client.get("/cron/check-flights", headers={"Authorization": "Bearer nope"})
        assert response.status_code == 403

    async def test_unconfigured_secret_rejects_everything(self, client, monkeypatch):
        monkeypatch.setattr(get_settings(), "cron_secret", "")
        response = await client.get("/cron/check-prices", headers={"Authorization": "Bearer "})
        assert response.status_code == 403

    async def test_check_prices(self, client, cron_secret):
        services = _services(price_summary={"checked": 3, "notified": 1, "errors": 0, "expired": 2})

        with patch("app.api.cron.get_services", return_value=services):
            response = await client.get("/cron/check-prices", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 200
        assert response.json() == {"checked": 3, "notified": 1, "errors": 0, "expired": 2}

    async def test_check_flights_while_running(self, client, cron_secret):
        services = _services(flight_summary={
            "checked": 0, "notified": 0, "errors": 0, "skipped_reason": "already_running",
        })

        with patch("app.api.cron.get_services", return_value=services):
            response = await client.get("/cron/check-flights", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 200
        assert response.json()["skipped_reason"] == "already_running"
        assert "expired" not in response.json()

    async def test_cycle_failure(self, client, cron_secret):
        services = _services(error=RuntimeError("database is locked"))

        with patch("app.api.cron.get_services", return_value=services):
            response = await client.get("/cron/check-prices", headers={"Authorization": f"Bearer {cron_secret}"})

        assert response.status_code == 500
        assert "database is locked" in response.json()["detail"]


class TestTelegramWebhook:
    UPDATE = {"update_id": 7, "message": {"chat": {"id": 1}, "from": {"id": 1}, "text": "/start"}}

    async def test_bad_secret_is_rejected(self, client, webhook_secret):
        with patch("app.api.telegram.process_update", new=AsyncMock()) as process:
            response = await client.post(
                "/telegram/webhook",
                json=self.UPDATE,
                headers={"X-Telegram-Bot-Api-Secret-Token": "wrong"},
            )

        assert response.status_code == 403
        process.assert_not_awaited()

    async def test_update_is_accepted(self, client, webhook_secret):
        with patch("app.api.telegram.process_update", new=AsyncMock()) as process:
            response = await client.post(
                "/telegram/webhook",
                json=self.UPDATE,
                headers={"X-Telegram-Bot-Api-Secret-Token": webhook_secret},
            )

        assert response.status_code == 200
        assert response.json() == {"ok": True}
        process.assert_awaited_once_with(self.UPDATE)


def _record(id: str, user_id: str = "42", type: str = "price_alert", delivered: bool = True) -> Notification:
    return Notification(
        id=id,
        user_id=user_id,
        title="📉 PRICE DROPPED!",
        message="JFK → LAX",
        priority="default",
        timestamp=datetime.now(timezone.utc),
        type=type,
        delivered=delivered,
    )


class TestNotificationsAPI:
    @pytest.fixture(autouse=True)
    def history(self):
        notifier = get_global_notifier()
        notifier.clear_notifications()
        yield notifier.history
        notifier.clear_notifications()

    async def test_list_and_clear(self, client, history):
        history.add(_record("n1"))

        response = await client.get("/api/notifications")
        assert response.status_code == 200
        assert [n["id"] for n in response.json()] == ["n1"]
        assert response.json()[0]["type"] == "price_alert"

        response = await client.delete("/api/notifications")
        assert response.json() == {"status": "cleared", "dropped": 1}
        assert (await client.get("/api/notifications")).json() == []

    async def test_filters(self, client, history):
        history.add(_record("n1", user_id="42"))
        history.add(_record("n2", user_id="7", type="flight_status"))
        history.add(_record("n3", user_id="42", type="summary", delivered=False))

        by_user = await client.get("/api/notifications", params={"user_id": "42"})
        by_type = await client.get("/api/notifications", params={"type": "flight_status"})
        failed = await client.get("/api/notifications", params={"undelivered_only": "true"})

        assert [n["id"] for n in by_user.json()] == ["n3", "n1"]
        assert [n["id"] for n in by_type.json()] == ["n2"]
        assert [n["id"] for n in failed.json()] == ["n3"]

    async def test_rejects_unknown_type_and_bad_limit(self, client):
        assert (await client.get("/api/notifications", params={"type": "spam"})).status_code == 422
        assert (await client.get("/api/notifications", params={"limit": 0})).status_code == 422
