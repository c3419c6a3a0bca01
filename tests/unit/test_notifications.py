"""Tests for owner booking notifications."""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest

from fleetbook.notifications.bots import BotRegistry, bots
from fleetbook.notifications.telegram import TelegramNotifier, notify_owner
from fleetbook.schemas.notification import BookingNotification


@pytest.fixture
def notification():
    return BookingNotification(
        reservation_id="1a2b3c4d-0000-0000-0000-000000000000",
        booking_number="BK-1A2B3C4D",
        vehicle_name="Toyota Yaris",
        customer_full_name="Maria Papadopoulou",
        customer_phone="+30 690 000 0000",
        customer_email="maria@example.com",
        pickup="2024-06-01",
        dropoff="2024-06-04",
        rental_days=3,
        total_price=266.6,
        discount_code="SAVE10",
    )


class TestTelegramNotifier:
    def test_render(self, notification):
        text = TelegramNotifier().render(notification)

        assert "BK-1A2B3C4D" in text
        assert "266.60 EUR" in text
        assert "SAVE10" in text
        assert "#1a2b3c4d" in text

    @pytest.mark.asyncio
    async def test_send_failure_reported_not_raised(self, notification):
        bot = MagicMock()
        bot.send_message = AsyncMock(side_effect=RuntimeError("blocked by user"))

        assert await TelegramNotifier().send_booking_notification(bot, 42, notification) is False

    @pytest.mark.asyncio
    async def test_send(self, notification):
        bot = MagicMock()
        bot.send_message = AsyncMock()

        assert await TelegramNotifier().send_booking_notification(bot, 42, notification) is True
        assert bot.send_message.await_args.kwargs["parse_mode"] == "HTML"


class TestNotifyOwner:
    @pytest.mark.asyncio
    async def test_no_bot_configured(self, notification):
        assert await notify_owner(None, 42, notification) is False

    @pytest.mark.asyncio
    async def test_bot_creation_failure(self, notification):
        with patch.object(bots, "get", MagicMock(side_effect=ValueError("bad token"))):
            assert await notify_owner("123:abc", 42, notification) is False


class TestBotRegistry:
    def test_bot_reused_per_token(self):
        registry = BotRegistry()
        with patch("fleetbook.notifications.bots.Bot", side_effect=lambda token: MagicMock(token=token)):
            first = registry.get("123:abc")
            again = registry.get("123:abc")
            other = registry.get("456:def")

        assert first is again
        assert other is not first
        assert other.token == "456:def"

    @pytest.mark.asyncio
    async def test_close_releases_sessions(self):
        registry = BotRegistry()
        with patch("fleetbook.notifications.bots.Bot", side_effect=lambda token: MagicMock()):
            bot = registry.get("123:abc")
        bot.session.close = AsyncMock()

        await registry.close()

        bot.session.close.assert_awaited_once()
        with patch("fleetbook.notifications.bots.Bot", side_effect=lambda token: MagicMock()):
            assert registry.get("123:abc") is not bot
