"""Telegram notification service — sends new booking cards to organization owners."""

from __future__ import annotations

from aiogram import Bot
import structlog

from fleetbook.notifications.bots import bots
from fleetbook.schemas.notification import BookingNotification

logger = structlog.get_logger()

BOOKING_TEMPLATE = """🚗 <b>New booking {booking_number}</b>

👤 <b>Customer:</b> {customer_full_name}
📞 <b>Phone:</b> {customer_phone}
✉️ <b>Email:</b> {customer_email}

🚙 <b>Vehicle:</b> {vehicle_name}
📅 <b>Pickup:</b> {pickup}
📅 <b>Dropoff:</b> {dropoff} ({rental_days} days)
✈️ <b>Flight:</b> {flight_number}

💰 <b>Total:</b> {total_price:,.2f} {currency}{discount_line}

<i>Awaiting payment · #{short_id}</i>"""


class TelegramNotifier:
    """Sends formatted booking notifications via Telegram."""

    def render(self, notification: BookingNotification) -> str:
        discount_line = ""
        if notification.discount_code:
            discount_line = f"\n🏷 <b>Code:</b> {notification.discount_code}"

        return BOOKING_TEMPLATE.format(
            booking_number=notification.booking_number,
            customer_full_name=notification.customer_full_name,
            customer_phone=notification.customer_phone,
            customer_email=notification.customer_email,
            vehicle_name=notification.vehicle_name,
            pickup=notification.pickup,
            dropoff=notification.dropoff,
            rental_days=notification.rental_days,
            flight_number=notification.flight_number or "—",
            total_price=notification.total_price,
            currency=notification.currency,
            discount_line=discount_line,
            short_id=notification.reservation_id[:8],
        )

    async def send_booking_notification(
        self,
        bot: Bot,
        owner_chat_id: int,
        notification: BookingNotification,
    ) -> bool:
        """Send a booking notification to the organization owner.

        Args:
            bot: The organization's Telegram bot instance
            owner_chat_id: Telegram chat ID of the owner
            notification: Booking notification data

        Returns:
            True if sent successfully
        """
        try:
            await bot.send_message(
                chat_id=owner_chat_id,
                text=self.render(notification),
                parse_mode="HTML",
            )
            logger.info(
                "booking_notification_sent",
                owner_chat_id=owner_chat_id,
                reservation_id=notification.reservation_id,
            )
            return True

        except Exception as e:
            logger.error(
                "booking_notification_failed",
                error=str(e),
                owner_chat_id=owner_chat_id,
            )
            return False


async def notify_owner(
    telegram_bot_token: str | None,
    owner_chat_id: int | None,
    notification: BookingNotification,
) -> bool:
    """Fire-and-forget entry point; skips organizations without a bot configured."""
    if not telegram_bot_token or not owner_chat_id:
        logger.debug("booking_notification_skipped", reservation_id=notification.reservation_id)
        return False
    try:
        bot = bots.get(telegram_bot_token)
    except Exception as e:
        logger.error("notification_bot_unavailable", error=str(e))
        return False
    return await TelegramNotifier().send_booking_notification(bot, owner_chat_id, notification)
