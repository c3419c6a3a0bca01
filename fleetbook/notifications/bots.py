"""Owner notification bots, one aiogram Bot per organization token."""

from __future__ import annotations

from aiogram import Bot
from cachetools import TTLCache
import structlog

logger = structlog.get_logger()


class BotRegistry:
    """Reuses a tenant's Bot across bookings made within the TTL."""

    def __init__(self, maxsize: int = 100, ttl: int = 300):
        self._bots: TTLCache[str, Bot] = TTLCache(maxsize=maxsize, ttl=ttl)

    def get(self, telegram_token: str) -> Bot:
        bot = self._bots.get(telegram_token)
        if bot is None:
            bot = Bot(token=telegram_token)
            self._bots[telegram_token] = bot
            # bot id only; the secret half of the token stays out of logs
            logger.debug("notification_bot_created", bot_id=telegram_token.split(":", 1)[0])
        return bot

    async def close(self) -> None:
        """Close the HTTP sessions of all cached bots."""
        bots = list(self._bots.values())
        self._bots.clear()
        for bot in bots:
            await bot.session.close()
        if bots:
            logger.info("notification_bots_closed", count=len(bots))


bots = BotRegistry()
