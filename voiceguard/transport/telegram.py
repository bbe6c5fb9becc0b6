"""Telegram Bot API transport for emergency alerts."""

import html
import json
import asyncio
import logging
import aiohttp
from typing import Any, Dict, Optional

from .base import AbstractTransport, TransportResult
from ..errors import TransportError, TransportErrorKind

logger = logging.getLogger(__name__)

TELEGRAM_API_URL = "https://api.telegram.org/"

ALERT_HEADER = "🚨 <b>EMERGENCY ALERT</b> 🚨"
ALERT_FOOTER = "⚠️ <i>This message was sent automatically by the voice recognition system</i>"

TEST_MESSAGE = (
    "✅ <b>Test message</b>\n\n"
    "The emergency alert system is configured correctly. "
    "You will receive a message like this one if an alert is triggered."
)

AUTH_STATUSES = (401, 403, 404)


def format_alert_html(body: str) -> str:
    """Wrap a plain-text alert body in the HTML emergency banner."""
    return f"{ALERT_HEADER}\n\n{html.escape(body, quote=False)}\n\n{ALERT_FOOTER}"


class TelegramTransport(AbstractTransport):
    """Sends alerts to a single Telegram chat through a bot.

    Every call opens its own aiohttp session so the transport can be driven
    from any event loop.
    """

    def __init__(self,
                 bot_token: str,
                 chat_id: str,
                 api_url: str = TELEGRAM_API_URL,
                 connect_timeout: float = 15.0,
                 total_timeout: float = 20.0,
                 live_period: int = 300):
        """Initialize Telegram transport.

        Args:
            bot_token: Bot token issued by @BotFather
            chat_id: Destination chat identifier
            api_url: Bot API base URL (overridable for tests)
            connect_timeout: Connection timeout in seconds
            total_timeout: Whole-request timeout in seconds
            live_period: How long a shared location stays live, in seconds
        """
        if not bot_token or not chat_id:
            raise ValueError("Telegram bot token and chat id are required")
        self.bot_token = bot_token
        self.chat_id = str(chat_id)
        self.api_url = api_url if api_url.endswith("/") else api_url + "/"
        self.connect_timeout = connect_timeout
        self.total_timeout = total_timeout
        self.live_period = live_period

        logger.info(f"TelegramTransport initialized for chat {self.chat_id}")

    @classmethod
    def from_recipient(cls, recipient, settings, api_url: str = TELEGRAM_API_URL) -> "TelegramTransport":
        """Build a transport from a RecipientConfig and ListenerSettings."""
        return cls(
            bot_token=recipient.bot_token,
            chat_id=recipient.chat_id,
            api_url=api_url,
            connect_timeout=settings.transport_connect_timeout,
            total_timeout=settings.transport_total_timeout,
            live_period=settings.live_location_period,
        )

    def _method_url(self, method: str) -> str:
        return f"{self.api_url}bot{self.bot_token}/{method}"

    def _client_timeout(self, timeout: Optional[float]) -> aiohttp.ClientTimeout:
        if timeout is None:
            return aiohttp.ClientTimeout(total=self.total_timeout, connect=self.connect_timeout)
        return aiohttp.ClientTimeout(total=timeout, connect=min(self.connect_timeout, timeout))

    async def _post(self, method: str, data: Optional[Dict[str, Any]] = None,
                    timeout: Optional[float] = None) -> Dict[str, Any]:
        """Call one Bot API method and return the decoded reply.

        Raises:
            TransportError: On network failure, auth rejection or an error reply
        """
        try:
            async with aiohttp.ClientSession(timeout=self._client_timeout(timeout)) as session:
                async with session.post(self._method_url(method), data=data or {}) as response:
                    status = response.status
                    body = await response.text()
        except asyncio.TimeoutError as e:
            raise TransportError(TransportErrorKind.NETWORK, f"{method} timed out") from e
        except aiohttp.ClientError as e:
            raise TransportError(TransportErrorKind.NETWORK, f"{method} failed: {e}") from e

        try:
            reply = json.loads(body) if body else {}
        except ValueError:
            reply = {}
        if not isinstance(reply, dict):
            reply = {}
        description = reply.get("description") or body[:200] or "no description"

        if status in AUTH_STATUSES:
            raise TransportError(TransportErrorKind.AUTH, f"HTTP {status} - {description}")
        if status != 200 or not reply.get("ok"):
            raise TransportError(TransportErrorKind.SERVER_REJECTED, f"HTTP {status} - {description}")
        return reply

    async def send_message(self, text: str, timeout: Optional[float] = None) -> TransportResult:
        """Send an alert body wrapped in the emergency banner."""
        return await self._send_html(format_alert_html(text), timeout)

    async def send_test_message(self, timeout: Optional[float] = None) -> TransportResult:
        return await self._send_html(TEST_MESSAGE, timeout)

    async def _send_html(self, html_text: str, timeout: Optional[float]) -> TransportResult:
        data = {
            "chat_id": self.chat_id,
            "text": html_text,
            "parse_mode": "HTML",
            "disable_web_page_preview": "false",
        }
        try:
            await self._post("sendMessage", data, timeout)
        except TransportError as e:
            logger.error(f"❌ Telegram sendMessage failed: {e}")
            return TransportResult.failure(e)
        logger.info("✅ Telegram message sent")
        return TransportResult.success()

    async def send_location(self, latitude: float, longitude: float,
                            caption: str = "", timeout: Optional[float] = None) -> TransportResult:
        data = {
            "chat_id": self.chat_id,
            "latitude": str(latitude),
            "longitude": str(longitude),
            "live_period": str(self.live_period),
        }
        if caption:
            # Ignored by the Bot API for locations; kept for clients that show it
            data["caption"] = caption
        try:
            await self._post("sendLocation", data, timeout)
        except TransportError as e:
            logger.error(f"❌ Telegram sendLocation failed: {e}")
            return TransportResult.failure(e)
        logger.info(f"📍 Telegram location sent ({latitude}, {longitude})")
        return TransportResult.success()

    async def validate(self, timeout: Optional[float] = None) -> Optional[str]:
        """Check the bot token with getMe.

        Returns:
            Bot description as "First name (@username)", or None if the token
            is rejected or the API is unreachable
        """
        try:
            reply = await self._post("getMe", timeout=timeout)
        except TransportError as e:
            logger.error(f"❌ Telegram bot validation failed: {e}")
            return None
        bot = reply.get("result") or {}
        name = bot.get("first_name", "unknown")
        username = bot.get("username")
        return f"{name} (@{username})" if username else name
