"""Webhook notifications (Discord-compatible ``{"content": ...}`` payload)"""
import logging
from typing import Optional

import aiohttp

from errors import DeliveryError

logger = logging.getLogger(__name__)

MAX_DELIVERY_ATTEMPTS = 3
USER_AGENT = "factorio-presence-bot/1.0"


class WebhookNotifier:
    """Posts text messages to a single webhook URL"""

    def __init__(
        self,
        url: str,
        timeout: float = 15.0,
        session: Optional[aiohttp.ClientSession] = None,
    ):
        self.url = url
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None

    async def __aenter__(self):
        """Async context manager entry"""
        self._get_session()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit"""
        await self.close()

    def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers={"User-Agent": USER_AGENT},
            )
            logger.debug("HTTP client initialized for webhook delivery")
        return self._session

    async def close(self):
        if self._session is not None and self._owns_session:
            await self._session.close()
            self._session = None

    async def _post(self, message: str):
        payload = {"content": message}
        async with self._get_session().post(self.url, json=payload) as response:
            response.raise_for_status()

    async def deliver(self, message: str):
        """Send ``message``, retrying immediately up to MAX_DELIVERY_ATTEMPTS times"""
        last_error: Optional[Exception] = None
        for attempt in range(1, MAX_DELIVERY_ATTEMPTS + 1):
            try:
                await self._post(message)
            except Exception as e:
                last_error = e
                logger.warning(
                    f"⚠️ Webhook delivery of {message!r} failed "
                    f"(attempt {attempt}/{MAX_DELIVERY_ATTEMPTS}): {e}"
                )
                continue

            if attempt > 1:
                logger.info(f"✓ Delivered {message!r} after {attempt - 1} retries")
            return

        raise DeliveryError(message, MAX_DELIVERY_ATTEMPTS) from last_error
