# shimekiri/infra/notify/chatwork.py
from __future__ import annotations

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

import aiohttp

from shimekiri.domain.common.errors import NotifyError
from shimekiri.domain.tasks.ports import Notifier

logger = logging.getLogger(__name__)

CHATWORK_API_BASE = "https://api.chatwork.com/v2"
MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 2.0
REQUEST_TIMEOUT_SECONDS = 15


class ChatworkClient(Notifier):
    """
    Posts messages to one Chatwork room.

    send_message tries up to max_retries times with a fixed delay between
    tries, then raises NotifyError. The caller decides what to tell the user.
    """

    def __init__(
        self,
        api_token: str,
        room_id: str,
        *,
        max_retries: int = MAX_RETRIES,
        retry_delay: float = RETRY_DELAY_SECONDS,
        base_url: str = CHATWORK_API_BASE,
        sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    ) -> None:
        self._api_token = api_token
        self._room_id = room_id
        self._max_retries = max(1, max_retries)
        self._retry_delay = retry_delay
        self._base_url = base_url.rstrip("/")
        self._sleep = sleep
        self._timeout = aiohttp.ClientTimeout(total=REQUEST_TIMEOUT_SECONDS)

    def _headers(self) -> Dict[str, str]:
        return {"X-ChatWorkToken": self._api_token}

    async def _post_message(self, body: str) -> None:
        url = f"{self._base_url}/rooms/{self._room_id}/messages"
        async with aiohttp.ClientSession(timeout=self._timeout) as session:
            # form-encoded, as the Chatwork API expects
            async with session.post(url, data={"body": body}, headers=self._headers()) as response:
                if response.status >= 300:
                    text = await response.text()
                    raise NotifyError(f"Chatwork HTTP {response.status}: {text[:200]}")
                # 2xx means delivered; the reply body is not read

    async def send_message(self, body: str) -> None:
        last_error: Exception | None = None
        for attempt in range(1, self._max_retries + 1):
            try:
                await self._post_message(body)
                return
            except (aiohttp.ClientError, asyncio.TimeoutError, NotifyError) as e:
                last_error = e
                logger.warning("Chatwork send failed (attempt %s/%s): %s", attempt, self._max_retries, e)
                if attempt < self._max_retries:
                    await self._sleep(self._retry_delay)

        raise NotifyError(f"Chatwork send failed after {self._max_retries} attempts: {last_error}")

    async def test_connection(self) -> bool:
        try:
            async with aiohttp.ClientSession(timeout=self._timeout) as session:
                async with session.get(f"{self._base_url}/me", headers=self._headers()) as response:
                    if response.status >= 300:
                        logger.error("Chatwork connection failed: HTTP %s", response.status)
                        return False
                    me = await response.json()
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            logger.error("Chatwork connection failed: %s", e)
            return False

        logger.info("Chatwork connected as %s", me.get("name"))
        return True
