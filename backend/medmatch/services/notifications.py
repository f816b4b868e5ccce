"""Notification dispatcher for lifecycle events (accepted / rejected responses)."""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Any, Dict, Optional, Set

import aiohttp

from medmatch.config import settings

logger = logging.getLogger(__name__)

RESPONSE_ACCEPTED = "response.accepted"
RESPONSE_REJECTED = "response.rejected"


class NotificationDispatcher:
    """
    Delivers events in dev and webhook modes.

    ``dispatch`` never blocks the caller and never raises: delivery runs in a
    background task and failures are only logged.
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        webhook_url: Optional[str] = None,
        timeout_seconds: Optional[float] = None,
    ):
        self.mode = mode or settings.notification_mode
        self.webhook_url = webhook_url or settings.notification_webhook_url
        self.timeout_seconds = timeout_seconds or settings.notification_timeout_seconds
        if self.mode == "webhook" and not self.webhook_url:
            raise ValueError("notification_webhook_url is required when notification_mode is 'webhook'")
        # Keep references so pending deliveries are not garbage collected
        self._pending: Set[asyncio.Task] = set()

    def dispatch(self, event: str, payload: Dict[str, Any]) -> Optional[asyncio.Task]:
        """Schedule delivery of ``event`` and return immediately."""
        try:
            task = asyncio.get_running_loop().create_task(self.deliver(event, payload))
        except RuntimeError:
            logger.error(f"No running event loop, dropping notification {event}")
            return None
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    async def drain(self) -> None:
        """Wait for in-flight deliveries (shutdown and tests)."""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def deliver(self, event: str, payload: Dict[str, Any]) -> bool:
        """Deliver one event. Returns True on success, False on failure."""
        body = {
            "event": event,
            "occurred_at": datetime.now(timezone.utc).isoformat(),
            "data": payload,
        }

        if self.mode == "dev":
            logger.info(f"[DEV MODE] Notification {event}: {payload}")
            return True

        try:
            timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
            async with aiohttp.ClientSession(timeout=timeout) as session:
                async with session.post(self.webhook_url, json=body) as response:
                    if 200 <= response.status < 300:
                        logger.info(f"Notification {event} delivered")
                        return True
                    logger.error(f"Failed to deliver notification {event}: HTTP {response.status}")
                    return False
        except Exception as e:
            logger.error(f"Error delivering notification {event}: {str(e)}", exc_info=True)
            return False


# Global notification dispatcher instance
notification_dispatcher = NotificationDispatcher()
