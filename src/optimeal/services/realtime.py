"""Best-effort realtime notifications for the kitchen dashboard (Supabase Realtime)."""

import logging
from datetime import datetime, timezone
from typing import Any, Optional

import httpx

logger = logging.getLogger(__name__)

NEW_ORDER = "new-order"
ORDER_STATUS_UPDATED = "order-status-updated"
SHIFT_SUMMARY_UPDATED = "shift-summary-updated"


class RealtimePublisher:
    """Broadcasts events on a Supabase Realtime channel via the REST broadcast API.

    Delivery is not guaranteed: publishing never raises, failures are logged.
    Without a configured URL the publisher is disabled and only logs.
    """

    def __init__(
        self,
        url: Optional[str],
        api_key: Optional[str],
        channel: str = "orders-realtime",
        timeout_seconds: float = 5.0,
        client: Optional[httpx.AsyncClient] = None,
    ) -> None:
        self.enabled = bool(url and api_key)
        self.channel = channel
        self._client = client
        if self.enabled and self._client is None:
            self._client = httpx.AsyncClient(base_url=url.rstrip("/"), timeout=timeout_seconds)
        if self._client is not None and api_key:
            self._client.headers["apikey"] = api_key
            self._client.headers["Authorization"] = f"Bearer {api_key}"

    @classmethod
    def from_settings(cls, settings) -> "RealtimePublisher":
        return cls(
            url=settings.SUPABASE_URL,
            api_key=settings.SUPABASE_SERVICE_KEY,
            channel=settings.REALTIME_CHANNEL,
        )

    async def publish(self, event: str, payload: dict[str, Any]) -> bool:
        """Publish an event. Returns True if the broadcast was accepted."""
        if not self.enabled:
            logger.debug(f"Realtime disabled, dropping event {event}")
            return False

        message = {
            "topic": self.channel,
            "event": event,
            "payload": {**payload, "timestamp": datetime.now(timezone.utc).isoformat()},
        }
        try:
            response = await self._client.post("/realtime/v1/api/broadcast", json={"messages": [message]})
            response.raise_for_status()
        except httpx.HTTPError as e:
            logger.error(f"Failed to broadcast {event} on {self.channel}: {e}")
            return False

        logger.info(f"Broadcasted {event} on {self.channel}")
        return True

    async def aclose(self) -> None:
        if self._client is not None:
            await self._client.aclose()
