"""Broadcast channel publishing (Mercure hub)."""

import json
from typing import Any, Protocol

import httpx
import jwt
import structlog

from callqueue.config import settings
from callqueue.services.events.events import BaseQueueEvent
from callqueue.utils.request_retry import RequestRetryConfig, get_request_retrying

logger = structlog.get_logger(__name__)

# Retry config for Mercure publishing (quick retries, short waits)
MERCURE_RETRY_CONFIG = RequestRetryConfig(max_attempts=3, min_wait=0.5, max_wait=2.0)


class Broadcaster(Protocol):
    """Best-effort broadcast channel. Implementations must not raise."""

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None: ...

    async def publish(self, event: BaseQueueEvent) -> None: ...


class MercurePublishService:
    """Publishes queue events to a Mercure hub.

    Delivery is best-effort: network errors are retried briefly, then logged
    and swallowed. Callers never learn whether anyone received the event.

    Usage:
        mercure = MercurePublishService()
        await mercure.publish(TicketCalledEvent(ticket_code="A001", counter_number=1, category_name="Deposits"))
        await mercure.emit("ticket.dailyReset", {"date": "2026-01-01", "timestamp": "..."})
    """

    def __init__(
        self,
        hub_url: str | None = None,
        *,
        jwt_key: str | None = None,
        topic: str | None = None,
    ) -> None:
        self.hub_url = hub_url if hub_url is not None else settings.mercure_url
        self.jwt_key = jwt_key if jwt_key is not None else settings.mercure_publisher_jwt_key
        self.topic = topic or settings.mercure_topic

    def _create_jwt(self) -> str:
        """Create a JWT token granting permission to publish to any topic."""
        return jwt.encode(
            {"mercure": {"publish": ["*"]}},
            self.jwt_key,
            algorithm="HS256",
        )

    async def publish(self, event: BaseQueueEvent) -> None:
        """Publish a typed queue event."""
        await self.emit(event.event_name, event.payload())

    async def emit(self, event_name: str, payload: dict[str, Any]) -> None:
        """Publish `payload` under `event_name`. Logs and swallows errors."""
        if not self.hub_url:
            logger.debug("Mercure URL not configured, skipping publish", event_name=event_name)
            return
        if not self.jwt_key:
            logger.warning("Mercure publisher JWT key not configured, skipping publish")
            return

        token = self._create_jwt()
        topics = [self.topic, f"{self.topic}/{event_name}"]

        async def make_request(client: httpx.AsyncClient) -> None:
            # Mercure expects form data; `type` becomes the SSE event name
            data = {
                "topic": topics,
                "type": event_name,
                "data": json.dumps({"event": event_name, "payload": payload}),
            }
            response = await client.post(
                self.hub_url,
                data=data,
                headers={"Authorization": f"Bearer {token}"},
                timeout=5.0,
            )
            response.raise_for_status()

        try:
            async with httpx.AsyncClient() as client:
                async for attempt in get_request_retrying(MERCURE_RETRY_CONFIG):
                    with attempt:
                        if attempt.retry_state.attempt_number > 1:
                            logger.warning(
                                "Retrying Mercure publish",
                                event_name=event_name,
                                attempt=attempt.retry_state.attempt_number,
                            )
                        await make_request(client)

            logger.info("Published event", event_name=event_name, topics=topics)
        except Exception as e:
            # Publishing failures must never affect queue operations
            logger.error("Failed to publish event", event_name=event_name, error=str(e))
