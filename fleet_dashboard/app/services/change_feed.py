"""
Change feed for vehicle and schedule mutations.

Handlers subscribe per collection and are called after each commit. Every
event is also published on the Redis channel `fleet:<collection>` so other
processes can follow along.
"""

import inspect
import json
import logging
from dataclasses import dataclass, asdict
from typing import Any, Awaitable, Callable, Dict, List, Optional, Union

import fleet_dashboard.app.core.redis_client as redis_client_module

logger = logging.getLogger(__name__)

VEHICLES = "vehicles"
SCHEDULES = "schedules"
COLLECTIONS = (VEHICLES, SCHEDULES)

EVENT_INSERT = "INSERT"
EVENT_UPDATE = "UPDATE"
EVENT_DELETE = "DELETE"


@dataclass
class ChangeEvent:
    """One committed change. Payloads are JSON-ready dicts."""
    event_type: str
    collection: str
    new: Optional[Dict[str, Any]] = None
    old: Optional[Dict[str, Any]] = None

    def to_json(self) -> str:
        return json.dumps(asdict(self))


Handler = Callable[[ChangeEvent], Union[None, Awaitable[None]]]


class Subscription:
    """Handle returned by ChangeFeed.subscribe."""

    def __init__(self, feed: "ChangeFeed", collection: str, handler: Handler):
        self._feed = feed
        self.collection = collection
        self.handler = handler
        self.active = True

    def unsubscribe(self) -> None:
        if self.active:
            self._feed._remove(self)
            self.active = False


class ChangeFeed:
    """In-process fan-out of change events, mirrored to Redis."""

    def __init__(self, redis=None, channel_prefix: str = "fleet"):
        self._redis = redis
        self.channel_prefix = channel_prefix
        self._subscriptions: Dict[str, List[Subscription]] = {c: [] for c in COLLECTIONS}

    def subscribe(self, collection: str, handler: Handler) -> Subscription:
        if collection not in self._subscriptions:
            raise ValueError(f"Unknown collection: {collection}")
        subscription = Subscription(self, collection, handler)
        self._subscriptions[collection].append(subscription)
        return subscription

    def _remove(self, subscription: Subscription) -> None:
        subs = self._subscriptions[subscription.collection]
        if subscription in subs:
            subs.remove(subscription)

    def subscriber_count(self, collection: str) -> int:
        return len(self._subscriptions.get(collection, []))

    async def publish(self, event: ChangeEvent) -> None:
        """
        Deliver an event to every subscriber of its collection.

        A failing handler is logged and skipped; it never affects the write
        that produced the event or the other handlers.
        """
        for subscription in list(self._subscriptions.get(event.collection, [])):
            try:
                result = subscription.handler(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(
                    "Change handler failed",
                    extra={"collection": event.collection, "event_type": event.event_type}
                )

        redis = self._redis or redis_client_module.redis_client
        try:
            await redis.publish(f"{self.channel_prefix}:{event.collection}", event.to_json())
        except Exception as e:
            logger.warning(
                "Could not publish change event to Redis",
                extra={"collection": event.collection, "error": str(e)}
            )


# Process-wide feed; gateways are created per request and publish here
change_feed = ChangeFeed()
