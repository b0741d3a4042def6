"""In-process event bus used by the host application."""

import logging
import uuid
from typing import Awaitable, Callable

from proxyhook.models.event import Event

logger = logging.getLogger(__name__)

EventHandler = Callable[[Event], Awaitable[None]]


class EventBus:
    """Fans out published events to subscribed handlers."""

    def __init__(self):
        self._handlers: dict[str, EventHandler] = {}

    def subscribe(self, handler: EventHandler) -> str:
        """Register a handler and return its subscription id."""
        subscription_id = str(uuid.uuid4())
        self._handlers[subscription_id] = handler
        return subscription_id

    def unsubscribe(self, subscription_id: str) -> None:
        self._handlers.pop(subscription_id, None)

    @property
    def subscriber_count(self) -> int:
        return len(self._handlers)

    async def publish(self, event: Event) -> None:
        """Call every handler; a failing handler never stops the others."""
        for subscription_id, handler in list(self._handlers.items()):
            try:
                await handler(event)
            except Exception as e:
                logger.exception(f"Event handler {subscription_id} failed: {e}")
