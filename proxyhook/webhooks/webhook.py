"""Webhook destination that POSTs event logs over HTTP."""

import logging

import httpx

from proxyhook.models.event_log import EventLog
from proxyhook.webhooks.formatter import Formatter

logger = logging.getLogger(__name__)


class EventTypeNotAllowed(Exception):
    """The event is filtered out for this webhook. Not a delivery failure."""

    def __init__(self, webhook_id: str, event_type: str):
        super().__init__(f"event topic not allowed for webhook {webhook_id}: {event_type}")
        self.webhook_id = webhook_id
        self.event_type = event_type


class Webhook:
    """A single delivery target with its filters and formatter."""

    def __init__(
        self,
        id: str,
        url: str,
        formatter: Formatter,
        allowed_topics: list[str] | tuple[str, ...] = (),
        allowed_servers: list[str] | tuple[str, ...] = (),
        timeout: float = 5.0,
        client: httpx.AsyncClient | None = None,
    ):
        self._id = id
        self._url = url
        self._formatter = formatter
        self._allowed_topics = frozenset(allowed_topics)
        self._allowed_servers = frozenset(allowed_servers)
        self._timeout = timeout
        self._client = client

    @property
    def id(self) -> str:
        return self._id

    @property
    def url(self) -> str:
        return self._url

    @property
    def timeout(self) -> float:
        return self._timeout

    @property
    def formatter(self) -> Formatter:
        return self._formatter

    @property
    def allowed_topics(self) -> frozenset[str]:
        return self._allowed_topics

    @property
    def allowed_servers(self) -> frozenset[str]:
        return self._allowed_servers

    def has_event(self, log: EventLog) -> bool:
        """Server must be allowed AND at least one topic must be allowed.

        An empty server list therefore matches nothing.
        """
        if log.data.server.server_id not in self._allowed_servers:
            return False
        return any(topic in self._allowed_topics for topic in log.topics)

    async def dispatch_event(self, log: EventLog) -> None:
        """POST the formatted log to the webhook URL.

        Raises EventTypeNotAllowed when filtered out; transport errors from
        httpx propagate to the caller. The response status is not inspected.
        """
        if not self.has_event(log):
            raise EventTypeNotAllowed(self._id, log.type)

        body = self._formatter.payload(log)
        headers = {"Content-Type": "application/json"}

        if self._client is not None:
            response = await self._client.post(
                self._url, content=body, headers=headers, timeout=self._timeout
            )
        else:
            async with httpx.AsyncClient(timeout=self._timeout) as client:
                response = await client.post(self._url, content=body, headers=headers)

        logger.debug(f"Webhook {self._id} answered {response.status_code} for {log.type}")
