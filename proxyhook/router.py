"""Webhook routing keyed by gateway id."""

import logging
from collections.abc import Mapping
from datetime import datetime
from enum import Enum
from types import MappingProxyType
from typing import Any

import httpx
from pydantic import ValidationError

from proxyhook.config import ConfigError, merge_defaults
from proxyhook.models.event_log import EventData, EventLog
from proxyhook.models.webhooks import WebhookConfig, WebhookPluginConfig
from proxyhook.webhooks.formatter import Formatter
from proxyhook.webhooks.webhook import EventTypeNotAllowed, Webhook

logger = logging.getLogger(__name__)


class DeliveryStatus(str, Enum):
    DELIVERED = "delivered"
    FILTERED = "filtered"
    FAILED = "failed"


def load_plugin_config(raw: Mapping[str, Any]) -> WebhookPluginConfig:
    """Validate the webhook section of a raw config tree."""
    try:
        return WebhookPluginConfig.model_validate(dict(raw))
    except ValidationError as e:
        raise ConfigError(f"Invalid webhook configuration: {e}") from e


def create_webhook_from_config(
    webhook_id: str,
    config: WebhookConfig,
    client: httpx.AsyncClient | None = None,
) -> Webhook:
    """Create a webhook instance from configuration."""
    return Webhook(
        id=webhook_id,
        url=config.url,
        formatter=Formatter(config.format),
        allowed_topics=config.events,
        allowed_servers=config.server_ids,
        timeout=config.dial_timeout,
        client=client,
    )


def create_webhooks_from_config(
    config: WebhookPluginConfig,
    client: httpx.AsyncClient | None = None,
) -> dict[str, tuple[Webhook, ...]]:
    """Build the gateway id -> webhooks mapping, in config order."""
    webhooks: dict[str, list[Webhook]] = {}
    for webhook_id, override in config.webhook.webhooks.items():
        raw = merge_defaults(config.defaults.webhook, override)
        try:
            webhook_config = WebhookConfig.model_validate(raw)
        except ValidationError as e:
            raise ConfigError(f"Invalid webhook '{webhook_id}': {e}") from e

        webhook = create_webhook_from_config(webhook_id, webhook_config, client)
        for gateway_id in webhook_config.gateway_ids:
            webhooks.setdefault(gateway_id, []).append(webhook)

    return {gateway_id: tuple(hooks) for gateway_id, hooks in webhooks.items()}


class WebhookRouter:
    """Routes event logs to the webhooks registered for their gateway.

    The mapping is never mutated; load/reload swap in a new one, so a dispatch
    in flight keeps working on the snapshot it started with.
    """

    def __init__(
        self,
        webhooks: Mapping[str, tuple[Webhook, ...]] | None = None,
        client: httpx.AsyncClient | None = None,
    ):
        self._client = client
        self._webhooks: Mapping[str, tuple[Webhook, ...]] = MappingProxyType(dict(webhooks or {}))

    @property
    def webhooks(self) -> Mapping[str, tuple[Webhook, ...]]:
        return self._webhooks

    def load(self, raw: Mapping[str, Any]) -> None:
        """Build webhooks from a raw config tree and swap them in.

        On ConfigError the previous mapping stays active.
        """
        config = load_plugin_config(raw)

        if not config.webhook.enable:
            self._webhooks = MappingProxyType({})
            logger.info("Webhooks disabled via config")
            return

        webhooks = create_webhooks_from_config(config, self._client)
        self._webhooks = MappingProxyType(webhooks)
        logger.info(
            f"Router loaded {len(config.webhook.webhooks)} webhook(s) "
            f"for {len(webhooks)} gateway(s)"
        )

    def reload(self, raw: Mapping[str, Any]) -> None:
        self.load(raw)

    async def dispatch(
        self,
        event_type: str,
        topics: list[str],
        occurred_at: datetime,
        data: EventData,
    ) -> dict[str, DeliveryStatus]:
        """Deliver an event to every webhook of its gateway, one after another."""
        log = EventLog(type=event_type, topics=list(topics), occurred_at=occurred_at, data=data)

        webhooks = self._webhooks.get(data.gateway_id)
        if not webhooks:
            logger.debug(f"No webhooks for gateway '{data.gateway_id}'")
            return {}

        results: dict[str, DeliveryStatus] = {}
        for webhook in webhooks:
            try:
                await webhook.dispatch_event(log)
            except EventTypeNotAllowed:
                logger.debug(f"Event {event_type} filtered out by webhook {webhook.id}")
                results[webhook.id] = DeliveryStatus.FILTERED
            except Exception as e:
                logger.error(f"Failed to dispatch {event_type} to webhook {webhook.id}: {e}")
                results[webhook.id] = DeliveryStatus.FAILED
            else:
                logger.info(f"Event {event_type} sent to webhook {webhook.id}")
                results[webhook.id] = DeliveryStatus.DELIVERED

        return results
