"""Bridges host events to the webhook router."""

import logging
from collections.abc import Mapping
from typing import Any

from proxyhook.bus import EventBus
from proxyhook.models.event import (
    AcceptedConnEvent,
    Conn,
    Event,
    Player,
    PlayerJoinEvent,
    PlayerLeaveEvent,
    PostConnProcessingEvent,
    PreConnProcessingEvent,
    PrePlayerJoinEvent,
    Server,
)
from proxyhook.models.event_log import ConnData, EventData, ServerData
from proxyhook.router import DeliveryStatus, WebhookRouter

logger = logging.getLogger(__name__)


def _from_conn(conn: Conn) -> EventData:
    return EventData(
        edition=conn.edition,
        gateway_id=conn.gateway_id,
        conn=ConnData(
            network=conn.network,
            local_addr=conn.local_addr,
            remote_addr=conn.remote_addr,
        ),
    )


def _from_player(player: Player) -> EventData:
    data = _from_conn(player)
    return data.model_copy(
        update={
            "conn": data.conn.model_copy(update={"username": player.username or None}),
            "server": ServerData(server_addr=player.matched_addr or None),
            "is_login_request": player.is_login_request,
        }
    )


def _from_player_and_server(player: Player, server: Server) -> EventData:
    data = _from_player(player)
    return data.model_copy(
        update={
            "server": data.server.model_copy(
                update={"server_id": server.id or None, "domains": list(server.domains) or None}
            ),
        }
    )


def to_event_data(event: Event) -> tuple[str, EventData] | None:
    """Return the event type name and flattened data, or None to drop it."""
    match event.data:
        case AcceptedConnEvent(conn=conn):
            return "AcceptedConn", _from_conn(conn)
        case PreConnProcessingEvent(conn=conn):
            return "PreProcessing", _from_conn(conn)
        case PostConnProcessingEvent(player=player):
            return "PostProcessing", _from_player(player)
        case PrePlayerJoinEvent(player=player, server=server):
            return "PrePlayerJoin", _from_player_and_server(player, server)
        case PlayerJoinEvent(player=player, server=server):
            return "PlayerJoin", _from_player_and_server(player, server)
        case PlayerLeaveEvent(player=player, server=server):
            return "PlayerLeave", _from_player_and_server(player, server)
        case _:
            return None


class WebhookPlugin:
    """Subscribes to the host bus and dispatches matching events to webhooks."""

    name = "Webhook"

    def __init__(self, router: WebhookRouter | None = None):
        self.router = router or WebhookRouter()
        self._bus: EventBus | None = None
        self._subscription_id: str | None = None

    def load(self, config: Mapping[str, Any]) -> None:
        self.router.load(config)

    def reload(self, config: Mapping[str, Any]) -> None:
        self.router.reload(config)

    def enable(self, bus: EventBus) -> None:
        if self._subscription_id is not None:
            logger.warning(f"{self.name} plugin is already enabled")
            return
        self._bus = bus
        self._subscription_id = bus.subscribe(self.handle_event)
        logger.info(f"{self.name} plugin enabled")

    def disable(self) -> None:
        if self._bus is not None and self._subscription_id is not None:
            self._bus.unsubscribe(self._subscription_id)
        self._bus = None
        self._subscription_id = None
        logger.info(f"{self.name} plugin disabled")

    async def handle_event(self, event: Event) -> dict[str, DeliveryStatus]:
        adapted = to_event_data(event)
        if adapted is None:
            return {}

        event_type, data = adapted
        return await self.router.dispatch(event_type, event.topics, event.occurred_at, data)
