"""Host events observed by the webhook plugin.

The proxy emits an Event for every stage of a connection's life. The payload
is one of a closed set of variants; anything else on the bus is opaque to us.
"""

from datetime import datetime, timezone
from typing import Any, Literal

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


class _HostModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class Conn(_HostModel):
    """A client connection accepted by a gateway."""

    edition: str = Field(default="java", description="Protocol edition, e.g. java/bedrock")
    gateway_id: str = Field(default="", description="Gateway that accepted the connection")
    network: str = Field(default="tcp")
    local_addr: str = Field(default="")
    remote_addr: str = Field(default="")


class Player(Conn):
    """A connection whose handshake has been processed."""

    username: str = Field(default="")
    matched_addr: str = Field(default="", description="Server address requested by the client")
    is_login_request: bool = Field(default=False)


class Server(_HostModel):
    """A backend server a player is routed to."""

    id: str
    domains: list[str] = Field(default_factory=list)


class AcceptedConnEvent(_HostModel):
    kind: Literal["AcceptedConn"] = "AcceptedConn"
    conn: Conn


class PreConnProcessingEvent(_HostModel):
    kind: Literal["PreConnProcessing"] = "PreConnProcessing"
    conn: Conn


class PostConnProcessingEvent(_HostModel):
    kind: Literal["PostConnProcessing"] = "PostConnProcessing"
    player: Player


class PrePlayerJoinEvent(_HostModel):
    kind: Literal["PrePlayerJoin"] = "PrePlayerJoin"
    player: Player
    server: Server


class PlayerJoinEvent(_HostModel):
    kind: Literal["PlayerJoin"] = "PlayerJoin"
    player: Player
    server: Server


class PlayerLeaveEvent(_HostModel):
    kind: Literal["PlayerLeave"] = "PlayerLeave"
    player: Player
    server: Server


PAYLOAD_TYPES: dict[str, type[BaseModel]] = {
    "AcceptedConn": AcceptedConnEvent,
    "PreConnProcessing": PreConnProcessingEvent,
    "PostConnProcessing": PostConnProcessingEvent,
    "PrePlayerJoin": PrePlayerJoinEvent,
    "PlayerJoin": PlayerJoinEvent,
    "PlayerLeave": PlayerLeaveEvent,
}


class Event(_HostModel):
    """An occurrence published on the host event bus."""

    topics: list[str] = Field(default_factory=list, description="Tags used for allow-list filtering")
    occurred_at: datetime = Field(default_factory=lambda: datetime.now(timezone.utc))
    data: Any = Field(default=None, description="Typed event payload")


def parse_event_payload(kind: str, data: dict[str, Any]) -> Any:
    """Build the typed payload for a known kind, or keep the raw mapping."""
    payload_type = PAYLOAD_TYPES.get(kind)
    if payload_type is None:
        return data
    return payload_type.model_validate(data)


class EventEnvelope(_HostModel):
    """An event as posted to the HTTP API."""

    kind: str = Field(description="Payload variant, e.g. PlayerJoin")
    topics: list[str] = Field(default_factory=list)
    occurred_at: datetime | None = Field(default=None)
    data: dict[str, Any] = Field(default_factory=dict)

    def to_event(self) -> Event:
        payload = parse_event_payload(self.kind, self.data)
        if self.occurred_at is None:
            return Event(topics=self.topics, data=payload)
        return Event(topics=self.topics, occurred_at=self.occurred_at, data=payload)
