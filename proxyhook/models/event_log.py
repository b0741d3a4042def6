"""Wire models sent to webhook destinations."""

from datetime import datetime

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, frozen=True)


class ConnData(_WireModel):
    network: str = ""
    local_addr: str = Field(default="", alias="localAddress")
    remote_addr: str = Field(default="", alias="remoteAddress")
    username: str | None = None


class ServerData(_WireModel):
    server_id: str | None = Field(default=None, alias="serverId")
    server_addr: str | None = Field(default=None, alias="serverAddress")
    domains: list[str] | None = None


class EventData(_WireModel):
    """Flattened, serializable projection of a host event payload."""

    edition: str = ""
    gateway_id: str = Field(default="", alias="gatewayId")
    conn: ConnData = Field(default_factory=ConnData, alias="client")
    server: ServerData = Field(default_factory=ServerData)
    is_login_request: bool | None = Field(default=None, alias="isLoginRequest")

    def to_json(self) -> bytes:
        """Generic JSON payload; unset optional fields are omitted."""
        return self.model_dump_json(by_alias=True, exclude_none=True).encode("utf-8")


class EventLog(_WireModel):
    """Envelope for a single dispatch."""

    type: str
    topics: list[str] = Field(default_factory=list)
    occurred_at: datetime = Field(alias="occurredAt")
    data: EventData
