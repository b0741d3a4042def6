"""Configuration provider models."""

from enum import Enum
from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from proxyhook.models.duration import Duration

DOCKER_SOCKET_ENDPOINT = "unix:///var/run/docker.sock"


class ProviderType(str, Enum):
    DOCKER = "docker"


class DockerConfig(BaseModel):
    """Docker label provider settings."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    client_timeout: Duration = Field(default=5.0, alias="clientTimeout")
    label_prefix: str = Field(default="", alias="labelPrefix")
    endpoint: str = Field(default="", description=f"Empty disables the provider; only {DOCKER_SOCKET_ENDPOINT}")
    network: str = Field(default="", description="Only containers on this network are read")
    watch: bool = False


class ProviderData(BaseModel):
    """One complete configuration snapshot read from a provider."""

    model_config = ConfigDict(frozen=True)

    type: ProviderType
    config: dict[str, Any] = Field(default_factory=dict)
