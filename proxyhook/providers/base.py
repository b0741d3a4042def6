"""Base classes for configuration providers."""

import asyncio
from abc import ABC, abstractmethod
from collections.abc import Iterator
from enum import Enum
from typing import Any

from proxyhook.models.provider import ProviderData, ProviderType


class ProviderState(str, Enum):
    IDLE = "idle"
    LISTING = "listing"
    WATCHING = "watching"
    CLOSED = "closed"


class ContainerEventStream(ABC):
    """Blocking iterator of container runtime events."""

    @abstractmethod
    def __iter__(self) -> Iterator[dict[str, Any]]:
        ...

    @abstractmethod
    def close(self) -> None:
        """Stop the stream; a blocked reader sees end-of-stream."""
        ...


class ContainerRuntime(ABC):
    """What a provider needs from a container runtime client."""

    @abstractmethod
    def list_container_labels(self, network: str) -> list[dict[str, str]]:
        """Labels of every container attached to the network."""
        ...

    @abstractmethod
    def events(self, filters: dict[str, str]) -> ContainerEventStream:
        """Open a live event subscription."""
        ...

    @abstractmethod
    def close(self) -> None:
        ...


class BaseProvider(ABC):
    """Abstract base class for configuration providers."""

    @property
    @abstractmethod
    def type(self) -> ProviderType:
        """Provider type identifier."""
        ...

    @abstractmethod
    async def provide(self, queue: asyncio.Queue[ProviderData]) -> ProviderData:
        """Return the initial snapshot; later snapshots are put on the queue."""
        ...

    @abstractmethod
    async def close(self) -> None:
        ...
