"""Docker label configuration provider."""

import asyncio
import logging
from collections.abc import Callable, Iterable, Iterator
from typing import Any

import docker

from proxyhook.config import ConfigError
from proxyhook.models.provider import (
    DOCKER_SOCKET_ENDPOINT,
    DockerConfig,
    ProviderData,
    ProviderType,
)
from proxyhook.providers.base import (
    BaseProvider,
    ContainerEventStream,
    ContainerRuntime,
    ProviderState,
)

logger = logging.getLogger(__name__)

RELOAD_ACTIONS = ("start", "die")
HEALTH_STATUS_PREFIX = "health_status"


class DockerEventStream(ContainerEventStream):
    """Wraps the SDK's cancellable event stream."""

    def __init__(self, stream: Any):
        self._stream = stream

    def __iter__(self) -> Iterator[dict[str, Any]]:
        return iter(self._stream)

    def close(self) -> None:
        self._stream.close()


class DockerRuntime(ContainerRuntime):
    """ContainerRuntime backed by the Docker SDK low-level API."""

    def __init__(self, client: docker.DockerClient):
        self._client = client

    @classmethod
    def from_config(cls, config: DockerConfig) -> "DockerRuntime":
        return cls(docker.DockerClient(base_url=config.endpoint, timeout=config.client_timeout or None))

    def list_container_labels(self, network: str) -> list[dict[str, str]]:
        filters = {"network": network} if network else None
        containers = self._client.api.containers(filters=filters)
        return [container.get("Labels") or {} for container in containers]

    def events(self, filters: dict[str, str]) -> ContainerEventStream:
        return DockerEventStream(self._client.api.events(decode=True, filters=filters))

    def close(self) -> None:
        self._client.close()


def set_nested_value(data: dict[str, Any], nested_key: str, value: Any) -> None:
    """Assign value at a dotted path, replacing any non-mapping on the way."""
    keys = nested_key.split(".")
    for key in keys[:-1]:
        if not isinstance(data.get(key), dict):
            data[key] = {}
        data = data[key]
    data[keys[-1]] = value


def parse_labels(containers: Iterable[dict[str, str]], prefix: str) -> dict[str, Any]:
    """Build a nested config tree from the prefixed labels of all containers."""
    data: dict[str, Any] = {}
    for labels in containers:
        for key, value in labels.items():
            if not key.startswith(prefix):
                continue

            key = key[len(prefix):]
            if "," in value:
                set_nested_value(data, key, value.split(","))
            else:
                set_nested_value(data, key, value)
    return data


def is_reload_action(action: str) -> bool:
    return action in RELOAD_ACTIONS or action.startswith(HEALTH_STATUS_PREFIX)


class DockerProvider(BaseProvider):
    """Reads proxy config from container labels and watches for changes."""

    def __init__(
        self,
        config: DockerConfig,
        runtime_factory: Callable[[DockerConfig], ContainerRuntime] = DockerRuntime.from_config,
    ):
        self._config = config
        self._runtime_factory = runtime_factory
        self._runtime: ContainerRuntime | None = None
        self._stream: ContainerEventStream | None = None
        self._watch_task: asyncio.Task | None = None
        self._state = ProviderState.IDLE

    @property
    def type(self) -> ProviderType:
        return ProviderType.DOCKER

    @property
    def state(self) -> ProviderState:
        return self._state

    @property
    def watch_task(self) -> asyncio.Task | None:
        """Background watch; its exception is the terminal stream error."""
        return self._watch_task

    async def provide(self, queue: asyncio.Queue[ProviderData]) -> ProviderData:
        if not self._config.endpoint:
            logger.info("Docker provider disabled: no endpoint configured")
            return ProviderData(type=self.type)

        if self._config.endpoint != DOCKER_SOCKET_ENDPOINT:
            raise ConfigError(f"Unsupported docker endpoint: {self._config.endpoint}")

        if self._state is not ProviderState.IDLE:
            raise RuntimeError(f"Docker provider cannot start from state {self._state.value}")

        if self._runtime is None:
            self._runtime = await asyncio.to_thread(self._runtime_factory, self._config)

        self._state = ProviderState.LISTING
        try:
            data = await self.read_config_data()
            if self._config.watch:
                # close() owns the stream from here on, even before the watch task runs
                self._stream = await asyncio.to_thread(self._runtime.events, {"type": "container"})
        except BaseException:
            self._state = ProviderState.IDLE
            raise

        if self._config.watch:
            self._watch_task = asyncio.create_task(self._watch(queue), name="docker-provider-watch")
            self._state = ProviderState.WATCHING
            logger.info(f"Watching docker containers on network '{self._config.network}'")

        return data

    async def read_config_data(self) -> ProviderData:
        """List labeled containers and parse them into a fresh snapshot."""
        if self._runtime is None:
            raise RuntimeError("Docker provider has no runtime client")

        timeout = self._config.client_timeout or None
        containers = await asyncio.wait_for(
            asyncio.to_thread(self._runtime.list_container_labels, self._config.network),
            timeout=timeout,
        )
        config = parse_labels(containers, self._config.label_prefix)
        logger.debug(f"Read labels of {len(containers)} container(s)")
        return ProviderData(type=self.type, config=config)

    def _close_stream(self) -> None:
        stream, self._stream = self._stream, None
        if stream is not None:
            stream.close()

    async def _watch(self, queue: asyncio.Queue[ProviderData]) -> None:
        try:
            events = iter(self._stream)
            while True:
                event = await asyncio.to_thread(next, events, None)
                if event is None:
                    logger.debug("Docker event stream closed")
                    return

                action = event.get("Action") or event.get("status") or ""
                if not is_reload_action(action):
                    continue

                try:
                    data = await self.read_config_data()
                except Exception as e:
                    logger.info(f"Failed to read docker config data: {e}")
                    continue

                await queue.put(data)
        finally:
            self._close_stream()
            if self._state is ProviderState.WATCHING:
                self._state = ProviderState.IDLE

    async def close(self) -> None:
        """Stop watching and release the client. Safe to call repeatedly."""
        if self._state is ProviderState.CLOSED:
            return

        task = self._watch_task
        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._close_stream()

        if self._runtime is not None:
            await asyncio.to_thread(self._runtime.close)
            self._runtime = None

        self._state = ProviderState.CLOSED
        logger.info("Docker provider closed")
