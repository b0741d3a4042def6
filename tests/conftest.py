"""Pytest configuration and fixtures."""

import queue
from datetime import datetime, timezone

import pytest

from proxyhook.models.event import Conn, Event, Player, PlayerJoinEvent, Server
from proxyhook.models.event_log import ConnData, EventData, EventLog, ServerData
from proxyhook.providers.base import ContainerEventStream, ContainerRuntime

OCCURRED_AT = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


class FakeEventStream(ContainerEventStream):
    """Event stream fed from the test; blocks like the real one."""

    _END = object()

    def __init__(self):
        self._queue: queue.Queue = queue.Queue()
        self.closed = False

    def push(self, action: str) -> None:
        self._queue.put({"Type": "container", "Action": action, "Actor": {"ID": "abc"}})

    def fail(self, error: Exception) -> None:
        self._queue.put(error)

    def end(self) -> None:
        self._queue.put(self._END)

    def __iter__(self):
        while True:
            item = self._queue.get()
            if item is self._END:
                return
            if isinstance(item, Exception):
                raise item
            yield item

    def close(self) -> None:
        self.closed = True
        self._queue.put(self._END)


class FakeRuntime(ContainerRuntime):
    """In-memory container runtime."""

    def __init__(self, containers: list[dict[str, str]] | None = None):
        self.containers = containers or []
        self.stream = FakeEventStream()
        self.list_calls = 0
        self.networks: list[str] = []
        self.event_filters: dict[str, str] | None = None
        self.closed = False

    def list_container_labels(self, network: str) -> list[dict[str, str]]:
        self.list_calls += 1
        self.networks.append(network)
        return [dict(labels) for labels in self.containers]

    def events(self, filters: dict[str, str]) -> ContainerEventStream:
        self.event_filters = filters
        return self.stream

    def close(self) -> None:
        self.closed = True
        self.stream.close()


@pytest.fixture
def fake_runtime():
    return FakeRuntime(
        containers=[
            {
                "proxyhook.webhook.enable": "true",
                "proxyhook.webhook.webhooks.ops.url": "https://ops.example.com/hook",
                "proxyhook.webhook.webhooks.ops.events": "PlayerJoin,PlayerLeave",
                "com.docker.compose.project": "proxy",
            },
        ]
    )


@pytest.fixture
def event_data():
    """Event data for a player joining srv1 through the default gateway."""
    return EventData(
        edition="java",
        gateway_id="default",
        conn=ConnData(
            network="tcp",
            local_addr="10.0.0.2:25565",
            remote_addr="203.0.113.7:51234",
            username="Steve",
        ),
        server=ServerData(
            server_id="srv1",
            server_addr="play.example.com",
            domains=["play.example.com", "mc.example.com"],
        ),
        is_login_request=True,
    )


@pytest.fixture
def event_log(event_data):
    return EventLog(
        type="PlayerJoin",
        topics=["PlayerJoin"],
        occurred_at=OCCURRED_AT,
        data=event_data,
    )


@pytest.fixture
def player_join_event():
    """Host event as published on the bus."""
    player = Player(
        edition="java",
        gateway_id="default",
        network="tcp",
        local_addr="10.0.0.2:25565",
        remote_addr="203.0.113.7:51234",
        username="Steve",
        matched_addr="play.example.com",
        is_login_request=True,
    )
    return Event(
        topics=["PlayerJoin"],
        occurred_at=OCCURRED_AT,
        data=PlayerJoinEvent(
            player=player,
            server=Server(id="srv1", domains=["play.example.com"]),
        ),
    )


@pytest.fixture
def accepted_conn():
    return Conn(
        edition="java",
        gateway_id="default",
        network="tcp",
        local_addr="10.0.0.2:25565",
        remote_addr="203.0.113.7:51234",
    )
