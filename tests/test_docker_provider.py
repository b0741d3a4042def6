"""Tests for the docker label configuration provider."""

import asyncio
import time

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from proxyhook.config import ConfigError
from proxyhook.models.provider import DOCKER_SOCKET_ENDPOINT, DockerConfig, ProviderType
from proxyhook.providers import docker as docker_provider
from proxyhook.providers.base import ProviderState
from proxyhook.providers.docker import (
    DockerProvider,
    DockerRuntime,
    is_reload_action,
    parse_labels,
    set_nested_value,
)

from conftest import FakeRuntime

segments = st.text(alphabet="abcdefghij", min_size=1, max_size=5)


def docker_config(**kwargs) -> DockerConfig:
    params = {
        "endpoint": DOCKER_SOCKET_ENDPOINT,
        "labelPrefix": "proxyhook.",
        "network": "proxy",
        "clientTimeout": "1s",
    }
    params.update(kwargs)
    return DockerConfig.model_validate(params)


class TestSetNestedValue:
    def test_sibling_keys_share_parent(self):
        data = {}
        set_nested_value(data, "a.b", "1")
        set_nested_value(data, "a.c", "2")

        assert data == {"a": {"b": "1", "c": "2"}}

    def test_shorter_path_overwrites_subtree(self):
        data = {}
        set_nested_value(data, "a.b", "1")
        set_nested_value(data, "a", "2")

        assert data == {"a": "2"}

    def test_scalar_on_the_way_is_replaced_by_mapping(self):
        data = {}
        set_nested_value(data, "a", "2")
        set_nested_value(data, "a.b", "1")

        assert data == {"a": {"b": "1"}}

    @settings(max_examples=50)
    @given(path=st.lists(segments, min_size=1, max_size=5), value=st.text(max_size=10))
    def test_value_is_reachable_by_path(self, path: list[str], value: str):
        data = {}
        set_nested_value(data, ".".join(path), value)

        node = data
        for key in path[:-1]:
            node = node[key]
        assert node[path[-1]] == value


class TestParseLabels:
    def test_comma_value_becomes_list(self):
        config = parse_labels([{"prefix.servers.ids": "a,b,c"}], "prefix.")

        assert config == {"servers": {"ids": ["a", "b", "c"]}}

    def test_unprefixed_labels_are_ignored(self):
        config = parse_labels(
            [{"other.servers.ids": "a", "com.docker.compose.service": "proxy", "prefix.x": "1"}],
            "prefix.",
        )

        assert config == {"x": "1"}

    def test_labels_of_all_containers_are_merged(self):
        config = parse_labels(
            [{"p.servers.lobby.domain": "lobby.example.com"}, {"p.servers.survival.domain": "smp.example.com"}],
            "p.",
        )

        assert config == {
            "servers": {
                "lobby": {"domain": "lobby.example.com"},
                "survival": {"domain": "smp.example.com"},
            }
        }


class TestReloadActions:
    @pytest.mark.parametrize("action", ["start", "die", "health_status: healthy", "health_status: unhealthy"])
    def test_reload_actions(self, action):
        assert is_reload_action(action) is True

    @pytest.mark.parametrize("action", ["pause", "unpause", "create", "stop", "exec_start: sh", ""])
    def test_ignored_actions(self, action):
        assert is_reload_action(action) is False


class TestProvide:
    @pytest.mark.asyncio
    async def test_no_endpoint_disables_provider(self):
        def factory(config):
            raise AssertionError("runtime must not be created")

        provider = DockerProvider(DockerConfig(), runtime_factory=factory)

        data = await provider.provide(asyncio.Queue())

        assert data.type is ProviderType.DOCKER
        assert data.config == {}
        assert provider.state is ProviderState.IDLE
        await provider.close()

    @pytest.mark.asyncio
    async def test_unsupported_endpoint_is_config_error(self, fake_runtime):
        provider = DockerProvider(
            docker_config(endpoint="tcp://127.0.0.1:2375"),
            runtime_factory=lambda config: fake_runtime,
        )

        with pytest.raises(ConfigError):
            await provider.provide(asyncio.Queue())

    @pytest.mark.asyncio
    async def test_initial_snapshot_from_labels(self, fake_runtime):
        provider = DockerProvider(docker_config(), runtime_factory=lambda config: fake_runtime)

        data = await provider.provide(asyncio.Queue())

        assert data.config == {
            "webhook": {
                "enable": "true",
                "webhooks": {
                    "ops": {
                        "url": "https://ops.example.com/hook",
                        "events": ["PlayerJoin", "PlayerLeave"],
                    }
                },
            }
        }
        assert fake_runtime.networks == ["proxy"]
        assert provider.watch_task is None
        await provider.close()

    @pytest.mark.asyncio
    async def test_listing_timeout(self):
        class SlowRuntime(FakeRuntime):
            def list_container_labels(self, network):
                time.sleep(0.3)
                return []

        provider = DockerProvider(docker_config(clientTimeout="50ms"), runtime_factory=lambda config: SlowRuntime())

        with pytest.raises(asyncio.TimeoutError):
            await provider.provide(asyncio.Queue())

        assert provider.state is ProviderState.IDLE


class TestWatch:
    @pytest.mark.asyncio
    async def test_die_triggers_one_snapshot_and_pause_none(self, fake_runtime):
        queue = asyncio.Queue()
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)

        await provider.provide(queue)
        assert provider.state is ProviderState.WATCHING
        assert fake_runtime.list_calls == 1

        fake_runtime.stream.push("pause")
        fake_runtime.stream.push("die")

        snapshot = await asyncio.wait_for(queue.get(), timeout=2)

        assert snapshot.config["webhook"]["webhooks"]["ops"]["url"] == "https://ops.example.com/hook"
        assert fake_runtime.list_calls == 2
        assert fake_runtime.event_filters == {"type": "container"}

        fake_runtime.stream.end()
        await asyncio.wait_for(provider.watch_task, timeout=2)

        assert queue.empty()
        assert fake_runtime.list_calls == 2
        await provider.close()

    @pytest.mark.asyncio
    async def test_snapshot_reflects_new_labels(self, fake_runtime):
        queue = asyncio.Queue()
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(queue)

        fake_runtime.containers.append({"proxyhook.webhook.webhooks.ops.serverIds": "lobby"})
        fake_runtime.stream.push("start")

        snapshot = await asyncio.wait_for(queue.get(), timeout=2)

        assert snapshot.config["webhook"]["webhooks"]["ops"]["serverIds"] == "lobby"
        await provider.close()

    @pytest.mark.asyncio
    async def test_end_of_stream_ends_watch_cleanly(self, fake_runtime):
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(asyncio.Queue())

        fake_runtime.stream.end()
        await asyncio.wait_for(provider.watch_task, timeout=2)

        assert provider.watch_task.exception() is None
        assert fake_runtime.stream.closed
        assert provider.state is ProviderState.IDLE
        await provider.close()

    @pytest.mark.asyncio
    async def test_stream_error_is_terminal(self, fake_runtime):
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(asyncio.Queue())

        fake_runtime.stream.fail(ConnectionResetError("daemon went away"))

        with pytest.raises(ConnectionResetError):
            await asyncio.wait_for(provider.watch_task, timeout=2)
        assert provider.state is ProviderState.IDLE
        assert fake_runtime.stream.closed
        await provider.close()

    @pytest.mark.asyncio
    async def test_failed_relist_keeps_watching(self, fake_runtime):
        queue = asyncio.Queue()
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(queue)

        original = fake_runtime.list_container_labels
        calls = []

        def flaky(network):
            calls.append(network)
            if len(calls) == 1:
                raise RuntimeError("daemon busy")
            return original(network)

        fake_runtime.list_container_labels = flaky
        fake_runtime.stream.push("die")
        fake_runtime.stream.push("start")

        snapshot = await asyncio.wait_for(queue.get(), timeout=2)

        assert len(calls) == 2
        assert snapshot.type is ProviderType.DOCKER
        await provider.close()


class TestClose:
    @pytest.mark.asyncio
    async def test_close_stops_watch_and_releases_client(self, fake_runtime):
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(asyncio.Queue())
        task = provider.watch_task

        await provider.close()

        assert task.done()
        assert fake_runtime.closed
        assert fake_runtime.stream.closed
        assert provider.state is ProviderState.CLOSED

    @pytest.mark.asyncio
    async def test_close_is_idempotent(self, fake_runtime):
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)
        await provider.provide(asyncio.Queue())

        await provider.close()
        await provider.close()

        assert provider.state is ProviderState.CLOSED

    @pytest.mark.asyncio
    async def test_close_without_provide(self):
        provider = DockerProvider(docker_config())

        await provider.close()

        assert provider.state is ProviderState.CLOSED

    @pytest.mark.asyncio
    async def test_provide_after_close_fails(self, fake_runtime):
        provider = DockerProvider(docker_config(), runtime_factory=lambda config: fake_runtime)
        await provider.close()

        with pytest.raises(RuntimeError):
            await provider.provide(asyncio.Queue())

    @pytest.mark.asyncio
    async def test_close_right_after_slow_subscribe_closes_stream(self):
        class SlowSubscribeRuntime(FakeRuntime):
            def events(self, filters):
                time.sleep(0.2)
                return super().events(filters)

        runtime = SlowSubscribeRuntime()
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: runtime)
        await provider.provide(asyncio.Queue())

        await provider.close()

        assert runtime.event_filters == {"type": "container"}
        assert runtime.stream.closed
        assert provider.watch_task.done()

    @pytest.mark.asyncio
    async def test_failed_subscribe_leaves_provider_idle(self, fake_runtime):
        def refuse(filters):
            raise ConnectionRefusedError("no daemon")

        fake_runtime.events = refuse
        provider = DockerProvider(docker_config(watch=True), runtime_factory=lambda config: fake_runtime)

        with pytest.raises(ConnectionRefusedError):
            await provider.provide(asyncio.Queue())

        assert provider.state is ProviderState.IDLE
        assert provider.watch_task is None
        await provider.close()
        assert fake_runtime.closed


class TestDockerRuntime:
    @pytest.mark.parametrize("client_timeout, expected", [("2s", 2.0), ("0", None)])
    def test_client_timeout_is_passed_to_sdk(self, monkeypatch, client_timeout, expected):
        created = {}

        def fake_client(**kwargs):
            created.update(kwargs)
            return object()

        monkeypatch.setattr(docker_provider.docker, "DockerClient", fake_client)

        DockerRuntime.from_config(docker_config(clientTimeout=client_timeout))

        assert created == {"base_url": DOCKER_SOCKET_ENDPOINT, "timeout": expected}
