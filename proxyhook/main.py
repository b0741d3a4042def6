"""proxyhook - FastAPI host for webhook dispatch and docker-provided config."""

import asyncio
import logging
from contextlib import asynccontextmanager
from typing import Any, AsyncGenerator

import uvicorn
from fastapi import FastAPI, HTTPException, status
from fastapi.responses import JSONResponse
from pydantic import ValidationError

from proxyhook.adapter import WebhookPlugin
from proxyhook.bus import EventBus
from proxyhook.config import ConfigError, get_settings, load_config_file, merge_defaults
from proxyhook.models.event import EventEnvelope
from proxyhook.models.provider import DockerConfig, ProviderData
from proxyhook.providers.docker import DockerProvider

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)

# Host event bus the webhook plugin subscribes to
bus = EventBus()

plugin: WebhookPlugin | None = None
provider: DockerProvider | None = None

# Config read from file, and the last snapshot read from container labels
file_config: dict[str, Any] = {}
provider_snapshot: ProviderData | None = None


def effective_config(snapshot: ProviderData | None = None) -> dict[str, Any]:
    """File config with a provider snapshot layered on top."""
    if snapshot is None:
        snapshot = provider_snapshot
    if snapshot is None:
        return file_config
    return merge_defaults(file_config, snapshot.config)


def apply_snapshot(snapshot: ProviderData) -> None:
    """Rebuild the webhooks from a provider snapshot and keep it if valid."""
    global provider_snapshot

    if plugin is None:
        provider_snapshot = snapshot
        return
    try:
        plugin.reload(effective_config(snapshot))
    except ConfigError as e:
        logger.error(f"Rejected {snapshot.type.value} provider snapshot, keeping previous webhooks: {e}")
        return
    provider_snapshot = snapshot
    logger.info(f"Applied {snapshot.type.value} provider snapshot")


async def consume_snapshots(queue: asyncio.Queue[ProviderData]) -> None:
    while True:
        snapshot = await queue.get()
        apply_snapshot(snapshot)


def _log_watch_result(task: asyncio.Task) -> None:
    if task.cancelled():
        return
    exc = task.exception()
    if exc is not None:
        logger.error(f"Failed while watching docker provider: {exc}")


async def start_provider(config: dict[str, Any]) -> asyncio.Task | None:
    """Start the docker provider if configured; returns the snapshot consumer."""
    global provider

    docker_raw = (config.get("providers") or {}).get("docker")
    if not docker_raw:
        return None

    try:
        docker_config = DockerConfig.model_validate(docker_raw)
    except ValidationError as e:
        logger.error(f"Invalid docker provider configuration: {e}")
        return None

    queue: asyncio.Queue[ProviderData] = asyncio.Queue()
    provider = DockerProvider(docker_config)
    try:
        snapshot = await provider.provide(queue)
    except ConfigError as e:
        logger.error(f"Docker provider not started: {e}")
        provider = None
        return None
    except Exception as e:
        logger.exception(f"Failed to start docker provider: {e}")
        await provider.close()
        provider = None
        return None

    apply_snapshot(snapshot)
    if provider.watch_task is not None:
        provider.watch_task.add_done_callback(_log_watch_result)
    return asyncio.create_task(consume_snapshots(queue), name="provider-snapshots")


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan handler for startup/shutdown."""
    global plugin, provider, file_config, provider_snapshot

    settings = get_settings()

    # Configure logging level
    logging.getLogger().setLevel(settings.log_level.upper())

    try:
        file_config = load_config_file(settings.config_path)
        logger.info(f"Loaded configuration from {settings.config_file}")
    except FileNotFoundError:
        logger.error(
            f"Config file not found: {settings.config_file}. "
            "Create a config.yaml file or set CONFIG_FILE environment variable."
        )
        file_config = {}
    except ConfigError as e:
        logger.error(f"Failed to load config file: {e}")
        file_config = {}

    plugin = WebhookPlugin()
    try:
        plugin.load(file_config)
    except ConfigError as e:
        logger.error(f"Webhooks not loaded: {e}")
    plugin.enable(bus)

    snapshot_task = await start_provider(file_config)

    logger.info("proxyhook started")

    yield

    # Cleanup on shutdown
    if snapshot_task is not None:
        snapshot_task.cancel()
        try:
            await snapshot_task
        except asyncio.CancelledError:
            pass
    if provider is not None:
        await provider.close()
        provider = None
    plugin.disable()
    plugin = None
    provider_snapshot = None
    logger.info("proxyhook stopped")


app = FastAPI(
    title="proxyhook",
    description="Webhook dispatch for proxy events with docker label configuration",
    version="0.1.0",
    lifespan=lifespan,
)


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy"}


@app.get("/webhooks")
async def list_webhooks() -> dict[str, dict[str, list[dict]]]:
    """List configured webhooks per gateway."""
    if not plugin:
        return {"gateways": {}}

    return {
        "gateways": {
            gateway_id: [
                {
                    "id": webhook.id,
                    "url": webhook.url,
                    "events": sorted(webhook.allowed_topics),
                    "serverIds": sorted(webhook.allowed_servers),
                    "format": webhook.formatter.kind.value,
                }
                for webhook in webhooks
            ]
            for gateway_id, webhooks in plugin.router.webhooks.items()
        }
    }


@app.get("/provider")
async def get_provider_snapshot() -> dict[str, Any]:
    """Last configuration snapshot read from container labels."""
    if provider_snapshot is None:
        return {"type": None, "config": {}}
    return provider_snapshot.model_dump(mode="json")


@app.post("/reload")
async def reload_config() -> dict[str, Any]:
    """Re-read the config file and rebuild webhooks.

    If the new configuration is invalid, the current webhooks stay active.
    """
    global file_config

    if not plugin:
        raise HTTPException(
            status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
            detail="Webhook plugin not running",
        )

    settings = get_settings()
    try:
        new_config = load_config_file(settings.config_path)
        previous, file_config = file_config, new_config
        try:
            plugin.reload(effective_config())
        except ConfigError:
            file_config = previous
            raise
    except (FileNotFoundError, ConfigError) as e:
        raise HTTPException(
            status_code=status.HTTP_500_INTERNAL_SERVER_ERROR,
            detail=f"Failed to reload configuration: {e}",
        ) from e

    return {"status": "ok", "gateways": len(plugin.router.webhooks)}


@app.post("/events")
async def publish_event(envelope: EventEnvelope) -> JSONResponse:
    """Publish a proxy event onto the host bus."""
    try:
        event = envelope.to_event()
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"Invalid {envelope.kind} payload: {e}",
        )

    logger.info(f"Received {envelope.kind} event with topics {event.topics}")
    await bus.publish(event)

    return JSONResponse(
        status_code=status.HTTP_202_ACCEPTED,
        content={"status": "accepted", "kind": envelope.kind},
    )


def run() -> None:
    """Run the application using uvicorn."""
    settings = get_settings()
    uvicorn.run(
        "proxyhook.main:app",
        host=settings.host,
        port=settings.port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    run()
