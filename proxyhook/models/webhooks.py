"""Webhook configuration models."""

from typing import Annotated, Any

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from proxyhook.models.duration import Duration

DEFAULT_DIAL_TIMEOUT = 5.0


def _as_list(value: Any) -> Any:
    # single-valued container labels arrive as plain strings
    if isinstance(value, str):
        return [value]
    return value


StrList = Annotated[list[str], BeforeValidator(_as_list)]


class FormatterConfig(BaseModel):
    """How a destination wants its payload shaped."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    type: str = Field(default="", description="discord, slack or empty for generic JSON")
    message_map: dict[str, str] = Field(
        default_factory=dict,
        alias="messageMap",
        description="Event type name to message template",
    )


class WebhookConfig(BaseModel):
    """A single webhook destination."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    dial_timeout: Duration = Field(default=DEFAULT_DIAL_TIMEOUT, alias="dialTimeout")
    url: str
    events: StrList = Field(default_factory=list, description="Allowed topics")
    gateway_ids: StrList = Field(default_factory=list, alias="gatewayIds")
    server_ids: StrList = Field(default_factory=list, alias="serverIds")
    format: FormatterConfig = Field(default_factory=FormatterConfig)


class WebhookSection(BaseModel):
    enable: bool = False
    webhooks: dict[str, dict[str, Any]] = Field(default_factory=dict)


class WebhookDefaults(BaseModel):
    webhook: dict[str, Any] = Field(default_factory=dict)


class WebhookPluginConfig(BaseModel):
    """The parts of the proxy config the webhook plugin reads."""

    model_config = ConfigDict(extra="ignore")

    webhook: WebhookSection = Field(default_factory=WebhookSection)
    defaults: WebhookDefaults = Field(default_factory=WebhookDefaults)
