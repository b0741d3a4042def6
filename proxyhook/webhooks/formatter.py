"""Destination-specific payload formatting."""

import json
from enum import Enum
from typing import Callable

from proxyhook.models.event_log import EventData, EventLog
from proxyhook.models.webhooks import FormatterConfig


class FormatterKind(str, Enum):
    DEFAULT = "default"
    DISCORD = "discord"
    SLACK = "slack"

    @classmethod
    def from_tag(cls, tag: str) -> "FormatterKind":
        """Unknown tags select DEFAULT, which always sends generic JSON."""
        try:
            return cls(tag)
        except ValueError:
            return cls.DEFAULT


def discord_payload(message: str) -> bytes:
    return json.dumps({"content": message}).encode("utf-8")


def slack_payload(message: str) -> bytes:
    return json.dumps({"text": message}).encode("utf-8")


# DEFAULT has no envelope on purpose: templates are ignored for it.
ENVELOPES: dict[FormatterKind, Callable[[str], bytes]] = {
    FormatterKind.DISCORD: discord_payload,
    FormatterKind.SLACK: slack_payload,
}


def message_fields(data: EventData) -> dict[str, str]:
    """Values available to message templates as {{key}}."""
    if data.is_login_request is None:
        is_login_request = ""
    else:
        is_login_request = str(data.is_login_request).lower()

    return {
        "edition": data.edition,
        "gatewayId": data.gateway_id,
        "conn.network": data.conn.network,
        "conn.localAddress": data.conn.local_addr,
        "conn.remoteAddress": data.conn.remote_addr,
        "conn.username": data.conn.username or "",
        "server.serverId": data.server.server_id or "",
        "server.serverAddress": data.server.server_addr or "",
        "server.domains": ", ".join(data.server.domains or []),
        "isLoginRequest": is_login_request,
    }


def render_template(template: str, fields: dict[str, str]) -> str:
    for key, value in fields.items():
        template = template.replace(f"{{{{{key}}}}}", value)
    return template


class Formatter:
    """Builds the request body for one destination."""

    def __init__(self, config: FormatterConfig):
        self._config = config
        self._kind = FormatterKind.from_tag(config.type)
        self._envelope = ENVELOPES.get(self._kind)

    @property
    def config(self) -> FormatterConfig:
        return self._config

    @property
    def kind(self) -> FormatterKind:
        return self._kind

    def apply(self, data: EventData, template: str) -> str:
        return render_template(template, message_fields(data))

    def payload(self, log: EventLog) -> bytes:
        """Templated envelope when one is configured, generic JSON otherwise."""
        template = self._config.message_map.get(log.type)
        if template is not None and self._envelope is not None:
            return self._envelope(self.apply(log.data, template))
        return log.data.to_json()
