"""
Channel-specific payload shaping for violation alerts.

Each formatter turns a ViolationEvent plus a validated channel config into an
OutboundRequest; the dispatcher only knows how to send OutboundRequests.
"""

import calendar
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.core.config import settings
from app.models.channel_config import (
    ChannelConfig,
    DiscordConfig,
    NtfyConfig,
    PushoverConfig,
    WebhookConfig,
)
from app.models.rule_violation import Severity
from app.models.violation import ViolationEvent


class OutboundRequest(BaseModel):
    """HTTP request ready to be sent by the dispatcher."""

    model_config = ConfigDict(frozen=True)

    method: str
    url: str
    headers: Dict[str, str] = Field(default_factory=dict)
    json_body: Optional[Any] = None  # sent as JSON
    data: Optional[Dict[str, str]] = None  # sent form-encoded
    content: Optional[str] = None  # sent as raw text


SEVERITY_COLORS = {
    Severity.CRITICAL.value: 0xFF0000,  # Red
    Severity.WARNING.value: 0xFFA500,   # Orange
    Severity.INFO.value: 0x0000FF,      # Blue
}
UNKNOWN_SEVERITY_COLOR = 0x808080  # Gray

PUSHOVER_PRIORITIES = {
    Severity.CRITICAL.value: "1",
    Severity.INFO.value: "-1",
}

NTFY_PRIORITIES = {
    Severity.CRITICAL.value: "urgent",
    Severity.WARNING.value: "high",
    Severity.INFO.value: "low",
}


def _timestamp(event: ViolationEvent) -> str:
    return event.occurred_at.replace(microsecond=0).isoformat() + (
        "Z" if event.occurred_at.tzinfo is None else ""
    )


def _summary(event: ViolationEvent) -> str:
    return f"{event.message}\n\nUser: {event.user_name}\nConfidence: {event.confidence_score:.0f}%"


def format_discord(event: ViolationEvent, config: DiscordConfig) -> OutboundRequest:
    """Discord embed, colored by severity."""
    payload = {
        "embeds": [
            {
                "title": f"Rule Violation: {event.rule_name}",
                "description": event.message,
                "color": SEVERITY_COLORS.get(event.severity, UNKNOWN_SEVERITY_COLOR),
                "fields": [
                    {"name": "User", "value": event.user_name, "inline": True},
                    {"name": "Severity", "value": event.severity, "inline": True},
                    {"name": "Confidence", "value": f"{event.confidence_score:.0f}%", "inline": True},
                ],
                "timestamp": _timestamp(event),
                "footer": {"text": f"{settings.APP_NAME} Rules Engine"},
            }
        ]
    }
    return OutboundRequest(method="POST", url=config.webhook_url, json_body=payload)


def format_webhook(event: ViolationEvent, config: WebhookConfig) -> OutboundRequest:
    """Flat JSON payload with the channel's own method and headers."""
    payload = {
        "event": "rule_violation",
        "rule_id": event.rule_id,
        "rule_name": event.rule_name,
        "user_name": event.user_name,
        "severity": event.severity,
        "message": event.message,
        "confidence_score": event.confidence_score,
        "details": event.details,
        "occurred_at": _timestamp(event),
    }
    headers = {"Content-Type": "application/json", **config.headers}
    return OutboundRequest(method=config.method, url=config.url, headers=headers, json_body=payload)


def format_pushover(event: ViolationEvent, config: PushoverConfig) -> OutboundRequest:
    """Form-encoded Pushover message; priority follows severity."""
    form = {
        "token": config.api_token,
        "user": config.user_key,
        "title": f"{settings.APP_NAME}: {event.rule_name}",
        "message": _summary(event),
        "priority": PUSHOVER_PRIORITIES.get(event.severity, "0"),
        "timestamp": str(calendar.timegm(event.occurred_at.utctimetuple())),
    }
    return OutboundRequest(method="POST", url=settings.PUSHOVER_API_URL, data=form)


def format_ntfy(event: ViolationEvent, config: NtfyConfig) -> OutboundRequest:
    """Plain text body; title, priority and tags travel as headers."""
    headers = {
        "Title": f"{settings.APP_NAME}: {event.rule_name}",
        "Priority": NTFY_PRIORITIES.get(event.severity, "default"),
        "Tags": event.severity,
    }
    if config.token:
        headers["Authorization"] = f"Bearer {config.token}"
    return OutboundRequest(method="POST", url=config.topic_url, headers=headers, content=_summary(event))


FORMATTERS = {
    DiscordConfig: format_discord,
    WebhookConfig: format_webhook,
    PushoverConfig: format_pushover,
    NtfyConfig: format_ntfy,
}


def build_request(event: ViolationEvent, config: ChannelConfig) -> OutboundRequest:
    """Pick the formatter matching the config's type."""
    return FORMATTERS[type(config)](event, config)
