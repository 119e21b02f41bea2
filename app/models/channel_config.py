"""
Per-channel-type configuration models.

Each ChannelType maps to exactly one config model. Configs arrive as opaque
JSON from the notification_channels table and are validated here before any
network call is attempted.
"""

from typing import Dict, Optional, Type, Union
from urllib.parse import urlparse

from pydantic import BaseModel, Field, ValidationError, field_validator

from app.models.notification_channel import ChannelType


class ChannelConfigError(ValueError):
    """Raised when a channel's config is malformed or its type is unknown."""
    pass


def _not_blank(value: str) -> str:
    if not value or not value.strip():
        raise ValueError("must not be empty")
    return value


class DiscordConfig(BaseModel):
    """Discord incoming webhook."""
    webhook_url: str

    @field_validator("webhook_url")
    @classmethod
    def webhook_url_required(cls, v):
        return _not_blank(v)


class WebhookConfig(BaseModel):
    """Generic HTTP webhook with custom method and headers."""
    url: str
    method: str = "POST"
    headers: Dict[str, str] = Field(default_factory=dict)

    @field_validator("url")
    @classmethod
    def url_must_be_http(cls, v):
        _not_blank(v)
        if urlparse(v).scheme not in ("http", "https"):
            raise ValueError("must use http or https scheme")
        return v

    @field_validator("method")
    @classmethod
    def method_defaults_to_post(cls, v):
        return (v or "POST").upper()


class PushoverConfig(BaseModel):
    """Pushover application token and recipient user key."""
    api_token: str
    user_key: str

    @field_validator("api_token", "user_key")
    @classmethod
    def keys_required(cls, v):
        return _not_blank(v)


class NtfyConfig(BaseModel):
    """ntfy topic, optionally on a self-hosted server with a bearer token."""
    server_url: str = "https://ntfy.sh"
    topic: str
    token: Optional[str] = None

    @field_validator("topic")
    @classmethod
    def topic_required(cls, v):
        return _not_blank(v)

    @field_validator("server_url")
    @classmethod
    def server_url_default(cls, v):
        return v or "https://ntfy.sh"

    @property
    def topic_url(self) -> str:
        return self.server_url.rstrip("/") + "/" + self.topic


ChannelConfig = Union[DiscordConfig, WebhookConfig, PushoverConfig, NtfyConfig]

CONFIG_MODELS: Dict[ChannelType, Type[BaseModel]] = {
    ChannelType.DISCORD: DiscordConfig,
    ChannelType.WEBHOOK: WebhookConfig,
    ChannelType.PUSHOVER: PushoverConfig,
    ChannelType.NTFY: NtfyConfig,
}


def _describe(error: ValidationError) -> str:
    """Flatten pydantic errors into 'field: reason; field: reason'."""
    parts = []
    for err in error.errors():
        field = ".".join(str(p) for p in err["loc"]) or "config"
        reason = str(err["msg"]).removeprefix("Value error, ")
        parts.append(f"{field}: {reason}")
    return "; ".join(parts)


def parse_channel_config(channel_type: str, raw: Optional[dict]) -> ChannelConfig:
    """
    Decode and validate a channel config using its type discriminator.

    Args:
        channel_type: Value of NotificationChannel.channel_type
        raw: JSON config blob (dict)

    Returns:
        The validated, type-specific config model

    Raises:
        ChannelConfigError: Unknown channel type or invalid config

    Example:
        >>> parse_channel_config("ntfy", {"topic": "alerts"}).topic_url
        'https://ntfy.sh/alerts'
    """
    try:
        kind = ChannelType(channel_type)
    except ValueError:
        raise ChannelConfigError(f"unknown channel type: {channel_type}")

    if not isinstance(raw, dict):
        raise ChannelConfigError("parsing config: config must be a JSON object")

    try:
        return CONFIG_MODELS[kind].model_validate(raw)
    except ValidationError as e:
        raise ChannelConfigError(_describe(e)) from e
