"""Client configuration loading helpers."""

from __future__ import annotations

from pathlib import Path

import tomllib

from pydantic import BaseModel, Field

from .transport import ChannelSettings

CONFIG_FILE = Path.home() / ".config" / "fwdproxy" / "config.toml"


class ChannelConfig(BaseModel):
    """gRPC channel tuning stored under ``[channel]``."""

    secure: bool = False
    max_message_length: int = -1
    max_reconnect_backoff_ms: int = Field(default=1000, gt=0)
    compression_level: int = Field(default=2, ge=0, le=3)
    enable_retries: bool = True

    def settings(self, target: str) -> ChannelSettings:
        """Transport settings for a channel to ``target``."""

        return ChannelSettings(
            target=target,
            secure=self.secure,
            max_message_length=self.max_message_length,
            max_reconnect_backoff_ms=self.max_reconnect_backoff_ms,
            compression_level=self.compression_level,
            enable_retries=self.enable_retries,
        )


class ProxyClientConfig(BaseModel):
    """Shape of the client configuration file."""

    target: str = "localhost:8082"
    semaphore: int = Field(default=1000, ge=1)
    max_retries: int = Field(default=0, ge=0)
    client_timeout_ms: int = Field(default=5000, gt=0)
    logging_enabled: bool = True
    channel: ChannelConfig = Field(default_factory=ChannelConfig)

    def with_overrides(self, **updates: object) -> ProxyClientConfig:
        """Return a copy with non-``None`` values applied."""

        changes = {key: value for key, value in updates.items() if value is not None}
        if not changes:
            return self
        return self.model_validate({**self.model_dump(), **changes})


def load_config(path: Path | None = None) -> ProxyClientConfig:
    """Load configuration from disk; fall back to defaults if missing."""

    try:
        data = _read_config_file(path or CONFIG_FILE)
    except FileNotFoundError:
        return ProxyClientConfig()
    except (tomllib.TOMLDecodeError, OSError):
        return ProxyClientConfig()
    return ProxyClientConfig(**data)


def _read_config_file(path: Path) -> dict[str, object]:
    with path.open("rb") as handle:
        raw = tomllib.load(handle)
    data: dict[str, object] = {}
    client = raw.get("client")
    if isinstance(client, dict):
        target = client.get("target")
        if isinstance(target, str):
            data["target"] = target
        for key in ("semaphore", "max_retries", "client_timeout_ms"):
            value = client.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                data[key] = value
        logging_enabled = client.get("logging_enabled")
        if isinstance(logging_enabled, bool):
            data["logging_enabled"] = logging_enabled
    channel = raw.get("channel")
    if isinstance(channel, dict):
        state: dict[str, object] = {}
        for key in ("secure", "enable_retries"):
            value = channel.get(key)
            if isinstance(value, bool):
                state[key] = value
        for key in ("max_message_length", "max_reconnect_backoff_ms", "compression_level"):
            value = channel.get(key)
            if isinstance(value, int) and not isinstance(value, bool):
                state[key] = value
        data["channel"] = ChannelConfig(**state)
    return data


__all__ = [
    "CONFIG_FILE",
    "ChannelConfig",
    "ProxyClientConfig",
    "load_config",
]
