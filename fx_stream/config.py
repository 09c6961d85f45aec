"""Runtime configuration for the fx_stream pipeline."""

from __future__ import annotations

import os
from dataclasses import dataclass, fields, replace
from typing import Any, Callable, Mapping
from urllib.parse import urlparse

from fx_stream.errors import ConfigError
from fx_stream.ingestion.rates_api import DEFAULT_RATES_URL

DEFAULT_DATABASE_NAME = "fx"

# Environment variable -> (field name, parser)
ENV_VARS: dict[str, tuple[str, Callable[[str], Any]]] = {
    "FX_KAFKA_BOOTSTRAP": ("bootstrap_servers", str),
    "FX_TOPIC": ("topic", str),
    "FX_GROUP_ID": ("group_id", str),
    "FX_STORE_URL": ("store_url", str),
    "FX_STORE_INDEX": ("store_index", str),
    "FX_RATES_URL": ("rates_url", str),
    "FX_FETCH_TIMEOUT": ("fetch_timeout", float),
    "FX_SEND_TIMEOUT": ("send_timeout", float),
    "FX_POLL_TIMEOUT": ("poll_timeout", float),
    "FX_RETRY_BACKOFF": ("retry_backoff", float),
    "FX_PUBLISH_RETRIES": ("publish_retries", int),
    "FX_PUBLISH_BACKOFF": ("publish_backoff", float),
    "FX_DEAD_LETTER_TOPIC": ("dead_letter_topic", str),
}


@dataclass(slots=True)
class PipelineConfig:
    """Connection details and tuning knobs shared by every pipeline component."""

    bootstrap_servers: str = "localhost:9092"
    topic: str = "exchange-rates"
    group_id: str = "fx-stream"
    store_url: str = f"mongodb://localhost:27017/{DEFAULT_DATABASE_NAME}"
    store_index: str = "exchange_rates"
    rates_url: str = DEFAULT_RATES_URL
    fetch_timeout: float = 10.0
    send_timeout: float = 10.0
    poll_timeout: float = 1.0
    retry_backoff: float = 5.0
    publish_retries: int = 0
    publish_backoff: float = 1.0
    dead_letter_topic: str | None = None

    @classmethod
    def from_env(
        cls,
        environ: Mapping[str, str] | None = None,
        **overrides: Any,
    ) -> "PipelineConfig":
        """Build a validated config from ``FX_*`` variables.

        Keyword overrides win over the environment; ``None`` overrides are
        ignored so argparse defaults can be passed straight through.
        """

        env = os.environ if environ is None else environ
        values: dict[str, Any] = {}
        for variable, (name, parser) in ENV_VARS.items():
            raw = env.get(variable)
            if raw is None or raw.strip() == "":
                continue
            try:
                values[name] = parser(raw.strip())
            except ValueError as exc:
                raise ConfigError(f"{variable} has an invalid value: {raw!r}") from exc

        known = {item.name for item in fields(cls)}
        for name, value in overrides.items():
            if name not in known:
                raise ConfigError(f"Unknown configuration option: {name}")
            if value is not None:
                values[name] = value

        config = cls(**values)
        config.validate()
        return config

    def validate(self) -> None:
        """Fail fast on settings the pipeline cannot run with."""

        for name in ("bootstrap_servers", "topic", "group_id", "store_url", "store_index"):
            value = getattr(self, name)
            if not isinstance(value, str) or not value.strip():
                raise ConfigError(f"{name} must not be empty")
        scheme = urlparse(self.store_url).scheme.lower()
        if scheme not in {"mongodb", "mongodb+srv"}:
            raise ConfigError("store_url must be a mongodb:// or mongodb+srv:// URL")
        for name in ("fetch_timeout", "send_timeout", "poll_timeout"):
            if getattr(self, name) <= 0:
                raise ConfigError(f"{name} must be greater than zero")
        for name in ("retry_backoff", "publish_backoff"):
            if getattr(self, name) < 0:
                raise ConfigError(f"{name} must not be negative")
        if self.publish_retries < 0:
            raise ConfigError("publish_retries must not be negative")
        if self.dead_letter_topic is not None and self.dead_letter_topic.strip() == self.topic.strip():
            raise ConfigError("dead_letter_topic must differ from topic")

    @property
    def database_name(self) -> str:
        """Database encoded in the store URL path, defaulting to ``fx``."""

        path = urlparse(self.store_url).path
        name = path[1:] if path and path != "/" else ""
        return name or DEFAULT_DATABASE_NAME

    def kafka_producer_config(self) -> dict[str, Any]:
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "acks": "all",
            "enable.idempotence": True,
            "message.timeout.ms": int(self.send_timeout * 1000),
        }

    def kafka_consumer_config(self) -> dict[str, Any]:
        return {
            "bootstrap.servers": self.bootstrap_servers,
            "group.id": self.group_id,
            "enable.auto.commit": False,
            "auto.offset.reset": "earliest",
        }

    def with_overrides(self, **changes: Any) -> "PipelineConfig":
        """Return a validated copy with ``changes`` applied."""

        config = replace(self, **changes)
        config.validate()
        return config


__all__ = ["PipelineConfig", "ENV_VARS", "DEFAULT_DATABASE_NAME"]
