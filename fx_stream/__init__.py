"""Public interface for the fx_stream package."""

from __future__ import annotations

from importlib import metadata as importlib_metadata
from typing import Any

from fx_stream.config import PipelineConfig
from fx_stream.db.base_backend import SinkBackend, StoreResult
from fx_stream.db.mongo_backend import MongoSink, document_to_snapshot
from fx_stream.errors import (
    ConfigError,
    DecodeError,
    FetchError,
    FxStreamError,
    PublishFailure,
    RetryableError,
    TerminalError,
)
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.ingestion.rates_api import RatesApiClient
from fx_stream.messaging.publisher import DeliveryResult, SnapshotPublisher
from fx_stream.pipeline import Pipeline
from fx_stream.trigger import StartupTrigger

__all__ = [
    "__version__",
    "FxStream",
    "PipelineConfig",
    "Pipeline",
    "RateSnapshot",
    "DeliveryResult",
    "StoreResult",
    "FxStreamError",
    "ConfigError",
    "FetchError",
    "PublishFailure",
    "DecodeError",
    "RetryableError",
    "TerminalError",
]

try:
    __version__ = importlib_metadata.version("fx-stream")
except importlib_metadata.PackageNotFoundError:  # pragma: no cover - fallback for local runs
    __version__ = "0.1.0"


class FxStream:
    """Package facade that centralises pipeline configuration.

    ``FxStream()`` reads ``FX_*`` environment variables; pass a
    ``PipelineConfig`` or keyword overrides to point it somewhere else.
    Components are created lazily so read-only callers never open a Kafka
    client.
    """

    __slots__ = ("config", "_sink", "_publisher")

    __version__ = __version__

    def __init__(self, config: PipelineConfig | None = None, **overrides: Any) -> None:
        if config is None:
            config = PipelineConfig.from_env(**overrides)
        elif overrides:
            config = config.with_overrides(**overrides)
        else:
            config.validate()
        self.config = config
        self._sink: SinkBackend | None = None
        self._publisher: SnapshotPublisher | None = None

    @property
    def sink(self) -> SinkBackend:
        if self._sink is None:
            self._sink = MongoSink(
                self.config.store_url,
                collection=self.config.store_index,
                database=self.config.database_name,
            )
        return self._sink

    @property
    def publisher(self) -> SnapshotPublisher:
        if self._publisher is None:
            self._publisher = SnapshotPublisher(
                self.config.kafka_producer_config(), send_timeout=self.config.send_timeout
            )
        return self._publisher

    def connection(self) -> tuple[bool, str | None]:
        """Check that the document store answers; return ``(ok, error)``."""

        if self.sink.ping():
            return True, None
        return False, f"Document store at {self.config.store_url} is not reachable"

    def publish_latest(self) -> DeliveryResult | None:
        """Fetch the current snapshot and publish it; ``None`` when either step failed."""

        source = RatesApiClient(self.config.rates_url, timeout=self.config.fetch_timeout)
        try:
            return StartupTrigger(source, self.publisher, self.config.topic).run()
        finally:
            source.close()

    def snapshots(self, *, limit: int = 100, base: str | None = None) -> list[RateSnapshot]:
        """Return stored snapshots, newest first."""

        return [document_to_snapshot(doc) for doc in self.sink.fetch(limit=limit, base=base)]

    def count(self) -> int:
        return self.sink.count()

    def pipeline(self, *, enable_trigger: bool = True) -> Pipeline:
        """Build a :class:`Pipeline` for this configuration."""

        return Pipeline.from_config(self.config, enable_trigger=enable_trigger)

    def close(self) -> None:
        if self._publisher is not None:
            self._publisher.close()
        if self._sink is not None:
            self._sink.close()
