"""Wire the source, publisher, subscriber and sink into a running pipeline."""

from __future__ import annotations

import signal
import threading
from typing import Any

from fx_stream.config import PipelineConfig
from fx_stream.db.base_backend import SinkBackend
from fx_stream.db.mongo_backend import MongoSink
from fx_stream.errors import RetryableError
from fx_stream.ingestion.rates_api import RatesApiClient
from fx_stream.ingestion.strategy import PayloadSource
from fx_stream.messaging.dead_letter import DeadLetterPublisher
from fx_stream.messaging.publisher import Publisher, SnapshotPublisher
from fx_stream.messaging.retry import RetryingPublisher
from fx_stream.messaging.subscriber import SnapshotSubscriber
from fx_stream.trigger import StartupTrigger
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)


class Pipeline:
    """Own the long-lived pipeline components and their start/stop ordering."""

    def __init__(
        self,
        config: PipelineConfig,
        *,
        sink: SinkBackend,
        publisher: Publisher,
        subscriber: SnapshotSubscriber,
        trigger: StartupTrigger | None,
        dead_letter: DeadLetterPublisher | None = None,
    ) -> None:
        self.config = config
        self.sink = sink
        self.publisher = publisher
        self.subscriber = subscriber
        self.trigger = trigger
        self.dead_letter = dead_letter
        self._wake = threading.Event()

    @classmethod
    def from_config(
        cls,
        config: PipelineConfig,
        *,
        source: PayloadSource | None = None,
        enable_trigger: bool = True,
    ) -> "Pipeline":
        sink = MongoSink(
            config.store_url,
            collection=config.store_index,
            database=config.database_name,
        )
        publisher: Any = SnapshotPublisher(
            config.kafka_producer_config(), send_timeout=config.send_timeout
        )
        if config.publish_retries > 0:
            publisher = RetryingPublisher(
                publisher,
                max_attempts=config.publish_retries + 1,
                backoff_seconds=config.publish_backoff,
            )

        dead_letter = None
        if config.dead_letter_topic:
            # Separate producer so the subscriber never shares a client with the trigger.
            dead_letter = DeadLetterPublisher(
                SnapshotPublisher(config.kafka_producer_config(), send_timeout=config.send_timeout),
                config.dead_letter_topic,
            )

        subscriber = SnapshotSubscriber(
            config.kafka_consumer_config(),
            config.topic,
            sink,
            poll_timeout=config.poll_timeout,
            retry_backoff=config.retry_backoff,
            dead_letter=dead_letter,
        )
        trigger = None
        if enable_trigger:
            source = source or RatesApiClient(config.rates_url, timeout=config.fetch_timeout)
            trigger = StartupTrigger(source, publisher, config.topic)
        return cls(
            config,
            sink=sink,
            publisher=publisher,
            subscriber=subscriber,
            trigger=trigger,
            dead_letter=dead_letter,
        )

    def start(self) -> None:
        """Prepare the store, then start the subscriber and fire the trigger."""

        try:
            self.sink.ensure_schema()
        except RetryableError as exc:
            # The subscriber retries writes until the store comes back.
            LOGGER.warning("Document store not reachable at startup: %s", exc)
        self.subscriber.start()
        if self.trigger is not None:
            self.trigger.start()

    def stop(self, timeout: float | None = 30.0) -> None:
        """Stop the subscriber after its in-flight message and release clients."""

        LOGGER.info("Stopping pipeline")
        self.subscriber.stop()
        if not self.subscriber.join(timeout):
            LOGGER.warning("Subscriber did not stop within %ss", timeout)
        if self.trigger is not None:
            self.trigger.join(timeout)
        for component in (self.publisher, self.dead_letter, self.sink):
            close = getattr(component, "close", None)
            if callable(close):
                close()

    def request_shutdown(self) -> None:
        """Make :meth:`run_forever` return as if a signal had arrived."""

        self._wake.set()

    def run_forever(self) -> None:
        """Start the pipeline and block until SIGINT/SIGTERM."""

        def _on_signal(signum: int, frame: Any) -> None:
            LOGGER.info("Received signal %s", signum)
            self._wake.set()

        previous = {
            sig: signal.signal(sig, _on_signal) for sig in (signal.SIGINT, signal.SIGTERM)
        }
        try:
            self.start()
            self._wake.wait()
        finally:
            for sig, handler in previous.items():
                signal.signal(sig, handler)
            self.stop()


__all__ = ["Pipeline"]
