"""Kafka publisher for rate snapshots."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Protocol

from confluent_kafka import KafkaError, KafkaException, Producer

from fx_stream.errors import ConfigError, PublishFailure
from fx_stream.ingestion.codec import ENCODING, encode_snapshot
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)


@dataclass(slots=True)
class DeliveryResult:
    """Position the topic assigned to a published message."""

    topic: str
    partition: int
    offset: int
    key: str | None = None


class Publisher(Protocol):
    def publish(self, topic: str, snapshot: RateSnapshot) -> DeliveryResult:
        ...  # pragma: no cover - protocol definition


class SnapshotPublisher:
    """Append snapshots to a topic, blocking until the broker acknowledges them.

    Failures raise :class:`PublishFailure`; there is no built-in retry, wrap
    the publisher in :class:`~fx_stream.messaging.retry.RetryingPublisher`
    when one is needed.
    """

    def __init__(
        self,
        producer_config: dict[str, Any],
        *,
        send_timeout: float = 10.0,
        producer: Producer | None = None,
    ) -> None:
        self.send_timeout = send_timeout
        self._producer = producer if producer is not None else Producer(producer_config)

    def publish(self, topic: str, snapshot: RateSnapshot) -> DeliveryResult:
        if not topic or not topic.strip():
            raise ConfigError("Topic name must not be empty")
        if snapshot is None:
            raise TypeError("snapshot must not be None")
        topic = topic.strip()
        payload = encode_snapshot(snapshot)
        # Keying by base keeps every snapshot of one currency on one partition.
        return self._send(topic, key=snapshot.base, value=payload, label=snapshot.identity)

    def publish_raw(self, topic: str, value: bytes, *, key: str | None = None) -> DeliveryResult:
        """Append an already-encoded payload, used for dead-lettering."""

        if not topic or not topic.strip():
            raise ConfigError("Topic name must not be empty")
        return self._send(topic.strip(), key=key, value=value, label=f"{len(value)} bytes")

    def _send(self, topic: str, *, key: str | None, value: bytes, label: str) -> DeliveryResult:
        outcome: dict[str, Any] = {}

        def _on_delivery(err: KafkaError | None, msg: Any) -> None:
            outcome["error"] = err
            outcome["message"] = msg

        try:
            self._producer.produce(
                topic,
                value=value,
                key=key.encode(ENCODING) if key is not None else None,
                on_delivery=_on_delivery,
            )
            remaining = self._producer.flush(self.send_timeout)
        except (KafkaException, BufferError) as exc:
            LOGGER.error("Failed to publish %s to %s: %s", label, topic, exc)
            raise PublishFailure(f"Failed to publish to {topic}: {exc}", cause=exc) from exc

        if "message" not in outcome:
            LOGGER.error(
                "Timed out after %ss publishing %s to %s (%s message(s) still queued)",
                self.send_timeout,
                label,
                topic,
                remaining,
            )
            raise PublishFailure(f"Timed out after {self.send_timeout}s publishing to {topic}")

        error = outcome["error"]
        if error is not None:
            LOGGER.error("Broker rejected %s for %s: %s", label, topic, error)
            raise PublishFailure(
                f"Broker rejected message for {topic}: {error}", cause=KafkaException(error)
            )

        message = outcome["message"]
        result = DeliveryResult(
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset(),
            key=key,
        )
        LOGGER.info(
            "Published %s to %s [partition %s, offset %s]",
            label,
            result.topic,
            result.partition,
            result.offset,
        )
        return result

    def close(self) -> None:
        remaining = self._producer.flush(self.send_timeout)
        if remaining:
            LOGGER.warning("%s message(s) were still queued when the publisher closed", remaining)


__all__ = ["DeliveryResult", "Publisher", "SnapshotPublisher"]
