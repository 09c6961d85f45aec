"""Kafka consumer loop that drains the rates topic into the sink."""

from __future__ import annotations

import threading
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Optional

from confluent_kafka import Consumer, KafkaError, KafkaException, TopicPartition

from fx_stream.db.base_backend import SinkBackend
from fx_stream.errors import DecodeError, RetryableError, TerminalError
from fx_stream.ingestion.codec import decode_snapshot
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)

DeadLetterHandler = Callable[..., bool]


class SubscriberState(str, Enum):
    """Lifecycle of a :class:`SnapshotSubscriber`."""

    STOPPED = "stopped"
    STARTING = "starting"
    LISTENING = "listening"
    PROCESSING = "processing"
    FAILED = "failed"


@dataclass(slots=True)
class FailedMessage:
    """A message that was given up on and committed anyway."""

    topic: str
    partition: int
    offset: int
    reason: str


class SnapshotSubscriber:
    """Receive snapshots from a topic and upsert them through a sink backend.

    Offsets are committed manually, only after the sink acknowledged the write
    or failed in a way redelivery cannot fix. A retryable sink failure rewinds
    the partition to the failed offset, so the same message is attempted again
    (in order) after ``retry_backoff`` seconds, or after a restart/rebalance.
    If that rewind fails, the partition is held back: later messages from it
    are neither stored nor committed until a rewind succeeds.
    Nothing that happens while handling a single message ends the loop; only
    :meth:`stop` (or a fatal client error) does.
    """

    def __init__(
        self,
        consumer_config: dict[str, Any],
        topic: str,
        sink: SinkBackend,
        *,
        poll_timeout: float = 1.0,
        retry_backoff: float = 5.0,
        dead_letter: Optional[DeadLetterHandler] = None,
        consumer: Consumer | None = None,
    ) -> None:
        self.topic = topic
        self.sink = sink
        self.poll_timeout = poll_timeout
        self.retry_backoff = retry_backoff
        self.dead_letter = dead_letter
        self._consumer_config = dict(consumer_config)
        self._consumer = consumer
        self._stop = threading.Event()
        self._thread: threading.Thread | None = None
        # (topic, partition) -> offset still waiting for a successful seek.
        self._pending_rewinds: dict[tuple[str, int], int] = {}
        self.state = SubscriberState.STOPPED
        self.processed = 0
        self.committed = 0
        self.failures = 0
        self.last_failure: FailedMessage | None = None

    @property
    def group_id(self) -> str | None:
        return self._consumer_config.get("group.id")

    def start(self) -> threading.Thread:
        """Run the receive loop on a background thread."""

        if self._thread is not None and self._thread.is_alive():
            raise RuntimeError("Subscriber is already running")
        self._stop.clear()
        self._thread = threading.Thread(target=self.run, name="fx-stream-subscriber", daemon=True)
        self._thread.start()
        return self._thread

    def stop(self) -> None:
        """Ask the loop to exit once the in-flight message is finished."""

        self._stop.set()

    def join(self, timeout: float | None = None) -> bool:
        """Wait for the background loop; return True once it has exited."""

        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()

    @property
    def stopping(self) -> bool:
        return self._stop.is_set()

    def run(self) -> None:
        """Blocking receive loop; returns after :meth:`stop`."""

        self.state = SubscriberState.STARTING
        self._pending_rewinds.clear()
        consumer = self._open()
        LOGGER.info("Subscribing to %s as group %s", self.topic, self.group_id)
        consumer.subscribe([self.topic], on_assign=_log_assignment, on_revoke=self._on_revoke)
        try:
            while not self._stop.is_set():
                self.state = SubscriberState.LISTENING
                if self._pending_rewinds:
                    self._rewind_pending(consumer)
                message = consumer.poll(self.poll_timeout)
                if message is None:
                    continue
                error = message.error()
                if error is not None:
                    if self._handle_client_error(error):
                        break
                    continue
                if self._held_back(message):
                    continue
                self._handle(consumer, message)
        finally:
            LOGGER.info("Closing subscriber for %s", self.topic)
            try:
                consumer.close()
            except (KafkaException, RuntimeError) as exc:
                LOGGER.warning("Error while closing consumer: %s", exc)
            self._consumer = None
            self.state = SubscriberState.STOPPED

    def _open(self) -> Consumer:
        if self._consumer is None:
            self._consumer = Consumer(self._consumer_config)
        return self._consumer

    def _handle_client_error(self, error: KafkaError) -> bool:
        """Log a client-level error; return True when the loop cannot continue."""

        if error.code() == KafkaError._PARTITION_EOF:
            LOGGER.debug("Reached end of partition: %s", error)
            return False
        if error.fatal():
            LOGGER.critical("Fatal consumer error, stopping subscriber: %s", error)
            return True
        LOGGER.error("Consumer error: %s", error)
        return False

    def _handle(self, consumer: Consumer, message: Any) -> None:
        self.state = SubscriberState.PROCESSING
        self.processed += 1
        position = f"{message.topic()}[{message.partition()}]@{message.offset()}"

        try:
            snapshot = decode_snapshot(message.value())
        except DecodeError as exc:
            LOGGER.error("Skipping undecodable message %s: %s", position, exc)
            self._give_up(consumer, message, str(exc))
            return
        except Exception as exc:
            # Decoding is deterministic, so a redelivery would fail the same way.
            LOGGER.exception("Skipping undecodable message %s", position)
            self._give_up(consumer, message, f"{type(exc).__name__}: {exc}")
            return

        try:
            result = self.sink.store(snapshot)
        except RetryableError as exc:
            LOGGER.warning(
                "Store unavailable for %s (%s); will retry in %ss",
                position,
                exc,
                self.retry_backoff,
            )
            self._retry_later(consumer, message)
            return
        except TerminalError as exc:
            LOGGER.error("Dropping snapshot %s from %s: %s", snapshot.identity, position, exc)
            self._give_up(consumer, message, str(exc), key=snapshot.identity)
            return
        except Exception:
            LOGGER.exception("Unexpected error storing %s; will retry", position)
            self._retry_later(consumer, message)
            return

        LOGGER.debug("Stored %s from %s", result.key, position)
        self._commit(consumer, message)

    def _give_up(self, consumer: Consumer, message: Any, reason: str, *, key: str | None = None) -> None:
        self.failures += 1
        self.last_failure = FailedMessage(
            topic=message.topic(),
            partition=message.partition(),
            offset=message.offset(),
            reason=reason,
        )
        self.state = SubscriberState.FAILED
        if self.dead_letter is not None:
            try:
                self.dead_letter(message.value(), reason, key=key)
            except Exception:
                LOGGER.exception("Dead-letter handler failed for offset %s", message.offset())
        self._commit(consumer, message)

    def _retry_later(self, consumer: Consumer, message: Any) -> None:
        partition = TopicPartition(message.topic(), message.partition(), message.offset())
        try:
            consumer.seek(partition)
        except KafkaException as exc:
            LOGGER.error(
                "Could not rewind %s[%s] to offset %s, holding the partition back: %s",
                message.topic(),
                message.partition(),
                message.offset(),
                exc,
            )
            self._pending_rewinds[(message.topic(), message.partition())] = message.offset()
        self._stop.wait(self.retry_backoff)

    def _rewind_pending(self, consumer: Consumer) -> None:
        failed = False
        for (topic, partition), offset in list(self._pending_rewinds.items()):
            try:
                consumer.seek(TopicPartition(topic, partition, offset))
            except KafkaException as exc:
                LOGGER.warning("Still unable to rewind %s[%s] to offset %s: %s", topic, partition, offset, exc)
                failed = True
                continue
            LOGGER.info("Rewound %s[%s] to offset %s", topic, partition, offset)
            del self._pending_rewinds[(topic, partition)]
        if failed:
            self._stop.wait(self.retry_backoff)

    def _held_back(self, message: Any) -> bool:
        """Return True when ``message`` sits behind an offset that must be retried first."""

        key = (message.topic(), message.partition())
        pending = self._pending_rewinds.get(key)
        if pending is None:
            return False
        if message.offset() == pending:
            # Redelivered without our seek, e.g. after a rebalance.
            del self._pending_rewinds[key]
            return False
        LOGGER.debug(
            "Ignoring %s[%s]@%s until offset %s is retried",
            key[0],
            key[1],
            message.offset(),
            pending,
        )
        return True

    def _on_revoke(self, consumer: Consumer, partitions: list[TopicPartition]) -> None:
        _log_revocation(consumer, partitions)
        # Revoked partitions resume from their committed offset wherever they land next.
        for tp in partitions:
            self._pending_rewinds.pop((tp.topic, tp.partition), None)

    def _commit(self, consumer: Consumer, message: Any) -> None:
        try:
            consumer.commit(message=message, asynchronous=False)
        except KafkaException as exc:
            LOGGER.error(
                "Failed to commit offset %s on %s[%s]: %s",
                message.offset(),
                message.topic(),
                message.partition(),
                exc,
            )
            return
        self.committed += 1


def _log_assignment(consumer: Consumer, partitions: list[TopicPartition]) -> None:
    LOGGER.info("Assigned partitions: %s", [f"{p.topic}[{p.partition}]" for p in partitions])


def _log_revocation(consumer: Consumer, partitions: list[TopicPartition]) -> None:
    LOGGER.info("Revoked partitions: %s", [f"{p.topic}[{p.partition}]" for p in partitions])


__all__ = ["SnapshotSubscriber", "SubscriberState", "FailedMessage"]
