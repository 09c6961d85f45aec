"""In-memory stand-ins for Kafka and MongoDB clients used across the tests."""

from __future__ import annotations

import zlib
from datetime import date
from typing import Any, Callable, Dict, List

import pytest

from fx_stream.db.base_backend import SinkBackend, StoreResult
from fx_stream.errors import RetryableError, TerminalError
from fx_stream.ingestion.models import RateSnapshot


class DummyError:
    """Mimics the bits of ``confluent_kafka.KafkaError`` the subscriber reads."""

    def __init__(self, code: int, *, fatal: bool = False, text: str = "dummy error") -> None:
        self._code = code
        self._fatal = fatal
        self._text = text

    def code(self) -> int:
        return self._code

    def fatal(self) -> bool:
        return self._fatal

    def __str__(self) -> str:
        return self._text


class DummyMessage:
    def __init__(
        self,
        topic: str,
        partition: int,
        offset: int,
        value: bytes | None,
        *,
        key: bytes | None = None,
        error: DummyError | None = None,
    ) -> None:
        self._topic = topic
        self._partition = partition
        self._offset = offset
        self._value = value
        self._key = key
        self._error = error

    def topic(self) -> str:
        return self._topic

    def partition(self) -> int:
        return self._partition

    def offset(self) -> int:
        return self._offset

    def value(self) -> bytes | None:
        return self._value

    def key(self) -> bytes | None:
        return self._key

    def error(self) -> DummyError | None:
        return self._error


class DummyBroker:
    """A topic log shared by dummy producers and consumers."""

    def __init__(self, partitions: int = 1) -> None:
        self.partitions = partitions
        self.log: List[DummyMessage] = []
        self.committed: Dict[tuple[str, int], int] = {}

    def append(self, topic: str, value: bytes | None, key: bytes | None = None) -> DummyMessage:
        partition = zlib.crc32(key) % self.partitions if key else 0
        offset = sum(1 for msg in self.log if msg.topic() == topic and msg.partition() == partition)
        message = DummyMessage(topic, partition, offset, value, key=key)
        self.log.append(message)
        return message

    def messages(self, topic: str) -> List[DummyMessage]:
        return [msg for msg in self.log if msg.topic() == topic]


class DummyProducer:
    def __init__(self, broker: DummyBroker | None = None, *, mode: str = "ok") -> None:
        self.broker = broker or DummyBroker()
        self.mode = mode
        self._pending: List[tuple[Callable[..., None], DummyMessage | None]] = []
        self.flush_timeouts: List[float] = []

    def produce(self, topic: str, value: bytes, key: bytes | None = None, on_delivery=None) -> None:
        if self.mode == "buffer_full":
            raise BufferError("Local: Queue full")
        if self.mode == "reject":
            self._pending.append((on_delivery, None))
            return
        if self.mode == "timeout":
            return
        self._pending.append((on_delivery, self.broker.append(topic, value, key)))

    def flush(self, timeout: float | None = None) -> int:
        self.flush_timeouts.append(timeout)
        if self.mode == "timeout":
            return 1
        pending, self._pending = self._pending, []
        for callback, message in pending:
            if message is None:
                callback(DummyError(-192, text="Local: Message timed out"), None)
            else:
                callback(None, message)
        return 0


class DummyConsumer:
    """Replays a broker log in order, honouring seek and commit."""

    def __init__(self, broker: DummyBroker, *, extra: List[DummyMessage] | None = None) -> None:
        self.broker = broker
        self.extra = list(extra or [])
        self.position = 0
        self.subscribed: List[str] = []
        self.commits: List[tuple[int, int]] = []
        self.seeks: List[tuple[int, int]] = []
        self.closed = False
        self.on_idle: Callable[[], None] | None = None

    def subscribe(self, topics: List[str], on_assign=None, on_revoke=None) -> None:
        self.subscribed = list(topics)

    @property
    def queue(self) -> List[DummyMessage]:
        return self.extra + [msg for msg in self.broker.log if msg.topic() in self.subscribed]

    def poll(self, timeout: float | None = None) -> DummyMessage | None:
        queue = self.queue
        if self.position >= len(queue):
            if self.on_idle is not None:
                self.on_idle()
            return None
        message = queue[self.position]
        self.position += 1
        return message

    def seek(self, partition: Any) -> None:
        self.seeks.append((partition.partition, partition.offset))
        for index, msg in enumerate(self.queue):
            if (
                msg.topic() == partition.topic
                and msg.partition() == partition.partition
                and msg.offset() == partition.offset
            ):
                self.position = index
                return

    def commit(self, message: DummyMessage, asynchronous: bool = True) -> None:
        assert asynchronous is False
        next_offset = message.offset() + 1
        self.commits.append((message.partition(), next_offset))
        self.broker.committed[(message.topic(), message.partition())] = next_offset

    def close(self) -> None:
        self.closed = True


class MemorySink(SinkBackend):
    """Sink backend keeping documents in a dict, with injectable failures."""

    def __init__(self) -> None:
        self.documents: Dict[str, Dict[str, Any]] = {}
        self.retryable_failures = 0
        self.terminal = False
        self.attempts = 0
        self.order: List[str] = []
        self.reachable = True

    def ensure_schema(self) -> None:
        if not self.reachable:
            raise RetryableError("store down")

    def store(self, snapshot: RateSnapshot) -> StoreResult:
        self.attempts += 1
        if self.retryable_failures > 0:
            self.retryable_failures -= 1
            raise RetryableError("store down", key=snapshot.identity)
        if self.terminal:
            raise TerminalError("schema mismatch", key=snapshot.identity)
        created = snapshot.identity not in self.documents
        self.documents[snapshot.identity] = snapshot.to_payload()
        self.order.append(snapshot.identity)
        return StoreResult(key=snapshot.identity, created=created)

    def ping(self) -> bool:
        return self.reachable

    def count(self) -> int:
        return len(self.documents)

    def fetch(self, *, limit: int = 100, skip: int = 0, base: str | None = None) -> List[Dict[str, Any]]:
        docs = [dict(doc, id=key) for key, doc in self.documents.items()]
        if base:
            docs = [doc for doc in docs if doc["base"] == base]
        return docs[skip : skip + limit]

    def get(self, key: str) -> Dict[str, Any] | None:
        doc = self.documents.get(key)
        return dict(doc, id=key) if doc is not None else None

    def index_info(self) -> Dict[str, Any]:
        return {"database": "memory", "collection": "snapshots", "indexes": {}}


@pytest.fixture
def usd_snapshot() -> RateSnapshot:
    return RateSnapshot(
        base="USD",
        observed_at=date(2025, 6, 26),
        fetched_at_epoch=1719360000,
        rates={"EUR": 0.85, "GBP": 0.73},
    )


@pytest.fixture
def broker() -> DummyBroker:
    return DummyBroker()


@pytest.fixture
def memory_sink() -> MemorySink:
    return MemorySink()
