from __future__ import annotations

import time

import pytest

from conftest import DummyBroker, DummyConsumer, DummyProducer, MemorySink
from fx_stream.errors import FetchError, PublishFailure
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.messaging.publisher import DeliveryResult, SnapshotPublisher
from fx_stream.messaging.subscriber import SnapshotSubscriber, SubscriberState
from fx_stream.trigger import StartupTrigger


class _StaticSource:
    def __init__(self, snapshot: RateSnapshot | None = None, error: Exception | None = None) -> None:
        self.snapshot = snapshot
        self.error = error
        self.calls = 0

    def fetch(self) -> RateSnapshot:
        self.calls += 1
        if self.error is not None:
            raise self.error
        assert self.snapshot is not None
        return self.snapshot


class _FailingPublisher:
    def __init__(self) -> None:
        self.calls = 0

    def publish(self, topic: str, snapshot: RateSnapshot) -> DeliveryResult:
        self.calls += 1
        raise PublishFailure("broker unavailable")


def test_run_fetches_and_publishes(broker: DummyBroker, usd_snapshot: RateSnapshot) -> None:
    publisher = SnapshotPublisher({}, producer=DummyProducer(broker))
    trigger = StartupTrigger(_StaticSource(usd_snapshot), publisher, "exchange-rates")

    result = trigger.run()

    assert result == DeliveryResult(topic="exchange-rates", partition=0, offset=0, key="USD")
    assert trigger.result == result
    assert len(broker.messages("exchange-rates")) == 1


def test_fetch_failure_skips_publish(broker: DummyBroker, caplog: pytest.LogCaptureFixture) -> None:
    trigger = StartupTrigger(
        _StaticSource(error=FetchError("Timed out after 10s")),
        SnapshotPublisher({}, producer=DummyProducer(broker)),
        "exchange-rates",
    )

    with caplog.at_level("ERROR"):
        assert trigger.run() is None

    assert broker.log == []
    assert "rate fetch failed" in caplog.text


def test_publish_failure_is_swallowed(usd_snapshot: RateSnapshot, caplog: pytest.LogCaptureFixture) -> None:
    publisher = _FailingPublisher()
    trigger = StartupTrigger(_StaticSource(usd_snapshot), publisher, "exchange-rates")

    with caplog.at_level("ERROR"):
        assert trigger.run() is None

    assert publisher.calls == 1
    assert "Publishing snapshot USD|2025-06-26|1719360000 failed" in caplog.text


def test_start_fires_only_once(broker: DummyBroker, usd_snapshot: RateSnapshot) -> None:
    source = _StaticSource(usd_snapshot)
    trigger = StartupTrigger(source, SnapshotPublisher({}, producer=DummyProducer(broker)), "exchange-rates")

    thread = trigger.start()
    assert trigger.start() is None
    assert trigger.join(timeout=5)

    assert thread is not None and thread.name == "fx-stream-trigger"
    assert source.calls == 1
    assert len(broker.log) == 1


def test_fetch_timeout_leaves_subscriber_listening(broker: DummyBroker, memory_sink: MemorySink) -> None:
    consumer = DummyConsumer(broker)
    subscriber = SnapshotSubscriber({}, "exchange-rates", memory_sink, poll_timeout=0.01, consumer=consumer)
    subscriber.start()
    trigger = StartupTrigger(
        _StaticSource(error=FetchError("Timed out")),
        SnapshotPublisher({}, producer=DummyProducer(broker)),
        "exchange-rates",
    )

    trigger.start()
    assert trigger.join(timeout=5)

    assert broker.log == []
    deadline = time.monotonic() + 5
    while subscriber.state is not SubscriberState.LISTENING:
        assert time.monotonic() < deadline
        time.sleep(0.01)
    subscriber.stop()
    assert subscriber.join(timeout=5)
    assert subscriber.state is SubscriberState.STOPPED
