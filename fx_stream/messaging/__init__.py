"""Kafka producer and consumer components."""

from __future__ import annotations

from fx_stream.messaging.dead_letter import DeadLetterPublisher
from fx_stream.messaging.publisher import DeliveryResult, Publisher, SnapshotPublisher
from fx_stream.messaging.retry import RetryingPublisher
from fx_stream.messaging.subscriber import SnapshotSubscriber, SubscriberState

__all__ = [
    "DeadLetterPublisher",
    "DeliveryResult",
    "Publisher",
    "RetryingPublisher",
    "SnapshotPublisher",
    "SnapshotSubscriber",
    "SubscriberState",
]
