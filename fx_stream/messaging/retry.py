"""Bounded retry wrapper layered on top of a publisher."""

from __future__ import annotations

import random
import time
from typing import Callable

from fx_stream.errors import PublishFailure
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.messaging.publisher import DeliveryResult, Publisher
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)


class RetryingPublisher:
    """Retry ``PublishFailure`` with linear backoff and jitter.

    Configuration errors are raised immediately; the last failure is re-raised
    once ``max_attempts`` is exhausted.
    """

    def __init__(
        self,
        publisher: Publisher,
        *,
        max_attempts: int = 3,
        backoff_seconds: float = 1.0,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.publisher = publisher
        self.max_attempts = max_attempts
        self.backoff_seconds = backoff_seconds
        self._sleep = sleep

    def publish(self, topic: str, snapshot: RateSnapshot) -> DeliveryResult:
        attempt = 0
        while True:
            attempt += 1
            try:
                return self.publisher.publish(topic, snapshot)
            except PublishFailure as exc:
                LOGGER.warning(
                    "Attempt %s/%s to publish %s failed: %s",
                    attempt,
                    self.max_attempts,
                    snapshot.identity,
                    exc,
                )
                if attempt >= self.max_attempts:
                    raise
                jitter = random.uniform(0.5, 1.5)
                self._sleep(self.backoff_seconds * attempt * jitter)

    def close(self) -> None:
        close = getattr(self.publisher, "close", None)
        if callable(close):
            close()


__all__ = ["RetryingPublisher"]
