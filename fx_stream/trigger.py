"""One-shot startup task: fetch the current snapshot and publish it."""

from __future__ import annotations

import threading

from fx_stream.errors import FetchError, PublishFailure
from fx_stream.ingestion.strategy import PayloadSource
from fx_stream.messaging.publisher import DeliveryResult, Publisher
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)


class StartupTrigger:
    """Fetch from ``source`` and publish to ``topic`` once the process is ready.

    Fetch and publish failures are logged and swallowed: the subscriber has to
    keep running whatever happens on the producer side.
    """

    def __init__(self, source: PayloadSource, publisher: Publisher, topic: str) -> None:
        self.source = source
        self.publisher = publisher
        self.topic = topic
        self.result: DeliveryResult | None = None
        self._thread: threading.Thread | None = None
        self._lock = threading.Lock()

    def run(self) -> DeliveryResult | None:
        """Fetch then publish synchronously; return the delivery or ``None``."""

        try:
            snapshot = self.source.fetch()
        except FetchError as exc:
            LOGGER.error("Skipping publish, rate fetch failed: %s", exc)
            return None

        try:
            self.result = self.publisher.publish(self.topic, snapshot)
        except PublishFailure as exc:
            LOGGER.error("Publishing snapshot %s failed: %s", snapshot.identity, exc)
            return None
        return self.result

    def start(self) -> threading.Thread | None:
        """Schedule :meth:`run` on a daemon thread; later calls are ignored."""

        with self._lock:
            if self._thread is not None:
                LOGGER.warning("Startup trigger already fired; ignoring")
                return None
            self._thread = threading.Thread(target=self.run, name="fx-stream-trigger", daemon=True)
        self._thread.start()
        return self._thread

    def join(self, timeout: float | None = None) -> bool:
        if self._thread is None:
            return True
        self._thread.join(timeout)
        return not self._thread.is_alive()


__all__ = ["StartupTrigger"]
