"""Dead-letter routing for messages the subscriber gives up on."""

from __future__ import annotations

from fx_stream.errors import PublishFailure
from fx_stream.messaging.publisher import SnapshotPublisher
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)


class DeadLetterPublisher:
    """Copy rejected payloads to a side topic so they can be inspected later."""

    def __init__(self, publisher: SnapshotPublisher, topic: str) -> None:
        self.publisher = publisher
        self.topic = topic

    def __call__(self, payload: bytes | None, reason: str, *, key: str | None = None) -> bool:
        """Forward ``payload``; return False (after logging) when that fails too."""

        try:
            self.publisher.publish_raw(self.topic, payload or b"", key=key)
        except PublishFailure as exc:
            LOGGER.error("Could not dead-letter message (%s): %s", reason, exc)
            return False
        LOGGER.warning("Dead-lettered message to %s: %s", self.topic, reason)
        return True

    def close(self) -> None:
        self.publisher.close()


__all__ = ["DeadLetterPublisher"]
