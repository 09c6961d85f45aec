"""Backend strategy interfaces for the snapshot sink."""

from __future__ import annotations

from abc import ABC, abstractmethod
from dataclasses import dataclass
from typing import Any

from fx_stream.ingestion.models import RateSnapshot


@dataclass(slots=True)
class StoreResult:
    """Acknowledgement of a snapshot write."""

    key: str
    created: bool = True


class SinkBackend(ABC):
    """Common interface implemented by every document store backend.

    ``store`` must be idempotent per snapshot identity and raise
    :class:`~fx_stream.errors.RetryableError` for transient failures or
    :class:`~fx_stream.errors.TerminalError` for ones redelivery cannot fix.
    """

    @abstractmethod
    def ensure_schema(self) -> None:
        """Create required collections/indexes and verify connectivity."""

    @abstractmethod
    def store(self, snapshot: RateSnapshot) -> StoreResult:
        """Upsert ``snapshot`` under its identity key."""

    @abstractmethod
    def ping(self) -> bool:
        """Return True when the store is reachable."""

    @abstractmethod
    def count(self) -> int:
        """Return the number of stored snapshots."""

    @abstractmethod
    def fetch(
        self,
        *,
        limit: int = 100,
        skip: int = 0,
        base: str | None = None,
    ) -> list[dict[str, Any]]:
        """Return stored documents, newest first."""

    @abstractmethod
    def get(self, key: str) -> dict[str, Any] | None:
        """Return the document stored under ``key`` if any."""

    @abstractmethod
    def index_info(self) -> dict[str, Any]:
        """Describe the underlying collection and its indexes."""

    def close(self) -> None:  # pragma: no cover - optional cleanup hook
        """Backends may override to release connections/resources."""


__all__ = ["SinkBackend", "StoreResult"]
