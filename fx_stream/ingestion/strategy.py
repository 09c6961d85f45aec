"""Abstractions for pluggable payload sources."""

from __future__ import annotations

from typing import Protocol

from fx_stream.ingestion.models import RateSnapshot


class PayloadSource(Protocol):
    """Contract for fetching a rate snapshot on demand.

    Implementations raise :class:`fx_stream.errors.FetchError` when the
    snapshot cannot be produced.
    """

    def fetch(self) -> RateSnapshot:
        ...  # pragma: no cover - protocol definition


__all__ = ["PayloadSource"]
