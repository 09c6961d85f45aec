"""Document store backends for fx_stream."""

from __future__ import annotations

from fx_stream.db.base_backend import SinkBackend, StoreResult

__all__ = ["SinkBackend", "StoreResult"]
