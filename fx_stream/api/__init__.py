"""Read-only HTTP endpoints over the stored snapshots."""

from __future__ import annotations

from fx_stream.api.app import create_app

__all__ = ["create_app"]
