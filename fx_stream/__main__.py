"""CLI entry point for ``python -m fx_stream``."""

from __future__ import annotations

import sys

from fx_stream.scripts.run_pipeline import main

if __name__ == "__main__":  # pragma: no cover - thin wrapper
    sys.exit(main())
