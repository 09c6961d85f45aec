"""Run the fx_stream pipeline: fetch once, publish, and keep consuming into the store."""

from __future__ import annotations

import argparse
import sys
from typing import Sequence

from fx_stream.config import PipelineConfig
from fx_stream.errors import ConfigError
from fx_stream.pipeline import Pipeline
from fx_stream.utils.logger import configure_level, get_logger

LOGGER = get_logger(__name__)

__all__ = ["parse_args", "build_config", "main"]


def parse_args(argv: Sequence[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description=__doc__)
    parser.add_argument("--bootstrap-servers", dest="bootstrap_servers", help="Kafka host:port list")
    parser.add_argument("--topic", dest="topic", help="Topic carrying rate snapshots")
    parser.add_argument("--group-id", dest="group_id", help="Consumer group identifier")
    parser.add_argument("--store-url", dest="store_url", help="MongoDB connection URL")
    parser.add_argument("--store-index", dest="store_index", help="Collection holding snapshots")
    parser.add_argument("--rates-url", dest="rates_url", help="Exchange-rate feed URL")
    parser.add_argument(
        "--dead-letter-topic",
        dest="dead_letter_topic",
        help="Optional topic receiving messages that could not be stored",
    )
    parser.add_argument(
        "--no-trigger",
        dest="trigger",
        action="store_false",
        help="Only consume; skip the startup fetch and publish",
    )
    parser.add_argument(
        "--serve-api",
        action="store_true",
        help="Serve the read-only query API while the pipeline runs",
    )
    parser.add_argument("--api-host", default="127.0.0.1")
    parser.add_argument("--api-port", type=int, default=8000)
    parser.add_argument("--log-level", default="INFO")
    parser.set_defaults(trigger=True)
    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PipelineConfig:
    return PipelineConfig.from_env(
        bootstrap_servers=args.bootstrap_servers,
        topic=args.topic,
        group_id=args.group_id,
        store_url=args.store_url,
        store_index=args.store_index,
        rates_url=args.rates_url,
        dead_letter_topic=args.dead_letter_topic,
    )


def main(argv: Sequence[str] | None = None) -> int:
    args = parse_args(argv)
    try:
        configure_level(args.log_level)
        config = build_config(args)
        pipeline = Pipeline.from_config(config, enable_trigger=args.trigger)
    except (ConfigError, ValueError) as exc:
        LOGGER.error("Invalid configuration: %s", exc)
        return 2

    if not args.serve_api:
        pipeline.run_forever()
        return 0

    import uvicorn

    from fx_stream.api import create_app

    pipeline.start()
    try:
        uvicorn.run(create_app(pipeline.sink), host=args.api_host, port=args.api_port)
    finally:
        pipeline.stop()
    return 0


if __name__ == "__main__":  # pragma: no cover - thin wrapper
    sys.exit(main())
