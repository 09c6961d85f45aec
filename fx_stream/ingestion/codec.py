"""Canonical text encoding of rate snapshots on the topic."""

from __future__ import annotations

import json
from typing import Any

from fx_stream.errors import DecodeError
from fx_stream.ingestion.models import RateSnapshot

ENCODING = "utf-8"


def encode_snapshot(snapshot: RateSnapshot) -> bytes:
    """Serialise ``snapshot`` to compact, key-sorted JSON bytes."""

    return json.dumps(
        snapshot.to_payload(),
        sort_keys=True,
        separators=(",", ":"),
        allow_nan=False,
    ).encode(ENCODING)


def decode_snapshot(raw: bytes | str | None) -> RateSnapshot:
    """Parse a message payload back into a :class:`RateSnapshot`.

    Raises :class:`DecodeError` for empty, non-UTF-8, non-JSON or
    wrongly-shaped payloads.
    """

    if raw is None or len(raw) == 0:
        raise DecodeError("Message payload is empty", payload=raw)
    try:
        text = raw.decode(ENCODING) if isinstance(raw, (bytes, bytearray)) else raw
        document = json.loads(
            text,
            object_pairs_hook=_reject_duplicate_keys,
            parse_constant=_reject_constant,
        )
    except (UnicodeDecodeError, ValueError) as exc:
        raise DecodeError(f"Message payload is not valid JSON: {exc}", payload=raw) from exc
    except RecursionError as exc:
        raise DecodeError("Message payload is nested too deeply", payload=raw) from exc
    try:
        return RateSnapshot.from_payload(document)
    except ValueError as exc:
        raise DecodeError(f"Message payload is not a rate snapshot: {exc}", payload=raw) from exc


def _reject_duplicate_keys(pairs: list[tuple[str, Any]]) -> dict[str, Any]:
    document: dict[str, Any] = {}
    for key, value in pairs:
        if key in document:
            raise ValueError(f"duplicate key {key!r}")
        document[key] = value
    return document


def _reject_constant(name: str) -> Any:
    raise ValueError(f"unsupported constant {name}")


__all__ = ["encode_snapshot", "decode_snapshot", "ENCODING"]
