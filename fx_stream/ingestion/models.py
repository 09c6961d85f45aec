"""Data models shared across ingestion, messaging and storage."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import date, datetime
from types import MappingProxyType
from typing import Any, Mapping

IDENTITY_SEPARATOR = "|"
# Largest value BSON can store as an integer.
MAX_EPOCH = 2**63 - 1


@dataclass(frozen=True, slots=True)
class RateSnapshot:
    """Immutable snapshot of exchange rates quoted against a single base currency."""

    base: str
    observed_at: date
    fetched_at_epoch: int
    rates: Mapping[str, float] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the mapping so the snapshot cannot change after construction.
        object.__setattr__(self, "rates", MappingProxyType(dict(self.rates)))

    @property
    def identity(self) -> str:
        """Deterministic key used to upsert the snapshot into the store."""

        return IDENTITY_SEPARATOR.join(
            (self.base, self.observed_at.isoformat(), str(self.fetched_at_epoch))
        )

    @classmethod
    def from_payload(cls, payload: Any) -> "RateSnapshot":
        """Build a snapshot from the feed's JSON shape.

        The feed publishes ``{"base", "date", "time_last_updated", "rates"}``.
        Currency codes are stripped and upper-cased; ``ValueError`` is raised
        for anything that does not match that shape.
        """

        if not isinstance(payload, Mapping):
            raise ValueError("Snapshot payload must be a JSON object")
        missing = [
            name for name in ("base", "date", "time_last_updated", "rates") if name not in payload
        ]
        if missing:
            raise ValueError(f"Snapshot payload is missing fields: {', '.join(missing)}")

        return cls(
            base=_parse_currency(payload["base"], "base"),
            observed_at=_parse_date(payload["date"]),
            fetched_at_epoch=_parse_epoch(payload["time_last_updated"]),
            rates=_parse_rates(payload["rates"]),
        )

    def to_payload(self) -> dict[str, Any]:
        """Return the feed-shaped dictionary for this snapshot."""

        return {
            "base": self.base,
            "date": self.observed_at.isoformat(),
            "time_last_updated": self.fetched_at_epoch,
            "rates": {code: self.rates[code] for code in sorted(self.rates)},
        }


def _parse_currency(value: Any, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty currency code")
    return value.strip().upper()


def _parse_date(value: Any) -> date:
    if not isinstance(value, str):
        raise ValueError("date must be a YYYY-MM-DD string")
    try:
        return datetime.strptime(value, "%Y-%m-%d").date()
    except ValueError as exc:
        raise ValueError(f"date must be a YYYY-MM-DD string, got {value!r}") from exc


def _parse_epoch(value: Any) -> int:
    # ``bool`` is an ``int`` subclass; a flag is never a timestamp.
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValueError("time_last_updated must be an integer number of seconds")
    if value < 0:
        raise ValueError("time_last_updated must not be negative")
    if value > MAX_EPOCH:
        raise ValueError("time_last_updated does not fit in a signed 64-bit integer")
    return value


def _parse_rates(value: Any) -> dict[str, float]:
    if not isinstance(value, Mapping):
        raise ValueError("rates must be an object mapping currency codes to numbers")
    rates: dict[str, float] = {}
    for raw_code, raw_rate in value.items():
        code = _parse_currency(raw_code, "rate currency")
        if isinstance(raw_rate, bool) or not isinstance(raw_rate, (int, float)):
            raise ValueError(f"rate for {code} must be a number")
        rate = float(raw_rate)
        if not math.isfinite(rate):
            raise ValueError(f"rate for {code} must be finite")
        if code in rates:
            raise ValueError(f"duplicate rate for currency {code}")
        rates[code] = rate
    return rates


__all__ = ["RateSnapshot", "IDENTITY_SEPARATOR"]
