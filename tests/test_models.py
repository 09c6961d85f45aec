from __future__ import annotations

from datetime import date

import pytest

from fx_stream.ingestion.models import RateSnapshot


def _payload(**changes):
    payload = {
        "base": "USD",
        "date": "2025-06-26",
        "time_last_updated": 1719360000,
        "rates": {"EUR": 0.85, "GBP": 0.73},
    }
    payload.update(changes)
    return payload


def test_identity_combines_base_date_and_epoch(usd_snapshot: RateSnapshot) -> None:
    assert usd_snapshot.identity == "USD|2025-06-26|1719360000"


def test_snapshot_is_immutable(usd_snapshot: RateSnapshot) -> None:
    with pytest.raises(AttributeError):
        usd_snapshot.base = "EUR"  # type: ignore[misc]
    with pytest.raises(TypeError):
        usd_snapshot.rates["EUR"] = 1.0  # type: ignore[index]


def test_snapshot_copies_input_rates() -> None:
    rates = {"EUR": 0.85}
    snapshot = RateSnapshot(base="USD", observed_at=date(2025, 1, 1), fetched_at_epoch=1, rates=rates)
    rates["EUR"] = 2.0

    assert snapshot.rates["EUR"] == 0.85


def test_from_payload_normalises_codes() -> None:
    snapshot = RateSnapshot.from_payload(_payload(base=" usd ", rates={"eur": 1, "GBP": 0.73}))

    assert snapshot.base == "USD"
    assert snapshot.observed_at == date(2025, 6, 26)
    assert snapshot.fetched_at_epoch == 1719360000
    assert dict(snapshot.rates) == {"EUR": 1.0, "GBP": 0.73}
    assert isinstance(snapshot.rates["EUR"], float)


def test_to_payload_round_trips(usd_snapshot: RateSnapshot) -> None:
    payload = usd_snapshot.to_payload()

    assert payload == _payload()
    assert RateSnapshot.from_payload(payload) == usd_snapshot


@pytest.mark.parametrize(
    "payload",
    [
        [],
        "USD",
        {"base": "USD"},
        _payload(base=""),
        _payload(base=5),
        _payload(date="26/06/2025"),
        _payload(date=20250626),
        _payload(time_last_updated="1719360000"),
        _payload(time_last_updated=True),
        _payload(time_last_updated=-1),
        _payload(time_last_updated=2**63),
        _payload(rates=[["EUR", 0.85]]),
        _payload(rates={"EUR": "0.85"}),
        _payload(rates={"EUR": False}),
        _payload(rates={"EUR": float("inf")}),
        _payload(rates={"EUR": 0.85, "eur": 0.86}),
        _payload(rates={"": 0.85}),
    ],
)
def test_from_payload_rejects_malformed_documents(payload) -> None:
    with pytest.raises(ValueError):
        RateSnapshot.from_payload(payload)


def test_from_payload_accepts_largest_storable_epoch() -> None:
    snapshot = RateSnapshot.from_payload(_payload(time_last_updated=2**63 - 1))

    assert snapshot.fetched_at_epoch == 2**63 - 1
