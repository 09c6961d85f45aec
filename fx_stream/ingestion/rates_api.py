"""HTTP client for the exchange-rate feed."""

from __future__ import annotations

from typing import Any, Optional

import requests

from fx_stream.errors import FetchError
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)
DEFAULT_RATES_URL = "https://api.exchangerate-api.com/v4/latest/USD"


class RatesApiClient:
    """Fetch the latest snapshot from a JSON rates endpoint with a bounded timeout."""

    def __init__(
        self,
        url: str = DEFAULT_RATES_URL,
        *,
        timeout: float = 10.0,
        session: Optional[requests.Session] = None,
    ) -> None:
        if not url or not url.strip():
            raise ValueError("Rates URL must not be empty")
        self.url = url.strip()
        self.timeout = timeout
        self.session = session or requests.Session()
        self.session.headers.update({"Accept": "application/json"})

    def fetch(self) -> RateSnapshot:
        """Download and validate the current snapshot."""

        LOGGER.info("Fetching exchange rates from %s", self.url)
        try:
            response = self.session.get(self.url, timeout=self.timeout)
        except requests.Timeout as exc:
            raise FetchError(f"Timed out after {self.timeout}s fetching {self.url}") from exc
        except requests.RequestException as exc:
            raise FetchError(f"Failed to reach {self.url}: {exc}") from exc

        self._raise_with_context(response)
        payload = self._decode_json(response)
        try:
            snapshot = RateSnapshot.from_payload(payload)
        except ValueError as exc:
            raise FetchError(f"Rates feed returned an unexpected payload: {exc}") from exc
        LOGGER.info(
            "Fetched %s rates for base %s dated %s",
            len(snapshot.rates),
            snapshot.base,
            snapshot.observed_at,
        )
        return snapshot

    def _raise_with_context(self, response: requests.Response) -> None:
        try:
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = response.status_code
            hint = " The feed is rate limiting this client." if status == 429 else ""
            raise FetchError(f"Rates feed responded with HTTP {status} for {self.url}.{hint}") from exc

    def _decode_json(self, response: requests.Response) -> Any:
        try:
            return response.json()
        except ValueError as exc:
            raise FetchError(f"Rates feed returned invalid JSON from {self.url}") from exc

    def close(self) -> None:
        self.session.close()

    def __enter__(self) -> "RatesApiClient":  # pragma: no cover - trivial
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:  # pragma: no cover - trivial
        self.close()


__all__ = ["RatesApiClient", "DEFAULT_RATES_URL"]
