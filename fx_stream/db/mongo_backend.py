"""MongoDB sink backend."""

from __future__ import annotations

from datetime import date, datetime, timezone
from typing import Any

from bson.errors import BSONError
from pymongo import ASCENDING, DESCENDING, MongoClient
from pymongo.collection import Collection
from pymongo.errors import (
    ConfigurationError,
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    PyMongoError,
    WTimeoutError,
)

from fx_stream.config import DEFAULT_DATABASE_NAME
from fx_stream.db.base_backend import SinkBackend, StoreResult
from fx_stream.errors import ConfigError, RetryableError, TerminalError
from fx_stream.ingestion.models import RateSnapshot
from fx_stream.utils.logger import get_logger

LOGGER = get_logger(__name__)

# Failures that can clear up on their own; everything else is terminal.
# DuplicateKeyError only surfaces when two upserts race on the same _id.
RETRYABLE_ERRORS: tuple[type[BaseException], ...] = (
    ConnectionFailure,
    DuplicateKeyError,
    ExecutionTimeout,
    WTimeoutError,
)


class MongoSink(SinkBackend):
    """Sink backend that upserts snapshots into a MongoDB collection."""

    def __init__(
        self,
        url: str,
        *,
        collection: str = "exchange_rates",
        database: str | None = None,
        timeout: float = 5.0,
    ) -> None:
        self.url = url
        try:
            self._client = MongoClient(url, serverSelectionTimeoutMS=int(timeout * 1000))
        except ConfigurationError as exc:
            raise ConfigError(f"Invalid MongoDB URL {url!r}: {exc}") from exc
        if database is None:
            db = self._client.get_default_database(default=DEFAULT_DATABASE_NAME)
        else:
            db = self._client[database]
        self._collection: Collection = db[collection]

    @property
    def collection_name(self) -> str:
        return self._collection.name

    def ensure_schema(self) -> None:
        try:
            LOGGER.info("Ensuring MongoDB collection %s exists", self.collection_name)
            self._client.admin.command("ping")
            self._collection.create_index([("base", ASCENDING), ("date", ASCENDING)])
        except PyMongoError as exc:
            raise self._classify(exc, None, "prepare collection") from exc

    def store(self, snapshot: RateSnapshot) -> StoreResult:
        key = snapshot.identity
        document = snapshot_to_document(snapshot)
        try:
            # replace_one is atomic per document: the snapshot is either fully
            # visible under its key or not written at all.
            result = self._collection.replace_one({"_id": key}, document, upsert=True)
        except (PyMongoError, BSONError) as exc:
            raise self._classify(exc, key, "store snapshot") from exc
        except (OverflowError, TypeError, ValueError) as exc:
            # bson raises plain Python errors for values it cannot encode.
            raise TerminalError(f"Snapshot {key} cannot be encoded as BSON: {exc}", key=key) from exc
        created = result.upserted_id is not None
        LOGGER.info("%s snapshot %s", "Stored" if created else "Replaced", key)
        return StoreResult(key=key, created=created)

    def ping(self) -> bool:
        try:
            self._client.admin.command("ping")
        except PyMongoError as exc:
            LOGGER.warning("MongoDB ping failed: %s", exc)
            return False
        return True

    def count(self) -> int:
        try:
            return self._collection.count_documents({})
        except PyMongoError as exc:
            raise self._classify(exc, None, "count documents") from exc

    def fetch(
        self,
        *,
        limit: int = 100,
        skip: int = 0,
        base: str | None = None,
    ) -> list[dict[str, Any]]:
        query: dict[str, Any] = {}
        if base:
            query["base"] = base.strip().upper()
        try:
            cursor = (
                self._collection.find(query)
                .sort([("time_last_updated", DESCENDING), ("_id", ASCENDING)])
                .skip(skip)
                .limit(limit)
            )
            return [_public_document(doc) for doc in cursor]
        except PyMongoError as exc:
            raise self._classify(exc, None, "fetch documents") from exc

    def get(self, key: str) -> dict[str, Any] | None:
        try:
            doc = self._collection.find_one({"_id": key})
        except PyMongoError as exc:
            raise self._classify(exc, key, "fetch document") from exc
        return _public_document(doc) if doc is not None else None

    def index_info(self) -> dict[str, Any]:
        try:
            indexes = self._collection.index_information()
        except PyMongoError as exc:
            raise self._classify(exc, None, "read index metadata") from exc
        return {
            "database": self._collection.database.name,
            "collection": self.collection_name,
            "indexes": {
                name: {"key": [list(field) for field in spec.get("key", [])]}
                for name, spec in indexes.items()
            },
        }

    def close(self) -> None:  # pragma: no cover - trivial cleanup
        self._client.close()

    @staticmethod
    def _classify(exc: BaseException, key: str | None, action: str) -> RetryableError | TerminalError:
        if isinstance(exc, RETRYABLE_ERRORS):
            return RetryableError(f"MongoDB unavailable while trying to {action}: {exc}", key=key)
        return TerminalError(f"MongoDB rejected attempt to {action}: {exc}", key=key)


def snapshot_to_document(snapshot: RateSnapshot) -> dict[str, Any]:
    """Return the stored document for ``snapshot`` (without ``_id``)."""

    payload = snapshot.to_payload()
    payload["ingested_at"] = datetime.now(timezone.utc)
    return payload


def document_to_snapshot(document: dict[str, Any]) -> RateSnapshot:
    """Rebuild the snapshot held in a stored (or public) document."""

    return RateSnapshot(
        base=document["base"],
        observed_at=date.fromisoformat(document["date"]),
        fetched_at_epoch=int(document["time_last_updated"]),
        rates=dict(document["rates"]),
    )


def _public_document(doc: dict[str, Any]) -> dict[str, Any]:
    public = {key: value for key, value in doc.items() if key != "_id"}
    public["id"] = doc["_id"]
    return public


__all__ = ["MongoSink", "RETRYABLE_ERRORS", "snapshot_to_document", "document_to_snapshot"]
