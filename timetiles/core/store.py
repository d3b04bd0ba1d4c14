"""Document store used by the import pipeline.

The pipeline only needs a small collection-oriented interface: find, create,
update, count and delete over JSON-like documents. Two backends are provided:
an in-process store used by tests and single-process deployments, and a Redis
store that keeps each collection in a hash of JSON documents.
"""

import copy
import json
import logging
import uuid
from abc import ABC, abstractmethod
from datetime import datetime, timezone
from typing import Any

from redis.asyncio import Redis

from timetiles.core.config import Settings

logger = logging.getLogger(__name__)

Document = dict[str, Any]
Where = dict[str, Any]

_MISSING = object()

_COMPARISONS = {
    "less_than": lambda a, b: a < b,
    "less_than_equal": lambda a, b: a <= b,
    "greater_than": lambda a, b: a > b,
    "greater_than_equal": lambda a, b: a >= b,
}
OPERATORS = frozenset(
    {"equals", "not_equals", "in", "not_in", "exists", *_COMPARISONS}
)


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


def to_timestamp(value: datetime) -> str:
    """Render a datetime as a sortable UTC ISO-8601 string."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).isoformat(timespec="microseconds")


def parse_timestamp(value: str | datetime | None) -> datetime | None:
    """Parse a stored timestamp back into an aware datetime."""
    if value is None or isinstance(value, datetime):
        return value
    try:
        parsed = datetime.fromisoformat(value.replace("Z", "+00:00"))
    except ValueError:
        return None
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed


def _lookup(doc: Any, path: str) -> Any:
    current = doc
    for part in path.split("."):
        if isinstance(current, dict) and part in current:
            current = current[part]
        else:
            return _MISSING
    return current


def _normalize(value: Any) -> Any:
    if isinstance(value, datetime):
        return to_timestamp(value)
    return value


def _check(value: Any, operator: str, operand: Any) -> bool:
    operand = _normalize(operand)
    if operator == "exists":
        return (value is not _MISSING and value is not None) == bool(operand)
    if value is _MISSING:
        value = None
    if operator == "equals":
        return value == operand
    if operator == "not_equals":
        return value != operand
    if operator == "in":
        return value in [_normalize(item) for item in operand]
    if operator == "not_in":
        return value not in [_normalize(item) for item in operand]
    if operator in _COMPARISONS:
        if value is None or operand is None:
            return False
        try:
            return bool(_COMPARISONS[operator](value, operand))
        except TypeError:
            return False
    raise ValueError(f"Unsupported where operator: {operator}")


def matches_where(doc: Document, where: Where | None) -> bool:
    """Check whether a document satisfies a where clause.

    Keys are dotted field paths mapped either to a literal (equality) or to a
    dict of operators. The special keys ``and`` and ``or`` take lists of
    nested clauses.
    """
    if not where:
        return True
    for key, condition in where.items():
        if key == "and":
            if not all(matches_where(doc, clause) for clause in condition):
                return False
            continue
        if key == "or":
            if not any(matches_where(doc, clause) for clause in condition):
                return False
            continue

        value = _lookup(doc, key)
        if isinstance(condition, dict) and condition and set(condition) <= OPERATORS:
            if not all(_check(value, op, operand) for op, operand in condition.items()):
                return False
        elif not _check(value, "equals", condition):
            return False
    return True


class DataStore(ABC):
    """Async collection store interface."""

    @abstractmethod
    async def find(
        self, collection: str, where: Where | None = None, limit: int | None = None
    ) -> list[Document]:
        """Return documents matching ``where`` in insertion order."""

    @abstractmethod
    async def find_by_id(self, collection: str, doc_id: str) -> Document | None:
        """Return one document or None."""

    @abstractmethod
    async def create(self, collection: str, data: Document) -> Document:
        """Insert a document, assigning ``id`` and timestamps."""

    @abstractmethod
    async def update(
        self, collection: str, doc_id: str, data: Document
    ) -> Document | None:
        """Shallow-merge ``data`` into a document. Returns None if missing."""

    @abstractmethod
    async def delete_by_id(self, collection: str, doc_id: str) -> bool:
        """Delete one document. Returns whether it existed."""

    async def count(self, collection: str, where: Where | None = None) -> int:
        return len(await self.find(collection, where))

    async def delete(self, collection: str, where: Where) -> int:
        """Delete every matching document and return how many were removed."""
        deleted = 0
        for doc in await self.find(collection, where):
            if await self.delete_by_id(collection, doc["id"]):
                deleted += 1
        return deleted

    async def close(self) -> None:
        """Release backend resources."""

    @staticmethod
    def _prepare_new(data: Document) -> Document:
        now = to_timestamp(utc_now())
        doc = copy.deepcopy(data)
        doc.setdefault("id", uuid.uuid4().hex)
        doc.setdefault("created_at", now)
        doc["updated_at"] = now
        return doc

    @staticmethod
    def _merge(existing: Document, data: Document) -> Document:
        merged = {**existing, **copy.deepcopy(data)}
        merged["id"] = existing["id"]
        merged["updated_at"] = to_timestamp(utc_now())
        return merged


class MemoryDataStore(DataStore):
    """In-process store. Documents are copied on the way in and out."""

    def __init__(self) -> None:
        self._collections: dict[str, dict[str, Document]] = {}

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    async def find(
        self, collection: str, where: Where | None = None, limit: int | None = None
    ) -> list[Document]:
        results: list[Document] = []
        for doc in self._collection(collection).values():
            if matches_where(doc, where):
                results.append(copy.deepcopy(doc))
                if limit is not None and len(results) >= limit:
                    break
        return results

    async def find_by_id(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    async def create(self, collection: str, data: Document) -> Document:
        doc = self._prepare_new(data)
        self._collection(collection)[doc["id"]] = doc
        return copy.deepcopy(doc)

    async def update(
        self, collection: str, doc_id: str, data: Document
    ) -> Document | None:
        docs = self._collection(collection)
        existing = docs.get(doc_id)
        if existing is None:
            return None
        docs[doc_id] = self._merge(existing, data)
        return copy.deepcopy(docs[doc_id])

    async def delete_by_id(self, collection: str, doc_id: str) -> bool:
        return self._collection(collection).pop(doc_id, None) is not None

    def reset(self) -> None:
        """Drop every collection."""
        self._collections.clear()


class RedisDataStore(DataStore):
    """Redis-backed store.

    Each collection lives in one hash (``<prefix>:<collection>``) mapping
    document id to its JSON encoding. Filtering happens client side.
    """

    def __init__(self, client: Redis, prefix: str = "timetiles") -> None:
        self.client = client
        self.prefix = prefix

    def _key(self, collection: str) -> str:
        return f"{self.prefix}:{collection}"

    @staticmethod
    def _decode(raw: str | bytes) -> Document:
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8")
        return json.loads(raw)

    async def find(
        self, collection: str, where: Where | None = None, limit: int | None = None
    ) -> list[Document]:
        raw_docs = await self.client.hgetall(self._key(collection))
        docs = sorted(
            (self._decode(raw) for raw in raw_docs.values()),
            key=lambda doc: doc.get("created_at", ""),
        )
        results = [doc for doc in docs if matches_where(doc, where)]
        if limit is not None:
            results = results[:limit]
        return results

    async def find_by_id(self, collection: str, doc_id: str) -> Document | None:
        raw = await self.client.hget(self._key(collection), doc_id)
        return self._decode(raw) if raw is not None else None

    async def create(self, collection: str, data: Document) -> Document:
        doc = self._prepare_new(data)
        await self.client.hset(
            self._key(collection), doc["id"], json.dumps(doc, default=str)
        )
        return doc

    async def update(
        self, collection: str, doc_id: str, data: Document
    ) -> Document | None:
        existing = await self.find_by_id(collection, doc_id)
        if existing is None:
            return None
        merged = self._merge(existing, data)
        await self.client.hset(
            self._key(collection), doc_id, json.dumps(merged, default=str)
        )
        return merged

    async def delete_by_id(self, collection: str, doc_id: str) -> bool:
        return bool(await self.client.hdel(self._key(collection), doc_id))

    async def close(self) -> None:
        await self.client.aclose()


def create_data_store(config: Settings) -> DataStore:
    """Build the data store selected by ``DATA_STORE_BACKEND``."""
    if config.DATA_STORE_BACKEND == "redis":
        client = Redis.from_url(config.REDIS_URL, decode_responses=True)
        logger.info(f"Using Redis data store at {config.REDIS_URL}")
        return RedisDataStore(client, prefix=config.DATA_STORE_PREFIX)
    return MemoryDataStore()
