"""
Data access facade over the portal's MongoDB collections.

One ``Table`` per collection exposes the only operations the views need:
filtered/sorted select (with an optional exact count), get by id, insert,
update by id and delete by id. pymongo is blocking, so every call runs on a
shared thread pool and is awaited by the caller.

Identifiers and timestamps belong to the store: ``insert`` assigns ``id``,
``created_at`` and ``updated_at``, and ``update`` stamps ``updated_at``.
Values a caller supplies for those keys are discarded.
"""

import asyncio
import logging
import uuid
from concurrent.futures import ThreadPoolExecutor
from datetime import datetime, timezone
from typing import Any, Dict, List, NamedTuple, Optional

from pymongo import ASCENDING, DESCENDING, ReturnDocument
from pymongo.errors import DuplicateKeyError, PyMongoError

logger = logging.getLogger(__name__)

TABLES = ("profiles", "complaints", "amenities", "announcements")
SERVER_FIELDS = ("id", "_id", "created_at", "updated_at")

executor = ThreadPoolExecutor(max_workers=10)


class BackendError(Exception):
    """Any failed backend call. Carries only a message."""

    def __init__(self, message: str):
        super().__init__(message)
        self.message = message


class ConflictError(BackendError):
    """A write collided with a unique key."""


class SelectResult(NamedTuple):
    rows: List[Dict[str, Any]]
    count: Optional[int] = None


def now_utc() -> datetime:
    return datetime.now(timezone.utc)

def new_id() -> str:
    return str(uuid.uuid4())

def _to_row(doc: Optional[dict]) -> Optional[dict]:
    if doc is None:
        return None
    row = dict(doc)
    row["id"] = str(row.pop("_id"))
    return row

def _check_filters(filters: Optional[Dict[str, Any]]) -> Dict[str, Any]:
    """Equality filters only: plain column names mapped to scalar values."""
    query: Dict[str, Any] = {}
    for column, value in (filters or {}).items():
        if not isinstance(column, str) or not column or column.startswith("$"):
            raise BackendError(f"Invalid filter column: {column!r}")
        if value is not None and not isinstance(value, (str, int, float, bool)):
            raise BackendError(f"Invalid filter value for {column}")
        query["_id" if column == "id" else column] = value
    return query

def _strip_server_fields(values: Dict[str, Any]) -> Dict[str, Any]:
    return {k: v for k, v in values.items() if k not in SERVER_FIELDS}


class Table:
    def __init__(self, collection, pool: ThreadPoolExecutor = executor):
        self.collection = collection
        self.name = collection.name
        self._pool = pool

    async def _call(self, fn, *args):
        loop = asyncio.get_running_loop()
        try:
            return await loop.run_in_executor(self._pool, fn, *args)
        except DuplicateKeyError as e:
            raise ConflictError(str(e)) from e
        except PyMongoError as e:
            raise BackendError(str(e)) from e

    async def select(self, filters: Optional[Dict[str, Any]] = None,
                     order_by: Optional[str] = None, descending: bool = False,
                     count: bool = False, columns: Optional[List[str]] = None) -> SelectResult:
        query = _check_filters(filters)
        projection = {("_id" if c == "id" else c): 1 for c in columns} if columns else None

        def fetch():
            cursor = self.collection.find(query, projection)
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            rows = [_to_row(d) for d in cursor]
            total = self.collection.count_documents(query) if count else None
            return SelectResult(rows, total)

        return await self._call(fetch)

    async def get(self, row_id: str) -> Optional[dict]:
        doc = await self._call(self.collection.find_one, {"_id": str(row_id)})
        return _to_row(doc)

    async def insert(self, row: Dict[str, Any], key: Optional[str] = None) -> dict:
        """Insert one row. ``key`` pins the identifier (profiles share their identity's id)."""
        now = now_utc()
        doc = _strip_server_fields(row)
        doc.update({"_id": key or new_id(), "created_at": now, "updated_at": now})
        await self._call(self.collection.insert_one, doc)
        return _to_row(doc)

    async def update(self, row_id: str, values: Dict[str, Any]) -> Optional[dict]:
        set_fields = _strip_server_fields(values)
        set_fields["updated_at"] = now_utc()
        doc = await self._call(lambda: self.collection.find_one_and_update(
            {"_id": str(row_id)}, {"$set": set_fields},
            return_document=ReturnDocument.AFTER))
        return _to_row(doc)

    async def delete(self, row_id: str) -> bool:
        result = await self._call(self.collection.delete_one, {"_id": str(row_id)})
        return result.deleted_count > 0


class Store:
    """The four portal tables over one MongoDB database."""

    def __init__(self, db, pool: ThreadPoolExecutor = executor):
        self.db = db
        self.profiles = Table(db.profiles, pool)
        self.complaints = Table(db.complaints, pool)
        self.amenities = Table(db.amenities, pool)
        self.announcements = Table(db.announcements, pool)

    def table(self, name: str) -> Table:
        if name not in TABLES:
            raise BackendError(f"Unknown table: {name}")
        return getattr(self, name)

    def ensure_indexes(self):
        self.db.profiles.create_index("role")
        self.db.profiles.create_index("email")
        self.db.complaints.create_index("created_at")
        self.db.complaints.create_index("citizen_id")
        self.db.complaints.create_index("status")
        self.db.amenities.create_index("name")
        self.db.announcements.create_index("created_at")
        self.db.announcements.create_index("is_active")
        self.db.users.create_index([("email", 1)], unique=True)
        logger.info("Database indexes ensured")
