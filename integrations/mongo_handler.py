from pymongo import ASCENDING, DESCENDING, MongoClient, UpdateOne
from pymongo.errors import PyMongoError
from typing import Dict, Iterable, List, Optional, Sequence
import logging
import uuid

from config.settings import settings
from core.errors import StoreError

logger = logging.getLogger(__name__)

DIVISION_PATTERNS = {
    "Yarn": "YARN",
    "Fabric": "FABRIC",
}


class MongoStore:
    """Table-style access to the dispatch collections.

    Every operation names a collection ("table") and a Mongo filter document.
    Driver failures are re-raised as StoreError carrying the driver message.
    """

    def __init__(self, mongo_uri: str, db_name: str, client: Optional[MongoClient] = None):
        self.mongo_uri = mongo_uri
        self.db_name = db_name
        self.client = client

    def connect(self) -> MongoClient:
        if self.client is None:
            self.client = MongoClient(self.mongo_uri)
            logger.info(f"Connected to MongoDB database {self.db_name}")
        return self.client

    def close(self) -> None:
        if self.client:
            self.client.close()
            self.client = None

    def _collection(self, table: str):
        return self.connect()[self.db_name][table]

    def fetch(
        self,
        table: str,
        columns: Optional[Sequence[str]] = None,
        filters: Optional[Dict] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> List[Dict]:
        projection = {"_id": 0}
        if columns:
            projection.update({column: 1 for column in columns})

        try:
            cursor = self._collection(table).find(filters or {}, projection)
            if order_by:
                cursor = cursor.sort(order_by, DESCENDING if descending else ASCENDING)
            if limit:
                cursor = cursor.limit(limit)
            return list(cursor)
        except PyMongoError as exc:
            logger.error(f"Fetch from {table} failed: {exc}")
            raise StoreError(str(exc)) from exc

    def update(self, table: str, values: Dict, match: Dict) -> int:
        try:
            result = self._collection(table).update_many(match, {"$set": values})
            return result.modified_count
        except PyMongoError as exc:
            logger.error(f"Update of {table} where {match} failed: {exc}")
            raise StoreError(str(exc)) from exc

    def upsert(
        self,
        table: str,
        rows: Iterable[Dict],
        conflict_columns: Sequence[str],
        ignore_duplicates: bool = False,
    ) -> None:
        # $setOnInsert leaves rows that already exist untouched
        operator = "$setOnInsert" if ignore_duplicates else "$set"
        operations = [
            UpdateOne(
                {column: row.get(column) for column in conflict_columns},
                {operator: row},
                upsert=True,
            )
            for row in rows
        ]
        if not operations:
            return

        try:
            self._collection(table).bulk_write(operations, ordered=False)
        except PyMongoError as exc:
            logger.error(f"Upsert into {table} failed: {exc}")
            raise StoreError(str(exc)) from exc

    def insert(self, table: str, rows: Iterable[Dict]) -> List[Dict]:
        documents = [dict(row) for row in rows]
        if not documents:
            return []

        try:
            self._collection(table).insert_many(documents)
        except PyMongoError as exc:
            logger.error(f"Insert into {table} failed: {exc}")
            raise StoreError(str(exc)) from exc

        for document in documents:
            document.pop("_id", None)
        return documents

    def delete(self, table: str, match: Dict) -> int:
        try:
            return self._collection(table).delete_many(match).deleted_count
        except PyMongoError as exc:
            logger.error(f"Delete from {table} where {match} failed: {exc}")
            raise StoreError(str(exc)) from exc


def get_store() -> MongoStore:
    return MongoStore(settings.MONGO_URI, settings.DB_NAME)


def with_row_id(row: Dict) -> Dict:
    """Copy of `row` carrying a stable `id`; an existing id is kept."""
    return {**row, "id": row.get("id") or str(uuid.uuid4())}


def combine(*clauses: Dict) -> Dict:
    """AND together the non-empty filter clauses."""
    clauses = [clause for clause in clauses if clause]
    if not clauses:
        return {}
    if len(clauses) == 1:
        return clauses[0]
    return {"$and": clauses}


def active_filter(sentinel: Optional[str] = None) -> Dict:
    # $ne also matches documents where the field is null or missing
    return {"canceled": {"$ne": sentinel or settings.CANCELED_SENTINEL}}


def range_filter(column: str, start=None, end=None) -> Dict:
    bounds = {}
    if start:
        bounds["$gte"] = start
    if end:
        bounds["$lte"] = end
    return {column: bounds} if bounds else {}


def column_filters(params: Dict[str, str]) -> Dict:
    """Equality per column; comma separated values become a membership test."""
    clauses = []
    for column, value in params.items():
        if not value:
            continue
        values = str(value).split(",")
        if len(values) > 1:
            clauses.append({column: {"$in": values}})
        else:
            clauses.append({column: value})
    return combine(*clauses)


def division_filter(division: Optional[str]) -> Dict:
    pattern = DIVISION_PATTERNS.get(division)
    if not pattern:
        return {}
    return {"division_description": {"$regex": pattern, "$options": "i"}}


def blank_filter(column: str) -> Dict:
    return {column: {"$in": [None, ""]}}


def not_blank_filter(column: str) -> Dict:
    return {column: {"$nin": [None, ""]}}
