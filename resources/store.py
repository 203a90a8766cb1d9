"""
resources/store.py -- SQLAlchemy-backed generic collection store.

Every collection (products, orders, ...) is a set of JSON objects keyed by an
integer id, stored in one "resources" table next to the credential store's
"users" table. Documents are opaque: the store only looks inside them to
filter and sort list results.

Pattern: Repository. Route handlers never touch SQL directly.

Security: all queries use bound parameters. No f-strings in SQL.
The "users" collection name is reserved and rejected here, so credential
records and their hashes can never be listed through the generic API.

Usage:
    store = ResourceStore("sqlite:///authgate.db")
    item = store.create("products", {"name": "Lamp", "price": 30})
    store.list("products", filters={"name": "Lamp"})
    store.close()
"""

from __future__ import annotations

import json
import re
import threading
from collections.abc import Iterator
from contextlib import contextmanager
from typing import Any, Optional

from sqlalchemy import BigInteger, Column, MetaData, String, Table, Text, func, select
from sqlalchemy.engine import Engine
from sqlalchemy.exc import SQLAlchemyError

from auth.errors import ConflictError, InternalError, ValidationError
from auth.store import make_engine

_DEFAULT_DB_URL = "sqlite:///authgate.db"

RESERVED_COLLECTIONS = frozenset({"users"})

_COLLECTION_RE = re.compile(r"^[A-Za-z0-9_-]{1,64}$")
_NUMERIC_ID_RE = re.compile(r"^[0-9]{1,18}$")

# ---------------------------------------------------------------------------
# Schema
# ---------------------------------------------------------------------------

metadata = MetaData()

_resources = Table(
    "resources",
    metadata,
    Column("collection", String(64), primary_key=True),
    Column("id", BigInteger, primary_key=True, autoincrement=False),
    Column("body", Text, nullable=False),  # JSON object serialized as text
)


class UnknownCollection(Exception):
    """Raised for names the router must answer with 404 (reserved or invalid)."""


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


@contextmanager
def _storage_errors(operation: str) -> Iterator[None]:
    try:
        yield
    except SQLAlchemyError as exc:
        raise InternalError(f"resource store {operation} failed") from exc


def _check_collection(collection: str) -> None:
    if collection in RESERVED_COLLECTIONS or not _COLLECTION_RE.match(collection):
        raise UnknownCollection(collection)


def _check_document(document: Any) -> dict:
    if not isinstance(document, dict):
        raise ValidationError("Request body must be a JSON object")
    return document


def _normalize_import_id(document: dict) -> dict:
    requested = document.get("id")
    if requested is None or (isinstance(requested, int) and not isinstance(requested, bool)):
        return document
    document = dict(document)
    if isinstance(requested, str) and _NUMERIC_ID_RE.match(requested):
        document["id"] = int(requested)
    else:
        del document["id"]
    return document


def _matches(item: dict, filters: dict[str, str]) -> bool:
    """Loose equality: query strings are compared against the JSON-rendered field value."""
    for field, expected in filters.items():
        if field not in item:
            return False
        value = item[field]
        rendered = value if isinstance(value, str) else json.dumps(value)
        if rendered != expected:
            return False
    return True


def _sort_key(value: Any) -> tuple:
    # Numbers before strings before everything else; missing values last.
    if value is None:
        return (3, "")
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, json.dumps(value, sort_keys=True))


# ---------------------------------------------------------------------------
# Repository
# ---------------------------------------------------------------------------


class ResourceStore:
    _write_lock = threading.Lock()

    def __init__(self, db_url: str = _DEFAULT_DB_URL) -> None:
        self.engine: Engine = make_engine(db_url)
        metadata.create_all(self.engine)

    def list(
        self,
        collection: str,
        filters: Optional[dict[str, str]] = None,
        sort: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
    ) -> list[dict]:
        """Return the collection's documents, optionally filtered, sorted and truncated.

        An unknown but valid collection name is simply empty.
        """
        _check_collection(collection)
        with _storage_errors("read"), self.engine.connect() as conn:
            rows = conn.execute(
                select(_resources.c.body).where(_resources.c.collection == collection).order_by(_resources.c.id)
            ).fetchall()
        items = [json.loads(row.body) for row in rows]
        if filters:
            items = [item for item in items if _matches(item, filters)]
        if sort:
            items.sort(key=lambda item: _sort_key(item.get(sort)), reverse=descending)
        if limit is not None:
            items = items[: max(limit, 0)]
        return items

    def get(self, collection: str, item_id: int) -> dict | None:
        _check_collection(collection)
        with _storage_errors("read"), self.engine.connect() as conn:
            row = conn.execute(
                select(_resources.c.body).where(
                    (_resources.c.collection == collection) & (_resources.c.id == item_id)
                )
            ).fetchone()
        return json.loads(row.body) if row is not None else None

    def create(self, collection: str, document: Any) -> dict:
        """Insert a document and return it with its id.

        An integer "id" in the document is kept (ConflictError if taken);
        otherwise the next id after the collection's current maximum is used.
        """
        _check_collection(collection)
        document = dict(_check_document(document))
        requested = document.get("id")
        if requested is not None and (not isinstance(requested, int) or isinstance(requested, bool)):
            raise ValidationError("id must be an integer")
        with self._write_lock, _storage_errors("write"), self.engine.begin() as conn:
            if requested is None:
                max_id = conn.execute(
                    select(func.max(_resources.c.id)).where(_resources.c.collection == collection)
                ).scalar()
                document["id"] = (max_id or 0) + 1
            elif self._exists(conn, collection, requested):
                raise ConflictError(f"{collection}/{requested} already exists")
            conn.execute(
                _resources.insert().values(collection=collection, id=document["id"], body=json.dumps(document))
            )
        return document

    def replace(self, collection: str, item_id: int, document: Any) -> dict | None:
        """Overwrite a document. The stored id always wins over any id in the body."""
        _check_collection(collection)
        document = dict(_check_document(document))
        document["id"] = item_id
        return self._write(collection, item_id, document)

    def merge(self, collection: str, item_id: int, changes: Any) -> dict | None:
        """Shallow-merge changes into an existing document."""
        _check_collection(collection)
        changes = _check_document(changes)
        current = self.get(collection, item_id)
        if current is None:
            return None
        current.update(changes)
        current["id"] = item_id
        return self._write(collection, item_id, current)

    def delete(self, collection: str, item_id: int) -> bool:
        _check_collection(collection)
        with self._write_lock, _storage_errors("write"), self.engine.begin() as conn:
            result = conn.execute(
                _resources.delete().where((_resources.c.collection == collection) & (_resources.c.id == item_id))
            )
        return result.rowcount > 0

    def import_collection(self, collection: str, documents: list) -> tuple[int, int]:
        """Bulk-load documents exported from another store.

        Returns (written, skipped). Numeric string ids ("7") are stored as
        integers; any other non-integer id is replaced by a newly allocated
        one. Documents that are not objects, or whose id is already taken,
        are skipped.
        """
        _check_collection(collection)
        written = skipped = 0
        for document in documents:
            if isinstance(document, dict):
                document = _normalize_import_id(document)
            try:
                self.create(collection, document)
            except (ValidationError, ConflictError):
                skipped += 1
                continue
            written += 1
        return written, skipped

    def close(self) -> None:
        self.engine.dispose()

    def _write(self, collection: str, item_id: int, document: dict) -> dict | None:
        with self._write_lock, _storage_errors("write"), self.engine.begin() as conn:
            result = conn.execute(
                _resources.update()
                .where((_resources.c.collection == collection) & (_resources.c.id == item_id))
                .values(body=json.dumps(document))
            )
        return document if result.rowcount > 0 else None

    @staticmethod
    def _exists(conn, collection: str, item_id: int) -> bool:
        row = conn.execute(
            select(_resources.c.id).where((_resources.c.collection == collection) & (_resources.c.id == item_id))
        ).fetchone()
        return row is not None
