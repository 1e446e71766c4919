"""JSON document storage for storefront.

All collections live in one JSON file so that a transaction spanning
several collections commits with a single atomic rename. An exclusive
``flock`` on a sibling lock file serializes transactions across threads
and processes; every public operation runs inside a transaction.
"""

import copy
import fcntl
import json
import logging
import os
import tempfile
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Callable, Iterator

from .errors import InvalidSchemaVersionError, StorageError

logger = logging.getLogger(__name__)

SCHEMA_VERSION = 1

Document = dict[str, Any]
Predicate = Callable[[Document], bool]
Mutation = Callable[[Document], bool]


class TransactionAborted(Exception):
    """Raised inside a transaction to discard its writes without an error."""


class Session:
    """Working copy of the database for the duration of one transaction."""

    def __init__(self, data: dict[str, Any]):
        self._collections: dict[str, dict[str, Document]] = data["collections"]
        self.dirty = False

    def _collection(self, name: str) -> dict[str, Document]:
        return self._collections.setdefault(name, {})

    def abort(self) -> None:
        """Discard every write made in this session."""
        raise TransactionAborted()

    def get(self, collection: str, doc_id: str) -> Document | None:
        doc = self._collection(collection).get(doc_id)
        return copy.deepcopy(doc) if doc is not None else None

    def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        docs = self._collection(collection).values()
        return [copy.deepcopy(d) for d in docs if predicate is None or predicate(d)]

    def find_one(self, collection: str, predicate: Predicate) -> Document | None:
        for doc in self._collection(collection).values():
            if predicate(doc):
                return copy.deepcopy(doc)
        return None

    def insert_one(self, collection: str, doc: Document) -> str:
        docs = self._collection(collection)
        doc_id = doc["id"]
        if doc_id in docs:
            raise StorageError(collection, f"duplicate id {doc_id}")
        docs[doc_id] = copy.deepcopy(doc)
        self.dirty = True
        return doc_id

    def replace_one(self, collection: str, doc: Document) -> int:
        docs = self._collection(collection)
        if doc["id"] not in docs:
            return 0
        docs[doc["id"]] = copy.deepcopy(doc)
        self.dirty = True
        return 1

    def update_one(self, collection: str, doc_id: str, mutation: Mutation) -> int:
        """
        Conditionally update one document.

        ``mutation`` receives a private copy of the stored document. It
        checks its predicate against that copy and returns False to leave
        the document untouched, or mutates the copy and returns True.

        Returns:
            Number of documents modified (0 or 1).
        """
        docs = self._collection(collection)
        current = docs.get(doc_id)
        if current is None:
            return 0
        candidate = copy.deepcopy(current)
        if not mutation(candidate):
            return 0
        docs[doc_id] = candidate
        self.dirty = True
        return 1

    def delete_one(self, collection: str, doc_id: str) -> int:
        docs = self._collection(collection)
        if docs.pop(doc_id, None) is None:
            return 0
        self.dirty = True
        return 1


class Database:
    """Manages the storefront database file."""

    def __init__(self, path: Path):
        """
        Initialize Database.

        Args:
            path: Location of the JSON database file.
        """
        self.path = Path(path)
        self.data_dir = self.path.parent
        self.lock_path = self.data_dir / f".{self.path.name}.lock"

    def _ensure_dir(self) -> None:
        self.data_dir.mkdir(parents=True, exist_ok=True)

    @contextmanager
    def _lock(self) -> Iterator[None]:
        """Acquire exclusive lock on the database file."""
        self._ensure_dir()
        with open(self.lock_path, "w") as lock_file:
            fcntl.flock(lock_file.fileno(), fcntl.LOCK_EX)
            try:
                yield
            finally:
                fcntl.flock(lock_file.fileno(), fcntl.LOCK_UN)

    def _load_data(self) -> dict[str, Any]:
        if not self.path.exists():
            return {"schema_version": SCHEMA_VERSION, "collections": {}}

        try:
            with open(self.path, "r", encoding="utf-8") as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise StorageError(str(self.path), str(e)) from e

        version = data.get("schema_version", 0)
        if version != SCHEMA_VERSION:
            raise InvalidSchemaVersionError(version, SCHEMA_VERSION)
        data.setdefault("collections", {})
        return data

    def _save_data(self, data: dict[str, Any]) -> None:
        """Write data to disk atomically (write-to-temp-then-rename)."""
        fd, temp_path = tempfile.mkstemp(
            dir=self.data_dir, prefix=f".{self.path.stem}_", suffix=".tmp"
        )
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f, indent=2)
                f.write("\n")
            os.replace(temp_path, self.path)
        except Exception as e:
            try:
                os.unlink(temp_path)
            except OSError:
                pass
            if isinstance(e, OSError):
                raise StorageError(str(self.path), str(e)) from e
            raise

    @contextmanager
    def transaction(self) -> Iterator[Session]:
        """
        Run a multi-document transaction.

        Commits on normal exit. On any exception nothing is written and
        the exception propagates; ``Session.abort()`` discards silently.
        """
        with self._lock():
            data = self._load_data()
            session = Session(data)
            try:
                yield session
            except TransactionAborted:
                logger.debug("Transaction aborted on request")
                return
            except Exception:
                logger.debug("Transaction aborted by exception")
                raise
            if session.dirty:
                self._save_data(data)

    # Single-operation helpers, each in its own transaction

    def get(self, collection: str, doc_id: str) -> Document | None:
        with self.transaction() as session:
            return session.get(collection, doc_id)

    def find(self, collection: str, predicate: Predicate | None = None) -> list[Document]:
        with self.transaction() as session:
            return session.find(collection, predicate)

    def find_one(self, collection: str, predicate: Predicate) -> Document | None:
        with self.transaction() as session:
            return session.find_one(collection, predicate)

    def insert_one(self, collection: str, doc: Document) -> str:
        with self.transaction() as session:
            return session.insert_one(collection, doc)

    def update_one(self, collection: str, doc_id: str, mutation: Mutation) -> int:
        with self.transaction() as session:
            return session.update_one(collection, doc_id, mutation)

    def delete_one(self, collection: str, doc_id: str) -> int:
        with self.transaction() as session:
            return session.delete_one(collection, doc_id)

    def count(self, collection: str) -> int:
        with self.transaction() as session:
            return len(session.find(collection))
