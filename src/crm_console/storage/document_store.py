"""
Document Store - JSON-file collections with auto-increment counters.

Each collection lives in <data_dir>/<collection>.json as a list of
documents keyed by "id". Counters live in counters.json as
{name: last_value}.
"""
import json
import logging
import os
import tempfile
import threading
import uuid
from pathlib import Path
from typing import Callable, Optional

logger = logging.getLogger(__name__)

COUNTERS = 'counters'


class DocumentStore:
    """File-backed document collections."""

    def __init__(self, data_dir: Path):
        self.data_dir = Path(data_dir)
        self.data_dir.mkdir(parents=True, exist_ok=True)
        self._lock = threading.RLock()

    def _path(self, collection: str) -> Path:
        return self.data_dir / f'{collection}.json'

    def _read(self, collection: str):
        path = self._path(collection)
        if not path.exists():
            return {} if collection == COUNTERS else []
        with open(path, 'r', encoding='utf-8') as f:
            return json.load(f)

    def _write(self, collection: str, data):
        path = self._path(collection)
        fd, tmp_path = tempfile.mkstemp(dir=self.data_dir, suffix='.tmp')
        try:
            with os.fdopen(fd, 'w', encoding='utf-8') as f:
                json.dump(data, f, indent=2, default=str)
            os.replace(tmp_path, path)
        except BaseException:
            if os.path.exists(tmp_path):
                os.remove(tmp_path)
            raise

    def list(self, collection: str) -> list[dict]:
        """Return every document in a collection."""
        with self._lock:
            return self._read(collection)

    def get(self, collection: str, doc_id: str) -> Optional[dict]:
        """Get a document by id."""
        for doc in self.list(collection):
            if doc.get('id') == doc_id:
                return doc
        return None

    def find_one(self, collection: str, **fields) -> Optional[dict]:
        """Get the first document whose fields equal the given values."""
        for doc in self.list(collection):
            if all(doc.get(k) == v for k, v in fields.items()):
                return doc
        return None

    def insert(self, collection: str, doc: dict) -> dict:
        """Insert a document, assigning an id when it has none."""
        with self._lock:
            docs = self._read(collection)
            if not doc.get('id'):
                doc['id'] = uuid.uuid4().hex
            if any(d.get('id') == doc['id'] for d in docs):
                raise ValueError(f"Document '{doc['id']}' already exists in {collection}")
            docs.append(doc)
            self._write(collection, docs)
        logger.debug("Inserted %s/%s", collection, doc['id'])
        return doc

    def update(self, collection: str, doc_id: str, fields: dict) -> Optional[dict]:
        """Merge fields into a document. Returns the updated doc or None."""
        with self._lock:
            docs = self._read(collection)
            for doc in docs:
                if doc.get('id') == doc_id:
                    doc.update(fields)
                    self._write(collection, docs)
                    return doc
        return None

    def replace(self, collection: str, doc: dict) -> Optional[dict]:
        """Overwrite a stored document with the same id."""
        with self._lock:
            docs = self._read(collection)
            for i, existing in enumerate(docs):
                if existing.get('id') == doc['id']:
                    docs[i] = doc
                    self._write(collection, docs)
                    return doc
        return None

    def update_many(self, collection: str, predicate: Callable[[dict], bool], fields: dict) -> int:
        """Merge fields into every matching document. Returns the count."""
        count = 0
        with self._lock:
            docs = self._read(collection)
            for doc in docs:
                if predicate(doc):
                    doc.update(fields)
                    count += 1
            if count:
                self._write(collection, docs)
        return count

    def delete(self, collection: str, doc_id: str) -> bool:
        """Delete a document. Returns False when it did not exist."""
        with self._lock:
            docs = self._read(collection)
            remaining = [d for d in docs if d.get('id') != doc_id]
            if len(remaining) == len(docs):
                return False
            self._write(collection, remaining)
        logger.debug("Deleted %s/%s", collection, doc_id)
        return True

    def delete_many(self, collection: str, predicate: Callable[[dict], bool]) -> int:
        """Delete every matching document. Returns the count."""
        with self._lock:
            docs = self._read(collection)
            remaining = [d for d in docs if not predicate(d)]
            removed = len(docs) - len(remaining)
            if removed:
                self._write(collection, remaining)
        return removed

    def count(self, collection: str) -> int:
        return len(self.list(collection))

    def next_sequence(self, name: str, start: int = 0) -> int:
        """Increment and return a named counter (first value is start + 1)."""
        with self._lock:
            counters = self._read(COUNTERS)
            value = max(int(counters.get(name, start)), start) + 1
            counters[name] = value
            self._write(COUNTERS, counters)
        return value
