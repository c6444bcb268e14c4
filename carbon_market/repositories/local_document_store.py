"""Local JSON-file document store used when the durable datastore is not configured."""

import copy
from datetime import date, datetime
from enum import Enum
import json
import logging
import os
from pathlib import Path
import tempfile
from threading import RLock
from typing import Any, Dict, List, Optional, Sequence

from carbon_market.models.exceptions import ModelNotFoundError, PersistenceError, VersionConflictError

from .document_store import DocumentStore, FilterTuple, matches_filters, orderable_sort_key


logger = logging.getLogger(__name__)


def _json_default(value: Any) -> Any:
    """Encode values the standard JSON encoder does not understand."""
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    if isinstance(value, Enum):
        return value.value
    raise TypeError("Object of type {0} is not JSON serializable".format(type(value).__name__))


def _normalize(payload: Dict[str, Any]) -> Dict[str, Any]:
    """Round-trip a payload through JSON so memory and file contents share one shape."""
    return json.loads(json.dumps(payload, default=_json_default))


class LocalDocumentStore(DocumentStore):
    """Keeps documents in memory and mirrors them to a JSON file when a path is given.

    File layout::

        {"counters": {"<collection>": <last id>},
         "collections": {"<collection>": {"<document id>": {...}}}}
    """

    name = "local"

    def __init__(self, path: Optional[str] = None) -> None:
        """Load existing data from `path`; keep everything in memory when `path` is None."""
        self._path = Path(path) if path else None
        self._lock = RLock()
        self._data: Dict[str, Dict[str, Any]] = self._load()
        logger.info("LocalDocumentStore initialized path=%s", self._path or "<memory>")

    def _load(self) -> Dict[str, Dict[str, Any]]:
        """Read the data file, starting empty when it is missing or unreadable."""
        empty: Dict[str, Dict[str, Any]] = {"counters": {}, "collections": {}}
        if self._path is None or not self._path.exists():
            return empty
        try:
            with self._path.open("r", encoding="utf-8") as data_file:
                loaded = json.load(data_file) or {}
            return {
                "counters": dict(loaded.get("counters") or {}),
                "collections": dict(loaded.get("collections") or {}),
            }
        except Exception:
            logger.warning("Could not load local data file %s, starting empty.", self._path, exc_info=True)
            return empty

    def _save(self) -> None:
        """Atomically rewrite the data file."""
        if self._path is None:
            return
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            fd, tmp_name = tempfile.mkstemp(prefix=".local-data-", dir=str(self._path.parent))
            with os.fdopen(fd, "w", encoding="utf-8") as tmp_file:
                json.dump(self._data, tmp_file, indent=2, default=_json_default)
            os.replace(tmp_name, self._path)
        except Exception as exc:
            logger.exception("Failed to save local data file %s", self._path)
            raise PersistenceError("Failed to save local data: {0}".format(exc)) from exc

    def _bucket(self, collection_name: str) -> Dict[str, Dict[str, Any]]:
        return self._data["collections"].setdefault(collection_name, {})

    def next_id(self, collection_name: str) -> int:
        """Reserve and return the next sequential id for a collection."""
        with self._lock:
            counters = self._data["counters"]
            previous = counters.get(collection_name)
            next_value = int(previous or 0) + 1
            counters[collection_name] = next_value
            try:
                self._save()
            except PersistenceError:
                counters[collection_name] = previous
                if previous is None:
                    counters.pop(collection_name, None)
                raise
            return next_value

    def set_document(self, collection_name: str, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace a document and return the stored payload."""
        stored = _normalize(payload)
        with self._lock:
            bucket = self._bucket(collection_name)
            previous = bucket.get(document_id)
            bucket[document_id] = stored
            try:
                self._save()
            except PersistenceError:
                if previous is None:
                    bucket.pop(document_id, None)
                else:
                    bucket[document_id] = previous
                raise
            return copy.deepcopy(stored)

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return one document, or None when it does not exist."""
        with self._lock:
            payload = self._bucket(collection_name).get(document_id)
            if payload is None:
                return None
            return copy.deepcopy(payload)

    def update_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        """Replace a document only if its stored `version` equals `expected_version`."""
        with self._lock:
            current = self._bucket(collection_name).get(document_id)
            if current is None:
                raise ModelNotFoundError("Document not found: {0}/{1}".format(collection_name, document_id))
            stored_version = int(current.get("version", 1))
            if stored_version != int(expected_version):
                raise VersionConflictError(
                    "Stale write to {0}/{1}: expected version {2}, found {3}".format(
                        collection_name,
                        document_id,
                        expected_version,
                        stored_version,
                    )
                )
            return self.set_document(collection_name, document_id, payload)

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Query documents by `(field, op, value)` filters."""
        with self._lock:
            records = [
                copy.deepcopy(payload)
                for payload in self._bucket(collection_name).values()
                if matches_filters(payload, filters or [])
            ]
        if order_by:
            records.sort(key=lambda item: orderable_sort_key(item.get(order_by)), reverse=descending)
        start = max(0, int(offset))
        if limit is not None:
            return records[start:start + int(limit)]
        return records[start:]

    def count_documents(self, collection_name: str, filters: Optional[Sequence[FilterTuple]] = None) -> int:
        """Count documents matching the filters."""
        with self._lock:
            return sum(1 for payload in self._bucket(collection_name).values() if matches_filters(payload, filters or []))
