"""Durable Firestore-backed implementation of the document store."""

import logging
from typing import Any, Dict, List, Optional, Sequence

from carbon_market.core.firebase_client_manager import FirebaseClientManager
from carbon_market.models.exceptions import ModelError, PersistenceError

from .document_store import DocumentStore, FilterTuple, orderable_sort_key


logger = logging.getLogger(__name__)


class FirestoreDocumentStore(DocumentStore):
    """Persist documents in Cloud Firestore through `FirebaseClientManager`."""

    name = "firestore"

    def __init__(self, firebase_manager: FirebaseClientManager, counters_collection: str = "counters") -> None:
        """Wrap an initialized Firestore manager.

        Args:
            firebase_manager: Shared Firebase client manager instance.
            counters_collection: Collection holding per-collection id sequences.
        """
        self._firebase_manager = firebase_manager
        self._counters_collection = counters_collection
        logger.info("FirestoreDocumentStore initialized counters_collection=%s", counters_collection)

    def next_id(self, collection_name: str) -> int:
        try:
            return self._firebase_manager.next_sequence_value(self._counters_collection, collection_name)
        except Exception as exc:
            raise PersistenceError("Failed to allocate id for {0}: {1}".format(collection_name, exc)) from exc

    def set_document(self, collection_name: str, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        try:
            return self._firebase_manager.set_document(
                collection_name=collection_name,
                document_id=document_id,
                payload=payload,
                merge=False,
            )
        except Exception as exc:
            raise PersistenceError("Failed to write {0}/{1}: {2}".format(collection_name, document_id, exc)) from exc

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        try:
            return self._firebase_manager.get_document(collection_name=collection_name, document_id=document_id)
        except Exception as exc:
            raise PersistenceError("Failed to read {0}/{1}: {2}".format(collection_name, document_id, exc)) from exc

    def update_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        try:
            return self._firebase_manager.replace_document_if_version(
                collection_name=collection_name,
                document_id=document_id,
                payload=payload,
                expected_version=expected_version,
            )
        except ModelError:
            raise
        except Exception as exc:
            raise PersistenceError("Failed to update {0}/{1}: {2}".format(collection_name, document_id, exc)) from exc

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        try:
            return self._firebase_manager.query_documents(
                collection_name=collection_name,
                filters=filters,
                order_by=order_by,
                descending=descending,
                limit=limit,
                offset=offset,
            )
        except Exception as exc:
            message = str(exc).lower()
            if not (order_by and "requires an index" in message):
                raise PersistenceError("Failed to query {0}: {1}".format(collection_name, exc)) from exc
            logger.warning(
                "Firestore composite index missing. Falling back to in-memory sort collection=%s order_by=%s",
                collection_name,
                order_by,
            )
        try:
            rows = self._firebase_manager.query_documents(collection_name=collection_name, filters=filters)
        except Exception as exc:
            raise PersistenceError("Failed to query {0}: {1}".format(collection_name, exc)) from exc
        rows.sort(key=lambda item: orderable_sort_key(item.get(order_by)), reverse=descending)
        start = max(0, int(offset))
        if limit is not None:
            return rows[start:start + int(limit)]
        return rows[start:]

    def count_documents(self, collection_name: str, filters: Optional[Sequence[FilterTuple]] = None) -> int:
        try:
            return self._firebase_manager.count_documents(collection_name=collection_name, filters=filters)
        except Exception as exc:
            raise PersistenceError("Failed to count {0}: {1}".format(collection_name, exc)) from exc
