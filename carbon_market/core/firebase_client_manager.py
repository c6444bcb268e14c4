"""Reusable Firebase Firestore client manager for CRUD and query operations."""

from datetime import datetime, timezone
import logging
import os
from typing import Any, Dict, List, Optional, Sequence, Tuple

from google.cloud import firestore
from google.cloud.firestore_v1.base_query import FieldFilter
from google.oauth2 import service_account

from carbon_market.models.exceptions import ModelNotFoundError, VersionConflictError


logger = logging.getLogger(__name__)

FilterTuple = Tuple[str, str, Any]


def _utc_now() -> datetime:
    """Return current UTC datetime."""
    return datetime.now(timezone.utc)


class FirebaseClientManager:
    """Encapsulates Firestore client setup and common data operations."""

    def __init__(self, project_id: Optional[str] = None, credentials_path: Optional[str] = None) -> None:
        """Initialize Firestore client.

        Args:
            project_id: Optional Google Cloud project id override.
            credentials_path: Optional path to Firebase service account json file.
        """
        try:
            if credentials_path:
                os.environ["GOOGLE_APPLICATION_CREDENTIALS"] = credentials_path
                credentials = service_account.Credentials.from_service_account_file(credentials_path)
                self._client = firestore.Client(project=project_id, credentials=credentials)
            else:
                self._client = firestore.Client(project=project_id) if project_id else firestore.Client()
            logger.info("FirebaseClientManager initialized for project_id=%s", project_id)
        except Exception:
            logger.exception("Failed to initialize Firebase Firestore client.")
            raise

    def set_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        merge: bool = False,
    ) -> Dict[str, Any]:
        """Create or replace a Firestore document.

        Args:
            collection_name: Target collection.
            document_id: Firestore document id.
            payload: Document payload.
            merge: If true, merge with existing fields.

        Returns:
            Dict[str, Any]: Persisted document payload.
        """
        try:
            ref = self._client.collection(collection_name).document(document_id)
            safe_payload = dict(payload)
            safe_payload["updated_at"] = safe_payload.get("updated_at", _utc_now())
            safe_payload["created_at"] = safe_payload.get("created_at", _utc_now())
            ref.set(safe_payload, merge=merge)
            snapshot = ref.get()
            return snapshot.to_dict() or {}
        except Exception:
            logger.exception(
                "Failed to set document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Get one Firestore document by id."""
        try:
            snapshot = self._client.collection(collection_name).document(document_id).get()
            if not snapshot.exists:
                return None
            return snapshot.to_dict() or {}
        except Exception:
            logger.exception(
                "Failed to get document collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def next_sequence_value(self, counters_collection: str, sequence_name: str) -> int:
        """Atomically increment and return a named counter document."""
        counter_ref = self._client.collection(counters_collection).document(sequence_name)

        @firestore.transactional
        def _increment(transaction: firestore.Transaction) -> int:
            snapshot = counter_ref.get(transaction=transaction)
            current = int((snapshot.to_dict() or {}).get("value", 0)) if snapshot.exists else 0
            transaction.set(counter_ref, {"value": current + 1, "updated_at": _utc_now()})
            return current + 1

        try:
            return _increment(self._client.transaction())
        except Exception:
            logger.exception(
                "Failed to increment counter collection=%s sequence=%s",
                counters_collection,
                sequence_name,
            )
            raise

    def replace_document_if_version(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        """Replace a document inside a transaction when its stored version matches.

        Raises:
            ModelNotFoundError: If the document does not exist.
            VersionConflictError: If the stored version differs from `expected_version`.
        """
        ref = self._client.collection(collection_name).document(document_id)

        @firestore.transactional
        def _replace(transaction: firestore.Transaction) -> Dict[str, Any]:
            snapshot = ref.get(transaction=transaction)
            if not snapshot.exists:
                raise ModelNotFoundError("Document not found: {0}/{1}".format(collection_name, document_id))
            stored_version = int((snapshot.to_dict() or {}).get("version", 1))
            if stored_version != int(expected_version):
                raise VersionConflictError(
                    "Stale write to {0}/{1}: expected version {2}, found {3}".format(
                        collection_name,
                        document_id,
                        expected_version,
                        stored_version,
                    )
                )
            safe_payload = dict(payload)
            safe_payload["updated_at"] = safe_payload.get("updated_at", _utc_now())
            transaction.set(ref, safe_payload)
            return safe_payload

        try:
            return _replace(self._client.transaction())
        except (ModelNotFoundError, VersionConflictError):
            raise
        except Exception:
            logger.exception(
                "Failed versioned replace collection=%s document_id=%s",
                collection_name,
                document_id,
            )
            raise

    def _build_query(self, collection_name: str, filters: Optional[Sequence[FilterTuple]]):
        query = self._client.collection(collection_name)
        for field_name, operator, value in filters or []:
            query = query.where(filter=FieldFilter(field_name, operator, value))
        return query

    def query_documents(
        self,
        collection_name: str,
        filters: Optional[Sequence[FilterTuple]] = None,
        order_by: Optional[str] = None,
        descending: bool = False,
        limit: Optional[int] = None,
        offset: int = 0,
    ) -> List[Dict[str, Any]]:
        """Run a filtered query and return document payloads.

        Args:
            collection_name: Target collection.
            filters: Sequence of tuples `(field, op, value)`.
            order_by: Optional field name for sorting.
            descending: Sort direction for `order_by`.
            limit: Optional maximum result count.
            offset: Number of leading results to skip.
        """
        try:
            query = self._build_query(collection_name, filters)
            if order_by:
                direction = firestore.Query.DESCENDING if descending else firestore.Query.ASCENDING
                query = query.order_by(order_by, direction=direction)
            if offset:
                query = query.offset(offset)
            if limit is not None:
                query = query.limit(limit)
            return [snapshot.to_dict() or {} for snapshot in query.stream()]
        except Exception:
            logger.exception("Failed query for collection=%s", collection_name)
            raise

    def count_documents(self, collection_name: str, filters: Optional[Sequence[FilterTuple]] = None) -> int:
        """Count documents with a server-side aggregation query."""
        try:
            results = self._build_query(collection_name, filters).count(alias="total").get()
            return int(results[0][0].value) if results else 0
        except Exception:
            logger.exception("Failed count for collection=%s", collection_name)
            raise
