"""Document store contract shared by the durable and local persistence backends."""

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence, Tuple


FilterTuple = Tuple[str, str, Any]


class DocumentStore(ABC):
    """Minimal keyed-document persistence used by the repositories.

    Implementations raise `PersistenceError` when the backend fails, and
    `ModelNotFoundError` / `VersionConflictError` from `update_document`.
    """

    name = "abstract"

    @abstractmethod
    def next_id(self, collection_name: str) -> int:
        """Reserve and return the next sequential id for a collection."""

    @abstractmethod
    def set_document(self, collection_name: str, document_id: str, payload: Dict[str, Any]) -> Dict[str, Any]:
        """Create or replace a document and return the stored payload."""

    @abstractmethod
    def get_document(self, collection_name: str, document_id: str) -> Optional[Dict[str, Any]]:
        """Return one document, or None when it does not exist."""

    @abstractmethod
    def update_document(
        self,
        collection_name: str,
        document_id: str,
        payload: Dict[str, Any],
        expected_version: int,
    ) -> Dict[str, Any]:
        """Replace a document only if its stored `version` equals `expected_version`."""

    @abstractmethod
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

    @abstractmethod
    def count_documents(self, collection_name: str, filters: Optional[Sequence[FilterTuple]] = None) -> int:
        """Count documents matching the filters."""


def matches_filters(payload: Dict[str, Any], filters: Sequence[FilterTuple]) -> bool:
    """Evaluate query-like filters against a stored payload."""
    for field_name, operator, expected_value in filters:
        actual_value = payload.get(field_name)
        if operator == "==":
            if actual_value != expected_value:
                return False
        elif operator == "!=":
            if actual_value == expected_value:
                return False
        elif operator == ">":
            if actual_value is None or actual_value <= expected_value:
                return False
        elif operator == ">=":
            if actual_value is None or actual_value < expected_value:
                return False
        elif operator == "<":
            if actual_value is None or actual_value >= expected_value:
                return False
        elif operator == "<=":
            if actual_value is None or actual_value > expected_value:
                return False
        elif operator == "in":
            if actual_value not in expected_value:
                return False
        else:
            raise ValueError("Unsupported filter operator: {0}".format(operator))
    return True


def orderable_sort_key(value: Any) -> tuple:
    """Return a safe sortable tuple for heterogeneous stored values."""
    if value is None:
        return (3, 0.0, "")
    if isinstance(value, bool):
        return (0, float(int(value)), "")
    if isinstance(value, (int, float)):
        return (0, float(value), "")
    if isinstance(value, datetime):
        return (0, value.timestamp(), "")
    return (1, 0.0, str(value))
