"""Repository implementations over any `DocumentStore` backend."""

import logging
from typing import List, Optional

from carbon_market.models.activity import ActivityRecordModel
from carbon_market.models.base import utc_now
from carbon_market.models.credits import CarbonCreditModel
from carbon_market.models.exceptions import ModelNotFoundError, ModelValidationError
from carbon_market.models.positions import LendingPositionModel
from carbon_market.models.repositories import (
    ActivityRepository,
    CarbonCreditRepository,
    LendingPositionRepository,
)

from .document_store import DocumentStore


logger = logging.getLogger(__name__)


class DocumentLendingPositionRepository(LendingPositionRepository):
    """Persist lending positions as documents keyed by their sequential id."""

    def __init__(self, store: DocumentStore, collection_name: str = "lending_positions") -> None:
        self._store = store
        self._collection_name = collection_name

    def create(self, model: LendingPositionModel) -> LendingPositionModel:
        """Assign the next id and persist a new position.

        Raises:
            ModelValidationError: If another position already uses the same hash.
        """
        duplicates = self._store.query_documents(
            self._collection_name,
            filters=[("position_hash", "==", model.position_hash)],
            limit=1,
        )
        if duplicates:
            raise ModelValidationError("Position hash already exists: {0}".format(model.position_hash))
        position_id = self._store.next_id(self._collection_name)
        persisted = model.model_copy(update={"id": position_id, "version": 1})
        stored = self._store.set_document(self._collection_name, persisted.document_id, persisted.to_document())
        logger.info("Created lending position id=%s user=%s", position_id, persisted.user_address)
        return LendingPositionModel.from_document(stored, doc_id=persisted.document_id)

    def get_by_id(self, model_id: int) -> LendingPositionModel:
        """Fetch a lending position by identifier.

        Raises:
            ModelNotFoundError: If position does not exist.
        """
        payload = self._store.get_document(self._collection_name, str(model_id))
        if payload is None:
            raise ModelNotFoundError("Lending position not found: {0}".format(model_id))
        return LendingPositionModel.from_document(payload, doc_id=str(model_id))

    def update(self, model: LendingPositionModel) -> LendingPositionModel:
        """Write a mutated position if nobody else wrote it since it was read."""
        expected_version = model.version
        bumped = model.model_copy(update={"version": expected_version + 1, "updated_at": utc_now()})
        stored = self._store.update_document(
            self._collection_name,
            bumped.document_id,
            bumped.to_document(),
            expected_version=expected_version,
        )
        return LendingPositionModel.from_document(stored, doc_id=bumped.document_id)

    def list(
        self,
        user_address: Optional[str] = None,
        status: Optional[str] = None,
        limit: Optional[int] = 20,
        offset: int = 0,
    ) -> List[LendingPositionModel]:
        """Return positions newest first, optionally filtered by owner and status."""
        filters = []
        if user_address:
            filters.append(("user_address", "==", user_address.lower()))
        if status:
            filters.append(("status", "==", status))
        payloads = self._store.query_documents(
            self._collection_name,
            filters=filters,
            order_by="id",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return [LendingPositionModel.from_document(item) for item in payloads]

    def count(self, status: Optional[str] = None) -> int:
        """Count positions, optionally restricted to one status."""
        filters = [("status", "==", status)] if status else []
        return self._store.count_documents(self._collection_name, filters=filters)


class DocumentCarbonCreditRepository(CarbonCreditRepository):
    """Persist carbon credit batches as documents."""

    def __init__(self, store: DocumentStore, collection_name: str = "carbon_credits") -> None:
        self._store = store
        self._collection_name = collection_name

    def create(self, model: CarbonCreditModel) -> CarbonCreditModel:
        credit_id = self._store.next_id(self._collection_name)
        persisted = model.model_copy(update={"id": credit_id})
        stored = self._store.set_document(self._collection_name, persisted.document_id, persisted.to_document())
        return CarbonCreditModel.from_document(stored, doc_id=persisted.document_id)

    def get_by_id(self, model_id: int) -> CarbonCreditModel:
        payload = self._store.get_document(self._collection_name, str(model_id))
        if payload is None:
            raise ModelNotFoundError("Carbon credit not found: {0}".format(model_id))
        return CarbonCreditModel.from_document(payload, doc_id=str(model_id))


class DocumentActivityRepository(ActivityRepository):
    """Append activity records to a document collection."""

    def __init__(self, store: DocumentStore, collection_name: str = "activity_log") -> None:
        self._store = store
        self._collection_name = collection_name

    def create(self, model: ActivityRecordModel) -> ActivityRecordModel:
        record_id = self._store.next_id(self._collection_name)
        persisted = model.model_copy(update={"id": record_id})
        stored = self._store.set_document(self._collection_name, persisted.document_id, persisted.to_document())
        return ActivityRecordModel.from_document(stored, doc_id=persisted.document_id)

    def get_by_id(self, model_id: int) -> ActivityRecordModel:
        payload = self._store.get_document(self._collection_name, str(model_id))
        if payload is None:
            raise ModelNotFoundError("Activity record not found: {0}".format(model_id))
        return ActivityRecordModel.from_document(payload, doc_id=str(model_id))

    def list_by_user(self, user_address: str, limit: int = 50, offset: int = 0) -> List[ActivityRecordModel]:
        payloads = self._store.query_documents(
            self._collection_name,
            filters=[("user_address", "==", user_address.lower())],
            order_by="id",
            descending=True,
            limit=limit,
            offset=offset,
        )
        return [ActivityRecordModel.from_document(item) for item in payloads]
