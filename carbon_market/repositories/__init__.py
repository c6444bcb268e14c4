"""Persistence backends and repository implementations."""

import logging

from carbon_market.core.config import AppSettings

from .document_repositories import (
    DocumentActivityRepository,
    DocumentCarbonCreditRepository,
    DocumentLendingPositionRepository,
)
from .document_store import DocumentStore
from .local_document_store import LocalDocumentStore


logger = logging.getLogger(__name__)


def build_document_store(settings: AppSettings) -> DocumentStore:
    """Select the persistence backend once at startup.

    A configured Firestore backend that cannot be initialized degrades to the
    local JSON store so the service still starts.
    """
    if settings.storage_backend == "firestore":
        try:
            from carbon_market.core.firebase_client_manager import FirebaseClientManager

            from .firestore_document_store import FirestoreDocumentStore

            firebase_manager = FirebaseClientManager(
                project_id=settings.firebase_project_id,
                credentials_path=settings.firebase_credentials_path,
            )
            return FirestoreDocumentStore(firebase_manager, counters_collection=settings.counters_collection)
        except Exception:
            logger.exception("Failed to initialize Firestore storage. Falling back to local store.")
    logger.info("Using local document store path=%s", settings.local_data_path or "<memory>")
    return LocalDocumentStore(settings.local_data_path)


__all__ = [
    "DocumentStore",
    "LocalDocumentStore",
    "DocumentLendingPositionRepository",
    "DocumentCarbonCreditRepository",
    "DocumentActivityRepository",
    "build_document_store",
]
