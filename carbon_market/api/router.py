"""Primary API router module wiring storage, services, and feature routers."""

import logging
from typing import Optional

from fastapi import APIRouter

from carbon_market.core.config import AppSettings
from carbon_market.core.web3_client_manager import Web3ClientManager
from carbon_market.repositories import (
    DocumentActivityRepository,
    DocumentCarbonCreditRepository,
    DocumentLendingPositionRepository,
    DocumentStore,
    build_document_store,
)
from carbon_market.services.activity_service import ActivityService
from carbon_market.services.collateral_verifier import CollateralVerifier, Web3CollateralVerifier
from carbon_market.services.credit_service import CreditService
from carbon_market.services.lending_service import LendingService

from .credit_router import build_activity_router, build_credit_router
from .lending_router import build_lending_router


logger = logging.getLogger(__name__)


def _build_collateral_verifier(settings: AppSettings) -> Optional[CollateralVerifier]:
    """Create the on-chain verifier when Web3 is enabled and configured."""
    if not settings.web3_enabled:
        logger.info("Web3 integration disabled by web3.enabled=false")
        return None
    if not settings.web3_rpc_urls:
        logger.warning("Web3 enabled but no RPC urls configured. On-chain balance checks are skipped.")
        return None
    try:
        web3_manager = Web3ClientManager(rpc_urls=settings.web3_rpc_urls, timeout_sec=settings.web3_timeout_sec)
        return Web3CollateralVerifier(web3_manager)
    except Exception:
        logger.exception("Failed to initialize Web3 dependencies for router.")
        return None


def build_router(
    settings: AppSettings,
    store: Optional[DocumentStore] = None,
    collateral_verifier: Optional[CollateralVerifier] = None,
) -> APIRouter:
    """Build and return the top-level API router.

    Args:
        settings: Application settings payload.
        store: Optional document store; selected from settings when omitted.
        collateral_verifier: Optional on-chain verifier; built from settings when omitted.

    Returns:
        APIRouter: Fully configured router with all endpoints.
    """
    router = APIRouter()
    document_store = store if store is not None else build_document_store(settings)
    verifier = collateral_verifier if collateral_verifier is not None else _build_collateral_verifier(settings)

    activity_service = ActivityService(
        DocumentActivityRepository(document_store, collection_name=settings.activity_collection)
    )
    credit_repository = DocumentCarbonCreditRepository(document_store, collection_name=settings.credits_collection)
    credit_service = CreditService(credit_repository, activity_service=activity_service)
    lending_service = LendingService(
        position_repository=DocumentLendingPositionRepository(
            document_store,
            collection_name=settings.positions_collection,
        ),
        credit_repository=credit_repository,
        activity_service=activity_service,
        collateral_verifier=verifier,
        default_interest_rate=settings.default_interest_rate,
        default_liquidation_threshold=settings.default_liquidation_threshold,
    )

    router.include_router(build_lending_router(lending_service, settings))
    router.include_router(build_credit_router(credit_service, settings))
    router.include_router(build_activity_router(activity_service, settings))

    @router.get("/", summary="Root endpoint")
    def read_root() -> dict:
        """Return a basic message confirming service availability."""
        return {"message": "{0} is running".format(settings.app_name)}

    @router.get("/health", summary="Health check")
    def health_check() -> dict:
        """Return service health status for probes and monitors."""
        return {"status": "ok", "storage": document_store.name}

    @router.get("/settings", summary="Settings snapshot")
    def get_settings_snapshot() -> dict:
        """Expose non-sensitive settings for UI gating."""
        return {
            "app_name": settings.app_name,
            "environment": settings.environment,
            "debug": settings.debug,
            "host": settings.host,
            "port": settings.port,
            "storage_backend": document_store.name,
            "web3_enabled": settings.web3_enabled,
            "web3_chain_ids": sorted(settings.web3_rpc_urls),
            "collateral_verification": verifier is not None,
            "default_interest_rate": settings.default_interest_rate,
            "default_liquidation_threshold": settings.default_liquidation_threshold,
            "stream_poll_interval_sec": settings.stream_poll_interval_sec,
        }

    return router
