"""Carbon credit registry and activity feed routers."""

import logging
from typing import Any, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, status
from pydantic import AliasChoices, BaseModel, ConfigDict, Field

from carbon_market.core.config import AppSettings
from carbon_market.models.exceptions import ModelError
from carbon_market.services.activity_service import ActivityService
from carbon_market.services.credit_service import CreditService

from .errors import http_error_for, success


logger = logging.getLogger(__name__)


class RegisterCreditRequest(BaseModel):
    """Request payload for registering a minted credit batch."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True)

    project_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("projectId", "project_id"))
    project_name: Optional[str] = Field(default=None, validation_alias=AliasChoices("projectName", "project_name"))
    token_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("tokenId", "token_id"))
    amount: Optional[float] = Field(default=None)
    chain_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("chainId", "chain_id"))
    contract_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("contractAddress", "contract_address"),
    )
    transaction_hash: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transactionHash", "transaction_hash"),
    )
    block_number: Optional[int] = Field(default=None, validation_alias=AliasChoices("blockNumber", "block_number"))
    owner_address: Optional[str] = Field(default=None, validation_alias=AliasChoices("ownerAddress", "owner_address"))


def _fail(exc: Exception, failure: str, context: str, settings: AppSettings) -> HTTPException:
    if not isinstance(exc, (ModelError, ValueError)):
        logger.exception("%s endpoint failed.", context)
    return http_error_for(exc, failure, settings)


def build_credit_router(service: CreditService, settings: AppSettings) -> APIRouter:
    """Build carbon credit registry router."""
    router = APIRouter(prefix="/credits", tags=["credits"])

    @router.post("", status_code=status.HTTP_201_CREATED, summary="Register carbon credits")
    def register_credit(payload: RegisterCreditRequest) -> Dict[str, Any]:
        """Register a minted ERC-1155 credit batch so it can be pledged."""
        try:
            credit = service.register_credit(
                project_id=payload.project_id,
                token_id=payload.token_id,
                amount=payload.amount,
                chain_id=payload.chain_id,
                contract_address=payload.contract_address,
                project_name=payload.project_name,
                transaction_hash=payload.transaction_hash,
                block_number=payload.block_number,
                owner_address=payload.owner_address,
            )
            return success(credit.model_dump(), message="Carbon credits registered successfully")
        except Exception as exc:
            raise _fail(exc, "Failed to register carbon credits", "Register credit", settings)

    @router.get("/{credit_id}", summary="Get carbon credit")
    def get_credit(credit_id: int) -> Dict[str, Any]:
        try:
            return success(service.get_credit(credit_id).model_dump())
        except Exception as exc:
            raise _fail(exc, "Failed to fetch carbon credit", "Get credit", settings)

    return router


def build_activity_router(service: ActivityService, settings: AppSettings) -> APIRouter:
    """Build activity feed router."""
    router = APIRouter(prefix="/activity", tags=["activity"])

    @router.get("/{address}", summary="User activity")
    def user_activity(
        address: str,
        limit: int = Query(default=50),
        offset: int = Query(default=0),
    ) -> Dict[str, Any]:
        """Return one wallet's activity records newest first."""
        try:
            records = [item.model_dump() for item in service.list_for_user(address, limit=limit, offset=offset)]
            return success(records, total=len(records))
        except Exception as exc:
            raise _fail(exc, "Failed to fetch user activity", "User activity", settings)

    return router
