"""Lending router exposing position lifecycle, reporting, and streaming APIs."""

import asyncio
import json
import logging
from typing import Any, AsyncIterator, Awaitable, Callable, Dict, Optional

from fastapi import APIRouter, HTTPException, Query, Request, status
from fastapi.encoders import jsonable_encoder
from fastapi.responses import StreamingResponse
from pydantic import AliasChoices, BaseModel, ConfigDict, Field
from starlette.concurrency import run_in_threadpool

from carbon_market.core.config import AppSettings
from carbon_market.models.enums import PositionStatus
from carbon_market.models.exceptions import ModelError
from carbon_market.services.lending_service import LendingService

from .errors import http_error_for, success


logger = logging.getLogger(__name__)


class _CamelCaseRequest(BaseModel):
    """Accept camelCase keys sent by web clients alongside snake_case."""

    model_config = ConfigDict(extra="ignore", populate_by_name=True, allow_inf_nan=False)


class OpenPositionRequest(_CamelCaseRequest):
    """Request payload for opening a lending position."""

    user_address: Optional[str] = Field(default=None, validation_alias=AliasChoices("userAddress", "user_address"))
    credit_id: Optional[int] = Field(default=None, validation_alias=AliasChoices("creditId", "credit_id"))
    collateral_amount: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("collateralAmount", "collateral_amount"),
    )
    borrowed_amount: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("borrowedAmount", "borrowed_amount"),
    )
    interest_rate: Optional[float] = Field(default=None, validation_alias=AliasChoices("interestRate", "interest_rate"))
    liquidation_threshold: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("liquidationThreshold", "liquidation_threshold"),
    )
    position_hash: Optional[str] = Field(default=None, validation_alias=AliasChoices("positionHash", "position_hash"))


class AddCollateralRequest(_CamelCaseRequest):
    """Request payload for adding collateral; `amount` is accepted as a fallback key."""

    additional_collateral: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("additionalCollateral", "additional_collateral"),
    )
    amount: Optional[float] = Field(default=None)
    transaction_hash: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transactionHash", "transaction_hash"),
    )

    @property
    def resolved_amount(self) -> Optional[float]:
        return self.additional_collateral if self.additional_collateral is not None else self.amount


class RepayRequest(_CamelCaseRequest):
    """Request payload for loan repayment; `amount` is accepted as a fallback key."""

    repayment_amount: Optional[float] = Field(
        default=None,
        validation_alias=AliasChoices("repaymentAmount", "repayment_amount"),
    )
    amount: Optional[float] = Field(default=None)
    transaction_hash: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transactionHash", "transaction_hash"),
    )

    @property
    def resolved_amount(self) -> Optional[float]:
        return self.repayment_amount if self.repayment_amount is not None else self.amount


class LiquidateRequest(_CamelCaseRequest):
    """Request payload for liquidation."""

    liquidator_address: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("liquidatorAddress", "liquidator_address"),
    )
    transaction_hash: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("transactionHash", "transaction_hash"),
    )


async def position_event_stream(
    snapshot: Callable[[], Any],
    is_disconnected: Callable[[], Awaitable[bool]],
    poll_interval_sec: float,
    max_events: Optional[int] = None,
) -> AsyncIterator[str]:
    """Yield SSE `data:` frames with a fresh snapshot every `poll_interval_sec`.

    A failed poll is logged and retried on the next tick. The stream ends when
    the client disconnects or after `max_events` frames.
    """
    sent = 0
    while max_events is None or sent < max_events:
        if await is_disconnected():
            logger.info("Lending stream client disconnected.")
            break
        try:
            payload = await run_in_threadpool(snapshot)
            yield "data: {0}\n\n".format(json.dumps(jsonable_encoder(payload)))
            sent += 1
        except Exception as exc:
            logger.warning("Lending stream poll failed: %s", exc)
        if max_events is not None and sent >= max_events:
            break
        await asyncio.sleep(poll_interval_sec)


def build_lending_router(service: LendingService, settings: AppSettings) -> APIRouter:
    """Build lending router for position lifecycle endpoints."""
    router = APIRouter(prefix="/lending", tags=["lending"])

    def _fail(exc: Exception, failure: str, context: str) -> HTTPException:
        if not isinstance(exc, (ModelError, ValueError)):
            logger.exception("%s endpoint failed.", context)
        return http_error_for(exc, failure, settings)

    @router.get("/positions", summary="List lending positions")
    def list_positions(
        user_address: Optional[str] = Query(default=None, alias="userAddress"),
        position_status: Optional[str] = Query(default=None, alias="status"),
        limit: int = Query(default=20),
        offset: int = Query(default=0),
    ) -> Dict[str, Any]:
        """Return positions newest first with optional owner and status filters."""
        try:
            positions = service.list_positions(
                user_address=user_address,
                status=position_status,
                limit=limit,
                offset=offset,
            )
            data = [item.to_api() for item in positions]
            return success(data, total=len(data))
        except Exception as exc:
            raise _fail(exc, "Failed to fetch lending positions", "List positions")

    # Registered before `/positions/{address}` so the literal path wins.
    @router.get("/positions/stream", summary="Stream lending positions")
    async def stream_positions(
        request: Request,
        user_address: Optional[str] = Query(default=None, alias="userAddress"),
        position_status: Optional[str] = Query(default=None, alias="status"),
        limit: int = Query(default=50),
        offset: int = Query(default=0),
    ) -> StreamingResponse:
        """Republish the filtered position list as server-sent events."""
        if position_status and position_status not in {item.value for item in PositionStatus}:
            raise HTTPException(
                status_code=status.HTTP_400_BAD_REQUEST,
                detail={"success": False, "error": "Invalid status filter: {0}".format(position_status)},
            )

        def _snapshot() -> Any:
            return service.stream_snapshot(
                user_address=user_address,
                status=position_status,
                limit=limit,
                offset=offset,
            )

        return StreamingResponse(
            position_event_stream(_snapshot, request.is_disconnected, settings.stream_poll_interval_sec),
            media_type="text/event-stream",
            headers={"Cache-Control": "no-cache", "Connection": "keep-alive"},
        )

    @router.post("/positions", status_code=status.HTTP_201_CREATED, summary="Open lending position")
    def open_position(payload: OpenPositionRequest) -> Dict[str, Any]:
        """Open a position backed by pledged carbon credits."""
        try:
            position = service.open_position(
                user_address=payload.user_address,
                credit_id=payload.credit_id,
                collateral_amount=payload.collateral_amount,
                borrowed_amount=payload.borrowed_amount,
                interest_rate=payload.interest_rate,
                liquidation_threshold=payload.liquidation_threshold,
                position_hash=payload.position_hash,
            )
            return success(position.to_api(), message="Lending position created successfully")
        except Exception as exc:
            raise _fail(exc, "Failed to create lending position", "Open position")

    @router.post("/positions/{position_id}/collateral", summary="Add collateral")
    def add_collateral(position_id: int, payload: AddCollateralRequest) -> Dict[str, Any]:
        try:
            position = service.add_collateral(
                position_id=position_id,
                amount=payload.resolved_amount,
                transaction_hash=payload.transaction_hash,
            )
            return success(position.to_api(), message="Collateral added successfully")
        except Exception as exc:
            raise _fail(exc, "Failed to add collateral", "Add collateral")

    @router.post("/positions/{position_id}/repay", summary="Repay loan")
    def repay(position_id: int, payload: RepayRequest) -> Dict[str, Any]:
        try:
            position = service.repay(
                position_id=position_id,
                amount=payload.resolved_amount,
                transaction_hash=payload.transaction_hash,
            )
            fully_repaid = position.status == PositionStatus.CLOSED
            return success(
                position.to_api(),
                message="Loan fully repaid" if fully_repaid else "Loan partially repaid",
            )
        except Exception as exc:
            raise _fail(exc, "Failed to repay loan", "Repay")

    @router.post("/positions/{position_id}/liquidate", summary="Liquidate position")
    def liquidate(position_id: int, payload: LiquidateRequest) -> Dict[str, Any]:
        try:
            position = service.liquidate(
                position_id=position_id,
                liquidator_address=payload.liquidator_address,
                transaction_hash=payload.transaction_hash,
            )
            return success(position.to_api(), message="Position liquidated successfully")
        except Exception as exc:
            raise _fail(exc, "Failed to liquidate position", "Liquidate")

    @router.get("/stats", summary="Lending statistics")
    def stats() -> Dict[str, Any]:
        try:
            return success(service.get_stats())
        except Exception as exc:
            raise _fail(exc, "Failed to fetch lending stats", "Lending stats")

    @router.get("/positions/{address}", summary="User lending positions")
    def user_positions(
        address: str,
        position_status: Optional[str] = Query(default=None, alias="status"),
        limit: int = Query(default=50),
        offset: int = Query(default=0),
    ) -> Dict[str, Any]:
        """Return one wallet's positions in the normalized reporting shape."""
        try:
            rows = service.get_user_positions(address, status=position_status, limit=limit, offset=offset)
            return success(rows, total=len(rows))
        except Exception as exc:
            raise _fail(exc, "Failed to fetch user positions", "User positions")

    return router
