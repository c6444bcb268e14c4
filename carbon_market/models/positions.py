"""Lending position domain model backed by tokenized carbon credits."""

import logging
import math
from typing import Any, Dict

from pydantic import Field, field_validator, model_validator

from .base import Amount, BaseDocumentModel, finite_or_none
from .enums import PositionStatus


logger = logging.getLogger(__name__)


class LendingPositionModel(BaseDocumentModel):
    """Represents one collateralized loan tied to a user and a credit batch."""

    user_address: str = Field(..., min_length=3)
    credit_id: int = Field(..., ge=1)

    collateral_amount: Amount = Field(..., ge=0.0)
    borrowed_amount: Amount = Field(..., ge=0.0)
    interest_rate: float = Field(default=0.08, ge=0.0)
    liquidation_threshold: float = Field(default=0.75, gt=0.0, le=1.0)
    health_factor: float = Field(..., ge=0.0)

    status: PositionStatus = Field(default=PositionStatus.ACTIVE)
    position_hash: str = Field(..., min_length=3)

    @field_validator("user_address")
    @classmethod
    def _lowercase_address(cls, value: str) -> str:
        """Store wallet identities in lower case."""
        return value.lower()

    @model_validator(mode="after")
    def _validate_terminal_states(self) -> "LendingPositionModel":
        """Closed positions owe nothing; liquidated positions have zero health."""
        try:
            if math.isinf(self.health_factor) and self.borrowed_amount != 0:
                raise ValueError("an unbounded health factor requires borrowed_amount == 0")
            if self.status == PositionStatus.CLOSED and self.borrowed_amount != 0:
                raise ValueError("closed positions must have borrowed_amount == 0")
            if self.status == PositionStatus.LIQUIDATED and self.health_factor != 0:
                raise ValueError("liquidated positions must have health_factor == 0")
            return self
        except Exception:
            logger.exception(
                "Lending position validation failed id=%s position_hash=%s",
                self.id,
                self.position_hash,
            )
            raise

    @property
    def is_active(self) -> bool:
        """Return True when the position still accepts lifecycle operations."""
        return self.status == PositionStatus.ACTIVE

    def to_api(self) -> Dict[str, Any]:
        """Serialize for HTTP responses; an unbounded health factor renders as null."""
        payload = self.model_dump()
        payload["health_factor"] = finite_or_none(self.health_factor)
        return payload
