"""Append-only activity record consumed by reporting endpoints."""

from typing import Any, Dict, Optional

from pydantic import Field, field_validator

from .base import BaseDocumentModel


class ActivityRecordModel(BaseDocumentModel):
    """Represents one domain event such as a position opening or liquidation."""

    user_address: Optional[str] = Field(default=None)
    action_type: str = Field(..., min_length=3)
    credit_id: Optional[int] = Field(default=None, ge=1)
    project_id: Optional[int] = Field(default=None, ge=1)
    transaction_hash: Optional[str] = Field(default=None)
    chain_id: Optional[int] = Field(default=None, gt=0)
    details: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("user_address")
    @classmethod
    def _lowercase_address(cls, value: Optional[str]) -> Optional[str]:
        """Store wallet identities in lower case."""
        return value.lower() if value else value
