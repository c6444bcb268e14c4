"""Carbon credit batch model referenced by lending positions."""

from typing import Optional

from pydantic import Field

from .base import Amount, BaseDocumentModel


class CarbonCreditModel(BaseDocumentModel):
    """A minted ERC-1155 token batch belonging to a verified project."""

    project_id: int = Field(..., ge=1)
    project_name: Optional[str] = Field(default=None)
    token_id: int = Field(..., ge=0)
    amount: Amount = Field(..., ge=0.0)

    chain_id: int = Field(..., gt=0)
    contract_address: str = Field(..., min_length=3)
    transaction_hash: Optional[str] = Field(default=None)
    block_number: Optional[int] = Field(default=None, ge=0)
