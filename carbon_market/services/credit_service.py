"""Carbon credit registry: register minted batches and look them up."""

import logging
from typing import Optional

from carbon_market.models.credits import CarbonCreditModel
from carbon_market.models.enums import ActivityType
from carbon_market.models.exceptions import ModelValidationError
from carbon_market.models.repositories import CarbonCreditRepository

from .activity_service import ActivityService


logger = logging.getLogger(__name__)


class CreditService:
    """Read-mostly registry of tokenized carbon credit batches."""

    def __init__(self, repository: CarbonCreditRepository, activity_service: Optional[ActivityService] = None) -> None:
        self._repository = repository
        self._activity_service = activity_service

    def register_credit(
        self,
        project_id: Optional[int],
        token_id: Optional[int],
        amount: Optional[float],
        chain_id: Optional[int],
        contract_address: Optional[str],
        project_name: Optional[str] = None,
        transaction_hash: Optional[str] = None,
        block_number: Optional[int] = None,
        owner_address: Optional[str] = None,
    ) -> CarbonCreditModel:
        """Register a minted credit batch.

        Raises:
            ModelValidationError: If a required field is missing or out of range.
        """
        if project_id is None or token_id is None or amount is None or chain_id is None or not contract_address:
            raise ModelValidationError("Missing required fields")
        if amount <= 0:
            raise ModelValidationError("Credit amount must be positive")
        if token_id < 0:
            raise ModelValidationError("Token id must be >= 0")
        if project_id <= 0 or chain_id <= 0:
            raise ModelValidationError("Project id and chain id must be positive")
        try:
            credit = self._repository.create(
                CarbonCreditModel(
                    project_id=project_id,
                    project_name=project_name,
                    token_id=token_id,
                    amount=amount,
                    chain_id=chain_id,
                    contract_address=contract_address,
                    transaction_hash=transaction_hash,
                    block_number=block_number,
                )
            )
            if self._activity_service is not None and owner_address:
                self._activity_service.record(
                    user_address=owner_address,
                    action_type=ActivityType.CREDITS_REGISTERED,
                    credit_id=credit.id,
                    project_id=credit.project_id,
                    transaction_hash=transaction_hash,
                    chain_id=chain_id,
                    details={"amount": credit.amount, "token_id": credit.token_id},
                )
            logger.info("Carbon credit registered id=%s project_id=%s token_id=%s", credit.id, project_id, token_id)
            return credit
        except Exception:
            logger.exception("Failed registering carbon credit project_id=%s token_id=%s", project_id, token_id)
            raise

    def get_credit(self, credit_id: int) -> CarbonCreditModel:
        """Return one credit batch.

        Raises:
            ModelNotFoundError: If the credit does not exist.
        """
        return self._repository.get_by_id(credit_id)
