"""Append-only activity log service."""

import logging
from typing import Any, Dict, List, Optional

from carbon_market.models.activity import ActivityRecordModel
from carbon_market.models.exceptions import ModelValidationError
from carbon_market.models.repositories import ActivityRepository


logger = logging.getLogger(__name__)


class ActivityService:
    """Records domain events and serves per-user activity feeds."""

    def __init__(self, repository: ActivityRepository) -> None:
        self._repository = repository

    def record(
        self,
        user_address: Optional[str],
        action_type: str,
        credit_id: Optional[int] = None,
        details: Optional[Dict[str, Any]] = None,
        project_id: Optional[int] = None,
        transaction_hash: Optional[str] = None,
        chain_id: Optional[int] = None,
    ) -> ActivityRecordModel:
        """Append one activity record."""
        try:
            record = ActivityRecordModel(
                user_address=user_address,
                action_type=getattr(action_type, "value", action_type),
                credit_id=credit_id,
                project_id=project_id,
                transaction_hash=transaction_hash,
                chain_id=chain_id,
                details=dict(details or {}),
            )
            stored = self._repository.create(record)
            logger.info("Activity recorded action_type=%s user=%s id=%s", stored.action_type, stored.user_address, stored.id)
            return stored
        except Exception:
            logger.exception("Failed recording activity action_type=%s user=%s", action_type, user_address)
            raise

    def list_for_user(self, user_address: str, limit: int = 50, offset: int = 0) -> List[ActivityRecordModel]:
        """Return a user's activity newest first."""
        address = str(user_address or "").strip()
        if not address:
            raise ModelValidationError("Address parameter required")
        if limit <= 0 or offset < 0:
            raise ModelValidationError("limit must be > 0 and offset must be >= 0")
        try:
            return self._repository.list_by_user(address.lower(), limit=limit, offset=offset)
        except Exception:
            logger.exception("Failed listing activity user=%s", address)
            raise
