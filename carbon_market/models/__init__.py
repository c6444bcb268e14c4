"""Public model package exports for the carbon market backend."""

from .activity import ActivityRecordModel
from .base import Amount, BaseDocumentModel, finite_or_none, utc_now
from .credits import CarbonCreditModel
from .enums import ActivityType, PositionStatus
from .exceptions import (
    InsufficientCollateralError,
    InvalidStateError,
    ModelError,
    ModelNotFoundError,
    ModelValidationError,
    NotEligibleError,
    PersistenceError,
    VersionConflictError,
)
from .positions import LendingPositionModel
from .repositories import ActivityRepository, CarbonCreditRepository, LendingPositionRepository

__all__ = [
    "Amount",
    "BaseDocumentModel",
    "finite_or_none",
    "utc_now",
    "LendingPositionModel",
    "CarbonCreditModel",
    "ActivityRecordModel",
    "PositionStatus",
    "ActivityType",
    "ModelError",
    "ModelValidationError",
    "ModelNotFoundError",
    "VersionConflictError",
    "InvalidStateError",
    "InsufficientCollateralError",
    "NotEligibleError",
    "PersistenceError",
    "LendingPositionRepository",
    "CarbonCreditRepository",
    "ActivityRepository",
]
