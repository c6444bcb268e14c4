"""Service layer exports."""

from .activity_service import ActivityService
from .collateral_verifier import CollateralVerifier, Web3CollateralVerifier
from .credit_service import CreditService
from .lending_service import LendingService

__all__ = [
    "ActivityService",
    "CollateralVerifier",
    "Web3CollateralVerifier",
    "CreditService",
    "LendingService",
]
