"""Common reusable lending math exports."""

from .protocol_constants import (
    DEFAULT_INTEREST_RATE,
    DEFAULT_LIQUIDATION_THRESHOLD,
    FULL_REPAYMENT_DUST,
    INFINITE_HEALTH_FACTOR,
    compute_health_factor,
    is_full_repayment,
    is_liquidatable,
    max_borrow,
)

__all__ = [
    "DEFAULT_INTEREST_RATE",
    "DEFAULT_LIQUIDATION_THRESHOLD",
    "FULL_REPAYMENT_DUST",
    "INFINITE_HEALTH_FACTOR",
    "compute_health_factor",
    "is_full_repayment",
    "is_liquidatable",
    "max_borrow",
]
