"""Canonical lending constants and health math, shared by services and tests.

Collateral is valued at face quantity of pledged credits; there is no price
oracle. For an active position:

    HF = collateral_amount * liquidation_threshold / borrowed_amount

HF is unbounded (``math.inf``) when nothing is borrowed, and a position is
liquidatable only while HF < 1.0.
"""

from __future__ import annotations

import math

# ---------------------------------------------------------------------------
# Lending risk parameters
# ---------------------------------------------------------------------------
DEFAULT_INTEREST_RATE: float = 0.08
DEFAULT_LIQUIDATION_THRESHOLD: float = 0.75
LIQUIDATION_HEALTH_FACTOR: float = 1.0

# Remaining debt at or below this amount counts as fully repaid.
FULL_REPAYMENT_DUST: float = 0.01

INFINITE_HEALTH_FACTOR: float = math.inf


# ---------------------------------------------------------------------------
# Health-factor computation
# ---------------------------------------------------------------------------

def compute_health_factor(collateral: float, threshold: float, borrowed: float) -> float:
    """Return ``collateral * threshold / borrowed``.

    Returns ``math.inf`` when *borrowed* <= 0.

    Raises:
        ValueError: If *collateral* is negative or *threshold* is outside (0, 1].
    """
    if collateral < 0:
        raise ValueError("collateral must be >= 0")
    if not 0 < threshold <= 1:
        raise ValueError("liquidation threshold must be within (0, 1]")
    if borrowed <= 0:
        return INFINITE_HEALTH_FACTOR
    return (collateral * threshold) / borrowed


def is_liquidatable(health_factor: float) -> bool:
    """Return *True* when a position can be liquidated (HF < 1.0)."""
    return health_factor < LIQUIDATION_HEALTH_FACTOR


def is_full_repayment(remaining_borrowed: float) -> bool:
    """Return *True* when the debt left after a repayment is negligible."""
    return remaining_borrowed <= FULL_REPAYMENT_DUST


def max_borrow(collateral: float, threshold: float = DEFAULT_LIQUIDATION_THRESHOLD) -> float:
    """Largest loan that keeps HF >= 1.0 for the given collateral."""
    if collateral < 0:
        raise ValueError("collateral must be >= 0")
    if not 0 < threshold <= 1:
        raise ValueError("liquidation threshold must be within (0, 1]")
    return collateral * threshold
