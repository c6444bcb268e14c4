"""Reusable enums for lending and activity domain models."""

from enum import Enum


class StringEnum(str, Enum):
    """Base enum class with string behavior for JSON serialization."""


class PositionStatus(StringEnum):
    """Lending position lifecycle states."""

    ACTIVE = "active"
    CLOSED = "closed"
    LIQUIDATED = "liquidated"


class ActivityType(StringEnum):
    """Activity log action types written by the lending lifecycle."""

    LENDING_POSITION_CREATED = "lending_position_created"
    COLLATERAL_ADDED = "collateral_added"
    LOAN_PARTIALLY_REPAID = "loan_partially_repaid"
    LOAN_FULLY_REPAID = "loan_fully_repaid"
    POSITION_LIQUIDATED = "position_liquidated"
    CREDITS_REGISTERED = "credits_registered"
