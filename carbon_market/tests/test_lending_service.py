"""Unit tests for the lending position lifecycle service."""

import gc
import math
import re
from typing import Optional
import unittest

from carbon_market.models.credits import CarbonCreditModel
from carbon_market.models.enums import ActivityType, PositionStatus
from carbon_market.models.exceptions import (
    InsufficientCollateralError,
    InvalidStateError,
    ModelNotFoundError,
    ModelValidationError,
    NotEligibleError,
    VersionConflictError,
)
from carbon_market.models.positions import LendingPositionModel
from carbon_market.repositories import (
    DocumentActivityRepository,
    DocumentCarbonCreditRepository,
    DocumentLendingPositionRepository,
    LocalDocumentStore,
)
from carbon_market.services.activity_service import ActivityService
from carbon_market.services.collateral_verifier import CollateralVerifier
from carbon_market.services.credit_service import CreditService
from carbon_market.services.lending_service import LendingService


USER = "0xAbC0000000000000000000000000000000000001"
CONTRACT = "0x1111111111111111111111111111111111111111"


class FakeVerifier(CollateralVerifier):
    """Return a fixed on-chain balance."""

    def __init__(self, balance: Optional[float]) -> None:
        self.balance = balance
        self.calls = []

    def balance_of(self, credit: CarbonCreditModel, owner: str) -> Optional[float]:
        self.calls.append((credit.id, owner))
        return self.balance


class RacingPositionRepository(DocumentLendingPositionRepository):
    """Let another writer update a position right after each read while `race` is set."""

    race = False

    def get_by_id(self, model_id: int) -> LendingPositionModel:
        position = super().get_by_id(model_id)
        if self.race:
            self.update(position.model_copy(update={"interest_rate": position.interest_rate + 0.01}))
        return position


class LendingServiceTests(unittest.TestCase):
    """Validate open, add collateral, repay, liquidate, and reporting flows."""

    def setUp(self) -> None:
        """Build services over an in-memory local store."""
        self._build(verifier=None)

    def _build(self, verifier: Optional[CollateralVerifier], positions_class=DocumentLendingPositionRepository) -> None:
        store = LocalDocumentStore()
        self.positions = positions_class(store)
        credits = DocumentCarbonCreditRepository(store)
        self.activity = ActivityService(DocumentActivityRepository(store))
        self.credit = CreditService(credits, activity_service=self.activity).register_credit(
            project_id=1,
            project_name="Amazon Reforestation",
            token_id=7,
            amount=50000,
            chain_id=11155111,
            contract_address=CONTRACT,
        )
        self.service = LendingService(
            position_repository=self.positions,
            credit_repository=credits,
            activity_service=self.activity,
            collateral_verifier=verifier,
        )

    def _open(self, collateral: float = 10000, borrowed: float = 7000, **kwargs) -> LendingPositionModel:
        return self.service.open_position(
            user_address=USER,
            credit_id=self.credit.id,
            collateral_amount=collateral,
            borrowed_amount=borrowed,
            **kwargs
        )

    def _force_health(self, position: LendingPositionModel, health_factor: float) -> LendingPositionModel:
        """Simulate a stored health factor that has drifted below 1.0."""
        return self.positions.update(
            LendingPositionModel(**{**position.model_dump(), "health_factor": health_factor})
        )

    def _actions(self):
        return [record.action_type for record in self.activity.list_for_user(USER)]

    def test_open_rejects_undercollateralized_loan(self) -> None:
        with self.assertRaises(InsufficientCollateralError) as ctx:
            self._open(borrowed=8000)
        self.assertIn("Insufficient collateral", str(ctx.exception))
        self.assertEqual(self.positions.count(), 0)

    def test_open_creates_active_position(self) -> None:
        position = self._open()
        self.assertEqual(position.id, 1)
        self.assertEqual(position.status, PositionStatus.ACTIVE)
        self.assertEqual(position.user_address, USER.lower())
        self.assertAlmostEqual(position.health_factor, 1.0714285714, places=8)
        self.assertEqual(position.interest_rate, 0.08)
        self.assertRegex(position.position_hash, re.compile(r"^pos_\d+_[0-9a-z]{9}$"))
        self.assertEqual(self._actions(), [ActivityType.LENDING_POSITION_CREATED.value])

    def test_open_keeps_caller_position_hash(self) -> None:
        self.assertEqual(self._open(position_hash="pos_custom_1").position_hash, "pos_custom_1")

    def test_open_validation_errors(self) -> None:
        with self.assertRaises(ModelValidationError):
            self.service.open_position(USER, self.credit.id, None, 100)
        with self.assertRaises(ModelValidationError):
            self.service.open_position("", self.credit.id, 100, 50)
        with self.assertRaises(ModelValidationError):
            self._open(borrowed=0)
        with self.assertRaises(ModelValidationError):
            self._open(liquidation_threshold=1.5)
        with self.assertRaises(ModelValidationError):
            self._open(interest_rate=-0.1)

    def test_open_rejects_non_positive_credit_id(self) -> None:
        for credit_id in (0, -3):
            with self.subTest(credit_id=credit_id):
                with self.assertRaises(ModelValidationError):
                    self.service.open_position(USER, credit_id, 10000, 7000)
        self.assertEqual(self.positions.count(), 0)

    def test_non_finite_amounts_are_rejected(self) -> None:
        for overrides in (
            {"collateral": math.inf},
            {"collateral": float("nan")},
            {"borrowed": math.inf},
            {"interest_rate": math.inf},
        ):
            with self.subTest(**{key: str(value) for key, value in overrides.items()}):
                with self.assertRaises(ModelValidationError):
                    self._open(**overrides)
        self.assertEqual(self.positions.count(), 0)

        position = self._open()
        with self.assertRaises(ModelValidationError):
            self.service.add_collateral(position.id, math.inf)
        with self.assertRaises(ModelValidationError):
            self.service.add_collateral(position.id, float("nan"))
        with self.assertRaises(ModelValidationError):
            self.service.repay(position.id, float("nan"))
        stored = self.positions.get_by_id(position.id)
        self.assertEqual(stored.collateral_amount, 10000)
        self.assertEqual(stored.borrowed_amount, 7000)
        self.assertEqual(self.service.get_stats()["total_value_locked"], 10000)

    def test_duplicate_position_hash_is_rejected(self) -> None:
        self._open(position_hash="pos_dup")
        with self.assertRaises(ModelValidationError) as ctx:
            self._open(position_hash="pos_dup")
        self.assertIn("pos_dup", str(ctx.exception))
        self.assertEqual([item.position_hash for item in self.service.list_positions()], ["pos_dup"])

    def test_invalid_update_reports_short_message(self) -> None:
        position = self._open()
        with self.assertRaises(ModelValidationError) as ctx:
            self.service._save_changes(position, collateral_amount=-1.0)
        self.assertIn("collateral_amount", str(ctx.exception))
        self.assertNotIn("\n", str(ctx.exception))

    def test_stale_write_raises_version_conflict(self) -> None:
        self._build(verifier=None, positions_class=RacingPositionRepository)
        position = self._open()
        self.positions.race = True
        with self.assertRaises(VersionConflictError):
            self.service.repay(position.id, 100)
        with self.assertRaises(VersionConflictError):
            self.service.add_collateral(position.id, 100)
        self.positions.race = False

        stored = self.positions.get_by_id(position.id)
        self.assertEqual(stored.borrowed_amount, 7000)
        self.assertEqual(stored.collateral_amount, 10000)
        self.assertEqual(stored.version, 3)
        self.assertEqual(self._actions(), [ActivityType.LENDING_POSITION_CREATED.value])

    def test_position_locks_are_released(self) -> None:
        position = self._open()
        self.service.add_collateral(position.id, 100)
        self.service.repay(position.id, 100)
        gc.collect()
        self.assertEqual(len(self.service._locks), 0)

    def test_open_unknown_credit(self) -> None:
        with self.assertRaises(ModelNotFoundError) as ctx:
            self.service.open_position(USER, 99, 10000, 7000)
        self.assertEqual(str(ctx.exception), "Carbon credit not found")

    def test_unknown_balance_does_not_block_open(self) -> None:
        verifier = FakeVerifier(balance=None)
        self._build(verifier=verifier)
        self.assertEqual(self._open().status, PositionStatus.ACTIVE)
        self.assertEqual(verifier.calls, [(self.credit.id, USER.lower())])

    def test_short_on_chain_balance_blocks_open(self) -> None:
        self._build(verifier=FakeVerifier(balance=5000))
        with self.assertRaises(InsufficientCollateralError) as ctx:
            self._open()
        self.assertEqual(str(ctx.exception), "Insufficient on-chain balance for collateral")

    def test_sufficient_on_chain_balance_allows_open(self) -> None:
        self._build(verifier=FakeVerifier(balance=10000))
        self.assertEqual(self._open().status, PositionStatus.ACTIVE)

    def test_add_collateral_raises_health(self) -> None:
        position = self._open()
        updated = self.service.add_collateral(position.id, 2000, transaction_hash="0xfeed")
        self.assertEqual(updated.collateral_amount, 12000)
        self.assertAlmostEqual(updated.health_factor, 12000 * 0.75 / 7000)
        self.assertGreater(updated.health_factor, position.health_factor)
        self.assertEqual(updated.version, position.version + 1)
        record = self.activity.list_for_user(USER)[0]
        self.assertEqual(record.action_type, ActivityType.COLLATERAL_ADDED.value)
        self.assertEqual(record.transaction_hash, "0xfeed")
        self.assertAlmostEqual(record.details["previous_health_factor"], position.health_factor)

    def test_add_collateral_errors(self) -> None:
        with self.assertRaises(ModelValidationError):
            self.service.add_collateral(1, 0)
        with self.assertRaises(ModelNotFoundError) as ctx:
            self.service.add_collateral(42, 10)
        self.assertEqual(str(ctx.exception), "Lending position not found")

    def test_full_repayment_closes_position(self) -> None:
        position = self._open()
        closed = self.service.repay(position.id, 7000)
        self.assertEqual(closed.status, PositionStatus.CLOSED)
        self.assertEqual(closed.borrowed_amount, 0)
        self.assertTrue(math.isinf(closed.health_factor))
        self.assertIsNone(closed.to_api()["health_factor"])
        self.assertEqual(self._actions()[0], ActivityType.LOAN_FULLY_REPAID.value)

    def test_partial_repayment_keeps_position_active(self) -> None:
        position = self._open()
        updated = self.service.repay(position.id, 6990)
        self.assertEqual(updated.status, PositionStatus.ACTIVE)
        self.assertAlmostEqual(updated.borrowed_amount, 10)
        self.assertAlmostEqual(updated.health_factor, 750)
        record = self.activity.list_for_user(USER)[0]
        self.assertEqual(record.action_type, ActivityType.LOAN_PARTIALLY_REPAID.value)
        self.assertFalse(record.details["fully_repaid"])

    def test_dust_remainder_counts_as_full_repayment(self) -> None:
        position = self._open()
        closed = self.service.repay(position.id, 6999.995)
        self.assertEqual(closed.status, PositionStatus.CLOSED)
        self.assertEqual(closed.borrowed_amount, 0)

    def test_repay_errors(self) -> None:
        position = self._open()
        with self.assertRaises(ModelValidationError):
            self.service.repay(position.id, -5)
        with self.assertRaises(ModelValidationError) as ctx:
            self.service.repay(position.id, 7000.5)
        self.assertEqual(str(ctx.exception), "Repayment amount exceeds borrowed amount")
        self.service.repay(position.id, 7000)
        with self.assertRaises(InvalidStateError):
            self.service.repay(position.id, 1)
        with self.assertRaises(InvalidStateError):
            self.service.add_collateral(position.id, 1)

    def test_liquidation_requires_unhealthy_position(self) -> None:
        position = self._open()
        with self.assertRaises(NotEligibleError):
            self.service.liquidate(position.id, "0xLiquidator")
        with self.assertRaises(ModelValidationError):
            self.service.liquidate(position.id, "")

    def test_liquidation_uses_stored_health_factor(self) -> None:
        position = self._force_health(self._open(), 0.9)
        liquidated = self.service.liquidate(position.id, "0xLIQUIDATOR", transaction_hash="0xbeef")
        self.assertEqual(liquidated.status, PositionStatus.LIQUIDATED)
        self.assertEqual(liquidated.health_factor, 0)
        record = self.activity.list_for_user(USER)[0]
        self.assertEqual(record.action_type, ActivityType.POSITION_LIQUIDATED.value)
        self.assertEqual(record.details["liquidator_address"], "0xliquidator")
        self.assertAlmostEqual(record.details["health_factor_at_liquidation"], 0.9)

        with self.assertRaises(InvalidStateError):
            self.service.liquidate(position.id, "0xLIQUIDATOR")
        with self.assertRaises(InvalidStateError):
            self.service.add_collateral(position.id, 100)

    def test_list_positions_newest_first(self) -> None:
        self._open()
        self._open(collateral=3000, borrowed=2000)
        self.assertEqual([item.id for item in self.service.list_positions()], [2, 1])
        self.assertEqual([item.id for item in self.service.list_positions(limit=1, offset=1)], [1])
        self.assertEqual(len(self.service.list_positions(user_address=USER.upper().replace("0X", "0x"))), 2)
        with self.assertRaises(ModelValidationError):
            self.service.list_positions(status="pending")

    def test_user_positions_are_normalized(self) -> None:
        self._open()
        rows = self.service.get_user_positions(USER)
        self.assertEqual(len(rows), 1)
        self.assertEqual(rows[0]["project_name"], "Amazon Reforestation")
        self.assertIsInstance(rows[0]["collateral_amount"], float)
        with self.assertRaises(ModelValidationError):
            self.service.get_user_positions("  ")

    def test_stats(self) -> None:
        self._open()
        second = self._open(collateral=3000, borrowed=2000)
        self.service.repay(second.id, 2000)
        stats = self.service.get_stats()
        self.assertEqual(stats["total_positions"], 2)
        self.assertEqual(stats["active_positions"], 1)
        self.assertEqual(stats["closed_positions"], 1)
        self.assertEqual(stats["liquidated_positions"], 0)
        self.assertEqual(stats["total_value_locked"], 10000)
        self.assertEqual(stats["total_borrowed"], 7000)
        self.assertEqual(stats["average_health_factor"], 1.071)
        self.assertEqual(len(stats["recent_positions"]), 2)
        self.assertIsNone(stats["recent_positions"][0]["health_factor"])

    def test_stream_snapshot_is_json_safe(self) -> None:
        position = self._open()
        self.service.repay(position.id, 7000)
        snapshot = self.service.stream_snapshot()
        self.assertEqual(len(snapshot), 1)
        self.assertIsNone(snapshot[0]["health_factor"])


if __name__ == "__main__":
    unittest.main()
