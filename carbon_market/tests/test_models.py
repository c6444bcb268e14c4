"""Unit tests for datastore-ready domain models."""

import math
import unittest

from pydantic import ValidationError

from carbon_market.models.activity import ActivityRecordModel
from carbon_market.models.credits import CarbonCreditModel
from carbon_market.models.enums import PositionStatus
from carbon_market.models.exceptions import ModelValidationError
from carbon_market.models.positions import LendingPositionModel


def _position(**overrides) -> LendingPositionModel:
    payload = {
        "user_address": "0xABCDEF0000000000000000000000000000000001",
        "credit_id": 1,
        "collateral_amount": 10000,
        "borrowed_amount": 7000,
        "health_factor": 10000 * 0.75 / 7000,
        "position_hash": "pos_1700000000000_abc123xyz",
    }
    payload.update(overrides)
    return LendingPositionModel(**payload)


class LendingPositionModelTests(unittest.TestCase):
    """Test position happy paths and state rules."""

    def test_defaults_and_lowercase_address(self) -> None:
        position = _position()
        self.assertEqual(position.user_address, "0xabcdef0000000000000000000000000000000001")
        self.assertEqual(position.status, PositionStatus.ACTIVE)
        self.assertEqual(position.interest_rate, 0.08)
        self.assertEqual(position.liquidation_threshold, 0.75)
        self.assertEqual(position.version, 1)
        self.assertTrue(position.is_active)

    def test_closed_position_must_owe_nothing(self) -> None:
        with self.assertRaises(ValidationError):
            _position(status=PositionStatus.CLOSED)
        closed = _position(status=PositionStatus.CLOSED, borrowed_amount=0, health_factor=math.inf)
        self.assertFalse(closed.is_active)

    def test_liquidated_position_has_zero_health(self) -> None:
        with self.assertRaises(ValidationError):
            _position(status=PositionStatus.LIQUIDATED, health_factor=0.9)
        self.assertEqual(_position(status=PositionStatus.LIQUIDATED, health_factor=0).health_factor, 0)

    def test_unbounded_health_requires_zero_debt(self) -> None:
        with self.assertRaises(ValidationError):
            _position(health_factor=math.inf)
        with self.assertRaises(ValidationError):
            _position(collateral_amount=float("nan"))

    def test_threshold_range(self) -> None:
        with self.assertRaises(ValidationError):
            _position(liquidation_threshold=1.5)
        with self.assertRaises(ValidationError):
            _position(liquidation_threshold=0)

    def test_infinite_health_renders_as_null(self) -> None:
        closed = _position(status=PositionStatus.CLOSED, borrowed_amount=0, health_factor=math.inf)
        self.assertIsNone(closed.to_api()["health_factor"])
        self.assertAlmostEqual(_position().to_api()["health_factor"], 1.0714285714, places=8)

    def test_document_round_trip_assigns_id(self) -> None:
        document = _position().model_copy(update={"id": 4}).to_document()
        restored = LendingPositionModel.from_document(document)
        self.assertEqual(restored.id, 4)
        self.assertEqual(LendingPositionModel.from_document({**document, "id": None}, doc_id="9").id, 9)

    def test_document_id_requires_assigned_id(self) -> None:
        with self.assertRaises(ModelValidationError):
            _ = _position().document_id

    def test_invalid_payload_raises_model_error(self) -> None:
        with self.assertRaises(ModelValidationError):
            LendingPositionModel.from_document({"user_address": "0xabc"}, doc_id="1")


class SupportingModelTests(unittest.TestCase):
    """Test credit and activity models."""

    def test_credit_requires_non_negative_token(self) -> None:
        with self.assertRaises(ValidationError):
            CarbonCreditModel(project_id=1, token_id=-1, amount=10, chain_id=1, contract_address="0xabc")

    def test_activity_lowercases_address(self) -> None:
        record = ActivityRecordModel(user_address="0xABC", action_type="collateral_added")
        self.assertEqual(record.user_address, "0xabc")
        self.assertEqual(record.details, {})


if __name__ == "__main__":
    unittest.main()
