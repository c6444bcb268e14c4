"""Unit tests for lending health math."""

from __future__ import annotations

import math
import unittest

from carbon_market.common.protocol_constants import (
    DEFAULT_LIQUIDATION_THRESHOLD,
    FULL_REPAYMENT_DUST,
    compute_health_factor,
    is_full_repayment,
    is_liquidatable,
    max_borrow,
)


class TestConstants(unittest.TestCase):
    """Verify lending defaults."""

    def test_default_threshold(self) -> None:
        self.assertEqual(DEFAULT_LIQUIDATION_THRESHOLD, 0.75)

    def test_full_repayment_dust(self) -> None:
        self.assertEqual(FULL_REPAYMENT_DUST, 0.01)


class TestHealthFactor(unittest.TestCase):
    """Verify HF = collateral * threshold / borrowed."""

    def test_undercollateralized_request(self) -> None:
        """10000 credits at 0.75 against 8000 borrowed -> 0.9375."""
        hf = compute_health_factor(10000, 0.75, 8000)
        self.assertAlmostEqual(hf, 0.9375)
        self.assertTrue(is_liquidatable(hf))

    def test_accepted_request(self) -> None:
        hf = compute_health_factor(10000, 0.75, 7000)
        self.assertAlmostEqual(hf, 1.0714285714, places=8)
        self.assertFalse(is_liquidatable(hf))

    def test_zero_debt_is_infinite(self) -> None:
        hf = compute_health_factor(500, 0.75, 0)
        self.assertTrue(math.isinf(hf))
        self.assertFalse(is_liquidatable(hf))

    def test_boundary_is_not_liquidatable(self) -> None:
        self.assertFalse(is_liquidatable(compute_health_factor(10000, 0.75, 7500)))

    def test_monotonic_in_each_input(self) -> None:
        """HF rises with collateral and threshold and falls as debt grows."""
        collaterals = [0, 100, 2500, 10000, 1e6]
        thresholds = [0.1, 0.5, 0.75, 0.9, 1.0]
        borrows = [1, 50, 7000, 8000, 1e6]
        for threshold in thresholds:
            for borrowed in borrows:
                with self.subTest(threshold=threshold, borrowed=borrowed):
                    values = [compute_health_factor(c, threshold, borrowed) for c in collaterals]
                    self.assertEqual(values, sorted(values))
        for collateral in collaterals:
            for borrowed in borrows:
                with self.subTest(collateral=collateral, borrowed=borrowed):
                    values = [compute_health_factor(collateral, t, borrowed) for t in thresholds]
                    self.assertEqual(values, sorted(values))
        for collateral in collaterals[1:]:
            for threshold in thresholds:
                with self.subTest(collateral=collateral, threshold=threshold):
                    values = [compute_health_factor(collateral, threshold, b) for b in borrows]
                    self.assertEqual(values, sorted(values, reverse=True))
                    self.assertGreater(values[0], values[-1])

    def test_invalid_inputs_raise(self) -> None:
        with self.assertRaises(ValueError):
            compute_health_factor(-1, 0.75, 100)
        with self.assertRaises(ValueError):
            compute_health_factor(100, 0.0, 100)
        with self.assertRaises(ValueError):
            compute_health_factor(100, 1.5, 100)


class TestRepaymentAndBorrowLimits(unittest.TestCase):
    """Verify dust handling and borrow capacity."""

    def test_full_repayment_threshold(self) -> None:
        self.assertTrue(is_full_repayment(0.0))
        self.assertTrue(is_full_repayment(0.005))
        self.assertTrue(is_full_repayment(0.01))
        self.assertFalse(is_full_repayment(0.02))

    def test_max_borrow_keeps_health_at_one(self) -> None:
        limit = max_borrow(10000, 0.75)
        self.assertAlmostEqual(limit, 7500)
        self.assertAlmostEqual(compute_health_factor(10000, 0.75, limit), 1.0)


if __name__ == "__main__":
    unittest.main()
