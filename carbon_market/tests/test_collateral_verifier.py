"""Unit tests for on-chain collateral verification."""

import unittest
from unittest.mock import MagicMock

from carbon_market.core.web3_client_manager import Web3ClientManager
from carbon_market.models.credits import CarbonCreditModel
from carbon_market.services.collateral_verifier import Web3CollateralVerifier


CONTRACT = "0x1111111111111111111111111111111111111111"
OWNER = "0x2222222222222222222222222222222222222222"


def _credit() -> CarbonCreditModel:
    return CarbonCreditModel(
        id=3,
        project_id=1,
        token_id=7,
        amount=1000,
        chain_id=11155111,
        contract_address=CONTRACT,
    )


class Web3CollateralVerifierTests(unittest.TestCase):
    """The verifier reports a balance or None, never an exception."""

    def test_balance_is_read_for_credit_token(self) -> None:
        manager = MagicMock()
        manager.read_erc1155_balance.return_value = 250
        self.assertEqual(Web3CollateralVerifier(manager).balance_of(_credit(), OWNER), 250.0)
        manager.read_erc1155_balance.assert_called_once_with(
            chain_id=11155111,
            contract_address=CONTRACT,
            owner=OWNER,
            token_id=7,
        )

    def test_unknown_balance_is_none(self) -> None:
        manager = MagicMock()
        manager.read_erc1155_balance.return_value = None
        self.assertIsNone(Web3CollateralVerifier(manager).balance_of(_credit(), OWNER))

    def test_rpc_failure_is_none(self) -> None:
        manager = MagicMock()
        manager.read_erc1155_balance.side_effect = ConnectionError("rpc down")
        self.assertIsNone(Web3CollateralVerifier(manager).balance_of(_credit(), OWNER))


class Web3ClientManagerTests(unittest.TestCase):
    """Balance reads degrade to None without touching the network."""

    def test_unconfigured_chain_returns_none(self) -> None:
        manager = Web3ClientManager(rpc_urls={})
        self.assertEqual(manager.chain_ids, [])
        self.assertIsNone(manager.read_erc1155_balance(11155111, CONTRACT, OWNER, 7))

    def test_malformed_owner_returns_none(self) -> None:
        manager = Web3ClientManager(rpc_urls={11155111: "http://127.0.0.1:1"})
        self.assertEqual(manager.chain_ids, [11155111])
        self.assertIsNone(manager.read_erc1155_balance(11155111, CONTRACT, "not-an-address", 7))


if __name__ == "__main__":
    unittest.main()
