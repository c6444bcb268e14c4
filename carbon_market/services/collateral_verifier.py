"""On-chain collateral balance lookup used before opening a lending position."""

from abc import ABC, abstractmethod
import logging
from typing import Optional

from carbon_market.core.web3_client_manager import Web3ClientManager
from carbon_market.models.credits import CarbonCreditModel


logger = logging.getLogger(__name__)


class CollateralVerifier(ABC):
    """Answers how many units of a credit batch a wallet holds on-chain."""

    @abstractmethod
    def balance_of(self, credit: CarbonCreditModel, owner: str) -> Optional[float]:
        """Return the owner's balance, or None when it cannot be determined."""


class Web3CollateralVerifier(CollateralVerifier):
    """Reads ERC-1155 balances through `Web3ClientManager`."""

    def __init__(self, web3_manager: Web3ClientManager) -> None:
        self._web3_manager = web3_manager

    def balance_of(self, credit: CarbonCreditModel, owner: str) -> Optional[float]:
        try:
            raw_balance = self._web3_manager.read_erc1155_balance(
                chain_id=credit.chain_id,
                contract_address=credit.contract_address,
                owner=owner,
                token_id=credit.token_id,
            )
        except Exception as exc:
            logger.warning("On-chain balance check failed credit_id=%s owner=%s: %s", credit.id, owner, exc)
            return None
        if raw_balance is None:
            return None
        return float(raw_balance)
