"""Reusable Web3 client manager for cross-chain ERC-1155 read operations."""

import logging
from typing import Any, Dict, Mapping, Optional

from web3 import Web3


logger = logging.getLogger(__name__)

CARBON_CREDIT_ABI = [
    {
        "inputs": [
            {"name": "account", "type": "address"},
            {"name": "id", "type": "uint256"},
        ],
        "name": "balanceOf",
        "outputs": [{"name": "", "type": "uint256"}],
        "stateMutability": "view",
        "type": "function",
    }
]


class Web3ClientManager:
    """Manage one Web3 provider per configured chain and read token balances."""

    def __init__(self, rpc_urls: Mapping[int, str], timeout_sec: int = 10) -> None:
        """Initialize provider instances.

        Args:
            rpc_urls: Mapping of EVM chain id to HTTP RPC endpoint.
            timeout_sec: Per-request RPC timeout.
        """
        try:
            self._providers: Dict[int, Web3] = {
                int(chain_id): Web3(Web3.HTTPProvider(url, request_kwargs={"timeout": timeout_sec}))
                for chain_id, url in rpc_urls.items()
                if url
            }
            logger.info("Web3ClientManager initialized for chain_ids=%s", sorted(self._providers))
        except Exception:
            logger.exception("Failed to initialize Web3ClientManager.")
            raise

    @property
    def chain_ids(self):
        """Return configured chain ids."""
        return sorted(self._providers)

    def health(self) -> Dict[int, bool]:
        """Return provider connectivity status for each chain."""
        status: Dict[int, bool] = {}
        for chain_id, provider in self._providers.items():
            try:
                status[chain_id] = bool(provider.is_connected())
            except Exception:
                logger.warning("Web3 provider health check failed chain_id=%s", chain_id, exc_info=True)
                status[chain_id] = False
        return status

    def read_erc1155_balance(self, chain_id: int, contract_address: str, owner: str, token_id: int) -> Optional[int]:
        """Read `balanceOf(owner, token_id)` from an ERC-1155 contract.

        Returns:
            Optional[int]: Raw token balance, or None when the chain is not
            configured, an address is malformed, or the RPC call fails.
        """
        provider = self._providers.get(int(chain_id))
        if provider is None:
            logger.info("No Web3 provider configured for chain_id=%s", chain_id)
            return None
        try:
            contract = provider.eth.contract(
                address=self._normalize_wallet(contract_address),
                abi=CARBON_CREDIT_ABI,
            )
            raw: Any = contract.functions.balanceOf(self._normalize_wallet(owner), int(token_id)).call()
            return int(raw)
        except Exception as exc:
            logger.warning(
                "ERC-1155 balance read failed chain_id=%s contract=%s owner=%s token_id=%s: %s",
                chain_id,
                contract_address,
                owner,
                token_id,
                exc,
            )
            return None

    def _normalize_wallet(self, wallet: str) -> str:
        """Validate and normalize wallet to checksum format."""
        candidate = str(wallet or "").strip()
        if not Web3.is_address(candidate):
            raise ValueError("Invalid wallet address format.")
        return Web3.to_checksum_address(candidate)
