"""
Contract-call transfer triggers.

Starts transfers directly against the bridge contracts instead of through the
web UI. Mutating calls are submitted once and never retried.
"""

import logging

from web3 import Web3
from web3.types import TxReceipt

from .amount import Amount, format_amount
from .chain_client import ChainClient
from .errors import VerificationError
from .event_watcher import BridgeEventWatcher
from .utils.contract_utility import get_contract_abi, to_hex_str

logger = logging.getLogger(__name__)


class BridgeActions:
    """Deposits, approvals and claims for the account under test."""

    def __init__(self, watcher: BridgeEventWatcher, token_address: str):
        """
        Initialize the actions.

        Args:
            watcher: Event watcher; supplies both chain clients, bridge codecs and the account
            token_address: ERC20 token bridged from Sepolia
        """
        self.watcher = watcher
        self.sepolia: ChainClient = watcher.sepolia
        self.neura: ChainClient = watcher.neura
        self.account = watcher.account
        self.token_address = Web3.to_checksum_address(token_address)
        self.erc20_abi = get_contract_abi("ERC20")

    async def estimate_deposit_gas(self, amount: Amount, recipient: str | None = None) -> int:
        """Gas estimate for a token deposit on the Sepolia bridge."""
        bridge = self.watcher.sepolia_bridge
        return await self.sepolia.estimate_gas(
            bridge.address, bridge.abi, "deposit", [amount.wei, recipient or self.account]
        )

    async def get_allowance(self) -> Amount:
        raw = await self.sepolia.call(
            self.token_address,
            self.erc20_abi,
            "allowance",
            [self.account, self.watcher.sepolia_bridge.address],
        )
        return Amount(raw)

    async def clear_token_allowance(self) -> TxReceipt:
        """Reset the bridge's token allowance to zero so the next deposit must approve again."""
        logger.info(f"Clearing token allowance of {self.account} for the Sepolia bridge")
        return await self.sepolia.send_transaction(
            self.token_address,
            self.erc20_abi,
            "approve",
            [self.watcher.sepolia_bridge.address, 0],
        )

    async def deposit_token(
        self,
        amount: Amount,
        recipient: str | None = None,
        approve_only: bool = False,
    ) -> TxReceipt | None:
        """
        Approve (when the allowance is short) and deposit the ERC20 token on Sepolia.

        Args:
            amount: Amount to bridge
            recipient: Receiving account on Neura, the account under test by default
            approve_only: Only set the allowance, do not deposit

        Returns:
            The deposit receipt, or None when ``approve_only`` is set
        """
        recipient = recipient or self.account
        bridge = self.watcher.sepolia_bridge

        allowance = await self.get_allowance()
        if allowance < amount:
            logger.info(f"🔑 Approving {format_amount(amount)} tokens for {bridge.address}")
            await self.sepolia.send_transaction(
                self.token_address, self.erc20_abi, "approve", [bridge.address, amount.wei]
            )

        if approve_only:
            return None

        logger.info(f"🚀 Depositing {format_amount(amount)} tokens to {recipient}")
        return await self.sepolia.send_transaction(
            bridge.address, bridge.abi, "deposit", [amount.wei, recipient]
        )

    async def deposit_native(
        self,
        amount: Amount,
        dest_chain_id: int,
        recipient: str | None = None,
    ) -> tuple[TxReceipt, str]:
        """
        Deposit native currency on the Neura bridge.

        The messageHash is predicted with a simulated call using the same
        arguments before the real deposit is submitted.

        Returns:
            The deposit receipt and the messageHash it emitted
        """
        recipient = recipient or self.account
        message_hash = await self.watcher.predict_deposit_hash(amount, dest_chain_id, recipient)

        bridge = self.watcher.neura_bridge
        logger.info(
            f"🚀 Depositing {format_amount(amount)} native to chain {dest_chain_id} for {recipient}"
        )
        receipt = await self.neura.send_transaction(
            bridge.address, bridge.abi, "deposit", [recipient, dest_chain_id], value=amount.wei
        )
        logger.info(f"📬 messageHash: {message_hash}")
        return receipt, message_hash

    async def claim_transfer(self, message_hash: str | bytes) -> TxReceipt:
        """
        Claim an approved Neura deposit on Sepolia.

        Raises:
            VerificationError: If no validator signature has been collected yet
        """
        message_hash = to_hex_str(message_hash)
        message = await self.watcher.get_message(message_hash)
        signatures = await self.watcher.get_signatures(message_hash)
        logger.info(f"Validators signatures count: {len(signatures)}")
        if not signatures:
            raise VerificationError(
                f"No validator signatures collected yet (messageHash={message_hash})"
            )

        bridge = self.watcher.sepolia_bridge
        logger.info(f"🚚 Claiming on Sepolia via {bridge.address}")
        return await self.sepolia.send_transaction(
            bridge.address, bridge.abi, "claim", [message, signatures]
        )
