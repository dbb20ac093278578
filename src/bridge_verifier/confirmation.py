"""
Retry-based transfer confirmation.

Finds the latest deposit between two accounts on the source chain, derives the
messageHash locally from its nonce and looks for the matching approval on Neura,
polling past logs a bounded number of times on each side.
"""

import asyncio
import logging
from dataclasses import dataclass

from eth_abi import encode
from web3 import Web3
from web3.types import LogReceipt

from .amount import Amount
from .chain_client import ChainClient
from .event_watcher import BridgeEventWatcher
from .models import BridgeEvent, Chain, EventKind, LogFilter

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class TransferConfirmation:
    """Outcome of ``confirm_bridge_transfer``.

    Attributes:
        deposit: Latest matching deposit, None when none was found
        message_hash: messageHash derived from the deposit, None without a deposit
        approved: Whether BridgeTransferApproved(message_hash) was observed
    """
    deposit: BridgeEvent | None
    message_hash: str | None
    approved: bool

    @property
    def confirmed(self) -> bool:
        return self.deposit is not None and self.approved


def compute_message_hash(
    amount: Amount | int,
    recipient: str,
    nonce: int,
    target_chain_id: int,
    source_chain_id: int,
) -> str:
    """keccak256 of the ABI-encoded (amount, recipient, nonce, target, source) tuple."""
    wei = amount.wei if isinstance(amount, Amount) else amount
    encoded = encode(
        ["uint256", "address", "uint256", "uint256", "uint256"],
        [wei, Web3.to_checksum_address(recipient), nonce, target_chain_id, source_chain_id],
    )
    return Web3.to_hex(Web3.keccak(encoded))


async def wait_for_logs_with_retry(
    client: ChainClient,
    log_filter: LogFilter,
    from_block: int,
    retries: int = 5,
    delay: float = 5.0,
) -> list[LogReceipt]:
    """Query past logs up to ``retries`` times, ``delay`` seconds apart; empty if none appear."""
    for attempt in range(1, retries + 1):
        logs = await client.get_logs(log_filter, from_block, "latest")
        if logs:
            logger.info(f"[{client.name}] Event found on attempt #{attempt}")
            return logs
        logger.info(f"[{client.name}] [{attempt}/{retries}] Waiting for event...")
        if attempt < retries:
            await asyncio.sleep(delay)
    return []


async def confirm_bridge_transfer(
    watcher: BridgeEventWatcher,
    source: Chain,
    sender: str,
    recipient: str,
    amount: Amount,
    from_block: int,
    approval_from_block: int | None = None,
    retries: int = 5,
    retry_delay: float = 5.0,
) -> TransferConfirmation:
    """
    Confirm a transfer through its deposit on ``source`` and its approval on Neura.

    Args:
        watcher: Watcher holding both chain clients and bridge codecs
        source: Chain the deposit was made on
        sender: Depositing account
        recipient: Receiving account
        amount: Transferred amount, used in the messageHash
        from_block: First source-chain block to search for the deposit
        approval_from_block: First Neura block to search for the approval;
            defaults to the watcher's look-back window
        retries: Attempts per side
        retry_delay: Seconds between attempts
    """
    source_client = watcher.client(source)
    target = Chain.NEURA if source is Chain.SEPOLIA else Chain.SEPOLIA

    deposit_filter = watcher.bridge(source).build_filter(EventKind.DEPOSITED.value, sender, recipient)
    deposits = await wait_for_logs_with_retry(source_client, deposit_filter, from_block, retries, retry_delay)
    if not deposits:
        logger.warning(f"Deposit from {sender} to {recipient} not found after {retries} attempts")
        return TransferConfirmation(deposit=None, message_hash=None, approved=False)

    deposit = watcher.decode_event(EventKind.DEPOSITED, source, deposits[-1])
    logger.info(f"Found deposit nonce {deposit.nonce} in tx {deposit.transaction_hash}")

    message_hash = compute_message_hash(
        amount,
        recipient,
        deposit.nonce,
        target_chain_id=watcher.client(target).network.chain_id,
        source_chain_id=source_client.network.chain_id,
    )

    if approval_from_block is None:
        current = await watcher.neura.get_current_block_number()
        approval_from_block = max(current - watcher.config.lookback_blocks, 0)

    approval_filter = watcher.neura_bridge.build_filter(EventKind.APPROVED.value, message_hash)
    approvals = await wait_for_logs_with_retry(
        watcher.neura, approval_filter, approval_from_block, retries, retry_delay
    )

    approved = bool(approvals)
    if approved:
        logger.info(f"✓ Bridge transfer confirmed (messageHash={message_hash})")
    else:
        logger.warning(f"Approval not yet finalized (messageHash={message_hash})")
    return TransferConfirmation(deposit=deposit, message_hash=message_hash, approved=approved)
