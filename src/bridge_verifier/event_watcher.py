"""
Bridge event watcher.

Locates and decodes the protocol events that make up one cross-chain transfer
(TokensDeposited, BridgeTransferApproved, TokensClaimed). Events may already be
mined when a wait starts, so every wait first scans recent past logs and only
then falls back to a live subscription raced against a timer.
"""

import asyncio
import logging
from collections.abc import Callable, Mapping
from typing import Any

from hexbytes import HexBytes
from web3.types import LogReceipt, TxReceipt

from .amount import Amount
from .chain_client import ChainClient
from .config import WatcherConfig
from .errors import WaitTimeoutError
from .models import BridgeEvent, Chain, EventKind, LogFilter
from .utils.contract_utility import BridgeContract, to_hex_str
from .utils.polling_log_subscription import PollingLogSubscription

logger = logging.getLogger(__name__)

LogPredicate = Callable[[Mapping[str, Any]], bool]


def is_after_marker(log: Mapping[str, Any], block_marker: int) -> bool:
    """
    True when a log was emitted after a block marker taken earlier.

    A log in the marker block itself only counts when it is not the first log
    of that block, so an event already seen at the marker is not reported twice.
    """
    block_number = log["blockNumber"]
    return block_number > block_marker or (block_number == block_marker and log["logIndex"] > 0)


class BridgeEventWatcher:
    """Waits for and decodes bridge protocol events on both chains."""

    def __init__(
        self,
        sepolia: ChainClient,
        neura: ChainClient,
        account: str,
        config: WatcherConfig | None = None,
    ):
        """
        Initialize the watcher.

        Args:
            sepolia: Client for Sepolia, where the ERC20 bridge lives
            neura: Client for Neura, where the native bridge lives
            account: Account whose deposits are watched
            config: Look-back window and default timeouts
        """
        self.sepolia = sepolia
        self.neura = neura
        self.account = account
        self.config = config or WatcherConfig()

        self.sepolia_bridge = BridgeContract("EthBscBridge", sepolia.network.bridge_address)
        self.neura_bridge = BridgeContract("NeuraBridge", neura.network.bridge_address)

    def client(self, chain: Chain) -> ChainClient:
        return self.sepolia if chain is Chain.SEPOLIA else self.neura

    def bridge(self, chain: Chain) -> BridgeContract:
        return self.sepolia_bridge if chain is Chain.SEPOLIA else self.neura_bridge

    async def get_fresh_block_number(self, chain: Chain = Chain.SEPOLIA) -> int:
        """Current block on ``chain``, for use as a marker before triggering a transfer."""
        return await self.client(chain).get_current_block_number()

    # ─────────────────────────── Waits ───────────────────────────

    async def wait_for_approval(
        self,
        message_hash: str | bytes,
        timeout: float | None = None,
        from_block: int | None = None,
    ) -> TxReceipt:
        """
        Wait until ``BridgeTransferApproved(message_hash)`` is observed on Neura.

        Args:
            message_hash: Correlation hash returned by the deposit
            timeout: Max seconds to listen live once the past scan misses
            from_block: First block of the past scan; defaults to the look-back window

        Returns:
            Receipt of the approving transaction

        Raises:
            WaitTimeoutError: If no approval is seen within ``timeout``
            RpcError: If a past scan or a live poll fails
        """
        message_hash = to_hex_str(message_hash)
        timeout = timeout if timeout is not None else self.config.approval_timeout
        log_filter = self.neura_bridge.build_filter(EventKind.APPROVED.value, message_hash)

        log = await self._wait_for_log(
            client=self.neura,
            log_filter=log_filter,
            event_name=EventKind.APPROVED.value,
            timeout=timeout,
            from_block=from_block,
            message_hash=message_hash,
        )
        # Decoding failures are fatal to this wait
        event = self.decode_event(EventKind.APPROVED, Chain.NEURA, log)
        logger.info(f"✓ Approval observed: {event}")
        return await self.neura.get_transaction_receipt(log["transactionHash"])

    async def wait_for_next_deposit(
        self,
        block_marker: int,
        timeout: float | None = None,
    ) -> BridgeEvent:
        """
        Wait for the next ``TokensDeposited(from=account)`` on Sepolia after a marker.

        Args:
            block_marker: Sepolia block number captured before the deposit was triggered
            timeout: Max seconds to listen live once the past scan misses

        Returns:
            The decoded deposit event

        Raises:
            WaitTimeoutError: If no qualifying deposit is seen within ``timeout``
            RpcError: If a past scan or a live poll fails
        """
        timeout = timeout if timeout is not None else self.config.deposit_timeout
        log_filter = self.sepolia_bridge.build_filter(EventKind.DEPOSITED.value, self.account)

        log = await self._wait_for_log(
            client=self.sepolia,
            log_filter=log_filter,
            event_name=EventKind.DEPOSITED.value,
            timeout=timeout,
            from_block=block_marker,
            accept=lambda candidate: is_after_marker(candidate, block_marker),
            detail=f"from={self.account} after block {block_marker}",
        )
        event = self.decode_event(EventKind.DEPOSITED, Chain.SEPOLIA, log)
        logger.info(
            f"✓ Deposit observed: {event} amount={event.amount} recipient={event.recipient}"
        )
        return event

    async def _wait_for_log(
        self,
        client: ChainClient,
        log_filter: LogFilter,
        event_name: str,
        timeout: float,
        from_block: int | None = None,
        accept: LogPredicate | None = None,
        message_hash: str | None = None,
        detail: str | None = None,
    ) -> LogReceipt:
        """
        Scan past logs, then listen live until a matching log arrives or ``timeout`` expires.

        The live subscription starts right after the last scanned block, so no
        block falls between the two phases. A polling failure ends the wait with
        its own error rather than a timeout. The subscription is always torn down before
        returning or raising.
        """
        current_block = await client.get_current_block_number()
        start_block = (
            from_block if from_block is not None
            else max(current_block - self.config.lookback_blocks, 0)
        )
        context = f"messageHash={message_hash}" if message_hash else detail

        # Phase 1: past logs
        if start_block <= current_block:
            logger.info(
                f"[{client.name}] Scanning blocks {start_block}-{current_block} for {event_name} ({context})"
            )
            past = await client.get_logs(log_filter, start_block, current_block)
            matches = [log for log in past if accept is None or accept(log)]
            if matches:
                logger.info(
                    f"[{client.name}] {event_name} found in past block {matches[0]['blockNumber']}"
                )
                return matches[0]

        # Phase 2: live subscription raced against the timer
        logger.info(f"[{client.name}] Listening for {event_name} up to {timeout}s ({context})")
        subscription = await client.subscribe_logs(log_filter, max(current_block + 1, start_block))
        listener = asyncio.create_task(self._next_match(subscription, accept))
        timer = asyncio.create_task(asyncio.sleep(timeout))
        try:
            done, _ = await asyncio.wait({listener, timer}, return_when=asyncio.FIRST_COMPLETED)
            if listener in done:
                log = listener.result()
                logger.info(f"[{client.name}] {event_name} detected in block {log['blockNumber']}")
                return log
        finally:
            for task in (listener, timer):
                task.cancel()
            await asyncio.gather(listener, timer, return_exceptions=True)
            await subscription.unsubscribe()

        logger.error(f"[{client.name}] Timed out after {timeout}s waiting for {event_name} ({context})")
        raise WaitTimeoutError(event_name, timeout, message_hash=message_hash, detail=detail)

    @staticmethod
    async def _next_match(
        subscription: PollingLogSubscription,
        accept: LogPredicate | None,
    ) -> LogReceipt:
        while True:
            log = await subscription.get()
            if accept is None or accept(log):
                return log
            logger.debug(
                f"Skipping log at block {log['blockNumber']} index {log['logIndex']}"
            )

    # ─────────────────────────── Decoding ───────────────────────────

    def decode_event(self, kind: EventKind, chain: Chain, log: Mapping[str, Any]) -> BridgeEvent:
        """
        Decode a raw log into a BridgeEvent.

        Raises:
            EventDecodeError: If the payload does not match the event ABI
        """
        decoded = self.bridge(chain).decode_log(kind.value, log)
        args = decoded["args"]
        base = {
            "kind": kind,
            "chain": chain,
            "block_number": decoded["blockNumber"],
            "log_index": decoded["logIndex"],
            "transaction_hash": to_hex_str(decoded["transactionHash"]),
        }

        match kind:
            case EventKind.DEPOSITED:
                return BridgeEvent(
                    **base,
                    amount=Amount(args["amount"]),
                    sender=args["from"],
                    recipient=args["recipient"],
                    nonce=args["nonce"],
                    source_chain_id=self.client(chain).network.chain_id,
                    destination_chain_id=args["chainId"],
                )
            case EventKind.APPROVED:
                return BridgeEvent(
                    **base,
                    message_hash=to_hex_str(args["_messageHash"]),
                    amount=Amount(args["amount"]),
                    recipient=args["recipient"],
                    source_chain_id=args["sourceChainId"],
                    destination_chain_id=args["chainId"],
                )
            case EventKind.CLAIMED:
                return BridgeEvent(
                    **base,
                    amount=Amount(args["amount"]),
                    recipient=args["recipient"],
                )

    # ─────────────────────────── Read-through calls ───────────────────────────

    async def get_signatures(self, message_hash: str | bytes) -> list[bytes]:
        """Validator signatures collected so far on the Neura bridge."""
        signatures = await self.neura.call(
            self.neura_bridge.address,
            self.neura_bridge.abi,
            "getSignatures",
            [HexBytes(message_hash)],
        )
        return [bytes(signature) for signature in signatures]

    async def get_signature_count(self, message_hash: str | bytes) -> int:
        return len(await self.get_signatures(message_hash))

    async def get_message(self, message_hash: str | bytes) -> bytes:
        """Packed bridge message stored on the Neura bridge."""
        message = await self.neura.call(
            self.neura_bridge.address,
            self.neura_bridge.abi,
            "messages",
            [HexBytes(message_hash)],
        )
        return bytes(message)

    async def predict_deposit_hash(
        self,
        amount: Amount,
        dest_chain_id: int,
        recipient: str | None = None,
    ) -> str:
        """
        Simulate a native deposit on Neura and return the messageHash it would emit.

        The real deposit must use exactly the same amount, destination and
        recipient for the prediction to hold.
        """
        recipient = recipient or self.account
        message_hash = await self.neura.call(
            self.neura_bridge.address,
            self.neura_bridge.abi,
            "deposit",
            [recipient, dest_chain_id],
            value=amount.wei,
        )
        message_hash = to_hex_str(message_hash)
        logger.info(
            f"Predicted messageHash {message_hash} for {amount} to {recipient} on chain {dest_chain_id}"
        )
        return message_hash
