"""
Transfer verifier.

Turns an observed event trail and balance snapshots into pass/fail judgements.
Every failed check raises a VerificationError naming the event, field or leg
that did not hold, together with the messageHash or account context.
"""

import asyncio
import logging
from collections.abc import Mapping
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from .amount import Amount, format_amount
from .balance_tracker import BalanceTracker
from .config import VerificationConfig
from .errors import (
    BalanceVerificationError,
    FieldMismatchError,
    InvalidAmountError,
    TransactionFailedError,
    VerificationError,
)
from .event_watcher import BridgeEventWatcher
from .models import BridgeEvent, Chain, CrossChainSnapshot, EventKind, TransferDirection, VerificationResult
from .utils.contract_utility import to_hex_str

logger = logging.getLogger(__name__)


@dataclass(frozen=True, slots=True)
class ExpectedTransfer:
    """Field values a decoded bridge event must carry. None skips the check.

    Attributes:
        amount: Exact transferred amount
        sender: Depositing account
        recipient: Receiving account
        destination_chain_id: Chain id the transfer is headed to
        source_chain_id: Chain id the transfer originates from
    """
    amount: Amount
    sender: str | None = None
    recipient: str | None = None
    destination_chain_id: int | None = None
    source_chain_id: int | None = None


def _same_address(a: str, b: str) -> bool:
    return a.lower() == b.lower()


class TransferVerifier:
    """Aggregates event and balance checks for one transfer."""

    def __init__(
        self,
        watcher: BridgeEventWatcher,
        tracker: BalanceTracker,
        config: VerificationConfig | None = None,
    ):
        self.watcher = watcher
        self.tracker = tracker
        self.config = config or VerificationConfig()

    # ─────────────────────────── Receipts and events ───────────────────────────

    @staticmethod
    def _assert_success(receipt: Mapping[str, Any], what: str) -> None:
        if receipt.get("status") != 1:
            tx_hash = receipt.get("transactionHash")
            raise TransactionFailedError(
                f"{what} transaction {to_hex_str(tx_hash) if tx_hash else 'unknown'} "
                f"failed with status={receipt.get('status')}"
            )

    @staticmethod
    def _check_fields(event: BridgeEvent, expected: ExpectedTransfer) -> None:
        name = event.kind.value
        # Exact: this is the literal submitted value, not a settled balance
        if event.amount != expected.amount:
            raise FieldMismatchError(
                name, "amount",
                expected.amount.wei, event.amount.wei if event.amount is not None else None,
            )
        if expected.sender is not None and not _same_address(event.sender or "", expected.sender):
            raise FieldMismatchError(name, "from", expected.sender, event.sender)
        if expected.recipient is not None and not _same_address(event.recipient or "", expected.recipient):
            raise FieldMismatchError(name, "recipient", expected.recipient, event.recipient)
        if (
            expected.destination_chain_id is not None
            and event.destination_chain_id != expected.destination_chain_id
        ):
            raise FieldMismatchError(
                name, "chainId", expected.destination_chain_id, event.destination_chain_id
            )
        if expected.source_chain_id is not None and event.source_chain_id != expected.source_chain_id:
            raise FieldMismatchError(name, "sourceChainId", expected.source_chain_id, event.source_chain_id)

    def _decode_from_receipt(
        self,
        receipt: Mapping[str, Any],
        kind: EventKind,
        chain: Chain,
    ) -> BridgeEvent:
        log = self.watcher.bridge(chain).find_log(receipt, kind.value)
        return self.watcher.decode_event(kind, chain, log)

    def verify_deposit(
        self,
        receipt: Mapping[str, Any],
        expected: ExpectedTransfer,
        chain: Chain = Chain.SEPOLIA,
    ) -> BridgeEvent:
        """
        Verify a deposit receipt and the TokensDeposited event it carries.

        Args:
            receipt: Receipt of the deposit transaction
            expected: Expected sender, recipient, amount and destination chain id
            chain: Chain the deposit was submitted on

        Returns:
            The decoded deposit event

        Raises:
            TransactionFailedError: If the deposit reverted
            EventNotFoundError: If the receipt has no TokensDeposited log
            FieldMismatchError: If a decoded field differs from ``expected``
        """
        self._assert_success(receipt, "Deposit")
        event = self._decode_from_receipt(receipt, EventKind.DEPOSITED, chain)
        self._check_fields(event, expected)
        logger.info(f"✓ Deposit verified: {event} amount={event.amount} nonce={event.nonce}")
        return event

    def verify_approval(
        self,
        receipt: Mapping[str, Any],
        message_hash: str | bytes,
        expected: ExpectedTransfer,
    ) -> BridgeEvent:
        """Verify an approval receipt carries BridgeTransferApproved for ``message_hash``."""
        message_hash = to_hex_str(message_hash)
        self._assert_success(receipt, f"Approval (messageHash={message_hash})")
        event = self._decode_from_receipt(receipt, EventKind.APPROVED, Chain.NEURA)
        if event.message_hash != message_hash:
            raise FieldMismatchError(EventKind.APPROVED.value, "_messageHash", message_hash, event.message_hash)
        self._check_fields(event, expected)
        logger.info(f"✓ Approval verified for messageHash={message_hash}")
        return event

    def verify_claim(
        self,
        receipt: Mapping[str, Any],
        recipient: str,
        amount: Amount,
        chain: Chain = Chain.SEPOLIA,
    ) -> BridgeEvent:
        """Verify a claim receipt carries TokensClaimed for ``recipient`` and ``amount``."""
        self._assert_success(receipt, "Claim")
        event = self._decode_from_receipt(receipt, EventKind.CLAIMED, chain)
        self._check_fields(event, ExpectedTransfer(amount=amount, recipient=recipient))
        logger.info(f"✓ Claim verified: {format_amount(amount)} to {recipient}")
        return event

    async def verify_approval_and_claim(
        self,
        message_hash: str | bytes,
        expected: ExpectedTransfer,
        claim_receipt: Mapping[str, Any] | None = None,
        timeout: float | None = None,
        from_block: int | None = None,
    ) -> tuple[BridgeEvent, BridgeEvent | None]:
        """
        Wait for the approval of ``message_hash``, verify it and, when given, the claim.

        Returns:
            The decoded approval event and the decoded claim event (None when no
            claim receipt was passed)
        """
        receipt = await self.watcher.wait_for_approval(message_hash, timeout=timeout, from_block=from_block)
        approval = self.verify_approval(receipt, message_hash, expected)

        claim = None
        if claim_receipt is not None:
            recipient = expected.recipient or approval.recipient
            claim = self.verify_claim(claim_receipt, recipient, expected.amount)
        return approval, claim

    # ─────────────────────────── Balances ───────────────────────────

    def verify_balance_outcome(
        self,
        before: CrossChainSnapshot,
        after: CrossChainSnapshot,
        expected_amount: Amount,
        direction: TransferDirection,
        raise_on_failure: bool = True,
    ) -> VerificationResult:
        """
        Reconcile two snapshots against the expected transfer.

        Raises:
            BalanceVerificationError: If ``raise_on_failure`` is set and a leg failed;
                the message names the leg and the numeric check that did not hold
        """
        result = self.tracker.compare_snapshots(before, after, expected_amount, direction)
        if not result.passed and raise_on_failure:
            logger.error(
                f"Balance verification failed for {before.sepolia.account} "
                f"({result.failed_leg} leg): {result.reason}"
            )
            raise BalanceVerificationError(result)
        return result

    # ─────────────────────────── Signatures and messages ───────────────────────────

    async def verify_signature_quorum(
        self,
        message_hash: str | bytes,
        quorum: int | None = None,
        settle_delay: float | None = None,
    ) -> list[bytes]:
        """
        Let validator signatures accumulate, then check they reach the quorum.

        Returns:
            The collected signatures
        """
        message_hash = to_hex_str(message_hash)
        quorum = quorum if quorum is not None else self.config.signature_quorum
        settle_delay = settle_delay if settle_delay is not None else self.config.signature_settle_delay

        logger.info(f"Waiting {settle_delay}s for validator signatures (messageHash={message_hash})")
        await asyncio.sleep(settle_delay)

        signatures = await self.watcher.get_signatures(message_hash)
        logger.info(f"Total signatures count: {len(signatures)}")
        for index, signature in enumerate(signatures, start=1):
            logger.debug(f"Signature {index}: 0x{signature.hex()}")

        if len(signatures) < quorum:
            raise VerificationError(
                f"Only {len(signatures)} of {quorum} required signatures collected "
                f"(messageHash={message_hash})"
            )
        return signatures

    async def verify_packed_message(self, message_hash: str | bytes) -> bytes:
        message_hash = to_hex_str(message_hash)
        message = await self.watcher.get_message(message_hash)
        if not message:
            raise VerificationError(f"No packed message stored for messageHash={message_hash}")
        return message

    @staticmethod
    def ui_balance_matches_chain(ui_value: str | float, chain_amount: Amount) -> bool:
        """
        Compare a balance shown in the UI with the on-chain value rounded to 2 decimals.

        Raises:
            InvalidAmountError: If the UI value is not a number
        """
        try:
            shown = Decimal(str(ui_value).replace(",", "").strip())
        except InvalidOperation:
            raise InvalidAmountError(f"Invalid UI balance: {ui_value!r}") from None
        # NaN and Infinity parse but are never a balance
        if not shown.is_finite():
            raise InvalidAmountError(f"Invalid UI balance: {ui_value!r}")
        return Decimal(format_amount(chain_amount, precision=2)) == shown
