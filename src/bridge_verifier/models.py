"""
Shared data models for the bridge verifier.

Snapshots, deltas, decoded events and verification outcomes are immutable
value objects owned by whoever requested them.
"""

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any

from .amount import Amount, format_amount


class Chain(str, Enum):
    """The two chains a transfer spans."""
    SEPOLIA = "sepolia"
    NEURA = "neura"


class TransferDirection(Enum):
    """Direction of a cross-chain transfer."""
    NEURA_TO_SEPOLIA = (Chain.NEURA, Chain.SEPOLIA)
    SEPOLIA_TO_NEURA = (Chain.SEPOLIA, Chain.NEURA)

    @property
    def source(self) -> Chain:
        return self.value[0]

    @property
    def target(self) -> Chain:
        return self.value[1]


class EventKind(str, Enum):
    """Protocol events that make up one transfer."""
    DEPOSITED = "TokensDeposited"
    APPROVED = "BridgeTransferApproved"
    CLAIMED = "TokensClaimed"


@dataclass(frozen=True, slots=True)
class LogFilter:
    """Address + topic filter for ``eth_getLogs``.

    Attributes:
        address: Checksummed contract address
        topics: Topic list; ``None`` entries match anything
    """
    address: str
    topics: tuple[str | None, ...]

    def to_params(self, from_block: int | str, to_block: int | str = "latest") -> dict[str, Any]:
        return {
            "address": self.address,
            "topics": list(self.topics),
            "fromBlock": from_block,
            "toBlock": to_block,
        }


@dataclass(frozen=True, slots=True)
class BalanceSnapshot:
    """Balances of one account on one chain at a point in time.

    Attributes:
        chain: Chain the balances were read from
        account: Account address
        native: Native currency balance
        token: ERC20 token balance, or None when the chain tracks native only
        block_number: Block height the reads were issued against, when known
    """
    chain: Chain
    account: str
    native: Amount
    token: Amount | None = None
    block_number: int | None = None

    @property
    def native_display(self) -> str:
        return format_amount(self.native)

    @property
    def token_display(self) -> str | None:
        return format_amount(self.token) if self.token is not None else None

    @property
    def asset(self) -> Amount:
        """The bridged asset: the tracked token when present, otherwise native currency."""
        return self.token if self.token is not None else self.native

    def __str__(self) -> str:
        parts = [f"native={self.native_display}"]
        if self.token is not None:
            parts.append(f"token={self.token_display}")
        return f"BalanceSnapshot({self.chain.value}, {self.account[:10]}..., {', '.join(parts)})"


@dataclass(frozen=True, slots=True)
class CrossChainSnapshot:
    """Sepolia and Neura snapshots captured at approximately the same moment."""
    sepolia: BalanceSnapshot
    neura: BalanceSnapshot
    captured_at: float = field(default_factory=time.time)

    def for_chain(self, chain: Chain) -> BalanceSnapshot:
        return self.sepolia if chain is Chain.SEPOLIA else self.neura


@dataclass(frozen=True, slots=True)
class BalanceDelta:
    """Signed change between two snapshots of the same account and chain.

    Negative values mean a decrease.
    """
    chain: Chain
    native_diff: Amount
    token_diff: Amount | None = None

    @property
    def asset_diff(self) -> Amount:
        """Change of the bridged asset (token when tracked, native otherwise)."""
        return self.token_diff if self.token_diff is not None else self.native_diff

    def to_dict(self) -> dict[str, Any]:
        return {
            "chain": self.chain.value,
            "native_diff": self.native_diff.wei,
            "token_diff": self.token_diff.wei if self.token_diff is not None else None,
        }


@dataclass(frozen=True, slots=True)
class BridgeEvent:
    """A decoded bridge protocol event.

    Attributes:
        kind: Which protocol event this is
        chain: Chain the event was emitted on
        block_number: Block containing the log
        log_index: Position of the log within the block
        transaction_hash: Hash of the emitting transaction (0x-prefixed)
        message_hash: Bridge correlation id, when the event carries one
        amount: Transferred amount, when present
        sender: Depositing account, when present
        recipient: Receiving account, when present
        nonce: Deposit nonce, when present
        source_chain_id: Chain id the transfer originates from, when present
        destination_chain_id: Chain id the transfer is headed to, when present
        signature_count: Number of validator signatures, when known
    """
    kind: EventKind
    chain: Chain
    block_number: int
    log_index: int
    transaction_hash: str
    message_hash: str | None = None
    amount: Amount | None = None
    sender: str | None = None
    recipient: str | None = None
    nonce: int | None = None
    source_chain_id: int | None = None
    destination_chain_id: int | None = None
    signature_count: int | None = None

    def __str__(self) -> str:
        return (
            f"{self.kind.value}(chain={self.chain.value}, "
            f"block={self.block_number}, log={self.log_index}, "
            f"tx={self.transaction_hash[:10]}...)"
        )

    @property
    def unique_key(self) -> tuple[str, int, str, int]:
        return (self.chain.value, self.block_number, self.transaction_hash, self.log_index)

    def to_dict(self) -> dict[str, Any]:
        return {
            "kind": self.kind.value,
            "chain": self.chain.value,
            "block_number": self.block_number,
            "log_index": self.log_index,
            "transaction_hash": self.transaction_hash,
            "message_hash": self.message_hash,
            "amount": self.amount.wei if self.amount is not None else None,
            "sender": self.sender,
            "recipient": self.recipient,
            "nonce": self.nonce,
            "source_chain_id": self.source_chain_id,
            "destination_chain_id": self.destination_chain_id,
            "signature_count": self.signature_count,
        }


@dataclass(frozen=True, slots=True)
class VerificationResult:
    """Outcome of reconciling balance deltas against an expected transfer.

    ``passed`` is derived: true iff both legs moved in the expected direction
    and both moved by the expected amount within tolerance.
    """
    direction: TransferDirection
    expected_amount: Amount
    tolerance: Amount
    sepolia_diff: BalanceDelta
    neura_diff: BalanceDelta
    is_source_decreased: bool
    is_target_increased: bool
    is_source_amount_correct: bool
    is_target_amount_correct: bool
    failures: tuple[str, ...] = ()

    @property
    def passed(self) -> bool:
        return (
            self.is_source_decreased
            and self.is_target_increased
            and self.is_source_amount_correct
            and self.is_target_amount_correct
        )

    @property
    def source_diff(self) -> BalanceDelta:
        return self.sepolia_diff if self.direction.source is Chain.SEPOLIA else self.neura_diff

    @property
    def target_diff(self) -> BalanceDelta:
        return self.sepolia_diff if self.direction.target is Chain.SEPOLIA else self.neura_diff

    @property
    def is_sepolia_amount_correct(self) -> bool:
        if self.direction.source is Chain.SEPOLIA:
            return self.is_source_amount_correct
        return self.is_target_amount_correct

    @property
    def is_neura_amount_correct(self) -> bool:
        if self.direction.source is Chain.NEURA:
            return self.is_source_amount_correct
        return self.is_target_amount_correct

    @property
    def failed_leg(self) -> str | None:
        """``"source"`` or ``"target"`` for the first violated check, None on success."""
        if not self.is_source_decreased:
            return "source"
        if not self.is_target_increased:
            return "target"
        if not self.is_source_amount_correct:
            return "source"
        if not self.is_target_amount_correct:
            return "target"
        return None

    @property
    def reason(self) -> str:
        if self.passed:
            return (
                f"{self.direction.source.value} -> {self.direction.target.value} transfer of "
                f"{format_amount(self.expected_amount)} verified"
            )
        return self.failures[0] if self.failures else "verification failed"


@dataclass(frozen=True, slots=True)
class SubgraphDeposit:
    """A ``tokensDepositeds`` entity returned by the subgraph."""
    transaction_hash: str
    amount: int
    recipient: str
    nonce: int
    block_number: int
    block_timestamp: int

    @classmethod
    def from_entity(cls, entity: dict[str, Any]) -> "SubgraphDeposit":
        return cls(
            transaction_hash=entity["transactionHash"],
            amount=int(entity["amount"]),
            recipient=entity["recipient"],
            nonce=int(entity["nonce"]),
            block_number=int(entity["blockNumber"]),
            block_timestamp=int(entity["blockTimestamp"]),
        )
