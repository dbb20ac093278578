"""
Balance tracker.

Captures native and token balances on both chains and reconciles the signed
change between two captures against an expected transfer amount.
"""

import asyncio
import logging

from .amount import DEFAULT_DECIMALS, Amount, default_tolerance, format_amount, within_tolerance
from .chain_client import ChainClient
from .errors import MalformedSnapshotError
from .models import (
    BalanceDelta,
    BalanceSnapshot,
    Chain,
    CrossChainSnapshot,
    TransferDirection,
    VerificationResult,
)

logger = logging.getLogger(__name__)


class BalanceTracker:
    """Produces cross-chain balance snapshots and deltas for one token."""

    def __init__(
        self,
        sepolia_client: ChainClient,
        neura_client: ChainClient,
        token_address: str,
        tolerance: Amount | None = None,
        token_decimals: int = DEFAULT_DECIMALS,
    ):
        """
        Initialize the tracker.

        Args:
            sepolia_client: Client for the chain holding the ERC20 token
            neura_client: Client for the chain where the token is the native currency
            token_address: ERC20 token contract on Sepolia
            tolerance: Absolute margin accepted on each leg; 1e13 base units by default
            token_decimals: Decimal scale of the token

        Raises:
            ValueError: If the token scale differs from the 18-decimal Neura native
                currency, since both legs are compared against one expected amount
        """
        if token_decimals != DEFAULT_DECIMALS:
            raise ValueError(
                f"Token decimals must be {DEFAULT_DECIMALS} to match the Neura native currency, "
                f"got {token_decimals}"
            )
        self.sepolia_client = sepolia_client
        self.neura_client = neura_client
        self.token_address = token_address
        self.token_decimals = token_decimals
        self.tolerance = tolerance if tolerance is not None else default_tolerance(token_decimals)

    async def capture_sepolia(self, account: str) -> BalanceSnapshot:
        native, token, block_number = await asyncio.gather(
            self.sepolia_client.get_native_balance(account),
            self.sepolia_client.get_token_balance(account, self.token_address, self.token_decimals),
            self.sepolia_client.get_current_block_number(),
        )
        return BalanceSnapshot(
            chain=Chain.SEPOLIA,
            account=account,
            native=native,
            token=token,
            block_number=block_number,
        )

    async def capture_neura(self, account: str) -> BalanceSnapshot:
        native, block_number = await asyncio.gather(
            self.neura_client.get_native_balance(account),
            self.neura_client.get_current_block_number(),
        )
        return BalanceSnapshot(
            chain=Chain.NEURA,
            account=account,
            native=native,
            block_number=block_number,
        )

    async def capture_all(self, account: str) -> CrossChainSnapshot:
        """
        Capture both chains concurrently.

        Any read failure propagates and no snapshot is returned.
        """
        sepolia, neura = await asyncio.gather(
            self.capture_sepolia(account),
            self.capture_neura(account),
        )
        logger.info(f"Captured balances for {account}: {sepolia}, {neura}")
        return CrossChainSnapshot(sepolia=sepolia, neura=neura)

    @staticmethod
    def delta(before: BalanceSnapshot, after: BalanceSnapshot) -> BalanceDelta:
        """
        Signed ``after - before`` for every tracked currency.

        Raises:
            MalformedSnapshotError: If the snapshots belong to different chains or
                accounts, or only one of them tracks a token balance
        """
        if before.chain is not after.chain:
            raise MalformedSnapshotError(
                f"Cannot diff snapshots from different chains: "
                f"{before.chain.value} vs {after.chain.value}"
            )
        if before.account.lower() != after.account.lower():
            raise MalformedSnapshotError(
                f"Cannot diff snapshots of different accounts: {before.account} vs {after.account}"
            )
        if (before.token is None) != (after.token is None):
            raise MalformedSnapshotError(
                f"Token balance present in only one {before.chain.value} snapshot "
                f"for {before.account}"
            )

        token_diff = after.token - before.token if before.token is not None else None
        return BalanceDelta(
            chain=before.chain,
            native_diff=after.native - before.native,
            token_diff=token_diff,
        )

    def compare_snapshots(
        self,
        before: CrossChainSnapshot,
        after: CrossChainSnapshot,
        expected_amount: Amount,
        direction: TransferDirection,
    ) -> VerificationResult:
        """
        Reconcile two cross-chain snapshots against an expected transfer.

        The source leg must have decreased and the target leg must not have
        decreased; both must have moved by ``expected_amount`` within tolerance.
        Failure messages are collected in that order.
        """
        sepolia_diff = self.delta(before.sepolia, after.sepolia)
        neura_diff = self.delta(before.neura, after.neura)
        diffs = {Chain.SEPOLIA: sepolia_diff, Chain.NEURA: neura_diff}

        source = direction.source
        target = direction.target
        source_change = diffs[source].asset_diff
        target_change = diffs[target].asset_diff

        is_source_decreased = source_change.is_negative
        # Zero change counts as an increase
        is_target_increased = not target_change.is_negative
        is_source_amount_correct = within_tolerance(abs(source_change), expected_amount, self.tolerance)
        is_target_amount_correct = within_tolerance(abs(target_change), expected_amount, self.tolerance)

        expected_text = format_amount(expected_amount)
        tolerance_text = f"{self.tolerance.wei} wei"
        failures: list[str] = []
        if not is_source_decreased:
            failures.append(
                f"{source.value.capitalize()} balance did not decrease (source leg): "
                f"diff {format_amount(source_change)}, expected -{expected_text}"
            )
        if not is_target_increased:
            failures.append(
                f"{target.value.capitalize()} balance did not increase (target leg): "
                f"diff {format_amount(target_change)}, expected +{expected_text}"
            )
        if not is_source_amount_correct:
            failures.append(
                f"{source.value.capitalize()} balance did not decrease by the expected amount "
                f"(source leg): diff {format_amount(source_change)}, expected -{expected_text} "
                f"± {tolerance_text}"
            )
        if not is_target_amount_correct:
            failures.append(
                f"{target.value.capitalize()} balance did not increase by the expected amount "
                f"(target leg): diff {format_amount(target_change)}, expected +{expected_text} "
                f"± {tolerance_text}"
            )

        result = VerificationResult(
            direction=direction,
            expected_amount=expected_amount,
            tolerance=self.tolerance,
            sepolia_diff=sepolia_diff,
            neura_diff=neura_diff,
            is_source_decreased=is_source_decreased,
            is_target_increased=is_target_increased,
            is_source_amount_correct=is_source_amount_correct,
            is_target_amount_correct=is_target_amount_correct,
            failures=tuple(failures),
        )

        if result.passed:
            logger.info(f"✓ {result.reason}")
        else:
            for failure in failures:
                logger.warning(f"✗ {failure}")
        return result

    async def compare_transfer(
        self,
        before: CrossChainSnapshot,
        expected_amount: Amount,
        direction: TransferDirection,
    ) -> VerificationResult:
        """Capture a fresh snapshot for the same account and compare it with ``before``."""
        after = await self.capture_all(before.sepolia.account)
        return self.compare_snapshots(before, after, expected_amount, direction)
