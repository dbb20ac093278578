"""Configuration management for the bridge verifier.

Type-safe configuration dataclasses with validation. Values are loaded from
environment variables by ``BridgeVerifierConfig.from_env``; the verification
components only ever receive the resolved objects.
"""

import logging
import os
from dataclasses import dataclass, field
from urllib.parse import urlparse

from web3 import Web3

from .amount import DEFAULT_DECIMALS, DEFAULT_TOLERANCE_WEI, Amount
from .models import Chain

logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID: int = 11155111
NEURA_TESTNET_CHAIN_ID: int = 267


def _checksum(value: str, label: str) -> str:
    if not value:
        raise ValueError(f"{label} is required")
    if not Web3.is_address(value):
        raise ValueError(f"Invalid {label}: {value}")
    return Web3.to_checksum_address(value)


@dataclass(frozen=True, slots=True)
class NetworkConfig:
    """Configuration for one chain.

    Attributes:
        chain: Which side of the bridge this is
        rpc_url: HTTP(S) or WS(S) RPC endpoint
        chain_id: EVM chain id
        bridge_address: Checksummed address of the bridge proxy on this chain
    """

    chain: Chain
    rpc_url: str
    chain_id: int
    bridge_address: str

    def __post_init__(self) -> None:
        """Validate network configuration."""
        if not self.rpc_url:
            raise ValueError(f"RPC URL is required for {self.chain.value}")

        parsed = urlparse(self.rpc_url)
        if parsed.scheme not in ('http', 'https', 'ws', 'wss'):
            raise ValueError(
                f"Invalid RPC URL scheme: {parsed.scheme}. "
                "Expected http, https, ws, or wss"
            )

        if self.chain_id <= 0:
            raise ValueError(f"Chain id must be positive, got {self.chain_id}")

        # Use object.__setattr__ since dataclass is frozen
        object.__setattr__(
            self, 'bridge_address',
            _checksum(self.bridge_address, f"{self.chain.value} bridge address")
        )

    @property
    def name(self) -> str:
        return self.chain.value


@dataclass(frozen=True, slots=True)
class WatcherConfig:
    """Timing parameters for event waits (all in seconds)."""
    lookback_blocks: int = 30  # past-log scan window when no start block is given
    approval_timeout: float = 60.0
    deposit_timeout: float = 30.0
    poll_interval: float = 2.0  # live subscription polling period
    receipt_timeout: float = 120.0

    def __post_init__(self) -> None:
        """Validate watcher configuration."""
        if self.lookback_blocks < 0:
            raise ValueError(f"Lookback blocks must be non-negative, got {self.lookback_blocks}")
        if self.lookback_blocks > 1000:
            raise ValueError(f"Lookback blocks too high (max 1000), got {self.lookback_blocks}")
        for name in ('approval_timeout', 'deposit_timeout', 'poll_interval', 'receipt_timeout'):
            if getattr(self, name) <= 0:
                raise ValueError(f"{name} must be positive, got {getattr(self, name)}")


@dataclass(frozen=True, slots=True)
class VerificationConfig:
    """Parameters for reconciling observed state with expectations."""
    tolerance_wei: int = DEFAULT_TOLERANCE_WEI
    signature_quorum: int = 7  # differs between environments
    signature_settle_delay: float = 20.0  # seconds
    token_decimals: int = DEFAULT_DECIMALS  # must match the 18-decimal Neura native leg

    def __post_init__(self) -> None:
        """Validate verification configuration."""
        if self.tolerance_wei < 0:
            raise ValueError(f"Tolerance must be non-negative, got {self.tolerance_wei}")
        if self.signature_quorum <= 0:
            raise ValueError(f"Signature quorum must be positive, got {self.signature_quorum}")
        if self.signature_settle_delay < 0:
            raise ValueError(
                f"Signature settle delay must be non-negative, got {self.signature_settle_delay}"
            )
        if self.token_decimals != DEFAULT_DECIMALS:
            raise ValueError(
                f"Token decimals must be {DEFAULT_DECIMALS} to match the Neura native currency, "
                f"got {self.token_decimals}"
            )

    @property
    def tolerance(self) -> Amount:
        return Amount(self.tolerance_wei, self.token_decimals)


@dataclass(frozen=True, slots=True)
class SubgraphConfig:
    """Configuration for the subgraph secondary confirmation source."""
    url: str
    retries: int = 6
    retry_delay: float = 4.0  # seconds
    page_size: int = 5
    request_timeout: float = 30.0  # seconds

    def __post_init__(self) -> None:
        """Validate subgraph configuration."""
        parsed = urlparse(self.url)
        if parsed.scheme not in ('http', 'https'):
            raise ValueError(f"Invalid subgraph URL: {self.url}")
        if self.retries <= 0:
            raise ValueError(f"Retry count must be positive, got {self.retries}")
        if self.retries > 50:
            raise ValueError(f"Retry count too high (max 50), got {self.retries}")
        if self.page_size <= 0:
            raise ValueError(f"Page size must be positive, got {self.page_size}")


@dataclass(frozen=True, slots=True)
class BridgeVerifierConfig:
    """Main configuration for a verification run.

    Attributes:
        sepolia: Sepolia network configuration
        neura: Neura network configuration
        token_address: ERC20 token (ANKR) contract on Sepolia
        account_address: Account under test
        private_key: Signing key for mutating calls, optional for read-only runs
        watcher: Event waiting parameters
        verification: Tolerance and quorum parameters
        subgraph: Subgraph settings, None when no subgraph is configured
    """

    sepolia: NetworkConfig
    neura: NetworkConfig
    token_address: str
    account_address: str
    private_key: str | None = None
    watcher: WatcherConfig = field(default_factory=WatcherConfig)
    verification: VerificationConfig = field(default_factory=VerificationConfig)
    subgraph: SubgraphConfig | None = None

    def __post_init__(self) -> None:
        """Validate top-level configuration."""
        object.__setattr__(self, 'token_address', _checksum(self.token_address, "token address"))
        object.__setattr__(
            self, 'account_address', _checksum(self.account_address, "account address")
        )

        if self.private_key:
            # 64 hex chars, optionally 0x-prefixed
            key = self.private_key.removeprefix('0x')
            if len(key) != 64:
                raise ValueError(
                    f"Invalid private key length. Expected 64 hex characters, got {len(key)}"
                )
            try:
                int(key, 16)
            except ValueError:
                raise ValueError(
                    "Invalid private key format. Must be hexadecimal"
                ) from None

    def network(self, chain: Chain) -> NetworkConfig:
        return self.sepolia if chain is Chain.SEPOLIA else self.neura

    @classmethod
    def from_env(cls) -> "BridgeVerifierConfig":
        """Load configuration from environment variables.

        Returns:
            BridgeVerifierConfig instance with loaded values

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        sepolia_rpc = os.environ.get("SEPOLIA_RPC_URL", "")
        if not sepolia_rpc:
            raise ValueError(
                "SEPOLIA_RPC_URL environment variable is required. "
                "Example: https://ethereum-sepolia.publicnode.com"
            )
        neura_rpc = os.environ.get("NEURA_TESTNET_RPC_URL", "")
        if not neura_rpc:
            raise ValueError("NEURA_TESTNET_RPC_URL environment variable is required.")

        sepolia = NetworkConfig(
            chain=Chain.SEPOLIA,
            rpc_url=sepolia_rpc,
            chain_id=int(os.environ.get("SEPOLIA_CHAIN_ID", str(SEPOLIA_CHAIN_ID))),
            bridge_address=os.environ.get("SEPOLIA_BRIDGE_PROXY_ADDRESS", ""),
        )
        neura = NetworkConfig(
            chain=Chain.NEURA,
            rpc_url=neura_rpc,
            chain_id=int(os.environ.get("NEURA_CHAIN_ID", str(NEURA_TESTNET_CHAIN_ID))),
            bridge_address=os.environ.get("NEURA_BRIDGE_PROXY_ADDRESS", ""),
        )

        watcher = WatcherConfig(
            lookback_blocks=int(os.environ.get("LOOKBACK_BLOCKS", "30")),
            approval_timeout=float(os.environ.get("APPROVAL_TIMEOUT", "60")),
            deposit_timeout=float(os.environ.get("DEPOSIT_TIMEOUT", "30")),
            poll_interval=float(os.environ.get("POLL_INTERVAL", "2")),
            receipt_timeout=float(os.environ.get("RECEIPT_TIMEOUT", "120")),
        )
        verification = VerificationConfig(
            tolerance_wei=int(os.environ.get("TOLERANCE_WEI", str(DEFAULT_TOLERANCE_WEI))),
            signature_quorum=int(os.environ.get("SIGNATURE_QUORUM", "7")),
            signature_settle_delay=float(os.environ.get("SIGNATURE_SETTLE_DELAY", "20")),
        )

        subgraph = None
        if subgraph_url := os.environ.get("SUBGRAPH_URL"):
            subgraph = SubgraphConfig(
                url=subgraph_url,
                retries=int(os.environ.get("SUBGRAPH_RETRIES", "6")),
                retry_delay=float(os.environ.get("SUBGRAPH_RETRY_DELAY", "4")),
            )

        return cls(
            sepolia=sepolia,
            neura=neura,
            token_address=os.environ.get("ANKR_TOKEN_ADDRESS", ""),
            account_address=os.environ.get("MY_ADDRESS", ""),
            private_key=os.environ.get("PRIVATE_KEY") or None,
            watcher=watcher,
            verification=verification,
            subgraph=subgraph,
        )

    def log_config(self) -> None:
        """Log the configuration in a readable format (private key hidden)."""
        logger.info("=" * 60)
        logger.info("Bridge Verifier Configuration")
        logger.info("=" * 60)

        for network in (self.sepolia, self.neura):
            logger.info(f"{network.name.capitalize()}:")
            logger.info(f"  RPC URL: {network.rpc_url}")
            logger.info(f"  Chain ID: {network.chain_id}")
            logger.info(f"  Bridge: {network.bridge_address}")

        logger.info(f"Token: {self.token_address}")
        logger.info(f"Account: {self.account_address}")
        logger.info(f"Private Key: {'[SET]' if self.private_key else '[NOT SET]'}")

        logger.info("Watcher Settings:")
        logger.info(f"  Lookback Blocks: {self.watcher.lookback_blocks}")
        logger.info(f"  Approval Timeout: {self.watcher.approval_timeout}s")
        logger.info(f"  Deposit Timeout: {self.watcher.deposit_timeout}s")

        logger.info("Verification Settings:")
        logger.info(f"  Tolerance: {self.verification.tolerance_wei} wei")
        logger.info(f"  Signature Quorum: {self.verification.signature_quorum}")

        if self.subgraph:
            logger.info(f"Subgraph: {self.subgraph.url}")

        logger.info("=" * 60)
