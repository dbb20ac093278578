"""
Verification suite.

Wires chain clients, tracker, watcher, verifier and actions together from one
resolved configuration, so a scenario receives ready-to-use components.
"""

import logging

from .balance_tracker import BalanceTracker
from .bridge_actions import BridgeActions
from .chain_client import ChainClient
from .config import BridgeVerifierConfig
from .event_watcher import BridgeEventWatcher
from .subgraph import SubgraphClient
from .verifier import TransferVerifier

logger = logging.getLogger(__name__)


class BridgeVerificationSuite:
    """
    Explicit component graph for one verification run.

    Each suite owns its own chain clients; independent suites share no state.
    """

    def __init__(self, config: BridgeVerifierConfig):
        """
        Initialize the suite.

        Args:
            config: Resolved configuration
        """
        self.config = config
        watcher_config = config.watcher

        self.sepolia = ChainClient(
            config.sepolia,
            private_key=config.private_key,
            poll_interval=watcher_config.poll_interval,
            receipt_timeout=watcher_config.receipt_timeout,
        )
        self.neura = ChainClient(
            config.neura,
            private_key=config.private_key,
            poll_interval=watcher_config.poll_interval,
            receipt_timeout=watcher_config.receipt_timeout,
        )

        self.tracker = BalanceTracker(
            self.sepolia,
            self.neura,
            token_address=config.token_address,
            tolerance=config.verification.tolerance,
            token_decimals=config.verification.token_decimals,
        )
        self.watcher = BridgeEventWatcher(
            self.sepolia, self.neura, account=config.account_address, config=watcher_config
        )
        self.verifier = TransferVerifier(self.watcher, self.tracker, config.verification)
        self.actions = BridgeActions(self.watcher, config.token_address)
        self.subgraph = SubgraphClient(config.subgraph) if config.subgraph else None

        logger.info(
            f"Verification suite ready for {config.account_address} "
            f"({'signing' if config.private_key else 'read-only'})"
        )

    @classmethod
    def from_env(cls) -> "BridgeVerificationSuite":
        """
        Create a suite from environment variables.

        Raises:
            ValueError: If required environment variables are missing or invalid
        """
        config = BridgeVerifierConfig.from_env()
        config.log_config()
        return cls(config)
