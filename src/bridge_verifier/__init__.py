"""
Bridge verifier package.

Cross-chain transfer verification for the Sepolia <-> Neura token bridge:
balance tracking, protocol event watching and transfer reconciliation.
"""

from .amount import Amount, format_amount, parse, within_tolerance
from .balance_tracker import BalanceTracker
from .chain_client import ChainClient
from .config import BridgeVerifierConfig
from .event_watcher import BridgeEventWatcher
from .models import BridgeEvent, Chain, CrossChainSnapshot, TransferDirection, VerificationResult
from .suite import BridgeVerificationSuite
from .verifier import ExpectedTransfer, TransferVerifier

__all__ = [
    "Amount",
    "parse",
    "format_amount",
    "within_tolerance",
    "BalanceTracker",
    "ChainClient",
    "BridgeVerifierConfig",
    "BridgeEventWatcher",
    "BridgeEvent",
    "Chain",
    "CrossChainSnapshot",
    "TransferDirection",
    "VerificationResult",
    "BridgeVerificationSuite",
    "ExpectedTransfer",
    "TransferVerifier",
]
__version__ = "0.1.0"
