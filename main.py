#!/usr/bin/env python3
"""Entry point for manual bridge verification runs.

Reads balances, waits for bridge events and checks signatures against the
live networks configured in the environment.
"""

import argparse
import asyncio
import logging
import os
import sys

from dotenv import load_dotenv

# Configure logging before any other imports create loggers
def setup_logging(level: str = "INFO") -> None:
    """Configure logging for the application.

    Args:
        level: Logging level as string (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """
    log_level: int = getattr(logging, level.upper(), logging.INFO)
    logging.basicConfig(
        level=log_level,
        format='%(asctime)s - %(name)s - %(levelname)s - %(message)s'
    )

# Get logger for this module
logger = logging.getLogger(__name__)

from bridge_verifier.errors import BridgeVerifierError
from bridge_verifier.suite import BridgeVerificationSuite
from bridge_verifier.utils.contract_utility import to_hex_str


async def show_balances(suite: BridgeVerificationSuite) -> None:
    snapshot = await suite.tracker.capture_all(suite.config.account_address)
    logger.info(f"Sepolia ETH:  {snapshot.sepolia.native_display}")
    logger.info(f"Sepolia ANKR: {snapshot.sepolia.token_display}")
    logger.info(f"Neura ANKR:   {snapshot.neura.native_display}")


async def wait_approval(suite: BridgeVerificationSuite, args: argparse.Namespace) -> None:
    receipt = await suite.watcher.wait_for_approval(
        args.message_hash, timeout=args.timeout, from_block=args.from_block
    )
    logger.info(f"Approval tx {to_hex_str(receipt['transactionHash'])} in block {receipt['blockNumber']}")


async def wait_deposit(suite: BridgeVerificationSuite, args: argparse.Namespace) -> None:
    event = await suite.watcher.wait_for_next_deposit(args.block_marker, timeout=args.timeout)
    logger.info(f"Deposit: {event.to_dict()}")


async def check_signatures(suite: BridgeVerificationSuite, args: argparse.Namespace) -> None:
    if args.wait:
        await suite.verifier.verify_signature_quorum(args.message_hash)
    else:
        count = await suite.watcher.get_signature_count(args.message_hash)
        logger.info(f"Signatures for {args.message_hash}: {count}")


async def main() -> None:
    """Main entry point for manual verification runs.

    Raises:
        SystemExit: On configuration or verification errors
    """
    # Values already in the environment take precedence over .env
    load_dotenv()

    parser: argparse.ArgumentParser = argparse.ArgumentParser(
        description="Bridge Verifier - inspect Sepolia <-> Neura bridge transfers",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""Environment Variables:
  SEPOLIA_RPC_URL               - RPC endpoint for Sepolia
  NEURA_TESTNET_RPC_URL         - RPC endpoint for Neura testnet
  SEPOLIA_BRIDGE_PROXY_ADDRESS  - Bridge proxy on Sepolia
  NEURA_BRIDGE_PROXY_ADDRESS    - Bridge proxy on Neura
  ANKR_TOKEN_ADDRESS            - ANKR ERC20 on Sepolia
  MY_ADDRESS                    - Account under test
  PRIVATE_KEY                   - Signing key (optional for these commands)
  SUBGRAPH_URL                  - Subgraph endpoint (optional)
  LOG_LEVEL                     - Logging level (can be overridden with --log-level)
        """
    )
    parser.add_argument(
        "--log-level",
        default=os.environ.get("LOG_LEVEL", "INFO"),
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set the logging level (default: INFO)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    subparsers.add_parser("balances", help="Show balances on both chains")

    approval = subparsers.add_parser("wait-approval", help="Wait for BridgeTransferApproved")
    approval.add_argument("message_hash", help="messageHash returned by the deposit")
    approval.add_argument("--timeout", type=float, default=None, help="Seconds to listen live")
    approval.add_argument("--from-block", type=int, default=None, help="First Neura block to scan")

    deposit = subparsers.add_parser("wait-deposit", help="Wait for the next TokensDeposited on Sepolia")
    deposit.add_argument("block_marker", type=int, help="Sepolia block captured before the deposit")
    deposit.add_argument("--timeout", type=float, default=None, help="Seconds to listen live")

    signatures = subparsers.add_parser("signatures", help="Count validator signatures")
    signatures.add_argument("message_hash", help="messageHash of the transfer")
    signatures.add_argument(
        "--wait",
        action="store_true",
        help="Wait the settle delay and check the configured quorum"
    )

    args: argparse.Namespace = parser.parse_args()

    setup_logging(args.log_level)
    logger.info("=== Bridge Verifier Starting ===")

    try:
        suite = BridgeVerificationSuite.from_env()

        match args.command:
            case "balances":
                await show_balances(suite)
            case "wait-approval":
                await wait_approval(suite, args)
            case "wait-deposit":
                await wait_deposit(suite, args)
            case "signatures":
                await check_signatures(suite, args)

    except BridgeVerifierError as e:
        logger.error(f"Verification Error: {e}")
        sys.exit(1)

    except ValueError as e:
        logger.error(f"Configuration Error: {e}")
        logger.error("Please check your environment variables:")
        logger.error("  - SEPOLIA_RPC_URL / NEURA_TESTNET_RPC_URL: RPC endpoints")
        logger.error("  - SEPOLIA_BRIDGE_PROXY_ADDRESS / NEURA_BRIDGE_PROXY_ADDRESS: bridge proxies")
        logger.error("  - ANKR_TOKEN_ADDRESS: token on Sepolia")
        logger.error("  - MY_ADDRESS: account under test")
        sys.exit(1)

    except KeyboardInterrupt:
        logger.info("\nReceived interrupt signal, shutting down...")
        sys.exit(0)


if __name__ == "__main__":
    asyncio.run(main())
