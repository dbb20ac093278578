"""Shared fixtures and log builders for bridge verifier tests."""

import asyncio
from typing import Any
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_abi import encode
from hexbytes import HexBytes

from bridge_verifier.amount import parse
from bridge_verifier.chain_client import ChainClient
from bridge_verifier.config import NetworkConfig, WatcherConfig
from bridge_verifier.event_watcher import BridgeEventWatcher
from bridge_verifier.models import BalanceSnapshot, Chain, CrossChainSnapshot
from bridge_verifier.utils.contract_utility import BridgeContract, get_contract_abi

# Digit-only addresses are identical in checksum form
ACCOUNT = "0x1111111111111111111111111111111111111111"
SEPOLIA_BRIDGE = "0x2222222222222222222222222222222222222222"
NEURA_BRIDGE = "0x3333333333333333333333333333333333333333"
TOKEN = "0x4444444444444444444444444444444444444444"
OTHER = "0x5555555555555555555555555555555555555555"

SEPOLIA_CHAIN_ID = 11155111
NEURA_CHAIN_ID = 267

MESSAGE_HASH = "0x" + "ab" * 32


def tx_hash(n: int) -> HexBytes:
    return HexBytes(n.to_bytes(32, "big"))


def make_log(
    contract_name: str,
    address: str,
    event_name: str,
    args: dict[str, Any],
    block_number: int,
    log_index: int = 0,
    transaction_hash: HexBytes | None = None,
) -> dict[str, Any]:
    """ABI-encode ``args`` into a raw log shaped like an eth_getLogs result."""
    event_abi = next(
        entry for entry in get_contract_abi(contract_name)
        if entry["type"] == "event" and entry["name"] == event_name
    )
    topics = [HexBytes(BridgeContract(contract_name, address).topic(event_name))]
    data_types: list[str] = []
    data_values: list[Any] = []
    for abi_input in event_abi["inputs"]:
        value = args[abi_input["name"]]
        if abi_input["type"] == "bytes32":
            value = HexBytes(value)
        if abi_input["indexed"]:
            topics.append(HexBytes(encode([abi_input["type"]], [value])))
        else:
            data_types.append(abi_input["type"])
            data_values.append(value)

    return {
        "address": address,
        "topics": topics,
        "data": HexBytes(encode(data_types, data_values)),
        "blockNumber": block_number,
        "blockHash": HexBytes(block_number.to_bytes(32, "big")),
        "transactionHash": transaction_hash or tx_hash(block_number * 100 + log_index),
        "transactionIndex": 0,
        "logIndex": log_index,
        "removed": False,
    }


def deposit_log(block_number: int, log_index: int = 0, amount: int = 250_000_000_000_000_000,
                address: str = SEPOLIA_BRIDGE, contract_name: str = "EthBscBridge",
                nonce: int = 1, chain_id: int = NEURA_CHAIN_ID) -> dict[str, Any]:
    return make_log(
        contract_name, address, "TokensDeposited",
        {"from": ACCOUNT, "recipient": ACCOUNT, "amount": amount, "nonce": nonce, "chainId": chain_id},
        block_number, log_index,
    )


def approval_log(block_number: int, message_hash: str = MESSAGE_HASH,
                 amount: int = 250_000_000_000_000_000) -> dict[str, Any]:
    return make_log(
        "NeuraBridge", NEURA_BRIDGE, "BridgeTransferApproved",
        {
            "_messageHash": message_hash,
            "recipient": ACCOUNT,
            "amount": amount,
            "chainId": SEPOLIA_CHAIN_ID,
            "sourceChainId": NEURA_CHAIN_ID,
        },
        block_number,
    )


def receipt_for(*logs: dict[str, Any], status: int = 1, transaction_hash: HexBytes | None = None) -> dict[str, Any]:
    first = logs[0] if logs else {}
    return {
        "status": status,
        "transactionHash": transaction_hash or first.get("transactionHash", tx_hash(1)),
        "blockNumber": first.get("blockNumber", 1),
        "logs": list(logs),
    }


class FakeSubscription:
    """Live subscription stand-in fed by the test."""

    def __init__(self):
        self.queue: asyncio.Queue = asyncio.Queue()
        self.unsubscribe = AsyncMock()

    async def get(self):
        return await self.queue.get()

    def push_later(self, delay: float, log: dict[str, Any]) -> None:
        asyncio.get_running_loop().call_later(delay, self.queue.put_nowait, log)


def make_client(chain: Chain, current_block: int = 100) -> MagicMock:
    """ChainClient double with real network config and async RPC methods."""
    if chain is Chain.SEPOLIA:
        network = NetworkConfig(chain, "https://sepolia.test", SEPOLIA_CHAIN_ID, SEPOLIA_BRIDGE)
    else:
        network = NetworkConfig(chain, "https://neura.test", NEURA_CHAIN_ID, NEURA_BRIDGE)

    client = MagicMock(spec=ChainClient)
    client.network = network
    client.name = network.name
    client.get_current_block_number = AsyncMock(return_value=current_block)
    client.get_logs = AsyncMock(return_value=[])
    client.get_transaction_receipt = AsyncMock()
    client.get_native_balance = AsyncMock()
    client.get_token_balance = AsyncMock()
    client.call = AsyncMock()
    client.estimate_gas = AsyncMock()
    client.send_transaction = AsyncMock()
    client.subscribe_logs = AsyncMock()
    return client


@pytest.fixture
def sepolia_client():
    return make_client(Chain.SEPOLIA)


@pytest.fixture
def neura_client():
    return make_client(Chain.NEURA)


@pytest.fixture
def watcher(sepolia_client, neura_client):
    return BridgeEventWatcher(
        sepolia_client,
        neura_client,
        account=ACCOUNT,
        config=WatcherConfig(lookback_blocks=30, approval_timeout=60.0, deposit_timeout=30.0),
    )


def cross_chain(sepolia_token: str, neura_native: str, sepolia_native: str = "1.0") -> CrossChainSnapshot:
    """Snapshot with ANKR as ERC20 on Sepolia and as native currency on Neura."""
    return CrossChainSnapshot(
        sepolia=BalanceSnapshot(
            chain=Chain.SEPOLIA,
            account=ACCOUNT,
            native=parse(sepolia_native),
            token=parse(sepolia_token),
        ),
        neura=BalanceSnapshot(chain=Chain.NEURA, account=ACCOUNT, native=parse(neura_native)),
    )
