#!/usr/bin/env python3
"""Unit tests for the ChainClient module."""

import asyncio
from unittest.mock import AsyncMock, MagicMock

import pytest
from eth_account import Account
from hexbytes import HexBytes
from web3.exceptions import TimeExhausted, Web3Exception

from bridge_verifier.amount import Amount
from bridge_verifier.chain_client import ChainClient
from bridge_verifier.config import NetworkConfig
from bridge_verifier.errors import RpcError, WaitTimeoutError
from bridge_verifier.models import Chain, LogFilter
from bridge_verifier.utils.contract_utility import get_contract_abi

from conftest import ACCOUNT, NEURA_BRIDGE, TOKEN

PRIVATE_KEY = "0x" + "1" * 64


@pytest.fixture
def network():
    return NetworkConfig(Chain.NEURA, "https://neura.test", 267, NEURA_BRIDGE)


@pytest.fixture
def mock_w3():
    """Create a mock AsyncWeb3 whose contract functions are async."""
    w3 = MagicMock()
    w3.eth.get_balance = AsyncMock(return_value=2 * 10**18)
    w3.eth.get_logs = AsyncMock(return_value=[])
    w3.eth.wait_for_transaction_receipt = AsyncMock(return_value={"status": 1, "blockNumber": 12})
    contract = MagicMock()
    w3.eth.contract.return_value = contract
    return w3


def contract_fn(w3, method: str) -> MagicMock:
    """Return the bound function mock for ``method`` on the mocked contract."""
    fn = getattr(w3.eth.contract.return_value.functions, method).return_value
    fn.call = AsyncMock()
    fn.estimate_gas = AsyncMock()
    fn.transact = AsyncMock()
    return fn


class TestReads:
    """Tests for read operations."""

    @pytest.mark.asyncio
    async def test_native_balance(self, network, mock_w3):
        """Test that native balances are returned as 18-decimal Amounts."""
        client = ChainClient(network, w3=mock_w3)
        assert await client.get_native_balance(ACCOUNT) == Amount(2 * 10**18)

    @pytest.mark.asyncio
    async def test_native_balance_malformed(self, network, mock_w3):
        """Test that a non-integer balance is rejected."""
        mock_w3.eth.get_balance = AsyncMock(return_value="0x10")
        client = ChainClient(network, w3=mock_w3)
        with pytest.raises(RpcError, match="Malformed balance"):
            await client.get_native_balance(ACCOUNT)

    @pytest.mark.asyncio
    async def test_native_balance_unreachable(self, network, mock_w3):
        """Test that transport failures are wrapped with the chain name."""
        mock_w3.eth.get_balance = AsyncMock(side_effect=OSError("connection refused"))
        client = ChainClient(network, w3=mock_w3)
        with pytest.raises(RpcError, match=r"\[neura\] get_balance"):
            await client.get_native_balance(ACCOUNT)

    @pytest.mark.asyncio
    async def test_token_balance(self, network, mock_w3):
        """Test an ERC20 balanceOf read."""
        fn = contract_fn(mock_w3, "balanceOf")
        fn.call.return_value = 1234
        client = ChainClient(network, w3=mock_w3)

        assert await client.get_token_balance(ACCOUNT, TOKEN) == Amount(1234)
        mock_w3.eth.contract.assert_called_with(address=TOKEN, abi=get_contract_abi("ERC20"))
        mock_w3.eth.contract.return_value.functions.balanceOf.assert_called_with(ACCOUNT)

    @pytest.mark.asyncio
    async def test_call_error_is_wrapped(self, network, mock_w3):
        """Test that a reverted read call becomes an RpcError."""
        fn = contract_fn(mock_w3, "messages")
        fn.call.side_effect = Web3Exception("execution reverted")
        client = ChainClient(network, w3=mock_w3)

        with pytest.raises(RpcError, match="call messages"):
            await client.call(NEURA_BRIDGE, get_contract_abi("NeuraBridge"), "messages", [b"\x00" * 32])

    @pytest.mark.asyncio
    async def test_simulated_payable_call(self, network, mock_w3):
        """Test that value and sender are forwarded to simulated calls."""
        fn = contract_fn(mock_w3, "deposit")
        fn.call.return_value = HexBytes("0x" + "ab" * 32)
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3)

        await client.call(NEURA_BRIDGE, get_contract_abi("NeuraBridge"), "deposit", [ACCOUNT, 11155111], value=5)

        fn.call.assert_awaited_once_with({"from": client.signer_address, "value": 5})

    @pytest.mark.asyncio
    async def test_block_number_and_logs(self, network, mock_w3):
        """Test block number reads and log queries."""
        future = asyncio.get_running_loop().create_future()
        future.set_result(321)
        mock_w3.eth.block_number = future
        client = ChainClient(network, w3=mock_w3)
        log_filter = LogFilter(address=NEURA_BRIDGE, topics=("0x" + "00" * 32,))

        assert await client.get_current_block_number() == 321
        assert await client.get_logs(log_filter, 300, 321) == []
        mock_w3.eth.get_logs.assert_awaited_once_with(log_filter.to_params(300, 321))

    @pytest.mark.asyncio
    async def test_get_logs_error(self, network, mock_w3):
        """Test that a failing log query raises RpcError."""
        mock_w3.eth.get_logs = AsyncMock(side_effect=asyncio.TimeoutError())
        client = ChainClient(network, w3=mock_w3)
        with pytest.raises(RpcError, match="get_logs"):
            await client.get_logs(LogFilter(address=NEURA_BRIDGE, topics=()), 1)


class TestSendTransaction:
    """Tests for transaction submission."""

    @pytest.mark.asyncio
    async def test_uses_estimate(self, network, mock_w3):
        """Test that the estimated gas is used when estimation succeeds."""
        fn = contract_fn(mock_w3, "approve")
        fn.estimate_gas.return_value = 46_000
        fn.transact.return_value = HexBytes("0x" + "01" * 32)
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3)

        receipt = await client.send_transaction(TOKEN, get_contract_abi("ERC20"), "approve", [NEURA_BRIDGE, 0])

        assert receipt["status"] == 1
        fn.transact.assert_awaited_once_with(
            {"from": Account.from_key(PRIVATE_KEY).address, "gas": 46_000, "value": 0}
        )

    @pytest.mark.asyncio
    async def test_gas_estimation_fallback(self, network, mock_w3):
        """Test that failed estimation falls back to 300000 gas instead of failing."""
        fn = contract_fn(mock_w3, "deposit")
        fn.estimate_gas.side_effect = Web3Exception("gas required exceeds allowance")
        fn.transact.return_value = HexBytes("0x" + "02" * 32)
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3)

        await client.send_transaction(
            NEURA_BRIDGE, get_contract_abi("NeuraBridge"), "deposit", [ACCOUNT, 11155111], value=10**17
        )

        sent = fn.transact.await_args.args[0]
        assert sent["gas"] == 300_000
        assert sent["value"] == 10**17

    @pytest.mark.asyncio
    async def test_gas_limit_hint(self, network, mock_w3):
        """Test that a caller hint overrides the fixed fallback."""
        fn = contract_fn(mock_w3, "deposit")
        fn.estimate_gas.side_effect = ValueError("estimation failed")
        fn.transact.return_value = HexBytes("0x" + "03" * 32)
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3)

        await client.send_transaction(
            NEURA_BRIDGE, get_contract_abi("NeuraBridge"), "deposit", [ACCOUNT, 1], gas_limit_hint=500_000
        )

        assert fn.transact.await_args.args[0]["gas"] == 500_000

    @pytest.mark.asyncio
    async def test_requires_signer(self, network, mock_w3):
        """Test that a read-only client refuses to send."""
        client = ChainClient(network, w3=mock_w3)
        with pytest.raises(RpcError, match="requires a signing key"):
            await client.send_transaction(TOKEN, get_contract_abi("ERC20"), "approve", [NEURA_BRIDGE, 0])

    @pytest.mark.asyncio
    async def test_receipt_timeout(self, network, mock_w3):
        """Test that an expired receipt wait becomes a WaitTimeoutError."""
        fn = contract_fn(mock_w3, "approve")
        fn.estimate_gas.return_value = 50_000
        fn.transact.return_value = HexBytes("0x" + "04" * 32)
        mock_w3.eth.wait_for_transaction_receipt = AsyncMock(side_effect=TimeExhausted("too slow"))
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3, receipt_timeout=5.0)

        with pytest.raises(WaitTimeoutError, match="Timed out after 5.0s waiting for transaction receipt"):
            await client.send_transaction(TOKEN, get_contract_abi("ERC20"), "approve", [NEURA_BRIDGE, 0])

    @pytest.mark.asyncio
    async def test_reverted_receipt_is_returned(self, network, mock_w3):
        """Test that status 0 receipts are returned for the caller to judge."""
        fn = contract_fn(mock_w3, "approve")
        fn.estimate_gas.return_value = 50_000
        fn.transact.return_value = HexBytes("0x" + "05" * 32)
        mock_w3.eth.wait_for_transaction_receipt = AsyncMock(return_value={"status": 0, "blockNumber": 3})
        client = ChainClient(network, private_key=PRIVATE_KEY, w3=mock_w3)

        receipt = await client.send_transaction(TOKEN, get_contract_abi("ERC20"), "approve", [NEURA_BRIDGE, 0])
        assert receipt["status"] == 0
        fn.transact.assert_awaited_once()
