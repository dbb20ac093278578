"""
Chain client.

Single point of access to one blockchain's state: balance reads, contract
calls, transaction submission and log queries over an async Web3 connection.
Errors are wrapped into RpcError and never retried here.
"""

import asyncio
import logging
from typing import Any

from eth_account import Account
from eth_account.signers.local import LocalAccount
from hexbytes import HexBytes
from web3 import AsyncWeb3, Web3
from web3.exceptions import TimeExhausted, Web3Exception
from web3.middleware import SignAndSendRawMiddlewareBuilder
from web3.types import LogReceipt, TxParams, TxReceipt, Wei

from .amount import DEFAULT_DECIMALS, Amount
from .config import NetworkConfig
from .errors import GasEstimationFailure, RpcError, WaitTimeoutError
from .models import LogFilter
from .utils.contract_utility import get_contract_abi
from .utils.polling_log_subscription import PollingLogSubscription

logger = logging.getLogger(__name__)

# Transport-level failures surfaced by web3 and its HTTP stack
RPC_ERRORS = (Web3Exception, OSError, asyncio.TimeoutError, ValueError)


class ChainClient:
    """Async JSON-RPC access to one chain."""

    FALLBACK_GAS_LIMIT: int = 300_000

    def __init__(
        self,
        network: NetworkConfig,
        private_key: str | None = None,
        w3: AsyncWeb3 | None = None,
        request_timeout: float = 30.0,
        poll_interval: float = 2.0,
        receipt_timeout: float = 120.0,
        fallback_gas_limit: int = FALLBACK_GAS_LIMIT,
    ):
        """
        Initialize the client.

        Args:
            network: Network configuration (RPC URL, chain id, bridge address)
            private_key: Signing key; without it only read operations are available
            w3: Pre-built AsyncWeb3 instance, mainly for tests
            request_timeout: HTTP request timeout in seconds
            poll_interval: Polling interval for live log subscriptions in seconds
            receipt_timeout: Max wait for a submitted transaction's receipt in seconds
            fallback_gas_limit: Gas limit used when estimation fails
        """
        self.network = network
        self.name = network.name
        self.poll_interval = poll_interval
        self.receipt_timeout = receipt_timeout
        self.fallback_gas_limit = fallback_gas_limit

        self.account: LocalAccount | None = Account.from_key(private_key) if private_key else None
        self.w3 = w3 or self._setup_web3(request_timeout)

        # Serialize sends per signer so nonces stay ordered
        self._send_lock = asyncio.Lock()

    def _setup_web3(self, request_timeout: float) -> AsyncWeb3:
        w3 = AsyncWeb3(
            AsyncWeb3.AsyncHTTPProvider(
                self.network.rpc_url,
                request_kwargs={"timeout": request_timeout},
            )
        )
        if self.account:
            w3.middleware_onion.add(SignAndSendRawMiddlewareBuilder.build(self.account))
            w3.eth.default_account = self.account.address
        return w3

    @property
    def signer_address(self) -> str | None:
        return self.account.address if self.account else None

    def _contract(self, contract_address: str, abi: list[dict[str, Any]]):
        return self.w3.eth.contract(address=Web3.to_checksum_address(contract_address), abi=abi)

    def _rpc_error(self, action: str, e: Exception) -> RpcError:
        logger.error(f"[{self.name}] {action} failed: {e}")
        return RpcError(f"{action} failed: {e}", chain=self.name)

    # ─────────────────────────── Reads ───────────────────────────

    async def get_native_balance(self, address: str) -> Amount:
        """Native currency balance of ``address`` in wei."""
        try:
            raw = await self.w3.eth.get_balance(Web3.to_checksum_address(address))
        except RPC_ERRORS as e:
            raise self._rpc_error(f"get_balance({address})", e) from e
        if not isinstance(raw, int):
            raise RpcError(f"Malformed balance for {address}: {raw!r}", chain=self.name)
        return Amount(int(raw), DEFAULT_DECIMALS)

    async def get_token_balance(
        self,
        address: str,
        token_address: str,
        decimals: int = DEFAULT_DECIMALS
    ) -> Amount:
        """ERC20 ``balanceOf(address)`` on ``token_address``."""
        raw = await self.call(token_address, get_contract_abi("ERC20"), "balanceOf", [address])
        if not isinstance(raw, int):
            raise RpcError(
                f"Malformed token balance for {address} on {token_address}: {raw!r}",
                chain=self.name,
            )
        return Amount(raw, decimals)

    async def call(
        self,
        contract_address: str,
        abi: list[dict[str, Any]],
        method: str,
        args: list[Any] | tuple[Any, ...] = (),
        *,
        value: int = 0,
    ) -> Any:
        """
        Perform a read-only or simulated call; no state is changed.

        Args:
            contract_address: Target contract
            abi: Contract ABI
            method: Function name
            args: Positional function arguments
            value: Wei attached to the simulated call (for payable functions)

        Returns:
            Decoded return value of the function
        """
        fn = getattr(self._contract(contract_address, abi).functions, method)(*args)
        tx_params: TxParams = {}
        if self.signer_address:
            tx_params['from'] = self.signer_address
        if value:
            tx_params['value'] = Wei(value)
        try:
            return await fn.call(tx_params)
        except RPC_ERRORS as e:
            raise self._rpc_error(f"call {method}{tuple(args)} on {contract_address}", e) from e

    async def estimate_gas(
        self,
        contract_address: str,
        abi: list[dict[str, Any]],
        method: str,
        args: list[Any] | tuple[Any, ...] = (),
        *,
        value: int = 0,
    ) -> int:
        """
        Estimate gas for a state-changing call.

        Raises:
            GasEstimationFailure: If the node cannot estimate the call
        """
        fn = getattr(self._contract(contract_address, abi).functions, method)(*args)
        tx_params: TxParams = {'value': Wei(value)}
        if self.signer_address:
            tx_params['from'] = self.signer_address
        try:
            return await fn.estimate_gas(tx_params)
        except RPC_ERRORS as e:
            raise GasEstimationFailure(
                f"[{self.name}] gas estimation for {method} on {contract_address} failed: {e}"
            ) from e

    async def get_current_block_number(self) -> int:
        try:
            return int(await self.w3.eth.block_number)
        except RPC_ERRORS as e:
            raise self._rpc_error("eth_blockNumber", e) from e

    async def get_logs(
        self,
        log_filter: LogFilter,
        from_block: int | str,
        to_block: int | str = "latest"
    ) -> list[LogReceipt]:
        try:
            return list(await self.w3.eth.get_logs(log_filter.to_params(from_block, to_block)))
        except RPC_ERRORS as e:
            raise self._rpc_error(f"get_logs({from_block}..{to_block})", e) from e

    async def get_transaction_receipt(self, tx_hash: str | bytes) -> TxReceipt:
        try:
            return await self.w3.eth.get_transaction_receipt(HexBytes(tx_hash))
        except RPC_ERRORS as e:
            raise self._rpc_error(f"get_transaction_receipt({Web3.to_hex(HexBytes(tx_hash))})", e) from e

    async def subscribe_logs(self, log_filter: LogFilter, from_block: int) -> PollingLogSubscription:
        """Start a live subscription delivering matching logs from ``from_block`` on."""
        subscription = PollingLogSubscription(
            client=self,
            log_filter=log_filter,
            from_block=from_block,
            interval=self.poll_interval,
        )
        subscription.start()
        return subscription

    # ─────────────────────────── Writes ───────────────────────────

    async def send_transaction(
        self,
        contract_address: str,
        abi: list[dict[str, Any]],
        method: str,
        args: list[Any] | tuple[Any, ...] = (),
        *,
        value: int = 0,
        gas_limit_hint: int | None = None,
    ) -> TxReceipt:
        """
        Submit a state-changing call and wait for its receipt.

        Gas is estimated first; if estimation fails the call is sent with
        ``gas_limit_hint`` or the fallback gas limit instead. The transaction
        is never resubmitted.

        Returns:
            The mined transaction receipt (status is not checked here)
        """
        if not self.account:
            raise RpcError(f"{method} requires a signing key", chain=self.name)

        async with self._send_lock:
            try:
                gas = await self.estimate_gas(contract_address, abi, method, args, value=value)
            except GasEstimationFailure as e:
                gas = gas_limit_hint or self.fallback_gas_limit
                logger.warning(f"{e}; falling back to gas limit {gas}")

            fn = getattr(self._contract(contract_address, abi).functions, method)(*args)
            tx_params: TxParams = {
                'from': self.account.address,
                'gas': gas,
                'value': Wei(value),
            }
            try:
                tx_hash = await fn.transact(tx_params)
            except RPC_ERRORS as e:
                raise self._rpc_error(f"{method} submission from {self.account.address}", e) from e

            logger.info(f"[{self.name}] {method} submitted: {Web3.to_hex(tx_hash)} (gas={gas})")

            try:
                receipt = await self.w3.eth.wait_for_transaction_receipt(
                    tx_hash, timeout=self.receipt_timeout
                )
            except TimeExhausted as e:
                raise WaitTimeoutError(
                    "transaction receipt",
                    self.receipt_timeout,
                    detail=f"{method} tx {Web3.to_hex(tx_hash)} on {self.name}",
                ) from e
            except RPC_ERRORS as e:
                raise self._rpc_error(f"wait_for_transaction_receipt({Web3.to_hex(tx_hash)})", e) from e

        if (status := receipt.get('status', 0)) == 1:
            logger.info(f"[{self.name}] ✓ {method} confirmed in block {receipt['blockNumber']}")
        else:
            logger.error(f"[{self.name}] ✗ {method} reverted with status={status}")
        return receipt
