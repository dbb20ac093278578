"""
Polling-based live log subscription.

The first polling failure ends the subscription and is surfaced by ``get``.
"""

import asyncio
import logging
from typing import TYPE_CHECKING, Any

from web3.types import LogReceipt

from ..models import LogFilter

if TYPE_CHECKING:
    from ..chain_client import ChainClient


class PollingLogSubscription:
    """
    Delivers logs matching a filter as new blocks arrive, via HTTP RPC polling.

    Logs are queued in block order; ``get`` waits for the next one. The
    subscription must be torn down with ``unsubscribe`` once the caller is done.
    """

    def __init__(
        self,
        client: "ChainClient",
        log_filter: LogFilter,
        from_block: int,
        interval: float = 2.0
    ):
        """
        Initialize the subscription.

        Args:
            client: Chain client used for block number and log queries
            log_filter: Address and topics to match
            from_block: First block to deliver logs from
            interval: Polling interval in seconds
        """
        self.client = client
        self.log_filter = log_filter
        self.next_block = from_block
        self.interval = interval

        # None marks the end of the stream after a polling failure
        self._queue: asyncio.Queue[LogReceipt | None] = asyncio.Queue()
        self._task: asyncio.Task | None = None
        self._error: Exception | None = None

        self.logger = logging.getLogger(f"{__name__}.{self.__class__.__name__}")

    @property
    def is_active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        """Start polling in the background."""
        if self.is_active:
            self.logger.warning("Subscription already active")
            return
        self.logger.debug(
            f"Subscribing to {self.log_filter.topics[0]} on {self.log_filter.address} "
            f"from block {self.next_block}"
        )
        self._task = asyncio.create_task(self._poll_loop())

    async def poll_once(self) -> int:
        """
        Fetch logs for blocks produced since the last poll.

        Returns:
            Number of logs queued
        """
        current_block = await self.client.get_current_block_number()
        if current_block < self.next_block:
            return 0

        logs = await self.client.get_logs(self.log_filter, self.next_block, current_block)
        for log in logs:
            self._queue.put_nowait(log)

        if logs:
            self.logger.info(
                f"Found {len(logs)} new logs in blocks {self.next_block}-{current_block}"
            )
        self.next_block = current_block + 1
        return len(logs)

    async def _poll_loop(self) -> None:
        try:
            while True:
                await self.poll_once()
                await asyncio.sleep(self.interval)
        except Exception as e:
            # Polling stops at the first failure; get() re-raises it to the waiter
            self.logger.error(f"Error polling for logs: {e}")
            self._error = e
            self._queue.put_nowait(None)

    async def get(self) -> LogReceipt:
        """
        Wait for the next matching log.

        Logs queued before a polling failure are still delivered first.

        Raises:
            RpcError: If polling failed, or whatever other error stopped the poll task
        """
        if self._error is not None and self._queue.empty():
            raise self._error
        log = await self._queue.get()
        if log is None:
            raise self._error
        return log

    async def unsubscribe(self) -> None:
        """Stop polling and release the background task."""
        if self._task is None:
            return
        if not self._task.done():
            self._task.cancel()
            try:
                await self._task
            except asyncio.CancelledError:
                pass  # Expected when cancelling
        self._task = None
        self.logger.debug(f"Unsubscribed from {self.log_filter.address}")

    def get_status(self) -> dict[str, Any]:
        return {
            "is_active": self.is_active,
            "next_block": self.next_block,
            "contract_address": self.log_filter.address,
            "queued": self._queue.qsize(),
        }
