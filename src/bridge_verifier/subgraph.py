"""
Subgraph confirmation.

The subgraph is an eventually consistent secondary source: deposits are
polled a bounded number of times and never treated as ground truth.
"""

import asyncio
import json
import logging
from typing import Any

import httpx

from .amount import Amount
from .config import SubgraphConfig
from .errors import RpcError, SubgraphTimeoutError
from .models import SubgraphDeposit

logger = logging.getLogger(__name__)

TOKENS_DEPOSITED_QUERY = """
query TokensDeposited($recipient: String!, $first: Int!) {
  tokensDepositeds(
    first: $first,
    orderBy: blockNumber,
    orderDirection: desc,
    where: { recipient: $recipient }
  ) {
    transactionHash
    amount
    recipient
    nonce
    blockNumber
    blockTimestamp
  }
}
"""


class SubgraphClient:
    """Reads indexed TokensDeposited entities over GraphQL."""

    def __init__(self, config: SubgraphConfig, transport: httpx.AsyncBaseTransport | None = None):
        """
        Initialize the client.

        Args:
            config: Subgraph URL, retry budget and page size
            transport: Optional httpx transport, e.g. a MockTransport in tests
        """
        self.config = config
        self.transport = transport

    async def _post(self, query: str, variables: dict[str, Any]) -> dict[str, Any]:
        payload = {"query": query, "variables": variables}
        try:
            async with httpx.AsyncClient(transport=self.transport, timeout=self.config.request_timeout) as client:
                logger.debug(f"Posting to {self.config.url}: {json.dumps(payload)}")
                response = await client.post(self.config.url, json=payload)
                response.raise_for_status()
                body = response.json()
        except (httpx.HTTPError, ValueError) as e:
            logger.error(f"Subgraph request failed: {e}")
            raise RpcError(f"Subgraph request to {self.config.url} failed: {e}", chain="subgraph") from e

        if errors := body.get("errors"):
            raise RpcError(f"Subgraph query failed: {errors}", chain="subgraph")
        return body.get("data") or {}

    async def get_tokens_deposited(self, recipient: str) -> list[SubgraphDeposit]:
        """Latest deposits to ``recipient``, newest block first."""
        data = await self._post(
            TOKENS_DEPOSITED_QUERY,
            {"recipient": recipient.lower(), "first": self.config.page_size},
        )
        return [SubgraphDeposit.from_entity(entity) for entity in data.get("tokensDepositeds") or []]

    async def wait_for_deposit(
        self,
        recipient: str,
        expected_amount: Amount,
        min_matches: int = 1,
    ) -> list[SubgraphDeposit]:
        """
        Poll until at least ``min_matches`` deposits of exactly ``expected_amount`` are indexed.

        Returns:
            The ``min_matches`` matching deposits with the highest nonces, highest first

        Raises:
            SubgraphTimeoutError: If the retry budget runs out first
            RpcError: If a request fails
        """
        matches: list[SubgraphDeposit] = []
        for attempt in range(1, self.config.retries + 1):
            deposits = await self.get_tokens_deposited(recipient)
            matches = [
                d for d in deposits
                if d.recipient.lower() == recipient.lower() and d.amount == expected_amount.wei
            ]

            if len(matches) >= min_matches:
                latest = sorted(matches, key=lambda d: d.nonce, reverse=True)[:min_matches]
                logger.info(f"✓ Subgraph confirmed {len(latest)} deposit(s) to {recipient}")
                for index, deposit in enumerate(latest, start=1):
                    logger.info(f"  #{index} nonce={deposit.nonce}, tx={deposit.transaction_hash}")
                return latest

            logger.warning(
                f"Subgraph retry {attempt}/{self.config.retries}: found {len(matches)}/{min_matches}"
            )
            if attempt < self.config.retries:
                await asyncio.sleep(self.config.retry_delay)

        raise SubgraphTimeoutError(
            "TokensDeposited in subgraph",
            self.config.retries * self.config.retry_delay,
            detail=(
                f"found {len(matches)}/{min_matches} deposits of {expected_amount.wei} wei "
                f"to {recipient}"
            ),
        )
