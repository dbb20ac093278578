#!/usr/bin/env python3
"""Unit tests for the subgraph client."""

import json
from unittest.mock import AsyncMock, patch

import httpx
import pytest

from bridge_verifier.amount import parse
from bridge_verifier.config import SubgraphConfig
from bridge_verifier.errors import RpcError, SubgraphTimeoutError
from bridge_verifier.subgraph import SubgraphClient

from conftest import ACCOUNT, OTHER

SUBGRAPH_URL = "https://graph.test/subgraphs/name/test-eth"
AMOUNT_WEI = "250000000000000000"


def entity(nonce: int, amount: str = AMOUNT_WEI, recipient: str = ACCOUNT, block: int = 100) -> dict:
    return {
        "transactionHash": "0x" + f"{nonce:064x}",
        "amount": amount,
        "recipient": recipient.lower(),
        "nonce": str(nonce),
        "blockNumber": str(block + nonce),
        "blockTimestamp": "1700000000",
    }


def transport_returning(*pages: list[dict], requests: list | None = None) -> httpx.MockTransport:
    """MockTransport answering successive queries with the given entity pages."""
    remaining = list(pages)

    def handler(request: httpx.Request) -> httpx.Response:
        if requests is not None:
            requests.append(json.loads(request.content))
        page = remaining.pop(0) if len(remaining) > 1 else remaining[0]
        return httpx.Response(200, json={"data": {"tokensDepositeds": page}})

    return httpx.MockTransport(handler)


@pytest.fixture
def config():
    return SubgraphConfig(url=SUBGRAPH_URL, retries=3, retry_delay=0.01)


class TestSubgraphClient:
    """Tests for SubgraphClient."""

    @pytest.mark.asyncio
    async def test_query_variables(self, config):
        """Test that the recipient is lower-cased and the page size applied."""
        requests: list = []
        client = SubgraphClient(config, transport=transport_returning([entity(1)], requests=requests))

        deposits = await client.get_tokens_deposited(ACCOUNT.upper().replace("0X", "0x"))

        assert deposits[0].nonce == 1
        assert deposits[0].amount == int(AMOUNT_WEI)
        assert requests[0]["variables"] == {"recipient": ACCOUNT.lower(), "first": 5}
        assert "tokensDepositeds" in requests[0]["query"]
        assert "orderDirection: desc" in requests[0]["query"]

    @pytest.mark.asyncio
    async def test_wait_returns_highest_nonces(self, config):
        """Test filtering by amount and recipient, sorted by nonce descending."""
        page = [
            entity(3),
            entity(7),
            entity(5),
            entity(9, amount="1"),
            entity(8, recipient=OTHER),
        ]
        client = SubgraphClient(config, transport=transport_returning(page))

        matches = await client.wait_for_deposit(ACCOUNT, parse("0.25"), min_matches=2)

        assert [m.nonce for m in matches] == [7, 5]

    @pytest.mark.asyncio
    async def test_wait_retries_until_indexed(self, config):
        """Test that polling continues until the deposit appears."""
        requests: list = []
        client = SubgraphClient(
            config, transport=transport_returning([], [], [entity(4)], requests=requests)
        )

        matches = await client.wait_for_deposit(ACCOUNT, parse("0.25"))

        assert [m.nonce for m in matches] == [4]
        assert len(requests) == 3

    @pytest.mark.asyncio
    async def test_wait_exhausts_retries(self, config):
        """Test that the bounded retry budget ends in SubgraphTimeoutError."""
        client = SubgraphClient(config, transport=transport_returning([entity(1)]))

        with patch("bridge_verifier.subgraph.asyncio.sleep", new=AsyncMock()) as sleep:
            with pytest.raises(SubgraphTimeoutError, match="found 1/2 deposits") as exc_info:
                await client.wait_for_deposit(ACCOUNT, parse("0.25"), min_matches=2)

        assert isinstance(exc_info.value, TimeoutError)
        assert sleep.await_count == config.retries - 1

    @pytest.mark.asyncio
    async def test_http_error(self, config):
        """Test that HTTP failures surface as RpcError."""
        transport = httpx.MockTransport(lambda request: httpx.Response(502, text="bad gateway"))
        client = SubgraphClient(config, transport=transport)

        with pytest.raises(RpcError, match="Subgraph request"):
            await client.get_tokens_deposited(ACCOUNT)

    @pytest.mark.asyncio
    async def test_graphql_errors(self, config):
        """Test that GraphQL errors surface as RpcError."""
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"errors": [{"message": "indexing"}]})
        )
        client = SubgraphClient(config, transport=transport)

        with pytest.raises(RpcError, match="indexing"):
            await client.get_tokens_deposited(ACCOUNT)
