"""Unit tests for the chain RPC client"""
import asyncio
import json
from decimal import Decimal

import httpx
import pytest
import pytest_asyncio

from referendum.exceptions import MalformedAmount, TransportFailure
from referendum.services.chain_client import ChainClient


@pytest_asyncio.fixture
async def client(settings, chain_node):
    """Chain client connected to the fake node"""
    async with ChainClient(settings=settings, transport=chain_node.transport) as c:
        yield c


class TestChainClient:
    """Tests for ChainClient"""

    def test_not_connected(self, settings):
        with pytest.raises(RuntimeError):
            ChainClient(settings=settings).client

    @pytest.mark.asyncio
    async def test_head_block_num(self, client):
        assert await client.get_head_block_num() == 1000

    @pytest.mark.asyncio
    async def test_table_rows_follow_pagination(self, client, chain_node):
        rows = await client.get_table_rows("eosio", "eosio", "voters")

        assert [row["owner"] for row in rows] == ["a", "p", "x", "z"]
        table_requests = [body for path, body in chain_node.requests if path == "/v1/chain/get_table_rows"]
        assert [body["lower_bound"] for body in table_requests] == ["", "2"]

    @pytest.mark.asyncio
    async def test_fetch_votes_and_proposals(self, client):
        votes = await client.fetch_votes()
        proposals = await client.fetch_proposals()

        assert [(v.voter, v.proposal_name) for v in votes] == [("a", "prop1"), ("p", "prop1"), ("b", "prop2")]
        assert {p.proposal_name for p in proposals} == {"prop1", "prop2", "old"}

    @pytest.mark.asyncio
    async def test_fetch_voters_converts_staked(self, client):
        voters = {record.owner: record for record in await client.fetch_voters()}

        assert voters["a"].staked == Decimal("500")
        assert voters["x"].proxy == "p"
        assert voters["p"].is_proxy is True

    @pytest.mark.asyncio
    async def test_fetch_delegated_stake(self, client, chain_node):
        records = await client.fetch_delegated_stake({"b", "c"})

        assert [(r.from_, r.to) for r in records] == [("b", "b"), ("b", "c")]
        assert records[0].weight == Decimal("150")
        scopes = sorted(body["scope"] for path, body in chain_node.requests if path == "/v1/chain/get_table_rows")
        assert scopes == ["b", "c"]

    @pytest.mark.asyncio
    async def test_fetch_delegated_stake_rejects_bad_amount(self, client, chain_node):
        chain_node.set_table("eosio", "d", "delband", [
            {"from": "d", "to": "d", "net_weight": "1.0000 OTHER", "cpu_weight": "0.0000 TEST"},
        ])
        with pytest.raises(MalformedAmount):
            await client.fetch_delegated_stake({"d"})

    @pytest.mark.asyncio
    async def test_fetch_currency_stats(self, client):
        stats = await client.fetch_currency_stats()
        assert stats.supply == "10000.0000 TEST"

    @pytest.mark.asyncio
    async def test_missing_currency_stats(self, client, chain_node):
        chain_node.currency_stats = {}
        with pytest.raises(TransportFailure):
            await client.fetch_currency_stats()

    @pytest.mark.asyncio
    async def test_http_error_status(self, client, chain_node):
        chain_node.fail_paths["/v1/chain/get_info"] = 503

        with pytest.raises(TransportFailure) as exc_info:
            await client.get_info()

        assert exc_info.value.status_code == 503
        assert exc_info.value.endpoint == "/v1/chain/get_info"

    @pytest.mark.asyncio
    async def test_connection_error(self, settings):
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        async with ChainClient(settings=settings, transport=httpx.MockTransport(refuse)) as c:
            with pytest.raises(TransportFailure) as exc_info:
                await c.get_info()

        assert isinstance(exc_info.value.__cause__, httpx.ConnectError)

    @pytest.mark.asyncio
    async def test_body_not_json(self, settings):
        transport = httpx.MockTransport(lambda request: httpx.Response(200, text="<html>"))

        async with ChainClient(settings=settings, transport=transport) as c:
            with pytest.raises(TransportFailure):
                await c.get_info()

    @pytest.mark.asyncio
    async def test_more_without_next_key(self, settings):
        rows = [{"id": i, "proposal_name": "prop1", "voter": f"v{i}"} for i in range(5)]
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"rows": rows[:2], "more": True})
        )

        async with ChainClient(settings=settings, transport=transport) as c:
            with pytest.raises(TransportFailure, match="next_key"):
                await c.fetch_votes()

    @pytest.mark.asyncio
    async def test_next_key_that_does_not_advance(self, settings):
        transport = httpx.MockTransport(
            lambda request: httpx.Response(200, json={"rows": [{"owner": "a"}], "more": True, "next_key": ""})
        )

        async with ChainClient(settings=settings, transport=transport) as c:
            with pytest.raises(TransportFailure):
                await c.get_table_rows("eosio", "eosio", "voters")

    @pytest.mark.asyncio
    async def test_malformed_vote_row(self, client, chain_node):
        chain_node.set_table("eosio.forum", "eosio.forum", "vote", [
            {"id": 0, "proposal_name": "prop1", "voter": "a", "vote": 1},
            {"id": "not-a-number", "proposal_name": "prop1"},
        ])

        with pytest.raises(TransportFailure, match="vote") as exc_info:
            await client.fetch_votes()

        assert exc_info.value.endpoint == "/v1/chain/get_table_rows"

    @pytest.mark.asyncio
    async def test_malformed_voter_row(self, client, chain_node):
        chain_node.set_table("eosio", "eosio", "voters", [{"proxy": "", "staked": "lots"}])

        with pytest.raises(TransportFailure, match="voters"):
            await client.fetch_voters()

    @pytest.mark.asyncio
    async def test_failed_delband_lookup_cancels_the_rest(self, settings):
        cancelled = []

        async def handler(request):
            body = json.loads(request.content)
            if body["scope"] == "bad":
                return httpx.Response(500, json={"error": "unavailable"})
            try:
                await asyncio.Event().wait()
            except asyncio.CancelledError:
                cancelled.append(body["scope"])
                raise

        async with ChainClient(settings=settings, transport=httpx.MockTransport(handler)) as c:
            with pytest.raises(TransportFailure):
                await c.fetch_delegated_stake({"a", "bad", "c", "d"})

        assert cancelled == ["a"]
