"""Pytest configuration and fixtures for referendum tally tests"""
import pytest

from referendum.config import Settings
from tests.factories import TEST_CHAIN_ID, FakeChainNode


@pytest.fixture
def settings(tmp_path) -> Settings:
    """Settings pointing at a temporary data directory"""
    return Settings(
        chain_id=TEST_CHAIN_ID,
        rpc_url="http://node.test",
        token_symbol="TEST",
        token_precision=4,
        table_page_limit=2,
        delband_concurrency=2,
        data_dir=str(tmp_path / "data"),
    )


@pytest.fixture
def chain_node() -> FakeChainNode:
    """Fake node populated with the end-to-end referendum scenario"""
    node = FakeChainNode(head_block_num=1000)
    node.set_table("eosio.forum", "eosio.forum", "vote", [
        {"id": 0, "proposal_name": "prop1", "voter": "a", "vote": 1, "vote_json": "", "updated_at": "2019-06-01T00:00:00"},
        {"id": 1, "proposal_name": "prop1", "voter": "p", "vote": 1, "vote_json": "", "updated_at": "2019-06-01T00:00:00"},
        {"id": 2, "proposal_name": "prop2", "voter": "b", "vote": 0, "vote_json": "", "updated_at": "2019-06-01T00:00:00"},
    ])
    node.set_table("eosio.forum", "eosio.forum", "proposal", [
        {"proposal_name": "prop1", "proposer": "alice", "title": "First", "proposal_json": "{}",
         "created_at": "2019-06-01T00:00:00", "expires_at": "2100-01-01T00:00:00"},
        {"proposal_name": "prop2", "proposer": "alice", "title": "Second", "proposal_json": "{}",
         "created_at": "2019-06-01T00:00:00", "expires_at": "2100-01-01T00:00:00"},
        {"proposal_name": "old", "proposer": "alice", "title": "Expired", "proposal_json": "{}",
         "created_at": "2018-06-01T00:00:00", "expires_at": "2018-07-01T00:00:00"},
    ])
    # staked is in the smallest token unit (precision 4)
    node.set_table("eosio", "eosio", "voters", [
        {"owner": "a", "proxy": "", "producers": ["bp1"], "staked": 5000000, "is_proxy": 0},
        {"owner": "p", "proxy": "", "producers": [], "staked": 0, "is_proxy": 1},
        {"owner": "x", "proxy": "p", "producers": [], "staked": 100000, "is_proxy": 0},
        {"owner": "z", "proxy": "", "producers": ["bp2"], "staked": 90000000, "is_proxy": 0},
    ])
    node.set_table("eosio", "b", "delband", [
        {"from": "b", "to": "b", "net_weight": "100.0000 TEST", "cpu_weight": "50.0000 TEST"},
        {"from": "b", "to": "c", "net_weight": "7.0000 TEST", "cpu_weight": "7.0000 TEST"},
    ])
    node.currency_stats = {"TEST": {"supply": "10000.0000 TEST", "max_supply": "100000.0000 TEST", "issuer": "eosio"}}
    return node
