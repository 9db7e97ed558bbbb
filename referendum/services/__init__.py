"""Referendum tally services"""
from .tallies import (
    Account,
    Proxy,
    Tally,
    TallyReport,
    compute_referendum,
    disjoint,
    filter_delegators,
    filter_voters_by_votes,
    generate_accounts,
    generate_proxies,
    generate_tallies,
)
from .chain_client import ChainClient
from .storage import SnapshotStore
from .sync import ReferendumSync
from .scheduler import PassScheduler

__all__ = [
    "ChainClient",
    "SnapshotStore",
    "ReferendumSync",
    "PassScheduler",
    # Tally calculator
    "Account",
    "Proxy",
    "Tally",
    "TallyReport",
    "compute_referendum",
    "disjoint",
    "filter_delegators",
    "filter_voters_by_votes",
    "generate_accounts",
    "generate_proxies",
    "generate_tallies",
]
