"""
Referendum Tally Calculator

Reconciles cast votes, voter (stake) records and delegated-stake records into
per-account voting weight, resolves one hop of proxy delegation and sums the
weighted votes of every open proposal against the token supply.

Weight flows through exactly one route per (account, proposal):
1. An account without a proxy that voted contributes its own weight directly
2. An account with a proxy never contributes directly, even if it voted; its
   weight is pooled under the proxy, which contributes the pool when it votes
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime
from decimal import Decimal, ROUND_DOWN
from typing import Any, Dict, Iterable, List, Optional, Set

import structlog

from referendum.schemas.tables import DelegatedStakeRecord, Proposal, Vote, VoterRecord

logger = structlog.get_logger()

SOURCE_VOTERS = "voters"
SOURCE_DELBAND = "delband"
SOURCE_NONE = "none"


@dataclass(frozen=True)
class Account:
    """Effective voting weight of an account that cast a forum vote"""
    owner: str
    weight: Decimal
    delegates_to: Optional[str] = None
    source: str = SOURCE_VOTERS  # voters, delband or none

    @property
    def is_direct(self) -> bool:
        return self.delegates_to is None

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "weight": str(self.weight),
            "delegates_to": self.delegates_to,
            "source": self.source,
        }


@dataclass(frozen=True)
class Proxy:
    """A registered proxy that voted, with the weight delegated to it"""
    owner: str
    weight: Decimal
    delegators: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "owner": self.owner,
            "weight": str(self.weight),
            "delegators": list(self.delegators),
        }


@dataclass(frozen=True)
class Tally:
    """Weighted result of one open proposal"""
    proposal_name: str
    block_num: int
    total: Decimal
    percentage: Decimal  # of current token supply
    totals_by_vote: Dict[int, Decimal] = field(default_factory=dict)
    accounts: int = 0  # direct contributors
    proxies: int = 0
    title: str = ""

    def to_dict(self) -> Dict[str, Any]:
        return {
            "proposal_name": self.proposal_name,
            "title": self.title,
            "block_num": self.block_num,
            "total": str(self.total),
            "percentage": str(self.percentage),
            "totals_by_vote": {str(k): str(v) for k, v in sorted(self.totals_by_vote.items())},
            "accounts": self.accounts,
            "proxies": self.proxies,
        }


@dataclass(frozen=True)
class TallyReport:
    """Everything a tally pass produces"""
    block_num: int
    accounts: List[Account]
    proxies: List[Proxy]
    tallies: List[Tally]

    def tally_for(self, proposal_name: str) -> Optional[Tally]:
        for tally in self.tallies:
            if tally.proposal_name == proposal_name:
                return tally
        return None


def disjoint(voters: Iterable[str], owners: Iterable[str]) -> Set[str]:
    """Accounts present in ``voters`` but absent from ``owners``"""
    return set(voters) - set(owners)


def filter_voters_by_votes(voters: Iterable[VoterRecord], votes: Iterable[Vote]) -> List[VoterRecord]:
    """Keep only the voter records whose owner cast at least one forum vote."""
    vote_owners = {vote.voter for vote in votes}
    return [record for record in voters if record.owner in vote_owners]


def filter_delegators(voters: Iterable[VoterRecord], votes: Iterable[Vote]) -> List[VoterRecord]:
    """Keep the voter records that delegate to an account that cast a forum vote."""
    vote_owners = {vote.voter for vote in votes}
    return [record for record in voters if record.proxy and record.proxy in vote_owners]


def generate_accounts(
    votes: Iterable[Vote],
    delband: Iterable[DelegatedStakeRecord],
    voters: Iterable[VoterRecord],
) -> List[Account]:
    """
    Resolve one Account per distinct forum voter.

    Weight comes from the voter record when one exists, otherwise from the
    account's self-delegated stake (``from == to == owner``). Accounts with
    neither are kept with zero weight.

    Args:
        votes: Forum votes of the pass
        delband: Delegated-stake rows of voters without a voter record
        voters: Voter records, at least those of the forum voters

    Returns:
        Accounts sorted by owner
    """
    records = {record.owner: record for record in voters}

    self_stake: Dict[str, Decimal] = defaultdict(Decimal)
    for row in delband:
        if row.is_self_delegation:
            self_stake[row.from_] += row.weight

    accounts: List[Account] = []
    for owner in sorted({vote.voter for vote in votes}):
        record = records.get(owner)
        if record is not None:
            account = Account(
                owner=owner,
                weight=record.staked,
                delegates_to=record.delegates_to,
                source=SOURCE_VOTERS,
            )
        elif owner in self_stake:
            account = Account(owner=owner, weight=self_stake[owner], source=SOURCE_DELBAND)
        else:
            account = Account(owner=owner, weight=Decimal(0), source=SOURCE_NONE)
        accounts.append(account)

    logger.debug(
        "Generated accounts",
        accounts=len(accounts),
        delegating=sum(1 for a in accounts if not a.is_direct),
        without_stake=sum(1 for a in accounts if a.source == SOURCE_NONE),
    )
    return accounts


def generate_proxies(
    votes: Iterable[Vote],
    voters: Iterable[VoterRecord],
    accounts: Iterable[Account],
) -> List[Proxy]:
    """
    Resolve the registered proxies that cast a forum vote.

    A proxy's weight is the sum over every record delegating to it. Only one
    hop is followed: stake delegated to a proxy that itself delegates is
    counted under the first proxy only. The proxy's own stake is never part
    of its pool.

    Args:
        votes: Forum votes of the pass
        voters: Voter records of the forum voters and of their delegators
        accounts: Accounts from ``generate_accounts``

    Returns:
        Proxies sorted by owner
    """
    vote_owners = {vote.voter for vote in votes}
    account_weights = {account.owner: account.weight for account in accounts}

    records: Dict[str, VoterRecord] = {}
    for record in voters:
        records.setdefault(record.owner, record)

    pools: Dict[str, Dict[str, Decimal]] = defaultdict(dict)
    for record in records.values():
        if record.proxy and record.proxy != record.owner:
            pools[record.proxy][record.owner] = account_weights.get(record.owner, record.staked)

    proxies: List[Proxy] = []
    for owner in sorted(vote_owners):
        record = records.get(owner)
        if record is None or not record.is_proxy:
            continue
        pool = pools.get(owner, {})
        proxies.append(Proxy(
            owner=owner,
            weight=sum(pool.values(), Decimal(0)),
            delegators=sorted(pool),
        ))

    logger.debug("Generated proxies", proxies=len(proxies))
    return proxies


def calculate_percentage(total: Decimal, supply: Decimal, precision: int = 4) -> Decimal:
    """Percentage of ``supply`` that ``total`` represents, truncated to ``precision``."""
    quantum = Decimal(1).scaleb(-precision)
    if supply <= 0:
        return Decimal(0).quantize(quantum)
    return (total * 100 / supply).quantize(quantum, rounding=ROUND_DOWN)


def generate_tallies(
    block_num: int,
    proposals: Iterable[Proposal],
    votes: Iterable[Vote],
    accounts: Iterable[Account],
    proxies: Iterable[Proxy],
    supply: Decimal,
    precision: int = 4,
    now: Optional[datetime] = None,
) -> List[Tally]:
    """
    Sum the weighted votes of every open proposal.

    Every open proposal yields exactly one Tally, including proposals nobody
    voted on. Votes of delegating accounts are ignored here; their weight is
    already inside their proxy's pool.

    Args:
        block_num: Head block number the tally is computed for
        proposals: Forum proposals; expired ones are skipped
        votes: Forum votes of the pass
        accounts: Accounts from ``generate_accounts``
        proxies: Proxies from ``generate_proxies``
        supply: Current token supply
        precision: Token precision used for the percentage
        now: Reference time for expiration, defaults to utcnow

    Returns:
        Tallies sorted by proposal name
    """
    now = now or datetime.utcnow()
    direct = {account.owner: account for account in accounts if account.is_direct}
    proxy_by_owner = {proxy.owner: proxy for proxy in proxies}

    votes_by_proposal: Dict[str, List[Vote]] = defaultdict(list)
    for vote in votes:
        votes_by_proposal[vote.proposal_name].append(vote)

    tallies: List[Tally] = []
    for proposal in sorted(proposals, key=lambda p: p.proposal_name):
        if not proposal.is_open(now):
            continue

        total = Decimal(0)
        totals_by_vote: Dict[int, Decimal] = defaultdict(Decimal)
        direct_count = 0
        proxy_count = 0
        seen: Set[str] = set()

        for vote in votes_by_proposal.get(proposal.proposal_name, []):
            if vote.voter in seen:
                continue
            seen.add(vote.voter)

            weight = Decimal(0)
            account = direct.get(vote.voter)
            if account is not None:
                weight += account.weight
                direct_count += 1
            proxy = proxy_by_owner.get(vote.voter)
            if proxy is not None:
                weight += proxy.weight
                proxy_count += 1

            if account is None and proxy is None:
                continue
            total += weight
            totals_by_vote[vote.vote] += weight

        tallies.append(Tally(
            proposal_name=proposal.proposal_name,
            block_num=block_num,
            total=total,
            percentage=calculate_percentage(total, supply, precision),
            totals_by_vote=dict(totals_by_vote),
            accounts=direct_count,
            proxies=proxy_count,
            title=proposal.title,
        ))

    logger.debug("Generated tallies", block_num=block_num, tallies=len(tallies))
    return tallies


def compute_referendum(
    block_num: int,
    proposals: Iterable[Proposal],
    votes: Iterable[Vote],
    voters: Iterable[VoterRecord],
    delband: Iterable[DelegatedStakeRecord],
    supply: Decimal,
    precision: int = 4,
    now: Optional[datetime] = None,
) -> TallyReport:
    """
    Run the full tally pipeline over one set of table snapshots.

    ``voters`` must hold the records of the forum voters and of the accounts
    delegating to them; records of unrelated accounts are harmless.
    """
    votes = list(votes)
    voters = list(voters)
    accounts = generate_accounts(votes, delband, voters)
    proxies = generate_proxies(votes, voters, accounts)
    tallies = generate_tallies(block_num, proposals, votes, accounts, proxies, supply, precision, now)
    return TallyReport(block_num=block_num, accounts=accounts, proxies=proxies, tallies=tallies)
