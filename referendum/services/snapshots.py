"""Immutable table snapshots handed from the sync passes to the tally pass"""
from dataclasses import dataclass
from decimal import Decimal
from typing import FrozenSet, Optional, Tuple

from referendum.exceptions import InconsistentSnapshot
from referendum.schemas.tables import CurrencyStats, DelegatedStakeRecord, Proposal, Vote, VoterRecord


@dataclass(frozen=True)
class ForumSnapshot:
    """Forum votes and proposals read at ``block_num``"""
    chain_id: str
    block_num: int
    votes: Tuple[Vote, ...] = ()
    proposals: Tuple[Proposal, ...] = ()

    @property
    def voter_names(self) -> FrozenSet[str]:
        return frozenset(vote.voter for vote in self.votes)


@dataclass(frozen=True)
class StakeSnapshot:
    """
    Stake data read at ``block_num``.

    ``voters`` are the records of forum voters, ``delegators`` the records of
    accounts delegating to a forum voter, and ``delband`` the delegated-stake
    rows of forum voters that have no voter record.
    """
    chain_id: str
    block_num: int
    voters: Tuple[VoterRecord, ...] = ()
    delegators: Tuple[VoterRecord, ...] = ()
    delband: Tuple[DelegatedStakeRecord, ...] = ()

    @property
    def records(self) -> Tuple[VoterRecord, ...]:
        return self.voters + self.delegators


@dataclass(frozen=True)
class SupplySnapshot:
    """Token supply read at ``block_num``, with the stats row it was parsed from"""
    chain_id: str
    block_num: int
    symbol: str
    supply: Decimal
    stats: Optional[CurrencyStats] = None


def check_consistency(
    head_block_num: int,
    forum: Optional[ForumSnapshot],
    stake: Optional[StakeSnapshot],
    supply: Optional[SupplySnapshot],
) -> None:
    """
    Raise InconsistentSnapshot unless the snapshots can be tallied together.

    They must all exist (stake data may only be missing while nobody has
    voted), come from the same chain, and none may be newer than the head
    block the tally is computed for.
    """
    if forum is None:
        raise InconsistentSnapshot("no forum snapshot")
    if supply is None:
        raise InconsistentSnapshot("no supply snapshot")
    if stake is None and forum.votes:
        raise InconsistentSnapshot("votes present but no stake snapshot")

    snapshots = [s for s in (forum, stake, supply) if s is not None]
    chains = {s.chain_id for s in snapshots}
    if len(chains) > 1:
        raise InconsistentSnapshot(f"snapshots from different chains: {sorted(chains)}")

    for snapshot in snapshots:
        if snapshot.block_num > head_block_num:
            raise InconsistentSnapshot(
                f"{type(snapshot).__name__} at block {snapshot.block_num} "
                f"is newer than head block {head_block_num}"
            )
