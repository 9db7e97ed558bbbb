"""Sync passes: fetch chain tables, publish snapshots and compute tallies"""
import asyncio
from datetime import datetime
from typing import Callable, Optional

import structlog
from pydantic import TypeAdapter

from referendum.amounts import parse_token_string
from referendum.config import Settings, get_settings
from referendum.schemas.tables import DelegatedStakeRecord, VoterRecord
from referendum.services.chain_client import ChainClient
from referendum.services.snapshots import (
    ForumSnapshot,
    StakeSnapshot,
    SupplySnapshot,
    check_consistency,
)
from referendum.services.storage import SnapshotStore
from referendum.services.tallies import (
    TallyReport,
    compute_referendum,
    disjoint,
    filter_delegators,
    filter_voters_by_votes,
)

logger = structlog.get_logger()

_voter_records = TypeAdapter(list[VoterRecord])
_delband_records = TypeAdapter(list[DelegatedStakeRecord])


class ReferendumSync:
    """
    Runs the sync and tally passes of one chain.

    The sync steps only build new snapshots. A pass runs all of its steps
    first and then hands the results to ``publish``, which writes them and
    swaps in the new snapshot references, so a failed pass publishes nothing.
    Snapshots themselves are immutable, so a tally always sees complete
    tables. Quick passes
    (forum + tallies) and long passes (supply + stake) are each serialized by
    their own lock and may overlap with each other.
    """

    def __init__(
        self,
        client: ChainClient,
        store: SnapshotStore,
        settings: Optional[Settings] = None,
        clock: Callable[[], datetime] = datetime.utcnow,
    ):
        self.client = client
        self.store = store
        self.settings = settings or get_settings()
        self.clock = clock

        self.forum: Optional[ForumSnapshot] = None
        self.stake: Optional[StakeSnapshot] = None
        self.supply: Optional[SupplySnapshot] = None
        self.report: Optional[TallyReport] = None

        self._quick_lock = asyncio.Lock()
        self._long_lock = asyncio.Lock()

    @property
    def chain_id(self) -> str:
        return self.store.chain_id

    # Categories
    @property
    def forum_category(self) -> str:
        return self.settings.forum_contract

    @property
    def system_category(self) -> str:
        return self.settings.system_contract

    async def sync_forum(self, head_block_num: int) -> ForumSnapshot:
        """Fetch forum votes and proposals."""
        logger.info("syncForum", head_block_num=head_block_num)

        votes = await self.client.fetch_votes()
        proposals = await self.client.fetch_proposals()

        return ForumSnapshot(
            chain_id=self.chain_id,
            block_num=head_block_num,
            votes=tuple(votes),
            proposals=tuple(proposals),
        )

    async def sync_eosio(self, head_block_num: int, forum: Optional[ForumSnapshot] = None) -> StakeSnapshot:
        """
        Fetch stake records of the forum voters in ``forum`` (default: the
        published forum snapshot).

        Voters without a voter record have their self-delegated stake looked
        up in the delband table instead.
        """
        logger.info("syncEosio", head_block_num=head_block_num)
        forum = forum or self.forum
        votes = forum.votes if forum else ()

        records = self._load_debug_records("voters", _voter_records)
        if records is None:
            records = await self.client.fetch_voters()

        voters = filter_voters_by_votes(records, votes)
        delegators = filter_delegators(records, votes)

        owners_without_stake = disjoint(
            (vote.voter for vote in votes),
            (record.owner for record in voters),
        )
        delband = self._load_debug_records("delband", _delband_records)
        if delband is None:
            delband = await self.client.fetch_delegated_stake(owners_without_stake)

        logger.info(
            "Filtered voters",
            voters=len(voters),
            delegators=len(delegators),
            owners_without_stake=len(owners_without_stake),
        )

        return StakeSnapshot(
            chain_id=self.chain_id,
            block_num=head_block_num,
            voters=tuple(voters),
            delegators=tuple(delegators),
            delband=tuple(delband),
        )

    async def sync_token(self, head_block_num: int) -> SupplySnapshot:
        """Fetch the token supply."""
        logger.info("syncToken", head_block_num=head_block_num)
        symbol = self.settings.token_symbol

        stats = await self.client.fetch_currency_stats()
        supply = parse_token_string(stats.supply, symbol, self.settings.token_precision).amount

        return SupplySnapshot(
            chain_id=self.chain_id,
            block_num=head_block_num,
            symbol=symbol,
            supply=supply,
            stats=stats,
        )

    async def calculate_tallies(
        self,
        head_block_num: int,
        forum: Optional[ForumSnapshot] = None,
        stake: Optional[StakeSnapshot] = None,
        supply: Optional[SupplySnapshot] = None,
    ) -> TallyReport:
        """
        Compute accounts, proxies and tallies.

        Snapshots not passed in default to the published ones.
        """
        logger.info("calculateTallies", head_block_num=head_block_num)

        forum = forum or self.forum
        stake = stake or self.stake
        supply = supply or self.supply
        check_consistency(head_block_num, forum, stake, supply)

        report = compute_referendum(
            block_num=head_block_num,
            proposals=forum.proposals,
            votes=forum.votes,
            voters=stake.records if stake else (),
            delband=stake.delband if stake else (),
            supply=supply.supply,
            precision=self.settings.token_precision,
            now=self.clock(),
        )

        for tally in report.tallies:
            logger.info(
                "Tally",
                proposal=tally.proposal_name,
                total=str(tally.total),
                percentage=str(tally.percentage),
            )
        return report

    def publish(
        self,
        head_block_num: int,
        forum: Optional[ForumSnapshot] = None,
        stake: Optional[StakeSnapshot] = None,
        supply: Optional[SupplySnapshot] = None,
        report: Optional[TallyReport] = None,
    ) -> None:
        """Persist the tables of a completed pass, then swap in its snapshots."""
        if forum is not None:
            self.store.save(f"{self.forum_category}/vote", head_block_num, forum.votes)
            self.store.save(f"{self.forum_category}/proposal", head_block_num, forum.proposals)
        if stake is not None:
            self.store.save(f"{self.system_category}/voters", head_block_num, stake.records)
            self.store.save(f"{self.system_category}/delband", head_block_num, stake.delband)
        if supply is not None:
            self.store.save(
                f"{self.settings.token_contract}/{supply.symbol}",
                head_block_num,
                {supply.symbol: supply.stats},
            )
        if report is not None:
            self.store.save("referendum/accounts", head_block_num, report.accounts)
            self.store.save("referendum/proxies", head_block_num, report.proxies)
            self.store.save("referendum/tallies", head_block_num, report.tallies)

        if forum is not None:
            self.forum = forum
        if stake is not None:
            self.stake = stake
        if supply is not None:
            self.supply = supply
        if report is not None:
            self.report = report

    async def run_quick(self, head_block_num: int) -> TallyReport:
        """Forum votes and tallies."""
        async with self._quick_lock:
            forum = await self.sync_forum(head_block_num)
            report = await self.calculate_tallies(head_block_num, forum=forum)
            self.publish(head_block_num, forum=forum, report=report)
            return report

    async def run_long(self, head_block_num: int) -> None:
        """Token supply and stake tables."""
        async with self._long_lock:
            supply = await self.sync_token(head_block_num)
            stake = await self.sync_eosio(head_block_num)
            self.publish(head_block_num, stake=stake, supply=supply)

    async def run_initial(self, head_block_num: int) -> TallyReport:
        """Every table, then tallies."""
        async with self._quick_lock, self._long_lock:
            forum = await self.sync_forum(head_block_num)
            stake = await self.sync_eosio(head_block_num, forum=forum)
            supply = await self.sync_token(head_block_num)
            report = await self.calculate_tallies(head_block_num, forum=forum, stake=stake, supply=supply)
            self.publish(head_block_num, forum=forum, stake=stake, supply=supply, report=report)
            return report

    def _load_debug_records(self, table: str, adapter: TypeAdapter):
        """In debug mode, reuse the latest on-disk snapshot of a stake table."""
        if not self.settings.debug:
            return None
        payload = self.store.load_latest(f"{self.system_category}/{table}")
        if payload is None:
            return None
        logger.debug("Reusing latest snapshot", table=table)
        return adapter.validate_python(payload)
