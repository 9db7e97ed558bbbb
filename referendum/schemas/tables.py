"""Schemas for the chain tables read by a sync pass"""
from datetime import datetime, timezone
from decimal import Decimal
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field

from referendum.amounts import parse_token_string


def _as_utc(value: datetime) -> datetime:
    """Chain timestamps carry no zone and are UTC"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


class Vote(BaseModel):
    """Row of the forum contract's ``vote`` table"""
    model_config = ConfigDict(frozen=True)

    id: Optional[int] = None
    proposal_name: str
    voter: str
    vote: int = 0
    vote_json: str = ""
    updated_at: Optional[datetime] = None


class Proposal(BaseModel):
    """Row of the forum contract's ``proposal`` table"""
    model_config = ConfigDict(frozen=True)

    proposal_name: str
    proposer: str
    title: str = ""
    proposal_json: str = ""
    created_at: Optional[datetime] = None
    expires_at: Optional[datetime] = None

    def is_open(self, now: datetime) -> bool:
        """Open proposals have no expiration or one later than ``now``"""
        if self.expires_at is None:
            return True
        return _as_utc(self.expires_at) > _as_utc(now)


class VoterRecord(BaseModel):
    """Row of the system contract's ``voters`` table, ``staked`` in token units"""
    model_config = ConfigDict(frozen=True)

    owner: str
    proxy: str = ""
    producers: List[str] = Field(default_factory=list)
    staked: Decimal = Decimal(0)
    is_proxy: bool = False

    @property
    def delegates_to(self) -> Optional[str]:
        return self.proxy or None

    @classmethod
    def from_chain_row(cls, row: Dict[str, Any], precision: int) -> "VoterRecord":
        """Build from a raw row where ``staked`` is in the token's smallest unit"""
        return cls(
            owner=row["owner"],
            proxy=row.get("proxy") or "",
            producers=row.get("producers") or [],
            staked=Decimal(int(row.get("staked") or 0)).scaleb(-precision),
            is_proxy=bool(row.get("is_proxy")),
        )


class DelegatedStakeRecord(BaseModel):
    """Row of the system contract's ``delband`` table, weights in token units"""
    model_config = ConfigDict(frozen=True, populate_by_name=True)

    from_: str = Field(alias="from")
    to: str
    net_weight: Decimal = Decimal(0)
    cpu_weight: Decimal = Decimal(0)

    @property
    def weight(self) -> Decimal:
        return self.net_weight + self.cpu_weight

    @property
    def is_self_delegation(self) -> bool:
        return self.from_ == self.to

    @classmethod
    def from_chain_row(cls, row: Dict[str, Any], symbol: str, precision: int) -> "DelegatedStakeRecord":
        """Build from a raw row whose weights are asset strings"""
        return cls(
            from_=row["from"],
            to=row["to"],
            net_weight=parse_token_string(row["net_weight"], symbol, precision).amount,
            cpu_weight=parse_token_string(row["cpu_weight"], symbol, precision).amount,
        )


class CurrencyStats(BaseModel):
    """Currency stats of a token symbol"""
    supply: str
    max_supply: str = ""
    issuer: str = ""
