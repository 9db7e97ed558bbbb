"""Table row schemas"""
from .tables import Vote, Proposal, VoterRecord, DelegatedStakeRecord, CurrencyStats

__all__ = [
    "Vote",
    "Proposal",
    "VoterRecord",
    "DelegatedStakeRecord",
    "CurrencyStats",
]
