"""Stake-weighted referendum tallies from on-chain forum votes"""
from referendum.amounts import TokenAmount, format_amount, parse_token_string
from referendum.exceptions import InconsistentSnapshot, MalformedAmount, ReferendumError, TransportFailure

__version__ = "0.1.0"

__all__ = [
    "TokenAmount",
    "format_amount",
    "parse_token_string",
    "ReferendumError",
    "MalformedAmount",
    "TransportFailure",
    "InconsistentSnapshot",
]
