"""Errors raised by a sync or tally pass.

All of them are fatal to the pass that raised them. Retrying is left to the
scheduler, which simply tries again on its next tick.
"""
from typing import Optional


class ReferendumError(Exception):
    """Base class for referendum tally errors"""


class MalformedAmount(ReferendumError, ValueError):
    """A token amount string could not be parsed"""

    def __init__(self, value: str, reason: str):
        self.value = value
        self.reason = reason
        super().__init__(f"Malformed token amount {value!r}: {reason}")


class TransportFailure(ReferendumError):
    """A request to the chain node failed or returned an unusable body"""

    def __init__(self, endpoint: str, message: str, status_code: Optional[int] = None):
        self.endpoint = endpoint
        self.status_code = status_code
        detail = f" (HTTP {status_code})" if status_code is not None else ""
        super().__init__(f"{endpoint}{detail}: {message}")


class InconsistentSnapshot(ReferendumError):
    """Table snapshots handed to a tally pass do not belong together"""
