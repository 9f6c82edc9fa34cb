"""
Transaction plumbing: per-transaction deadlines, tagged outcomes and the
bounded retry used when a commit loses the race for the branch ref.
"""
import logging
import time
from dataclasses import dataclass
from typing import Callable, Optional, Union

from .errors import DeadlineExceeded

logger = logging.getLogger(__name__)


class Deadline:
    """Absolute cut-off for one transaction, shared by every remote call in it."""

    def __init__(self, seconds: float, clock: Callable[[], float] = time.monotonic):
        self._clock = clock
        self.expires_at = clock() + seconds

    def remaining(self) -> float:
        return self.expires_at - self._clock()

    def expired(self) -> bool:
        return self.remaining() <= 0

    def timeout(self, cap: float) -> float:
        """Timeout for the next call: the smaller of ``cap`` and what is left.

        Raises DeadlineExceeded when nothing is left.
        """
        left = self.remaining()
        if left <= 0:
            raise DeadlineExceeded("Transaction deadline exceeded")
        return min(cap, left)


# ── Outcomes ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Committed:
    version: str
    board_id: Optional[str] = None


@dataclass(frozen=True)
class Conflict:
    message: str = "Concurrent modification detected"


@dataclass(frozen=True)
class Failed:
    error: Exception


Outcome = Union[Committed, Conflict, Failed]


def retry_on_conflict(attempt: Callable[[int], Outcome], max_attempts: int) -> Outcome:
    """Run ``attempt(n)`` until it returns something other than Conflict.

    ``n`` counts from 1. At most ``max_attempts`` calls are made; once they
    are used up the last Conflict is returned.
    """
    if max_attempts < 1:
        raise ValueError("max_attempts must be >= 1")
    outcome: Outcome = Conflict()
    for n in range(1, max_attempts + 1):
        outcome = attempt(n)
        if not isinstance(outcome, Conflict):
            return outcome
        if n < max_attempts:
            logger.info(f"Attempt {n}/{max_attempts} hit a conflict, retrying")
    logger.warning(f"Giving up after {max_attempts} conflicting attempts")
    return outcome
