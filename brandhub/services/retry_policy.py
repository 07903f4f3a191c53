"""
Retry policy for failed dispatches

Capped exponential backoff with a bounded number of attempts. The ledger
only records attempts; this policy decides whether and when another one
is allowed.
"""
from datetime import datetime, timedelta
from typing import Optional

from brandhub.core.config import Settings


class RetryPolicy:
    """
    max_attempts counts every dispatch of a submission, the first included.
    The delay after attempt n is base_delay * 2 ** (n - 1), capped at max_delay.
    """

    def __init__(self, max_attempts: int = 3, base_delay: float = 5.0, max_delay: float = 300.0):
        if max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        self.max_attempts = max_attempts
        self.base_delay = base_delay
        self.max_delay = max_delay

    @classmethod
    def from_settings(cls, settings: Settings) -> "RetryPolicy":
        return cls(
            max_attempts=settings.retry_max_attempts,
            base_delay=settings.retry_base_delay_seconds,
            max_delay=settings.retry_max_delay_seconds,
        )

    def can_retry(self, attempts_made: int) -> bool:
        return attempts_made < self.max_attempts

    def delay_for(self, attempts_made: int) -> float:
        """Seconds to wait after the given number of attempts"""
        if attempts_made < 1:
            return 0.0
        return min(self.base_delay * (2 ** (attempts_made - 1)), self.max_delay)

    def next_retry_at(self, attempts_made: int, last_attempt_at: datetime) -> Optional[datetime]:
        """When the next attempt becomes due, or None once the policy is exhausted"""
        if not self.can_retry(attempts_made):
            return None
        return last_attempt_at + timedelta(seconds=self.delay_for(attempts_made))

    def is_due(self, attempts_made: int, last_attempt_at: datetime, now: datetime) -> bool:
        next_at = self.next_retry_at(attempts_made, last_attempt_at)
        return next_at is not None and now >= next_at
