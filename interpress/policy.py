"""Item retry policy."""

from __future__ import annotations


class RetryPolicy:
    """Decides whether a failed item is retried and how long to wait first.

    ``attempts`` is always the number of attempts already made for the item,
    so an item that keeps failing is tried ``max_retries + 1`` times.
    """

    DEFAULT_MAX_RETRIES = 3

    def __init__(
        self,
        *,
        max_retries: int = DEFAULT_MAX_RETRIES,
        base_delay: float = 1.0,
        max_delay: float = 60.0,
    ) -> None:
        if max_retries < 0:
            raise ValueError("max_retries must not be negative")
        self.max_retries = max_retries
        self.base_delay = max(0.0, base_delay)
        self.max_delay = max(self.base_delay, max_delay)

    def should_retry(self, attempts: int) -> bool:
        return attempts <= self.max_retries

    def delay_for(self, attempts: int) -> float:
        """Exponential backoff: base, 2*base, 4*base, ... capped at max_delay."""

        exponent = max(0, attempts - 1)
        return min(self.base_delay * (2 ** exponent), self.max_delay)
