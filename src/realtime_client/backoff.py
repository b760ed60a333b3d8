"""Exponential reconnect backoff."""


def backoff_delay(attempt: int, base: float, maximum: float) -> float:
    """Delay before retry number *attempt* (0-based): min(base * 2**attempt, maximum)."""
    if attempt < 0:
        raise ValueError("attempt must be non-negative")
    # Cap the exponent so huge attempt counts don't overflow float math.
    return min(base * (2 ** min(attempt, 32)), maximum)


class ExponentialBackoff:
    """Attempt counter with a bounded budget."""

    def __init__(self, base: float = 1.0, maximum: float = 30.0, max_attempts: int = 10):
        self.base = base
        self.maximum = maximum
        self.max_attempts = max_attempts
        self.attempts = 0

    @property
    def exhausted(self) -> bool:
        return self.attempts >= self.max_attempts

    def next_delay(self) -> float:
        """Delay for the upcoming retry; counts it against the budget."""
        delay = backoff_delay(self.attempts, self.base, self.maximum)
        self.attempts += 1
        return delay

    def reset(self) -> None:
        self.attempts = 0
