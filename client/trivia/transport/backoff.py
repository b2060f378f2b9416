"""Exponential reconnect backoff."""


class ReconnectBackoff:
    """Doubling reconnect delay with an upper bound.

    The k-th consecutive retry waits min(base * 2^(k-1), cap) seconds.
    reset() is called whenever a connection reaches the open state so the
    next failure starts again from the base delay.
    """

    def __init__(self, base: float, cap: float) -> None:
        if base <= 0 or cap < base:
            raise ValueError(f"invalid backoff bounds: base={base}, cap={cap}")
        self._base = base
        self._cap = cap
        self._attempts = 0

    @property
    def attempts(self) -> int:
        """Number of retries scheduled since the last reset."""
        return self._attempts

    def next_delay(self) -> float:
        """Count one more retry and return how long to wait before it."""
        # exponent clamp keeps the float finite for long retry runs
        delay = min(self._base * 2 ** min(self._attempts, 32), self._cap)
        self._attempts += 1
        return delay

    def reset(self) -> None:
        self._attempts = 0
