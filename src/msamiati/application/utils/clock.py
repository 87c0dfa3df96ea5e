import time


def wall_clock_ms() -> int:
    """Current time in epoch milliseconds."""
    return int(time.time() * 1000)
