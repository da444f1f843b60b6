from __future__ import annotations

import time


def wait_until(predicate, timeout: float, interval: float = 0.2):
    """Waits for a predicate to return a truthy value."""

    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        result = predicate()
        if result:
            return result
        time.sleep(min(interval, max(deadline - time.monotonic(), 0.0)))
    return predicate()


def ms_to_seconds(milliseconds: int | float) -> float:
    return max(float(milliseconds), 0.0) / 1000.0
