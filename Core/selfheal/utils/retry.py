from __future__ import annotations

from dataclasses import dataclass
from time import sleep
from typing import Callable, TypeVar

T = TypeVar("T")


@dataclass(frozen=True, slots=True)
class BackoffPolicy:
    """How many times to try an operation and what to do between attempts.

    With ``escalate_on_last`` the final failure is not raised; the escalation
    callable passed to :func:`run_with_backoff` is invoked instead.
    """

    max_attempts: int
    delay: float
    escalate_on_last: bool = False
    retry_on: tuple[type[BaseException], ...] = (Exception,)

    def __post_init__(self) -> None:
        if self.max_attempts < 1:
            raise ValueError("max_attempts must be at least 1")
        if self.delay < 0:
            raise ValueError("delay must not be negative")


def run_with_backoff(
    operation: Callable[[], T],
    policy: BackoffPolicy,
    *,
    escalate: Callable[[], T] | None = None,
    on_failure: Callable[[int, BaseException], None] | None = None,
) -> T:
    if policy.escalate_on_last and escalate is None:
        raise ValueError("An escalation callable is required when escalate_on_last is set")
    for attempt in range(1, policy.max_attempts + 1):
        try:
            return operation()
        except policy.retry_on as exc:
            if attempt == policy.max_attempts:
                if policy.escalate_on_last:
                    return escalate()
                raise
            if on_failure is not None:
                on_failure(attempt, exc)
            sleep(policy.delay)
    raise AssertionError("unreachable")
