from __future__ import annotations

import random
import threading
import time
from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class RetryPolicy:
    """
    Configuration for cursor reopen behavior.

    max_retries=None retries forever; attempt_timeout_s=None waits on each
    advance call indefinitely. The zero delays reopen immediately.
    """

    max_retries: Optional[int] = None
    base_delay_s: float = 0.0
    max_delay_s: float = 30.0
    jitter_s: float = 0.0
    attempt_timeout_s: Optional[float] = None

    def exhausted(self, retries: int) -> bool:
        """True once `retries` reopen attempts exceed the configured bound."""
        return self.max_retries is not None and retries > self.max_retries


def backoff_delay(policy: RetryPolicy, attempt_index: int) -> float:
    """Exponential backoff with jitter, capped at policy.max_delay_s."""
    if policy.base_delay_s <= 0 and policy.jitter_s <= 0:
        return 0.0
    delay = min(policy.base_delay_s * (2**attempt_index), policy.max_delay_s)
    delay += random.uniform(0, policy.jitter_s)
    return delay


def backoff_sleep(policy: RetryPolicy, attempt_index: int, token: Optional["CancellationToken"] = None) -> None:
    """Sleep for the backoff delay, waking early if the token is cancelled."""
    delay = backoff_delay(policy, attempt_index)
    if delay <= 0:
        return
    if token is not None:
        token.wait(delay)
    else:
        time.sleep(delay)


class CancellationToken:
    """Caller-owned flag checked before every open and advance."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout_s: float) -> bool:
        """Block up to timeout_s; returns True when cancelled meanwhile."""
        return self._event.wait(timeout_s)
