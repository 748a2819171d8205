"""
Call spacing and quota cooldown.

The transition functions are pure: (state, now, outcome) -> new state.
`RateLimiter` holds the current state for one scan session and is the only
thing that replaces it. Times are seconds on whatever clock the caller uses
(time.monotonic in production, a fake clock in tests).
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum

from config import COOLDOWN_DURATION, MIN_SPACING

logger = logging.getLogger(__name__)


class Outcome(str, Enum):
    SUCCESS = "success"
    QUOTA_EXCEEDED = "quota_exceeded"
    FAILURE = "failure"            # a call was made and failed for any other reason
    NOT_ATTEMPTED = "not_attempted"  # rejected before reaching the network


@dataclass(frozen=True)
class RateLimiterState:
    last_invocation_at: float | None = None
    cooldown_until: float | None = None


def in_cooldown(state: RateLimiterState, now: float) -> bool:
    return state.cooldown_until is not None and now < state.cooldown_until


def cooldown_expired(state: RateLimiterState, now: float) -> bool:
    return state.cooldown_until is not None and now >= state.cooldown_until


def spacing_elapsed(state: RateLimiterState, now: float, min_spacing: float) -> bool:
    if state.last_invocation_at is None:
        return True
    return now - state.last_invocation_at >= min_spacing


def may_invoke(state: RateLimiterState, now: float, min_spacing: float, forced: bool = False) -> bool:
    """
    Cooldown is absolute. Spacing can be skipped only by `forced`, which the
    scheduler sets once after a persona change.
    """
    if in_cooldown(state, now):
        return False
    return forced or spacing_elapsed(state, now, min_spacing)


def clear_cooldown(state: RateLimiterState) -> RateLimiterState:
    return replace(state, cooldown_until=None)


def record_outcome(
    state: RateLimiterState,
    now: float,
    outcome: Outcome,
    cooldown_duration: float = COOLDOWN_DURATION,
) -> RateLimiterState:
    if outcome is Outcome.NOT_ATTEMPTED:
        return state
    if outcome is Outcome.QUOTA_EXCEEDED:
        return RateLimiterState(last_invocation_at=now, cooldown_until=now + cooldown_duration)
    # SUCCESS and FAILURE both count as a call for spacing purposes,
    # so an error is retried no sooner than a success would be.
    return replace(state, last_invocation_at=now)


class RateLimiter:
    def __init__(self, min_spacing: float = MIN_SPACING, cooldown_duration: float = COOLDOWN_DURATION):
        self.min_spacing = min_spacing
        self.cooldown_duration = cooldown_duration
        self.state = RateLimiterState()

    def in_cooldown(self, now: float) -> bool:
        return in_cooldown(self.state, now)

    def cooldown_expired(self, now: float) -> bool:
        return cooldown_expired(self.state, now)

    def may_invoke(self, now: float, forced: bool = False) -> bool:
        return may_invoke(self.state, now, self.min_spacing, forced)

    def clear_cooldown(self) -> None:
        self.state = clear_cooldown(self.state)

    def record(self, now: float, outcome: Outcome) -> None:
        self.state = record_outcome(self.state, now, outcome, self.cooldown_duration)
        if outcome is Outcome.QUOTA_EXCEEDED:
            logger.warning("Quota exceeded — cooling down until t=%.1f", self.state.cooldown_until)

    def reset(self) -> None:
        self.state = RateLimiterState()
