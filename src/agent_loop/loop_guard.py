"""Per-iteration facade over the rate limiter and the circuit breaker."""

from __future__ import annotations

import logging
from collections.abc import Callable, Sequence

from agent_loop.config import Settings
from agent_loop.guards.circuit_breaker import CircuitBreaker
from agent_loop.guards.rate_limiter import RateLimiter
from agent_loop.models import LoopDecision, QuotaDecision

logger = logging.getLogger(__name__)


class LoopGuard:
    """The two calls a loop driver makes around each agent invocation.

    ``acquire_call_slot`` before invoking the agent, ``after_iteration`` once
    the new completion vector and error text are known.
    """

    def __init__(self, circuit_breaker: CircuitBreaker, rate_limiter: RateLimiter) -> None:
        self.circuit_breaker = circuit_breaker
        self.rate_limiter = rate_limiter

    @classmethod
    def from_settings(cls, settings: Settings) -> LoopGuard:
        return cls(
            circuit_breaker=CircuitBreaker.from_settings(settings).load(),
            rate_limiter=RateLimiter.from_settings(settings).load(),
        )

    def acquire_call_slot(self, should_stop: Callable[[], bool] | None = None) -> QuotaDecision:
        self.rate_limiter.check_window_rollover()
        if self.rate_limiter.check() is QuotaDecision.DENIED:
            logger.info("Call budget exhausted: %s", self.rate_limiter.status())
            if not self.rate_limiter.wait_for_reset(should_stop=should_stop):
                return QuotaDecision.DENIED
        self.rate_limiter.record_call()
        return QuotaDecision.ALLOWED

    def after_iteration(
        self,
        before: Sequence[bool],
        after: Sequence[bool],
        error_text: str | None = None,
    ) -> LoopDecision:
        return self.circuit_breaker.observe_iteration(before, after, error_text=error_text)

    def status_lines(self) -> list[str]:
        return [
            self.circuit_breaker.status(),
            f"Rate limiter: {self.rate_limiter.status()}",
        ]
