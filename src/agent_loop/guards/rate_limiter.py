"""Fixed-window call budget with blocking backpressure."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable

from agent_loop.config import Settings
from agent_loop.models import QuotaDecision
from agent_loop.state.quota import QuotaLedger, QuotaState

logger = logging.getLogger(__name__)


def window_start_for(now: float, window_seconds: int) -> int:
    """Return the window boundary at or before ``now``."""

    whole = int(now)
    return whole - whole % window_seconds


class RateLimiter:
    """Counts calls per boundary-aligned window and waits out exhausted windows."""

    def __init__(  # noqa: PLR0913
        self,
        ledger: QuotaLedger,
        *,
        limit: int = 100,
        window_seconds: int = 3_600,
        clock: Callable[[], float] = time.time,
        sleep: Callable[[float], None] = time.sleep,
        poll_interval_seconds: float = 1.0,
        countdown_interval_seconds: int = 60,
    ) -> None:
        self.ledger = ledger
        self.limit = limit
        self.window_seconds = window_seconds
        self.clock = clock
        self.sleep = sleep
        self.poll_interval_seconds = poll_interval_seconds
        self.countdown_interval_seconds = countdown_interval_seconds
        self.state = QuotaState(call_count=0, window_start=self._current_window_start())

    @classmethod
    def from_settings(cls, settings: Settings) -> RateLimiter:
        return cls(
            QuotaLedger(settings.rate_limiter_state_path),
            limit=settings.rate_limit.calls_per_window,
            window_seconds=settings.rate_limit.window_seconds,
        )

    def load(self) -> RateLimiter:
        """Load persisted state, initializing the current window when none exists."""

        loaded = self.ledger.load()
        if loaded is None:
            self.reset()
        else:
            self.state = loaded
            logger.debug(
                "Rate limiter state loaded: call_count=%d, window_start=%d",
                loaded.call_count,
                loaded.window_start,
            )
        return self

    def reset(self) -> None:
        self.state = QuotaState(call_count=0, window_start=self._current_window_start())
        self.ledger.save(self.state)
        logger.debug("Rate limiter counter zeroed: window_start=%d", self.state.window_start)

    def record_call(self) -> None:
        self.state = QuotaState(
            call_count=self.state.call_count + 1,
            window_start=self.state.window_start,
        )
        self.ledger.save(self.state)
        logger.debug("Rate limiter call recorded: call_count=%d", self.state.call_count)

    def current_count(self) -> int:
        return self.state.call_count

    def remaining(self) -> int:
        return max(0, self.limit - self.state.call_count)

    def check(self) -> QuotaDecision:
        if self.state.call_count < self.limit:
            return QuotaDecision.ALLOWED
        return QuotaDecision.DENIED

    def check_window_rollover(self) -> bool:
        """Start a new window if the clock has crossed one or more boundaries."""

        current_start = self._current_window_start()
        if current_start <= self.state.window_start:
            return False
        logger.info("Window boundary crossed, resetting rate limiter counter")
        self.state = QuotaState(call_count=0, window_start=current_start)
        self.ledger.save(self.state)
        return True

    def seconds_until_reset(self) -> int:
        left = self.state.window_start + self.window_seconds - int(self.clock())
        return min(self.window_seconds, max(0, left))

    def wait_for_reset(self, should_stop: Callable[[], bool] | None = None) -> bool:
        """Block until the window resets; return False if ``should_stop`` interrupts the wait."""

        wait_seconds = self.seconds_until_reset()
        if wait_seconds > 0:
            logger.info(
                "Rate limit reached. Waiting %d seconds until window resets...",
                wait_seconds,
            )

        last_countdown: float | None = None
        while True:
            remaining = self.seconds_until_reset()
            if remaining <= 0:
                break
            if should_stop is not None and should_stop():
                logger.info("Rate limit wait interrupted with %d seconds remaining", remaining)
                return False
            now = self.clock()
            if last_countdown is None or now - last_countdown >= self.countdown_interval_seconds:
                minutes, seconds = divmod(remaining, 60)
                logger.info("Rate limit reset in %dm %ds...", minutes, seconds)
                last_countdown = now
            self.sleep(min(self.poll_interval_seconds, remaining))

        self.check_window_rollover()
        if wait_seconds > 0:
            logger.info("Rate limit reset complete. Resuming operations.")
        return True

    def status(self) -> str:
        """Human-readable usage; the used count is reported even past the limit."""

        return f"{self.state.call_count}/{self.limit} calls used ({self.remaining()} remaining)"

    def _current_window_start(self) -> int:
        return window_start_for(self.clock(), self.window_seconds)
