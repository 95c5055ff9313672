"""Stuck-loop detection from completion vectors and repeated errors."""

from __future__ import annotations

import hashlib
import logging
from collections.abc import Sequence

from agent_loop.config import Settings
from agent_loop.models import LoopDecision, ProgressVerdict, ThresholdState
from agent_loop.state.progress import ProgressLedger, ProgressState

logger = logging.getLogger(__name__)


def fingerprint_error(text: str) -> str:
    """Return a fixed-length digest of an error message (the empty string included)."""

    return hashlib.md5(text.encode("utf-8"), usedforsecurity=False).hexdigest()


def detect_progress(before: Sequence[bool], after: Sequence[bool]) -> ProgressVerdict:
    """Compare two completion vectors.

    Equal vectors, two empty ones included, count as no progress. A change in
    length (stories added or removed) counts as progress.
    """

    if len(before) != len(after):
        return ProgressVerdict.PROGRESS
    if any(left != right for left, right in zip(before, after, strict=True)):
        return ProgressVerdict.PROGRESS
    return ProgressVerdict.NO_PROGRESS


class CircuitBreaker:
    """Halts the outer loop after repeated no-op iterations or a repeating failure.

    State transitions happen in memory; ``save`` (or ``observe_iteration``)
    persists the whole record through the ledger.
    """

    def __init__(
        self,
        ledger: ProgressLedger,
        *,
        no_progress_threshold: int = 3,
        same_error_threshold: int = 5,
        state: ProgressState | None = None,
    ) -> None:
        self.ledger = ledger
        self.no_progress_threshold = no_progress_threshold
        self.same_error_threshold = same_error_threshold
        self.state = state or ProgressState()

    @classmethod
    def from_settings(cls, settings: Settings) -> CircuitBreaker:
        return cls(
            ProgressLedger(settings.circuit_breaker_state_path),
            no_progress_threshold=settings.circuit_breaker.no_progress_threshold,
            same_error_threshold=settings.circuit_breaker.same_error_threshold,
        )

    def load(self) -> CircuitBreaker:
        """Load persisted state, initializing a fresh ledger when none exists."""

        loaded = self.ledger.load()
        if loaded is None:
            self.state = self.ledger.reset()
            logger.debug("Circuit breaker initialized at %s", self.ledger.path)
        else:
            self.state = loaded
            logger.debug(
                "Loaded circuit breaker state: no_progress=%d, same_error=%d",
                loaded.no_progress_count,
                loaded.same_error_count,
            )
        return self

    def save(self) -> None:
        self.ledger.save(self.state)

    def reset(self) -> None:
        self.state = self.ledger.reset()
        logger.info("Circuit breaker reset")

    def record_no_progress(self) -> None:
        self.state = self.state.with_no_progress()
        logger.debug("No-progress recorded: count=%d", self.state.no_progress_count)

    def record_progress(self) -> None:
        self.state = self.state.with_progress()
        logger.debug("Progress recorded: no-progress count reset to 0")

    def record_error(self, text: str) -> None:
        error_hash = fingerprint_error(text)
        repeated = error_hash == self.state.last_error_hash
        self.state = self.state.with_error(error_hash)
        if repeated:
            logger.debug("Same error repeated: count=%d", self.state.same_error_count)
        else:
            logger.debug("New error recorded: hash=%s", error_hash)

    def record_completion_vector(self, vector: Sequence[bool]) -> None:
        self.state = self.state.with_completion_vector(tuple(vector))

    def check_no_progress(self) -> ThresholdState:
        if self.state.no_progress_count >= self.no_progress_threshold:
            return ThresholdState.TRIPPED
        return ThresholdState.OK

    def check_same_error(self) -> ThresholdState:
        if self.state.same_error_count >= self.same_error_threshold:
            return ThresholdState.TRIPPED
        return ThresholdState.OK

    def check(self) -> ThresholdState:
        if ThresholdState.TRIPPED in (self.check_no_progress(), self.check_same_error()):
            return ThresholdState.TRIPPED
        return ThresholdState.OK

    def decision(self) -> LoopDecision:
        if self.check() is ThresholdState.TRIPPED:
            return LoopDecision.HALT
        return LoopDecision.CONTINUE

    def observe_iteration(
        self,
        before: Sequence[bool],
        after: Sequence[bool],
        error_text: str | None = None,
    ) -> LoopDecision:
        """Fold one iteration's observations into the ledger and decide whether to go on."""

        if detect_progress(before, after) is ProgressVerdict.PROGRESS:
            self.record_progress()
        else:
            self.record_no_progress()
        if error_text is not None:
            self.record_error(error_text)
        self.record_completion_vector(after)
        self.save()

        decision = self.decision()
        if decision is LoopDecision.HALT:
            logger.warning("Circuit breaker tripped: %s", self.status())
        return decision

    def status(self) -> str:
        """Human-readable summary for operators; not a control signal."""

        overall = "TRIPPED" if self.check() is ThresholdState.TRIPPED else "OK"
        return (
            f"Circuit breaker: {overall} "
            f"(no_progress: {self.state.no_progress_count}/{self.no_progress_threshold}, "
            f"same_error: {self.state.same_error_count}/{self.same_error_threshold})"
        )
