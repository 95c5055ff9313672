"""Discrete results surfaced to the loop driver."""

from __future__ import annotations

from enum import Enum


class ProgressVerdict(str, Enum):
    """Outcome of comparing two completion vectors."""

    PROGRESS = "progress"
    NO_PROGRESS = "no_progress"


class ThresholdState(str, Enum):
    """State of one circuit breaker threshold."""

    OK = "ok"
    TRIPPED = "tripped"


class LoopDecision(str, Enum):
    """Whether the outer loop may run another iteration."""

    CONTINUE = "continue"
    HALT = "halt"


class QuotaDecision(str, Enum):
    """Whether another external call is permitted right now."""

    ALLOWED = "allowed"
    DENIED = "denied"


class SpawnStatus(str, Enum):
    """Result of a research spawn request."""

    OK = "ok"
    MISSING_TOPIC = "missing_topic"
    MISSING_OUTPUT_DIR = "missing_output_dir"
    LAUNCH_FAILED = "launch_failed"
    CANCELLED = "cancelled"


class TaskState(str, Enum):
    """Terminal state of a reaped research task."""

    COMPLETED = "completed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"
    KILLED = "killed"
