"""Controllers for agent-loop CLI commands."""

from __future__ import annotations

import logging
import time
from collections.abc import Callable
from dataclasses import dataclass, replace
from pathlib import Path

from agent_loop.config import Settings
from agent_loop.guards.circuit_breaker import CircuitBreaker
from agent_loop.guards.rate_limiter import RateLimiter
from agent_loop.loop_guard import LoopGuard
from agent_loop.models import QuotaDecision, ThresholdState
from agent_loop.prd import (
    all_stories_complete,
    completion_vector,
    feature_name,
    format_completion_vector,
    read_prd,
)
from agent_loop.research.pool import ResearchOutcome, ResearchPool

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class GuardCommand:
    """CLI input for circuit breaker / rate limiter inspection and reset."""

    state_dir: Path | None


@dataclass(slots=True)
class QuotaWaitCommand:
    """CLI input for blocking until the call window resets."""

    state_dir: Path | None
    max_wait_seconds: int | None = None


@dataclass(slots=True)
class ResearchRunCommand:
    """CLI input for spawning research agents."""

    topics: tuple[str, ...]
    output_dir: Path
    wait: bool = True
    max_agents: int | None = None
    timeout_seconds: int | None = None
    model: str | None = None
    template_path: Path | None = None


@dataclass(slots=True)
class ResearchListCommand:
    """CLI input for research artifact listing."""

    output_dir: Path


@dataclass(slots=True)
class PrdStatusCommand:
    """CLI input for PRD completion summary."""

    prd_path: Path


@dataclass(slots=True)
class CommandResult:
    """Lines to render plus whether the command should exit successfully."""

    lines: list[str]
    success: bool = True


class AgentLoopCliController:
    """Coordinates guard, research, and PRD CLI operations."""

    def status(self, command: GuardCommand) -> list[str]:
        settings = _settings(command.state_dir)
        return LoopGuard.from_settings(settings).status_lines()

    def circuit_status(self, command: GuardCommand) -> list[str]:
        breaker = CircuitBreaker.from_settings(_settings(command.state_dir)).load()
        return [breaker.status()]

    def circuit_check(self, command: GuardCommand) -> CommandResult:
        breaker = CircuitBreaker.from_settings(_settings(command.state_dir)).load()
        tripped = breaker.check() is ThresholdState.TRIPPED
        return CommandResult(
            lines=[breaker.status(), f"Decision: {breaker.decision().value}"],
            success=not tripped,
        )

    def circuit_reset(self, command: GuardCommand) -> list[str]:
        breaker = CircuitBreaker.from_settings(_settings(command.state_dir))
        breaker.reset()
        return [breaker.status()]

    def quota_status(self, command: GuardCommand) -> list[str]:
        limiter = RateLimiter.from_settings(_settings(command.state_dir)).load()
        limiter.check_window_rollover()
        return [
            limiter.status(),
            f"Window resets in {limiter.seconds_until_reset()}s",
        ]

    def quota_check(self, command: GuardCommand) -> CommandResult:
        limiter = RateLimiter.from_settings(_settings(command.state_dir)).load()
        limiter.check_window_rollover()
        decision = limiter.check()
        return CommandResult(
            lines=[limiter.status(), f"Decision: {decision.value}"],
            success=decision is QuotaDecision.ALLOWED,
        )

    def quota_reset(self, command: GuardCommand) -> list[str]:
        limiter = RateLimiter.from_settings(_settings(command.state_dir))
        limiter.reset()
        return [limiter.status()]

    def quota_wait(self, command: QuotaWaitCommand) -> CommandResult:
        limiter = RateLimiter.from_settings(_settings(command.state_dir)).load()
        limiter.check_window_rollover()
        if limiter.check() is QuotaDecision.ALLOWED:
            return CommandResult(lines=[limiter.status(), "Quota available, no wait needed."])
        reset = limiter.wait_for_reset(should_stop=_deadline(command.max_wait_seconds))
        if not reset:
            return CommandResult(
                lines=[limiter.status(), "Gave up waiting for the window to reset."],
                success=False,
            )
        return CommandResult(lines=[limiter.status(), "Window reset, quota available."])

    def research_run(self, command: ResearchRunCommand) -> CommandResult:
        settings = _settings(None)
        research = settings.research
        settings = replace(
            settings,
            research=replace(
                research,
                max_agents=command.max_agents or research.max_agents,
                timeout_seconds=command.timeout_seconds or research.timeout_seconds,
                model=command.model or research.model,
                template_path=command.template_path or research.template_path,
            ),
        )
        settings.validate()
        pool = ResearchPool.from_settings(settings)

        lines: list[str] = []
        success = True
        try:
            for topic in command.topics:
                result = pool.spawn(topic, command.output_dir)
                if not result.ok or result.task is None:
                    lines.append(f"Spawn failed: topic={topic!r} error={result.error}")
                    success = False
                    continue
                lines.append(
                    f"Spawned: topic={topic!r} pid={result.task.process.pid} "
                    f"output={result.task.output_path}",
                )
            if not command.wait:
                return CommandResult(lines=lines, success=success)
            outcomes = pool.wait_for_all()
        except KeyboardInterrupt:
            pool.kill_all()
            raise

        lines.extend(_render_outcome(outcome) for outcome in outcomes)
        succeeded = sum(1 for outcome in outcomes if outcome.has_output)
        lines.append(f"Research complete: {succeeded}/{len(outcomes)} with usable output")
        return CommandResult(lines=lines, success=success)

    def research_list(self, command: ResearchListCommand) -> list[str]:
        outputs = list(ResearchPool.list_outputs(command.output_dir))
        if not outputs:
            return [f"No research outputs in {command.output_dir}"]
        return [str(path) for path in outputs]

    def prd_status(self, command: PrdStatusCommand) -> list[str]:
        prd = read_prd(command.prd_path)
        vector = completion_vector(prd)
        passed = sum(1 for item in vector if item)
        return [
            f"Feature: {feature_name(prd) or '<unnamed>'}",
            f"Stories: {passed}/{len(vector)} passing",
            f"Passes state: {format_completion_vector(vector)}",
            f"Complete: {'yes' if all_stories_complete(vector) else 'no'}",
        ]


def _settings(state_dir: Path | None) -> Settings:
    settings = Settings.from_env(state_dir=state_dir)
    settings.validate()
    return settings


def _deadline(max_wait_seconds: int | None) -> Callable[[], bool] | None:
    if max_wait_seconds is None:
        return None
    deadline = time.monotonic() + max_wait_seconds
    return lambda: time.monotonic() >= deadline


def _render_outcome(outcome: ResearchOutcome) -> str:
    return (
        f"{outcome.state.value}: topic={outcome.topic!r} exit={outcome.exit_code} "
        f"output={outcome.output_path if outcome.has_output else '<missing>'}"
    )
