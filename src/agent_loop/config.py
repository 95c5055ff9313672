"""Runtime configuration for the agent loop guards and the research pool."""

from __future__ import annotations

import os
from dataclasses import dataclass, field
from pathlib import Path

DEFAULT_RESEARCH_COMMAND = "claude --model {model} --print {prompt}"


@dataclass(slots=True)
class CircuitBreakerSettings:
    """Stuck-loop detection thresholds."""

    no_progress_threshold: int = 3
    same_error_threshold: int = 5


@dataclass(slots=True)
class RateLimitSettings:
    """Call budget per boundary-aligned window."""

    calls_per_window: int = 100
    window_seconds: int = 3_600


@dataclass(slots=True)
class ResearchSettings:
    """Background research agent settings."""

    max_agents: int = 3
    timeout_seconds: int = 600
    model: str = "sonnet"
    command_template: str = DEFAULT_RESEARCH_COMMAND
    template_path: Path | None = None


@dataclass(slots=True)
class Settings:
    """Application settings grouped by guard."""

    state_dir: Path = Path(".agent_loop")
    circuit_breaker: CircuitBreakerSettings = field(default_factory=CircuitBreakerSettings)
    rate_limit: RateLimitSettings = field(default_factory=RateLimitSettings)
    research: ResearchSettings = field(default_factory=ResearchSettings)

    @classmethod
    def from_env(cls, state_dir: Path | None = None) -> Settings:
        """Load settings from environment, falling back to the documented defaults."""

        template_raw = os.getenv("AGENT_LOOP_RESEARCH_TEMPLATE", "").strip()
        return cls(
            state_dir=state_dir or Path(os.getenv("AGENT_LOOP_STATE_DIR", ".agent_loop")),
            circuit_breaker=CircuitBreakerSettings(
                no_progress_threshold=_env_int("AGENT_LOOP_NO_PROGRESS_THRESHOLD", 3),
                same_error_threshold=_env_int("AGENT_LOOP_SAME_ERROR_THRESHOLD", 5),
            ),
            rate_limit=RateLimitSettings(
                calls_per_window=_env_int("AGENT_LOOP_RATE_LIMIT", 100),
                window_seconds=_env_int("AGENT_LOOP_RATE_WINDOW_SECONDS", 3_600),
            ),
            research=ResearchSettings(
                max_agents=_env_int("AGENT_LOOP_MAX_RESEARCH_AGENTS", 3),
                timeout_seconds=_env_int("AGENT_LOOP_RESEARCH_TIMEOUT_SECONDS", 600),
                model=os.getenv("AGENT_LOOP_RESEARCH_MODEL", "").strip() or "sonnet",
                command_template=(
                    os.getenv("AGENT_LOOP_RESEARCH_COMMAND", "").strip()
                    or DEFAULT_RESEARCH_COMMAND
                ),
                template_path=Path(template_raw) if template_raw else None,
            ),
        )

    @property
    def circuit_breaker_state_path(self) -> Path:
        return self.state_dir / "circuit_breaker.state"

    @property
    def rate_limiter_state_path(self) -> Path:
        return self.state_dir / "rate_limiter.state"

    def validate(self) -> None:
        """Raise configuration error if any guard setting is out of range."""

        if self.circuit_breaker.no_progress_threshold <= 0:
            raise ValueError("AGENT_LOOP_NO_PROGRESS_THRESHOLD must be > 0.")
        if self.circuit_breaker.same_error_threshold <= 0:
            raise ValueError("AGENT_LOOP_SAME_ERROR_THRESHOLD must be > 0.")
        if self.rate_limit.calls_per_window <= 0:
            raise ValueError("AGENT_LOOP_RATE_LIMIT must be > 0.")
        if self.rate_limit.window_seconds <= 0:
            raise ValueError("AGENT_LOOP_RATE_WINDOW_SECONDS must be > 0.")
        if self.research.max_agents <= 0:
            raise ValueError("AGENT_LOOP_MAX_RESEARCH_AGENTS must be > 0.")
        if self.research.timeout_seconds <= 0:
            raise ValueError("AGENT_LOOP_RESEARCH_TIMEOUT_SECONDS must be > 0.")
        if "{prompt}" not in self.research.command_template:
            raise ValueError(
                "AGENT_LOOP_RESEARCH_COMMAND must include {prompt}: "
                f"{self.research.command_template!r}",
            )


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw.strip())
    except ValueError as error:
        raise ValueError(f"Invalid integer value for {name}: {raw!r}") from error
