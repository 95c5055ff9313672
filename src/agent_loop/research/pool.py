"""Bounded pool of background research agents."""

from __future__ import annotations

import logging
import subprocess
import time
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from pathlib import Path

from agent_loop.config import DEFAULT_RESEARCH_COMMAND, Settings
from agent_loop.models import SpawnStatus, TaskState
from agent_loop.research.command import build_research_command, terminate_process
from agent_loop.research.outputs import (
    append_timeout_notice,
    list_research_outputs,
    research_output_path,
    sanitize_topic,
)
from agent_loop.research.prompts import render_prompt

logger = logging.getLogger(__name__)


@dataclass(slots=True)
class ResearchTask:
    """One tracked agent process and the artifact it is expected to write."""

    process: subprocess.Popen[bytes]
    topic: str
    label: str
    output_path: Path
    started_at: float
    timed_out: bool = False

    def is_alive(self) -> bool:
        return self.process.poll() is None


@dataclass(slots=True)
class ResearchOutcome:
    """Result of a reaped research task."""

    topic: str
    label: str
    output_path: Path
    exit_code: int | None
    state: TaskState

    @property
    def has_output(self) -> bool:
        try:
            return self.output_path.stat().st_size > 0
        except OSError:
            return False


@dataclass(slots=True)
class SpawnResult:
    """Discrete spawn result; ``task`` is set only on success."""

    status: SpawnStatus
    task: ResearchTask | None = None
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status is SpawnStatus.OK


class ResearchPool:
    """Runs at most ``max_agents`` research agents, each writing one Markdown file.

    Coordination with the agents happens only through process liveness and the
    filesystem. Liveness is polled, so ``count_active`` and ``can_spawn`` never
    block, while the ``wait_*`` methods poll until done or until
    ``should_stop`` asks them to return early.
    """

    def __init__(  # noqa: PLR0913
        self,
        *,
        max_agents: int = 3,
        timeout_seconds: int = 600,
        model: str = "sonnet",
        command_template: str = DEFAULT_RESEARCH_COMMAND,
        template_path: Path | None = None,
        poll_interval_seconds: float = 1.0,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ) -> None:
        self._max_agents = max_agents
        self._timeout_seconds = timeout_seconds
        self._model = model
        self.command_template = command_template
        self.template_path = template_path
        self.poll_interval_seconds = poll_interval_seconds
        self._clock = clock
        self._sleep = sleep
        self._tasks: list[ResearchTask] = []
        self._unreported: list[ResearchOutcome] = []

    @classmethod
    def from_settings(cls, settings: Settings) -> ResearchPool:
        return cls(
            max_agents=settings.research.max_agents,
            timeout_seconds=settings.research.timeout_seconds,
            model=settings.research.model,
            command_template=settings.research.command_template,
            template_path=settings.research.template_path,
        )

    def max_concurrent(self) -> int:
        return self._max_agents

    def timeout_seconds(self) -> int:
        return self._timeout_seconds

    def model(self) -> str:
        return self._model

    @property
    def tasks(self) -> tuple[ResearchTask, ...]:
        return tuple(self._tasks)

    def count_total(self) -> int:
        return len(self._tasks)

    def count_active(self) -> int:
        return sum(1 for task in self._tasks if task.is_alive())

    def is_running(self) -> bool:
        return self.count_active() > 0

    def can_spawn(self) -> bool:
        return self.count_active() < self._max_agents

    def spawn(
        self,
        topic: str,
        output_dir: Path | str,
        *,
        template_path: Path | None = None,
        should_stop: Callable[[], bool] | None = None,
    ) -> SpawnResult:
        """Start one research agent without waiting for it to finish."""

        if not topic:
            logger.error("spawn_research_agent: Topic is required")
            return SpawnResult(SpawnStatus.MISSING_TOPIC, error="Topic is required")
        if output_dir is None or str(output_dir) == "":
            logger.error("spawn_research_agent: Output directory is required")
            return SpawnResult(SpawnStatus.MISSING_OUTPUT_DIR, error="Output directory is required")

        directory = Path(output_dir)
        try:
            directory.mkdir(parents=True, exist_ok=True)
        except OSError as error:
            logger.error("Cannot create research output directory %s: %s", directory, error)
            return SpawnResult(
                SpawnStatus.LAUNCH_FAILED,
                error=f"Cannot create output directory {directory}: {error}",
            )

        self._collect_finished()
        if not self.can_spawn():
            logger.warning(
                "At maximum concurrent research agents (%d). Waiting...",
                self._max_agents,
            )
            self._await_exit(should_stop)
            if not self.can_spawn():
                return SpawnResult(
                    SpawnStatus.CANCELLED,
                    error="Cancelled while waiting for a free research slot",
                )

        output_path = research_output_path(topic, directory)
        prompt = render_prompt(topic, template_path or self.template_path)
        try:
            run_args = build_research_command(
                self.command_template,
                model=self._model,
                prompt=prompt,
                output_path=output_path,
            )
        except ValueError as error:
            logger.error("Cannot build research command for %r: %s", topic, error)
            return SpawnResult(SpawnStatus.LAUNCH_FAILED, error=str(error))

        try:
            with output_path.open("wb") as output_handle:
                process = subprocess.Popen(  # noqa: S603
                    run_args,
                    stdin=subprocess.DEVNULL,
                    stdout=output_handle,
                    stderr=subprocess.STDOUT,
                )
        except FileNotFoundError:
            logger.error("Research agent command not found: %s", run_args[0])
            output_path.unlink(missing_ok=True)
            return SpawnResult(
                SpawnStatus.LAUNCH_FAILED,
                error=f"Research agent command not found: {run_args[0]}",
            )
        except OSError as error:
            logger.error("Research agent failed to start: %s", error)
            output_path.unlink(missing_ok=True)
            return SpawnResult(
                SpawnStatus.LAUNCH_FAILED,
                error=f"Research agent failed to start: {error}",
            )

        task = ResearchTask(
            process=process,
            topic=topic,
            label=sanitize_topic(topic),
            output_path=output_path,
            started_at=self._clock(),
        )
        self._tasks.append(task)
        logger.info("Spawning research agent for: %s (pid %d)", topic, process.pid)
        logger.debug(
            "  model=%s output=%s timeout=%ds",
            self._model,
            output_path,
            self._timeout_seconds,
        )
        return SpawnResult(SpawnStatus.OK, task=task)

    def reap(self) -> list[ResearchOutcome]:
        """Terminate overdue tasks, stop tracking exited ones and report every unreported outcome.

        Outcomes of tasks reaped while ``spawn`` waited for a free slot are
        included here, so each task is reported exactly once.
        """

        self._collect_finished()
        return self._drain_outcomes()

    def wait_for_any(self, should_stop: Callable[[], bool] | None = None) -> list[ResearchOutcome]:
        """Poll until at least one task has an outcome to report.

        Returns at once when outcomes are already pending or nothing is tracked.
        """

        if not self._unreported:
            self._await_exit(should_stop)
        return self._drain_outcomes()

    def wait_for_all(self, should_stop: Callable[[], bool] | None = None) -> list[ResearchOutcome]:
        """Poll until every tracked task has exited or been terminated for exceeding its timeout.

        If ``should_stop`` returns True the wait ends early and unfinished tasks
        stay tracked.
        """

        if not self._tasks and not self._unreported:
            logger.debug("wait_for_all: no research agents to wait for")
            return []

        if self._tasks:
            logger.info("Waiting for %d research agent(s) to complete...", len(self._tasks))
        while True:
            self._collect_finished()
            if not self._tasks:
                break
            if should_stop is not None and should_stop():
                logger.info("Research wait interrupted with %d agent(s) running", len(self._tasks))
                return self._drain_outcomes()
            self._sleep(self.poll_interval_seconds)

        outcomes = self._drain_outcomes()
        succeeded = sum(1 for outcome in outcomes if outcome.state is TaskState.COMPLETED)
        logger.info("Research complete: %d/%d agents succeeded", succeeded, len(outcomes))
        return outcomes

    def kill_all(self) -> list[ResearchOutcome]:
        """Terminate every live task and forget all tracked tasks. Never raises.

        Pending outcomes of tasks that already exited are returned as well.
        """

        if self._tasks:
            logger.warning("Killing all running research agents...")
        tasks, self._tasks = self._tasks, []
        outcomes = self._drain_outcomes()
        for task in tasks:
            if task.is_alive():
                terminate_process(task.process)
                logger.debug("Killed research agent pid %d (%s)", task.process.pid, task.topic)
                outcomes.append(self._record_outcome(task, killed=True))
            else:
                outcomes.append(self._record_outcome(task))
        return outcomes

    def reset_state(self) -> None:
        """Forget all tracked tasks and pending outcomes without signalling anything."""

        self._tasks = []
        self._unreported = []

    @staticmethod
    def list_outputs(output_dir: Path | str) -> Iterator[Path]:
        return list_research_outputs(output_dir)

    def _collect_finished(self) -> bool:
        """Move exited tasks into the unreported outcomes; True if any did."""

        self._enforce_timeouts()
        finished = [task for task in self._tasks if not task.is_alive()]
        if not finished:
            return False
        self._tasks = [task for task in self._tasks if task not in finished]
        self._unreported.extend(self._record_outcome(task) for task in finished)
        return True

    def _await_exit(self, should_stop: Callable[[], bool] | None) -> None:
        while self._tasks:
            if self._collect_finished():
                return
            if should_stop is not None and should_stop():
                return
            self._sleep(self.poll_interval_seconds)

    def _drain_outcomes(self) -> list[ResearchOutcome]:
        outcomes, self._unreported = self._unreported, []
        return outcomes

    def _enforce_timeouts(self) -> None:
        now = self._clock()
        for task in self._tasks:
            if task.timed_out or now - task.started_at < self._timeout_seconds:
                continue
            if not task.is_alive():
                continue
            logger.warning(
                "Research agent timed out after %ds: %s",
                self._timeout_seconds,
                task.topic,
            )
            terminate_process(task.process)
            task.timed_out = True
            try:
                append_timeout_notice(task.output_path, self._timeout_seconds)
            except OSError as exc:
                logger.warning("Cannot append timeout notice to %s: %s", task.output_path, exc)

    def _record_outcome(self, task: ResearchTask, *, killed: bool = False) -> ResearchOutcome:
        exit_code = task.process.returncode
        if killed:
            state = TaskState.KILLED
        elif task.timed_out:
            state = TaskState.TIMED_OUT
        elif exit_code == 0:
            state = TaskState.COMPLETED
            logger.info("Research agent completed: %s", task.topic)
        else:
            state = TaskState.FAILED
            logger.error("Research agent failed (exit %s): %s", exit_code, task.topic)
        return ResearchOutcome(
            topic=task.topic,
            label=task.label,
            output_path=task.output_path,
            exit_code=exit_code,
            state=state,
        )
