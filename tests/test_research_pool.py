from __future__ import annotations

import sys
from collections.abc import Iterator
from pathlib import Path

import allure
import pytest

from agent_loop.config import ResearchSettings, Settings
from agent_loop.models import SpawnStatus, TaskState
from agent_loop.research.command import terminate_process
from agent_loop.research.pool import ResearchPool

pytestmark = [
    allure.epic("Research Agents"),
    allure.feature("Concurrent Task Pool"),
]


@pytest.fixture()
def make_pool(monkeypatch, tmp_path: Path) -> Iterator:
    """Build pools with fast polling; every pool is killed at teardown."""

    monkeypatch.chdir(tmp_path)
    pools: list[ResearchPool] = []

    def factory(command_template: str, **kwargs) -> ResearchPool:
        kwargs.setdefault("poll_interval_seconds", 0.05)
        pool = ResearchPool(command_template=command_template, **kwargs)
        pools.append(pool)
        return pool

    yield factory
    for pool in pools:
        pool.kill_all()


def test_capacity_and_kill_all(make_pool, sleepy_command: str, tmp_path: Path) -> None:
    pool = make_pool(sleepy_command, max_agents=2)
    output_dir = tmp_path / "out"

    first = pool.spawn("Auth Patterns", output_dir)
    second = pool.spawn("Rate limiting", output_dir)

    assert first.ok and second.ok
    assert pool.count_active() == 2
    assert pool.is_running()
    assert not pool.can_spawn()

    outcomes = pool.kill_all()

    assert [outcome.state for outcome in outcomes] == [TaskState.KILLED, TaskState.KILLED]
    assert {outcome.label for outcome in outcomes} == {"auth-patterns", "rate-limiting"}
    assert pool.count_total() == 0
    assert pool.count_active() == 0
    assert pool.can_spawn()
    assert first.task is not None and first.task.process.poll() is not None


def test_spawn_without_topic_changes_nothing(make_pool, echo_command: str, tmp_path: Path) -> None:
    pool = make_pool(echo_command)
    output_dir = tmp_path / "x"

    result = pool.spawn("", output_dir)

    assert result.status is SpawnStatus.MISSING_TOPIC
    assert result.task is None
    assert result.error is not None and "Topic" in result.error
    assert not output_dir.exists()
    assert pool.count_total() == 0


@pytest.mark.parametrize("output_dir", [None, ""])
def test_spawn_without_output_dir(make_pool, echo_command: str, output_dir) -> None:
    pool = make_pool(echo_command)

    result = pool.spawn("caching", output_dir)

    assert result.status is SpawnStatus.MISSING_OUTPUT_DIR
    assert pool.count_total() == 0


def test_completed_agent_writes_artifact(make_pool, echo_command: str, tmp_path: Path) -> None:
    pool = make_pool(echo_command)
    output_dir = tmp_path / "nested" / "out"

    result = pool.spawn("Auth Patterns!", output_dir)
    outcomes = pool.wait_for_all()

    assert result.task is not None
    assert result.task.output_path == output_dir / "RESEARCH-auth-patterns.md"
    assert len(outcomes) == 1
    outcome = outcomes[0]
    assert outcome.state is TaskState.COMPLETED
    assert outcome.exit_code == 0
    assert outcome.has_output
    assert "# Research Investigation: Auth Patterns!" in outcome.output_path.read_text("utf-8")
    assert list(ResearchPool.list_outputs(output_dir)) == [outcome.output_path]
    assert pool.count_total() == 0


def test_failing_agent_is_reported_failed(make_pool, failing_command: str, tmp_path: Path) -> None:
    pool = make_pool(failing_command)

    pool.spawn("caching", tmp_path)
    outcomes = pool.wait_for_all()

    assert [(outcome.state, outcome.exit_code) for outcome in outcomes] == [(TaskState.FAILED, 3)]
    assert not outcomes[0].has_output


def test_overdue_agent_is_terminated_with_notice(
    make_pool,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(sleepy_command, timeout_seconds=1)

    pool.spawn("slow topic", tmp_path)
    outcomes = pool.wait_for_all()

    assert [outcome.state for outcome in outcomes] == [TaskState.TIMED_OUT]
    text = outcomes[0].output_path.read_text("utf-8")
    assert text.endswith("\n---\nWARNING: Research agent timed out after 1s\n")
    assert not pool.is_running()


def test_kill_all_on_empty_pool_and_twice(make_pool, sleepy_command: str, tmp_path: Path) -> None:
    pool = make_pool(sleepy_command)
    assert pool.kill_all() == []

    pool.spawn("caching", tmp_path)
    assert len(pool.kill_all()) == 1
    assert pool.kill_all() == []


def test_kill_all_reports_already_exited_tasks(
    make_pool,
    echo_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command)
    result = pool.spawn("caching", tmp_path)
    assert result.task is not None
    result.task.process.wait(timeout=10)

    outcomes = pool.kill_all()

    assert [outcome.state for outcome in outcomes] == [TaskState.COMPLETED]


def test_wait_for_any_on_empty_pool_returns_immediately(make_pool, echo_command: str) -> None:
    pool = make_pool(echo_command)

    assert pool.wait_for_any() == []


def test_wait_for_any_returns_first_finisher(
    make_pool,
    echo_command: str,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(sleepy_command)
    pool.spawn("slow", tmp_path)
    pool.command_template = echo_command
    pool.spawn("fast", tmp_path)

    outcomes = pool.wait_for_any()

    assert [outcome.topic for outcome in outcomes] == ["fast"]
    assert pool.count_total() == 1
    assert pool.count_active() == 1


def test_spawn_at_capacity_waits_for_free_slot(
    make_pool,
    echo_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command, max_agents=1)

    first = pool.spawn("first", tmp_path)
    second = pool.spawn("second", tmp_path)

    assert first.ok and second.ok
    assert first.task is not None and first.task.process.poll() == 0
    assert [task.topic for task in pool.tasks] == ["second"]


def test_spawn_at_capacity_can_be_cancelled(
    make_pool,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(sleepy_command, max_agents=1)
    pool.spawn("first", tmp_path)

    result = pool.spawn("second", tmp_path, should_stop=lambda: True)

    assert result.status is SpawnStatus.CANCELLED
    assert pool.count_total() == 1
    assert not (tmp_path / "RESEARCH-second.md").exists()


def test_missing_binary_is_launch_failure(make_pool, tmp_path: Path) -> None:
    pool = make_pool(str(tmp_path / "no-such-agent") + " {prompt}")

    result = pool.spawn("caching", tmp_path)

    assert result.status is SpawnStatus.LAUNCH_FAILED
    assert result.error is not None and "not found" in result.error
    assert pool.count_total() == 0
    assert list(ResearchPool.list_outputs(tmp_path)) == []


def test_unusable_output_dir_is_launch_failure(
    make_pool,
    echo_command: str,
    tmp_path: Path,
) -> None:
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory", "utf-8")
    pool = make_pool(echo_command)

    result = pool.spawn("caching", blocker)

    assert result.status is SpawnStatus.LAUNCH_FAILED
    assert result.error is not None and "Cannot create output directory" in result.error
    assert pool.count_total() == 0


def test_every_spawned_task_is_reported_once(
    make_pool,
    echo_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command, max_agents=1)

    for topic in ("a", "b", "c"):
        assert pool.spawn(topic, tmp_path).ok

    outcomes = pool.wait_for_all()

    assert [outcome.topic for outcome in outcomes] == ["a", "b", "c"]
    assert {outcome.state for outcome in outcomes} == {TaskState.COMPLETED}
    assert pool.wait_for_all() == []
    assert pool.reap() == []


def test_pending_outcomes_are_returned_by_wait_for_any(
    make_pool,
    echo_command: str,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command, max_agents=1)
    pool.spawn("first", tmp_path)
    pool.command_template = sleepy_command
    pool.spawn("second", tmp_path)

    assert [outcome.topic for outcome in pool.wait_for_any()] == ["first"]
    assert pool.count_active() == 1


def test_kill_all_includes_pending_outcomes(
    make_pool,
    echo_command: str,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command, max_agents=1)
    pool.spawn("first", tmp_path)
    pool.command_template = sleepy_command
    pool.spawn("second", tmp_path)

    outcomes = pool.kill_all()

    assert [(outcome.topic, outcome.state) for outcome in outcomes] == [
        ("first", TaskState.COMPLETED),
        ("second", TaskState.KILLED),
    ]
    assert pool.wait_for_all() == []


def test_reset_state_drops_pending_outcomes(
    make_pool,
    echo_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(echo_command, max_agents=1)
    pool.spawn("first", tmp_path)
    pool.spawn("second", tmp_path)
    second = pool.tasks[0]

    pool.reset_state()

    second.process.wait(timeout=10)
    assert pool.wait_for_all() == []
    assert pool.count_total() == 0


def test_bad_command_template_is_launch_failure(make_pool, tmp_path: Path) -> None:
    pool = make_pool(f"{sys.executable} {{prompt}} {{workdir}}")

    result = pool.spawn("caching", tmp_path)

    assert result.status is SpawnStatus.LAUNCH_FAILED
    assert pool.count_total() == 0


def test_reset_state_forgets_without_signalling(
    make_pool,
    sleepy_command: str,
    tmp_path: Path,
) -> None:
    pool = make_pool(sleepy_command)
    result = pool.spawn("caching", tmp_path)
    assert result.task is not None

    pool.reset_state()

    try:
        assert pool.count_total() == 0
        assert result.task.process.poll() is None
    finally:
        terminate_process(result.task.process)


def test_wait_for_all_can_be_interrupted(make_pool, sleepy_command: str, tmp_path: Path) -> None:
    pool = make_pool(sleepy_command)
    pool.spawn("caching", tmp_path)
    polls: list[int] = []

    def should_stop() -> bool:
        polls.append(1)
        return len(polls) >= 2

    assert pool.wait_for_all(should_stop=should_stop) == []
    assert pool.count_active() == 1


def test_from_settings_reads_research_section() -> None:
    settings = Settings(
        research=ResearchSettings(
            max_agents=5,
            timeout_seconds=42,
            model="haiku",
            command_template="agent {prompt}",
        ),
    )

    pool = ResearchPool.from_settings(settings)

    assert pool.max_concurrent() == 5
    assert pool.timeout_seconds() == 42
    assert pool.model() == "haiku"
    assert pool.command_template == "agent {prompt}"
