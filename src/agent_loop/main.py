"""CLI entrypoint for agent-loop."""

import logging
from collections.abc import Iterator
from contextlib import contextmanager
from pathlib import Path

import rich_click as click

from agent_loop import __version__
from agent_loop.controllers import (
    AgentLoopCliController,
    CommandResult,
    GuardCommand,
    PrdStatusCommand,
    QuotaWaitCommand,
    ResearchListCommand,
    ResearchRunCommand,
)
from agent_loop.state.store import StateFileError

click.rich_click.USE_MARKDOWN = True
CONTROLLER = AgentLoopCliController()

_STATE_DIR_OPTION = click.option(
    "--state-dir",
    type=click.Path(path_type=Path, file_okay=False),
    default=None,
    help="Directory holding circuit_breaker.state and rate_limiter.state.",
)


@click.group()
@click.version_option(version=__version__, prog_name="agent-loop")
@click.option(
    "--log-level",
    type=click.Choice(["DEBUG", "INFO", "WARNING", "ERROR"], case_sensitive=False),
    default="WARNING",
    show_default=True,
    help="Logging verbosity.",
)
def agent_loop(log_level: str) -> None:
    """Loop guards and research agents for long-running coding-agent workflows."""

    logging.basicConfig(
        level=getattr(logging, log_level.upper()),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


@agent_loop.command("status")
@_STATE_DIR_OPTION
def status(state_dir: Path | None) -> None:
    """Show circuit breaker and rate limiter status."""

    with _cli_errors():
        _emit_lines(CONTROLLER.status(GuardCommand(state_dir=state_dir)))


@agent_loop.group()
def circuit() -> None:
    """Stuck-loop circuit breaker commands."""


@circuit.command("status")
@_STATE_DIR_OPTION
def circuit_status(state_dir: Path | None) -> None:
    """Show no-progress and same-error counters."""

    with _cli_errors():
        _emit_lines(CONTROLLER.circuit_status(GuardCommand(state_dir=state_dir)))


@circuit.command("check")
@_STATE_DIR_OPTION
def circuit_check(state_dir: Path | None) -> None:
    """Exit non-zero when the circuit breaker is tripped."""

    with _cli_errors():
        result = CONTROLLER.circuit_check(GuardCommand(state_dir=state_dir))
    _emit_result(result, failure_message="Circuit breaker tripped.")


@circuit.command("reset")
@_STATE_DIR_OPTION
def circuit_reset(state_dir: Path | None) -> None:
    """Zero both counters and forget the last error and completion vector."""

    with _cli_errors():
        _emit_lines(CONTROLLER.circuit_reset(GuardCommand(state_dir=state_dir)))


@agent_loop.group()
def quota() -> None:
    """Hourly call budget commands."""


@quota.command("status")
@_STATE_DIR_OPTION
def quota_status(state_dir: Path | None) -> None:
    """Show calls used in the current window."""

    with _cli_errors():
        _emit_lines(CONTROLLER.quota_status(GuardCommand(state_dir=state_dir)))


@quota.command("check")
@_STATE_DIR_OPTION
def quota_check(state_dir: Path | None) -> None:
    """Exit non-zero when the call budget is exhausted."""

    with _cli_errors():
        result = CONTROLLER.quota_check(GuardCommand(state_dir=state_dir))
    _emit_result(result, failure_message="Call budget exhausted.")


@quota.command("reset")
@_STATE_DIR_OPTION
def quota_reset(state_dir: Path | None) -> None:
    """Start the current window over with zero calls."""

    with _cli_errors():
        _emit_lines(CONTROLLER.quota_reset(GuardCommand(state_dir=state_dir)))


@quota.command("wait")
@_STATE_DIR_OPTION
@click.option(
    "--max-wait",
    "max_wait_seconds",
    type=click.IntRange(min=0),
    default=None,
    help="Give up after this many seconds.",
)
def quota_wait(state_dir: Path | None, max_wait_seconds: int | None) -> None:
    """Block until the call budget is available again."""

    with _cli_errors():
        result = CONTROLLER.quota_wait(
            QuotaWaitCommand(state_dir=state_dir, max_wait_seconds=max_wait_seconds),
        )
    _emit_result(result, failure_message="Call budget still exhausted.")


@agent_loop.group()
def research() -> None:
    """Parallel research agent commands."""


@research.command("run")
@click.option("--topic", "topics", multiple=True, required=True, help="Topic. Can be repeated.")
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path, file_okay=False),
    required=True,
    help="Directory for RESEARCH-<topic>.md files.",
)
@click.option("--wait/--no-wait", default=True, show_default=True, help="Wait for completion.")
@click.option("--max-agents", type=click.IntRange(min=1), default=None, help="Concurrency cap.")
@click.option(
    "--timeout",
    "timeout_seconds",
    type=click.IntRange(min=1),
    default=None,
    help="Per-agent timeout in seconds.",
)
@click.option("--model", default=None, help="Model passed to the research command.")
@click.option(
    "--template",
    "template_path",
    type=click.Path(path_type=Path, dir_okay=False),
    default=None,
    help="Prompt template with a {{TOPIC}} placeholder.",
)
def research_run(  # noqa: PLR0913
    topics: tuple[str, ...],
    output_dir: Path,
    wait: bool,
    max_agents: int | None,
    timeout_seconds: int | None,
    model: str | None,
    template_path: Path | None,
) -> None:
    """Spawn one research agent per topic."""

    with _cli_errors():
        result = CONTROLLER.research_run(
            ResearchRunCommand(
                topics=topics,
                output_dir=output_dir,
                wait=wait,
                max_agents=max_agents,
                timeout_seconds=timeout_seconds,
                model=model,
                template_path=template_path,
            ),
        )
    _emit_result(result, failure_message="Some research agents could not be started.")


@research.command("list")
@click.option(
    "--output-dir",
    type=click.Path(path_type=Path, file_okay=False),
    required=True,
    help="Directory to scan for research outputs.",
)
def research_list(output_dir: Path) -> None:
    """List research artifacts."""

    _emit_lines(CONTROLLER.research_list(ResearchListCommand(output_dir=output_dir)))


@agent_loop.group()
def prd() -> None:
    """PRD completion commands."""


@prd.command("status")
@click.option(
    "--prd",
    "prd_path",
    type=click.Path(path_type=Path, dir_okay=False, exists=True),
    default=Path("prd.json"),
    show_default=True,
    help="PRD JSON file with a userStories list.",
)
def prd_status(prd_path: Path) -> None:
    """Show user-story completion derived from the PRD."""

    with _cli_errors():
        _emit_lines(CONTROLLER.prd_status(PrdStatusCommand(prd_path=prd_path)))


@contextmanager
def _cli_errors() -> Iterator[None]:
    try:
        yield
    except StateFileError as error:
        raise click.ClickException(str(error)) from error
    except (ValueError, TypeError) as error:
        raise click.ClickException(str(error)) from error


def _emit_result(result: CommandResult, *, failure_message: str) -> None:
    _emit_lines(result.lines)
    if not result.success:
        raise click.ClickException(failure_message)


def _emit_lines(lines: list[str]) -> None:
    for line in lines:
        click.echo(line)


if __name__ == "__main__":  # pragma: no cover
    agent_loop()
