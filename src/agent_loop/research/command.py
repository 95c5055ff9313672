"""Command rendering and process termination for research agents."""

from __future__ import annotations

import logging
import shlex
import subprocess
from pathlib import Path

logger = logging.getLogger(__name__)


def build_research_command(
    command_template: str,
    *,
    model: str,
    prompt: str,
    output_path: Path,
) -> list[str]:
    """Render the agent command template into argv.

    Supported placeholders: ``{model}``, ``{prompt}`` (required) and
    ``{output_file}``. Values are shell-quoted before splitting so prompts with
    spaces and quotes survive as single arguments.
    """

    stripped = command_template.strip()
    if not stripped:
        raise ValueError("Research command template is empty.")
    if "{prompt}" not in stripped:
        raise ValueError("Research command template must include {prompt}.")

    try:
        rendered = stripped.format(
            model=shlex.quote(model),
            prompt=shlex.quote(prompt),
            output_file=shlex.quote(str(output_path)),
        )
    except (KeyError, IndexError) as error:
        raise ValueError(f"Unsupported command template placeholder: {error}") from error

    argv = shlex.split(rendered)
    if not argv:
        raise ValueError("Research command template rendered empty command.")
    return argv


def terminate_process(process: subprocess.Popen[bytes], *, grace_seconds: float = 2.0) -> None:
    """Terminate, then kill after ``grace_seconds``; already-exited processes are a no-op."""

    if process.poll() is not None:
        return
    try:
        process.terminate()
    except OSError:
        return
    try:
        process.wait(timeout=grace_seconds)
    except subprocess.TimeoutExpired:
        try:
            process.kill()
        except OSError:
            return
        try:
            process.wait(timeout=grace_seconds)
        except subprocess.TimeoutExpired:
            logger.warning("Research agent pid %d did not exit after kill", process.pid)
