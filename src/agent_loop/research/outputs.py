"""Naming and discovery of research artifacts."""

from __future__ import annotations

import re
from collections.abc import Iterator
from pathlib import Path

OUTPUT_PREFIX = "RESEARCH-"
OUTPUT_SUFFIX = ".md"
OUTPUT_GLOB = f"{OUTPUT_PREFIX}*{OUTPUT_SUFFIX}"

_NON_SLUG = re.compile(r"[^a-z0-9]+")


def sanitize_topic(text: str) -> str:
    """Turn free text into a lowercase, hyphen-separated, filesystem-safe label."""

    return _NON_SLUG.sub("-", text.lower()).strip("-")


def research_output_path(topic: str, output_dir: Path | str) -> Path:
    return Path(output_dir) / f"{OUTPUT_PREFIX}{sanitize_topic(topic)}{OUTPUT_SUFFIX}"


def list_research_outputs(output_dir: Path | str) -> Iterator[Path]:
    """Yield research artifacts in ``output_dir``; nothing for a missing directory."""

    directory = Path(output_dir)
    if not directory.is_dir():
        return
    yield from sorted(path for path in directory.glob(OUTPUT_GLOB) if path.is_file())


def append_timeout_notice(output_path: Path, timeout_seconds: int) -> None:
    with output_path.open("a", encoding="utf-8") as handle:
        handle.write(f"\n---\nWARNING: Research agent timed out after {timeout_seconds}s\n")
