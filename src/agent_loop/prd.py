"""Completion vectors derived from a ``prd.json`` user-story list."""

from __future__ import annotations

import json
from collections.abc import Sequence
from pathlib import Path
from typing import Any


def read_prd(path: Path) -> dict[str, Any]:
    """Load the PRD document and validate top-level object type."""

    payload = json.loads(path.read_text("utf-8"))
    if not isinstance(payload, dict):
        raise TypeError(f"Expected JSON object in {path}")
    return payload


def completion_vector(prd: dict[str, Any]) -> tuple[bool, ...]:
    stories = prd.get("userStories") or []
    return tuple(bool(story.get("passes", False)) for story in stories)


def feature_name(prd: dict[str, Any]) -> str:
    return str(prd.get("feature", ""))


def all_stories_complete(vector: Sequence[bool]) -> bool:
    """True when every story passes; a PRD without stories is never complete."""

    return bool(vector) and all(vector)


def format_completion_vector(vector: Sequence[bool]) -> str:
    return ",".join("true" if item else "false" for item in vector)


def parse_completion_vector(raw: str) -> tuple[bool, ...]:
    if not raw.strip():
        return ()
    items: list[bool] = []
    for token in raw.split(","):
        normalized = token.strip().lower()
        if normalized not in {"true", "false"}:
            raise ValueError(f"Invalid completion vector entry: {token!r}")
        items.append(normalized == "true")
    return tuple(items)
