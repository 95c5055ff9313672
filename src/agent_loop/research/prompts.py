"""Prompt rendering for research agents."""

from __future__ import annotations

import logging
from pathlib import Path

logger = logging.getLogger(__name__)

TOPIC_PLACEHOLDER = "{{TOPIC}}"
PROJECT_TEMPLATE_PATH = Path("templates") / "research-agent.md"

DEFAULT_TEMPLATE = """\
# Research Investigation: {{TOPIC}}

Investigate the topic "{{TOPIC}}" and produce a structured research report.

## Required Output Format

Your response MUST follow this exact structure:

### Summary
A 2-3 sentence overview of key findings.

### Key Findings
- Finding 1: [description with supporting evidence]
- Finding 2: [description with supporting evidence]
- Finding 3: [description with supporting evidence]
(Add more findings as appropriate)

### Confidence Level
Rate your overall confidence in these findings as HIGH, MEDIUM, or LOW.

Criteria:
- HIGH: Based on official documentation, widely-accepted best practices, or verified sources
- MEDIUM: Based on community consensus, multiple blog posts, or consistent patterns
- LOW: Based on single sources, limited evidence, or emerging/unstable practices

### Sources
List all sources consulted (documentation URLs, repos, articles, etc.)

---

Focus on practical, actionable information relevant to software development.
Be thorough but concise.
"""


def render_prompt(topic: str, template_path: Path | None = None) -> str:
    """Substitute ``topic`` into the first readable template, else the built-in one."""

    template = _load_template(template_path) or DEFAULT_TEMPLATE
    return template.replace(TOPIC_PLACEHOLDER, topic)


def _load_template(template_path: Path | None) -> str | None:
    candidates: list[Path] = []
    if template_path is not None:
        if not template_path.is_file():
            logger.warning("Research template not found: %s", template_path)
        candidates.append(template_path)
    candidates.append(Path.cwd() / PROJECT_TEMPLATE_PATH)
    for candidate in candidates:
        if not candidate.is_file():
            continue
        try:
            return candidate.read_text("utf-8")
        except (OSError, UnicodeDecodeError) as exc:
            logger.warning("Cannot read research template %s, using built-in: %s", candidate, exc)
    return None
