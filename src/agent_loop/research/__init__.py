"""Parallel research agents writing ``RESEARCH-<topic>.md`` artifacts."""

from agent_loop.research.outputs import list_research_outputs, research_output_path, sanitize_topic
from agent_loop.research.pool import ResearchOutcome, ResearchPool, ResearchTask, SpawnResult
from agent_loop.research.prompts import render_prompt

__all__ = [
    "ResearchOutcome",
    "ResearchPool",
    "ResearchTask",
    "SpawnResult",
    "list_research_outputs",
    "render_prompt",
    "research_output_path",
    "sanitize_topic",
]
