"""Prompt text for LLM-backed agents: the fixed system prompt and the per-task user prompt."""

from __future__ import annotations

import json
from typing import Any

from minions.storage.models import BlackboardEntry, ToolRecord

DEFAULT_MAX_VALUE_CHARS = 2000

SYSTEM_PROMPT = (
    "You are one specialist agent in a team working on a shared task. "
    "Earlier agents leave their findings on a shared blackboard; you read what is relevant "
    "and write your own findings back. Reply with a single JSON object in a ```json block."
)

OUTPUT_FORMAT = """```json
{
  "success": true,
  "data": {"summary": "what you did and found"},
  "entries": [
    {"key": "short_key", "value": {}, "tags": ["tag"], "entity_ids": [], "event_date": null}
  ],
  "artifacts": [
    {"name": "report.md", "content_type": "text/markdown", "content": "..."}
  ],
  "confidence": 0.8,
  "error": null
}
```"""


def build_agent_prompt(request: Any, *, max_value_chars: int = DEFAULT_MAX_VALUE_CHARS) -> str:
    """Render the user prompt for one agent from an ``AgentRequest``."""
    sections = [f"# Role: {request.role}", "", "## Task", request.description]

    inputs = {key: value for key, value in request.inputs.items() if key != "task"}
    if inputs:
        sections += ["", "## Inputs", _render_value(inputs, max_value_chars)]

    if request.context:
        sections += ["", "## Context from other agents"]
        sections += [_render_entry(entry, max_value_chars) for entry in request.context]

    if request.tools:
        sections += ["", "## Available tools"]
        sections += [_render_tool(tool) for tool in request.tools]

    output_tags = request.inputs.get("output_tags") or []
    sections += ["", "## Output format", OUTPUT_FORMAT]
    if output_tags:
        sections.append(f"Tag your entries with: {', '.join(output_tags)}")
    return "\n".join(sections)


def _render_entry(entry: BlackboardEntry, max_value_chars: int) -> str:
    tags = f" [{', '.join(entry.tags)}]" if entry.tags else ""
    return f"### {entry.key} (from {entry.written_by}){tags}\n{_render_value(entry.value, max_value_chars)}"


def _render_tool(tool: ToolRecord) -> str:
    line = f"- **{tool.name}**: {tool.description}\n  Usage: {tool.usage}"
    if tool.install_command:
        line += f"\n  Install: {tool.install_command}"
    return line


def _render_value(value: Any, max_value_chars: int) -> str:
    text = value if isinstance(value, str) else json.dumps(value, indent=2, default=str)
    if len(text) > max_value_chars:
        return text[:max_value_chars] + "... (truncated)"
    return text
