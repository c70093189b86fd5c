from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

import pytest

from minions.execution import agent as agent_module
from minions.execution.agent import (
    AgentRequest,
    AgentResult,
    AnthropicAgentExecutor,
    DeterministicAgentExecutor,
    parse_agent_output,
)
from minions.execution.prompts import build_agent_prompt
from minions.storage.models import BlackboardEntry, ToolRecord


def _entry(key: str, value: Any) -> BlackboardEntry:
    return BlackboardEntry(
        entry_id="e1",
        run_id="r1",
        key=key,
        value=value,
        written_by="researcher",
        tags=["research"],
        created_at=datetime.now(UTC),
    )


def _request(**overrides: Any) -> AgentRequest:
    payload: dict[str, Any] = {
        "role": "implementer",
        "description": "Implement the parser",
        "inputs": {"task": "Implement the parser", "output_tags": ["implementation"]},
    }
    payload.update(overrides)
    return AgentRequest(**payload)


def test_parse_prefers_fenced_json_block() -> None:
    text = 'Done.\n```json\n{"success": true, "data": {"x": 1}, "confidence": 0.8}\n```'

    result = parse_agent_output(text)

    assert result.success is True
    assert result.data == {"x": 1}
    assert result.confidence == pytest.approx(0.8)


def test_parse_bare_json_with_result_key() -> None:
    result = parse_agent_output(json.dumps({"result": "all good"}))

    assert result.data == "all good"
    assert result.confidence == pytest.approx(0.5)


def test_parse_result_envelope_prefers_embedded_json_block() -> None:
    inner = (
        "Here is my report.\n```json\n"
        + json.dumps(
            {
                "success": True,
                "data": {"summary": "done"},
                "entries": [{"key": "finding", "value": 3, "tags": ["research"]}],
                "confidence": 0.9,
            }
        )
        + "\n```\n"
    )

    result = parse_agent_output(json.dumps({"result": inner}))

    assert result.data == {"summary": "done"}
    assert result.confidence == pytest.approx(0.9)
    assert [entry.key for entry in result.entries] == ["finding"]


def test_parse_result_envelope_with_broken_block_keeps_text() -> None:
    inner = "```json\n{not json}\n```"

    result = parse_agent_output(json.dumps({"result": inner}))

    assert result.data == inner
    assert result.confidence == pytest.approx(0.5)


def test_parse_raw_text_falls_back_to_low_confidence_entry() -> None:
    result = parse_agent_output("plain words", output_tags=["research"])

    assert result.success is True
    assert result.confidence == pytest.approx(0.3)
    assert result.entries[0].key == "output"
    assert result.entries[0].tags == ["research"]


def test_confidence_is_clamped_and_extra_fields_kept() -> None:
    result = AgentResult.model_validate({"confidence": 7, "notes": "kept"})

    assert result.confidence == 1.0
    assert result.model_extra == {"notes": "kept"}
    assert AgentResult(confidence=-2).confidence == 0.0


def test_prompt_truncates_long_context_values() -> None:
    request = _request(context=[_entry("researcher:summary", "x" * 50)])

    prompt = build_agent_prompt(request, max_value_chars=10)

    assert "# Role: implementer" in prompt
    assert "researcher:summary (from researcher)" in prompt
    assert "x" * 10 + "... (truncated)" in prompt
    assert "x" * 11 not in prompt
    assert "Tag your entries with: implementation" in prompt


def test_prompt_lists_tool_usage() -> None:
    tool = ToolRecord(
        tool_id="t1",
        name="shell_exec",
        description="Execute shell commands",
        category="system",
        usage="Run any shell command.",
        created_at=datetime.now(UTC),
    )

    prompt = build_agent_prompt(_request(tools=[tool]))

    assert "**shell_exec**" in prompt
    assert "Usage: Run any shell command." in prompt


def test_deterministic_executor_tags_entry_with_output_tags() -> None:
    result = DeterministicAgentExecutor().execute(_request(), timeout_s=1)

    assert result.success is True
    assert result.entries[0].key == "summary"
    assert result.entries[0].tags == ["implementation"]
    assert result.data["summary"] == "implementer completed: Implement the parser"


class _FakeResponse:
    def __init__(self, payload: dict[str, Any]) -> None:
        self._body = json.dumps(payload).encode("utf-8")

    def __enter__(self) -> "_FakeResponse":
        return self

    def __exit__(self, *exc: object) -> None:
        return None

    def read(self) -> bytes:
        return self._body


def test_anthropic_executor_posts_messages_and_parses_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    captured: dict[str, Any] = {}
    reply = '```json\n{"success": true, "data": "parsed", "confidence": 0.7}\n```'

    def fake_urlopen(req, timeout):
        captured["url"] = req.full_url
        captured["headers"] = dict(req.header_items())
        captured["body"] = json.loads(req.data.decode("utf-8"))
        captured["timeout"] = timeout
        return _FakeResponse({"content": [{"type": "text", "text": reply}]})

    monkeypatch.setattr(agent_module.request, "urlopen", fake_urlopen)
    executor = AnthropicAgentExecutor(api_key="secret", model="anthropic/claude-test")

    result = executor.execute(_request(), timeout_s=12)

    assert result.data == "parsed"
    assert captured["url"] == "https://api.anthropic.com/v1/messages"
    assert captured["headers"]["X-api-key"] == "secret"
    assert captured["body"]["model"] == "claude-test"
    assert "# Role: implementer" in captured["body"]["messages"][0]["content"]
    assert captured["timeout"] == 12


def test_anthropic_executor_rejects_empty_reply(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(
        agent_module.request, "urlopen", lambda req, timeout: _FakeResponse({"content": []})
    )

    with pytest.raises(RuntimeError, match="did not contain text"):
        AnthropicAgentExecutor(api_key="secret").execute(_request(), timeout_s=1)
