"""Agent executor contract and the two built-in implementations."""

from __future__ import annotations

import json
import logging
import re
from datetime import date
from typing import Any, Protocol
from urllib import error, request

from pydantic import BaseModel, ConfigDict, Field, field_validator

from minions.execution.prompts import DEFAULT_MAX_VALUE_CHARS, SYSTEM_PROMPT, build_agent_prompt
from minions.storage.models import BlackboardEntry, ToolRecord

logger = logging.getLogger(__name__)

ANTHROPIC_VERSION = "2023-06-01"
_JSON_BLOCK = re.compile(r"```json\s*(.*?)```", re.DOTALL)


class AgentRequest(BaseModel):
    role: str
    description: str
    inputs: dict[str, Any] = Field(default_factory=dict)
    context: list[BlackboardEntry] = Field(default_factory=list)
    tools: list[ToolRecord] = Field(default_factory=list)


class AgentEntry(BaseModel):
    model_config = ConfigDict(extra="allow")

    key: str = Field(min_length=1)
    value: Any = None
    tags: list[str] = Field(default_factory=list)
    entity_ids: list[str] = Field(default_factory=list)
    event_date: date | None = None


class AgentArtifact(BaseModel):
    model_config = ConfigDict(extra="allow")

    name: str = Field(min_length=1)
    content_type: str = "text/plain"
    content: str | None = None


class AgentResult(BaseModel):
    """What an agent hands back. Unknown fields are kept."""

    model_config = ConfigDict(extra="allow")

    success: bool = True
    data: Any = None
    entries: list[AgentEntry] = Field(default_factory=list)
    artifacts: list[AgentArtifact] = Field(default_factory=list)
    confidence: float = 0.5
    error: str | None = None

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value: Any) -> float:
        if value is None:
            return 0.5
        return min(1.0, max(0.0, float(value)))


class AgentExecutor(Protocol):
    def execute(self, request: AgentRequest, *, timeout_s: float) -> AgentResult: ...


def parse_agent_output(text: str, *, output_tags: list[str] | None = None) -> AgentResult:
    """Parse an agent reply: a ```json block, then bare JSON, then raw text.

    Bare JSON carrying a `result` field is a CLI-style envelope. A ```json block
    inside that text wins over the text itself.
    """
    block = _fenced_json(text)
    if block is not None:
        return AgentResult.model_validate(block)

    try:
        parsed = json.loads(text)
    except json.JSONDecodeError:
        parsed = None
    if isinstance(parsed, dict):
        if "result" in parsed:
            inner = parsed["result"]
            block = _fenced_json(inner) if isinstance(inner, str) else None
            if block is not None:
                return AgentResult.model_validate(block)
            return AgentResult(success=True, data=inner, confidence=0.5)
        return AgentResult.model_validate(parsed)

    return AgentResult(
        success=True,
        data={"raw_output": text},
        entries=[AgentEntry(key="output", value=text, tags=list(output_tags or []))],
        confidence=0.3,
    )


def _fenced_json(text: str) -> dict[str, Any] | None:
    match = _JSON_BLOCK.search(text)
    if not match:
        return None
    try:
        parsed = json.loads(match.group(1))
    except json.JSONDecodeError:
        return None
    return parsed if isinstance(parsed, dict) else None


class AnthropicAgentExecutor:
    """Runs one agent as a single Messages API call."""

    def __init__(
        self,
        *,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        base_url: str = "https://api.anthropic.com/v1",
        max_tokens: int = 4096,
        max_value_chars: int = DEFAULT_MAX_VALUE_CHARS,
    ) -> None:
        self.api_key = api_key
        self.model = model.removeprefix("anthropic/")
        self.base_url = base_url.rstrip("/")
        self.max_tokens = max_tokens
        self.max_value_chars = max_value_chars

    def execute(self, request: AgentRequest, *, timeout_s: float) -> AgentResult:
        payload = {
            "model": self.model,
            "max_tokens": self.max_tokens,
            "system": SYSTEM_PROMPT,
            "messages": [
                {
                    "role": "user",
                    "content": build_agent_prompt(request, max_value_chars=self.max_value_chars),
                }
            ],
        }
        response_json = self._request(payload, timeout_s=timeout_s)
        text = self._extract_text(response_json)
        return parse_agent_output(text, output_tags=request.inputs.get("output_tags"))

    def _request(self, payload: dict[str, Any], timeout_s: float) -> dict[str, Any]:
        req = request.Request(
            url=f"{self.base_url}/messages",
            data=json.dumps(payload).encode("utf-8"),
            method="POST",
            headers={
                "x-api-key": self.api_key,
                "anthropic-version": ANTHROPIC_VERSION,
                "content-type": "application/json",
            },
        )
        try:
            with request.urlopen(req, timeout=timeout_s) as response:
                body = response.read().decode("utf-8")
        except error.HTTPError as exc:
            raw_error = exc.read().decode("utf-8", errors="replace")
            logger.warning("agent event=http_error model=%s status=%s", self.model, exc.code)
            raise RuntimeError(f"Anthropic API request failed ({exc.code}): {raw_error}") from exc
        except error.URLError as exc:
            raise RuntimeError(f"Anthropic API unreachable: {exc.reason}") from exc
        return json.loads(body)

    @staticmethod
    def _extract_text(response_json: dict[str, Any]) -> str:
        blocks = response_json.get("content", [])
        text = "".join(
            block.get("text", "")
            for block in blocks
            if isinstance(block, dict) and block.get("type") == "text"
        )
        if not text:
            raise RuntimeError("Anthropic response did not contain text content")
        return text


class DeterministicAgentExecutor:
    """Offline executor: records the task and the context it saw as one entry."""

    def execute(self, request: AgentRequest, *, timeout_s: float) -> AgentResult:
        output_tags = list(request.inputs.get("output_tags") or [])
        headline = (request.description.splitlines() or [""])[0]
        summary = f"{request.role} completed: {headline}"
        value = {
            "summary": summary,
            "context_keys": [entry.key for entry in request.context],
            "tools": [tool.name for tool in request.tools],
        }
        return AgentResult(
            success=True,
            data=value,
            entries=[AgentEntry(key="summary", value=value, tags=output_tags)],
            confidence=1.0,
        )
