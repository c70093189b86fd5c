"""Agent execution: context selection, agent calls, phases, and the final summary."""

from minions.execution.agent import (
    AgentArtifact,
    AgentEntry,
    AgentExecutor,
    AgentRequest,
    AgentResult,
    AnthropicAgentExecutor,
    DeterministicAgentExecutor,
    parse_agent_output,
)
from minions.execution.context import ContextAssembler
from minions.execution.phases import PhaseExecutor
from minions.execution.prompts import build_agent_prompt
from minions.execution.synthesis import build_run_result, synthesize

__all__ = [
    "AgentArtifact",
    "AgentEntry",
    "AgentExecutor",
    "AgentRequest",
    "AgentResult",
    "AnthropicAgentExecutor",
    "ContextAssembler",
    "DeterministicAgentExecutor",
    "PhaseExecutor",
    "build_agent_prompt",
    "build_run_result",
    "parse_agent_output",
    "synthesize",
]
