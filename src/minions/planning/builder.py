"""Deterministic plan builder.

Turns task text plus the names of the available tools into an ``ExecutionPlan``:
ordered phases of role-named tasks with dependencies, tool grants, and context
tags. Classification is keyword matching over the tables in ``PlannerConfig``.

Template selection:
1) enterprise scope or many domains: parallel domain analysis, one architect,
   parallel per-domain implementation.
2) large scope: research, implementation, testing in sequence.
3) small/medium: research, build, and review phases from intent triggers,
   chained in that order, plus a synthesis phase when more than one exists.
4) nothing matched: one executor with every available tool.
High-risk tasks get a trailing validation phase.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable

from minions.planning.models import ExecutionPlan, Phase, PlannedTask, TaskAnalysis
from minions.planning.triggers import (
    ANALYST_SUFFIX,
    DEVELOPER_SUFFIX,
    GENERAL_DOMAIN,
    PlannerConfig,
    default_planner_config,
)

logger = logging.getLogger(__name__)


class PlanBuilder:
    def __init__(self, config: PlannerConfig | None = None) -> None:
        self.config = config or default_planner_config()

    def analyze(self, task_text: str) -> TaskAnalysis:
        config = self.config
        domains = [
            domain for domain, pattern in config.domain_triggers if config.matches(pattern, task_text)
        ]
        if not domains:
            domains = [GENERAL_DOMAIN]
        detected = [domain for domain in domains if domain != GENERAL_DOMAIN]

        scope = "small"
        if len(task_text) > config.medium_length or len(detected) > config.medium_domain_count:
            scope = "medium"
        if len(task_text) > config.large_length or len(detected) > config.large_domain_count:
            scope = "large"
        if config.matches(config.enterprise_trigger, task_text):
            scope = "enterprise"

        risk = "low"
        for level, pattern in config.risk_triggers:
            if config.matches(pattern, task_text):
                risk = level

        intents = [
            intent for intent, pattern in config.intent_triggers if config.matches(pattern, task_text)
        ]
        return TaskAnalysis(domains=domains, scope=scope, risk=risk, intents=intents)

    def build(self, task_text: str, available_tools: Iterable[str]) -> ExecutionPlan:
        tools = list(dict.fromkeys(available_tools))
        analysis = self.analyze(task_text)
        detected = [domain for domain in analysis.domains if domain != GENERAL_DOMAIN]

        if analysis.scope == "enterprise" or len(detected) > self.config.multi_domain_threshold:
            template = "multi_domain"
            phases = self._multi_domain_phases(task_text, analysis.domains, tools)
        elif analysis.scope == "large":
            template = "large"
            phases = self._large_phases(task_text, tools)
        else:
            template = "standard"
            phases = self._standard_phases(task_text, analysis.intents, tools)

        if not phases:
            template = "fallback"
            phases = [self._fallback_phase(task_text, tools)]

        if analysis.risk == "high":
            phases.append(self._validation_phase(task_text, phases[-1], tools))

        _promote_parallel_phases(phases)
        self._assign_context(phases)
        for index, phase in enumerate(phases, start=1):
            phase.name = f"Phase {index}: {phase.name}"

        total = sum(len(phase.tasks) for phase in phases)
        plan = ExecutionPlan(
            phases=phases,
            estimated_agents=total,
            strategy=_describe_strategy(phases, analysis),
            analysis=analysis,
        )
        logger.info(
            "plan event=built template=%s scope=%s risk=%s domains=%s agents=%d",
            template,
            analysis.scope,
            analysis.risk,
            ",".join(analysis.domains),
            total,
        )
        return plan

    # Templates

    def _multi_domain_phases(
        self, task_text: str, domains: list[str], tools: list[str]
    ) -> list[Phase]:
        analysts = [
            self._task(
                role=f"{domain}{ANALYST_SUFFIX}",
                description=(
                    f"Analyze the {domain} aspects of: {task_text}\n\n"
                    f"Identify requirements, constraints, and dependencies specific to {domain}."
                ),
                task_text=task_text,
                tools=self._domain_tools(domain, tools),
                extra_inputs={"domain": domain},
            )
            for domain in domains
        ]
        architect = self._task(
            role="architect",
            description=(
                f"Design the overall architecture for: {task_text}\n\n"
                "Integrate the domain analyses and produce an implementation roadmap."
            ),
            task_text=task_text,
            tools=self._role_tools("architect", tools),
            dependencies=[item.role for item in analysts],
        )
        developers = [
            self._task(
                role=f"{domain}{DEVELOPER_SUFFIX}",
                description=(
                    f"Implement the {domain} components for: {task_text}\n\n"
                    "Follow the architecture plan and integrate with the other components."
                ),
                task_text=task_text,
                tools=self._domain_tools(domain, tools),
                dependencies=["architect"],
                extra_inputs={"domain": domain},
            )
            for domain in domains
        ]
        return [
            Phase(
                name="Domain Analysis",
                description="Analyze each domain aspect in parallel",
                tasks=analysts,
                parallel=True,
            ),
            Phase(
                name="Architecture Planning",
                description="Create a unified architecture plan",
                tasks=[architect],
                parallel=False,
            ),
            Phase(
                name="Parallel Implementation",
                description="Implement each domain component in parallel",
                tasks=developers,
                parallel=True,
            ),
        ]

    def _large_phases(self, task_text: str, tools: list[str]) -> list[Phase]:
        researcher = self._task(
            role="researcher",
            description=(
                f"Research and plan for: {task_text}\n\n"
                "Produce detailed requirements and a recommended approach."
            ),
            task_text=task_text,
            tools=self._role_tools("researcher", tools),
        )
        developer = self._task(
            role="developer",
            description=f"Implement: {task_text}\n\nFollow the research and planning findings.",
            task_text=task_text,
            tools=self._role_tools("developer", tools),
            dependencies=["researcher"],
        )
        tester = self._task(
            role="tester",
            description=f"Test and validate: {task_text}\n\nEnsure quality and correctness.",
            task_text=task_text,
            tools=self._role_tools("tester", tools),
            dependencies=["developer"],
        )
        return [
            Phase(
                name="Research & Planning",
                description="Thorough research and detailed planning",
                tasks=[researcher],
            ),
            Phase(name="Implementation", description="Execute the implementation", tasks=[developer]),
            Phase(
                name="Testing & Validation",
                description="Test and validate the implementation",
                tasks=[tester],
            ),
        ]

    def _standard_phases(
        self, task_text: str, intents: list[str], tools: list[str]
    ) -> list[Phase]:
        phases: list[Phase] = []
        previous: list[str] = []

        if "research" in intents:
            phases.append(
                Phase(
                    name="Research",
                    description="Research and analyze the topic",
                    tasks=[
                        self._task(
                            role="researcher",
                            description=(
                                f"Research the following topic thoroughly:\n\n{task_text}\n\n"
                                "Gather key facts and data points. Write findings as structured data."
                            ),
                            task_text=task_text,
                            tools=self._role_tools("researcher", tools),
                        )
                    ],
                )
            )
            previous = ["researcher"]

        if "build" in intents:
            phases.append(
                Phase(
                    name="Implementation",
                    description="Build and implement the solution",
                    tasks=[
                        self._task(
                            role="implementer",
                            description=(
                                f"Implement the following:\n\n{task_text}\n\n"
                                "Write clean, well-documented code and test your work."
                            ),
                            task_text=task_text,
                            tools=self._role_tools("implementer", tools),
                            dependencies=previous,
                        )
                    ],
                )
            )
            previous = ["implementer"]

        if "review" in intents:
            phases.append(
                Phase(
                    name="Review & Validation",
                    description="Review and validate the work",
                    tasks=[
                        self._task(
                            role="reviewer",
                            description=(
                                f"Review and validate the work done for:\n\n{task_text}\n\n"
                                "Check for correctness, completeness, and quality."
                            ),
                            task_text=task_text,
                            tools=self._role_tools("reviewer", tools),
                            dependencies=previous,
                        )
                    ],
                )
            )
            previous = ["reviewer"]

        if len(phases) > 1:
            phases.append(
                Phase(
                    name="Synthesis",
                    description="Compile and synthesize results into the final output",
                    tasks=[
                        self._task(
                            role="synthesizer",
                            description=(
                                "Synthesize all findings and work into a final deliverable "
                                f"for:\n\n{task_text}\n\nProduce a clear, well-structured output."
                            ),
                            task_text=task_text,
                            tools=self._role_tools("synthesizer", tools),
                            dependencies=[task.role for task in phases[-1].tasks],
                        )
                    ],
                )
            )
        return phases

    def _fallback_phase(self, task_text: str, tools: list[str]) -> Phase:
        return Phase(
            name="Execute",
            description="Execute the task",
            tasks=[
                self._task(
                    role="executor",
                    description=f"Complete the following task:\n\n{task_text}",
                    task_text=task_text,
                    tools=list(tools),
                )
            ],
        )

    def _validation_phase(self, task_text: str, previous: Phase, tools: list[str]) -> Phase:
        return Phase(
            name="Validation",
            description="Validate and verify all work for safety",
            tasks=[
                self._task(
                    role="validator",
                    description=(
                        f"Carefully validate all work done for: {task_text}\n\n"
                        "Check for errors, security issues, and destructive side effects."
                    ),
                    task_text=task_text,
                    tools=self._role_tools("validator", tools),
                    dependencies=[task.role for task in previous.tasks],
                )
            ],
        )

    # Helpers

    def _task(
        self,
        *,
        role: str,
        description: str,
        task_text: str,
        tools: list[str],
        dependencies: list[str] | None = None,
        extra_inputs: dict[str, str] | None = None,
    ) -> PlannedTask:
        inputs: dict[str, object] = {"task": task_text}
        inputs.update(extra_inputs or {})
        inputs["output_tags"] = [self.config.output_tag_for(role)]
        return PlannedTask(
            role=role,
            description=description,
            inputs=inputs,
            dependencies=list(dependencies or []),
            tools=tools,
        )

    def _role_tools(self, role: str, available: list[str]) -> list[str]:
        return _intersect(self.config.role_tools.get(role, ()), available)

    def _domain_tools(self, domain: str, available: list[str]) -> list[str]:
        whitelist = self.config.domain_tools.get(domain)
        if whitelist is None:
            return list(available)
        return _intersect(whitelist, available)

    def _assign_context(self, phases: list[Phase]) -> None:
        upstream: dict[str, list[str]] = {}
        for phase in phases:
            for task in phase.tasks:
                ancestors: list[str] = []
                for dependency in task.dependencies:
                    ancestors.extend(upstream.get(dependency, []))
                    ancestors.append(dependency)
                ancestors = list(dict.fromkeys(ancestors))
                upstream[task.role] = ancestors

                sources = ancestors if task.role in self.config.aggregate_roles else task.dependencies
                task.context_tags = list(
                    dict.fromkeys(self.config.output_tag_for(role) for role in sources)
                )


def _intersect(wanted: Iterable[str], available: list[str]) -> list[str]:
    available_set = set(available)
    return [name for name in wanted if name in available_set]


def _promote_parallel_phases(phases: list[Phase]) -> None:
    """Mark multi-task phases parallel when their tasks share no dependency."""
    for phase in phases:
        if phase.parallel or len(phase.tasks) < 2:
            continue
        seen: set[str] = set()
        shared = False
        for task in phase.tasks:
            deps = set(task.dependencies)
            if deps & seen:
                shared = True
                break
            seen |= deps
        if not shared:
            phase.parallel = True


def _describe_strategy(phases: list[Phase], analysis: TaskAnalysis) -> str:
    total = sum(len(phase.tasks) for phase in phases)
    parallel = sum(1 for phase in phases if phase.parallel)
    names = " → ".join(phase.name for phase in phases)
    return (
        f"{total} agents across {len(phases)} phases ({parallel} parallel): {names} - "
        f"{analysis.scope} {'+'.join(analysis.domains)} task"
    )


def render_plan(plan: ExecutionPlan) -> str:
    """Tree view of phases, roles, and tool grants."""
    lines = ["┌─ Execution Plan"]
    for phase_index, phase in enumerate(plan.phases):
        mode = "parallel" if phase.parallel else "sequential"
        lines.append("│")
        lines.append(f"├─ {phase.name} ({mode})")
        last_phase = phase_index == len(plan.phases) - 1
        for task_index, task in enumerate(phase.tasks):
            branch = "└" if last_phase and task_index == len(phase.tasks) - 1 else "├"
            tools = f" tools: {', '.join(task.tools)}" if task.tools else ""
            deps = f" after: {', '.join(task.dependencies)}" if task.dependencies else ""
            lines.append(f"│  {branch}─ [{task.role}]{tools}{deps}")
    lines.append("└─")
    return "\n".join(lines)
