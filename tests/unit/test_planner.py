from minions.planning.builder import PlanBuilder, render_plan
from minions.planning.triggers import PlannerConfig

from tests.conftest import ALL_TOOLS


def test_research_task_plans_single_researcher() -> None:
    plan = PlanBuilder().build(
        "Research the top Go web frameworks and create a comparison report", ALL_TOOLS
    )

    assert plan.analysis is not None
    assert plan.analysis.domains == ["research"]
    assert plan.analysis.scope == "small"
    assert plan.analysis.risk == "low"
    assert len(plan.phases) == 1
    assert plan.roles() == ["researcher"]
    researcher = plan.phases[0].tasks[0]
    assert researcher.tools == ["web_search", "web_fetch"]
    assert researcher.dependencies == []
    assert researcher.inputs["output_tags"] == ["research"]
    assert plan.estimated_agents == 1


def test_research_tools_limited_to_available() -> None:
    plan = PlanBuilder().build("Research quantum error correction", ["web_fetch", "file_read"])

    assert plan.phases[0].tasks[0].tools == ["web_fetch"]


def test_build_test_review_chains_into_synthesizer() -> None:
    plan = PlanBuilder().build("Build a command line parser, test it, and review the code", ALL_TOOLS)

    assert plan.roles() == ["implementer", "reviewer", "synthesizer"]
    implementer, reviewer, synthesizer = plan.all_tasks()
    assert implementer.dependencies == []
    assert reviewer.dependencies == ["implementer"]
    assert synthesizer.dependencies == ["reviewer"]
    assert reviewer.context_tags == ["implementation"]
    assert synthesizer.context_tags == ["implementation", "review"]
    assert [phase.name for phase in plan.phases] == [
        "Phase 1: Implementation",
        "Phase 2: Review & Validation",
        "Phase 3: Synthesis",
    ]


def test_untriggered_task_falls_back_to_executor_with_all_tools() -> None:
    plan = PlanBuilder().build("Organize my weekend plans", ALL_TOOLS)

    assert plan.analysis is not None
    assert plan.analysis.domains == ["general"]
    assert plan.roles() == ["executor"]
    assert plan.phases[0].tasks[0].tools == ALL_TOOLS


def test_high_risk_appends_validator_after_last_phase() -> None:
    plan = PlanBuilder().build("Delete old log files from the server", ALL_TOOLS)

    assert plan.analysis is not None
    assert plan.analysis.risk == "high"
    assert plan.roles() == ["executor", "validator"]
    validator = plan.phases[-1].tasks[0]
    assert validator.dependencies == ["executor"]
    assert validator.context_tags == ["result"]
    assert validator.tools == ["file_read", "shell_exec"]


def test_enterprise_task_uses_multi_domain_template() -> None:
    plan = PlanBuilder().build(
        "Build an enterprise platform with a secure api, a react frontend and a postgres database",
        ALL_TOOLS,
    )

    assert plan.analysis is not None
    assert plan.analysis.scope == "enterprise"
    assert plan.analysis.domains == ["security", "database", "api", "frontend"]
    analysis_phase, architecture_phase, implementation_phase = plan.phases
    assert analysis_phase.parallel is True
    assert [task.role for task in analysis_phase.tasks] == [
        "security_analyst",
        "database_analyst",
        "api_analyst",
        "frontend_analyst",
    ]
    assert architecture_phase.tasks[0].role == "architect"
    assert architecture_phase.tasks[0].dependencies == [
        "security_analyst",
        "database_analyst",
        "api_analyst",
        "frontend_analyst",
    ]
    assert implementation_phase.parallel is True
    assert all(task.dependencies == ["architect"] for task in implementation_phase.tasks)
    assert analysis_phase.tasks[0].tools == ["shell_exec", "file_read", "web_fetch"]
    assert plan.estimated_agents == 9
    assert plan.strategy.startswith("9 agents across 3 phases (2 parallel)")


def test_long_task_uses_large_template() -> None:
    plan = PlanBuilder().build("Implement a small feature. " * 30, ALL_TOOLS)

    assert plan.analysis is not None
    assert plan.analysis.scope == "large"
    assert plan.roles() == ["researcher", "developer", "tester"]
    assert plan.all_tasks()[2].dependencies == ["developer"]


def test_roles_are_unique_within_plan() -> None:
    plan = PlanBuilder().build(
        "Research, build, and review a secure api for the enterprise platform", ALL_TOOLS
    )

    roles = plan.roles()
    assert len(roles) == len(set(roles))


def test_injected_trigger_tables_override_defaults() -> None:
    config = PlannerConfig(
        intent_triggers=(("research", r"\bponder\b"),),
        domain_triggers=(),
    )

    plan = PlanBuilder(config).build("Ponder the meaning of life", ALL_TOOLS)

    assert plan.roles() == ["researcher"]


def test_render_plan_lists_roles_and_tools() -> None:
    plan = PlanBuilder().build("Build a command line parser, test it, and review the code", ALL_TOOLS)

    rendered = render_plan(plan)

    assert "[implementer]" in rendered
    assert "after: implementer" in rendered
    assert "Phase 3: Synthesis (sequential)" in rendered
