"""Trigger and whitelist tables used by the plan builder.

Tables are plain data injected into ``PlanBuilder``; nothing here is read from
module state at plan time. Trigger tuples are ordered and that order is the
tie-break when several triggers fire.
"""

from __future__ import annotations

import re
from dataclasses import dataclass, field

DEFAULT_DOMAIN_TRIGGERS: tuple[tuple[str, str], ...] = (
    ("security", r"\b(security|secure|vulnerabilit\w*|penetration|pentest\w*|exploit\w*)\b"),
    ("database", r"\b(database\w*|postgres\w*|sql|mysql|sqlite|quer(y|ies))\b"),
    ("api", r"\b(apis?|rest|graphql|endpoints?)\b"),
    ("frontend", r"\b(frontend|front-end|ui|ux|react|vue|angular|css)\b"),
    ("backend", r"\b(backend|back-end|servers?|microservices?)\b"),
    ("devops", r"\b(devops|docker\w*|kubernetes|k8s|deploy\w*|terraform|ci/cd)\b"),
    ("research", r"\b(research\w*|analy[sz]\w*|investigat\w*)\b"),
    ("testing", r"\b(test\w*|qa)\b"),
)

DEFAULT_INTENT_TRIGGERS: tuple[tuple[str, str], ...] = (
    ("research", r"\b(research\w*|analy[sz]\w*|investigat\w*)\b"),
    ("build", r"\b(build\w*|implement\w*|develop\w*|code|coding|refactor\w*|fix\w*)\b"),
    ("review", r"\b(review\w*|audit\w*|check\w*|verif\w*|validat\w*|test\w*)\b"),
)

# Ascending severity; the highest matching level wins.
DEFAULT_RISK_TRIGGERS: tuple[tuple[str, str], ...] = (
    ("medium", r"\b(production|prod|live|critical|security)\b"),
    ("high", r"\b(delet\w*|remov\w*|destroy\w*|drop|wipe\w*|nuclear)\b"),
)

DEFAULT_ENTERPRISE_TRIGGER = r"\b(enterprise|platform|architecture)\b"

DEFAULT_DOMAIN_TOOLS: dict[str, tuple[str, ...]] = {
    "security": ("shell_exec", "file_read", "web_fetch"),
    "database": ("postgres_query", "shell_exec", "file_read"),
    "api": ("web_fetch", "shell_exec", "file_read", "file_write"),
    "frontend": ("file_read", "file_write", "shell_exec", "web_fetch"),
    "backend": ("file_read", "file_write", "shell_exec", "postgres_query"),
    "devops": ("shell_exec", "file_read", "file_write"),
    "research": ("web_search", "web_fetch", "file_write"),
    "testing": ("shell_exec", "file_read"),
}

DEFAULT_ROLE_TOOLS: dict[str, tuple[str, ...]] = {
    "researcher": ("web_search", "web_fetch"),
    "implementer": ("file_read", "file_write", "shell_exec", "github_cli"),
    "developer": ("file_read", "file_write", "shell_exec", "github_cli"),
    "reviewer": ("file_read", "shell_exec"),
    "tester": ("shell_exec", "file_read"),
    "architect": ("file_read", "file_write"),
    "synthesizer": ("file_write",),
    "validator": ("file_read", "shell_exec"),
}

DEFAULT_ROLE_OUTPUT_TAGS: dict[str, str] = {
    "researcher": "research",
    "implementer": "implementation",
    "developer": "implementation",
    "reviewer": "review",
    "tester": "testing",
    "architect": "architecture",
    "synthesizer": "synthesis",
    "validator": "validation",
    "executor": "result",
}

# Roles that read everything upstream of them, not only their direct dependencies.
DEFAULT_AGGREGATE_ROLES: frozenset[str] = frozenset({"synthesizer", "validator"})

ANALYST_SUFFIX = "_analyst"
DEVELOPER_SUFFIX = "_developer"
GENERAL_DOMAIN = "general"


@dataclass(frozen=True)
class PlannerConfig:
    domain_triggers: tuple[tuple[str, str], ...] = DEFAULT_DOMAIN_TRIGGERS
    intent_triggers: tuple[tuple[str, str], ...] = DEFAULT_INTENT_TRIGGERS
    risk_triggers: tuple[tuple[str, str], ...] = DEFAULT_RISK_TRIGGERS
    enterprise_trigger: str = DEFAULT_ENTERPRISE_TRIGGER
    domain_tools: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_DOMAIN_TOOLS)
    )
    role_tools: dict[str, tuple[str, ...]] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_TOOLS)
    )
    role_output_tags: dict[str, str] = field(
        default_factory=lambda: dict(DEFAULT_ROLE_OUTPUT_TAGS)
    )
    aggregate_roles: frozenset[str] = DEFAULT_AGGREGATE_ROLES
    medium_length: int = 200
    large_length: int = 500
    medium_domain_count: int = 2
    large_domain_count: int = 3
    multi_domain_threshold: int = 3

    def matches(self, pattern: str, text: str) -> bool:
        return re.search(pattern, text, flags=re.IGNORECASE) is not None

    def output_tag_for(self, role: str) -> str:
        tag = self.role_output_tags.get(role)
        if tag:
            return tag
        if role.endswith(ANALYST_SUFFIX):
            return "domain_analysis"
        if role.endswith(DEVELOPER_SUFFIX):
            return "implementation"
        return role


def default_planner_config() -> PlannerConfig:
    return PlannerConfig()
