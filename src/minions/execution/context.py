"""Select the blackboard entries a task reads before it runs."""

from __future__ import annotations

from minions.storage.base import Blackboard
from minions.storage.models import BlackboardEntry

DEFAULT_MAX_CONTEXT_ENTRIES = 20


class ContextAssembler:
    def __init__(self, store: Blackboard, *, max_entries: int = DEFAULT_MAX_CONTEXT_ENTRIES) -> None:
        self.store = store
        self.max_entries = max(0, max_entries)

    def assemble(self, run_id: str, tags: list[str]) -> list[BlackboardEntry]:
        """Entries of the run sharing any tag, oldest first, keeping the newest ``max_entries``."""
        if not tags or self.max_entries == 0:
            return []
        entries = self.store.query_entries(run_id, tags=tags)
        return entries[-self.max_entries :]
