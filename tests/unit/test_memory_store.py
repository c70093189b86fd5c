import pytest

from minions.errors import PersistenceError
from minions.storage.memory import InMemoryBlackboard
from minions.storage.models import ToolDefinition


def test_repeated_writes_bump_version_and_keep_latest_value(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")

    first = store.write_entry(run_id=run.run_id, key="k", value="A", written_by="researcher")
    second = store.write_entry(run_id=run.run_id, key="k", value="B", written_by="researcher")

    entries = store.query_entries(run.run_id)
    assert len(entries) == 1
    assert entries[0].value == "B"
    assert entries[0].version == 2
    assert second.entry_id == first.entry_id
    assert second.created_at >= first.created_at


def test_stored_value_is_isolated_from_caller_mutation(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    value = {"a": 1}
    tags = ["research"]

    store.write_entry(run_id=run.run_id, key="k", value=value, written_by="x", tags=tags)
    value["a"] = 2
    tags.append("leaked")

    [entry] = store.query_entries(run.run_id)
    assert entry.value == {"a": 1}
    assert entry.tags == ["research"]
    assert entry.version == 1

    store.write_entry(run_id=run.run_id, key="k", value=value, written_by="x")
    value["a"] = 3

    [entry] = store.query_entries(run.run_id)
    assert entry.value == {"a": 2}
    assert entry.version == 2


def test_query_entries_filters_and_orders(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    other = store.create_run("other")
    store.write_entry(run_id=run.run_id, key="a", value=1, written_by="x", tags=["research"])
    store.write_entry(
        run_id=run.run_id, key="b", value=2, written_by="y", tags=["review"], entity_ids=["e1"]
    )
    store.write_entry(run_id=run.run_id, key="c", value=3, written_by="x", tags=["research", "x"])
    store.write_entry(run_id=other.run_id, key="a", value=9, written_by="x", tags=["research"])

    assert [e.key for e in store.query_entries(run.run_id, tags=["research"])] == ["a", "c"]
    assert [e.key for e in store.query_entries(run.run_id, written_by="y")] == ["b"]
    assert [e.key for e in store.query_entries(run.run_id, entity_ids=["e1"])] == ["b"]
    assert [e.key for e in store.query_entries(run.run_id, limit=2)] == ["a", "b"]


def test_rewritten_entry_moves_to_end_of_order(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    store.write_entry(run_id=run.run_id, key="a", value=1, written_by="x")
    store.write_entry(run_id=run.run_id, key="b", value=2, written_by="x")
    store.write_entry(run_id=run.run_id, key="a", value=3, written_by="x")

    assert [e.key for e in store.query_entries(run.run_id)] == ["b", "a"]


def test_ready_tasks_require_completed_dependencies(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    first = store.create_task(run_id=run.run_id, role="a", description="a", position=0)
    second = store.create_task(
        run_id=run.run_id, role="b", description="b", dependencies=[first.task_id], position=1
    )

    assert [t.role for t in store.list_ready_tasks(run.run_id)] == ["a"]

    store.update_task(first.task_id, status="completed")

    assert [t.role for t in store.list_ready_tasks(run.run_id)] == ["b"]
    assert [t.task_id for t in store.list_pending_tasks(run.run_id)] == [second.task_id]

    store.update_task(first.task_id, status="failed")
    assert store.list_ready_tasks(run.run_id) == []


def test_duplicate_role_in_run_is_rejected(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    store.create_task(run_id=run.run_id, role="a", description="a")

    with pytest.raises(PersistenceError):
        store.create_task(run_id=run.run_id, role="a", description="again")


def test_writes_against_unknown_run_fail(store: InMemoryBlackboard) -> None:
    with pytest.raises(PersistenceError):
        store.write_entry(run_id="missing", key="k", value=1, written_by="x")
    with pytest.raises(PersistenceError):
        store.create_task(run_id="missing", role="a", description="a")


def test_update_rejects_unknown_fields(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")

    with pytest.raises(ValueError, match="Unsupported run update fields"):
        store.update_run(run.run_id, task="rewritten")


def test_list_runs_most_recent_first(store: InMemoryBlackboard) -> None:
    first = store.create_run("first")
    second = store.create_run("second")

    runs = store.list_runs(limit=5)

    assert {r.run_id for r in runs} == {first.run_id, second.run_id}
    assert runs[0].started_at >= runs[1].started_at
    assert len(store.list_runs(limit=1)) == 1


def test_default_tools_seeded_once_and_register_upserts() -> None:
    store = InMemoryBlackboard()
    store.migrate()
    store.migrate()

    assert len(store.list_tools()) == 7
    assert [t.name for t in store.list_tools(category="web")] == ["web_fetch", "web_search"]

    original = store.get_tools_by_names(["web_search"])[0]
    updated = store.register_tool(
        ToolDefinition(name="web_search", description="New", category="web", usage="use it")
    )
    added = store.register_tool(
        ToolDefinition(name="jq", description="JSON processor", category="system", usage="jq .")
    )

    assert updated.tool_id == original.tool_id
    assert updated.description == "New"
    assert added.name in [t.name for t in store.list_tools()]
    assert len(store.list_tools()) == 8


def test_artifacts_listed_per_run(store: InMemoryBlackboard) -> None:
    run = store.create_run("task")
    store.save_artifact(run_id=run.run_id, name="report.md", content_type="text/markdown", content="#")

    artifacts = store.list_artifacts(run.run_id)

    assert [a.name for a in artifacts] == ["report.md"]
