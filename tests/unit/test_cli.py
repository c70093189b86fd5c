import json
from pathlib import Path

import pytest

from minions import cli
from minions.config.settings import Settings


@pytest.fixture(autouse=True)
def _offline_settings(monkeypatch: pytest.MonkeyPatch, settings: Settings) -> None:
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.setattr(cli, "get_settings", lambda: settings)


def test_run_prints_plan_and_summary(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--memory", "run", "Organize my weekend plans"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "Phase 1: Execute" in out
    assert "[executor]" in out
    assert "completed in" in out
    assert "**1/1** agents completed successfully." in out


def test_plan_only_does_not_execute(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["--memory", "run", "--plan-only", "Research Rust async runtimes"])

    out = capsys.readouterr().out
    assert exit_code == 0
    assert "[researcher]" in out
    assert "completed in" not in out


def test_tools_list_and_add(tmp_path: Path, capsys: pytest.CaptureFixture[str]) -> None:
    payload = {"name": "jq", "description": "JSON processor", "category": "system", "usage": "jq ."}
    tool_file = tmp_path / "jq.json"
    tool_file.write_text(json.dumps(payload), encoding="utf-8")

    assert cli.main(["--memory", "tools", "add", str(tool_file)]) == 0
    assert "Registered jq (system)" in capsys.readouterr().out

    assert cli.main(["--memory", "tools", "--category", "web"]) == 0
    out = capsys.readouterr().out
    assert "web_search" in out
    assert "shell_exec" not in out


def test_history_and_show_on_empty_store(capsys: pytest.CaptureFixture[str]) -> None:
    assert cli.main(["--memory", "history"]) == 0
    assert "No runs yet." in capsys.readouterr().out

    assert cli.main(["--memory", "show", "missing"]) == 1
    assert "not found" in capsys.readouterr().err


def test_missing_database_is_fatal(capsys: pytest.CaptureFixture[str]) -> None:
    exit_code = cli.main(["history"])

    assert exit_code == 1
    assert capsys.readouterr().err.startswith("Fatal: Missing database URL")
