"""CLI integration tests."""

from __future__ import annotations

import json
import os
from pathlib import Path

import pytest
from click.testing import CliRunner

from panoptes.cli import cli
from panoptes.config import ConfigManager

CONTENT = "Quarterly Budget Review\n" + "line items and totals " * 10


def _env_with_home(tmp_path: Path, **extra: str) -> dict[str, str]:
    """Return an environment with HOME in a temp directory and no model server.

    Args:
        tmp_path: Temporary directory provided by pytest.
        **extra: Additional variables to set.

    Returns:
        dict[str, str]: Environment mapping for `CliRunner.invoke`.
    """
    env = {key: value for key, value in os.environ.items() if not key.startswith("PANOPTES__")}
    env["HOME"] = str(tmp_path / "home")
    env["PANOPTES__INFERENCE__URL"] = "http://127.0.0.1:9"
    env["PANOPTES__INFERENCE__RETRIES"] = "0"
    env["PANOPTES__INFERENCE__TIMEOUT_SECONDS"] = "5"
    env["PANOPTES__INFERENCE__HEALTH_TIMEOUT_SECONDS"] = "2"
    env["PANOPTES__LOGGING__LEVEL"] = "ERROR"
    env.update(extra)
    return env


def _state_dir(tmp_path: Path) -> Path:
    return tmp_path / "home" / ".panoptes"


@pytest.fixture()
def inbox(tmp_path: Path) -> Path:
    root = tmp_path / "inbox"
    root.mkdir()
    (root / "notes.txt").write_text(CONTENT, encoding="utf-8")
    return root


def test_cli_help_displays_commands() -> None:
    runner = CliRunner()
    result = runner.invoke(cli, ["--help"])

    assert result.exit_code == 0
    assert "Panoptes watches folders" in result.output
    for command in ("watch", "analyze", "undo", "history", "review", "stats", "config"):
        assert command in result.output


def test_analyze_renames_and_undo_restores(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["analyze", str(inbox), "--skip-health-check"], env=env)

    assert result.exit_code == 0, result.output
    renamed = sorted(path.name for path in inbox.iterdir())
    assert len(renamed) == 1
    assert renamed[0].endswith("_quarterly_budget_review.txt")
    assert "Renamed" in result.output
    assert "Analyze summary" in result.output
    ledger_lines = (_state_dir(tmp_path) / "history.jsonl").read_text(encoding="utf-8")
    assert len(ledger_lines.splitlines()) == 1

    undo = runner.invoke(cli, ["undo"], env=env)

    assert undo.exit_code == 0, undo.output
    assert "Restored" in undo.output
    assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]
    assert (inbox / "notes.txt").read_text(encoding="utf-8") == CONTENT


def test_analyze_json_reports_counts(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["analyze", str(inbox), "--skip-health-check", "--json"], env=env
    )

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload["counts"]["processed"] == 1
    assert payload["counts"]["renamed"] == 1
    outcome = payload["outcomes"][0]
    assert outcome["state"] == "renamed"
    assert outcome["analysis"]["analyzer"] == "document"
    assert outcome["persisted"] is True


def test_analyze_dry_run_leaves_no_trace(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli, ["analyze", str(inbox), "--skip-health-check", "--dry-run"], env=env
    )

    assert result.exit_code == 0, result.output
    assert "Would rename" in result.output
    assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]
    assert not (_state_dir(tmp_path) / "history.jsonl").exists()
    assert not (_state_dir(tmp_path) / "panoptes.db").exists()


def test_low_confidence_files_land_in_review(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path, PANOPTES__RULES__RENAME_THRESHOLD="0.9")

    result = runner.invoke(cli, ["analyze", str(inbox), "--skip-health-check"], env=env)

    assert result.exit_code == 0, result.output
    assert "below threshold" in result.output
    assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]

    review = runner.invoke(cli, ["review", "--json"], env=env)
    assert review.exit_code == 0, review.output
    records = json.loads(review.stdout)["records"]
    assert len(records) == 1
    assert records[0]["suggested_name"] == "quarterly_budget_review"
    assert records[0]["new_path"] is None

    stats = runner.invoke(cli, ["stats", "--json"], env=env)
    assert stats.exit_code == 0, stats.output
    summary = json.loads(stats.stdout)
    assert summary["total_files"] == 1
    assert summary["renamed_files"] == 0
    assert summary["pending_review"] == 1


def test_unreachable_model_server_is_fatal_without_skip(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["analyze", str(inbox)], env=env)

    assert result.exit_code == 1
    assert "--skip-health-check" in result.output
    assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]


def test_unreachable_model_server_json_error(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["analyze", str(inbox), "--json"], env=env)

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["error"]["code"] == "inference_unavailable"


def test_watch_refuses_to_start_without_model_server(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["watch", str(inbox)], env=env)

    assert result.exit_code == 1
    assert "--skip-health-check" in result.output
    assert sorted(path.name for path in inbox.iterdir()) == ["notes.txt"]


def test_models_reports_unreachable_server(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["models", "--json"], env=env)

    assert result.exit_code == 1
    payload = json.loads(result.stdout)
    assert payload["error"]["code"] == "inference_unavailable"


def test_quiet_and_summary_conflict(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(
        cli,
        ["analyze", str(inbox), "--skip-health-check", "--quiet", "--summary"],
        env=env,
    )

    assert result.exit_code == 1
    assert "cannot both be enabled" in result.output


def test_history_list_and_clear(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    runner.invoke(cli, ["analyze", str(inbox), "--skip-health-check"], env=env)

    listed = runner.invoke(cli, ["history", "list", "--json"], env=env)

    assert listed.exit_code == 0, listed.output
    entries = json.loads(listed.stdout)["entries"]
    assert len(entries) == 1
    assert entries[0]["original_path"].endswith("notes.txt")
    assert entries[0]["undone"] is False

    declined = runner.invoke(cli, ["history", "clear"], env=env, input="n\n")
    assert declined.exit_code == 1
    assert (_state_dir(tmp_path) / "history.jsonl").exists()

    cleared = runner.invoke(cli, ["history", "clear", "--yes"], env=env)
    assert cleared.exit_code == 0
    assert "History cleared." in cleared.output
    assert not (_state_dir(tmp_path) / "history.jsonl").exists()


def test_files_list_tag_and_forget(tmp_path: Path, inbox: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)
    runner.invoke(cli, ["analyze", str(inbox), "--skip-health-check"], env=env)

    listed = runner.invoke(cli, ["files", "list", "--json"], env=env)
    assert listed.exit_code == 0, listed.output
    records = json.loads(listed.stdout)["records"]
    assert len(records) == 1
    record_id = records[0]["id"]

    tagged = runner.invoke(cli, ["files", "tag", record_id, "urgent"], env=env)
    assert tagged.exit_code == 0, tagged.output
    untagged = runner.invoke(cli, ["files", "tag", record_id, "budget", "--remove"], env=env)
    assert untagged.exit_code == 0, untagged.output

    shown = runner.invoke(cli, ["files", "show", record_id, "--json"], env=env)
    assert shown.exit_code == 0, shown.output
    tags = json.loads(shown.stdout)["tags"]
    assert "urgent" in tags
    assert "budget" not in tags

    forgotten = runner.invoke(cli, ["files", "forget", record_id, "--yes"], env=env)
    assert forgotten.exit_code == 0, forgotten.output
    assert json.loads(runner.invoke(cli, ["files", "list", "--json"], env=env).stdout) == {
        "records": []
    }

    missing = runner.invoke(cli, ["files", "show", record_id, "--json"], env=env)
    assert missing.exit_code == 1
    assert json.loads(missing.stdout)["error"]["code"] == "record_not_found"


def test_undo_with_empty_history(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["undo", "--json"], env=env)

    assert result.exit_code == 0, result.output
    payload = json.loads(result.stdout)
    assert payload == {
        "dry_run": False,
        "reverted": 0,
        "skipped": 0,
        "entries": [],
        "warnings": [],
    }


def test_config_view_creates_and_displays_config(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "view"], env=env)

    assert result.exit_code == 0
    assert "rename_threshold:" in result.output
    assert (_state_dir(tmp_path) / "config.yaml").exists()


def test_config_set_updates_value_and_writes_diff(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "rules.rename_threshold", "0.7"], env=env)

    assert result.exit_code == 0, result.output
    assert "0.7" in result.output
    manager = ConfigManager(config_path=_state_dir(tmp_path) / "config.yaml", env={})
    assert manager.load().rules.rename_threshold == pytest.approx(0.7)

    again = runner.invoke(cli, ["config", "set", "rules.rename_threshold", "0.7"], env=env)
    assert again.exit_code == 0
    assert "No changes applied" in again.output


def test_config_set_rejects_invalid_values(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "set", "rules.rename_threshold", "1.5"], env=env)

    assert result.exit_code != 0
    manager = ConfigManager(config_path=_state_dir(tmp_path) / "config.yaml", env={})
    assert manager.load().rules.rename_threshold == pytest.approx(0.5)


def test_config_path_prints_location(tmp_path: Path) -> None:
    runner = CliRunner()
    env = _env_with_home(tmp_path)

    result = runner.invoke(cli, ["config", "path"], env=env)

    assert result.exit_code == 0
    assert result.output.strip() == str(_state_dir(tmp_path) / "config.yaml")
