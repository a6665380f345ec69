"""Tests for the bugtrail CLI commands."""

from __future__ import annotations

import json
import logging
import os
import webbrowser
from pathlib import Path
from typing import Any

import pytest
import uvicorn
from click.testing import CliRunner

import bugtrail.dashboard as dash_module
from bugtrail.cli import cli
from bugtrail.core import BUGTRAIL_DIR_NAME, CONFIG_FILENAME, DB_FILENAME


def _extract_id(create_output: str) -> str:
    """Extract bug ID from 'Created test-abc123: Title' output."""
    return create_output.split(":")[0].replace("Created ", "").strip()


def _create(runner: CliRunner, title: str, *args: str) -> str:
    result = runner.invoke(cli, ["create", title, *args])
    assert result.exit_code == 0, result.output
    return _extract_id(result.output)


class TestInit:
    def test_creates_project(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original_cwd = os.getcwd()
        os.chdir(str(tmp_path))
        try:
            result = cli_runner.invoke(cli, ["init", "--prefix", "web"])
        finally:
            os.chdir(original_cwd)
        assert result.exit_code == 0
        assert "Initialized" in result.output
        bugtrail_dir = tmp_path / BUGTRAIL_DIR_NAME
        assert (bugtrail_dir / DB_FILENAME).exists()
        config = json.loads((bugtrail_dir / CONFIG_FILENAME).read_text())
        assert config["prefix"] == "web"
        assert config["max_page_size"] == 100

    def test_second_init_reports_existing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["init"])
        assert result.exit_code == 0
        assert "already exists" in result.output

    def test_commands_outside_project_fail(self, tmp_path: Path, cli_runner: CliRunner) -> None:
        original_cwd = os.getcwd()
        os.chdir(str(tmp_path))
        try:
            result = cli_runner.invoke(cli, ["list"])
        finally:
            os.chdir(original_cwd)
        assert result.exit_code == 1
        assert "bugtrail init" in result.output


class TestCreateShow:
    def test_create_and_show(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Crash on save", "--severity", "high", "-t", "ui", "--reported-by", "alice")
        assert bug_id.startswith("test-")
        result = runner.invoke(cli, ["show", bug_id])
        assert result.exit_code == 0
        assert "Crash on save" in result.output
        assert "Severity: high" in result.output
        assert "Reporter: alice" in result.output
        assert "Tags:     ui" in result.output

    def test_reporter_defaults_to_actor(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["--actor", "qa-bot", "create", "Flaky test", "--json"])
        assert result.exit_code == 0
        assert json.loads(result.output)["reportedBy"] == "qa-bot"

    def test_show_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Json me")
        data = json.loads(runner.invoke(cli, ["show", bug_id, "--json"]).output)
        assert data["id"] == bug_id
        assert data["status"] == "open"

    def test_show_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["show", "test-nope"])
        assert result.exit_code == 1
        assert "Not found" in result.output

    def test_invalid_severity_rejected_by_click(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["create", "Bad", "--severity", "blocker"])
        assert result.exit_code == 2


class TestListAndStats:
    def test_list_filters_and_footer(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "High one", "--severity", "high")
        _create(runner, "Low one", "--severity", "low")
        result = runner.invoke(cli, ["list", "--severity", "high"])
        assert result.exit_code == 0
        assert "High one" in result.output
        assert "Low one" not in result.output
        assert "Page 1/1, 1 bugs" in result.output

    def test_list_json_paging(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        for i in range(5):
            _create(runner, f"Bug {i}")
        result = runner.invoke(cli, ["list", "--page-size", "2", "--page", "3", "--json"])
        data = json.loads(result.output)
        assert data["totalCount"] == 5
        assert data["totalPages"] == 3
        assert len(data["items"]) == 1

    def test_list_sort_by_severity(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "Medium", "--severity", "medium")
        _create(runner, "Critical", "--severity", "critical")
        _create(runner, "Low", "--severity", "low")
        data = json.loads(runner.invoke(cli, ["list", "--sort-by", "severity", "--json"]).output)
        assert [item["title"] for item in data["items"]] == ["Critical", "Medium", "Low"]

    def test_stats_json(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "One", "-t", "ui")
        _create(runner, "Two")
        data = json.loads(runner.invoke(cli, ["stats", "--json"]).output)
        assert data["total"] == 2
        assert data["recentCount"] == 2
        scoped = json.loads(runner.invoke(cli, ["stats", "--tag", "ui", "--json"]).output)
        assert scoped["total"] == 1

    def test_stats_text(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        _create(runner, "One")
        result = runner.invoke(cli, ["stats"])
        assert result.exit_code == 0
        assert "Total: 1" in result.output
        assert "open: 1" in result.output
        assert "New in last 24h: 1" in result.output


class TestUpdateDelete:
    def test_update_status(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Fix me")
        result = runner.invoke(cli, ["update", bug_id, "--status", "resolved"])
        assert result.exit_code == 0
        assert f"Updated {bug_id}: resolved" in result.output

    def test_update_replaces_and_clears_tags(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Tagged", "-t", "a")
        data = json.loads(runner.invoke(cli, ["update", bug_id, "-t", "b", "-t", "c", "--json"]).output)
        assert data["tags"] == ["b", "c"]
        data = json.loads(runner.invoke(cli, ["update", bug_id, "--clear-tags", "--json"]).output)
        assert data["tags"] == []

    def test_update_missing(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        result = runner.invoke(cli, ["update", "test-nope", "--status", "closed", "--json"])
        assert result.exit_code == 1
        assert "Not found" in json.loads(result.output)["error"]

    def test_delete_requires_confirmation(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Keep me")
        result = runner.invoke(cli, ["delete", bug_id], input="n\n")
        assert result.exit_code == 1
        assert runner.invoke(cli, ["show", bug_id]).exit_code == 0

    def test_delete_with_yes(self, cli_in_project: tuple[CliRunner, Path]) -> None:
        runner, _ = cli_in_project
        bug_id = _create(runner, "Remove me")
        result = runner.invoke(cli, ["delete", bug_id, "--yes"])
        assert result.exit_code == 0
        assert f"Deleted {bug_id}" in result.output
        assert runner.invoke(cli, ["show", bug_id]).exit_code == 1


class TestDashboard:
    def test_serves_without_opening_browser(
        self, cli_in_project: tuple[CliRunner, Path], monkeypatch: pytest.MonkeyPatch
    ) -> None:
        runner, project = cli_in_project
        served: dict[str, Any] = {}
        opened: list[str] = []

        def fake_run(app: Any, *, host: str, port: int, log_level: str) -> None:
            served.update(host=host, port=port, bugs=dash_module._db.count_bugs() if dash_module._db else None)

        monkeypatch.setattr(uvicorn, "run", fake_run)
        monkeypatch.setattr(webbrowser, "open", opened.append)
        try:
            result = runner.invoke(cli, ["dashboard", "--port", "9123"])
        finally:
            package_logger = logging.getLogger("bugtrail")
            for h in package_logger.handlers[:]:
                package_logger.removeHandler(h)
                h.close()
            package_logger.setLevel(logging.NOTSET)
        assert result.exit_code == 0, result.output
        assert served == {"host": "127.0.0.1", "port": 9123, "bugs": 0}
        assert opened == []
        assert dash_module._db is None
        assert (project / BUGTRAIL_DIR_NAME / "bugtrail.log").exists()

    def test_no_browser_flag_removed(self, cli_runner: CliRunner) -> None:
        result = cli_runner.invoke(cli, ["dashboard", "--help"])
        assert result.exit_code == 0
        assert "--no-browser" not in result.output
