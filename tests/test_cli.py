"""Tests for the docsci command line."""

import pytest
from click.testing import CliRunner

from conftest import requires_bash
from docsci import config
from docsci.cli import SKIPPED_EXIT_CODE, cli


@pytest.fixture(autouse=True)
def fresh_settings(monkeypatch):
    monkeypatch.setattr(config, "_settings", None)
    monkeypatch.delenv("DOCSCI_WORKFLOW", raising=False)


@pytest.fixture
def runner():
    return CliRunner()


def _workflow_file(tmp_path, cmd):
    path = tmp_path / "site_workflow.py"
    path.write_text(
        "from docsci.dsl import wf, job, sh, on_push\n"
        "def workflow():\n"
        f"    return wf('cli', job('only', sh('step', {cmd!r})), push=on_push('main'))\n"
    )
    return str(path)


class TestCheck:
    def test_docs_pull_request_triggers(self, runner):
        result = runner.invoke(
            cli,
            ["check", "--preset", "website", "--event", "pull_request", "--branch", "main",
             "--changed", "docs/intro.md", "--repo", "unused"],
        )
        assert result.exit_code == 0, result.output
        assert "docs/**" in result.output

    def test_unrelated_pull_request_is_skipped(self, runner):
        result = runner.invoke(
            cli,
            ["check", "--preset", "website", "--event", "pull_request", "--branch", "main",
             "--changed", "src/lib.rs", "--repo", "unused"],
        )
        assert result.exit_code == SKIPPED_EXIT_CODE

    def test_push_to_other_branch_is_skipped(self, runner):
        result = runner.invoke(cli, ["check", "--preset", "website", "--branch", "dev", "--repo", "unused"])
        assert result.exit_code == SKIPPED_EXIT_CODE

    def test_event_payload_file(self, runner, tmp_path):
        payload = tmp_path / "event.json"
        payload.write_text('{"ref": "refs/heads/main", "commits": [], "repository": {"clone_url": "x"}}')
        result = runner.invoke(cli, ["check", "--preset", "website", "--event-path", str(payload)])
        assert result.exit_code == 0, result.output


def test_plan_lists_steps(runner):
    result = runner.invoke(cli, ["plan", "--preset", "website"])
    assert result.exit_code == 0, result.output
    assert "Test deployment" in result.output
    assert "yarn install --frozen-lockfile" in result.output
    assert "yarn build" in result.output
    assert "(in ./docs)" in result.output


@requires_bash
class TestRun:
    def _run(self, runner, tmp_path, workflow, *extra):
        return runner.invoke(
            cli,
            ["run", "--workflow", workflow, "--repo", "unused", "--work-dir", str(tmp_path / "work"), *extra],
        )

    def test_success(self, runner, tmp_path):
        result = self._run(runner, tmp_path, _workflow_file(tmp_path, "echo hi"), "--branch", "main")
        assert result.exit_code == 0, result.output
        assert "SUCCESS" in result.output

    def test_failure_exit_code(self, runner, tmp_path):
        result = self._run(runner, tmp_path, _workflow_file(tmp_path, "exit 4"), "--branch", "main")
        assert result.exit_code == 4

    def test_not_triggered(self, runner, tmp_path):
        result = self._run(runner, tmp_path, _workflow_file(tmp_path, "exit 4"), "--branch", "dev")
        assert result.exit_code == 0
        assert "Nothing to do." in result.output

    def test_force(self, runner, tmp_path):
        result = self._run(runner, tmp_path, _workflow_file(tmp_path, "exit 4"), "--branch", "dev", "--force")
        assert result.exit_code == 4


def test_pull_request_run_needs_head_commit(runner, tmp_path):
    result = runner.invoke(
        cli,
        ["run", "--preset", "website", "--event", "pull_request", "--branch", "main",
         "--changed", "docs/intro.md", "--repo", "unused", "--work-dir", str(tmp_path / "work")],
    )
    assert result.exit_code == 1
    assert "Missing pull request commit" in result.output
    assert not (tmp_path / "work").exists()


def test_missing_workflow_file(runner, tmp_path):
    result = runner.invoke(cli, ["plan", "--workflow", str(tmp_path / "missing.yml")])
    assert result.exit_code == 1
    assert "Workflow file not found" in result.output
