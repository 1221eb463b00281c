"""Tests for building events from CLI flags, GitHub payloads and local git."""

import json

import pytest

from conftest import git
from docsci import events
from docsci.model import PULL_REQUEST, PUSH
from docsci.presets import website
from docsci.triggers import should_run
from docsci.ui.console import Console, set_console


PUSH_PAYLOAD = {
    "ref": "refs/heads/main",
    "after": "b" * 40,
    "repository": {"clone_url": "https://github.com/example/site.git"},
    "commits": [
        {"added": ["docs/new.md"], "modified": ["README.md"], "removed": []},
        {"added": [], "modified": ["docs/new.md"], "removed": ["docs/old.md"]},
    ],
}

PR_PAYLOAD = {
    "action": "synchronize",
    "pull_request": {
        "base": {"ref": "main", "sha": "a" * 40},
        "head": {"ref": "feature", "sha": "c" * 40},
    },
    "repository": {"clone_url": "https://github.com/example/site.git"},
}


def test_from_args_drops_empty_paths():
    event = events.from_args("push", branch="main", changed=["docs/a.md", ""])
    assert event.changed_paths == frozenset({"docs/a.md"})
    assert event.ref == "main"


def test_from_args_rejects_unknown_type():
    with pytest.raises(ValueError):
        events.from_args("release")


class TestGithubPayload:
    def test_push(self):
        event = events.from_github_payload(PUSH, PUSH_PAYLOAD)
        assert event.type == PUSH
        assert event.branch == "main"
        assert event.sha == "b" * 40
        assert event.ref == "b" * 40
        assert event.repository == "https://github.com/example/site.git"
        assert event.changed_paths == {"docs/new.md", "README.md", "docs/old.md"}

    def test_pull_request_uses_base_branch_and_head_sha(self):
        event = events.from_github_payload(PULL_REQUEST, PR_PAYLOAD)
        assert event.branch == "main"
        assert event.sha == "c" * 40
        assert event.changed_paths == frozenset()

    def test_with_changes(self):
        event = events.from_github_payload(PULL_REQUEST, PR_PAYLOAD)
        event = events.with_changes(event, ["docs/a.md"])
        assert event.changed_paths == {"docs/a.md"}
        assert event.sha == "c" * 40

    def test_unsupported_type(self):
        with pytest.raises(ValueError):
            events.from_github_payload("issues", {})

    def test_from_event_file(self, tmp_path):
        path = tmp_path / "event.json"
        path.write_text(json.dumps(PUSH_PAYLOAD))
        assert events.from_event_file(PUSH, path).branch == "main"

    def test_pull_request_changes_needs_shas(self, tmp_path):
        with pytest.raises(ValueError):
            events.pull_request_changes({"pull_request": {}}, tmp_path)


class TestFromGit:
    def test_push_from_current_branch(self, docs_repo):
        git(docs_repo, "checkout", "-q", "-b", "topic")
        (docs_repo / "docs" / "intro.md").write_text("# Intro\n")
        git(docs_repo, "add", ".")
        git(docs_repo, "commit", "-q", "-m", "intro")

        event = events.from_git(PUSH, compare_ref="main", repo=docs_repo)
        assert event.branch == "topic"
        assert event.changed_paths == {"docs/intro.md"}
        assert event.sha == git(docs_repo, "rev-parse", "HEAD")
        assert event.repository == str(docs_repo.resolve())

    def test_pull_request_targets_compare_branch(self, docs_repo):
        git(docs_repo, "checkout", "-q", "-b", "topic")
        (docs_repo / "src.txt").write_text("x\n")
        git(docs_repo, "add", ".")
        git(docs_repo, "commit", "-q", "-m", "code")

        event = events.from_git(PULL_REQUEST, compare_ref="origin/main", repo=docs_repo, branch=None)
        assert event.branch == "main"

    def test_uncommitted_edits_do_not_hide_committed_changes(self, docs_repo):
        git(docs_repo, "checkout", "-q", "-b", "topic")
        (docs_repo / "docs" / "intro.md").write_text("# Intro\n")
        git(docs_repo, "add", ".")
        git(docs_repo, "commit", "-q", "-m", "intro")
        (docs_repo / "README.md").write_text("local edit\n")

        event = events.from_git(PULL_REQUEST, compare_ref="main", repo=docs_repo)
        assert event.changed_paths == {"docs/intro.md"}
        assert should_run(website(), event)

    def test_dirty_tree_is_reported_in_debug_mode(self, docs_repo, capsys):
        set_console(Console(debug=True))
        (docs_repo / "README.md").write_text("local edit\n")
        events.from_git(PUSH, compare_ref="main", repo=docs_repo)
        assert "uncommitted changes are ignored" in capsys.readouterr().err

    def test_explicit_branch_wins(self, docs_repo):
        event = events.from_git(PUSH, compare_ref="main", repo=docs_repo, branch="release")
        assert event.branch == "release"
