"""Tests for the event filter."""

import pytest

from docsci.model import Event
from docsci.presets import website
from docsci.dsl import job, on_pull_request, on_push, sh, wf
from docsci.triggers import explain, glob_match, matches_any, should_run


@pytest.fixture
def site():
    return website()


def pr(*paths, branch="main"):
    return Event(type="pull_request", branch=branch, changed_paths=paths)


def push(branch, *paths):
    return Event(type="push", branch=branch, changed_paths=paths)


class TestGlobMatch:
    def test_double_star_covers_subtrees(self):
        assert glob_match("docs/a.md", "docs/**")
        assert glob_match("docs/blog/2024/post.md", "docs/**")

    def test_double_star_is_anchored(self):
        assert not glob_match("documentation/a.md", "docs/**")
        assert not glob_match("src/docs/a.md", "docs/**")

    def test_single_star_stays_in_directory(self):
        assert glob_match("docs/a.md", "docs/*")
        assert not glob_match("docs/sub/a.md", "docs/*")

    def test_leading_double_star(self):
        assert glob_match("package.json", "**/package.json")
        assert glob_match("docs/package.json", "**/package.json")

    def test_exact_file(self):
        assert glob_match(".github/workflows/website.yml", ".github/workflows/website.yml")
        assert not glob_match(".github/workflows/website.yaml", ".github/workflows/website.yml")

    def test_dot_slash_prefix_ignored(self):
        assert glob_match("./docs/a.md", "docs/**")

    def test_negation(self):
        patterns = ["docs/**", "!docs/**/*.png"]
        assert matches_any("docs/a.md", patterns)
        assert not matches_any("docs/img/logo.png", patterns)


class TestPullRequest:
    def test_docs_change_triggers(self, site):
        assert should_run(site, pr("docs/intro.md"))
        assert should_run(site, pr("docs/deep/nested/page.mdx"))

    def test_workflow_files_trigger(self, site):
        assert should_run(site, pr(".github/workflows/website.yml"))
        assert should_run(site, pr(".github/workflows/deploy-website.yml"))

    def test_unrelated_change_does_not_trigger(self, site):
        assert not should_run(site, pr("src/main.rs", "README.md"))
        assert not should_run(site, pr(".github/workflows/ci.yml"))

    def test_no_changes_does_not_trigger(self, site):
        assert not should_run(site, pr())

    def test_any_matching_path_is_enough(self, site):
        assert should_run(site, pr("src/lib.rs", "docs/sidebar.js"))

    def test_reason_names_patterns(self, site):
        triggered, reason = explain(site, pr("src/lib.rs"))
        assert not triggered
        assert "docs/**" in reason


class TestPush:
    def test_main_triggers(self, site):
        assert should_run(site, push("main"))

    def test_push_ignores_paths_when_unfiltered(self, site):
        assert should_run(site, push("main", "src/lib.rs"))

    @pytest.mark.parametrize("branch", ["develop", "main-backup", "feature/main", ""])
    def test_other_branches_do_not_trigger(self, site, branch):
        assert not should_run(site, push(branch, "docs/a.md"))


class TestMissingTriggers:
    def test_workflow_without_push_trigger(self):
        only_pr = wf("x", job("j", sh("a", "true")), pull_request=on_pull_request("docs/**"))
        triggered, reason = explain(only_pr, push("main"))
        assert not triggered
        assert "no push trigger" in reason

    def test_pull_request_branch_filter(self):
        flow = wf("x", job("j", sh("a", "true")), pull_request=on_pull_request(branches=["release/*"]))
        assert should_run(flow, pr("anything", branch="release/1.2"))
        assert not should_run(flow, pr("anything", branch="main"))

    def test_push_branch_glob(self):
        flow = wf("x", job("j", sh("a", "true")), push=on_push("release/**"))
        assert should_run(flow, push("release/2024/q1"))
        assert not should_run(flow, push("main"))


def test_event_rejects_unknown_type():
    with pytest.raises(ValueError):
        Event(type="schedule")
