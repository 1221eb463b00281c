from __future__ import annotations

import os
import shutil
import stat
import subprocess
from pathlib import Path

import pytest

from docsci.config import Settings
from docsci.ui.console import Console, set_console


GIT_ENV = {
    "GIT_AUTHOR_NAME": "docsci tests",
    "GIT_AUTHOR_EMAIL": "tests@example.com",
    "GIT_COMMITTER_NAME": "docsci tests",
    "GIT_COMMITTER_EMAIL": "tests@example.com",
}

requires_git = pytest.mark.skipif(shutil.which("git") is None, reason="git not installed")
requires_bash = pytest.mark.skipif(shutil.which("bash") is None, reason="bash not installed")


def git(cwd: Path, *args: str) -> str:
    env = dict(os.environ, **GIT_ENV)
    return subprocess.check_output(["git", *args], cwd=cwd, env=env, text=True).strip()


def write_executable(path: Path, body: str) -> Path:
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(body)
    path.chmod(path.stat().st_mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)
    return path


@pytest.fixture(autouse=True)
def quiet_console():
    console = Console(debug=False)
    set_console(console)
    return console


@pytest.fixture
def settings(tmp_path: Path) -> Settings:
    return Settings(work_dir=tmp_path / "work", toolcache=tmp_path / "toolcache")


@pytest.fixture
def node18(settings: Settings) -> Path:
    """A fake node 18 in the tool cache."""
    bin_dir = settings.toolcache / "node" / "18.19.0" / "bin"
    write_executable(bin_dir / "node", "#!/bin/sh\necho v18.19.0\n")
    return bin_dir


@pytest.fixture
def docs_repo(tmp_path: Path) -> Path:
    """
    A repository shaped like the docs site: docs/package.json plus a matching
    docs/yarn.lock, three commits on main.
    """
    if shutil.which("git") is None:
        pytest.skip("git not installed")
    repo = tmp_path / "origin"
    repo.mkdir()
    git(repo, "init", "-q")
    git(repo, "checkout", "-q", "-b", "main")

    (repo / "README.md").write_text("site\n")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "initial")

    docs = repo / "docs"
    docs.mkdir()
    (docs / "package.json").write_text('{"name": "site", "version": "1.0.0"}\n')
    (docs / "yarn.lock").write_text('{"name": "site", "version": "1.0.0"}\n')
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "add docs")

    (docs / "index.md").write_text("# Hello\n")
    git(repo, "add", ".")
    git(repo, "commit", "-q", "-m", "add page")
    return repo
