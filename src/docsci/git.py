# git.py
# Small, focused wrapper around the Git CLI.
# Every Git interaction in docsci goes through here so nothing else calls
# subprocess("git ...") directly.

from __future__ import annotations

import subprocess
from pathlib import Path
from typing import List, Optional, Tuple


def _git(args: list[str], cwd: Optional[str | Path] = None) -> str:
    """
    Execute a git command and return its stdout as a clean string.

    Args:
        args: List of git arguments (e.g. ["status", "--porcelain"])
        cwd: Optional working directory in which to run the git command.

    Returns:
        Stdout from the git command with surrounding whitespace removed.

    Raises:
        subprocess.CalledProcessError: git exited non-zero
        FileNotFoundError: git is not installed
    """
    out = subprocess.check_output(
        ["git", *args],
        cwd=str(cwd) if cwd is not None else None,
        text=True,
        stderr=subprocess.PIPE,
    )
    return out.strip()


def repo_root(cwd: Optional[str | Path] = None) -> Path:
    """Absolute path to the root of the Git repository containing `cwd`."""
    return Path(_git(["rev-parse", "--show-toplevel"], cwd=cwd))


def head_sha(cwd: Optional[str | Path] = None) -> str:
    """Full SHA of HEAD."""
    return _git(["rev-parse", "HEAD"], cwd=cwd)


def current_branch(cwd: Optional[str | Path] = None) -> str:
    """
    Name of the checked out branch.

    A detached HEAD has no branch; "HEAD" is returned in that case so
    callers can still show something.
    """
    return _git(["rev-parse", "--abbrev-ref", "HEAD"], cwd=cwd)


def is_dirty(cwd: Optional[str | Path] = None) -> bool:
    """True if there are modified, staged or untracked files."""
    return _git(["status", "--porcelain"], cwd=cwd) != ""


def is_shallow(cwd: Optional[str | Path] = None) -> bool:
    return _git(["rev-parse", "--is-shallow-repository"], cwd=cwd) == "true"


def commit_count(cwd: Optional[str | Path] = None) -> int:
    return int(_git(["rev-list", "--count", "HEAD"], cwd=cwd))


def changed_files(base: str, head: str = "HEAD", cwd: Optional[str | Path] = None) -> List[str]:
    """
    Files changed between two refs, relative to the repository root.

    Typical usage:
        base = merge_base("origin/main")
        files = changed_files(base)
    """
    out = _git(["diff", "--name-only", f"{base}..{head}"], cwd=cwd)
    if not out:
        return []
    return out.splitlines()


def merge_base(with_ref: str = "origin/main", cwd: Optional[str | Path] = None) -> str:
    """Common ancestor of HEAD and `with_ref`."""
    return _git(["merge-base", "HEAD", with_ref], cwd=cwd)


def local_changes(
    compare_ref: str = "origin/main",
    cwd: Optional[str | Path] = None,
) -> Tuple[str, List[str]]:
    """
    Returns:
      branch:
        - name of the current branch
      changed_files:
        - files committed since the merge-base with compare_ref
          (falling back to HEAD~1, then to every tracked file)
        - uncommitted edits are not included: only HEAD gets checked out
    """
    branch = current_branch(cwd=cwd)

    try:
        base = merge_base(compare_ref, cwd=cwd)
    except subprocess.CalledProcessError:
        # e.g. no remote configured
        base = "HEAD~1"

    try:
        changed = changed_files(base, "HEAD", cwd=cwd)
    except subprocess.CalledProcessError:
        # first commit: every tracked file counts as changed
        tracked = _git(["ls-files"], cwd=cwd)
        changed = tracked.splitlines() if tracked else []

    return branch, changed


def clone(url: str, dest: str | Path, *, depth: int = 0) -> Path:
    """
    Clone `url` into `dest`.

    depth=0 fetches the whole history; a positive depth makes a shallow clone.
    """
    args = ["clone", "--quiet"]
    if depth > 0:
        # --depth is ignored for plain local paths unless file:// is used
        if "://" not in url and Path(url).exists():
            url = Path(url).resolve().as_uri()
        args += ["--depth", str(depth), "--no-single-branch"]
    args += [url, str(dest)]
    _git(args)
    return Path(dest)


def checkout(ref: str, cwd: str | Path) -> None:
    """Check out `ref` (branch, tag or sha), creating a local branch for remote ones."""
    try:
        _git(["checkout", "--quiet", ref], cwd=cwd)
    except subprocess.CalledProcessError:
        _git(["checkout", "--quiet", "-B", ref, f"origin/{ref}"], cwd=cwd)


def remote_changed_files(url: str, base: str, head: str, workdir: str | Path) -> List[str]:
    """
    Files a pull request changes (three-dot diff), read from a blobless bare
    clone of `url` made under `workdir`.
    """
    dest = Path(workdir) / "mirror.git"
    _git(["clone", "--quiet", "--bare", "--filter=blob:none", url, str(dest)])
    _git(["fetch", "--quiet", "origin", head], cwd=dest)
    out = _git(["diff", "--name-only", f"{base}...{head}"], cwd=dest)
    return out.splitlines() if out else []


def get_remote_url(remote: str = "origin", cwd: Optional[str | Path] = None) -> str:
    return _git(["remote", "get-url", remote], cwd=cwd)
