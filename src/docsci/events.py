# events.py
# Building Event objects from the places events come from.
from __future__ import annotations

import json
import subprocess
from pathlib import Path
from typing import Any, Dict, Iterable, Optional

from . import git
from .model import PULL_REQUEST, PUSH, Event
from .ui.console import get_console


# what a `pull_request` trigger without `types:` reacts to
PULL_REQUEST_ACTIONS = ("opened", "synchronize", "reopened")


def from_args(
    event_type: str,
    *,
    branch: str = "",
    changed: Iterable[str] = (),
    repository: str | None = None,
    sha: str | None = None,
) -> Event:
    return Event(
        type=event_type,
        branch=branch,
        changed_paths=frozenset(p for p in changed if p),
        repository=repository,
        sha=sha,
    )


def _strip_ref(ref: str) -> str:
    for prefix in ("refs/heads/", "refs/tags/"):
        if ref.startswith(prefix):
            return ref[len(prefix):]
    return ref


def from_github_payload(event_type: str, payload: Dict[str, Any]) -> Event:
    """
    Build an Event from a GitHub webhook / GITHUB_EVENT_PATH payload.

    pull_request: branch is the PR's base branch; GitHub does not send the
    changed files, so they must be added separately (see with_changes).
    push: branch comes from `ref`; changed files are collected from the
    commits' added/modified/removed lists.
    """
    repo = payload.get("repository") or {}
    repository = repo.get("clone_url") or repo.get("html_url")

    if event_type == PULL_REQUEST:
        pr = payload.get("pull_request") or {}
        base = pr.get("base") or {}
        head = pr.get("head") or {}
        return Event(
            type=PULL_REQUEST,
            branch=base.get("ref", ""),
            changed_paths=frozenset(),
            repository=repository,
            sha=head.get("sha"),
        )

    if event_type == PUSH:
        changed = set()
        for commit in payload.get("commits") or []:
            for key in ("added", "modified", "removed"):
                changed.update(commit.get(key) or [])
        return Event(
            type=PUSH,
            branch=_strip_ref(payload.get("ref", "")),
            changed_paths=frozenset(changed),
            repository=repository,
            sha=payload.get("after"),
        )

    raise ValueError(f"Unsupported event type {event_type!r}")


def from_event_file(event_type: str, path: str | Path) -> Event:
    with open(path, "r", encoding="utf-8") as f:
        payload = json.load(f)
    return from_github_payload(event_type, payload)


def pull_request_changes(payload: Dict[str, Any], workdir: str | Path) -> list[str]:
    """Changed files of a pull_request payload, from the base and head shas it carries."""
    pr = payload.get("pull_request") or {}
    base = (pr.get("base") or {}).get("sha")
    head = (pr.get("head") or {}).get("sha")
    url = (payload.get("repository") or {}).get("clone_url")
    if not (base and head and url):
        raise ValueError("pull_request payload lacks base/head sha or repository clone_url")
    return git.remote_changed_files(url, base, head, workdir)


def with_changes(event: Event, changed: Iterable[str]) -> Event:
    return Event(
        type=event.type,
        branch=event.branch,
        changed_paths=frozenset(event.changed_paths) | frozenset(changed),
        repository=event.repository,
        sha=event.sha,
    )


def from_git(
    event_type: str,
    *,
    compare_ref: str = "origin/main",
    repo: Optional[str | Path] = None,
    branch: str | None = None,
) -> Event:
    """
    Describe the local checkout as an event.

    For a push the branch is the current branch; for a pull request it is
    the branch being merged into (the compare ref without its remote).
    The repository is the local checkout itself.
    """
    root = git.repo_root(cwd=repo)
    current, changed = git.local_changes(compare_ref=compare_ref, cwd=root)

    if branch is None:
        if event_type == PULL_REQUEST:
            branch = compare_ref.split("/", 1)[1] if "/" in compare_ref else compare_ref
        else:
            branch = current

    if git.is_dirty(cwd=root):
        get_console().print_debug("uncommitted changes are ignored; the run checks out HEAD")

    try:
        sha = git.head_sha(cwd=root)
    except subprocess.CalledProcessError:
        # no commits yet
        sha = None

    return Event(
        type=event_type,
        branch=branch,
        changed_paths=frozenset(changed),
        repository=str(root),
        sha=sha,
    )
