# triggers.py
# Event filter: decides whether an incoming event starts a workflow run.
# A non-match is never an error; the run simply does not start.

from __future__ import annotations

import re
from functools import lru_cache
from typing import Iterable, Tuple

from .model import PULL_REQUEST, PUSH, Event, Workflow


@lru_cache(maxsize=256)
def _compile(pattern: str) -> "re.Pattern[str]":
    """
    Translate a workflow glob into a regex.

      **   any sequence of characters, including '/'
      *    any sequence of characters except '/'
      ?    one character except '/'
    """
    out = []
    i = 0
    while i < len(pattern):
        c = pattern[i]
        if c == "*":
            if pattern[i:i + 2] == "**":
                # "docs/**" also covers "docs/a/b", "**/x" also covers "x"
                if pattern[i + 2:i + 3] == "/":
                    out.append("(?:.*/)?")
                    i += 3
                else:
                    out.append(".*")
                    i += 2
                continue
            out.append("[^/]*")
        elif c == "?":
            out.append("[^/]")
        else:
            out.append(re.escape(c))
        i += 1
    return re.compile("".join(out) + r"\Z")


def glob_match(path: str, pattern: str) -> bool:
    if path.startswith("./"):
        path = path[2:]
    return _compile(pattern).match(path) is not None


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    """Does `path` match at least one pattern? A leading '!' negates (later patterns win)."""
    hit = False
    for p in patterns:
        if p.startswith("!"):
            if hit and glob_match(path, p[1:]):
                hit = False
        elif not hit and glob_match(path, p):
            hit = True
    return hit


def _paths_hit(changed: Iterable[str], patterns: Tuple[str, ...]) -> bool:
    # no path filter means every change counts
    if not patterns:
        return True
    return any(matches_any(f, patterns) for f in changed)


def _branch_hit(branch: str, patterns: Tuple[str, ...]) -> bool:
    if not patterns:
        return True
    return matches_any(branch, patterns)


def explain(workflow: Workflow, event: Event) -> Tuple[bool, str]:
    """
    Returns:
      (should_run, human readable reason)
    """
    if event.type == PULL_REQUEST:
        trig = workflow.pull_request
        if trig is None:
            return False, "workflow has no pull_request trigger"
        # for pull requests, branch filters apply to the base branch
        if not _branch_hit(event.branch, trig.branches):
            return False, f"base branch {event.branch!r} not in {list(trig.branches)}"
        if not _paths_hit(event.changed_paths, trig.paths):
            return False, f"no changed path matches {list(trig.paths)}"
        if trig.paths:
            return True, f"changed paths match {list(trig.paths)}"
        return True, "pull_request (no path filter)"

    if event.type == PUSH:
        trig = workflow.push
        if trig is None:
            return False, "workflow has no push trigger"
        if not _branch_hit(event.branch, trig.branches):
            return False, f"branch {event.branch!r} not in {list(trig.branches)}"
        if not _paths_hit(event.changed_paths, trig.paths):
            return False, f"no changed path matches {list(trig.paths)}"
        return True, f"push to {event.branch!r}"

    return False, f"unsupported event {event.type!r}"


def should_run(workflow: Workflow, event: Event) -> bool:
    return explain(workflow, event)[0]
