# actions.py
# Built-in (non-shell) steps: repository checkout and runtime setup.
from __future__ import annotations

import os
import platform
import re
import subprocess
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

from . import git
from .config import Settings
from .errors import TOOL_HINTS, CheckoutError, RuntimeSetupError
from .hosts import DockerHost, Host
from .model import CHECKOUT, SETUP_RUNTIME, Event, Job, Step


SUPPORTED_RUNTIMES = ("node",)

_ARCH = {
    "x86_64": "x64",
    "amd64": "x64",
    "aarch64": "arm64",
    "arm64": "arm64",
}


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def checkout(
    name: str = "Checkout",
    *,
    fetch_depth: int = 0,
    ref: str | None = None,
    repository: str | None = None,
    path: str | None = None,
) -> Step:
    """Clone the event's repository into the workspace. fetch_depth=0 means full history."""
    if fetch_depth < 0:
        raise ValueError("fetch_depth must be >= 0")
    return Step(
        name=name,
        run=f"git clone (fetch-depth={fetch_depth})",
        kind=CHECKOUT,
        data={"fetch_depth": fetch_depth, "ref": ref, "repository": repository, "path": path},
    )


def setup_node(version: str | int = "18", name: str | None = None) -> Step:
    """Put a node toolchain of the given version on PATH for later steps."""
    version = str(version)
    return Step(
        name=name or f"Setup node {version}",
        run=f"setup node {version}",
        kind=SETUP_RUNTIME,
        data={"runtime": "node", "version": version},
    )


# ---------------------------------------------------------------------
# Checkout execution
# ---------------------------------------------------------------------

def run_checkout(job: Job, step: Step, host: Host, event: Optional[Event]) -> str:
    data = step.data or {}
    repository = data.get("repository") or (event.repository if event else None)
    if not repository:
        raise CheckoutError(job.name, step.name, "no repository to check out (event carries none)")

    depth = int(data.get("fetch_depth") or 0)
    ref = data.get("ref") or (event.ref if event else None)
    dest = host.resolve_cwd(data.get("path"))

    try:
        git.clone(repository, dest, depth=depth)
        if ref:
            git.checkout(ref, cwd=dest)
        if depth == 0 and git.is_shallow(cwd=dest):
            raise CheckoutError(
                job.name,
                step.name,
                "expected full history but the clone is shallow",
                repository=repository,
            )
        sha = git.head_sha(cwd=dest)
        commits = git.commit_count(cwd=dest)
    except subprocess.CalledProcessError as e:
        raise CheckoutError(
            job.name,
            step.name,
            f"git {e.cmd[1] if len(e.cmd) > 1 else ''} failed".strip(),
            repository=repository,
            ref=ref,
            stderr=(e.stderr or "").strip()[-2000:],
        )
    except FileNotFoundError:
        raise CheckoutError(job.name, step.name, "git command not found", hint=TOOL_HINTS["git"])

    return f"checked out {repository} at {sha[:12]} ({commits} commits)"


# ---------------------------------------------------------------------
# Runtime setup execution
# ---------------------------------------------------------------------

def _parse_version(text: str) -> Tuple[int, ...]:
    m = re.search(r"v?(\d+(?:\.\d+)*)", text.strip())
    if not m:
        return ()
    return tuple(int(p) for p in m.group(1).split("."))


def version_matches(spec: str, version: str) -> bool:
    """
    "18" matches any 18.x.y, "18.17" matches 18.17.z, "18.x" is the same as "18".
    """
    wanted = [p for p in str(spec).strip().lstrip("v").split(".") if p not in ("x", "X", "*", "")]
    have = _parse_version(version)
    if not wanted or not have:
        return False
    try:
        wanted_nums = [int(p) for p in wanted]
    except ValueError:
        return False
    return list(have[: len(wanted_nums)]) == wanted_nums


def _toolcache_candidates(root: Path, runtime: str) -> Iterable[Tuple[str, Path]]:
    base = root / runtime
    if not base.is_dir():
        return []
    arch = _ARCH.get(platform.machine().lower(), platform.machine().lower())
    found: List[Tuple[str, Path]] = []
    for vdir in base.iterdir():
        if not vdir.is_dir():
            continue
        for bin_dir in (vdir / arch / "bin", vdir / "bin"):
            if bin_dir.is_dir():
                found.append((vdir.name, bin_dir))
                break
    return found


def _nvm_candidates(env: dict) -> Iterable[Tuple[str, Path]]:
    nvm_dir = env.get("NVM_DIR") or os.environ.get("NVM_DIR")
    if not nvm_dir:
        return []
    base = Path(nvm_dir) / "versions" / "node"
    if not base.is_dir():
        return []
    return [(d.name, d / "bin") for d in base.iterdir() if (d / "bin").is_dir()]


def find_node(version: str, host: Host, settings: Settings) -> Tuple[str, Optional[Path]]:
    """
    Returns (resolved version, bin directory to prepend).

    A None directory means the node already on PATH satisfies `version`.
    """
    candidates = list(_toolcache_candidates(Path(settings.toolcache), "node"))
    candidates += list(_nvm_candidates(host.env))
    matching = [(v, d) for v, d in candidates if version_matches(version, v) and (d / "node").exists()]
    if matching:
        matching.sort(key=lambda vd: _parse_version(vd[0]), reverse=True)
        return matching[0]

    proc = host.run("node --version", shell="sh")
    if proc.returncode == 0 and version_matches(version, proc.stdout):
        return proc.stdout.strip(), None

    found = sorted({v for v, _ in candidates})
    raise RuntimeSetupError(
        host.job.name,
        None,
        f"node {version} is not installed",
        path_node=proc.stdout.strip() or "none",
        available=", ".join(found) or "none",
        hint=TOOL_HINTS["node"],
    )


def run_setup_runtime(job: Job, step: Step, host: Host, settings: Settings) -> str:
    data = step.data or {}
    runtime = data.get("runtime", "node")
    version = str(data.get("version", ""))
    if runtime not in SUPPORTED_RUNTIMES:
        raise RuntimeSetupError(job.name, step.name, f"unsupported runtime {runtime!r}")
    if not version:
        raise RuntimeSetupError(job.name, step.name, f"no {runtime} version given")

    if isinstance(host, DockerHost):
        # the image provides the toolchain; only verify it
        proc = host.run("node --version", shell="sh")
        if proc.returncode != 0 or not version_matches(version, proc.stdout):
            raise RuntimeSetupError(
                job.name,
                step.name,
                f"image {host.image} does not provide node {version}",
                found=proc.stdout.strip() or proc.stderr.strip()[-200:],
            )
        return f"node {proc.stdout.strip()} (from image {host.image})"

    try:
        resolved, bin_dir = find_node(version, host, settings)
    except RuntimeSetupError as e:
        e.step = step.name
        raise
    if bin_dir is not None:
        host.prepend_path(bin_dir)
        return f"node {resolved} ({bin_dir})"
    return f"node {resolved} (already on PATH)"
