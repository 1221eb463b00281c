# dsl.py
from __future__ import annotations

from dataclasses import replace
from typing import Dict, List, Optional

from .actions import checkout, setup_node
from .model import (
    BUILD,
    DEFAULT_TIMEOUT_MINUTES,
    INSTALL,
    RUN,
    Job,
    PullRequestTrigger,
    PushTrigger,
    Step,
    Workflow,
)

__all__ = [
    "sh",
    "install",
    "build",
    "checkout",
    "setup_node",
    "job",
    "on_pull_request",
    "on_push",
    "wf",
    "workflow",
    "JobBuilder",
]


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def sh(
    name: str,
    cmd: str,
    *,
    cwd: str | None = None,
    kind: str = RUN,
    timeout_minutes: float | None = None,
) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd, kind=kind, timeout_minutes=timeout_minutes)


def install(cmd: str, name: str = "Install dependencies", *, cwd: str | None = None) -> Step:
    """Dependency install step; a non-zero exit is reported as a dependency-install failure."""
    return sh(name, cmd, cwd=cwd, kind=INSTALL)


def build(cmd: str, name: str = "Build", *, cwd: str | None = None) -> Step:
    """Build step; its exit code decides the job."""
    return sh(name, cmd, cwd=cwd, kind=BUILD)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def job(
    name: str,
    *steps: Step,  # allow: job("x", sh(...), sh(...))
    steps_list: Optional[List[Step]] = None,
    needs: Optional[List[str]] = None,
    runs_on: str = "ubuntu-latest",
    env: Optional[Dict[str, str]] = None,
    shell: str = "bash",
    timeout_minutes: float = DEFAULT_TIMEOUT_MINUTES,
    display_name: str | None = None,
    cwd: str | None = None,  # default cwd applied to shell steps missing cwd
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    if cwd is not None:
        steps_final = [_with_default_cwd(s, cwd) for s in steps_final]

    return Job(
        name=name,
        steps=steps_final,
        needs=list(needs or []),
        runs_on=runs_on,
        env={k: str(v) for k, v in (env or {}).items()},
        shell=shell,
        timeout_minutes=timeout_minutes,
        display_name=display_name,
    )


def _with_default_cwd(step: Step, cwd: str) -> Step:
    # defaults.run.working-directory only applies to run steps
    if step.cwd is not None or step.kind not in (RUN, INSTALL, BUILD):
        return step
    return replace(step, cwd=cwd)


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._runs_on = "ubuntu-latest"
        self._cwd: str | None = None

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def runs_on(self, image: str):
        self._runs_on = image
        return self

    def working_directory(self, cwd: str):
        self._cwd = cwd
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def add(self, step: Step):
        self._steps.append(step)
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")
        return job(
            self.name,
            steps_list=self._steps,
            needs=self._needs,
            runs_on=self._runs_on,
            env=self._env,
            cwd=self._cwd,
        )


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_pull_request(*paths: str, branches: Optional[List[str]] = None) -> PullRequestTrigger:
    return PullRequestTrigger(paths=tuple(paths), branches=tuple(branches or ()))


def on_push(*branches: str, paths: Optional[List[str]] = None) -> PushTrigger:
    return PushTrigger(branches=tuple(branches), paths=tuple(paths or ()))


# ---------------------------------------------------------------------
# Workflow helper (single-file story)
# ---------------------------------------------------------------------

def wf(
    name: str,
    *jobs: Job,
    pull_request: PullRequestTrigger | None = None,
    push: PushTrigger | None = None,
) -> Workflow:
    """
    Workflow definition helper. Use this name so you can define your own
    def workflow(): return wf(...).

        from docsci.dsl import wf, job, sh, on_push

        def workflow():
            return wf(
                "site",
                job("build", sh("Build", "make html")),
                push=on_push("main"),
            )
    """
    if not jobs:
        raise ValueError(f"workflow {name!r} must have at least one job")
    return Workflow(name=name, jobs=list(jobs), pull_request=pull_request, push=push)


workflow = wf  # alias (avoid naming your own function workflow if you use it)
