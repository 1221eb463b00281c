# model.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


# step kinds understood by the runner
RUN = "run"
CHECKOUT = "checkout"
SETUP_RUNTIME = "setup_runtime"
INSTALL = "install"
BUILD = "build"

STEP_KINDS = (RUN, CHECKOUT, SETUP_RUNTIME, INSTALL, BUILD)

PULL_REQUEST = "pull_request"
PUSH = "push"

EVENT_TYPES = (PULL_REQUEST, PUSH)

# hosted platforms cancel a job after six hours unless told otherwise
DEFAULT_TIMEOUT_MINUTES = 360.0


@dataclass(frozen=True)
class Step:
    """A single command (step) inside a CI job."""
    name: str
    run: str = ""
    cwd: str | None = None
    kind: str = RUN
    data: Optional[Dict[str, Any]] = None
    timeout_minutes: float | None = None


@dataclass
class Job:
    """
    A CI job: an ordered list of steps plus where and how they run.

    `needs` orders jobs against each other inside one workflow; steps inside a
    job always run one after another.
    """
    name: str
    steps: list[Step]
    needs: list[str] = field(default_factory=list)
    runs_on: str = "ubuntu-latest"
    env: Dict[str, str] = field(default_factory=dict)
    shell: str = "bash"
    timeout_minutes: float = DEFAULT_TIMEOUT_MINUTES
    display_name: str | None = None

    @property
    def title(self) -> str:
        return self.display_name or self.name


@dataclass(frozen=True)
class PullRequestTrigger:
    paths: tuple[str, ...] = ()
    branches: tuple[str, ...] = ()


@dataclass(frozen=True)
class PushTrigger:
    branches: tuple[str, ...] = ()
    paths: tuple[str, ...] = ()


@dataclass
class Workflow:
    """A named set of jobs plus the events that start them."""
    name: str
    jobs: list[Job]
    pull_request: PullRequestTrigger | None = None
    push: PushTrigger | None = None

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)


@dataclass(frozen=True)
class Event:
    """An external trigger, consumed once by the event filter."""
    type: str
    branch: str = ""
    changed_paths: frozenset[str] = frozenset()
    repository: str | None = None
    sha: str | None = None

    def __post_init__(self) -> None:
        if self.type not in EVENT_TYPES:
            raise ValueError(f"Unsupported event type {self.type!r}; expected one of {EVENT_TYPES}")
        # accept any iterable of paths but store an immutable set
        object.__setattr__(self, "changed_paths", frozenset(self.changed_paths))

    @property
    def ref(self) -> str | None:
        return self.sha or self.branch or None


@dataclass
class StepResult:
    name: str
    kind: str
    status: str  # "ok" | "failed" | "skipped"
    exit_code: int | None = None
    duration: float = 0.0
    output: str = ""
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == "ok"


@dataclass
class JobResult:
    """Outcome of one job run. Not retained once handed back to the caller."""
    job: str
    steps: List[StepResult] = field(default_factory=list)
    error: Exception | None = None
    workspace: str | None = None
    skipped_reason: str | None = None

    @property
    def status(self) -> str:
        if self.skipped_reason is not None:
            return "skipped"
        if self.error is not None:
            return "failed"
        if any(s.status == "failed" for s in self.steps):
            return "failed"
        return "ok"

    @property
    def ok(self) -> bool:
        return self.status == "ok"

    @property
    def exit_code(self) -> int:
        """The first failing step's exit code, or 0."""
        for s in self.steps:
            if s.status == "failed":
                return s.exit_code if s.exit_code else 1
        return 1 if self.error is not None else 0

    @property
    def failed_step(self) -> StepResult | None:
        for s in self.steps:
            if s.status == "failed":
                return s
        return None
