# errors.py
from __future__ import annotations

from dataclasses import dataclass, field

from . import model


TOOL_HINTS = {
    "git": "Install Git or fix PATH.",
    "node": "Install Node.js or point DOCSCI_TOOLCACHE / NVM_DIR at an install.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "yarn": "Install yarn (e.g., corepack enable) or fix PATH.",
    "docker": "Install Docker and ensure the daemon is running.",
    "bash": "Install bash or set the job shell to sh.",
}


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - the webhook server's JSON responses
      - debugging without full tracebacks
    """
    kind: str
    job: str
    step: str | None
    message: str
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}", f"job={self.job}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)

    @property
    def hint(self) -> str | None:
        return self.details.get("hint")


class WorkflowError(ValueError):
    """The workflow definition itself is invalid (bad YAML, cycles, unknown actions)."""


class ProvisioningError(CIError):
    def __init__(self, job: str, message: str, **details):
        super().__init__(kind="provisioning", job=job, step=None, message=message, details=details)


class CheckoutError(CIError):
    def __init__(self, job: str, step: str | None, message: str, **details):
        super().__init__(kind="checkout", job=job, step=step, message=message, details=details)


class RuntimeSetupError(CIError):
    def __init__(self, job: str, step: str | None, message: str, **details):
        super().__init__(kind="runtime_setup", job=job, step=step, message=message, details=details)


@dataclass
class StepFailure(CIError):
    """A shell step exited non-zero (or timed out)."""
    cmd: str = ""
    exit_code: int = 1
    stdout: str = ""
    stderr: str = ""

    def __str__(self) -> str:
        return f"[{self.job}] step '{self.step}' failed (exit={self.exit_code}): {self.cmd}"

    @classmethod
    def for_step(
        cls,
        job: str,
        step: str,
        cmd: str,
        exit_code: int,
        stdout: str = "",
        stderr: str = "",
        **details,
    ) -> "StepFailure":
        return cls(
            kind=cls.failure_kind,
            job=job,
            step=step,
            message=f"command exited with {exit_code}",
            details=details,
            cmd=cmd,
            exit_code=exit_code,
            stdout=stdout,
            stderr=stderr,
        )

    failure_kind = "step"


class DependencyInstallError(StepFailure):
    failure_kind = "dependency_install"


class BuildError(StepFailure):
    failure_kind = "build"


_FAILURES_BY_KIND = {
    model.INSTALL: DependencyInstallError,
    model.BUILD: BuildError,
}


def failure_class(kind: str) -> type[StepFailure]:
    """Map a step kind to the StepFailure subclass that reports it."""
    return _FAILURES_BY_KIND.get(kind, StepFailure)
