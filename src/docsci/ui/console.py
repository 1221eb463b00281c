"""Console output formatting utilities for docsci."""

from __future__ import annotations

import sys
import threading
from typing import Optional

from ..model import JobResult, StepResult


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show stack traces and full step output
        """
        self.debug = debug
        # jobs may run in worker threads; keep each message's lines together
        self._lock = threading.Lock()

    def _emit(self, *lines: str, err: bool = False) -> None:
        stream = sys.stderr if err else sys.stdout
        with self._lock:
            for line in lines:
                print(line, file=stream)

    def print_header(self, title: str) -> None:
        """Print a section header."""
        self._emit(f"\n{title}", "-" * len(title))

    def print_run_started(
        self,
        repository: str,
        workflow: str,
        event: str,
        job_count: int,
    ) -> None:
        """Print run start information."""
        self._emit(
            "\nRUN STARTED",
            f"Repository: {repository}",
            f"Workflow: {workflow}",
            f"Event: {event}",
            f"Jobs: {job_count}",
            "",
        )

    def print_trigger(self, triggered: bool, reason: str) -> None:
        """Print the event filter decision."""
        verdict = "match" if triggered else "no match"
        self._emit(f"TRIGGER: {verdict} ({reason})")

    def print_job_start(self, name: str, host: str) -> None:
        self._emit(f"\nJOB STARTED: {name}", f"Host: {host}")

    def print_step(self, job: str, name: str) -> None:
        self._emit(f"[{job}] STEP: {name}")

    def print_step_result(self, job: str, result: StepResult) -> None:
        if result.status == "ok":
            detail = f" {result.output.strip().splitlines()[-1]}" if self.debug and result.output.strip() else ""
            self._emit(f"[{job}] ok ({result.duration:.1f}s){detail}")
        elif result.status == "skipped":
            self._emit(f"[{job}] skipped: {result.name}")

    def print_failure(
        self,
        name: str,
        reason: str,
        exit_code: Optional[int] = None,
        hint: Optional[str] = None,
        output: str = "",
        is_job: bool = False,
    ) -> None:
        """
        Print failure message.

        Args:
            name: Job or step name
            reason: Failure reason/error message
            exit_code: Optional exit code
            hint: Optional hint for user
            output: Captured command output; the tail is shown, all of it in debug mode
            is_job: If True, print "JOB FAILED", otherwise "STEP FAILED"
        """
        prefix = "JOB FAILED" if is_job else "STEP FAILED"
        lines = [f"{prefix}: {name}"]
        if exit_code is not None:
            lines.append(f"Exit code: {exit_code}")
        if hint:
            lines.append(f"Hint: {hint}")
        if self.debug:
            lines.append(f"Error details: {reason}")
        else:
            # first line of the error only
            error_line = reason.split("\n")[0] if reason else "Unknown error"
            lines.append(f"Error: {error_line}")
        if output.strip():
            tail = output.rstrip().splitlines()
            if not self.debug:
                tail = tail[-20:]
            lines.append("Output:")
            lines.extend(f"  {line}" for line in tail)
        self._emit(*lines)

    def print_job_skipped(self, name: str, reason: str) -> None:
        self._emit(f"\nJOB SKIPPED: {name} ({reason})")

    def print_plan_job(self, stage: int, name: str, host: str) -> None:
        self._emit(f"  stage {stage}: {name} on {host}")

    def print_plan_step(self, kind: str, name: str, detail: str) -> None:
        self._emit(f"      - {name} [{kind}] {detail}".rstrip())

    def print_results(self, results: dict[str, JobResult]) -> None:
        """Print final results summary."""
        lines = ["", "=" * 40, "RESULTS", "=" * 40]
        for job, result in results.items():
            status_display = "SUCCESS" if result.ok else result.status.upper()
            lines.append(f"  {job}: {status_display}")
        self._emit(*lines)

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        lines = [f"\nERROR: {title}", message]
        if details:
            lines.extend(f"  {detail}" for detail in details)
        if suggestion:
            lines.append(f"\n{suggestion}")
        self._emit(*lines, err=True)

    def print_exception(self, exc: Exception) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            self._emit(f"Error: {exc}", err=True)

    def print_server_started(self, host: str, port: int, workflow: str) -> None:
        self._emit("\nSERVER STARTED", f"Listening: http://{host}:{port}", f"Workflow: {workflow}", "")

    def print_info(self, message: str) -> None:
        self._emit(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            self._emit(f"[DEBUG] {message}", err=True)


# Global console instance (initialized by the CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
