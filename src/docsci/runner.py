# runner.py
from __future__ import annotations

import time
import uuid
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass, field
from typing import Dict, List, Optional

from . import actions, triggers
from .config import Settings, get_settings
from .dag import build_dag, topo_levels
from .errors import CIError, StepFailure, failure_class
from .hosts import Host, provision
from .model import (
    CHECKOUT,
    SETUP_RUNTIME,
    Event,
    Job,
    JobResult,
    Step,
    StepResult,
    Workflow,
)
from .ui.console import Console, get_console

# event ---> filter ---> provision ---> checkout ---> setup ---> install ---> build


# keep this much of a failing command's output on the error
OUTPUT_TAIL = 4000


@dataclass
class RunReport:
    """What one event did: whether it triggered, and every job's result."""
    workflow: str
    event: Event
    triggered: bool
    reason: str
    results: Dict[str, JobResult] = field(default_factory=dict)
    run_id: str = field(default_factory=lambda: uuid.uuid4().hex[:12])

    @property
    def ok(self) -> bool:
        return all(r.status != "failed" for r in self.results.values())

    @property
    def exit_code(self) -> int:
        """0 when every job passed (or nothing ran); else the first failing job's code."""
        for r in self.results.values():
            if r.status == "failed":
                return r.exit_code
        return 0


# ----------------------------------------------------------------------
# Execution primitives
# ----------------------------------------------------------------------

def _step_timeout(job: Job, step: Step, deadline: float) -> float:
    remaining = max(0.0, deadline - time.monotonic())
    if step.timeout_minutes is not None:
        return min(step.timeout_minutes * 60.0, remaining)
    return remaining


def _run_shell_step(job: Job, step: Step, host: Host, timeout: float) -> str:
    proc = host.run(step.run, cwd=step.cwd, shell=job.shell, timeout=timeout)
    output = (proc.stdout or "") + (proc.stderr or "")
    if proc.returncode != 0:
        raise failure_class(step.kind).for_step(
            job=job.name,
            step=step.name,
            cmd=step.run,
            exit_code=proc.returncode,
            stdout=(proc.stdout or "")[-OUTPUT_TAIL:],
            stderr=(proc.stderr or "")[-OUTPUT_TAIL:],
        )
    return output


def run_step(
    job: Job,
    step: Step,
    host: Host,
    event: Optional[Event],
    settings: Settings,
    timeout: float,
) -> str:
    """
    Run one step on `host`. Returns its output; raises a CIError on failure.
    """
    if step.kind == CHECKOUT:
        return actions.run_checkout(job, step, host, event)
    if step.kind == SETUP_RUNTIME:
        return actions.run_setup_runtime(job, step, host, settings)
    return _run_shell_step(job, step, host, timeout)


def _failed_result(step: Step, err: Exception, started: float) -> StepResult:
    exit_code = getattr(err, "exit_code", 1)
    output = (getattr(err, "stdout", "") or "") + (getattr(err, "stderr", "") or "")
    if not output and isinstance(err, CIError):
        output = str(err.details.get("stderr", ""))
    return StepResult(
        name=step.name,
        kind=step.kind,
        status="failed",
        exit_code=exit_code,
        duration=time.monotonic() - started,
        output=output,
        error=str(err),
    )


def run_job(
    job: Job,
    event: Optional[Event] = None,
    *,
    settings: Optional[Settings] = None,
    console: Optional[Console] = None,
) -> JobResult:
    """
    Provision a host, run the job's steps in order, and stop at the first
    failure. Steps after a failure are recorded as skipped and never run.
    """
    settings = settings or get_settings()
    console = console or get_console()
    result = JobResult(job=job.name)

    try:
        with provision(job, settings) as host:
            result.workspace = str(host.workspace)
            console.print_job_start(job.title, host.image)
            deadline = time.monotonic() + job.timeout_minutes * 60.0
            failed = False

            for step in job.steps:
                if failed:
                    result.steps.append(StepResult(name=step.name, kind=step.kind, status="skipped"))
                    continue

                console.print_step(job.name, step.name)
                started = time.monotonic()
                try:
                    output = run_step(job, step, host, event, settings, _step_timeout(job, step, deadline))
                except CIError as e:
                    step_result = _failed_result(step, e, started)
                    result.error = e
                    failed = True
                    console.print_failure(
                        step.name,
                        str(e) if isinstance(e, StepFailure) else e.message,
                        exit_code=step_result.exit_code,
                        hint=e.hint,
                        output=step_result.output,
                    )
                except (FileNotFoundError, ValueError) as e:
                    # bad working directory
                    step_result = _failed_result(step, e, started)
                    result.error = e
                    failed = True
                    console.print_failure(step.name, str(e), exit_code=1)
                else:
                    step_result = StepResult(
                        name=step.name,
                        kind=step.kind,
                        status="ok",
                        exit_code=0,
                        duration=time.monotonic() - started,
                        output=output,
                    )
                result.steps.append(step_result)
                console.print_step_result(job.name, step_result)
    except CIError as e:
        # provisioning failed: no step ran
        result.error = e
        console.print_failure(job.title, str(e), hint=e.hint, is_job=True)
        return result

    if not result.ok:
        failed_step = result.failed_step
        console.print_failure(
            job.title,
            f"step '{failed_step.name}' failed" if failed_step else str(result.error),
            exit_code=result.exit_code,
            is_job=True,
        )
    return result


# ----------------------------------------------------------------------
# Public API
# ----------------------------------------------------------------------

def run_jobs(
    jobs: List[Job],
    event: Optional[Event] = None,
    *,
    settings: Optional[Settings] = None,
    max_workers: int | None = None,
    fail_fast: bool = True,
    console: Optional[Console] = None,
) -> Dict[str, JobResult]:
    """
    Run jobs stage by stage (see dag.topo_levels). Jobs in a stage run
    concurrently, each on its own host. A job whose needs did not all pass is
    skipped; with fail_fast, nothing new is scheduled after a failure.
    """
    settings = settings or get_settings()
    console = console or get_console()
    by_name = {j.name: j for j in jobs}

    adj, indeg = build_dag(jobs)
    levels = topo_levels(adj, indeg)
    results: Dict[str, JobResult] = {}
    failed = False

    if max_workers is None:
        max_workers = settings.max_workers

    for level in levels:
        runnable: List[str] = []
        for name in level:
            if fail_fast and failed:
                results[name] = JobResult(job=name, skipped_reason="an earlier job failed")
                console.print_job_skipped(name, results[name].skipped_reason)
                continue
            blocked = [n for n in by_name[name].needs if not results[n].ok]
            if blocked:
                results[name] = JobResult(job=name, skipped_reason=f"needs did not pass: {blocked}")
                console.print_job_skipped(name, results[name].skipped_reason)
                continue
            runnable.append(name)

        if not runnable:
            continue

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            futures = {
                pool.submit(run_job, by_name[name], event, settings=settings, console=console): name
                for name in runnable
            }
            for future in as_completed(futures):
                name = futures[future]
                results[name] = future.result()
                if results[name].status == "failed":
                    failed = True

    # declared order, not completion order
    return {j.name: results[j.name] for j in jobs if j.name in results}


def run_workflow(
    workflow: Workflow,
    event: Event,
    *,
    settings: Optional[Settings] = None,
    max_workers: int | None = None,
    fail_fast: bool = True,
    force: bool = False,
    console: Optional[Console] = None,
) -> RunReport:
    """
    Filter `event` against the workflow's triggers and, if it matches (or
    force is set), run every job. A non-matching event is not a failure.
    """
    console = console or get_console()
    triggered, reason = triggers.explain(workflow, event)
    if force and not triggered:
        triggered, reason = True, f"forced ({reason})"
    console.print_trigger(triggered, reason)

    report = RunReport(workflow=workflow.name, event=event, triggered=triggered, reason=reason)
    if not triggered:
        return report

    report.results = run_jobs(
        workflow.jobs,
        event,
        settings=settings,
        max_workers=max_workers,
        fail_fast=fail_fast,
        console=console,
    )
    return report
