from .dsl import job, sh, install, build, checkout, setup_node, on_pull_request, on_push, wf, workflow, JobBuilder
from .runner import run_workflow, run_jobs, run_job, RunReport
from .loader import load_workflow
from .model import Event, Job, Step, Workflow, JobResult, StepResult

__all__ = [
    "job", "sh", "install", "build", "checkout", "setup_node", "on_pull_request", "on_push",
    "wf", "workflow", "JobBuilder",
    "run_workflow", "run_jobs", "run_job", "RunReport",
    "load_workflow",
    "Event", "Job", "Step", "Workflow", "JobResult", "StepResult",
]
