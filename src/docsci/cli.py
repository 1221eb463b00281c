# cli.py
from __future__ import annotations

import os
import subprocess
import sys
from pathlib import Path

import click

from docsci import events
from docsci.config import Settings, get_settings, set_settings
from docsci.errors import WorkflowError
from docsci.git import get_remote_url
from docsci.loader import load_workflow
from docsci.model import EVENT_TYPES, PULL_REQUEST, Event, Workflow
from docsci.presets import website
from docsci.runner import run_workflow
from docsci.triggers import explain
from docsci.ui.console import Console, get_console, set_console


# exit code of `check` when the event would not start a run
SKIPPED_EXIT_CODE = 78

PRESETS = {
    "website": website,
}


def find_workflow_files() -> list[Path]:
    """
    Find workflow files in the current directory.

    Looks for docsci_workflow.py, *_workflow.py and .github/workflows/*.yml.
    """
    current_dir = Path(".")
    workflow_files = []

    default_workflow = current_dir / "docsci_workflow.py"
    if default_workflow.exists():
        workflow_files.append(default_workflow)

    for path in current_dir.glob("*_workflow.py"):
        if path != default_workflow:
            workflow_files.append(path)

    gh_dir = current_dir / ".github" / "workflows"
    if gh_dir.is_dir():
        workflow_files.extend(sorted(gh_dir.glob("*.yml")) + sorted(gh_dir.glob("*.yaml")))

    return sorted(workflow_files)


def discover_workflow(workflow_arg: str | None, preset: str | None) -> Workflow:
    """
    Resolve the workflow from --preset, --workflow, DOCSCI_WORKFLOW, or discovery.

    Raises:
        SystemExit: If the workflow cannot be found or is ambiguous
    """
    console = get_console()

    if preset:
        return PRESETS[preset]()

    if workflow_arg is None and "DOCSCI_WORKFLOW" in os.environ:
        workflow_arg = get_settings().workflow

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists() and workflow_path.suffix not in (".py", ".yml", ".yaml"):
            workflow_path = Path(str(workflow_path) + ".py")
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Create a workflow file or specify a different path:\n  docsci run --workflow .github/workflows/website.yml",
            )
            sys.exit(1)
        return _load(workflow_path)

    workflow_files = find_workflow_files()

    if len(workflow_files) == 0:
        console.print_error(
            "No workflow file found",
            "Could not find any workflow files.",
            details=[
                "Looked for:",
                "  docsci_workflow.py",
                "  *_workflow.py",
                "  .github/workflows/*.yml",
            ],
            suggestion="Specify a workflow explicitly:\n  docsci run --workflow my_workflow.py\n\nOr use a preset:\n  docsci run --preset website",
        )
        sys.exit(1)

    if len(workflow_files) > 1:
        console.print_error(
            "Multiple workflow files found",
            "Found multiple workflow files. Please specify which one to use:",
            details=[str(f) for f in workflow_files],
            suggestion="Specify a workflow explicitly:\n  docsci run --workflow docsci_workflow.py",
        )
        sys.exit(1)

    return _load(workflow_files[0])


def _load(path: Path) -> Workflow:
    console = get_console()
    try:
        return load_workflow(path)
    except (WorkflowError, FileNotFoundError) as e:
        console.print_error("Failed to load workflow", f"Could not load workflow from {path}", details=[str(e)])
        sys.exit(1)


def build_event(
    event_type: str,
    branch: str | None,
    changed: tuple[str, ...],
    event_path: str | None,
    from_git: bool,
    compare_ref: str,
    repo: str | None,
    sha: str | None,
) -> Event:
    """Assemble the event from a payload file, local git facts, or flags (in that order)."""
    console = get_console()

    if event_path:
        event = events.from_event_file(event_type, event_path)
        if branch:
            event = events.from_args(
                event.type, branch=branch, changed=event.changed_paths,
                repository=event.repository, sha=event.sha,
            )
    elif from_git:
        try:
            event = events.from_git(event_type, compare_ref=compare_ref, branch=branch)
        except subprocess.CalledProcessError as e:
            console.print_error(
                "Could not read git state",
                f"git {' '.join(e.cmd[1:])} failed",
                suggestion="Run inside a git repository or pass --event/--branch/--changed explicitly.",
            )
            sys.exit(1)
        except FileNotFoundError:
            console.print_error("Git command not found", "Could not find git command.")
            sys.exit(1)
    else:
        event = events.from_args(event_type, branch=branch or "", changed=changed)

    if changed:
        event = events.with_changes(event, changed)

    if repo or sha or event.repository is None:
        event = Event(
            type=event.type,
            branch=event.branch,
            changed_paths=event.changed_paths,
            repository=repo or event.repository or _default_repository(),
            sha=sha or event.sha,
        )
    return event


def _default_repository() -> str | None:
    try:
        return get_remote_url("origin")
    except (subprocess.CalledProcessError, FileNotFoundError):
        return str(Path(".").resolve()) if (Path(".") / ".git").exists() else None


def event_options(f):
    """Options shared by commands that take an event."""
    options = [
        click.option("--event", "event_type", type=click.Choice(EVENT_TYPES), default="push", show_default=True, help="Event type"),
        click.option("--branch", default=None, help="Branch pushed to (push) or merged into (pull_request)"),
        click.option("--changed", multiple=True, help="Changed path (repeatable)"),
        click.option("--event-path", default=None, type=click.Path(exists=True, dir_okay=False), help="GitHub event payload JSON"),
        click.option("--from-git/--no-from-git", default=False, help="Derive branch and changed files from the local repository"),
        click.option("--compare-ref", default="origin/main", show_default=True, help="Git ref to diff against with --from-git"),
        click.option("--repo", default=None, help="Repository to check out (defaults to git remote origin)"),
        click.option("--sha", default=None, help="Commit to check out (required by `run` for pull_request events given as flags)"),
        click.option("--workflow", default=None, help="Workflow file (.py or .yml)"),
        click.option("--preset", type=click.Choice(sorted(PRESETS)), default=None, help="Use a built-in workflow"),
    ]
    for option in reversed(options):
        f = option(f)
    return f


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and full step output)",
)
@click.pass_context
def cli(ctx, debug):
    """docsci: run the docs-site CI pipeline locally or from webhooks."""
    console = Console(debug=debug)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@event_options
@click.option("--workers", default=None, type=int, help="Jobs run in parallel per stage")
@click.option("--work-dir", default=None, type=click.Path(file_okay=False), help="Where job workspaces are created")
@click.option("--toolcache", default=None, type=click.Path(file_okay=False), help="Runtime tool cache directory")
@click.option("--keep-workspace/--no-keep-workspace", default=None, help="Keep workspaces after the run")
@click.option("--fail-fast/--no-fail-fast", default=True, help="Stop scheduling new jobs after first failure")
@click.option("--force", is_flag=True, default=False, help="Run even if the event does not match the triggers")
@click.pass_context
def run(
    ctx, event_type, branch, changed, event_path, from_git, compare_ref, repo, sha, workflow, preset,
    workers, work_dir, toolcache, keep_workspace, fail_fast, force,
):
    """Filter an event and, if it matches, run the workflow."""
    console = get_console()
    settings = get_settings().override(
        work_dir=Path(work_dir) if work_dir else None,
        toolcache=Path(toolcache) if toolcache else None,
        keep_workspace=keep_workspace,
        max_workers=workers,
    )
    set_settings(settings)

    wf = discover_workflow(workflow, preset)
    event = build_event(event_type, branch, changed, event_path, from_git, compare_ref, repo, sha)
    if event.type == PULL_REQUEST and not event.sha:
        console.print_error(
            "Missing pull request commit",
            "A pull_request event built from flags needs the PR head commit; without it the base branch would be built.",
            suggestion="Pass --sha <head commit>, or use --from-git or --event-path.",
        )
        sys.exit(1)

    try:
        console.print_run_started(
            repository=event.repository or "(none)",
            workflow=wf.name,
            event=f"{event.type} on {event.branch or '?'}",
            job_count=len(wf.jobs),
        )
        report = run_workflow(wf, event, settings=settings, fail_fast=fail_fast, force=force, console=console)

        if not report.triggered:
            console.print_info("Nothing to do.")
            return

        console.print_results(report.results)
        if report.exit_code != 0:
            sys.exit(report.exit_code)

    except KeyboardInterrupt:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)


@cli.command()
@event_options
def check(event_type, branch, changed, event_path, from_git, compare_ref, repo, sha, workflow, preset):
    """Only apply the event filter. Exits 0 if a run would start, 78 if not."""
    console = get_console()
    wf = discover_workflow(workflow, preset)
    event = build_event(event_type, branch, changed, event_path, from_git, compare_ref, repo, sha)
    triggered, reason = explain(wf, event)
    console.print_trigger(triggered, reason)
    if not triggered:
        sys.exit(SKIPPED_EXIT_CODE)


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@click.option("--preset", type=click.Choice(sorted(PRESETS)), default=None, help="Use a built-in workflow")
def plan(workflow, preset):
    """Print the workflow's triggers, stages and steps."""
    from docsci.dag import plan as stages_of

    console = get_console()
    wf = discover_workflow(workflow, preset)
    try:
        stages = stages_of(wf.jobs)
    except WorkflowError as e:
        console.print_error("Invalid workflow", str(e))
        sys.exit(1)

    console.print_header(f"Workflow: {wf.name}")
    if wf.pull_request is not None:
        console.print_info(f"on pull_request: paths={list(wf.pull_request.paths)} branches={list(wf.pull_request.branches)}")
    if wf.push is not None:
        console.print_info(f"on push: branches={list(wf.push.branches)} paths={list(wf.push.paths)}")
    for i, stage in enumerate(stages, start=1):
        for name in stage:
            job = wf.job(name)
            console.print_plan_job(i, job.title, job.runs_on)
            for step in job.steps:
                where = f"(in {step.cwd})" if step.cwd else ""
                console.print_plan_step(step.kind, step.name, f"{step.run} {where}".strip())


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
@click.option("--preset", type=click.Choice(sorted(PRESETS)), default=None, help="Use a built-in workflow")
@click.option("--host", default="127.0.0.1", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
def serve(workflow, preset, host, port):
    """Receive events over HTTP and run the workflow for matching ones."""
    import uvicorn

    from docsci.server import create_app

    console = get_console()
    wf = discover_workflow(workflow, preset)
    settings: Settings = get_settings()
    console.print_server_started(host, port, wf.name)
    uvicorn.run(create_app(wf, settings), host=host, port=port)


def main() -> None:
    cli(obj={})


if __name__ == "__main__":
    main()
