# loader.py
# Workflow loading: Python files using the DSL, or YAML in the GitHub Actions dialect.
from __future__ import annotations

import runpy
import shlex
from dataclasses import replace
from pathlib import Path
from typing import Any, Dict, List, Optional, Tuple

import yaml

from . import dsl
from .errors import WorkflowError
from .model import (
    BUILD,
    DEFAULT_TIMEOUT_MINUTES,
    INSTALL,
    PULL_REQUEST,
    PUSH,
    RUN,
    Job,
    PullRequestTrigger,
    PushTrigger,
    Step,
    Workflow,
)


YAML_SUFFIXES = (".yml", ".yaml")

# actions/checkout fetches a single commit unless told otherwise
CHECKOUT_DEFAULT_DEPTH = 1

_PACKAGE_MANAGERS = ("yarn", "npm", "pnpm", "bun")
_INSTALL_VERBS = ("install", "ci", "i")


def load_workflow(path: str | Path) -> Workflow:
    """
    Load a workflow from a .py or .yml/.yaml file.

    A Python file must define either:
      - workflow() -> Workflow
      - WORKFLOW = Workflow(...)
    """
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise FileNotFoundError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix in YAML_SUFFIXES:
        return load_yaml_workflow(wf_path)
    if wf_path.suffix != ".py":
        raise WorkflowError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")
    return _load_python_workflow(wf_path)


def _load_python_workflow(wf_path: Path) -> Workflow:
    module_name = f"docsci_workflow_{wf_path.stem}"
    globals_dict = runpy.run_path(str(wf_path), run_name=module_name)

    result = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]) and globals_dict["workflow"] is not dsl.workflow:
        result = globals_dict["workflow"]()
    elif "WORKFLOW" in globals_dict:
        result = globals_dict["WORKFLOW"]

    if not isinstance(result, Workflow):
        raise WorkflowError(
            f"{wf_path.name} must return/define a Workflow. "
            "Define workflow() -> Workflow or WORKFLOW = wf(...)."
        )
    return result


# ----------------------------------------------------------------------
# YAML
# ----------------------------------------------------------------------

def load_yaml_workflow(path: str | Path) -> Workflow:
    path = Path(path)
    try:
        with open(path, "r", encoding="utf-8") as f:
            data = yaml.safe_load(f)
    except yaml.YAMLError as e:
        raise WorkflowError(f"Invalid YAML in {path.name}: {e}") from e
    return parse_workflow(data, default_name=path.stem)


def parse_workflow(data: Any, default_name: str = "workflow") -> Workflow:
    if not isinstance(data, dict):
        raise WorkflowError("Workflow YAML must be a mapping")

    # YAML 1.1 reads a bare `on:` key as the boolean True
    on = data.get("on", data.get(True))
    if on is None:
        raise WorkflowError("Workflow has no 'on' section")
    pull_request, push = _parse_triggers(on)

    defaults = ((data.get("defaults") or {}).get("run") or {})
    jobs_data = data.get("jobs")
    if not isinstance(jobs_data, dict) or not jobs_data:
        raise WorkflowError("Workflow has no jobs")

    jobs = [
        _parse_job(job_id, job_data or {}, defaults, data.get("env") or {})
        for job_id, job_data in jobs_data.items()
    ]
    return Workflow(
        name=str(data.get("name") or default_name),
        jobs=jobs,
        pull_request=pull_request,
        push=push,
    )


def _as_list(value: Any) -> List[str]:
    if value is None:
        return []
    if isinstance(value, (str, int, float)):
        return [str(value)]
    return [str(v) for v in value]


def _filters(spec: Dict[str, Any], key: str) -> Tuple[str, ...]:
    """`branches`/`paths` plus their `-ignore` forms, as ordered patterns with '!' negations."""
    include = _as_list(spec.get(key))
    ignore = _as_list(spec.get(f"{key}-ignore"))
    if include and ignore:
        raise WorkflowError(f"'{key}' and '{key}-ignore' cannot both be set")
    if ignore:
        return tuple(["**"] + [f"!{p}" for p in ignore])
    return tuple(include)


def _parse_triggers(on: Any) -> Tuple[Optional[PullRequestTrigger], Optional[PushTrigger]]:
    if isinstance(on, str):
        on = {on: None}
    elif isinstance(on, list):
        on = {str(e): None for e in on}
    if not isinstance(on, dict):
        raise WorkflowError(f"Unsupported 'on' value: {on!r}")

    pull_request = push = None
    for event, spec in on.items():
        spec = spec or {}
        if event == PULL_REQUEST:
            pull_request = PullRequestTrigger(paths=_filters(spec, "paths"), branches=_filters(spec, "branches"))
        elif event == PUSH:
            push = PushTrigger(branches=_filters(spec, "branches"), paths=_filters(spec, "paths"))
        # other events (workflow_dispatch, schedule, ...) never reach this runner
    return pull_request, push


def _parse_job(job_id: str, data: Dict[str, Any], wf_defaults: Dict[str, Any], wf_env: Dict[str, Any]) -> Job:
    if not isinstance(data, dict):
        raise WorkflowError(f"Job '{job_id}' must be a mapping")
    steps_data = data.get("steps")
    if not steps_data:
        raise WorkflowError(f"Job '{job_id}' has no steps")

    defaults = dict(wf_defaults)
    defaults.update(((data.get("defaults") or {}).get("run") or {}))

    env = {k: str(v) for k, v in wf_env.items()}
    env.update({k: str(v) for k, v in (data.get("env") or {}).items()})

    runs_on = data.get("runs-on", "ubuntu-latest")
    if isinstance(runs_on, list):
        runs_on = runs_on[0]
    container = data.get("container")
    if container:
        image = container.get("image") if isinstance(container, dict) else container
        runs_on = f"docker://{image}"

    shell = str(defaults.get("shell", "bash"))
    steps = [_parse_step(job_id, i, s, shell) for i, s in enumerate(steps_data)]

    return dsl.job(
        job_id,
        steps_list=steps,
        needs=_as_list(data.get("needs")),
        runs_on=str(runs_on),
        env=env,
        shell=shell,
        timeout_minutes=float(data.get("timeout-minutes", DEFAULT_TIMEOUT_MINUTES)),
        display_name=data.get("name"),
        cwd=defaults.get("working-directory"),
    )


def _parse_step(job_id: str, index: int, data: Dict[str, Any], job_shell: str) -> Step:
    if not isinstance(data, dict):
        raise WorkflowError(f"Job '{job_id}' step {index + 1} must be a mapping")
    if data.get("shell") and data["shell"] != job_shell:
        raise WorkflowError(f"Job '{job_id}' step {index + 1}: per-step shell is not supported")

    timeout = data.get("timeout-minutes")
    timeout = float(timeout) if timeout is not None else None

    if "uses" in data:
        step = _parse_action(job_id, data)
        if timeout is not None:
            step = replace(step, timeout_minutes=timeout)
        return step

    run = data.get("run")
    if not run:
        raise WorkflowError(f"Job '{job_id}' step {index + 1} has neither 'uses' nor 'run'")
    run = str(run)
    name = data.get("name") or run.strip().splitlines()[0]
    return dsl.sh(
        str(name),
        run,
        cwd=data.get("working-directory"),
        kind=classify_command(run),
        timeout_minutes=timeout,
    )


def _parse_action(job_id: str, data: Dict[str, Any]) -> Step:
    uses = str(data["uses"])
    action = uses.split("@", 1)[0]
    with_ = data.get("with") or {}

    if action == "actions/checkout":
        return dsl.checkout(
            data.get("name") or "Checkout",
            fetch_depth=int(with_.get("fetch-depth", CHECKOUT_DEFAULT_DEPTH)),
            ref=with_.get("ref"),
            repository=with_.get("repository"),
            path=with_.get("path"),
        )
    if action == "actions/setup-node":
        version = with_.get("node-version")
        if version is None:
            raise WorkflowError(f"Job '{job_id}': actions/setup-node needs 'node-version'")
        return dsl.setup_node(str(version), name=data.get("name"))

    raise WorkflowError(f"Job '{job_id}': unsupported action {uses!r}")


def classify_command(cmd: str) -> str:
    """
    Decide how a run step's failure is reported:
    package-manager installs are dependency installs, anything that builds is a build.
    """
    try:
        words = shlex.split(cmd.strip().splitlines()[0]) if cmd.strip() else []
    except ValueError:
        words = cmd.split()
    if not words:
        return RUN
    if words[0] in _PACKAGE_MANAGERS:
        if len(words) == 1 and words[0] == "yarn":
            # bare `yarn` installs
            return INSTALL
        if len(words) > 1 and words[1] in _INSTALL_VERBS:
            return INSTALL
        if "build" in words[1:3]:
            return BUILD
    if "build" in words[:2]:
        return BUILD
    return RUN
