# dag.py
# Job ordering inside a workflow: `needs` edges turned into runnable stages.
from __future__ import annotations

from typing import Dict, List, Set, Tuple

from .errors import WorkflowError
from .model import Job


def build_dag(jobs: List[Job]) -> Tuple[Dict[str, Set[str]], Dict[str, int]]:
    """
    Returns (dependents, pending):
      dependents[name]: jobs that wait on `name`
      pending[name]:    how many jobs `name` still waits on
    """
    seen: Set[str] = set()
    dupes: Set[str] = set()
    for j in jobs:
        (dupes if j.name in seen else seen).add(j.name)
    if dupes:
        raise WorkflowError(f"Duplicate job names found: {sorted(dupes)}")

    dependents: Dict[str, Set[str]] = {j.name: set() for j in jobs}
    pending: Dict[str, int] = {j.name: 0 for j in jobs}

    for j in jobs:
        for need in set(j.needs or []):
            if need not in dependents:
                raise WorkflowError(
                    f"Job '{j.name}' needs missing job '{need}'. Known jobs: {sorted(seen)}"
                )
            dependents[need].add(j.name)
            pending[j.name] += 1

    return dependents, pending


def topo_levels(dependents: Dict[str, Set[str]], pending: Dict[str, int]) -> List[List[str]]:
    """
    Group jobs into stages. Every job's needs live in earlier stages, so the
    jobs of one stage can run side by side. Names are sorted within a stage.
    """
    waiting = dict(pending)
    stage = sorted(name for name, count in waiting.items() if count == 0)
    stages: List[List[str]] = []

    while stage:
        stages.append(stage)
        released: Set[str] = set()
        for name in stage:
            del waiting[name]
            for child in dependents.get(name, ()):
                waiting[child] -= 1
                if waiting[child] == 0:
                    released.add(child)
        stage = sorted(released)

    if waiting:
        raise WorkflowError(f"Job dependencies form a cycle. Stuck jobs: {sorted(waiting)}")
    return stages


def plan(jobs: List[Job]) -> List[List[str]]:
    """Validate `jobs` and return their execution stages."""
    return topo_levels(*build_dag(jobs))
