import pytest

from docsci.dag import build_dag, plan, topo_levels
from docsci.dsl import job, sh
from docsci.errors import WorkflowError


def _job(name, needs=None):
    return job(name, sh("x", "true"), needs=needs)


def test_levels_group_independent_jobs():
    jobs = [_job("deploy", ["build", "lint"]), _job("build"), _job("lint")]
    assert plan(jobs) == [["build", "lint"], ["deploy"]]


def test_chain():
    adj, indeg = build_dag([_job("c", ["b"]), _job("b", ["a"]), _job("a")])
    assert indeg == {"a": 0, "b": 1, "c": 1}
    assert topo_levels(adj, indeg) == [["a"], ["b"], ["c"]]


def test_duplicate_names():
    with pytest.raises(WorkflowError, match="Duplicate"):
        plan([_job("a"), _job("a")])


def test_missing_need():
    with pytest.raises(WorkflowError, match="missing job 'ghost'"):
        plan([_job("a", ["ghost"])])


def test_cycle():
    with pytest.raises(WorkflowError, match="cycle"):
        plan([_job("a", ["b"]), _job("b", ["a"])])
