import pytest

from crossci.dag import build_dag, find_cycle, job_levels, topo_levels, validate_pipeline
from crossci.errors import ValidationError, ValidationErrorKind
from crossci.model import Checkout, Job, Pipeline


def _job(name, *needs, matrix=None):
    return Job(name, [Checkout()], needs=list(needs), matrix=matrix)


def test_levels_keep_declaration_order():
    jobs = [_job("lint"), _job("test"), _job("build", "test", "lint"), _job("docs")]
    assert job_levels(jobs) == [["lint", "test", "docs"], ["build"]]


def test_build_dag_adjacency_and_indegree():
    adj, indeg = build_dag([_job("a"), _job("b", "a"), _job("c", "a", "b")])
    assert adj == {"a": ["b", "c"], "b": ["c"], "c": []}
    assert indeg == {"a": 0, "b": 1, "c": 2}


def test_duplicate_job_names():
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", [_job("a"), _job("a")]))
    assert exc.value.kind is ValidationErrorKind.DUPLICATE_JOB_NAME
    assert exc.value.jobs == ("a",)


def test_unknown_dependency_target():
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", [_job("a", "ghost")]))
    assert exc.value.kind is ValidationErrorKind.UNKNOWN_DEPENDENCY_TARGET
    assert exc.value.jobs == ("a", "ghost")


def test_cycle_names_every_job_on_it_in_order():
    jobs = [_job("root"), _job("a", "c"), _job("b", "a"), _job("c", "b")]
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", jobs))
    err = exc.value
    assert err.kind is ValidationErrorKind.CYCLIC_DEPENDENCY
    assert set(err.jobs) == {"a", "b", "c"}
    assert "root" not in err.jobs
    # each job on the reported cycle is needed by the next one
    cycle = list(err.jobs)
    for before, after in zip(cycle, cycle[1:] + cycle[:1]):
        assert before in {j.name: j for j in jobs}[after].needs
    assert "->" in err.message


def test_self_dependency_is_a_cycle():
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", [_job("a", "a")]))
    assert exc.value.kind is ValidationErrorKind.CYCLIC_DEPENDENCY
    assert exc.value.jobs == ("a",)


def test_empty_matrix_axis():
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", [_job("a", matrix={"os": ["linux"], "py": []})]))
    assert exc.value.kind is ValidationErrorKind.EMPTY_MATRIX_AXIS
    assert exc.value.axis == "py"


def test_duplicates_are_reported_before_cycles():
    jobs = [_job("a", "b"), _job("b", "a"), _job("b", "a")]
    with pytest.raises(ValidationError) as exc:
        validate_pipeline(Pipeline("CI", jobs))
    assert exc.value.kind is ValidationErrorKind.DUPLICATE_JOB_NAME


def test_find_cycle_returns_empty_for_dag():
    adj, _ = build_dag([_job("a"), _job("b", "a")])
    assert find_cycle(adj, ["a", "b"]) == []


def test_validate_returns_same_pipeline():
    p = Pipeline("CI", [_job("a"), _job("b", "a")])
    assert validate_pipeline(p) is p
    adj, indeg = build_dag(p.jobs)
    assert topo_levels(adj, indeg) == [["a"], ["b"]]
