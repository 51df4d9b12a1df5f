# dag.py
from __future__ import annotations

from collections import deque
from typing import Dict, List, Optional, Sequence, Set, Tuple

from .errors import ValidationError, ValidationErrorKind
from .model import Job, Pipeline


def build_dag(jobs: Sequence[Job]) -> Tuple[Dict[str, List[str]], Dict[str, int]]:
    """
    Build a DAG from Job objects.

    Requires:
      - job.name: str (unique)
      - job.needs: names of jobs that must run BEFORE this job

    Returns the adjacency (dependency -> dependents, in declaration order)
    and the in-degree of every job.
    """
    names = [j.name for j in jobs]
    seen: Set[str] = set()
    dupes: List[str] = []
    for n in names:
        if n in seen and n not in dupes:
            dupes.append(n)
        seen.add(n)
    if dupes:
        raise ValidationError(
            kind=ValidationErrorKind.DUPLICATE_JOB_NAME,
            message=f"Duplicate job names found: {dupes}",
            jobs=tuple(dupes),
        )

    adj: Dict[str, List[str]] = {n: [] for n in names}
    indeg: Dict[str, int] = {n: 0 for n in names}

    for job in jobs:
        for dep in job.needs:
            if dep not in seen:
                raise ValidationError(
                    kind=ValidationErrorKind.UNKNOWN_DEPENDENCY_TARGET,
                    message=(
                        f"Job '{job.name}' needs missing job '{dep}'. "
                        f"Known jobs: {sorted(seen)}"
                    ),
                    jobs=(job.name, dep),
                )
            # Edge dep -> job.name (dep must run before job)
            if job.name not in adj[dep]:
                adj[dep].append(job.name)
                indeg[job.name] += 1

    return adj, indeg


def find_cycle(adj: Dict[str, List[str]], nodes: Sequence[str]) -> List[str]:
    """
    Return one dependency cycle among `nodes`, in dependency order
    (each job needs the one before it), or [] if there is none.
    """
    WHITE, GREY, BLACK = 0, 1, 2
    color = {n: WHITE for n in nodes}
    stack: List[str] = []

    def visit(node: str) -> Optional[List[str]]:
        color[node] = GREY
        stack.append(node)
        for child in adj.get(node, []):
            if child not in color:
                continue
            if color[child] == GREY:
                return stack[stack.index(child):]
            if color[child] == WHITE:
                found = visit(child)
                if found:
                    return found
        stack.pop()
        color[node] = BLACK
        return None

    for n in nodes:
        if color[n] == WHITE:
            found = visit(n)
            if found:
                return found
    return []


def topo_levels(adj: Dict[str, List[str]], indeg: Dict[str, int]) -> List[List[str]]:
    """
    Convert DAG into topological "levels" (stages).
    Jobs inside one level do not depend on each other; each level keeps
    declaration order so output stays stable.
    """
    order = {n: i for i, n in enumerate(indeg)}
    indeg = dict(indeg)  # copy (we mutate it)
    q = deque(n for n, d in indeg.items() if d == 0)

    levels: List[List[str]] = []
    processed = 0

    while q:
        level_size = len(q)
        level: List[str] = []
        unlocked: List[str] = []

        for _ in range(level_size):
            node = q.popleft()
            level.append(node)
            processed += 1

            for child in adj.get(node, []):
                indeg[child] -= 1
                if indeg[child] == 0:
                    unlocked.append(child)

        q.extend(sorted(unlocked, key=order.__getitem__))
        levels.append(level)

    if processed != len(indeg):
        stuck = [n for n, d in indeg.items() if d > 0]
        cycle = find_cycle(adj, stuck) or stuck
        raise ValidationError(
            kind=ValidationErrorKind.CYCLIC_DEPENDENCY,
            message=f"Dependency cycle: {' -> '.join(cycle + cycle[:1])}",
            jobs=tuple(cycle),
        )

    return levels


def check_matrices(jobs: Sequence[Job]) -> None:
    for job in jobs:
        if job.matrix is None:
            continue
        for axis, values in job.matrix.axes:
            if not values:
                raise ValidationError(
                    kind=ValidationErrorKind.EMPTY_MATRIX_AXIS,
                    message=f"Job '{job.name}' matrix axis '{axis}' has no values",
                    jobs=(job.name,),
                    axis=axis,
                )


def validate_pipeline(pipeline: Pipeline) -> Pipeline:
    """
    Accept a candidate pipeline or raise ValidationError.

    Checks, in order: unique job names, known dependency targets,
    acyclic dependencies, non-empty matrix axes. Pure; returns the same value.
    """
    adj, indeg = build_dag(pipeline.jobs)
    topo_levels(adj, indeg)
    check_matrices(pipeline.jobs)
    return pipeline


def job_levels(jobs: Sequence[Job]) -> List[List[str]]:
    adj, indeg = build_dag(jobs)
    return topo_levels(adj, indeg)
