# platforms/base.py
from __future__ import annotations

import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, fields, replace
from enum import Enum
from typing import Any, Callable, ClassVar, Dict, FrozenSet, Generic, List, Mapping, Sequence, Tuple, TypeVar

from ..commands import UnknownToolError
from ..dag import job_levels
from ..errors import AdapterError, AdapterErrorKind
from ..model import MATRIX_REF, STEP_TYPES, Cache, Job, Pipeline, Push, Step, Trigger


GENERATED_BY = "Generated by crossci. Do not edit by hand."


class Platform(str, Enum):
    GITHUB_ACTIONS = "github-actions"
    GITLAB_CI = "gitlab-ci"
    CIRCLECI = "circleci"
    JENKINS = "jenkins"


@dataclass(frozen=True)
class GeneratedFile:
    """Serialized native configuration plus where it belongs in the repo."""
    platform: str
    path: str
    content: str


@dataclass(frozen=True)
class JobVariant:
    """A concrete job produced from a generic job (one per matrix combination)."""
    name: str
    job: Job


IR = TypeVar("IR")


class PlatformAdapter(ABC, Generic[IR]):
    """
    Shared adapter contract.

    transform() turns a validated Pipeline into the platform IR or raises
    AdapterError; there is no partial output. Each step variant is handled
    by a method named `_on_<kind>`; missing_handlers() lists the gaps and
    the registry refuses adapters that have any.
    """

    platform: ClassVar[str] = ""
    native_matrix: ClassVar[bool] = False

    @abstractmethod
    def transform(self, pipeline: Pipeline) -> IR:
        ...

    @abstractmethod
    def serialize(self, ir: IR) -> str:
        ...

    @abstractmethod
    def output_path(self, pipeline: Pipeline) -> str:
        ...

    def generate(self, pipeline: Pipeline) -> GeneratedFile:
        ir = self.transform(pipeline)
        return GeneratedFile(
            platform=self.platform,
            path=self.output_path(pipeline),
            content=self.serialize(ir),
        )

    @classmethod
    def missing_handlers(cls) -> List[str]:
        return [t.kind for t in STEP_TYPES if not callable(getattr(cls, f"_on_{t.kind}", None))]

    # -----------------------------------------------------------------
    # Errors
    # -----------------------------------------------------------------

    def error(self, kind: AdapterErrorKind, message: str, **details: Any) -> AdapterError:
        return AdapterError(kind=kind, platform=self.platform, message=message, details=details)

    def unsupported_step(self, reason: str) -> AdapterError:
        return self.error(AdapterErrorKind.UNSUPPORTED_STEP, reason)

    def unsupported_condition(self, trigger: Trigger, reason: str) -> AdapterError:
        return self.error(AdapterErrorKind.UNSUPPORTED_CONDITION, reason, condition=trigger.kind)

    def cache_paths(self, step: Cache) -> Tuple[str, ...]:
        if not step.paths:
            raise self.unsupported_step(f"cache '{step.key}' lists no paths")
        return step.paths

    # -----------------------------------------------------------------
    # Guards
    # -----------------------------------------------------------------

    def guard_events(self, guard: Trigger) -> FrozenSet[str]:
        """Trigger kinds on which a job guarded by `guard` runs."""
        return frozenset([guard.kind])

    def runnable_events(self, pipeline: Pipeline, *, through_needs: bool) -> Dict[str, FrozenSet[str]]:
        """
        Trigger kinds each job can run on.

        A pipeline without triggers runs on push. A guard must match one of
        the pipeline triggers; with through_needs a job also runs only when
        every job it waits for runs. A job that can never run is an
        UNSUPPORTED_CONDITION error.
        """
        events = frozenset(t.kind for t in pipeline.triggers) or frozenset([Push.kind])
        by_name = {job.name: job for job in pipeline.jobs}
        runs: Dict[str, FrozenSet[str]] = {}

        for level in job_levels(pipeline.jobs):
            for name in level:
                job = by_name[name]
                possible = events
                if job.condition is not None:
                    possible = possible & self.guard_events(job.condition)
                    if not possible:
                        raise self.unsupported_condition(
                            job.condition,
                            f"'{job.condition.kind}' guard never holds: the pipeline only runs on "
                            f"{', '.join(sorted(events))}",
                        ).at(job=name)
                if through_needs:
                    for dep in job.needs:
                        possible = possible & runs[dep]
                    if not possible:
                        raise self.error(
                            AdapterErrorKind.UNSUPPORTED_CONDITION,
                            "job never runs: its guard excludes every event its dependencies run on",
                            needs=", ".join(job.needs),
                        ).at(job=name)
                runs[name] = possible
        return runs

    # -----------------------------------------------------------------
    # Step dispatch
    # -----------------------------------------------------------------

    def translate_steps(self, job_name: str, steps: Sequence[Step], ctx: Any) -> None:
        """Run the `_on_<kind>` handler of every step, locating any failure."""
        for index, step in enumerate(steps):
            handler: Callable[[Any, Any], None] | None = getattr(self, f"_on_{step.kind}", None)
            if handler is None:
                raise self.unsupported_step(
                    f"no translation for step '{step.kind}'"
                ).at(job=job_name, step_index=index, step=step)
            try:
                handler(step, ctx)
            except AdapterError as exc:
                raise exc.at(job=job_name, step_index=index, step=step) from None
            except UnknownToolError as exc:
                raise self.unsupported_step(str(exc)).at(
                    job=job_name, step_index=index, step=step
                ) from exc

    # -----------------------------------------------------------------
    # Matrix handling
    # -----------------------------------------------------------------

    def render_matrix(self, job: Job, render_axis: Callable[[str], str]) -> Job:
        """Rewrite {matrix.x} references with the platform's native syntax."""
        axes = job.matrix.axis_names if job.matrix else ()

        def lookup(axis: str) -> str:
            if axis not in axes:
                raise self._unknown_axis(job, axis)
            return render_axis(axis)

        return _rewrite_job(job, lookup)

    def bind_matrix(self, job: Job, values: Mapping[str, str]) -> Job:
        """Substitute concrete matrix values for {matrix.x} references."""

        def lookup(axis: str) -> str:
            if axis not in values:
                raise self._unknown_axis(job, axis)
            return values[axis]

        return replace(_rewrite_job(job, lookup), matrix=None)

    def matrix_axis(self, axis: str) -> str:
        """Native placeholder for a matrix axis; only used when native_matrix is set."""
        raise NotImplementedError(f"{type(self).__name__} renders no native matrix")

    def expand_jobs(self, jobs: Sequence[Job]) -> List[Tuple[Job, List[JobVariant]]]:
        """
        Concrete jobs for every generic job.

        With native_matrix the job keeps its matrix and {matrix.x} references
        are rendered with matrix_axis(). Otherwise it is expanded manually:
        one job per combination, named `<job>-<v1>-<v2>...` in declared axis
        order. Jobs without a matrix map to themselves.
        """
        if self.native_matrix:
            return [(job, [JobVariant(job.name, self.render_matrix(job, self.matrix_axis))]) for job in jobs]

        taken: Dict[str, str] = {j.name: j.name for j in jobs if j.matrix is None}
        out: List[Tuple[Job, List[JobVariant]]] = []

        for job in jobs:
            if job.matrix is None:
                out.append((job, [JobVariant(job.name, self.bind_matrix(job, {}))]))
                continue

            variants: List[JobVariant] = []
            for combo in job.matrix.combinations():
                name = "-".join([job.name, *(_slug(v) for v in combo.values())])
                if name in taken:
                    raise self.error(
                        AdapterErrorKind.MALFORMED_MATRIX,
                        f"expanded job name '{name}' collides with job '{taken[name]}'",
                        expanded=name,
                    ).at(job=job.name)
                taken[name] = job.name
                variants.append(JobVariant(name, self.bind_matrix(job, combo)))
            out.append((job, variants))

        return out

    def _unknown_axis(self, job: Job, axis: str) -> AdapterError:
        declared = ", ".join(job.matrix.axis_names) if job.matrix else "none"
        return self.error(
            AdapterErrorKind.MALFORMED_MATRIX,
            f"reference to matrix axis '{axis}' which the job does not declare (declared: {declared})",
            axis=axis,
        ).at(job=job.name)


def _slug(value: str) -> str:
    return re.sub(r"[^A-Za-z0-9._-]+", "-", value).strip("-") or "x"


def _rewrite_value(value: Any, lookup: Callable[[str], str]) -> Any:
    if isinstance(value, Enum):
        return value
    if isinstance(value, str):
        return MATRIX_REF.sub(lambda m: lookup(m.group(1)), value)
    if isinstance(value, tuple) and all(isinstance(v, str) for v in value):
        return tuple(MATRIX_REF.sub(lambda m: lookup(m.group(1)), v) for v in value)
    return value


def _rewrite_step(step: Step, lookup: Callable[[str], str]) -> Step:
    changes = {}
    for f in fields(step):
        old = getattr(step, f.name)
        new = _rewrite_value(old, lookup)
        if new != old:
            changes[f.name] = new
    return replace(step, **changes) if changes else step


def _rewrite_job(job: Job, lookup: Callable[[str], str]) -> Job:
    return replace(
        job,
        steps=tuple(_rewrite_step(s, lookup) for s in job.steps),
        runner=_rewrite_value(job.runner, lookup),
        env={k: _rewrite_value(v, lookup) for k, v in job.env.items()},
    )


# ---------------------------------------------------------------------
# Glob helpers (branch / tag patterns)
# ---------------------------------------------------------------------

def has_wildcards(pattern: str) -> bool:
    return any(c in pattern for c in "*?[")


def prefix_of(pattern: str) -> str | None:
    """'release/*' -> 'release/'; None when the glob is not a plain prefix match."""
    stem = pattern.rstrip("*")
    if stem != pattern and not has_wildcards(stem):
        return stem
    return None


def glob_to_regex(pattern: str) -> str:
    out = []
    for c in pattern:
        if c == "*":
            out.append(".*")
        elif c == "?":
            out.append(".")
        else:
            out.append(re.escape(c))
    return "^" + "".join(out) + "$"


def regex_literal(pattern: str) -> str:
    """Glob as a /.../ regex literal (GitLab rules, CircleCI filters)."""
    return "/" + glob_to_regex(pattern).replace("/", "\\/") + "/"


def slugify(name: str, default: str = "ci") -> str:
    return re.sub(r"[^a-z0-9]+", "-", name.lower()).strip("-") or default
