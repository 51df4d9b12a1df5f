# src/crossci/dsl.py
from __future__ import annotations

import posixpath
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Mapping, Optional, Sequence, Union

from .model import (
    LINUX,
    Build,
    BuildImage,
    Cache,
    Checkout,
    ContainerRegistry,
    InstallDependencies,
    Job,
    Language,
    Manual,
    Matrix,
    PackageRegistry,
    Pipeline,
    PublishPackage,
    PublishRelease,
    PullRequest,
    Push,
    RunCommand,
    RunLinter,
    RunTests,
    Schedule,
    SecurityScan,
    SetupToolchain,
    Step,
    Tag,
    Trigger,
    UploadArtifact,
    matrix_ref,
)

LanguageLike = Union[Language, str]

__all__ = [
    "checkout", "setup", "install", "test", "lint", "scan", "build", "upload",
    "release", "sh", "cache", "publish", "image", "job", "JobBuilder", "builder", "matrix",
    "on_push", "on_pull_request", "on_tag", "on_schedule", "on_manual",
    "pipeline", "matrix_ref",
]


# ---------------------------------------------------------------------
# Step helpers
# ---------------------------------------------------------------------

def checkout() -> Step:
    return Checkout()


def setup(language: LanguageLike, version: str) -> Step:
    """Install a toolchain; version may be a matrix reference like matrix_ref("version")."""
    return SetupToolchain(language, version)


def install(language: LanguageLike, manager: str | None = None) -> Step:
    return InstallDependencies(language, manager)


def test(language: LanguageLike, *, coverage: bool = False) -> Step:
    return RunTests(language, coverage)


def lint(language: LanguageLike, tool: str | None = None) -> Step:
    return RunLinter(language, tool)


def scan(language: LanguageLike, tool: str | None = None) -> Step:
    return SecurityScan(language, tool)


def build(language: LanguageLike, *, release: bool = False) -> Step:
    return Build(language, release)


def upload(path: str, name: str | None = None) -> Step:
    return UploadArtifact(path, name or posixpath.basename(path.rstrip("/")) or "artifact")


def release(*artifacts: str, on: Trigger | None = None) -> Step:
    return PublishRelease(on if on is not None else Tag(), artifacts)


def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return RunCommand(name=name, command=cmd, working_dir=cwd)


def cache(key: str, *paths: str) -> Step:
    return Cache(key, paths)


def publish(registry: Union[PackageRegistry, str], token_env: str) -> Step:
    return PublishPackage(registry, token_env)


def image(
    name: str,
    *,
    dockerfile: str = "Dockerfile",
    context: str = ".",
    push_to: Union[ContainerRegistry, str, None] = None,
) -> Step:
    """Build a container image; push_to ("docker-hub" or "ghcr") also pushes it."""
    return BuildImage(name, dockerfile, context, push_to)


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

def on_push(*branches: str) -> Trigger:
    return Push(branches)


def on_pull_request(*branches: str) -> Trigger:
    return PullRequest(branches)


def on_tag(pattern: str = "v*") -> Trigger:
    return Tag(pattern)


def on_schedule(cron: str) -> Trigger:
    return Schedule(cron)


def on_manual() -> Trigger:
    return Manual()


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

def matrix(axes: Mapping[str, Iterable[Any]] | None = None, **kw: Iterable[Any]) -> Matrix:
    """
    Declarative matrix; axis order is argument order.

    Example:
        job("test", setup("rust", matrix_ref("toolchain")), test("rust"),
            matrix=matrix(os=["linux", "macos"], toolchain=["stable", "nightly"]),
            runner=matrix_ref("os"))
    """
    merged: Dict[str, Iterable[Any]] = dict(axes or {})
    merged.update(kw)
    return Matrix(merged)


# ---------------------------------------------------------------------
# Functional Job helper
# ---------------------------------------------------------------------

def _apply_cwd(steps: Sequence[Step], cwd: str | None) -> List[Step]:
    if cwd is None:
        return list(steps)
    return [
        replace(s, working_dir=cwd) if isinstance(s, RunCommand) and s.working_dir is None else s
        for s in steps
    ]


def job(
    name: str,
    *steps: Step,  # allow: job("x", checkout(), test(...))
    steps_list: Optional[List[Step]] = None,  # allow: job("x", steps_list=[...])
    needs: Optional[List[str]] = None,
    matrix: Union[Matrix, Mapping[str, Iterable[Any]], None] = None,
    when: Trigger | None = None,
    runner: str = LINUX,
    env: Optional[Dict[str, str]] = None,
    cwd: str | None = None,  # default cwd applied to shell steps missing one
) -> Job:
    steps_final: List[Step] = []
    if steps_list:
        steps_final.extend(list(steps_list))
    steps_final.extend(list(steps))

    if not steps_final:
        raise ValueError(f"job({name!r}) must have at least one step")

    return Job(
        name=name,
        steps=tuple(_apply_cwd(steps_final, cwd)),
        needs=tuple(needs or ()),
        matrix=matrix,
        condition=when,
        runner=runner,
        env=env or {},
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class JobBuilder:
    def __init__(self, name: str):
        self.name = name
        self._needs: list[str] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._axes: dict[str, list[str]] = {}
        self._condition: Trigger | None = None
        self._runner: str = LINUX

    def depends_on(self, *job_names: str):
        self._needs.extend(job_names)
        return self

    def step(self, *steps: Step):
        self._steps.extend(steps)
        return self

    def define_step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(sh(name, run, cwd=cwd))
        return self

    def with_env(self, **env):
        # values are strings in every target platform
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def with_matrix(self, **axes: Iterable[Any]):
        self._axes.update({k: [str(v) for v in values] for k, values in axes.items()})
        return self

    def runs_on(self, runner: str):
        self._runner = runner
        return self

    def only_when(self, trigger: Trigger):
        self._condition = trigger
        return self

    def build(self) -> Job:
        if not self._steps:
            raise ValueError(f"Job '{self.name}' has no steps")

        return Job(
            name=self.name,
            steps=tuple(self._steps),
            needs=tuple(self._needs),
            matrix=Matrix(self._axes) if self._axes else None,
            condition=self._condition,
            runner=self._runner,
            env=dict(self._env),
        )


def builder(name: str) -> JobBuilder:
    """Convenience: builder('test').step(...).build()"""
    return JobBuilder(name)


# ---------------------------------------------------------------------
# Pipeline helper (single-file story)
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *jobs: Job,
    triggers: Sequence[Trigger] = (),
    env: Optional[Dict[str, str]] = None,
) -> Pipeline:
    """
    Users can write, in a workflow file:

        from crossci import dsl

        PIPELINE = dsl.pipeline(
            "CI",
            dsl.job("test", dsl.checkout(), dsl.test("python")),
            triggers=[dsl.on_push("main")],
        )

    or define `def pipeline(): return dsl.pipeline(...)`.
    """
    return Pipeline(name=name, jobs=jobs, triggers=tuple(triggers), env=env or {})
