# model.py
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field, fields
from enum import Enum
from types import MappingProxyType
from typing import Any, ClassVar, Dict, Iterable, List, Mapping, Optional, Tuple, Union


class Language(str, Enum):
    RUST = "rust"
    PYTHON = "python"
    GO = "go"


class PackageRegistry(str, Enum):
    CRATES_IO = "crates-io"
    PYPI = "pypi"
    NPM = "npm"


class ContainerRegistry(str, Enum):
    DOCKER_HUB = "docker-hub"
    GHCR = "ghcr"


# Runner families every platform knows about. Anything else is passed through
# as a custom (self-hosted) runner label.
LINUX = "linux"
MACOS = "macos"
WINDOWS = "windows"

MATRIX_REF = re.compile(r"\{matrix\.([A-Za-z0-9_-]+)\}")


def matrix_ref(axis: str) -> str:
    """Placeholder for a matrix value inside a step, runner or env string."""
    return "{matrix.%s}" % axis


def _as_tuple(value: Any) -> Tuple:
    if value is None:
        return ()
    if isinstance(value, str):
        return (value,)
    return tuple(value)


def _freeze_tuple(obj: Any, name: str) -> None:
    # frozen dataclass: normalise lists passed by callers into tuples
    object.__setattr__(obj, name, _as_tuple(getattr(obj, name)))


def _freeze_mapping(obj: Any, name: str) -> None:
    value = getattr(obj, name) or {}
    object.__setattr__(obj, name, MappingProxyType({str(k): str(v) for k, v in dict(value).items()}))


# ---------------------------------------------------------------------
# Triggers (pipeline triggers, job guards, release conditions)
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Trigger:
    """When something runs. Shared by pipeline triggers and job guards."""
    kind: ClassVar[str] = ""


@dataclass(frozen=True)
class Push(Trigger):
    branches: Tuple[str, ...] = ()

    kind: ClassVar[str] = "push"

    def __post_init__(self) -> None:
        _freeze_tuple(self, "branches")


@dataclass(frozen=True)
class PullRequest(Trigger):
    branches: Tuple[str, ...] = ()

    kind: ClassVar[str] = "pull_request"

    def __post_init__(self) -> None:
        _freeze_tuple(self, "branches")


@dataclass(frozen=True)
class Tag(Trigger):
    pattern: str = "v*"

    kind: ClassVar[str] = "tag"


@dataclass(frozen=True)
class Schedule(Trigger):
    cron: str = "0 0 * * *"

    kind: ClassVar[str] = "schedule"


@dataclass(frozen=True)
class Manual(Trigger):
    kind: ClassVar[str] = "manual"


# ---------------------------------------------------------------------
# Steps: the closed vocabulary of abstract build actions
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Step:
    """
    One abstract build action inside a job.

    Steps never carry platform syntax. Every subclass listed in STEP_TYPES
    must be handled by every platform adapter.
    """
    kind: ClassVar[str] = ""

    def describe(self) -> str:
        args = ", ".join(f"{f.name}={_short(getattr(self, f.name))}" for f in fields(self))
        return f"{self.kind}({args})"


def _short(value: Any) -> str:
    if isinstance(value, Enum):
        return str(value.value)
    if isinstance(value, Trigger):
        return value.kind
    return str(value)


def _language(obj: Any) -> None:
    object.__setattr__(obj, "language", Language(obj.language))


@dataclass(frozen=True)
class Checkout(Step):
    kind: ClassVar[str] = "checkout"


@dataclass(frozen=True)
class SetupToolchain(Step):
    language: Language
    version: str

    kind: ClassVar[str] = "setup_toolchain"

    def __post_init__(self) -> None:
        _language(self)
        object.__setattr__(self, "version", str(self.version))


@dataclass(frozen=True)
class InstallDependencies(Step):
    language: Language
    manager_hint: Optional[str] = None

    kind: ClassVar[str] = "install_dependencies"

    def __post_init__(self) -> None:
        _language(self)


@dataclass(frozen=True)
class RunTests(Step):
    language: Language
    coverage: bool = False

    kind: ClassVar[str] = "run_tests"

    def __post_init__(self) -> None:
        _language(self)


@dataclass(frozen=True)
class RunLinter(Step):
    language: Language
    tool_hint: Optional[str] = None

    kind: ClassVar[str] = "run_linter"

    def __post_init__(self) -> None:
        _language(self)


@dataclass(frozen=True)
class SecurityScan(Step):
    language: Language
    tool_hint: Optional[str] = None

    kind: ClassVar[str] = "security_scan"

    def __post_init__(self) -> None:
        _language(self)


@dataclass(frozen=True)
class Build(Step):
    language: Language
    release_mode: bool = False

    kind: ClassVar[str] = "build"

    def __post_init__(self) -> None:
        _language(self)


@dataclass(frozen=True)
class UploadArtifact(Step):
    path: str
    name: str

    kind: ClassVar[str] = "upload_artifact"


@dataclass(frozen=True)
class PublishRelease(Step):
    condition: Trigger = field(default_factory=Tag)
    artifacts: Tuple[str, ...] = ()

    kind: ClassVar[str] = "publish_release"

    def __post_init__(self) -> None:
        _freeze_tuple(self, "artifacts")


@dataclass(frozen=True)
class RunCommand(Step):
    name: str
    command: str
    working_dir: Optional[str] = None

    kind: ClassVar[str] = "run_command"


@dataclass(frozen=True)
class Cache(Step):
    key: str
    paths: Tuple[str, ...] = ()

    kind: ClassVar[str] = "cache"

    def __post_init__(self) -> None:
        _freeze_tuple(self, "paths")


@dataclass(frozen=True)
class PublishPackage(Step):
    registry: PackageRegistry
    token_env: str

    kind: ClassVar[str] = "publish_package"

    def __post_init__(self) -> None:
        object.__setattr__(self, "registry", PackageRegistry(self.registry))


@dataclass(frozen=True)
class BuildImage(Step):
    """Build a container image tagged with the commit and `latest`; push it when push_to is set."""
    image: str
    dockerfile: str = "Dockerfile"
    context: str = "."
    push_to: Optional[ContainerRegistry] = None

    kind: ClassVar[str] = "build_image"

    def __post_init__(self) -> None:
        if self.push_to is not None:
            object.__setattr__(self, "push_to", ContainerRegistry(self.push_to))


STEP_TYPES: Tuple[type, ...] = (
    Checkout,
    SetupToolchain,
    InstallDependencies,
    RunTests,
    RunLinter,
    SecurityScan,
    Build,
    UploadArtifact,
    PublishRelease,
    RunCommand,
    Cache,
    PublishPackage,
    BuildImage,
)

STEPS_BY_KIND: Dict[str, type] = {t.kind: t for t in STEP_TYPES}


# ---------------------------------------------------------------------
# Matrix
# ---------------------------------------------------------------------

MatrixLike = Union["Matrix", Mapping[str, Iterable[Any]], Iterable[Tuple[str, Iterable[Any]]]]


@dataclass(frozen=True)
class Matrix:
    """
    Declarative cartesian product over named axes.

    Axis order and value order are preserved; the matrix is never expanded
    in the model, adapters decide how to materialise it.
    """
    axes: Tuple[Tuple[str, Tuple[str, ...]], ...]

    def __post_init__(self) -> None:
        raw = self.axes.items() if isinstance(self.axes, Mapping) else self.axes
        axes = tuple((str(name), tuple(str(v) for v in _as_tuple(values))) for name, values in raw)
        object.__setattr__(self, "axes", axes)

    @classmethod
    def of(cls, value: MatrixLike) -> "Matrix":
        if isinstance(value, Matrix):
            return value
        return cls(axes=value)  # type: ignore[arg-type]

    @property
    def axis_names(self) -> Tuple[str, ...]:
        return tuple(name for name, _ in self.axes)

    def values(self, axis: str) -> Tuple[str, ...]:
        for name, values in self.axes:
            if name == axis:
                return values
        raise KeyError(axis)

    def combinations(self) -> List[Dict[str, str]]:
        names = self.axis_names
        return [dict(zip(names, combo)) for combo in itertools.product(*(v for _, v in self.axes))]

    def as_dict(self) -> Dict[str, List[str]]:
        return {name: list(values) for name, values in self.axes}

    def __len__(self) -> int:
        return len(self.axes)


# ---------------------------------------------------------------------
# Jobs & pipeline
# ---------------------------------------------------------------------

@dataclass(frozen=True)
class Job:
    """
    A named unit of work: ordered steps plus scheduling metadata.

    `needs` lists the jobs that must finish before this one starts.
    `condition` restricts when the job runs (e.g. only for tag pushes).
    """
    name: str
    steps: Tuple[Step, ...]
    needs: Tuple[str, ...] = ()
    matrix: Optional[Matrix] = None
    condition: Optional[Trigger] = None
    runner: str = LINUX
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze_tuple(self, "steps")
        _freeze_tuple(self, "needs")
        _freeze_mapping(self, "env")
        if self.matrix is not None:
            m = Matrix.of(self.matrix)
            object.__setattr__(self, "matrix", m if len(m) else None)


@dataclass(frozen=True)
class Pipeline:
    """Root of the generic model: ordered jobs plus pipeline-wide triggers and env."""
    name: str
    jobs: Tuple[Job, ...]
    triggers: Tuple[Trigger, ...] = ()
    env: Mapping[str, str] = field(default_factory=dict)

    def __post_init__(self) -> None:
        _freeze_tuple(self, "jobs")
        _freeze_tuple(self, "triggers")
        _freeze_mapping(self, "env")

    @property
    def job_names(self) -> List[str]:
        return [j.name for j in self.jobs]

    def job(self, name: str) -> Job:
        for j in self.jobs:
            if j.name == name:
                return j
        raise KeyError(name)
