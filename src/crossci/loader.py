# loader.py
from __future__ import annotations

import logging
import runpy
from pathlib import Path
from typing import Annotated, Any, Dict, List, Literal, Optional, Union

import pydantic
import yaml
from pydantic import BaseModel, BeforeValidator, ConfigDict, Field

from . import dsl
from .errors import PipelineFileError
from .model import (
    Build,
    BuildImage,
    Cache,
    Checkout,
    ContainerRegistry,
    InstallDependencies,
    Job,
    Language,
    Manual,
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
)

log = logging.getLogger(__name__)

YAML_SUFFIXES = (".yml", ".yaml")


def _scalar(value: Any) -> Any:
    # 3.10 in YAML is the float 3.1; refuse it instead of guessing
    if isinstance(value, float):
        raise ValueError(f"write {value!r} as a quoted string (e.g. \"3.10\")")
    if isinstance(value, int) and not isinstance(value, bool):
        return str(value)
    return value


Scalar = Annotated[str, BeforeValidator(_scalar)]


class _Doc(BaseModel):
    model_config = ConfigDict(extra="forbid")


# ---------------------------------------------------------------------
# Triggers
# ---------------------------------------------------------------------

class PushDoc(_Doc):
    type: Literal["push"]
    branches: List[Scalar] = Field(default_factory=list)

    def to_model(self) -> Trigger:
        return Push(tuple(self.branches))


class PullRequestDoc(_Doc):
    type: Literal["pull_request"]
    branches: List[Scalar] = Field(default_factory=list)

    def to_model(self) -> Trigger:
        return PullRequest(tuple(self.branches))


class TagDoc(_Doc):
    type: Literal["tag"]
    pattern: Scalar = "v*"

    def to_model(self) -> Trigger:
        return Tag(self.pattern)


class ScheduleDoc(_Doc):
    type: Literal["schedule"]
    cron: str

    def to_model(self) -> Trigger:
        return Schedule(self.cron)


class ManualDoc(_Doc):
    type: Literal["manual"]

    def to_model(self) -> Trigger:
        return Manual()


TriggerDoc = Annotated[
    Union[PushDoc, PullRequestDoc, TagDoc, ScheduleDoc, ManualDoc],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------
# Steps
# ---------------------------------------------------------------------

class CheckoutDoc(_Doc):
    type: Literal["checkout"]

    def to_model(self) -> Step:
        return Checkout()


class SetupToolchainDoc(_Doc):
    type: Literal["setup_toolchain"]
    language: Language
    version: Scalar

    def to_model(self) -> Step:
        return SetupToolchain(self.language, self.version)


class InstallDependenciesDoc(_Doc):
    type: Literal["install_dependencies"]
    language: Language
    manager_hint: Optional[str] = None

    def to_model(self) -> Step:
        return InstallDependencies(self.language, self.manager_hint)


class RunTestsDoc(_Doc):
    type: Literal["run_tests"]
    language: Language
    coverage: bool = False

    def to_model(self) -> Step:
        return RunTests(self.language, self.coverage)


class RunLinterDoc(_Doc):
    type: Literal["run_linter"]
    language: Language
    tool_hint: Optional[str] = None

    def to_model(self) -> Step:
        return RunLinter(self.language, self.tool_hint)


class SecurityScanDoc(_Doc):
    type: Literal["security_scan"]
    language: Language
    tool_hint: Optional[str] = None

    def to_model(self) -> Step:
        return SecurityScan(self.language, self.tool_hint)


class BuildDoc(_Doc):
    type: Literal["build"]
    language: Language
    release_mode: bool = False

    def to_model(self) -> Step:
        return Build(self.language, self.release_mode)


class UploadArtifactDoc(_Doc):
    type: Literal["upload_artifact"]
    path: str
    name: str

    def to_model(self) -> Step:
        return UploadArtifact(self.path, self.name)


class PublishReleaseDoc(_Doc):
    type: Literal["publish_release"]
    condition: Optional[TriggerDoc] = None
    artifacts: List[str] = Field(default_factory=list)

    def to_model(self) -> Step:
        condition = self.condition.to_model() if self.condition else Tag()
        return PublishRelease(condition, tuple(self.artifacts))


class RunCommandDoc(_Doc):
    type: Literal["run_command"]
    name: str
    command: str
    working_dir: Optional[str] = None

    def to_model(self) -> Step:
        return RunCommand(self.name, self.command, self.working_dir)


class CacheDoc(_Doc):
    type: Literal["cache"]
    key: str
    paths: List[str]

    def to_model(self) -> Step:
        return Cache(self.key, tuple(self.paths))


class PublishPackageDoc(_Doc):
    type: Literal["publish_package"]
    registry: PackageRegistry
    token_env: str

    def to_model(self) -> Step:
        return PublishPackage(self.registry, self.token_env)


class BuildImageDoc(_Doc):
    type: Literal["build_image"]
    image: str
    dockerfile: str = "Dockerfile"
    context: str = "."
    push_to: Optional[ContainerRegistry] = None

    def to_model(self) -> Step:
        return BuildImage(self.image, self.dockerfile, self.context, self.push_to)


StepDoc = Annotated[
    Union[
        CheckoutDoc,
        SetupToolchainDoc,
        InstallDependenciesDoc,
        RunTestsDoc,
        RunLinterDoc,
        SecurityScanDoc,
        BuildDoc,
        UploadArtifactDoc,
        PublishReleaseDoc,
        RunCommandDoc,
        CacheDoc,
        PublishPackageDoc,
        BuildImageDoc,
    ],
    Field(discriminator="type"),
]


# ---------------------------------------------------------------------
# Jobs / pipeline
# ---------------------------------------------------------------------

class JobDoc(_Doc):
    name: str
    steps: List[StepDoc]
    needs: List[str] = Field(default_factory=list)
    matrix: Dict[str, List[Scalar]] = Field(default_factory=dict)
    condition: Optional[TriggerDoc] = None
    runner: str = "linux"
    env: Dict[str, Scalar] = Field(default_factory=dict)

    def to_model(self) -> Job:
        return Job(
            name=self.name,
            steps=tuple(s.to_model() for s in self.steps),
            needs=tuple(self.needs),
            matrix=self.matrix or None,
            condition=self.condition.to_model() if self.condition else None,
            runner=self.runner,
            env=self.env,
        )


class PipelineDoc(_Doc):
    name: str = "CI"
    triggers: List[TriggerDoc] = Field(default_factory=list)
    env: Dict[str, Scalar] = Field(default_factory=dict)
    jobs: List[JobDoc]

    def to_model(self) -> Pipeline:
        return Pipeline(
            name=self.name,
            jobs=tuple(j.to_model() for j in self.jobs),
            triggers=tuple(t.to_model() for t in self.triggers),
            env=self.env,
        )


# ---------------------------------------------------------------------
# Loading
# ---------------------------------------------------------------------

def pipeline_from_document(data: Any, source: str = "<document>") -> Pipeline:
    """Validate a parsed YAML/JSON document and convert it to a Pipeline."""
    if not isinstance(data, dict):
        raise PipelineFileError(source, "top level must be a mapping")
    try:
        doc = PipelineDoc.model_validate(data)
    except pydantic.ValidationError as e:
        first = e.errors()[0]
        location = ".".join(str(p) for p in first["loc"]) or None
        extra = e.error_count() - 1
        message = first["msg"] + (f" (+{extra} more error(s))" if extra else "")
        raise PipelineFileError(source, message, location) from e
    return doc.to_model()


def _load_yaml(path: Path) -> Pipeline:
    try:
        data = yaml.safe_load(path.read_text(encoding="utf-8"))
    except yaml.YAMLError as e:
        mark = getattr(e, "problem_mark", None)
        location = f"line {mark.line + 1}" if mark is not None else None
        raise PipelineFileError(str(path), f"invalid YAML: {getattr(e, 'problem', None) or e}", location) from e
    return pipeline_from_document(data, str(path))


def _load_python(path: Path) -> Pipeline:
    globals_dict = runpy.run_path(str(path), run_name=f"crossci_pipeline_{path.stem}")

    value = None
    factory = globals_dict.get("pipeline")
    if callable(factory) and factory is not dsl.pipeline:
        value = factory()
    elif "PIPELINE" in globals_dict:
        value = globals_dict["PIPELINE"]
    else:
        raise PipelineFileError(
            str(path),
            "define pipeline() -> Pipeline or PIPELINE = Pipeline(...) "
            "(import the helper as `from crossci import dsl` to avoid shadowing)",
        )

    if not isinstance(value, Pipeline):
        raise PipelineFileError(str(path), f"expected a Pipeline, got {type(value).__name__}")
    return value


def load_pipeline(path: str | Path) -> Pipeline:
    """
    Load a pipeline from a Python workflow file or a YAML document.

    The result is not validated; Generator and `crossci validate` do that.
    """
    p = Path(path).expanduser()
    if not p.is_file():
        raise PipelineFileError(str(p), "file not found")

    log.debug("loading pipeline from %s", p)
    if p.suffix == ".py":
        return _load_python(p)
    if p.suffix in YAML_SUFFIXES:
        return _load_yaml(p)
    raise PipelineFileError(str(p), f"unsupported file type '{p.suffix}' (use .py, .yml or .yaml)")
