# presets.py
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

from .dag import validate_pipeline
from .errors import PresetError
from .model import (
    Build,
    BuildImage,
    Checkout,
    ContainerRegistry,
    InstallDependencies,
    Job,
    Language,
    PackageRegistry,
    Pipeline,
    PublishPackage,
    PublishRelease,
    PullRequest,
    Push,
    RunLinter,
    RunTests,
    SecurityScan,
    SetupToolchain,
    Tag,
    UploadArtifact,
    matrix_ref,
)
from .settings import DEFAULT_BRANCHES

OPTIONS = ("version", "coverage", "lint", "security", "release", "matrix_versions", "branches")
DOCKER_OPTIONS = ("image", "registry", "dockerfile", "context", "release", "branches")

RELEASE_TAG = "v*"

_TRUE = {"1", "true", "yes", "on"}
_FALSE = {"0", "false", "no", "off", "none"}


@dataclass(frozen=True)
class PresetOptions:
    version: str
    coverage: bool = True
    lint: bool = True
    lint_tool: Optional[str] = None
    security: bool = True
    security_tool: Optional[str] = None
    release: bool = False
    matrix_versions: Tuple[str, ...] = ()
    branches: Tuple[str, ...] = DEFAULT_BRANCHES
    image: str = "app"
    registry: Optional[ContainerRegistry] = None
    dockerfile: str = "Dockerfile"
    context: str = "."

    @property
    def toolchain_version(self) -> str:
        return matrix_ref("version") if self.matrix_versions else self.version


@dataclass(frozen=True)
class PresetInfo:
    id: str
    name: str
    description: str
    language: Optional[Language]
    default_version: str
    build: Callable[[PresetOptions], Pipeline]
    options: Tuple[str, ...] = OPTIONS


def _bool(preset: str, option: str, value: Any) -> bool:
    if isinstance(value, bool):
        return value
    text = str(value).strip().lower()
    if text in _TRUE:
        return True
    if text in _FALSE:
        return False
    raise PresetError(preset, f"option '{option}' expects true/false, got {value!r}")


def _toggle(preset: str, option: str, value: Any) -> Tuple[bool, Optional[str]]:
    """`lint`/`security` take a boolean or a tool name (which implies enabled)."""
    if isinstance(value, bool):
        return value, None
    text = str(value).strip()
    if text.lower() in _TRUE | _FALSE:
        return _bool(preset, option, text), None
    if not text:
        raise PresetError(preset, f"option '{option}' is empty")
    return True, text


def _registry(preset: str, value: Any) -> Optional[ContainerRegistry]:
    text = str(value).strip().lower()
    if text in _FALSE:
        return None
    try:
        return ContainerRegistry(text)
    except ValueError:
        known = ", ".join(r.value for r in ContainerRegistry)
        raise PresetError(preset, f"option 'registry' expects one of {known} or none, got {value!r}") from None


def _csv(value: Any) -> Tuple[str, ...]:
    if isinstance(value, (list, tuple)):
        return tuple(str(v).strip() for v in value if str(v).strip())
    return tuple(v.strip() for v in str(value).split(",") if v.strip())


def parse_options(info: PresetInfo, overrides: Mapping[str, Any]) -> PresetOptions:
    unknown = [k for k in overrides if k not in info.options]
    if unknown:
        raise PresetError(
            info.id, f"unknown option(s) {', '.join(unknown)} (known: {', '.join(info.options)})"
        )

    kwargs: Dict[str, Any] = {"version": str(overrides.get("version", info.default_version))}
    if "coverage" in overrides:
        kwargs["coverage"] = _bool(info.id, "coverage", overrides["coverage"])
    if "lint" in overrides:
        kwargs["lint"], kwargs["lint_tool"] = _toggle(info.id, "lint", overrides["lint"])
    if "security" in overrides:
        kwargs["security"], kwargs["security_tool"] = _toggle(info.id, "security", overrides["security"])
    if "release" in overrides:
        kwargs["release"] = _bool(info.id, "release", overrides["release"])
    if "matrix_versions" in overrides:
        versions = _csv(overrides["matrix_versions"])
        if not versions:
            raise PresetError(info.id, "option 'matrix_versions' lists no versions")
        kwargs["matrix_versions"] = versions
    if "branches" in overrides:
        branches = _csv(overrides["branches"])
        if not branches:
            raise PresetError(info.id, "option 'branches' lists no branches")
        kwargs["branches"] = branches
    for option in ("image", "dockerfile", "context"):
        if option in overrides:
            text = str(overrides[option]).strip()
            if not text:
                raise PresetError(info.id, f"option '{option}' is empty")
            kwargs[option] = text
    if "registry" in overrides:
        kwargs["registry"] = _registry(info.id, overrides["registry"])
    return PresetOptions(**kwargs)


# ---------------------------------------------------------------------
# Shared job shapes
# ---------------------------------------------------------------------

def _triggers(opts: PresetOptions) -> list:
    triggers = [Push(opts.branches), PullRequest(opts.branches)]
    if opts.release:
        triggers.append(Tag(RELEASE_TAG))
    return triggers


def _setup(language: Language, opts: PresetOptions, *, matrix: bool = False) -> SetupToolchain:
    return SetupToolchain(language, opts.toolchain_version if matrix else opts.version)


def _test_job(language: Language, opts: PresetOptions, *, install: bool = True) -> Job:
    steps = [Checkout(), _setup(language, opts, matrix=True)]
    if install:
        steps.append(InstallDependencies(language))
    steps.append(RunTests(language, coverage=opts.coverage))
    return Job(
        name="test",
        steps=steps,
        matrix={"version": opts.matrix_versions} if opts.matrix_versions else None,
    )


def _lint_job(language: Language, opts: PresetOptions, extra: Tuple[str, ...] = (), *,
              install: bool = False) -> Optional[Job]:
    if not opts.lint:
        return None
    steps = [Checkout(), _setup(language, opts)]
    if install:
        steps.append(InstallDependencies(language))
    steps.append(RunLinter(language, opts.lint_tool))
    # companion checks only run with the default linter
    if opts.lint_tool is None:
        steps.extend(RunLinter(language, tool) for tool in extra)
    return Job(name="lint", steps=steps)


def _security_job(language: Language, opts: PresetOptions) -> Optional[Job]:
    if not opts.security:
        return None
    return Job(
        name="security",
        steps=[Checkout(), _setup(language, opts), SecurityScan(language, opts.security_tool)],
    )


def _gates(*jobs: Optional[Job]) -> Tuple[List[Job], List[str]]:
    present = [j for j in jobs if j is not None]
    return present, [j.name for j in present]


# ---------------------------------------------------------------------
# Presets
# ---------------------------------------------------------------------

def rust_library(opts: PresetOptions) -> Pipeline:
    jobs, gate = _gates(
        _test_job(Language.RUST, opts, install=False),
        _lint_job(Language.RUST, opts, ("rustfmt",)),
        _security_job(Language.RUST, opts),
    )
    if opts.release:
        jobs.append(Job(
            name="publish",
            steps=[
                Checkout(),
                _setup(Language.RUST, opts),
                PublishPackage(PackageRegistry.CRATES_IO, "CARGO_REGISTRY_TOKEN"),
            ],
            needs=gate,
            condition=Tag(RELEASE_TAG),
        ))
    return Pipeline(name="CI", jobs=jobs, triggers=_triggers(opts), env={"CARGO_TERM_COLOR": "always"})


def rust_binary(opts: PresetOptions) -> Pipeline:
    jobs, gate = _gates(
        _test_job(Language.RUST, opts, install=False),
        _lint_job(Language.RUST, opts, ("rustfmt",)),
        _security_job(Language.RUST, opts),
    )
    jobs.append(Job(
        name="build",
        steps=[
            Checkout(),
            _setup(Language.RUST, opts),
            Build(Language.RUST, release_mode=True),
            UploadArtifact("target/release/", "release-binary"),
        ],
        needs=gate,
    ))
    if opts.release:
        jobs.append(Job(
            name="release",
            steps=[Checkout(), PublishRelease(Tag(RELEASE_TAG))],
            needs=["build"],
        ))
    return Pipeline(name="CI", jobs=jobs, triggers=_triggers(opts), env={"CARGO_TERM_COLOR": "always"})


def python_app(opts: PresetOptions) -> Pipeline:
    jobs, gate = _gates(
        _test_job(Language.PYTHON, opts),
        _lint_job(Language.PYTHON, opts, ("mypy",), install=True),
        _security_job(Language.PYTHON, opts),
    )
    if opts.release:
        jobs.append(Job(
            name="publish",
            steps=[
                Checkout(),
                _setup(Language.PYTHON, opts),
                PublishPackage(PackageRegistry.PYPI, "PYPI_API_TOKEN"),
            ],
            needs=gate,
            condition=Tag(RELEASE_TAG),
        ))
    return Pipeline(name="CI", jobs=jobs, triggers=_triggers(opts))


def go_app(opts: PresetOptions) -> Pipeline:
    jobs, gate = _gates(
        _test_job(Language.GO, opts),
        _lint_job(Language.GO, opts),
        _security_job(Language.GO, opts),
    )
    jobs.append(Job(
        name="build",
        steps=[
            Checkout(),
            _setup(Language.GO, opts),
            InstallDependencies(Language.GO),
            Build(Language.GO, release_mode=True),
        ],
        needs=gate,
    ))
    if opts.release:
        jobs.append(Job(
            name="release",
            steps=[Checkout(), PublishRelease(Tag(RELEASE_TAG))],
            needs=["build"],
        ))
    return Pipeline(name="CI", jobs=jobs, triggers=_triggers(opts))


def docker_image(opts: PresetOptions) -> Pipeline:
    """Build the image on every change; push it from the default branches (or tags with release)."""
    image = BuildImage(opts.image, dockerfile=opts.dockerfile, context=opts.context)
    jobs = [Job(name="build", steps=[Checkout(), image])]
    if opts.registry is not None:
        jobs.append(Job(
            name="publish",
            steps=[
                Checkout(),
                BuildImage(opts.image, dockerfile=opts.dockerfile, context=opts.context,
                           push_to=opts.registry),
            ],
            needs=["build"],
            condition=Tag(RELEASE_TAG) if opts.release else Push(opts.branches),
        ))
    return Pipeline(name="CI", jobs=jobs, triggers=_triggers(opts))


PRESETS: Dict[str, PresetInfo] = {
    p.id: p
    for p in (
        PresetInfo(
            "rust-library", "Rust library",
            "Tests with coverage, clippy + rustfmt, cargo-audit; optional crates.io publish",
            Language.RUST, "stable", rust_library,
        ),
        PresetInfo(
            "rust-binary", "Rust binary",
            "Tests with coverage, clippy + rustfmt, cargo-audit, release build; optional GitHub/GitLab release",
            Language.RUST, "stable", rust_binary,
        ),
        PresetInfo(
            "python-app", "Python application",
            "pytest with coverage, ruff + mypy, pip-audit; optional PyPI publish",
            Language.PYTHON, "3.11", python_app,
        ),
        PresetInfo(
            "go-app", "Go application",
            "go test with coverage, golangci-lint, govulncheck, release build",
            Language.GO, "1.21", go_app,
        ),
        PresetInfo(
            "docker", "Docker image",
            "docker build on every change; optional push to Docker Hub or GHCR",
            None, "", docker_image, DOCKER_OPTIONS,
        ),
    )
}


def get_preset(name: str) -> PresetInfo:
    try:
        return PRESETS[name]
    except KeyError:
        raise PresetError(name, f"unknown preset (known: {', '.join(PRESETS)})") from None


def expand_preset(name: str, overrides: Mapping[str, Any] | None = None) -> Pipeline:
    """Build and validate the pipeline for preset `name` with option overrides."""
    info = get_preset(name)
    opts = parse_options(info, overrides or {})
    return validate_pipeline(info.build(opts))
