# commands.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, Optional, Tuple

from .model import BuildImage, ContainerRegistry, Language, PackageRegistry

# ---------------------------------------------------------------------
# Shell vocabulary per language.
#
# Adapters decide the native construct (action, image, script line, sh
# step); this module only knows which commands perform an action for a
# given language/tool. Unknown tools raise UnknownToolError, which adapters
# report as an unsupported step.
# ---------------------------------------------------------------------

Commands = Tuple[str, ...]

# Scanner implemented natively by some platforms only (never a shell command).
CODEQL = "codeql"
CODEQL_LANGUAGES: Dict[Language, str] = {
    Language.PYTHON: "python",
    Language.GO: "go",
}


class UnknownToolError(LookupError):
    def __init__(self, action: str, language: Language, tool: str, known: Tuple[str, ...]):
        self.action = action
        self.language = language
        self.tool = tool
        self.known = known
        super().__init__(
            f"no {action} tool '{tool}' for {language.value} (known: {', '.join(known)})"
        )


@dataclass(frozen=True)
class CoverageRun:
    commands: Commands
    report_path: str
    report_format: str      # "cobertura" | "gocov"
    summary_regex: str      # matches the coverage summary line in the job log


@dataclass(frozen=True)
class PublishSpec:
    commands: Commands
    token_variable: str
    extra_env: Dict[str, str] = field(default_factory=dict)


@dataclass(frozen=True)
class ImageRegistrySpec:
    host: Optional[str]         # docker login server; None is Docker Hub
    username_variable: str
    password_variable: str


DEFAULT_MANAGER: Dict[Language, str] = {
    Language.RUST: "cargo",
    Language.PYTHON: "pip",
    Language.GO: "go",
}

INSTALL: Dict[Language, Dict[str, Commands]] = {
    Language.RUST: {
        "cargo": ("cargo fetch",),
    },
    Language.PYTHON: {
        "pip": ("python -m pip install --upgrade pip", "pip install -r requirements.txt"),
        "poetry": ("pip install poetry", "poetry install --no-interaction"),
        "uv": ("pip install uv", "uv sync"),
        "pipenv": ("pip install pipenv", "pipenv install --dev --deploy"),
    },
    Language.GO: {
        "go": ("go mod download",),
    },
}

TESTS: Dict[Language, Commands] = {
    Language.RUST: ("cargo test --all-features",),
    Language.PYTHON: ("pytest",),
    Language.GO: ("go test -v ./...",),
}

COVERAGE: Dict[Language, CoverageRun] = {
    Language.RUST: CoverageRun(
        commands=(
            "cargo install cargo-tarpaulin --locked",
            "cargo tarpaulin --all-features --workspace --out Xml",
        ),
        report_path="cobertura.xml",
        report_format="cobertura",
        summary_regex=r"^\d+\.\d+% coverage",
    ),
    Language.PYTHON: CoverageRun(
        commands=(
            "pip install pytest-cov",
            "pytest --cov --cov-report=xml --cov-report=term",
        ),
        report_path="coverage.xml",
        report_format="cobertura",
        summary_regex=r"TOTAL.*\s+(\d+%)$",
    ),
    Language.GO: CoverageRun(
        commands=("go test -v -coverprofile=coverage.out ./...",),
        report_path="coverage.out",
        report_format="gocov",
        summary_regex=r"coverage: \d+\.\d+% of statements",
    ),
}

DEFAULT_LINTER: Dict[Language, str] = {
    Language.RUST: "clippy",
    Language.PYTHON: "ruff",
    Language.GO: "golangci-lint",
}

LINTERS: Dict[Language, Dict[str, Commands]] = {
    Language.RUST: {
        "clippy": (
            "rustup component add clippy",
            "cargo clippy --all-targets --all-features -- -D warnings",
        ),
        "rustfmt": ("rustup component add rustfmt", "cargo fmt --all -- --check"),
    },
    Language.PYTHON: {
        "ruff": ("pip install ruff", "ruff check ."),
        "flake8": ("pip install flake8", "flake8 ."),
        "black": ("pip install black", "black --check ."),
        "mypy": ("pip install mypy", "mypy ."),
        "pylint": ("pip install pylint", "pylint **/*.py"),
    },
    Language.GO: {
        "golangci-lint": (
            "go install github.com/golangci/golangci-lint/cmd/golangci-lint@latest",
            "golangci-lint run",
        ),
        "gofmt": ('test -z "$(gofmt -l .)"',),
        "go-vet": ("go vet ./...",),
    },
}

DEFAULT_SCANNER: Dict[Language, str] = {
    Language.RUST: "cargo-audit",
    Language.PYTHON: "pip-audit",
    Language.GO: "govulncheck",
}

SCANNERS: Dict[Language, Dict[str, Commands]] = {
    Language.RUST: {
        "cargo-audit": ("cargo install cargo-audit --locked", "cargo audit"),
        "cargo-deny": ("cargo install cargo-deny --locked", "cargo deny check"),
    },
    Language.PYTHON: {
        "pip-audit": ("pip install pip-audit", "pip-audit"),
        "bandit": ("pip install bandit", "bandit -r ."),
        "safety": ("pip install safety", "safety check"),
    },
    Language.GO: {
        "govulncheck": (
            "go install golang.org/x/vuln/cmd/govulncheck@latest",
            "govulncheck ./...",
        ),
        "gosec": (
            "go install github.com/securego/gosec/v2/cmd/gosec@latest",
            "gosec ./...",
        ),
    },
}

# (debug, release)
BUILD: Dict[Language, Tuple[Commands, Commands]] = {
    Language.RUST: (("cargo build",), ("cargo build --release",)),
    Language.PYTHON: (
        ("pip install build", "python -m build"),
        ("pip install build", "python -m build"),
    ),
    Language.GO: (("go build -v ./...",), ('go build -v -trimpath -ldflags="-s -w" ./...',)),
}

PUBLISH: Dict[PackageRegistry, PublishSpec] = {
    PackageRegistry.CRATES_IO: PublishSpec(("cargo publish",), "CARGO_REGISTRY_TOKEN"),
    PackageRegistry.PYPI: PublishSpec(
        ("pip install build twine", "python -m build", "twine upload dist/*"),
        "TWINE_PASSWORD",
        {"TWINE_USERNAME": "__token__"},
    ),
    PackageRegistry.NPM: PublishSpec(("npm publish",), "NODE_AUTH_TOKEN"),
}

IMAGE_REGISTRIES: Dict[ContainerRegistry, ImageRegistrySpec] = {
    ContainerRegistry.DOCKER_HUB: ImageRegistrySpec(None, "DOCKER_USERNAME", "DOCKER_PASSWORD"),
    ContainerRegistry.GHCR: ImageRegistrySpec("ghcr.io", "GHCR_USERNAME", "GHCR_TOKEN"),
}


def _lookup(action: str, table: Dict[str, Commands], language: Language, tool: str) -> Commands:
    try:
        return table[tool]
    except KeyError:
        raise UnknownToolError(action, language, tool, tuple(table)) from None


def resolve_manager(language: Language, manager_hint: Optional[str]) -> str:
    return manager_hint or DEFAULT_MANAGER[language]


def resolve_linter(language: Language, tool_hint: Optional[str]) -> str:
    return tool_hint or DEFAULT_LINTER[language]


def resolve_scanner(language: Language, tool_hint: Optional[str]) -> str:
    return tool_hint or DEFAULT_SCANNER[language]


def install_commands(language: Language, manager_hint: Optional[str] = None) -> Commands:
    return _lookup("dependency manager", INSTALL[language], language, resolve_manager(language, manager_hint))


def testing_commands(language: Language) -> Commands:
    return TESTS[language]


def coverage_run(language: Language) -> CoverageRun:
    return COVERAGE[language]


def lint_commands(language: Language, tool_hint: Optional[str] = None) -> Commands:
    return _lookup("lint", LINTERS[language], language, resolve_linter(language, tool_hint))


def scan_commands(language: Language, tool_hint: Optional[str] = None) -> Commands:
    return _lookup("security scan", SCANNERS[language], language, resolve_scanner(language, tool_hint))


def build_commands(language: Language, release_mode: bool = False) -> Commands:
    debug, release = BUILD[language]
    return release if release_mode else debug


def publish_spec(registry: PackageRegistry) -> PublishSpec:
    return PUBLISH[registry]


def image_registry(registry: ContainerRegistry) -> ImageRegistrySpec:
    return IMAGE_REGISTRIES[registry]


def image_name(step: BuildImage) -> str:
    """Fully qualified image name (registry host prefix for anything but Docker Hub)."""
    if step.push_to is None:
        return step.image
    host = IMAGE_REGISTRIES[step.push_to].host
    return f"{host}/{step.image}" if host else step.image


def image_build_command(step: BuildImage, revision: str) -> str:
    """`revision` is the platform's commit variable (e.g. "$CI_COMMIT_SHA")."""
    name = image_name(step)
    return f"docker build -f {step.dockerfile} -t {name}:{revision} -t {name}:latest {step.context}"


def image_push_commands(step: BuildImage, revision: str) -> Commands:
    """Login and push of both tags; empty when the step only builds."""
    if step.push_to is None:
        return ()
    spec = IMAGE_REGISTRIES[step.push_to]
    name = image_name(step)
    login = f'echo "${spec.password_variable}" | docker login -u "${spec.username_variable}" --password-stdin'
    if spec.host:
        login = f"{login} {spec.host}"
    return (login, f"docker push {name}:{revision}", f"docker push {name}:latest")


def image_commands(step: BuildImage, revision: str) -> Commands:
    """docker build tagged with the commit and `latest`, then login and push when the step pushes."""
    return (image_build_command(step, revision), *image_push_commands(step, revision))
