import pytest

from crossci.model import (
    Build,
    Checkout,
    Job,
    Language,
    Pipeline,
    PullRequest,
    Push,
    RunLinter,
    RunTests,
    SetupToolchain,
    UploadArtifact,
    matrix_ref,
)
from crossci.registry import default_registry


@pytest.fixture
def registry():
    return default_registry()


@pytest.fixture
def rust_pipeline():
    setup = SetupToolchain(Language.RUST, "stable")
    return Pipeline(
        name="CI",
        triggers=[Push(["main"]), PullRequest(["main"])],
        jobs=[
            Job("test", [Checkout(), setup, RunTests(Language.RUST, coverage=True)]),
            Job("lint", [Checkout(), setup, RunLinter(Language.RUST)]),
            Job(
                "build",
                [
                    Checkout(),
                    setup,
                    Build(Language.RUST, release_mode=True),
                    UploadArtifact("target/release/app", "app"),
                ],
                needs=["test", "lint"],
            ),
        ],
    )


@pytest.fixture
def matrix_pipeline():
    return Pipeline(
        name="CI",
        triggers=[Push(["main"])],
        jobs=[
            Job(
                "job",
                [
                    Checkout(),
                    SetupToolchain(Language.RUST, matrix_ref("toolchain")),
                    RunTests(Language.RUST),
                ],
                matrix={"os": ["linux", "macos"], "toolchain": ["stable", "nightly"]},
            ),
            Job("report", [Checkout()], needs=["job"]),
        ],
    )
