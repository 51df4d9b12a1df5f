import pytest

from crossci.errors import PresetError
from crossci.generator import Generator
from crossci.model import (
    Build,
    BuildImage,
    Checkout,
    ContainerRegistry,
    PackageRegistry,
    PublishPackage,
    PublishRelease,
    Push,
    RunLinter,
    RunTests,
    SecurityScan,
    SetupToolchain,
    Tag,
)
from crossci.presets import PRESETS, expand_preset, get_preset


def _kinds(job):
    return [s.kind for s in job.steps]


def test_known_presets():
    assert list(PRESETS) == ["rust-library", "rust-binary", "python-app", "go-app", "docker"]


def test_unknown_preset():
    with pytest.raises(PresetError, match="unknown preset"):
        get_preset("java-app")


@pytest.mark.parametrize("name", list(PRESETS))
def test_default_presets_generate_everywhere(name, registry):
    results = Generator(registry).generate_many(expand_preset(name))
    assert [r.platform for r in results if not r.ok] == []


def test_rust_library_defaults():
    p = expand_preset("rust-library")
    assert p.job_names == ["test", "lint", "security"]
    assert p.env["CARGO_TERM_COLOR"] == "always"
    assert p.triggers[0].branches == ("main", "master")

    test = p.job("test")
    assert _kinds(test) == ["checkout", "setup_toolchain", "run_tests"]
    assert test.steps[1] == SetupToolchain("rust", "stable")
    assert test.steps[2] == RunTests("rust", coverage=True)
    assert [s.tool_hint for s in p.job("lint").steps if isinstance(s, RunLinter)] == [None, "rustfmt"]


def test_rust_library_release_publishes_to_crates_io():
    p = expand_preset("rust-library", {"release": "yes"})
    publish = p.job("publish")
    assert publish.needs == ("test", "lint", "security")
    assert publish.condition == Tag("v*")
    assert publish.steps[-1] == PublishPackage(PackageRegistry.CRATES_IO, "CARGO_REGISTRY_TOKEN")
    assert Tag("v*") in p.triggers


def test_rust_binary_builds_and_releases():
    p = expand_preset("rust-binary", {"release": True})
    assert p.job_names == ["test", "lint", "security", "build", "release"]
    assert Build("rust", release_mode=True) in p.job("build").steps
    assert p.job("release").needs == ("build",)
    assert isinstance(p.job("release").steps[-1], PublishRelease)


def test_release_presets_fail_only_where_releases_are_unsupported(registry):
    results = Generator(registry).generate_many(expand_preset("rust-binary", {"release": "true"}))
    failed = {r.platform for r in results if not r.ok}
    assert failed == {"circleci", "jenkins"}


def test_python_app_options():
    p = expand_preset("python-app", {
        "version": "3.12",
        "coverage": "false",
        "lint": "flake8",
        "security": "off",
        "branches": "develop, main",
    })
    assert p.job_names == ["test", "lint"]
    assert p.job("test").steps[-1] == RunTests("python", coverage=False)
    assert p.job("test").steps[1] == SetupToolchain("python", "3.12")
    # a custom linter drops the companion checks
    assert [s.tool_hint for s in p.job("lint").steps if isinstance(s, RunLinter)] == ["flake8"]
    assert p.triggers[0].branches == ("develop", "main")


def test_matrix_versions_build_a_test_matrix():
    p = expand_preset("python-app", {"matrix_versions": "3.11,3.12"})
    test = p.job("test")
    assert test.matrix.as_dict() == {"version": ["3.11", "3.12"]}
    assert test.steps[1] == SetupToolchain("python", "{matrix.version}")
    # other jobs stay on the single version
    assert p.job("lint").steps[1] == SetupToolchain("python", "3.11")


def test_go_app_security_tool_override():
    p = expand_preset("go-app", {"security": "gosec"})
    assert p.job("security").steps[-1] == SecurityScan("go", "gosec")
    assert p.job("build").needs == ("test", "lint", "security")


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"colour": "red"}, "unknown option"),
        ({"coverage": "maybe"}, "expects true/false"),
        ({"matrix_versions": " , "}, "lists no versions"),
        ({"branches": ""}, "lists no branches"),
        ({"lint": "  "}, "is empty"),
    ],
)
def test_bad_options(overrides, message):
    with pytest.raises(PresetError, match=message):
        expand_preset("python-app", overrides)


def test_docker_builds_without_pushing_by_default():
    p = expand_preset("docker")
    assert p.job_names == ["build"]
    assert p.job("build").steps == (Checkout(), BuildImage("app"))
    assert [t.kind for t in p.triggers] == ["push", "pull_request"]


def test_docker_publish_to_ghcr():
    p = expand_preset("docker", {"image": "acme/web", "registry": "ghcr", "dockerfile": "docker/Dockerfile"})
    publish = p.job("publish")
    assert publish.needs == ("build",)
    assert publish.condition == Push(("main", "master"))
    assert publish.steps[-1] == BuildImage(
        "acme/web", dockerfile="docker/Dockerfile", push_to=ContainerRegistry.GHCR
    )


def test_docker_release_publishes_tags():
    p = expand_preset("docker", {"registry": "docker-hub", "release": "true"})
    assert p.job("publish").condition == Tag("v*")
    assert Tag("v*") in p.triggers


def test_docker_registry_none_skips_publish():
    assert expand_preset("docker", {"registry": "none"}).job_names == ["build"]


@pytest.mark.parametrize(
    "overrides, message",
    [
        ({"registry": "quay"}, "expects one of docker-hub, ghcr or none"),
        ({"version": "3.12"}, "unknown option"),
        ({"image": " "}, "is empty"),
    ],
)
def test_bad_docker_options(overrides, message):
    with pytest.raises(PresetError, match=message):
        expand_preset("docker", overrides)


def test_docker_options_are_rejected_elsewhere():
    with pytest.raises(PresetError, match="unknown option"):
        expand_preset("go-app", {"registry": "ghcr"})


@pytest.mark.parametrize("name", ["docker-hub", "ghcr"])
def test_docker_publish_generates_everywhere(name, registry):
    results = Generator(registry).generate_many(expand_preset("docker", {"registry": name}))
    assert [r.platform for r in results if not r.ok] == []
