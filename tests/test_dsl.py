import pytest

from crossci import dsl
from crossci.model import (
    Build,
    BuildImage,
    Cache,
    Checkout,
    ContainerRegistry,
    Matrix,
    PackageRegistry,
    PublishPackage,
    PublishRelease,
    PullRequest,
    Push,
    RunCommand,
    RunTests,
    Schedule,
    Tag,
    UploadArtifact,
)


def test_step_helpers():
    assert dsl.checkout() == Checkout()
    assert dsl.test("rust", coverage=True) == RunTests("rust", True)
    assert dsl.build("go", release=True) == Build("go", True)
    assert dsl.cache("deps", "~/.cargo", "target") == Cache("deps", ("~/.cargo", "target"))
    assert dsl.publish("pypi", "PYPI_TOKEN") == PublishPackage(PackageRegistry.PYPI, "PYPI_TOKEN")
    assert dsl.image("acme/app", push_to="ghcr") == BuildImage("acme/app", push_to=ContainerRegistry.GHCR)


def test_upload_name_defaults_to_basename():
    assert dsl.upload("target/release/") == UploadArtifact("target/release/", "release")
    assert dsl.upload("dist/app.whl", "wheel").name == "wheel"


def test_release_defaults_to_tag():
    assert dsl.release("dist/app") == PublishRelease(Tag(), ("dist/app",))
    assert dsl.release(on=dsl.on_tag("release-*")).condition == Tag("release-*")


def test_triggers():
    assert dsl.on_push("main") == Push(("main",))
    assert dsl.on_pull_request() == PullRequest()
    assert dsl.on_schedule("0 0 * * 0") == Schedule("0 0 * * 0")


def test_job_collects_steps_and_applies_cwd():
    j = dsl.job(
        "docs",
        dsl.sh("build", "make html"),
        dsl.sh("lint", "make lint", cwd="tools"),
        steps_list=[dsl.checkout()],
        needs=["test"],
        cwd="docs",
    )
    assert j.steps == (
        Checkout(),
        RunCommand("build", "make html", "docs"),
        RunCommand("lint", "make lint", "tools"),
    )
    assert j.needs == ("test",)


def test_job_requires_steps():
    with pytest.raises(ValueError, match="at least one step"):
        dsl.job("empty")


def test_matrix_keeps_argument_order():
    m = dsl.matrix(os=["linux", "macos"], toolchain=["stable"])
    assert m == Matrix((("os", ("linux", "macos")), ("toolchain", ("stable",))))
    j = dsl.job("t", dsl.checkout(), matrix=m, runner=dsl.matrix_ref("os"))
    assert j.runner == "{matrix.os}"


def test_builder():
    j = (
        dsl.builder("deploy")
        .depends_on("test", "lint")
        .step(dsl.checkout())
        .define_step("deploy", "make deploy", cwd="ops")
        .with_env(RETRIES=3)
        .with_matrix(region=["eu", "us"])
        .runs_on("self-hosted")
        .only_when(dsl.on_push("main"))
        .build()
    )
    assert j.needs == ("test", "lint")
    assert j.steps[-1] == RunCommand("deploy", "make deploy", "ops")
    assert j.env["RETRIES"] == "3"
    assert j.matrix.values("region") == ("eu", "us")
    assert j.runner == "self-hosted"
    assert j.condition == Push(("main",))


def test_builder_requires_steps():
    with pytest.raises(ValueError, match="has no steps"):
        dsl.JobBuilder("empty").build()


def test_pipeline_helper():
    p = dsl.pipeline("CI", dsl.job("a", dsl.checkout()), triggers=[dsl.on_manual()], env={"A": "1"})
    assert p.job_names == ["a"]
    assert p.env["A"] == "1"
    assert len(p.triggers) == 1
