import pytest
import yaml

from crossci.errors import AdapterError, AdapterErrorKind
from crossci.model import (
    BuildImage,
    Cache,
    Checkout,
    ContainerRegistry,
    Job,
    Language,
    PackageRegistry,
    Pipeline,
    PublishPackage,
    PublishRelease,
    PullRequest,
    Push,
    RunCommand,
    RunTests,
    Schedule,
    SetupToolchain,
    Tag,
    UploadArtifact,
)
from crossci.platforms.gitlab import GitLabCIAdapter


def _generate(pipeline):
    out = GitLabCIAdapter().generate(pipeline)
    return out, yaml.safe_load(out.content)


def _error(pipeline):
    with pytest.raises(AdapterError) as exc:
        GitLabCIAdapter().generate(pipeline)
    return exc.value


def test_stages_follow_dependency_levels(rust_pipeline):
    out, doc = _generate(rust_pipeline)
    assert out.path == ".gitlab-ci.yml"
    assert doc["stages"] == ["stage-1", "stage-2"]
    assert doc["test"]["stage"] == "stage-1"
    assert doc["lint"]["stage"] == "stage-1"
    assert doc["build"]["stage"] == "stage-2"
    assert doc["test"]["needs"] == []
    assert doc["build"]["needs"] == ["test", "lint"]


def test_workflow_rules_from_triggers(rust_pipeline):
    _, doc = _generate(rust_pipeline)
    assert doc["workflow"]["rules"] == [
        {"if": '$CI_PIPELINE_SOURCE == "push" && $CI_COMMIT_BRANCH == "main"'},
        {"if": '$CI_PIPELINE_SOURCE == "merge_request_event" && $CI_MERGE_REQUEST_TARGET_BRANCH_NAME == "main"'},
    ]


def test_toolchain_becomes_image_and_coverage_is_reported(rust_pipeline):
    _, doc = _generate(rust_pipeline)
    test = doc["test"]
    assert test["image"] == "rust:latest"
    assert test["script"] == [
        "cargo install cargo-tarpaulin --locked",
        "cargo tarpaulin --all-features --workspace --out Xml",
    ]
    assert test["coverage"] == r"/^\d+\.\d+% coverage/"
    assert test["artifacts"]["reports"] == {
        "coverage_report": {"coverage_format": "cobertura", "path": "cobertura.xml"}
    }


def test_go_coverage_is_converted_to_cobertura():
    job = Job("test", [SetupToolchain(Language.GO, "1.22"), RunTests(Language.GO, coverage=True)])
    _, doc = _generate(Pipeline("CI", [job]))
    assert doc["test"]["image"] == "golang:1.22"
    assert doc["test"]["script"][-1] == "gocover-cobertura < coverage.out > coverage.xml"
    assert doc["test"]["artifacts"]["reports"]["coverage_report"]["path"] == "coverage.xml"


def test_upload_becomes_artifacts(rust_pipeline):
    _, doc = _generate(rust_pipeline)
    assert doc["build"]["artifacts"] == {"name": "app", "paths": ["target/release/app"]}


def test_matrix_is_expanded_into_named_jobs(matrix_pipeline):
    _, doc = _generate(matrix_pipeline)
    expected = ["job-linux-stable", "job-linux-nightly", "job-macos-stable", "job-macos-nightly"]
    assert [k for k in doc if k.startswith("job-")] == expected
    assert doc["job-linux-stable"]["image"] == "rust:latest"
    assert doc["job-linux-nightly"]["image"] == "rustlang/rust:nightly"
    # dependants wait for every variant
    assert doc["report"]["needs"] == expected
    assert doc["report"]["stage"] == "stage-2"


def test_expanded_name_collision():
    p = Pipeline("CI", [
        Job("t", [Checkout()], matrix={"v": ["1"]}),
        Job("t-1", [Checkout()]),
    ])
    err = _error(p)
    assert err.kind is AdapterErrorKind.MALFORMED_MATRIX
    assert err.job == "t"


def test_checkout_only_job_still_has_a_script():
    _, doc = _generate(Pipeline("CI", [Job("noop", [Checkout()])]))
    assert doc["noop"]["script"] == ['echo "noop: nothing to run"']


def test_guarded_dependency_is_optional_need():
    p = Pipeline("CI", [
        Job("deploy", [RunCommand("deploy", "make deploy")], condition=Push(["main"])),
        Job("notify", [RunCommand("notify", "make notify")], needs=["deploy"]),
    ])
    _, doc = _generate(p)
    assert doc["deploy"]["rules"] == [
        {"if": '$CI_PIPELINE_SOURCE == "push" && $CI_COMMIT_BRANCH == "main"'}
    ]
    assert doc["notify"]["needs"] == [{"job": "deploy", "optional": True}]


def test_branch_globs_become_regex():
    p = Pipeline("CI", [Job("a", [Checkout()])], triggers=[Push(["release/*"])])
    _, doc = _generate(p)
    assert doc["workflow"]["rules"] == [
        {"if": '$CI_PIPELINE_SOURCE == "push" && $CI_COMMIT_BRANCH =~ /^release\\/.*$/'}
    ]


def test_schedule_trigger_is_unsupported():
    p = Pipeline("CI", [Job("a", [Checkout()])], triggers=[Schedule("0 0 * * *")])
    err = _error(p)
    assert err.kind is AdapterErrorKind.UNSUPPORTED_CONDITION
    assert err.details["condition"] == "schedule"


def test_release_job_uses_release_keyword():
    job = Job("release", [Checkout(), PublishRelease(Tag("v*"), ["dist/app"])])
    _, doc = _generate(Pipeline("CI", [job]))
    rel = doc["release"]
    assert rel["image"] == "registry.gitlab.com/gitlab-org/release-cli:latest"
    assert rel["rules"] == [{"if": "$CI_COMMIT_TAG =~ /^v.*$/"}]
    assert rel["release"]["tag_name"] == "$CI_COMMIT_TAG"
    assert rel["release"]["assets"]["links"] == [
        {"name": "dist/app", "url": "$CI_PROJECT_URL/-/jobs/$CI_JOB_ID/artifacts/raw/dist/app"}
    ]
    assert rel["artifacts"]["paths"] == ["dist/app"]


def test_release_mixed_with_other_actions_is_unsupported():
    job = Job("ship", [Checkout(), RunCommand("x", "make"), PublishRelease()])
    err = _error(Pipeline("CI", [job]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_STEP
    assert err.job == "ship"
    assert err.step_index == 2


def test_release_on_non_tag_condition_is_unsupported():
    job = Job("ship", [PublishRelease(PullRequest())])
    err = _error(Pipeline("CI", [job]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_CONDITION


def test_docker_image_on_macos_runner_is_unsupported():
    job = Job("mac", [SetupToolchain(Language.PYTHON, "3.12")], runner="macos")
    err = _error(Pipeline("CI", [job]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_RUNNER


def test_custom_runner_becomes_tag():
    job = Job("gpu", [RunCommand("nvidia", "nvidia-smi")], runner="gpu")
    _, doc = _generate(Pipeline("CI", [job]))
    assert doc["gpu"]["tags"] == ["gpu"]


def test_two_toolchain_images_in_one_job():
    job = Job("mixed", [SetupToolchain(Language.PYTHON, "3.12"), SetupToolchain(Language.GO, "1.22")])
    err = _error(Pipeline("CI", [job]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_STEP
    assert err.step_index == 1


def test_reserved_job_name():
    err = _error(Pipeline("CI", [Job("variables", [Checkout()])]))
    assert err.kind is AdapterErrorKind.INVALID_JOB_NAME
    assert err.job == "variables"
    assert err.step_index is None


def test_working_dir_and_multiple_uploads():
    job = Job("docs", [
        RunCommand("build", "make html", "docs"),
        UploadArtifact("docs/_build", "html"),
        UploadArtifact("docs/pdf", "pdf"),
    ])
    _, doc = _generate(Pipeline("CI", [job]))
    assert doc["docs"]["script"] == ['cd "docs"', "make html", 'cd "$CI_PROJECT_DIR"']
    assert doc["docs"]["artifacts"] == {"name": "$CI_JOB_NAME", "paths": ["docs/_build", "docs/pdf"]}


def test_cache_and_publish_variables():
    job = Job("pub", [
        Cache("pip", ["~/.cache/pip"]),
        PublishPackage(PackageRegistry.PYPI, "PYPI_API_TOKEN"),
    ])
    _, doc = _generate(Pipeline("CI", [job]))
    assert doc["pub"]["cache"] == [{"key": "pip", "paths": ["~/.cache/pip"]}]
    assert doc["pub"]["variables"] == {
        "TWINE_USERNAME": "__token__",
        "TWINE_PASSWORD": "$PYPI_API_TOKEN",
    }


def test_cache_without_paths_is_unsupported():
    err = _error(Pipeline("CI", [Job("c", [Cache("k")])]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_STEP


def test_build_image_uses_docker_in_docker():
    step = BuildImage("acme/app", dockerfile="docker/Dockerfile", push_to=ContainerRegistry.DOCKER_HUB)
    _, doc = _generate(Pipeline("CI", [Job("image", [Checkout(), step])]))
    job = doc["image"]
    assert job["image"] == "docker:27"
    assert job["services"] == ["docker:27-dind"]
    assert job["variables"]["DOCKER_TLS_CERTDIR"] == "/certs"
    assert job["script"] == [
        "docker build -f docker/Dockerfile -t acme/app:$CI_COMMIT_SHA -t acme/app:latest .",
        'echo "$DOCKER_PASSWORD" | docker login -u "$DOCKER_USERNAME" --password-stdin',
        "docker push acme/app:$CI_COMMIT_SHA",
        "docker push acme/app:latest",
    ]


def test_build_image_conflicts_with_toolchain_image():
    job = Job("image", [SetupToolchain(Language.GO, "1.22"), BuildImage("acme/app")])
    err = _error(Pipeline("CI", [job]))
    assert err.kind is AdapterErrorKind.UNSUPPORTED_STEP
    assert err.step_index == 1
