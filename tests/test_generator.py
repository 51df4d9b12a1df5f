import pytest

from crossci.errors import AdapterErrorKind, ValidationError, ValidationErrorKind
from crossci.generator import GenerationResult, Generator, write_outputs
from crossci.model import Checkout, Job, Pipeline
from crossci.platforms.base import GeneratedFile, Platform


def test_generate_single_platform(rust_pipeline, registry):
    out = Generator(registry).generate(rust_pipeline, Platform.GITLAB_CI)
    assert out.platform == "gitlab-ci"
    assert out.path == ".gitlab-ci.yml"


def test_generate_validates_first(registry):
    broken = Pipeline("CI", [Job("a", [Checkout()], needs=["missing"])])
    with pytest.raises(ValidationError) as exc:
        Generator(registry).generate(broken, "github-actions")
    assert exc.value.kind is ValidationErrorKind.UNKNOWN_DEPENDENCY_TARGET


def test_generate_many_defaults_to_every_platform(rust_pipeline, registry):
    results = Generator(registry).generate_many(rust_pipeline)
    assert [r.platform for r in results] == registry.platforms()
    assert all(r.ok for r in results)
    assert [r.file.path for r in results] == [
        ".github/workflows/ci.yml",
        ".gitlab-ci.yml",
        ".circleci/config.yml",
        "Jenkinsfile",
    ]


def test_generate_many_keeps_request_order_and_dedupes(rust_pipeline, registry):
    results = Generator(registry).generate_many(
        rust_pipeline, ["jenkins", "github-actions", "jenkins"], max_workers=1
    )
    assert [r.platform for r in results] == ["jenkins", "github-actions"]


def test_unknown_platform_is_a_failed_result(rust_pipeline, registry):
    results = Generator(registry).generate_many(rust_pipeline, ["travis", "circleci"])
    travis, circle = results
    assert not travis.ok
    assert travis.error.kind is AdapterErrorKind.UNKNOWN_PLATFORM
    assert circle.ok


def test_validation_error_aborts_everything(registry):
    cyclic = Pipeline("CI", [
        Job("a", [Checkout()], needs=["b"]),
        Job("b", [Checkout()], needs=["a"]),
    ])
    with pytest.raises(ValidationError) as exc:
        Generator(registry).generate_many(cyclic)
    assert exc.value.kind is ValidationErrorKind.CYCLIC_DEPENDENCY


def test_parallel_and_serial_generation_agree(rust_pipeline, registry):
    serial = Generator(registry, max_workers=1).generate_many(rust_pipeline)
    parallel = Generator(registry, max_workers=8).generate_many(rust_pipeline)
    assert serial == parallel


def _result(path, content="x: 1\n"):
    return GenerationResult("p", file=GeneratedFile("p", path, content))


def test_write_outputs_creates_directories(tmp_path):
    written = write_outputs([_result(".github/workflows/ci.yml")], tmp_path)
    assert written == [tmp_path / ".github" / "workflows" / "ci.yml"]
    assert written[0].read_text(encoding="utf-8") == "x: 1\n"


def test_write_outputs_skips_failed_results(tmp_path, rust_pipeline, registry):
    results = Generator(registry).generate_many(rust_pipeline, ["travis", "jenkins"])
    written = write_outputs(results, tmp_path)
    assert written == [tmp_path / "Jenkinsfile"]


def test_write_outputs_refuses_to_overwrite(tmp_path):
    (tmp_path / "Jenkinsfile").write_text("old", encoding="utf-8")
    results = [_result(".gitlab-ci.yml"), _result("Jenkinsfile")]

    with pytest.raises(FileExistsError, match="Jenkinsfile"):
        write_outputs(results, tmp_path)
    # nothing was written
    assert not (tmp_path / ".gitlab-ci.yml").exists()
    assert (tmp_path / "Jenkinsfile").read_text(encoding="utf-8") == "old"

    write_outputs(results, tmp_path, force=True)
    assert (tmp_path / "Jenkinsfile").read_text(encoding="utf-8") == "x: 1\n"
