import textwrap

import pytest
from click.testing import CliRunner

from crossci.cli import cli

WORKFLOW = """\
from crossci import dsl

PIPELINE = dsl.pipeline(
    "CI",
    dsl.job("test", dsl.checkout(), dsl.sh("unit", "make test")),
    dsl.job("release", dsl.checkout(), dsl.release(), needs=["test"]),
    triggers=[dsl.on_push("main"), dsl.on_tag()],
)
"""


@pytest.fixture
def runner(monkeypatch):
    for var in ("CROSSCI_PLATFORMS", "CROSSCI_MAX_WORKERS", "CROSSCI_OUTPUT_DIR", "CROSSCI_DEFAULT_BRANCHES"):
        monkeypatch.delenv(var, raising=False)
    return CliRunner()


def test_generate_preset_writes_every_platform(runner, tmp_path):
    result = runner.invoke(cli, ["generate", "--preset", "python-app", "-o", str(tmp_path)])
    assert result.exit_code == 0, result.output
    assert "RESULTS" in result.output
    assert "PLATFORM gitlab-ci: ok (wrote" in result.output
    for path in (".github/workflows/ci.yml", ".gitlab-ci.yml", ".circleci/config.yml", "Jenkinsfile"):
        assert (tmp_path / path).is_file()


def test_generate_dry_run_prints_files(runner, tmp_path):
    result = runner.invoke(
        cli,
        ["generate", "--preset", "go-app", "--platform", "github-actions", "--dry-run", "-o", str(tmp_path)],
    )
    assert result.exit_code == 0, result.output
    assert "# ---- .github/workflows/ci.yml ----" in result.output
    assert "would write" in result.output
    assert not (tmp_path / ".github").exists()


def test_generate_with_overrides_and_comma_platforms(runner, tmp_path):
    result = runner.invoke(cli, [
        "generate", "--preset", "rust-library",
        "--set", "version=1.75", "--set", "security=false",
        "--platform", "gitlab-ci,jenkins", "-o", str(tmp_path),
    ])
    assert result.exit_code == 0, result.output
    gitlab = (tmp_path / ".gitlab-ci.yml").read_text(encoding="utf-8")
    assert "rust:1.75" in gitlab
    assert "cargo audit" not in gitlab
    assert not (tmp_path / ".circleci").exists()


def test_generate_refuses_to_overwrite(runner, tmp_path):
    args = ["generate", "--preset", "go-app", "--platform", "jenkins", "-o", str(tmp_path)]
    assert runner.invoke(cli, args).exit_code == 0
    result = runner.invoke(cli, args)
    assert result.exit_code == 1
    assert "--force" in result.output
    assert runner.invoke(cli, args + ["--force"]).exit_code == 0


def test_generate_reports_failing_platform(runner, tmp_path):
    config = tmp_path / "workflow.py"
    config.write_text(WORKFLOW, encoding="utf-8")
    out = tmp_path / "out"
    result = runner.invoke(cli, [
        "generate", "--config", str(config), "--platform", "github-actions,jenkins", "-o", str(out),
    ])
    assert result.exit_code == 1
    assert "PLATFORM github-actions: ok" in result.output
    assert "PLATFORM jenkins: FAILED" in result.output
    assert "job=release" in result.output
    assert "jenkins: FAILED" in result.output
    # the supported platform is still written
    assert (out / ".github" / "workflows" / "ci.yml").is_file()
    assert not (out / "Jenkinsfile").exists()


def test_debug_prints_traceback_for_failed_platform(runner, tmp_path):
    config = tmp_path / "workflow.py"
    config.write_text(WORKFLOW, encoding="utf-8")
    args = ["generate", "--config", str(config), "--platform", "jenkins", "--dry-run"]

    quiet = runner.invoke(cli, args)
    assert quiet.exit_code == 1
    assert "Traceback" not in quiet.output

    loud = runner.invoke(cli, ["--debug", *args])
    assert loud.exit_code == 1
    assert "PLATFORM jenkins: FAILED" in loud.output
    assert "Traceback (most recent call last)" in loud.output
    assert "AdapterError" in loud.output


def test_generate_unknown_platform(runner, tmp_path):
    result = runner.invoke(cli, ["generate", "--preset", "go-app", "--platform", "travis", "-o", str(tmp_path)])
    assert result.exit_code == 1
    assert "unknown_platform" in result.output


def test_generate_bad_preset_option(runner, tmp_path):
    result = runner.invoke(cli, ["generate", "--preset", "go-app", "--set", "colour=red", "-o", str(tmp_path)])
    assert result.exit_code == 1
    assert "unknown option" in result.output


def test_generate_bad_set_syntax(runner):
    result = runner.invoke(cli, ["generate", "--preset", "go-app", "--set", "nonsense"])
    assert result.exit_code == 2
    assert "KEY=VALUE" in result.output


def test_preset_and_config_are_exclusive(runner, tmp_path):
    result = runner.invoke(cli, ["generate", "--preset", "go-app", "--config", str(tmp_path / "x.yml")])
    assert result.exit_code == 2
    assert "mutually exclusive" in result.output


def test_generate_detects_project(runner, tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        with open("go.mod", "w", encoding="utf-8") as f:
            f.write("module example.com/x\n\ngo 1.22\n")
        result = runner.invoke(cli, ["generate", "--platform", "gitlab-ci"])
        assert result.exit_code == 0, result.output
        assert "detected preset go-app" in result.output
        with open(".gitlab-ci.yml", encoding="utf-8") as f:
            assert "golang:1.22" in f.read()


def test_generate_detects_dockerfile(runner, tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        with open("Dockerfile.prod", "w", encoding="utf-8") as f:
            f.write("FROM python:3.12-slim\n")
        result = runner.invoke(cli, ["generate", "--platform", "gitlab-ci", "--set", "image=acme/web"])
        assert result.exit_code == 0, result.output
        assert "detected preset docker" in result.output
        with open(".gitlab-ci.yml", encoding="utf-8") as f:
            assert "docker build -f Dockerfile.prod -t acme/web:$CI_COMMIT_SHA -t acme/web:latest ." in f.read()


def test_generate_without_source(runner, tmp_path):
    with runner.isolated_filesystem(temp_dir=tmp_path):
        result = runner.invoke(cli, ["generate"])
    assert result.exit_code == 2
    assert "no pipeline source" in result.output


def test_invalid_settings_exit_2(runner, monkeypatch):
    monkeypatch.setenv("CROSSCI_MAX_WORKERS", "zero")
    result = runner.invoke(cli, ["presets"])
    assert result.exit_code == 2
    assert "CROSSCI_MAX_WORKERS" in result.output


def test_settings_pick_platforms_and_output(runner, monkeypatch, tmp_path):
    monkeypatch.setenv("CROSSCI_PLATFORMS", "circleci")
    monkeypatch.setenv("CROSSCI_OUTPUT_DIR", str(tmp_path))
    result = runner.invoke(cli, ["generate", "--preset", "python-app"])
    assert result.exit_code == 0, result.output
    assert (tmp_path / ".circleci" / "config.yml").is_file()
    assert not (tmp_path / "Jenkinsfile").exists()


def test_validate_command(runner, tmp_path):
    config = tmp_path / "ci.yml"
    config.write_text(textwrap.dedent("""\
        jobs:
          - name: test
            steps: [{type: checkout}]
          - name: build
            needs: [test]
            steps: [{type: checkout}]
    """), encoding="utf-8")
    result = runner.invoke(cli, ["validate", "--config", str(config)])
    assert result.exit_code == 0, result.output
    assert "Pipeline 'CI' is valid (2 jobs)" in result.output
    assert "stage 2: build" in result.output


def test_validate_reports_cycle(runner, tmp_path):
    config = tmp_path / "ci.yml"
    config.write_text(textwrap.dedent("""\
        jobs:
          - name: a
            needs: [b]
            steps: [{type: checkout}]
          - name: b
            needs: [a]
            steps: [{type: checkout}]
    """), encoding="utf-8")
    result = runner.invoke(cli, ["validate", "--config", str(config)])
    assert result.exit_code == 1
    assert "cyclic_dependency" in result.output


def test_list_commands(runner):
    presets = runner.invoke(cli, ["presets"])
    assert presets.exit_code == 0
    assert "rust-library" in presets.output
    platforms = runner.invoke(cli, ["platforms"])
    assert platforms.exit_code == 0
    assert "matrix expanded into jobs" in platforms.output
    assert "circleci" in platforms.output


def test_detect_command(runner, tmp_path):
    (tmp_path / "requirements.txt").write_text("flask\n", encoding="utf-8")
    result = runner.invoke(cli, ["detect", str(tmp_path)])
    assert result.exit_code == 0
    assert result.output.strip() == "python-app"

    empty = tmp_path / "empty"
    empty.mkdir()
    result = runner.invoke(cli, ["detect", str(empty)])
    assert result.exit_code == 1
    assert "No preset matched" in result.output
