# platforms/github/adapter.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from typing import Dict, FrozenSet, List, Sequence, Tuple

from ... import commands
from ...errors import AdapterError, AdapterErrorKind
from ...model import (
    LINUX,
    MACOS,
    MATRIX_REF,
    WINDOWS,
    Build,
    BuildImage,
    Cache,
    Checkout,
    ContainerRegistry,
    InstallDependencies,
    Job,
    Language,
    Manual,
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
    Tag,
    Trigger,
    UploadArtifact,
)
from ..base import GENERATED_BY, Platform, PlatformAdapter, has_wildcards, prefix_of, slugify
from ..yaml_writer import dump_yaml
from .models import GhJob, GhOn, GhStep, GhStrategy, GhWorkflow

RUNNER_IMAGES: Dict[str, str] = {
    LINUX: "ubuntu-latest",
    MACOS: "macos-latest",
    WINDOWS: "windows-latest",
}

# Extra matrix key carrying the runner image when runs-on follows a matrix axis.
RUNNER_KEY = "runner_image"

CHECKOUT = "actions/checkout@v4"
SETUP_PYTHON = "actions/setup-python@v5"
SETUP_GO = "actions/setup-go@v5"
RUST_TOOLCHAIN = "dtolnay/rust-toolchain@master"
UPLOAD_ARTIFACT = "actions/upload-artifact@v4"
CACHE = "actions/cache@v4"
CODECOV = "codecov/codecov-action@v4"
CARGO_AUDIT = "rustsec/audit-check@v2"
GOLANGCI_LINT = "golangci/golangci-lint-action@v6"
CODEQL = "github/codeql-action/{}@v3"
GH_RELEASE = "softprops/action-gh-release@v2"
SETUP_BUILDX = "docker/setup-buildx-action@v3"
DOCKER_LOGIN = "docker/login-action@v3"
BUILD_PUSH = "docker/build-push-action@v6"

_JOB_ID = re.compile(r"[A-Za-z_][A-Za-z0-9_-]*")


def _lit(value: str) -> str:
    return "'" + value.replace("'", "''") + "'"


def _any(parts: Sequence[str]) -> str:
    if len(parts) == 1:
        return parts[0]
    return "(" + " || ".join(parts) + ")"


def _job_ids(jobs: Sequence[Job]) -> Dict[str, str]:
    """Map job names to valid, unique GitHub job ids."""
    ids: Dict[str, str] = {}
    used = set()
    for job in jobs:
        base = job.name if _JOB_ID.fullmatch(job.name) else (
            re.sub(r"[^A-Za-z0-9_-]+", "-", job.name).strip("-") or "job"
        )
        if not re.match(r"[A-Za-z_]", base):
            base = f"job-{base}"
        candidate, n = base, 2
        while candidate in used:
            candidate, n = f"{base}-{n}", n + 1
        used.add(candidate)
        ids[job.name] = candidate
    return ids


@dataclass
class _JobContext:
    steps: List[GhStep] = field(default_factory=list)
    permissions: Dict[str, str] = field(default_factory=dict)

    def add(self, step: GhStep) -> None:
        self.steps.append(step)

    def grant(self, scope: str, level: str) -> None:
        if self.permissions.get(scope) != "write":
            self.permissions[scope] = level


class GitHubActionsAdapter(PlatformAdapter[GhWorkflow]):
    """GitHub Actions workflow. Matrices stay native (strategy.matrix)."""

    platform = Platform.GITHUB_ACTIONS.value
    native_matrix = True

    def output_path(self, pipeline: Pipeline) -> str:
        return f".github/workflows/{slugify(pipeline.name)}.yml"

    def serialize(self, ir: GhWorkflow) -> str:
        return dump_yaml(ir.to_dict(), header=GENERATED_BY)

    def transform(self, pipeline: Pipeline) -> GhWorkflow:
        self.runnable_events(pipeline, through_needs=True)
        ids = _job_ids(pipeline.jobs)
        return GhWorkflow(
            name=pipeline.name,
            on=self._on(pipeline.triggers),
            jobs=[self._job(job, variant.job, ids) for job, [variant] in self.expand_jobs(pipeline.jobs)],
            env=dict(pipeline.env),
        )

    # -----------------------------------------------------------------
    # Triggers / conditions
    # -----------------------------------------------------------------

    def _on(self, triggers: Sequence[Trigger]) -> GhOn:
        on = GhOn()
        if not triggers:
            on.push, on.push_branches = True, ["**"]
            return on

        all_branches = False
        all_prs = False
        for t in triggers:
            if isinstance(t, Push):
                on.push = True
                all_branches = all_branches or not t.branches
                _extend(on.push_branches, t.branches)
            elif isinstance(t, Tag):
                on.push = True
                _extend(on.push_tags, [t.pattern])
            elif isinstance(t, PullRequest):
                on.pull_request = True
                all_prs = all_prs or not t.branches
                _extend(on.pull_request_branches, t.branches)
            elif isinstance(t, Schedule):
                _extend(on.schedules, [t.cron])
            elif isinstance(t, Manual):
                on.workflow_dispatch = True

        if all_branches:
            on.push_branches = ["**"]
        if all_prs:
            on.pull_request_branches = []
        return on

    def guard_events(self, guard: Trigger) -> FrozenSet[str]:
        # tag pushes are push events too
        if isinstance(guard, Push) and not guard.branches:
            return frozenset([Push.kind, Tag.kind])
        return super().guard_events(guard)

    def _condition(self, trigger: Trigger) -> str:
        """if: expression that holds when `trigger` describes the current run."""
        if isinstance(trigger, Push):
            expr = "github.event_name == 'push'"
            if trigger.branches:
                refs = [self._ref_test(trigger, "github.ref", "refs/heads/", b) for b in trigger.branches]
                expr = f"{expr} && {_any(refs)}"
            return expr
        if isinstance(trigger, PullRequest):
            expr = "github.event_name == 'pull_request'"
            if trigger.branches:
                refs = [self._ref_test(trigger, "github.base_ref", "", b) for b in trigger.branches]
                expr = f"{expr} && {_any(refs)}"
            return expr
        if isinstance(trigger, Tag):
            return self._ref_test(trigger, "github.ref", "refs/tags/", trigger.pattern)
        if isinstance(trigger, Schedule):
            return f"github.event_name == 'schedule' && github.event.schedule == {_lit(trigger.cron)}"
        if isinstance(trigger, Manual):
            return "github.event_name == 'workflow_dispatch'"
        raise self.unsupported_condition(trigger, f"unknown condition '{trigger.kind}'")

    def _ref_test(self, trigger: Trigger, var: str, prefix: str, pattern: str) -> str:
        stem = prefix_of(pattern)
        if stem is not None:
            return f"startsWith({var}, {_lit(prefix + stem)})"
        if not has_wildcards(pattern):
            return f"{var} == {_lit(prefix + pattern)}"
        raise self.unsupported_condition(
            trigger,
            f"pattern '{pattern}' cannot be expressed in an if: expression "
            "(only exact names or a trailing '*')",
        )

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def matrix_axis(self, axis: str) -> str:
        return "${{ matrix.%s }}" % axis

    def _job(self, job: Job, rendered: Job, ids: Dict[str, str]) -> GhJob:
        runs_on, include = self._runs_on(job, rendered.runner)

        ctx = _JobContext()
        self.translate_steps(job.name, rendered.steps, ctx)

        try:
            guard = self._condition(job.condition) if job.condition else None
        except AdapterError as exc:
            raise exc.at(job=job.name) from None

        job_id = ids[job.name]
        return GhJob(
            id=job_id,
            display_name=job.name if job_id != job.name else None,
            runs_on=runs_on,
            steps=ctx.steps,
            needs=[ids[n] for n in job.needs],
            if_=guard,
            permissions=ctx.permissions,
            strategy=GhStrategy(matrix=job.matrix.as_dict(), include=include) if job.matrix else None,
            env=dict(rendered.env),
        )

    def _runs_on(self, job: Job, rendered_runner: str) -> Tuple[str, List[Dict[str, str]]]:
        if not rendered_runner.strip():
            raise self.error(AdapterErrorKind.UNSUPPORTED_RUNNER, "empty runner label").at(job=job.name)

        m = MATRIX_REF.fullmatch(job.runner)
        if m is None or job.matrix is None:
            return RUNNER_IMAGES.get(rendered_runner, rendered_runner), []

        axis = m.group(1)
        if RUNNER_KEY in job.matrix.axis_names:
            raise self.error(
                AdapterErrorKind.MALFORMED_MATRIX,
                f"matrix axis '{RUNNER_KEY}' is reserved for runner selection",
                axis=RUNNER_KEY,
            ).at(job=job.name)
        include = [{axis: v, RUNNER_KEY: RUNNER_IMAGES.get(v, v)} for v in job.matrix.values(axis)]
        return "${{ matrix.%s }}" % RUNNER_KEY, include

    # -----------------------------------------------------------------
    # Step handlers
    # -----------------------------------------------------------------

    def _on_checkout(self, step: Checkout, ctx: _JobContext) -> None:
        ctx.add(GhStep(name="Checkout", uses=CHECKOUT))

    def _on_setup_toolchain(self, step: SetupToolchain, ctx: _JobContext) -> None:
        if step.language is Language.RUST:
            ctx.add(GhStep(
                name=f"Set up Rust {step.version}",
                uses=RUST_TOOLCHAIN,
                with_={"toolchain": step.version},
            ))
        elif step.language is Language.PYTHON:
            ctx.add(GhStep(
                name=f"Set up Python {step.version}",
                uses=SETUP_PYTHON,
                with_={"python-version": step.version},
            ))
        else:
            ctx.add(GhStep(
                name=f"Set up Go {step.version}",
                uses=SETUP_GO,
                with_={"go-version": step.version},
            ))

    def _on_install_dependencies(self, step: InstallDependencies, ctx: _JobContext) -> None:
        cmds = commands.install_commands(step.language, step.manager_hint)
        ctx.add(GhStep(name="Install dependencies", run="\n".join(cmds)))

    def _on_run_tests(self, step: RunTests, ctx: _JobContext) -> None:
        if not step.coverage:
            ctx.add(GhStep(name="Run tests", run="\n".join(commands.testing_commands(step.language))))
            return

        cov = commands.coverage_run(step.language)
        ctx.add(GhStep(name="Run tests with coverage", run="\n".join(cov.commands)))
        ctx.add(GhStep(
            name="Upload coverage to Codecov",
            uses=CODECOV,
            with_={
                "files": cov.report_path,
                "token": "${{ secrets.CODECOV_TOKEN }}",
                "fail_ci_if_error": False,
            },
        ))

    def _on_run_linter(self, step: RunLinter, ctx: _JobContext) -> None:
        tool = commands.resolve_linter(step.language, step.tool_hint)
        if step.language is Language.GO and tool == "golangci-lint":
            ctx.add(GhStep(name="golangci-lint", uses=GOLANGCI_LINT, with_={"version": "latest"}))
            return
        ctx.add(GhStep(name=f"Lint ({tool})", run="\n".join(commands.lint_commands(step.language, tool))))

    def _on_security_scan(self, step: SecurityScan, ctx: _JobContext) -> None:
        tool = commands.resolve_scanner(step.language, step.tool_hint)

        if tool == commands.CODEQL:
            lang = commands.CODEQL_LANGUAGES.get(step.language)
            if lang is None:
                raise self.unsupported_step(f"CodeQL does not analyze {step.language.value}")
            ctx.grant("contents", "read")
            ctx.grant("security-events", "write")
            ctx.add(GhStep(name="Initialize CodeQL", uses=CODEQL.format("init"), with_={"languages": lang}))
            if step.language is Language.GO:
                ctx.add(GhStep(name="Autobuild", uses=CODEQL.format("autobuild")))
            ctx.add(GhStep(name="Perform CodeQL analysis", uses=CODEQL.format("analyze")))
            return

        if step.language is Language.RUST and tool == "cargo-audit":
            ctx.add(GhStep(
                name="Security audit",
                uses=CARGO_AUDIT,
                with_={"token": "${{ secrets.GITHUB_TOKEN }}"},
            ))
            return

        ctx.add(GhStep(
            name=f"Security scan ({tool})",
            run="\n".join(commands.scan_commands(step.language, tool)),
        ))

    def _on_build(self, step: Build, ctx: _JobContext) -> None:
        name = "Build (release)" if step.release_mode else "Build"
        ctx.add(GhStep(name=name, run="\n".join(commands.build_commands(step.language, step.release_mode))))

    def _on_upload_artifact(self, step: UploadArtifact, ctx: _JobContext) -> None:
        ctx.add(GhStep(
            name=f"Upload {step.name}",
            uses=UPLOAD_ARTIFACT,
            with_={"name": step.name, "path": step.path},
        ))

    def _on_publish_release(self, step: PublishRelease, ctx: _JobContext) -> None:
        with_ = {"files": "\n".join(step.artifacts)} if step.artifacts else {}
        ctx.grant("contents", "write")
        ctx.add(GhStep(
            name="Publish release",
            uses=GH_RELEASE,
            if_=self._condition(step.condition),
            with_=with_,
        ))

    def _on_run_command(self, step: RunCommand, ctx: _JobContext) -> None:
        ctx.add(GhStep(name=step.name, run=step.command, working_directory=step.working_dir))

    def _on_cache(self, step: Cache, ctx: _JobContext) -> None:
        paths = self.cache_paths(step)
        ctx.add(GhStep(
            name=f"Cache {step.key}",
            uses=CACHE,
            with_={"path": "\n".join(paths), "key": step.key},
        ))

    def _on_publish_package(self, step: PublishPackage, ctx: _JobContext) -> None:
        spec = commands.publish_spec(step.registry)
        env = dict(spec.extra_env)
        env[spec.token_variable] = "${{ secrets.%s }}" % step.token_env
        ctx.add(GhStep(
            name=f"Publish to {step.registry.value}",
            run="\n".join(spec.commands),
            env=env,
        ))

    def _on_build_image(self, step: BuildImage, ctx: _JobContext) -> None:
        name = commands.image_name(step)
        ctx.add(GhStep(name="Set up Docker Buildx", uses=SETUP_BUILDX))
        if step.push_to is not None:
            ctx.add(GhStep(
                name=f"Log in to {step.push_to.value}",
                uses=DOCKER_LOGIN,
                with_=self._registry_login(step.push_to, ctx),
            ))
        ctx.add(GhStep(
            name="Build and push image" if step.push_to else "Build image",
            uses=BUILD_PUSH,
            with_={
                "context": step.context,
                "file": step.dockerfile,
                "push": step.push_to is not None,
                "tags": f"{name}:${{{{ github.sha }}}}\n{name}:latest",
            },
        ))

    def _registry_login(self, registry: ContainerRegistry, ctx: _JobContext) -> Dict[str, str]:
        if registry is ContainerRegistry.GHCR:
            ctx.grant("contents", "read")
            ctx.grant("packages", "write")
            return {
                "registry": "ghcr.io",
                "username": "${{ github.actor }}",
                "password": "${{ secrets.GITHUB_TOKEN }}",
            }
        spec = commands.image_registry(registry)
        return {
            "username": "${{ secrets.%s }}" % spec.username_variable,
            "password": "${{ secrets.%s }}" % spec.password_variable,
        }


def _extend(target: List[str], values: Sequence[str]) -> None:
    for v in values:
        if v not in target:
            target.append(v)
