# platforms/gitlab/adapter.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from ... import commands
from ...dag import job_levels
from ...errors import AdapterError, AdapterErrorKind
from ...model import (
    LINUX,
    MACOS,
    WINDOWS,
    Build,
    BuildImage,
    Cache,
    Checkout,
    InstallDependencies,
    Job,
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
    Step,
    Tag,
    Trigger,
    UploadArtifact,
)
from ..base import GENERATED_BY, Platform, PlatformAdapter, has_wildcards, regex_literal
from ..images import docker_hub_image
from ..yaml_writer import dump_yaml
from .models import GlArtifacts, GlCache, GlJob, GlNeed, GlPipeline, GlRelease, GlRule

RELEASE_CLI_IMAGE = "registry.gitlab.com/gitlab-org/release-cli:latest"
DOCKER_IMAGE = "docker:27"
DOCKER_SERVICE = "docker:27-dind"
MAX_CACHES = 4

# Top-level keys that cannot be used as job names.
RESERVED_KEYS = frozenset({
    "default", "include", "stages", "variables", "workflow",
    "image", "services", "cache", "before_script", "after_script",
})

GOCOV_TO_COBERTURA = (
    "go install github.com/boumenot/gocover-cobertura@latest",
    "gocover-cobertura < coverage.out > coverage.xml",
)


def _lit(value: str) -> str:
    return '"' + value.replace("\\", "\\\\").replace('"', '\\"') + '"'


def _any(parts: Sequence[str]) -> str:
    if len(parts) == 1:
        return parts[0]
    return "(" + " || ".join(parts) + ")"


def _match(var: str, pattern: str) -> str:
    if has_wildcards(pattern):
        return f"{var} =~ {regex_literal(pattern)}"
    return f"{var} == {_lit(pattern)}"


@dataclass
class _JobContext:
    steps: Sequence[Step]
    script: List[str] = field(default_factory=list)
    image: Optional[str] = None
    services: List[str] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)
    caches: List[GlCache] = field(default_factory=list)
    coverage: Optional[str] = None
    artifacts: GlArtifacts = field(default_factory=GlArtifacts)
    uploads: List[str] = field(default_factory=list)
    release: Optional[GlRelease] = None
    release_rule: Optional[str] = None

    def run(self, lines: Sequence[str]) -> None:
        self.script.extend(lines)


class GitLabCIAdapter(PlatformAdapter[GlPipeline]):
    """
    .gitlab-ci.yml. Matrix jobs are expanded into one job per combination;
    stages are the topological levels and every job lists its needs.
    """

    platform = Platform.GITLAB_CI.value
    native_matrix = False

    def output_path(self, pipeline: Pipeline) -> str:
        return ".gitlab-ci.yml"

    def serialize(self, ir: GlPipeline) -> str:
        return dump_yaml(ir.to_dict(), header=GENERATED_BY)

    def transform(self, pipeline: Pipeline) -> GlPipeline:
        self.runnable_events(pipeline, through_needs=False)
        levels = job_levels(pipeline.jobs)
        stage_of = {name: f"stage-{i}" for i, level in enumerate(levels, start=1) for name in level}

        expanded = self.expand_jobs(pipeline.jobs)
        variants_of = {job.name: [v.name for v in variants] for job, variants in expanded}
        guarded = {job.name for job in pipeline.jobs if job.condition is not None}

        jobs: List[GlJob] = []
        for job, variants in expanded:
            for variant in variants:
                if variant.name in RESERVED_KEYS:
                    raise self.error(
                        AdapterErrorKind.INVALID_JOB_NAME,
                        f"job name '{variant.name}' is a reserved top-level keyword",
                        name=variant.name,
                    ).at(job=job.name)
                needs = [
                    GlNeed(name, optional=dep in guarded)
                    for dep in job.needs
                    for name in variants_of[dep]
                ]
                jobs.append(self._job(job, variant.name, variant.job, stage_of[job.name], needs))

        return GlPipeline(
            stages=[f"stage-{i}" for i in range(1, len(levels) + 1)],
            jobs=jobs,
            workflow_rules=self._workflow_rules(pipeline.triggers),
            variables=dict(pipeline.env),
        )

    # -----------------------------------------------------------------
    # Triggers / conditions
    # -----------------------------------------------------------------

    def _workflow_rules(self, triggers: Sequence[Trigger]) -> List[GlRule]:
        rules: List[GlRule] = []
        for t in triggers:
            rule = GlRule(if_=self._condition(t))
            if rule not in rules:
                rules.append(rule)
        return rules

    def _condition(self, trigger: Trigger) -> str:
        if isinstance(trigger, Push):
            expr = '$CI_PIPELINE_SOURCE == "push" && $CI_COMMIT_BRANCH'
            if trigger.branches:
                expr = '$CI_PIPELINE_SOURCE == "push" && ' + _any(
                    [_match("$CI_COMMIT_BRANCH", b) for b in trigger.branches]
                )
            return expr
        if isinstance(trigger, PullRequest):
            expr = '$CI_PIPELINE_SOURCE == "merge_request_event"'
            if trigger.branches:
                expr += " && " + _any(
                    [_match("$CI_MERGE_REQUEST_TARGET_BRANCH_NAME", b) for b in trigger.branches]
                )
            return expr
        if isinstance(trigger, Tag):
            return _match("$CI_COMMIT_TAG", trigger.pattern)
        if isinstance(trigger, Manual):
            return '$CI_PIPELINE_SOURCE == "web"'
        if isinstance(trigger, Schedule):
            raise self.unsupported_condition(
                trigger,
                f"schedule '{trigger.cron}' must be configured in the project's pipeline schedules",
            )
        raise self.unsupported_condition(trigger, f"unknown condition '{trigger.kind}'")

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def _job(self, job: Job, name: str, bound: Job, stage: str, needs: List[GlNeed]) -> GlJob:
        ctx = _JobContext(steps=bound.steps, variables=dict(bound.env))
        self.translate_steps(job.name, bound.steps, ctx)

        try:
            guard = self._condition(job.condition) if job.condition else None
        except AdapterError as exc:
            raise exc.at(job=job.name) from None

        rules: List[GlRule] = []
        conditions = [c for c in (guard, ctx.release_rule) if c]
        if len(conditions) == 1:
            rules.append(GlRule(if_=conditions[0]))
        elif conditions:
            rules.append(GlRule(if_=" && ".join(f"({c})" for c in conditions)))

        tags: List[str] = []
        if bound.runner != LINUX:
            tags.append(bound.runner)
            if ctx.image is not None and bound.runner in (MACOS, WINDOWS):
                raise self.error(
                    AdapterErrorKind.UNSUPPORTED_RUNNER,
                    f"'{bound.runner}' runners cannot run the docker image '{ctx.image}'",
                    runner=bound.runner,
                ).at(job=job.name)

        if ctx.uploads:
            ctx.artifacts.name = ctx.uploads[0] if len(ctx.uploads) == 1 else "$CI_JOB_NAME"

        return GlJob(
            name=name,
            stage=stage,
            script=ctx.script or [f'echo "{name}: nothing to run"'],
            image=ctx.image,
            services=ctx.services,
            tags=tags,
            needs=needs,
            rules=rules,
            variables=ctx.variables,
            cache=ctx.caches,
            coverage=ctx.coverage,
            artifacts=ctx.artifacts,
            release=ctx.release,
        )

    # -----------------------------------------------------------------
    # Step handlers
    # -----------------------------------------------------------------

    def _on_checkout(self, step: Checkout, ctx: _JobContext) -> None:
        # runners clone the repository before the script starts
        return None

    def _on_setup_toolchain(self, step: SetupToolchain, ctx: _JobContext) -> None:
        image = docker_hub_image(step.language, step.version)
        if image is None:
            raise self.unsupported_step(
                f"no official image for {step.language.value} '{step.version}'"
            )
        if ctx.image is not None and ctx.image != image:
            raise self.unsupported_step(
                f"job already uses image '{ctx.image}'; one toolchain image per job"
            )
        ctx.image = image

    def _on_install_dependencies(self, step: InstallDependencies, ctx: _JobContext) -> None:
        ctx.run(commands.install_commands(step.language, step.manager_hint))

    def _on_run_tests(self, step: RunTests, ctx: _JobContext) -> None:
        if not step.coverage:
            ctx.run(commands.testing_commands(step.language))
            return

        cov = commands.coverage_run(step.language)
        ctx.run(cov.commands)
        report = cov.report_path
        if cov.report_format == "gocov":
            ctx.run(GOCOV_TO_COBERTURA)
            report = "coverage.xml"
        ctx.coverage = "/" + cov.summary_regex.replace("/", "\\/") + "/"
        ctx.artifacts.coverage_report = {"coverage_format": "cobertura", "path": report}

    def _on_run_linter(self, step: RunLinter, ctx: _JobContext) -> None:
        ctx.run(commands.lint_commands(step.language, step.tool_hint))

    def _on_security_scan(self, step: SecurityScan, ctx: _JobContext) -> None:
        tool = commands.resolve_scanner(step.language, step.tool_hint)
        if tool == commands.CODEQL:
            raise self.unsupported_step("CodeQL is not available on GitLab CI")
        ctx.run(commands.scan_commands(step.language, tool))

    def _on_build(self, step: Build, ctx: _JobContext) -> None:
        ctx.run(commands.build_commands(step.language, step.release_mode))

    def _on_upload_artifact(self, step: UploadArtifact, ctx: _JobContext) -> None:
        ctx.uploads.append(step.name)
        if step.path not in ctx.artifacts.paths:
            ctx.artifacts.paths.append(step.path)

    def _on_publish_release(self, step: PublishRelease, ctx: _JobContext) -> None:
        others = [s for s in ctx.steps if not isinstance(s, Checkout) and s is not step]
        if others:
            raise self.unsupported_step(
                "the release keyword must be the only action of its job "
                f"(found {', '.join(s.kind for s in others)})"
            )
        if not isinstance(step.condition, Tag):
            raise self.unsupported_condition(
                step.condition, "releases are created from tag pipelines only"
            )

        ctx.image = RELEASE_CLI_IMAGE
        ctx.release_rule = self._condition(step.condition)
        ctx.run(['echo "Creating release $CI_COMMIT_TAG"'])
        ctx.release = GlRelease(
            tag_name="$CI_COMMIT_TAG",
            description="Release $CI_COMMIT_TAG",
            links=[
                {
                    "name": path,
                    "url": f"$CI_PROJECT_URL/-/jobs/$CI_JOB_ID/artifacts/raw/{path}",
                }
                for path in step.artifacts
            ],
        )
        for path in step.artifacts:
            if path not in ctx.artifacts.paths:
                ctx.artifacts.paths.append(path)

    def _on_run_command(self, step: RunCommand, ctx: _JobContext) -> None:
        if step.working_dir:
            ctx.run([f'cd "{step.working_dir}"', *step.command.splitlines(), 'cd "$CI_PROJECT_DIR"'])
        else:
            ctx.run(step.command.splitlines())

    def _on_cache(self, step: Cache, ctx: _JobContext) -> None:
        paths = self.cache_paths(step)
        if len(ctx.caches) >= MAX_CACHES:
            raise self.unsupported_step(f"at most {MAX_CACHES} caches per job")
        ctx.caches.append(GlCache(key=step.key, paths=list(paths)))

    def _on_publish_package(self, step: PublishPackage, ctx: _JobContext) -> None:
        spec = commands.publish_spec(step.registry)
        ctx.variables.update(spec.extra_env)
        if spec.token_variable != step.token_env:
            ctx.variables[spec.token_variable] = f"${step.token_env}"
        ctx.run(spec.commands)

    def _on_build_image(self, step: BuildImage, ctx: _JobContext) -> None:
        if ctx.image is not None and ctx.image != DOCKER_IMAGE:
            raise self.unsupported_step(
                f"job already uses image '{ctx.image}'; image builds run in '{DOCKER_IMAGE}'"
            )
        ctx.image = DOCKER_IMAGE
        if DOCKER_SERVICE not in ctx.services:
            ctx.services.append(DOCKER_SERVICE)
            ctx.variables.setdefault("DOCKER_TLS_CERTDIR", "/certs")
        ctx.run(commands.image_commands(step, "$CI_COMMIT_SHA"))
