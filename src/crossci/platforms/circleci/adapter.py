# platforms/circleci/adapter.py
from __future__ import annotations

import itertools
import re
from dataclasses import dataclass, field
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from ... import commands
from ...errors import AdapterError, AdapterErrorKind
from ...model import (
    LINUX,
    Build,
    BuildImage,
    Cache,
    Checkout,
    InstallDependencies,
    Job,
    Language,
    Manual,
    Pipeline,
    PublishPackage,
    PublishRelease,
    Push,
    PullRequest,
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
from ..base import GENERATED_BY, Platform, PlatformAdapter, has_wildcards, regex_literal, slugify
from ..images import CIMG_BASE, CIMG_REPOS, is_version_number
from ..yaml_writer import dump_yaml
from .models import CcConfig, CcJob, CcStep, CcWorkflow, CcWorkflowJob, run_step

PARAM_NAME = re.compile(r"[A-Za-z][A-Za-z0-9_-]*")
PARAM_REF = re.compile(r"<< parameters\.([A-Za-z0-9_-]+) >>")

DEFAULT_SCHEDULE_BRANCHES = ("main",)

WEBHOOK_TRIGGERS = (Push, Tag, PullRequest)

# pipelines started through the API (or the "Trigger Pipeline" button)
API_ONLY = {"equal": ["api", "<< pipeline.trigger_source >>"]}


def _filter_value(pattern: str) -> str:
    return regex_literal(pattern) if has_wildcards(pattern) else pattern


def _possible_values(value: str, axes: Mapping[str, Sequence[str]]) -> List[str]:
    """Every concrete string `value` can take once parameters are substituted."""
    refs = list(dict.fromkeys(PARAM_REF.findall(value)))
    if not refs:
        return [value]
    out = []
    for combo in itertools.product(*(axes[r] for r in refs)):
        bound = dict(zip(refs, combo))
        out.append(PARAM_REF.sub(lambda m: bound[m.group(1)], value))
    return out


@dataclass
class _JobContext:
    axes: Mapping[str, Sequence[str]]
    steps: List[CcStep] = field(default_factory=list)
    image: Optional[str] = None
    saves: List[CcStep] = field(default_factory=list)
    remote_docker: bool = False

    def add(self, step: CcStep) -> None:
        self.steps.append(step)

    def use_image(self, image: str, adapter: "CircleCIAdapter") -> None:
        if self.image is not None and self.image != image:
            raise adapter.unsupported_step(
                f"job already uses image '{self.image}'; one primary image per job"
            )
        self.image = image


class CircleCIAdapter(PlatformAdapter[CcConfig]):
    """
    .circleci/config.yml (2.1). Matrices are native: axes become string job
    parameters and the workflow entry carries matrix.parameters.
    """

    platform = Platform.CIRCLECI.value
    native_matrix = True

    def output_path(self, pipeline: Pipeline) -> str:
        return ".circleci/config.yml"

    def serialize(self, ir: CcConfig) -> str:
        return dump_yaml(ir.to_dict(), header=GENERATED_BY)

    def transform(self, pipeline: Pipeline) -> CcConfig:
        runs = self.runnable_events(pipeline, through_needs=True)
        jobs = [self._job(job, variant.job, pipeline.env) for job, [variant] in self.expand_jobs(pipeline.jobs)]
        trigger_filters = self._trigger_filters(pipeline.triggers)

        entries = []
        for job in pipeline.jobs:
            try:
                filters = self._job_filters(job, trigger_filters)
            except AdapterError as exc:
                raise exc.at(job=job.name) from None
            entries.append(CcWorkflowJob(
                name=job.name,
                requires=list(job.needs),
                filters=filters,
                matrix=job.matrix.as_dict() if job.matrix else {},
            ))

        name = slugify(pipeline.name)
        workflows = []
        if not pipeline.triggers or any(isinstance(t, WEBHOOK_TRIGGERS) for t in pipeline.triggers):
            workflows.append(CcWorkflow(name=name, jobs=entries))
        elif any(isinstance(t, Manual) for t in pipeline.triggers):
            workflows.append(CcWorkflow(name=name, jobs=entries, when=API_ONLY))

        schedules = [t for t in pipeline.triggers if isinstance(t, Schedule)]
        for index, t in enumerate(schedules, start=1):
            scheduled = [
                CcWorkflowJob(e.name, e.requires, {}, e.matrix)
                for e in entries if Schedule.kind in runs[e.name]
            ]
            # only guarded jobs: nothing runs on the timer
            if not scheduled:
                continue
            workflows.append(CcWorkflow(
                name=f"{name}-scheduled-{index}",
                jobs=scheduled,
                schedule=t.cron,
                schedule_branches=self._schedule_branches(pipeline.triggers),
            ))
        return CcConfig(jobs=jobs, workflows=workflows)

    # -----------------------------------------------------------------
    # Filters
    # -----------------------------------------------------------------

    def _trigger_filters(self, triggers: Sequence[Trigger]) -> Dict[str, Any]:
        pushes = [t for t in triggers if isinstance(t, Push)]
        tags = [t for t in triggers if isinstance(t, Tag)]
        prs = [t for t in triggers if isinstance(t, PullRequest)]

        filters: Dict[str, Any] = {}
        if tags:
            filters["tags"] = {"only": list(dict.fromkeys(_filter_value(t.pattern) for t in tags))}

        # pull requests build from arbitrary branches; a branch filter would hide them
        if prs or any(not p.branches for p in pushes):
            return filters
        if pushes:
            branches = [b for p in pushes for b in p.branches]
            filters["branches"] = {"only": list(dict.fromkeys(_filter_value(b) for b in branches))}
        elif tags:
            filters["branches"] = {"ignore": "/.*/"}
        return filters

    def _job_filters(self, job: Job, trigger_filters: Dict[str, Any]) -> Dict[str, Any]:
        guard = job.condition
        if guard is None:
            return dict(trigger_filters)
        if isinstance(guard, Push):
            filters = {k: v for k, v in trigger_filters.items() if k != "tags"}
            if guard.branches:
                filters["branches"] = {"only": [_filter_value(b) for b in guard.branches]}
            return filters
        if isinstance(guard, Tag):
            return {
                "tags": {"only": [_filter_value(guard.pattern)]},
                "branches": {"ignore": "/.*/"},
            }
        raise self.unsupported_condition(
            guard, f"'{guard.kind}' job conditions cannot be expressed with workflow filters"
        )

    def _schedule_branches(self, triggers: Sequence[Trigger]) -> List[str]:
        exact = [
            b for t in triggers if isinstance(t, Push) for b in t.branches if not has_wildcards(b)
        ]
        return list(dict.fromkeys(exact)) or list(DEFAULT_SCHEDULE_BRANCHES)

    # -----------------------------------------------------------------
    # Jobs
    # -----------------------------------------------------------------

    def matrix_axis(self, axis: str) -> str:
        return "<< parameters.%s >>" % axis

    def _job(self, job: Job, rendered: Job, pipeline_env: Mapping[str, str]) -> CcJob:
        axes: Dict[str, Tuple[str, ...]] = {}
        if job.matrix is not None:
            for axis, values in job.matrix.axes:
                if not PARAM_NAME.fullmatch(axis):
                    raise self.error(
                        AdapterErrorKind.MALFORMED_MATRIX,
                        f"matrix axis '{axis}' is not a valid parameter name",
                        axis=axis,
                    ).at(job=job.name)
                axes[axis] = values

        if rendered.runner != LINUX:
            raise self.error(
                AdapterErrorKind.UNSUPPORTED_RUNNER,
                f"runner '{job.runner}' is not available; only the linux docker executor is generated",
                runner=job.runner,
            ).at(job=job.name)

        ctx = _JobContext(axes=axes)
        self.translate_steps(job.name, rendered.steps, ctx)

        environment = dict(pipeline_env)
        environment.update(rendered.env)
        return CcJob(
            name=job.name,
            image=ctx.image or CIMG_BASE,
            steps=ctx.steps + ctx.saves,
            parameters=list(axes),
            environment=environment,
        )

    # -----------------------------------------------------------------
    # Step handlers
    # -----------------------------------------------------------------

    def _on_checkout(self, step: Checkout, ctx: _JobContext) -> None:
        ctx.add(CcStep("checkout"))

    def _on_setup_toolchain(self, step: SetupToolchain, ctx: _JobContext) -> None:
        versions = _possible_values(step.version, ctx.axes)
        if all(is_version_number(v) for v in versions):
            ctx.use_image(f"{CIMG_REPOS[step.language]}:{step.version}", self)
            return

        if step.language is not Language.RUST:
            bad = next(v for v in versions if not is_version_number(v))
            raise self.unsupported_step(
                f"no cimg/{step.language.value} image for version '{bad}'"
            )

        # rust channels: base image + rustup
        ctx.use_image(CIMG_BASE, self)
        ctx.add(run_step(
            f"Install Rust {step.version}",
            "\n".join([
                f"curl https://sh.rustup.rs -sSf | sh -s -- -y --profile minimal --default-toolchain {step.version}",
                'echo \'source "$HOME/.cargo/env"\' >> "$BASH_ENV"',
            ]),
        ))

    def _on_install_dependencies(self, step: InstallDependencies, ctx: _JobContext) -> None:
        cmds = commands.install_commands(step.language, step.manager_hint)
        ctx.add(run_step("Install dependencies", "\n".join(cmds)))

    def _on_run_tests(self, step: RunTests, ctx: _JobContext) -> None:
        if not step.coverage:
            ctx.add(run_step("Run tests", "\n".join(commands.testing_commands(step.language))))
            return
        cov = commands.coverage_run(step.language)
        ctx.add(run_step("Run tests with coverage", "\n".join(cov.commands)))
        ctx.add(CcStep("store_artifacts", {"path": cov.report_path, "destination": "coverage"}))

    def _on_run_linter(self, step: RunLinter, ctx: _JobContext) -> None:
        tool = commands.resolve_linter(step.language, step.tool_hint)
        ctx.add(run_step(f"Lint ({tool})", "\n".join(commands.lint_commands(step.language, tool))))

    def _on_security_scan(self, step: SecurityScan, ctx: _JobContext) -> None:
        tool = commands.resolve_scanner(step.language, step.tool_hint)
        if tool == commands.CODEQL:
            raise self.unsupported_step("CodeQL is not available on CircleCI")
        ctx.add(run_step(
            f"Security scan ({tool})",
            "\n".join(commands.scan_commands(step.language, tool)),
        ))

    def _on_build(self, step: Build, ctx: _JobContext) -> None:
        name = "Build (release)" if step.release_mode else "Build"
        ctx.add(run_step(name, "\n".join(commands.build_commands(step.language, step.release_mode))))

    def _on_upload_artifact(self, step: UploadArtifact, ctx: _JobContext) -> None:
        ctx.add(CcStep("store_artifacts", {"path": step.path, "destination": step.name}))

    def _on_publish_release(self, step: PublishRelease, ctx: _JobContext) -> None:
        raise self.unsupported_step("CircleCI has no native release publishing")

    def _on_run_command(self, step: RunCommand, ctx: _JobContext) -> None:
        ctx.add(run_step(step.name, step.command, working_directory=step.working_dir))

    def _on_cache(self, step: Cache, ctx: _JobContext) -> None:
        paths = self.cache_paths(step)
        ctx.add(CcStep("restore_cache", {"keys": [step.key]}))
        ctx.saves.append(CcStep("save_cache", {"key": step.key, "paths": list(paths)}))

    def _on_publish_package(self, step: PublishPackage, ctx: _JobContext) -> None:
        spec = commands.publish_spec(step.registry)
        lines = []
        if spec.token_variable != step.token_env:
            lines.append(f'export {spec.token_variable}="${{{step.token_env}}}"')
        lines.extend(spec.commands)
        ctx.add(run_step(
            f"Publish to {step.registry.value}",
            "\n".join(lines),
            environment=spec.extra_env,
        ))

    def _on_build_image(self, step: BuildImage, ctx: _JobContext) -> None:
        if not ctx.remote_docker:
            ctx.add(CcStep("setup_remote_docker"))
            ctx.remote_docker = True
        title = "Build and push image" if step.push_to else "Build image"
        ctx.add(run_step(title, "\n".join(commands.image_commands(step, "$CIRCLE_SHA1"))))
