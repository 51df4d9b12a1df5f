# platforms/jenkins/adapter.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import List, Optional, Sequence, Set, Union

from ... import commands
from ...dag import job_levels
from ...errors import AdapterError
from ...model import (
    LINUX,
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
    Tag,
    Trigger,
    UploadArtifact,
)
from ..base import GENERATED_BY, Platform, PlatformAdapter
from ..images import docker_hub_image
from .models import INDENT, JkAgent, JkParallel, JkPipeline, JkStage, JkStep, JkWhen, groovy_str

COVERAGE_PARSERS = {
    "cobertura": "COBERTURA",
    "gocov": "GO_COV",
}


def _block(name: str, conditions: Sequence[str]) -> str:
    """anyOf/allOf block around Groovy condition snippets (a single one is returned as is)."""
    if len(conditions) == 1:
        return conditions[0]
    inner = "\n".join(INDENT + line for c in conditions for line in c.split("\n"))
    return f"{name} {{\n{inner}\n}}"


def _wrapper_name(index: int, taken: Set[str]) -> str:
    """Name of the stage wrapping a parallel level; never reuses a job stage name."""
    name, n = f"Stage {index}", 2
    while name in taken:
        name, n = f"Stage {index} ({n})", n + 1
    taken.add(name)
    return name


def _sh(cmds: Sequence[str]) -> List[JkStep]:
    return [JkStep(f"sh {groovy_str(c)}") for c in cmds]


@dataclass
class _StageContext:
    steps: List[JkStep] = field(default_factory=list)
    image: Optional[str] = None
    builds_image: bool = False

    def add(self, *steps: JkStep) -> None:
        self.steps.extend(steps)


class JenkinsAdapter(PlatformAdapter[JkPipeline]):
    """
    Declarative Jenkinsfile. Matrix jobs are expanded; stages follow the
    topological levels and the jobs of one level run in a parallel block.
    """

    platform = Platform.JENKINS.value
    native_matrix = False

    def output_path(self, pipeline: Pipeline) -> str:
        return "Jenkinsfile"

    def serialize(self, ir: JkPipeline) -> str:
        return ir.render()

    def transform(self, pipeline: Pipeline) -> JkPipeline:
        self.runnable_events(pipeline, through_needs=False)
        gate = self._trigger_gate(pipeline.triggers)
        expanded = {job.name: (job, variants) for job, variants in self.expand_jobs(pipeline.jobs)}

        taken = {v.name for _, variants in expanded.values() for v in variants}
        stages: List[Union[JkStage, JkParallel]] = []
        for index, level in enumerate(job_levels(pipeline.jobs), start=1):
            level_stages: List[JkStage] = []
            for name in level:
                job, variants = expanded[name]
                for variant in variants:
                    level_stages.append(self._stage(job, variant.name, variant.job, gate))
            if len(level_stages) == 1:
                stages.append(level_stages[0])
            else:
                stages.append(JkParallel(name=_wrapper_name(index, taken), stages=level_stages))

        return JkPipeline(
            stages=stages,
            environment=dict(pipeline.env),
            crons=list(dict.fromkeys(t.cron for t in pipeline.triggers if isinstance(t, Schedule))),
            header=GENERATED_BY,
        )

    # -----------------------------------------------------------------
    # Conditions
    # -----------------------------------------------------------------

    def _trigger_gate(self, triggers: Sequence[Trigger]) -> Optional[str]:
        if not triggers:
            return None
        conditions = list(dict.fromkeys(self._condition(t) for t in triggers))
        return _block("anyOf", conditions)

    def _condition(self, trigger: Trigger) -> str:
        if isinstance(trigger, Push):
            if not trigger.branches:
                return _block("allOf", ["not { changeRequest() }", "not { buildingTag() }"])
            return _block("anyOf", [f"branch {groovy_str(b)}" for b in trigger.branches])
        if isinstance(trigger, PullRequest):
            if not trigger.branches:
                return "changeRequest()"
            return _block("anyOf", [
                f"changeRequest target: {groovy_str(b)}, comparator: 'GLOB'" for b in trigger.branches
            ])
        if isinstance(trigger, Tag):
            return f"tag {groovy_str(trigger.pattern)}"
        if isinstance(trigger, Schedule):
            return "triggeredBy 'TimerTrigger'"
        if isinstance(trigger, Manual):
            return "triggeredBy cause: 'UserIdCause'"
        raise self.unsupported_condition(trigger, f"unknown condition '{trigger.kind}'")

    # -----------------------------------------------------------------
    # Stages
    # -----------------------------------------------------------------

    def _stage(self, job: Job, name: str, bound: Job, gate: Optional[str]) -> JkStage:
        ctx = _StageContext()
        self.translate_steps(job.name, bound.steps, ctx)

        conditions = [gate] if gate else []
        if job.condition is not None:
            try:
                conditions.append(self._condition(job.condition))
            except AdapterError as exc:
                raise exc.at(job=job.name) from None

        label = bound.runner if bound.runner != LINUX else None
        agent = JkAgent(image=ctx.image, label=label) if ctx.image or label else None

        return JkStage(
            name=name,
            steps=ctx.steps or [JkStep(f"echo {groovy_str(name + ': nothing to run')}")],
            agent=agent,
            when=JkWhen(conditions) if conditions else None,
            environment=dict(bound.env),
        )

    # -----------------------------------------------------------------
    # Step handlers
    # -----------------------------------------------------------------

    def _on_checkout(self, step: Checkout, ctx: _StageContext) -> None:
        ctx.add(JkStep("checkout scm"))

    def _on_setup_toolchain(self, step: SetupToolchain, ctx: _StageContext) -> None:
        image = docker_hub_image(step.language, step.version)
        if image is None:
            raise self.unsupported_step(
                f"no official image for {step.language.value} '{step.version}'"
            )
        if ctx.builds_image:
            raise self.unsupported_step("stage builds images on the agent; it cannot run in a docker agent")
        if ctx.image is not None and ctx.image != image:
            raise self.unsupported_step(
                f"stage already runs in '{ctx.image}'; one docker agent per stage"
            )
        ctx.image = image

    def _on_install_dependencies(self, step: InstallDependencies, ctx: _StageContext) -> None:
        ctx.add(*_sh(commands.install_commands(step.language, step.manager_hint)))

    def _on_run_tests(self, step: RunTests, ctx: _StageContext) -> None:
        if not step.coverage:
            ctx.add(*_sh(commands.testing_commands(step.language)))
            return
        cov = commands.coverage_run(step.language)
        ctx.add(*_sh(cov.commands))
        parser = COVERAGE_PARSERS[cov.report_format]
        ctx.add(JkStep(
            f"recordCoverage(tools: [[parser: '{parser}', pattern: {groovy_str(cov.report_path)}]])"
        ))

    def _on_run_linter(self, step: RunLinter, ctx: _StageContext) -> None:
        ctx.add(*_sh(commands.lint_commands(step.language, step.tool_hint)))

    def _on_security_scan(self, step: SecurityScan, ctx: _StageContext) -> None:
        tool = commands.resolve_scanner(step.language, step.tool_hint)
        if tool == commands.CODEQL:
            raise self.unsupported_step("CodeQL is not available on Jenkins")
        ctx.add(*_sh(commands.scan_commands(step.language, tool)))

    def _on_build(self, step: Build, ctx: _StageContext) -> None:
        ctx.add(*_sh(commands.build_commands(step.language, step.release_mode)))

    def _on_upload_artifact(self, step: UploadArtifact, ctx: _StageContext) -> None:
        ctx.add(JkStep(f"archiveArtifacts artifacts: {groovy_str(step.path)}, fingerprint: true"))

    def _on_publish_release(self, step: PublishRelease, ctx: _StageContext) -> None:
        raise self.unsupported_step("Jenkins has no native release publishing")

    def _on_run_command(self, step: RunCommand, ctx: _StageContext) -> None:
        sh = JkStep(f"sh {groovy_str(step.command)}")
        if step.working_dir:
            ctx.add(JkStep(f"dir({groovy_str(step.working_dir)})", body=[sh]))
        else:
            ctx.add(sh)

    def _on_cache(self, step: Cache, ctx: _StageContext) -> None:
        raise self.unsupported_step("declarative pipelines have no built-in cache step")

    def _on_publish_package(self, step: PublishPackage, ctx: _StageContext) -> None:
        spec = commands.publish_spec(step.registry)
        credentials = (
            f"withCredentials([string(credentialsId: {groovy_str(step.token_env)}, "
            f"variable: {groovy_str(spec.token_variable)})])"
        )
        publish = JkStep(credentials, body=_sh(spec.commands))
        if spec.extra_env:
            env = ", ".join(groovy_str(f"{k}={v}") for k, v in spec.extra_env.items())
            publish = JkStep(f"withEnv([{env}])", body=[publish])
        ctx.add(publish)

    def _on_build_image(self, step: BuildImage, ctx: _StageContext) -> None:
        if ctx.image is not None:
            raise self.unsupported_step(f"stage runs inside '{ctx.image}'; images are built on the agent")
        ctx.builds_image = True
        ctx.add(*_sh([commands.image_build_command(step, "$GIT_COMMIT")]))
        if step.push_to is None:
            return
        spec = commands.image_registry(step.push_to)
        credentials = (
            f"withCredentials([usernamePassword(credentialsId: {groovy_str(step.push_to.value)}, "
            f"usernameVariable: {groovy_str(spec.username_variable)}, "
            f"passwordVariable: {groovy_str(spec.password_variable)})])"
        )
        ctx.add(JkStep(credentials, body=_sh(commands.image_push_commands(step, "$GIT_COMMIT"))))
