# errors.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from typing import Optional, Tuple

from .model import Step


class ValidationErrorKind(str, Enum):
    DUPLICATE_JOB_NAME = "duplicate_job_name"
    UNKNOWN_DEPENDENCY_TARGET = "unknown_dependency_target"
    CYCLIC_DEPENDENCY = "cyclic_dependency"
    EMPTY_MATRIX_AXIS = "empty_matrix_axis"


class AdapterErrorKind(str, Enum):
    UNSUPPORTED_STEP = "unsupported_step"
    UNSUPPORTED_CONDITION = "unsupported_condition"
    UNSUPPORTED_RUNNER = "unsupported_runner"
    UNKNOWN_PLATFORM = "unknown_platform"
    MALFORMED_MATRIX = "malformed_matrix"
    INVALID_JOB_NAME = "invalid_job_name"


@dataclass
class ValidationError(Exception):
    """
    The generic pipeline is malformed. Raised before any adapter runs and
    always fatal for the whole generation.
    """
    kind: ValidationErrorKind
    message: str
    jobs: Tuple[str, ...] = ()
    axis: Optional[str] = None

    def __str__(self) -> str:
        lines = [f"{self.kind.value}: {self.message}"]
        if self.jobs:
            lines.append(f"jobs={', '.join(self.jobs)}")
        if self.axis is not None:
            lines.append(f"axis={self.axis}")
        return "\n".join(lines)


@dataclass
class AdapterError(Exception):
    """
    One platform could not express the pipeline. Scoped to that platform's
    transform call; carries enough context to find the failing construct.
    """
    kind: AdapterErrorKind
    platform: str
    message: str
    job: Optional[str] = None
    step_index: Optional[int] = None
    step: Optional[Step] = None
    details: dict = field(default_factory=dict)

    def at(
        self,
        *,
        job: Optional[str] = None,
        step_index: Optional[int] = None,
        step: Optional[Step] = None,
    ) -> "AdapterError":
        """Return a copy located at job/step, keeping any location already set."""
        return replace(
            self,
            job=self.job if self.job is not None else job,
            step_index=self.step_index if self.step_index is not None else step_index,
            step=self.step if self.step is not None else step,
        )

    def __str__(self) -> str:
        lines = [f"{self.kind.value}: {self.message}", f"platform={self.platform}"]
        if self.job is not None:
            lines.append(f"job={self.job}")
        if self.step_index is not None:
            lines.append(f"step={self.step_index}")
        if self.step is not None:
            lines.append(f"action={self.step.describe()}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


@dataclass
class RegistryError(Exception):
    """Adapter registry misconfiguration, detected at startup."""
    platform: str
    message: str

    def __str__(self) -> str:
        return f"registry: {self.message} (platform={self.platform})"


@dataclass
class PresetError(Exception):
    preset: str
    message: str

    def __str__(self) -> str:
        return f"preset {self.preset!r}: {self.message}"


@dataclass
class PipelineFileError(Exception):
    path: str
    message: str
    location: Optional[str] = None

    def __str__(self) -> str:
        where = f" at {self.location}" if self.location else ""
        return f"{self.path}{where}: {self.message}"
