from .dsl import job, sh, matrix, pipeline, JobBuilder, matrix_ref
from .generator import Generator, GenerationResult, write_outputs
from .loader import load_pipeline
from .model import Job, Pipeline, Step
from .presets import expand_preset
from .registry import AdapterRegistry, default_registry

__all__ = [
    "job", "sh", "matrix", "pipeline", "JobBuilder", "matrix_ref",
    "Generator", "GenerationResult", "write_outputs", "load_pipeline",
    "Job", "Pipeline", "Step", "expand_preset", "AdapterRegistry", "default_registry",
]
