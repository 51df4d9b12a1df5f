# generator.py
from __future__ import annotations

import logging
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Sequence

from .dag import validate_pipeline
from .errors import AdapterError
from .model import Pipeline
from .platforms.base import GeneratedFile, PlatformAdapter
from .registry import AdapterRegistry, PlatformId, platform_id, default_registry
from .settings import DEFAULT_MAX_WORKERS

log = logging.getLogger(__name__)


@dataclass(frozen=True)
class GenerationResult:
    """Outcome for one platform: a file or the error that prevented it."""
    platform: str
    file: Optional[GeneratedFile] = None
    error: Optional[AdapterError] = None

    @property
    def ok(self) -> bool:
        return self.error is None


class Generator:
    """Validates once, then fans a pipeline out to the requested adapters."""

    def __init__(self, registry: AdapterRegistry | None = None, max_workers: int | None = None):
        self.registry = registry if registry is not None else default_registry()
        self.max_workers = max_workers

    def generate(self, pipeline: Pipeline, platform: PlatformId) -> GeneratedFile:
        validate_pipeline(pipeline)
        return self.registry.get(platform).generate(pipeline)

    def generate_many(
        self,
        pipeline: Pipeline,
        platforms: Sequence[PlatformId] | None = None,
        *,
        max_workers: int | None = None,
    ) -> List[GenerationResult]:
        """
        One result per requested platform, in request order (duplicates
        collapse to their first occurrence). A ValidationError aborts the
        whole call; an AdapterError only fails its own platform.
        """
        validate_pipeline(pipeline)

        requested = list(dict.fromkeys(
            platform_id(p) for p in (platforms if platforms else self.registry.platforms())
        ))
        results: Dict[str, GenerationResult] = {}
        adapters: Dict[str, PlatformAdapter] = {}
        for pid in requested:
            try:
                adapters[pid] = self.registry.get(pid)
            except AdapterError as e:
                results[pid] = GenerationResult(pid, error=e)

        if max_workers is None:
            max_workers = self.max_workers or DEFAULT_MAX_WORKERS
        max_workers = max(1, min(max_workers, len(adapters) or 1))

        log.debug("generating %s for %s (%d workers)", pipeline.name, ", ".join(adapters), max_workers)

        with ThreadPoolExecutor(max_workers=max_workers) as pool:
            in_flight = {pool.submit(adapter.generate, pipeline): pid for pid, adapter in adapters.items()}
            for fut in as_completed(in_flight):
                pid = in_flight[fut]
                try:
                    results[pid] = GenerationResult(pid, file=fut.result())
                except AdapterError as e:
                    log.info("platform %s failed: %s", pid, e.message)
                    results[pid] = GenerationResult(pid, error=e)

        return [results[pid] for pid in requested]


def write_outputs(
    results: Sequence[GenerationResult],
    output_dir: str | Path = ".",
    *,
    force: bool = False,
) -> List[Path]:
    """
    Write every successful result below output_dir.

    Existing files are only replaced with force=True; the check runs before
    anything is written.
    """
    root = Path(output_dir)
    targets = [(root / r.file.path, r.file) for r in results if r.ok and r.file is not None]

    if not force:
        existing = [str(p) for p, _ in targets if p.exists()]
        if existing:
            raise FileExistsError(f"refusing to overwrite: {', '.join(existing)} (use --force)")

    written: List[Path] = []
    for path, generated in targets:
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(generated.content, encoding="utf-8")
        log.debug("wrote %s", path)
        written.append(path)
    return written
