# settings.py
from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Tuple

DEFAULT_BRANCHES: Tuple[str, ...] = ("main", "master")
DEFAULT_MAX_WORKERS = 4


def _csv(value: str) -> Tuple[str, ...]:
    return tuple(v.strip() for v in value.split(",") if v.strip())


@dataclass(frozen=True)
class Settings:
    """CLI defaults taken from CROSSCI_* environment variables."""
    platforms: Tuple[str, ...] = ()
    max_workers: int = DEFAULT_MAX_WORKERS
    output_dir: str = "."
    default_branches: Tuple[str, ...] = DEFAULT_BRANCHES


def load_settings(environ: Mapping[str, str] | None = None) -> Settings:
    env = os.environ if environ is None else environ

    raw_workers = env.get("CROSSCI_MAX_WORKERS", str(DEFAULT_MAX_WORKERS))
    try:
        max_workers = int(raw_workers)
    except ValueError:
        raise ValueError(f"CROSSCI_MAX_WORKERS must be an integer, got {raw_workers!r}") from None
    if max_workers < 1:
        raise ValueError(f"CROSSCI_MAX_WORKERS must be at least 1, got {max_workers}")

    return Settings(
        platforms=_csv(env.get("CROSSCI_PLATFORMS", "")),
        max_workers=max_workers,
        output_dir=env.get("CROSSCI_OUTPUT_DIR", "."),
        default_branches=_csv(env.get("CROSSCI_DEFAULT_BRANCHES", "")) or DEFAULT_BRANCHES,
    )
