# detection.py
from __future__ import annotations

import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Callable, Dict, List, Optional


@dataclass(frozen=True)
class Detection:
    """Preset picked for a project directory plus what was learned on the way."""
    preset: str
    language_version: Optional[str] = None
    metadata: Dict[str, str] = field(default_factory=dict)


def _read(path: Path) -> str:
    try:
        return path.read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError):
        return ""


def _detect_rust(root: Path) -> Optional[Detection]:
    cargo = root / "Cargo.toml"
    if not cargo.is_file():
        return None
    text = _read(cargo)
    meta: Dict[str, str] = {"manifest": "Cargo.toml"}

    m = re.search(r'^\s*rust-version\s*=\s*"([^"]+)"', text, re.MULTILINE)
    version = m.group(1) if m else None

    if re.search(r"^\s*\[workspace\]", text, re.MULTILINE):
        meta["type"] = "workspace"
    if re.search(r"^\s*\[lib\]", text, re.MULTILINE) or (root / "src" / "lib.rs").is_file():
        meta.setdefault("type", "library")
        return Detection("rust-library", version, meta)
    meta.setdefault("type", "binary")
    return Detection("rust-binary", version, meta)


def _detect_go(root: Path) -> Optional[Detection]:
    gomod = root / "go.mod"
    if not gomod.is_file():
        return None
    m = re.search(r"^go\s+(\d+\.\d+)", _read(gomod), re.MULTILINE)
    return Detection("go-app", m.group(1) if m else None, {"manifest": "go.mod"})


def _detect_python(root: Path) -> Optional[Detection]:
    for marker in ("pyproject.toml", "setup.py", "requirements.txt"):
        if (root / marker).is_file():
            break
    else:
        return None

    version = None
    if marker == "pyproject.toml":
        m = re.search(r'requires-python\s*=\s*"[^"\d]*(\d+\.\d+)', _read(root / marker))
        version = m.group(1) if m else None
    return Detection("python-app", version, {"manifest": marker})


DOCKERFILES = ("Dockerfile", "dockerfile", "Dockerfile.dev", "Dockerfile.prod", "Dockerfile.build")
COMPOSE_FILES = ("docker-compose.yml", "docker-compose.yaml", "compose.yml", "compose.yaml")


def _base_image(text: str) -> Optional[str]:
    for line in text.splitlines():
        parts = line.split()
        if len(parts) >= 2 and parts[0].upper() == "FROM":
            return parts[1]
    return None


def _detect_docker(root: Path) -> Optional[Detection]:
    dockerfiles = [name for name in DOCKERFILES if (root / name).is_file()]
    compose = next((name for name in COMPOSE_FILES if (root / name).is_file()), None)
    if not dockerfiles and compose is None:
        return None

    meta: Dict[str, str] = {}
    if dockerfiles:
        meta["manifest"] = meta["dockerfile"] = dockerfiles[0]
        if len(dockerfiles) > 1:
            meta["dockerfiles"] = ", ".join(dockerfiles)
        base = _base_image(_read(root / dockerfiles[0]))
        if base:
            meta["base_image"] = base
    if compose is not None:
        meta.setdefault("manifest", compose)
        meta["compose_file"] = compose
    return Detection("docker", None, meta)


DETECTORS: List[Callable[[Path], Optional[Detection]]] = [
    _detect_rust,
    _detect_go,
    _detect_python,
    _detect_docker,
]


def detect_project(directory: str | Path = ".") -> Optional[Detection]:
    root = Path(directory)
    if not root.is_dir():
        return None
    for detector in DETECTORS:
        found = detector(root)
        if found is not None:
            return found
    return None


def detect_preset(directory: str | Path = ".") -> Optional[str]:
    """Preset id matching the marker files in `directory`, or None."""
    found = detect_project(directory)
    return found.preset if found else None
