# platforms/images.py
from __future__ import annotations

import re
from typing import Dict, Optional

from ..model import Language

# Official Docker Hub images used by GitLab jobs and Jenkins docker agents.
OFFICIAL_REPOS: Dict[Language, str] = {
    Language.RUST: "rust",
    Language.PYTHON: "python",
    Language.GO: "golang",
}

RUST_CHANNEL_IMAGES = {
    "stable": "rust:latest",
    "nightly": "rustlang/rust:nightly",
}

# CircleCI convenience images.
CIMG_REPOS: Dict[Language, str] = {
    Language.RUST: "cimg/rust",
    Language.PYTHON: "cimg/python",
    Language.GO: "cimg/go",
}
CIMG_BASE = "cimg/base:stable"

_VERSION = re.compile(r"\d+(\.\d+)*")


def is_version_number(version: str) -> bool:
    return bool(_VERSION.fullmatch(version))


def docker_hub_image(language: Language, version: str) -> Optional[str]:
    """Image for language/version, or None when no official tag exists."""
    if language is Language.RUST and version in RUST_CHANNEL_IMAGES:
        return RUST_CHANNEL_IMAGES[version]
    if is_version_number(version):
        return f"{OFFICIAL_REPOS[language]}:{version}"
    return None

