# platforms/__init__.py
from __future__ import annotations

from .base import GeneratedFile, JobVariant, Platform, PlatformAdapter

__all__ = ["GeneratedFile", "JobVariant", "Platform", "PlatformAdapter"]
