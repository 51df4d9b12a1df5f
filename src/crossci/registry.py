# registry.py
from __future__ import annotations

import logging
from typing import Dict, List, Union

from .errors import AdapterError, AdapterErrorKind, RegistryError
from .platforms.base import Platform, PlatformAdapter
from .platforms.circleci import CircleCIAdapter
from .platforms.github import GitHubActionsAdapter
from .platforms.gitlab import GitLabCIAdapter
from .platforms.jenkins import JenkinsAdapter

log = logging.getLogger(__name__)

PlatformId = Union[str, Platform]


def platform_id(platform: PlatformId) -> str:
    return platform.value if isinstance(platform, Platform) else str(platform)


class AdapterRegistry:
    """
    Platform id -> adapter. Built once at startup, then frozen.

    Registration checks happen here so a misconfigured adapter fails before
    any pipeline is generated.
    """

    def __init__(self) -> None:
        self._adapters: Dict[str, PlatformAdapter] = {}
        self._frozen = False

    def register(self, adapter: PlatformAdapter) -> None:
        platform = adapter.platform
        if self._frozen:
            raise RegistryError(platform, "registry is frozen")
        if not platform:
            raise RegistryError(type(adapter).__name__, "adapter declares no platform id")
        if platform in self._adapters:
            raise RegistryError(platform, "platform already registered")

        missing = adapter.missing_handlers()
        if missing:
            raise RegistryError(platform, f"adapter has no handler for step kinds: {', '.join(missing)}")

        self._adapters[platform] = adapter
        log.debug("registered adapter %s for %s", type(adapter).__name__, platform)

    def freeze(self) -> "AdapterRegistry":
        self._frozen = True
        return self

    @property
    def frozen(self) -> bool:
        return self._frozen

    def get(self, platform: PlatformId) -> PlatformAdapter:
        pid = platform_id(platform)
        try:
            return self._adapters[pid]
        except KeyError:
            raise AdapterError(
                kind=AdapterErrorKind.UNKNOWN_PLATFORM,
                platform=pid,
                message=f"unknown platform '{pid}' (known: {', '.join(self._adapters) or 'none'})",
            ) from None

    def platforms(self) -> List[str]:
        return list(self._adapters)

    def __contains__(self, platform: object) -> bool:
        if not isinstance(platform, (str, Platform)):
            return False
        return platform_id(platform) in self._adapters

    def __len__(self) -> int:
        return len(self._adapters)


def default_registry() -> AdapterRegistry:
    """A frozen registry with every built-in platform adapter."""
    registry = AdapterRegistry()
    for adapter in (
        GitHubActionsAdapter(),
        GitLabCIAdapter(),
        CircleCIAdapter(),
        JenkinsAdapter(),
    ):
        registry.register(adapter)
    return registry.freeze()
