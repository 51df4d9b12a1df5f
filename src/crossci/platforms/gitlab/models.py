# platforms/gitlab/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union


@dataclass
class GlRule:
    if_: str
    when: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"if": self.if_}
        if self.when:
            d["when"] = self.when
        return d


@dataclass
class GlNeed:
    job: str
    optional: bool = False

    def to_value(self) -> Union[str, Dict[str, Any]]:
        if self.optional:
            return {"job": self.job, "optional": True}
        return self.job


@dataclass
class GlCache:
    key: str
    paths: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return {"key": self.key, "paths": list(self.paths)}


@dataclass
class GlArtifacts:
    name: Optional[str] = None
    paths: List[str] = field(default_factory=list)
    coverage_report: Optional[Dict[str, str]] = None
    expire_in: Optional[str] = None

    def empty(self) -> bool:
        return not self.paths and self.coverage_report is None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.name:
            d["name"] = self.name
        if self.paths:
            d["paths"] = list(self.paths)
        if self.expire_in:
            d["expire_in"] = self.expire_in
        if self.coverage_report:
            d["reports"] = {"coverage_report": dict(self.coverage_report)}
        return d


@dataclass
class GlRelease:
    tag_name: str
    description: str
    links: List[Dict[str, str]] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"tag_name": self.tag_name, "description": self.description}
        if self.links:
            d["assets"] = {"links": [dict(l) for l in self.links]}
        return d


@dataclass
class GlJob:
    name: str
    stage: str
    script: List[str]
    image: Optional[str] = None
    services: List[str] = field(default_factory=list)
    tags: List[str] = field(default_factory=list)
    needs: List[GlNeed] = field(default_factory=list)
    rules: List[GlRule] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)
    cache: List[GlCache] = field(default_factory=list)
    coverage: Optional[str] = None
    artifacts: GlArtifacts = field(default_factory=GlArtifacts)
    release: Optional[GlRelease] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.image:
            d["image"] = self.image
        if self.services:
            d["services"] = list(self.services)
        d["stage"] = self.stage
        if self.tags:
            d["tags"] = list(self.tags)
        # explicit (possibly empty) needs: stages never add ordering
        d["needs"] = [n.to_value() for n in self.needs]
        if self.rules:
            d["rules"] = [r.to_dict() for r in self.rules]
        if self.variables:
            d["variables"] = dict(self.variables)
        if self.cache:
            d["cache"] = [c.to_dict() for c in self.cache]
        d["script"] = list(self.script)
        if self.coverage:
            d["coverage"] = self.coverage
        if not self.artifacts.empty():
            d["artifacts"] = self.artifacts.to_dict()
        if self.release is not None:
            d["release"] = self.release.to_dict()
        return d


@dataclass
class GlPipeline:
    stages: List[str]
    jobs: List[GlJob]
    workflow_rules: List[GlRule] = field(default_factory=list)
    variables: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.workflow_rules:
            d["workflow"] = {"rules": [r.to_dict() for r in self.workflow_rules]}
        d["stages"] = list(self.stages)
        if self.variables:
            d["variables"] = dict(self.variables)
        for job in self.jobs:
            d[job.name] = job.to_dict()
        return d
