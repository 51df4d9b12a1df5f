# platforms/github/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


@dataclass
class GhStep:
    name: str
    uses: Optional[str] = None
    run: Optional[str] = None
    with_: Dict[str, Any] = field(default_factory=dict)
    env: Dict[str, str] = field(default_factory=dict)
    if_: Optional[str] = None
    working_directory: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name}
        if self.if_:
            d["if"] = self.if_
        if self.uses:
            d["uses"] = self.uses
        if self.with_:
            d["with"] = dict(self.with_)
        if self.run is not None:
            d["run"] = self.run
        if self.working_directory:
            d["working-directory"] = self.working_directory
        if self.env:
            d["env"] = dict(self.env)
        return d


@dataclass
class GhStrategy:
    matrix: Dict[str, List[str]]
    include: List[Dict[str, str]] = field(default_factory=list)
    fail_fast: bool = False

    def to_dict(self) -> Dict[str, Any]:
        m: Dict[str, Any] = {k: list(v) for k, v in self.matrix.items()}
        if self.include:
            m["include"] = [dict(i) for i in self.include]
        return {"fail-fast": self.fail_fast, "matrix": m}


@dataclass
class GhJob:
    id: str
    runs_on: str
    steps: List[GhStep] = field(default_factory=list)
    display_name: Optional[str] = None
    needs: List[str] = field(default_factory=list)
    if_: Optional[str] = None
    permissions: Dict[str, str] = field(default_factory=dict)
    strategy: Optional[GhStrategy] = None
    env: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.display_name:
            d["name"] = self.display_name
        d["runs-on"] = self.runs_on
        if self.needs:
            d["needs"] = list(self.needs)
        if self.if_:
            d["if"] = self.if_
        if self.permissions:
            d["permissions"] = dict(sorted(self.permissions.items()))
        if self.strategy is not None:
            d["strategy"] = self.strategy.to_dict()
        if self.env:
            d["env"] = dict(self.env)
        d["steps"] = [s.to_dict() for s in self.steps]
        return d


@dataclass
class GhOn:
    push_branches: List[str] = field(default_factory=list)
    push_tags: List[str] = field(default_factory=list)
    push: bool = False
    pull_request: bool = False
    pull_request_branches: List[str] = field(default_factory=list)
    schedules: List[str] = field(default_factory=list)
    workflow_dispatch: bool = False

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.push:
            push: Dict[str, Any] = {}
            if self.push_branches:
                push["branches"] = list(self.push_branches)
            if self.push_tags:
                push["tags"] = list(self.push_tags)
            d["push"] = push
        if self.pull_request:
            d["pull_request"] = {"branches": list(self.pull_request_branches or ["**"])}
        if self.schedules:
            d["schedule"] = [{"cron": c} for c in self.schedules]
        if self.workflow_dispatch:
            d["workflow_dispatch"] = None
        return d


@dataclass
class GhWorkflow:
    name: str
    on: GhOn
    jobs: List[GhJob] = field(default_factory=list)
    env: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"name": self.name, "on": self.on.to_dict()}
        if self.env:
            d["env"] = dict(self.env)
        d["jobs"] = {j.id: j.to_dict() for j in self.jobs}
        return d
