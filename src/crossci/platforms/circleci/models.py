# platforms/circleci/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

CONFIG_VERSION = 2.1


@dataclass
class CcStep:
    """A CircleCI step: a bare command (`checkout`) or `{command: args}`."""
    command: str
    args: Optional[Dict[str, Any]] = None

    def to_value(self) -> Union[str, Dict[str, Any]]:
        if self.args is None:
            return self.command
        return {self.command: dict(self.args)}


def run_step(name: str, command: str, working_directory: Optional[str] = None,
             environment: Optional[Dict[str, str]] = None) -> CcStep:
    args: Dict[str, Any] = {"name": name, "command": command}
    if working_directory:
        args["working_directory"] = working_directory
    if environment:
        args["environment"] = dict(environment)
    return CcStep("run", args)


@dataclass
class CcJob:
    name: str
    image: str
    steps: List[CcStep] = field(default_factory=list)
    parameters: List[str] = field(default_factory=list)
    environment: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.parameters:
            d["parameters"] = {p: {"type": "string"} for p in self.parameters}
        d["docker"] = [{"image": self.image}]
        if self.environment:
            d["environment"] = dict(self.environment)
        d["steps"] = [s.to_value() for s in self.steps]
        return d


@dataclass
class CcWorkflowJob:
    name: str
    requires: List[str] = field(default_factory=list)
    filters: Dict[str, Any] = field(default_factory=dict)
    matrix: Dict[str, List[str]] = field(default_factory=dict)

    def to_value(self) -> Union[str, Dict[str, Any]]:
        args: Dict[str, Any] = {}
        if self.matrix:
            args["matrix"] = {"parameters": {k: list(v) for k, v in self.matrix.items()}}
        if self.requires:
            args["requires"] = list(self.requires)
        if self.filters:
            args["filters"] = self.filters
        if not args:
            return self.name
        return {self.name: args}


@dataclass
class CcWorkflow:
    name: str
    jobs: List[CcWorkflowJob]
    schedule: Optional[str] = None
    schedule_branches: List[str] = field(default_factory=list)
    when: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {}
        if self.schedule:
            d["triggers"] = [{
                "schedule": {
                    "cron": self.schedule,
                    "filters": {"branches": {"only": list(self.schedule_branches)}},
                },
            }]
        if self.when:
            d["when"] = self.when
        d["jobs"] = [j.to_value() for j in self.jobs]
        return d


@dataclass
class CcConfig:
    jobs: List[CcJob]
    workflows: List[CcWorkflow]

    def to_dict(self) -> Dict[str, Any]:
        return {
            "version": CONFIG_VERSION,
            "jobs": {j.name: j.to_dict() for j in self.jobs},
            "workflows": {w.name: w.to_dict() for w in self.workflows},
        }
