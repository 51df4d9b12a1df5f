# platforms/jenkins/models.py
from __future__ import annotations

from dataclasses import dataclass, field
from typing import Dict, List, Optional, Union

INDENT = "    "


def groovy_str(value: str) -> str:
    """Single-quoted Groovy literal (no interpolation); triple quotes when multi-line."""
    escaped = value.replace("\\", "\\\\").replace("'", "\\'")
    if "\n" in value:
        return "'''" + escaped + "'''"
    return "'" + escaped + "'"


class _Writer:
    def __init__(self) -> None:
        self.lines: List[str] = []
        self.depth = 0

    def line(self, text: str) -> None:
        # multi-line literals keep their own layout
        self.lines.append(INDENT * self.depth + text)

    def open(self, text: str) -> None:
        self.line(text + " {")
        self.depth += 1

    def close(self) -> None:
        self.depth -= 1
        self.line("}")

    def text(self) -> str:
        return "\n".join(self.lines) + "\n"


@dataclass
class JkStep:
    """A pipeline step; with a body it is a block step (dir, withCredentials, ...)."""
    text: str
    body: List["JkStep"] = field(default_factory=list)

    def write(self, w: _Writer) -> None:
        if not self.body:
            w.line(self.text)
            return
        w.open(self.text)
        for s in self.body:
            s.write(w)
        w.close()


@dataclass
class JkAgent:
    image: Optional[str] = None
    label: Optional[str] = None

    def write(self, w: _Writer) -> None:
        if self.image is None:
            w.line(f"agent {{ label {groovy_str(self.label or '')} }}")
            return
        w.open("agent")
        w.open("docker")
        w.line(f"image {groovy_str(self.image)}")
        if self.label:
            w.line(f"label {groovy_str(self.label)}")
        w.close()
        w.close()


@dataclass
class JkWhen:
    """`when` block; conditions are ANDed. Each condition is Groovy text."""
    conditions: List[str]

    def write(self, w: _Writer) -> None:
        w.open("when")
        w.line("beforeAgent true")
        if len(self.conditions) == 1:
            _write_condition(w, self.conditions[0])
        else:
            w.open("allOf")
            for c in self.conditions:
                _write_condition(w, c)
            w.close()
        w.close()


def _write_condition(w: _Writer, condition: str) -> None:
    for line in condition.split("\n"):
        w.line(line)


@dataclass
class JkStage:
    name: str
    steps: List[JkStep]
    agent: Optional[JkAgent] = None
    when: Optional[JkWhen] = None
    environment: Dict[str, str] = field(default_factory=dict)

    def write(self, w: _Writer) -> None:
        w.open(f"stage({groovy_str(self.name)})")
        if self.agent is not None:
            self.agent.write(w)
        if self.when is not None:
            self.when.write(w)
        if self.environment:
            w.open("environment")
            for k, v in self.environment.items():
                w.line(f"{k} = {groovy_str(v)}")
            w.close()
        w.open("steps")
        for s in self.steps:
            s.write(w)
        w.close()
        w.close()


@dataclass
class JkParallel:
    name: str
    stages: List[JkStage]

    def write(self, w: _Writer) -> None:
        w.open(f"stage({groovy_str(self.name)})")
        w.open("parallel")
        for s in self.stages:
            s.write(w)
        w.close()
        w.close()


@dataclass
class JkPipeline:
    stages: List[Union[JkStage, JkParallel]]
    environment: Dict[str, str] = field(default_factory=dict)
    crons: List[str] = field(default_factory=list)
    header: Optional[str] = None

    def render(self) -> str:
        w = _Writer()
        if self.header:
            w.line(f"// {self.header}")
        w.open("pipeline")
        w.line("agent any")
        if self.crons:
            w.open("triggers")
            spec = "\n".join(self.crons)
            w.line(f"cron({groovy_str(spec)})")
            w.close()
        if self.environment:
            w.open("environment")
            for k, v in self.environment.items():
                w.line(f"{k} = {groovy_str(v)}")
            w.close()
        w.open("stages")
        for s in self.stages:
            s.write(w)
        w.close()
        w.close()
        return w.text()
