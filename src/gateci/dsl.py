# src/gateci/dsl.py
from __future__ import annotations

from typing import Dict, Iterable, List, Optional

from .errors import ConfigError
from .model import ExecConfig, Pipeline, Step, TriggerRule, number_steps


# ---------------------------------------------------------------------
# Step + trigger helpers
# ---------------------------------------------------------------------

def sh(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a shell step."""
    return Step(name=name, run=cmd, cwd=cwd)


def exe(name: str, cmd: str, *, cwd: str | None = None) -> Step:
    """Create a step that is exec'd directly (no shell)."""
    return Step(name=name, run=cmd, cwd=cwd, shell=False)


def on_push(*branches: str) -> TriggerRule:
    return TriggerRule(event="push", branches=frozenset(branches))


def on_pull_request(*branches: str) -> TriggerRule:
    return TriggerRule(event="pull_request", branches=frozenset(branches))


# ---------------------------------------------------------------------
# Functional pipeline helper
# ---------------------------------------------------------------------

def pipeline(
    name: str,
    *steps: Step,  # allow: pipeline("ci", sh(...), sh(...))
    on: Optional[Iterable[TriggerRule]] = None,
    working_directory: str = ".",
    env: Optional[Dict[str, str]] = None,
    packages: Optional[List[str]] = None,
) -> Pipeline:
    """
    Build a Pipeline; steps are numbered in the order given.

    Example:
        def workflow():
            return pipeline(
                "ci",
                sh("fmt", "cargo fmt --check"),
                sh("test", "cargo test"),
                on=[on_push("main"), on_pull_request("main")],
            )
    """
    if not steps:
        raise ConfigError(f"pipeline({name!r}) must have at least one step")

    return Pipeline(
        name=name,
        triggers=tuple(on or ()),
        steps=number_steps(steps),
        config=ExecConfig(
            working_directory=working_directory,
            env=env or {},
            packages=tuple(packages or ()),
        ),
    )


# ---------------------------------------------------------------------
# Builder API
# ---------------------------------------------------------------------

class PipelineBuilder:
    def __init__(self, name: str):
        self.name = name
        self._triggers: list[TriggerRule] = []
        self._steps: list[Step] = []
        self._env: dict[str, str] = {}
        self._packages: list[str] = []
        self._working_directory = "."

    def on_push(self, *branches: str):
        self._triggers.append(on_push(*branches))
        return self

    def on_pull_request(self, *branches: str):
        self._triggers.append(on_pull_request(*branches))
        return self

    def step(self, name: str, run: str, cwd: str | None = None):
        self._steps.append(Step(name=name, run=run, cwd=cwd))
        return self

    def with_env(self, **env):
        # force values to str for env compatibility
        self._env.update({k: str(v) for k, v in env.items()})
        return self

    def install(self, *packages: str):
        self._packages.extend(packages)
        return self

    def in_directory(self, path: str):
        self._working_directory = path
        return self

    def build(self) -> Pipeline:
        if not self._steps:
            raise ConfigError(f"Pipeline '{self.name}' has no steps")
        return pipeline(
            self.name,
            *self._steps,
            on=self._triggers,
            working_directory=self._working_directory,
            env=self._env,
            packages=self._packages,
        )


def build(name: str) -> PipelineBuilder:
    """Convenience: build('ci').on_push('main').step(...).build()"""
    return PipelineBuilder(name)
