# config.py
from __future__ import annotations

import runpy
import threading
from pathlib import Path
from typing import Any, Dict, List, Optional, Union

import yaml
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from .errors import ConfigError
from .model import ExecConfig, Pipeline, Step, TriggerRule, number_steps


# ----------------------------------------------------------------------
# Python workflow files
# ----------------------------------------------------------------------

def load_python_workflow(path: Path) -> Pipeline:
    """
    Load a pipeline from a python file.

    The file must define either:
      - workflow() -> Pipeline
      - PIPELINE = Pipeline(...)
    """
    module_name = f"gateci_workflow_{path.stem}"
    try:
        globals_dict = runpy.run_path(str(path), run_name=module_name)
    except ConfigError:
        raise
    except Exception as e:
        raise ConfigError(f"error while executing {path.name}: {type(e).__name__}: {e}", path=str(path)) from e

    result = None
    if "workflow" in globals_dict and callable(globals_dict["workflow"]):
        result = globals_dict["workflow"]()
    elif "PIPELINE" in globals_dict:
        result = globals_dict["PIPELINE"]

    if not isinstance(result, Pipeline):
        raise ConfigError(
            "Workflow must return/define a Pipeline. "
            "Define workflow() -> Pipeline or PIPELINE = pipeline(...).",
            path=str(path),
        )
    return result


# ----------------------------------------------------------------------
# YAML workflow files (GitHub Actions shape, single job)
# ----------------------------------------------------------------------

EnvValue = Union[str, int, float, bool]


class _Doc(BaseModel):
    model_config = ConfigDict(extra="ignore", populate_by_name=True)


class BranchFilter(_Doc):
    branches: List[str] = Field(min_length=1)


class Triggers(_Doc):
    push: Optional[BranchFilter] = None
    pull_request: Optional[BranchFilter] = None


class RunDefaults(_Doc):
    working_directory: str = Field(".", alias="working-directory")


class Defaults(_Doc):
    run: RunDefaults = Field(default_factory=RunDefaults)


class StepDoc(_Doc):
    name: Optional[str] = None
    run: Optional[str] = None
    uses: Optional[str] = None
    working_directory: Optional[str] = Field(None, alias="working-directory")
    condition: Optional[str] = Field(None, alias="if")


class JobDoc(_Doc):
    runs_on: Optional[str] = Field(None, alias="runs-on")
    packages: List[str] = Field(default_factory=list)
    env: Dict[str, EnvValue] = Field(default_factory=dict)
    strategy: Optional[Dict[str, Any]] = None
    steps: List[StepDoc] = Field(min_length=1)


class WorkflowDoc(_Doc):
    name: str = "CI"
    on: Triggers
    defaults: Defaults = Field(default_factory=Defaults)
    env: Dict[str, EnvValue] = Field(default_factory=dict)
    packages: List[str] = Field(default_factory=list)
    jobs: Dict[str, JobDoc] = Field(min_length=1)


def _step_name(doc: StepDoc) -> str:
    if doc.name:
        return doc.name
    first = (doc.run or "").strip().splitlines()[0]
    return f"Run {first}"


def pipeline_from_doc(doc: WorkflowDoc, *, base_dir: Path | None = None) -> Pipeline:
    if len(doc.jobs) != 1:
        raise ConfigError(
            f"only single-job pipelines are supported, found {len(doc.jobs)} jobs",
            jobs=", ".join(doc.jobs),
        )
    job_name, job = next(iter(doc.jobs.items()))
    if job.strategy:
        raise ConfigError(f"job {job_name!r}: matrix/strategy is not supported")

    triggers = []
    if doc.on.push:
        triggers.append(TriggerRule(event="push", branches=frozenset(doc.on.push.branches)))
    if doc.on.pull_request:
        triggers.append(TriggerRule(event="pull_request", branches=frozenset(doc.on.pull_request.branches)))
    if not triggers:
        raise ConfigError("workflow needs an 'on.push' or 'on.pull_request' trigger")

    steps = []
    for pos, s in enumerate(job.steps):
        if s.condition is not None:
            raise ConfigError(f"step {pos + 1}: 'if' conditions are not supported")
        if s.uses:
            # repository checkout is supplied by the caller
            continue
        if not s.run or not s.run.strip():
            raise ConfigError(f"step {pos + 1} has no 'run' command")
        steps.append(Step(name=_step_name(s), run=s.run.strip(), cwd=s.working_directory))

    workdir = doc.defaults.run.working_directory
    if base_dir is not None and not Path(workdir).is_absolute():
        workdir = str((base_dir / workdir).resolve())

    env = {**doc.env, **job.env}
    return Pipeline(
        name=f"{doc.name}/{job_name}",
        triggers=tuple(triggers),
        steps=number_steps(steps),
        config=ExecConfig(
            working_directory=workdir,
            env={k: _env_str(v) for k, v in env.items()},
            packages=tuple(doc.packages) + tuple(job.packages),
        ),
    )


def _env_str(value: EnvValue) -> str:
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def load_yaml_workflow(path: Path) -> Pipeline:
    try:
        raw = yaml.safe_load(path.read_text())
    except yaml.YAMLError as e:
        raise ConfigError(f"invalid YAML in {path.name}: {e}", path=str(path)) from e

    if not isinstance(raw, dict):
        raise ConfigError(f"{path.name} must contain a mapping", path=str(path))
    # YAML 1.1 reads a bare `on:` key as boolean true
    if True in raw and "on" not in raw:
        raw["on"] = raw.pop(True)

    try:
        doc = WorkflowDoc.model_validate(raw)
    except ValidationError as e:
        raise ConfigError(
            f"invalid workflow {path.name}",
            path=str(path),
            errors="; ".join(f"{'.'.join(map(str, err['loc']))}: {err['msg']}" for err in e.errors()),
        ) from e
    return pipeline_from_doc(doc, base_dir=path.parent)


# ----------------------------------------------------------------------
# Entry point + process-wide registry
# ----------------------------------------------------------------------

def load_pipeline(path: str | Path) -> Pipeline:
    """Load a pipeline from a .py or .yml/.yaml workflow file."""
    wf_path = Path(path).expanduser().resolve()
    if not wf_path.exists():
        raise ConfigError(f"Workflow file not found: {wf_path}")
    if wf_path.suffix == ".py":
        return load_python_workflow(wf_path)
    if wf_path.suffix in (".yml", ".yaml"):
        return load_yaml_workflow(wf_path)
    raise ConfigError(f"Workflow must be a .py or .yml file, got: {wf_path.name}")


class PipelineRegistry:
    """
    Load-once cache of pipelines keyed by workflow path.

    Pipelines are immutable, so every caller (and every concurrent run)
    shares the same instance; the lock only guards the first load.
    """

    def __init__(self) -> None:
        self._pipelines: Dict[Path, Pipeline] = {}
        self._lock = threading.Lock()

    def get(self, path: str | Path) -> Pipeline:
        key = Path(path).expanduser().resolve()
        with self._lock:
            if key not in self._pipelines:
                self._pipelines[key] = load_pipeline(key)
            return self._pipelines[key]

    def clear(self) -> None:
        with self._lock:
            self._pipelines.clear()


registry = PipelineRegistry()


def get_pipeline(path: str | Path) -> Pipeline:
    return registry.get(path)
