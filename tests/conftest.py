"""Shared fixtures: scripted step runner, counting provisioner, sample pipelines."""

from __future__ import annotations

import pytest

from gateci.dsl import on_pull_request, on_push, pipeline, sh
from gateci.errors import ProvisioningError
from gateci.executor import PipelineExecutor
from gateci.model import FailureKind, StepOutcome, StepStatus
from gateci.provision import Provisioner
from gateci.ui.console import Console


class ScriptedRunner:
    """Returns a fixed exit code per step name without spawning processes."""

    def __init__(self, codes: dict[str, int] | None = None, on_execute=None):
        self.codes = codes or {}
        self.on_execute = on_execute
        self.calls: list[str] = []

    def execute(self, step, ctx, cancel):
        self.calls.append(step.name)
        if self.on_execute is not None:
            outcome = self.on_execute(step, ctx, cancel)
            if outcome is not None:
                return outcome
        code = self.codes.get(step.name, 0)
        if code == 0:
            return StepOutcome(step=step, status=StepStatus.SUCCESS, exit_code=0, output=f"{step.name}: ok")
        return StepOutcome(
            step=step,
            status=StepStatus.FAILURE,
            failure=FailureKind.EXIT,
            exit_code=code,
            output=f"{step.name}: exit {code}",
        )


class CountingProvisioner(Provisioner):
    """Real provisioner that counts acquire/release and can be told to fail."""

    def __init__(self, fail: bool = False, **kwargs):
        super().__init__(installer=kwargs.pop("installer", lambda pkgs, ctx, cancel: None), **kwargs)
        self.fail = fail
        self.acquired = 0
        self.released = 0

    def acquire(self, config, cancel=None):
        self.acquired += 1
        if self.fail:
            raise ProvisioningError("disk on fire", working_directory=config.working_directory)
        return super().acquire(config, cancel)

    def release(self, ctx):
        self.released += 1
        super().release(ctx)


@pytest.fixture
def quiet_console():
    return Console(quiet=True)


@pytest.fixture
def gates(tmp_path):
    """fmt / lint / test gates triggered by push to main."""
    return pipeline(
        "gates",
        sh("fmt", "true"),
        sh("lint", "true"),
        sh("test", "true"),
        on=[on_push("main")],
        working_directory=str(tmp_path),
    )


@pytest.fixture
def gates_with_pr(tmp_path):
    return pipeline(
        "gates",
        sh("fmt", "true"),
        sh("lint", "true"),
        sh("test", "true"),
        on=[on_push("main"), on_pull_request("main")],
        working_directory=str(tmp_path),
    )


@pytest.fixture
def make_executor(quiet_console):
    def _make(runner=None, provisioner=None):
        return PipelineExecutor(
            runner=runner or ScriptedRunner(),
            provisioner=provisioner or CountingProvisioner(),
            console=quiet_console,
        )

    return _make
