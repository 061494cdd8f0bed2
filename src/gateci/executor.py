# executor.py
from __future__ import annotations

import os
from concurrent.futures import ThreadPoolExecutor
from enum import Enum
from typing import List, Optional, Sequence

from .errors import CIError, CancellationError, InvalidEvent, ProvisioningError
from .model import (
    Event,
    FailureKind,
    Pipeline,
    RunResult,
    RunStatus,
    StepOutcome,
    StepStatus,
)
from .provision import ExecutionContext, Provisioner
from .step_runner import CancelToken, CommandRunner, SubprocessRunner
from .trigger import should_trigger
from .ui.console import Console, get_console


class RunState(str, Enum):
    PENDING = "pending"
    NOT_TRIGGERED = "not_triggered"
    PROVISIONING = "provisioning"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


TERMINAL = {RunState.NOT_TRIGGERED, RunState.SUCCEEDED, RunState.FAILED}

_TRANSITIONS = {
    RunState.PENDING: {RunState.NOT_TRIGGERED, RunState.PROVISIONING, RunState.FAILED},
    RunState.PROVISIONING: {RunState.RUNNING, RunState.FAILED},
    RunState.RUNNING: {RunState.RUNNING, RunState.SUCCEEDED, RunState.FAILED},
}


class RunMachine:
    """
    Per-run state machine:

        Pending -> Provisioning -> Running(0..N-1) -> Succeeded | Failed(i)
        Pending -> NotTriggered
        Pending | Provisioning -> Failed (no step index)

    Owns the outcome bookkeeping so success / failure / skipped entries are
    recorded the same way no matter how the run ends.
    """

    def __init__(self, pipeline: Pipeline, event: Event):
        self.pipeline = pipeline
        self.event = event
        self.state = RunState.PENDING
        self.index: Optional[int] = None
        self.outcomes: List[StepOutcome] = []

    def to(self, state: RunState, index: Optional[int] = None) -> None:
        allowed = _TRANSITIONS.get(self.state, set())
        if state not in allowed:
            raise RuntimeError(f"illegal run transition {self.state.value} -> {state.value}")
        if state is RunState.RUNNING:
            expected = 0 if self.state is RunState.PROVISIONING else (self.index or 0) + 1
            if index != expected:
                raise RuntimeError(f"steps must run in order: expected {expected}, got {index}")
        self.state = state
        if index is not None:
            self.index = index

    # ---- terminal results ----

    def not_triggered(self) -> RunResult:
        self.to(RunState.NOT_TRIGGERED)
        return self._result(RunStatus.NOT_TRIGGERED)

    def abort(self, err: CIError) -> RunResult:
        """Fail before any step ran (invalid event, provisioning, early cancel)."""
        self.to(RunState.FAILED)
        self.index = None
        return self._result(RunStatus.FAILED, error_kind=err.kind, message=str(err))

    def record(self, outcome: StepOutcome) -> bool:
        """Record the current step's outcome. Returns True when the run may continue."""
        if self.state is not RunState.RUNNING or self.index is None:
            raise RuntimeError("no step is running")
        self.outcomes.append(outcome)
        if outcome.ok:
            return True
        for step in self.pipeline.steps[self.index + 1:]:
            self.outcomes.append(StepOutcome.skipped(step))
        return False

    def finish(self) -> RunResult:
        last = self.outcomes[-1] if self.outcomes else None
        if last is not None and last.ok and len(self.outcomes) == len(self.pipeline.steps):
            self.to(RunState.SUCCEEDED)
            return self._result(RunStatus.SUCCEEDED)

        failed_at = self.index
        failed = self.outcomes[failed_at]
        self.to(RunState.FAILED)
        total = len(self.pipeline.steps)
        kind = "cancelled" if failed.failure is FailureKind.CANCELLED else "step"
        return self._result(
            RunStatus.FAILED,
            failed_index=failed_at,
            error_kind=kind,
            message=f"step {failed_at + 1} of {total} ({failed.step.name}) {failed.summary()}",
        )

    def _result(
        self,
        status: RunStatus,
        failed_index: Optional[int] = None,
        error_kind: Optional[str] = None,
        message: str = "",
    ) -> RunResult:
        return RunResult(
            pipeline=self.pipeline,
            event=self.event,
            status=status,
            outcomes=tuple(self.outcomes),
            failed_index=failed_index,
            error_kind=error_kind,
            message=message,
        )


class PipelineExecutor:
    """Drives one pipeline run at a time per call; safe to share across threads."""

    def __init__(
        self,
        runner: CommandRunner | None = None,
        provisioner: Provisioner | None = None,
        console: Console | None = None,
    ):
        self.runner = runner or SubprocessRunner()
        self.provisioner = provisioner or Provisioner()
        self._console = console

    @property
    def console(self) -> Console:
        return self._console or get_console()

    def run(self, pipeline: Pipeline, event: Event, cancel: CancelToken | None = None) -> RunResult:
        """
        Run `pipeline` for `event`. Never raises for CI-level failures:
        every outcome (including a rejected event) is described by the
        returned RunResult.
        """
        cancel = cancel or CancelToken()
        machine = RunMachine(pipeline, event)
        console = self.console

        try:
            triggered = should_trigger(pipeline, event)
        except InvalidEvent as e:
            console.print_debug(f"rejected event: {e}")
            return machine.abort(e)

        if not triggered:
            console.print_not_triggered(pipeline.name, event.describe())
            return machine.not_triggered()

        console.print_run_started(pipeline.name, event.describe(), len(pipeline.steps))
        machine.to(RunState.PROVISIONING)
        if cancel.cancelled:
            return machine.abort(CancellationError("run was cancelled before provisioning"))

        try:
            ctx = self.provisioner.acquire(pipeline.config, cancel)
        except CancellationError as e:
            console.print_error("Run cancelled", e.message)
            return machine.abort(e)
        except ProvisioningError as e:
            console.print_error("Provisioning failed", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
            return machine.abort(e)
        except Exception as e:
            console.print_exception(e)
            return machine.abort(ProvisioningError(f"{type(e).__name__}: {e}"))

        try:
            return self._run_steps(machine, ctx, cancel)
        finally:
            self.provisioner.release(ctx)

    def _run_steps(self, machine: RunMachine, ctx: ExecutionContext, cancel: CancelToken) -> RunResult:
        steps = machine.pipeline.steps
        total = len(steps)
        console = self.console

        for i, step in enumerate(steps):
            machine.to(RunState.RUNNING, i)

            if cancel.cancelled:
                outcome = StepOutcome(
                    step=step,
                    status=StepStatus.FAILURE,
                    failure=FailureKind.CANCELLED,
                    output="[cancelled] run was cancelled before this step started",
                )
            else:
                console.print_step(i, total, step)
                try:
                    outcome = self.runner.execute(step, ctx, cancel)
                except Exception as e:
                    outcome = StepOutcome(
                        step=step,
                        status=StepStatus.FAILURE,
                        failure=FailureKind.NOT_STARTED,
                        output=f"runner error: {type(e).__name__}: {e}",
                    )

            console.print_step_result(outcome)
            if not machine.record(outcome):
                for skipped in steps[i + 1:]:
                    console.print_step_skipped(skipped)
                break

        return machine.finish()


def run_many(
    executor: PipelineExecutor,
    pipeline: Pipeline,
    events: Sequence[Event],
    *,
    max_workers: int | None = None,
    cancel: CancelToken | None = None,
) -> List[RunResult]:
    """Run independent events concurrently; results come back in event order."""
    if max_workers is None:
        c = os.cpu_count() or 2
        max_workers = max(1, c - 1)

    with ThreadPoolExecutor(max_workers=max_workers) as pool:
        return list(pool.map(lambda ev: executor.run(pipeline, ev, cancel), events))


def run(pipeline: Pipeline, event: Event, cancel: CancelToken | None = None) -> RunResult:
    """Run with the default subprocess runner and provisioner."""
    return PipelineExecutor().run(pipeline, event, cancel)
