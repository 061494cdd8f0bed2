# model.py
from __future__ import annotations

from dataclasses import dataclass, field, replace
from enum import Enum
from types import MappingProxyType
from typing import Any, Dict, Iterable, Mapping, Optional, Tuple

from .errors import CIError, CancellationError, ConfigError, InvalidEvent, ProvisioningError, StepFailure


class EventKind(str, Enum):
    PUSH = "push"
    PULL_REQUEST = "pull_request"


@dataclass(frozen=True)
class Event:
    """
    An incoming repository event.

    push:          branch = pushed branch
    pull_request:  branch = head (source) branch, target_branch = base branch
    """
    kind: str
    branch: str | None = None
    target_branch: str | None = None

    @classmethod
    def push(cls, branch: str) -> Event:
        return cls(kind=EventKind.PUSH.value, branch=branch)

    @classmethod
    def pull_request(cls, target_branch: str, branch: str | None = None) -> Event:
        return cls(kind=EventKind.PULL_REQUEST.value, branch=branch, target_branch=target_branch)

    @classmethod
    def from_github(cls, event_name: str, payload: Dict[str, Any]) -> Event:
        """Build an Event from a GitHub webhook style payload."""
        if event_name == EventKind.PUSH.value:
            ref = payload.get("ref")
            if not ref or not isinstance(ref, str):
                raise InvalidEvent("push payload has no 'ref'")
            return cls.push(_strip_ref(ref))

        if event_name == EventKind.PULL_REQUEST.value:
            pr = _section(payload, "pull_request")
            base = _section(pr, "base", "pull_request.base").get("ref")
            head = _section(pr, "head", "pull_request.head").get("ref")
            if not base or not isinstance(base, str):
                raise InvalidEvent("pull_request payload has no 'pull_request.base.ref'")
            return cls.pull_request(_strip_ref(base), branch=_strip_ref(head) if isinstance(head, str) and head else None)

        raise InvalidEvent(f"unsupported event kind: {event_name!r}")

    def describe(self) -> str:
        if self.kind == EventKind.PULL_REQUEST.value:
            return f"pull_request {self.branch or '?'} -> {self.target_branch}"
        return f"{self.kind} {self.branch}"


def _strip_ref(ref: str) -> str:
    prefix = "refs/heads/"
    return ref[len(prefix):] if ref.startswith(prefix) else ref


def _section(payload: Dict[str, Any], key: str, path: Optional[str] = None) -> Dict[str, Any]:
    value = payload.get(key) or {}
    if not isinstance(value, dict):
        raise InvalidEvent(f"event payload field '{path or key}' must be an object")
    return value


@dataclass(frozen=True)
class TriggerRule:
    """Activation rule: event kind + exact branch names."""
    event: str
    branches: frozenset[str]

    def __post_init__(self) -> None:
        if self.event not in {k.value for k in EventKind}:
            raise ConfigError(f"unknown trigger event: {self.event!r}")
        # accept any iterable of names, store as frozenset
        object.__setattr__(self, "branches", frozenset(self.branches))
        if not self.branches:
            raise ConfigError(f"trigger rule for {self.event!r} must list at least one branch")


@dataclass(frozen=True)
class Step:
    """A single command (quality gate) inside a pipeline."""
    name: str
    run: str
    index: int = 0
    cwd: str | None = None
    shell: bool = True


@dataclass(frozen=True)
class ExecConfig:
    """Shared, read-only execution configuration for every step of a pipeline."""
    working_directory: str = "."
    env: Mapping[str, str] = field(default_factory=dict, hash=False)
    packages: Tuple[str, ...] = ()

    def __post_init__(self) -> None:
        object.__setattr__(self, "env", MappingProxyType({str(k): str(v) for k, v in self.env.items()}))
        object.__setattr__(self, "packages", tuple(self.packages))


@dataclass(frozen=True)
class Pipeline:
    """
    A linear CI pipeline: triggers + ordered steps + execution config.

    Loaded once and shared read-only by every run.
    """
    name: str
    triggers: Tuple[TriggerRule, ...]
    steps: Tuple[Step, ...]
    config: ExecConfig = field(default_factory=ExecConfig)

    def __post_init__(self) -> None:
        if not self.steps:
            raise ConfigError(f"pipeline {self.name!r} must have at least one step")
        if not self.triggers:
            raise ConfigError(f"pipeline {self.name!r} must have at least one trigger rule")

        indexes = [s.index for s in self.steps]
        if len(set(indexes)) != len(indexes):
            dupes = sorted({i for i in indexes if indexes.count(i) > 1})
            raise ConfigError(f"pipeline {self.name!r} has steps sharing an ordinal: {dupes}")

        object.__setattr__(self, "triggers", tuple(self.triggers))
        object.__setattr__(self, "steps", tuple(sorted(self.steps, key=lambda s: s.index)))


# ----------------------------------------------------------------------
# Run results
# ----------------------------------------------------------------------

class StepStatus(str, Enum):
    SUCCESS = "success"
    FAILURE = "failure"
    SKIPPED = "skipped"


class FailureKind(str, Enum):
    EXIT = "exit"
    SIGNAL = "signal"
    NOT_STARTED = "not_started"
    CANCELLED = "cancelled"


@dataclass(frozen=True)
class StepOutcome:
    step: Step
    status: StepStatus
    failure: Optional[FailureKind] = None
    exit_code: Optional[int] = None
    signal: Optional[int] = None
    output: str = ""
    duration: float = 0.0

    @classmethod
    def skipped(cls, step: Step) -> StepOutcome:
        return cls(step=step, status=StepStatus.SKIPPED)

    @property
    def ok(self) -> bool:
        return self.status is StepStatus.SUCCESS

    def summary(self) -> str:
        if self.status is StepStatus.SUCCESS:
            return "success"
        if self.status is StepStatus.SKIPPED:
            return "skipped"
        if self.failure is FailureKind.EXIT:
            return f"failed (exit={self.exit_code})"
        if self.failure is FailureKind.SIGNAL:
            return f"failed (signal={self.signal})"
        if self.failure is FailureKind.CANCELLED:
            return "failed (cancelled)"
        return "failed (could not start)"


class RunStatus(str, Enum):
    NOT_TRIGGERED = "not_triggered"
    SUCCEEDED = "succeeded"
    FAILED = "failed"


@dataclass(frozen=True)
class RunResult:
    pipeline: Pipeline
    event: Event
    status: RunStatus
    outcomes: Tuple[StepOutcome, ...] = ()
    failed_index: Optional[int] = None
    error_kind: Optional[str] = None
    message: str = ""

    @property
    def ok(self) -> bool:
        return self.status is not RunStatus.FAILED

    @property
    def exit_code(self) -> int:
        return 0 if self.ok else 1

    @property
    def executed(self) -> Tuple[StepOutcome, ...]:
        return tuple(o for o in self.outcomes if o.status is not StepStatus.SKIPPED)

    @property
    def failed_step(self) -> Optional[Step]:
        if self.failed_index is None:
            return None
        return self.pipeline.steps[self.failed_index]

    def raise_for_status(self) -> None:
        """Re-raise a failed run as the matching CIError subclass."""
        if self.ok:
            return
        step = self.failed_step
        err: CIError
        if self.error_kind == "invalid_event":
            err = InvalidEvent(self.message)
        elif self.error_kind == "provisioning":
            err = ProvisioningError(self.message)
        elif self.error_kind == "cancelled":
            err = CancellationError(self.message, step=step.name if step else None)
        else:
            err = StepFailure(
                step=step.name if step else "?",
                message=self.message,
                index=self.failed_index,
            )
        raise err


def number_steps(steps: Iterable[Step]) -> Tuple[Step, ...]:
    """Assign ordinals in declaration order."""
    return tuple(replace(s, index=i) for i, s in enumerate(steps))
