# errors.py
from __future__ import annotations

from dataclasses import dataclass, field


@dataclass
class CIError(Exception):
    """
    Structured CI error with enough context for:
      - clean CLI output
      - storing on a RunResult
      - debugging without full tracebacks
    """
    kind: str
    message: str
    step: str | None = None
    details: dict = field(default_factory=dict)

    def __str__(self) -> str:
        lines = [f"{self.kind}: {self.message}"]
        if self.step:
            lines.append(f"step={self.step}")
        for k, v in self.details.items():
            lines.append(f"{k}={v}")
        return "\n".join(lines)


class InvalidEvent(CIError):
    """Malformed trigger event (unknown kind, missing branch)."""

    def __init__(self, message: str, **details):
        super().__init__(kind="invalid_event", message=message, details=details)


class ProvisioningError(CIError):
    """Execution environment could not be set up."""

    def __init__(self, message: str, **details):
        super().__init__(kind="provisioning", message=message, details=details)


class StepFailure(CIError):
    def __init__(self, step: str, message: str, **details):
        super().__init__(kind="step", message=message, step=step, details=details)


class CancellationError(CIError):
    def __init__(self, message: str = "run was cancelled", step: str | None = None, **details):
        super().__init__(kind="cancelled", message=message, step=step, details=details)


class ConfigError(CIError):
    """Workflow definition could not be loaded or is invalid."""

    def __init__(self, message: str, **details):
        super().__init__(kind="config", message=message, details=details)
