# step_runner.py
from __future__ import annotations

import os
import re
import shlex
import signal
import subprocess
import threading
import time
from typing import Optional, Protocol

from . import settings
from .model import FailureKind, Step, StepOutcome, StepStatus
from .process import wait_or_cancel
from .provision import ExecutionContext


TOOL_HINTS = {
    "cargo": "Install the Rust toolchain (rustup) or fix PATH.",
    "npm": "Install Node.js (includes npm) or fix PATH.",
    "node": "Install Node.js or fix PATH.",
    "pytest": "Install pytest (e.g., pip install pytest).",
    "ruff": "Install ruff (e.g., pip install ruff).",
    "docker": "Install Docker and ensure the daemon is running.",
    "python3": "Install Python 3 or fix PATH (python3).",
    "make": "Install make (e.g., apt-get install -y build-essential).",
}

# POSIX shell conventions for "could not start". The exit code alone is not
# enough: a started command may exit 127 itself, so the shell's own
# diagnostic must be present too.
_SHELL_NOT_FOUND = 127
_SHELL_NOT_EXECUTABLE = 126

# dash: "/bin/sh: 1: foo: not found"  bash: "/bin/sh: line 1: foo: command not found"
_SHELL_DIAGNOSTIC = r"^\S*sh: (?:(?:line )?\d+: )?(?P<tool>[^:\n]+): "
_NOT_FOUND_RE = re.compile(_SHELL_DIAGNOSTIC + r"(?:command )?not found$", re.MULTILINE)
_NOT_EXECUTABLE_RE = re.compile(
    _SHELL_DIAGNOSTIC + r"(?:Permission denied|Is a directory|cannot execute.*)$", re.MULTILINE
)


class CancelToken:
    """Thread-safe cancellation flag shared between a caller and a run."""

    def __init__(self) -> None:
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def wait(self, timeout: float | None = None) -> bool:
        return self._event.wait(timeout)


class CommandRunner(Protocol):
    """Executes one step inside a context and reports its outcome."""

    def execute(self, step: Step, ctx: ExecutionContext, cancel: CancelToken) -> StepOutcome:
        ...


def tool_hint(command: str) -> str:
    try:
        words = shlex.split(command)
    except ValueError:
        words = command.split()
    tool = os.path.basename(words[0]) if words else ""
    return TOOL_HINTS.get(tool, f"Install {tool or 'the command'} or fix PATH.")


def _tail(text: str) -> str:
    return text[-settings.OUTPUT_LIMIT:] if text else ""


def _shell_could_not_start(code: int, output: str) -> Optional[str]:
    """
    Name of the program the shell failed to run, or None when the command
    itself started and chose its own exit code.
    """
    if code == _SHELL_NOT_FOUND:
        m = _NOT_FOUND_RE.search(output)
    elif code == _SHELL_NOT_EXECUTABLE:
        m = _NOT_EXECUTABLE_RE.search(output)
    else:
        return None
    return m.group("tool").strip() if m else None


class SubprocessRunner:
    """Runs steps as real processes (shell by default), one at a time."""

    def __init__(
        self,
        poll_interval: float | None = None,
        kill_grace: float | None = None,
    ):
        self.poll_interval = settings.POLL_INTERVAL if poll_interval is None else poll_interval
        self.kill_grace = settings.KILL_GRACE if kill_grace is None else kill_grace

    def execute(self, step: Step, ctx: ExecutionContext, cancel: CancelToken) -> StepOutcome:
        cwd = (ctx.working_directory / (step.cwd or ".")).resolve()
        args = step.run if step.shell else shlex.split(step.run)
        started = time.monotonic()

        try:
            proc = subprocess.Popen(
                args,
                shell=step.shell,
                cwd=str(cwd),
                env=ctx.env,
                stdout=subprocess.PIPE,
                stderr=subprocess.STDOUT,
                text=True,
                errors="replace",
                start_new_session=True,  # own process group, so cancel reaches children
            )
        except OSError as e:
            return StepOutcome(
                step=step,
                status=StepStatus.FAILURE,
                failure=FailureKind.NOT_STARTED,
                output=f"could not start: {e}\nHint: {tool_hint(step.run)}",
                duration=time.monotonic() - started,
            )

        output, cancelled = wait_or_cancel(proc, cancel, self.poll_interval, self.kill_grace)
        duration = time.monotonic() - started
        code = proc.returncode

        if cancelled:
            return StepOutcome(
                step=step,
                status=StepStatus.FAILURE,
                failure=FailureKind.CANCELLED,
                exit_code=code if code is not None and code >= 0 else None,
                signal=-code if code is not None and code < 0 else None,
                output=_tail(output + "\n[cancelled] run was cancelled while this step was running"),
                duration=duration,
            )

        if code == 0:
            return StepOutcome(step=step, status=StepStatus.SUCCESS, exit_code=0, output=_tail(output), duration=duration)

        if code < 0:
            sig = -code
            try:
                name = signal.Signals(sig).name
            except ValueError:
                name = str(sig)
            return StepOutcome(
                step=step,
                status=StepStatus.FAILURE,
                failure=FailureKind.SIGNAL,
                signal=sig,
                output=_tail(output + f"\n[killed] terminated by signal {name}"),
                duration=duration,
            )

        if step.shell:
            missing = _shell_could_not_start(code, output)
            if missing is not None:
                reason = "command not found" if code == _SHELL_NOT_FOUND else "command not executable"
                return StepOutcome(
                    step=step,
                    status=StepStatus.FAILURE,
                    failure=FailureKind.NOT_STARTED,
                    exit_code=code,
                    output=_tail(output + f"\n[not started] {reason}: {missing}\nHint: {tool_hint(missing)}"),
                    duration=duration,
                )

        return StepOutcome(
            step=step,
            status=StepStatus.FAILURE,
            failure=FailureKind.EXIT,
            exit_code=code,
            output=_tail(output),
            duration=duration,
        )
