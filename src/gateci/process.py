# process.py
# Waiting on and stopping child processes that run in their own process group.
from __future__ import annotations

import os
import signal
import subprocess
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .step_runner import CancelToken


def wait_or_cancel(
    proc: subprocess.Popen,
    cancel: CancelToken | None,
    poll_interval: float,
    kill_grace: float,
) -> tuple[str, bool]:
    """
    Block until `proc` exits or `cancel` fires.

    Returns (combined output, cancelled). On cancel the whole process group
    is terminated before returning.
    """
    while True:
        if cancel is not None and cancel.cancelled:
            terminate_group(proc, kill_grace)
            out, _ = proc.communicate()
            return out or "", True
        try:
            # communicate() keeps buffered output across timeouts
            out, _ = proc.communicate(timeout=poll_interval)
            return out or "", False
        except subprocess.TimeoutExpired:
            continue


def terminate_group(proc: subprocess.Popen, kill_grace: float) -> None:
    """SIGTERM the group, then SIGKILL whatever is left after `kill_grace`."""
    _signal(proc, signal.SIGTERM)
    try:
        proc.wait(timeout=kill_grace)
    except subprocess.TimeoutExpired:
        pass
    # stragglers in the group would keep the output pipe open
    _signal(proc, signal.SIGKILL)
    proc.wait()


def _signal(proc: subprocess.Popen, sig: int) -> None:
    try:
        if hasattr(os, "killpg"):
            os.killpg(proc.pid, sig)
        else:
            proc.send_signal(sig)
    except (ProcessLookupError, PermissionError):
        pass
