# provision.py
from __future__ import annotations

import os
import shlex
import shutil
import subprocess
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from pathlib import Path
from typing import TYPE_CHECKING, Callable, Dict, Iterator, Mapping, Optional, Sequence

from . import settings
from .errors import CancellationError, ProvisioningError
from .model import ExecConfig
from .process import wait_or_cancel

if TYPE_CHECKING:
    from .step_runner import CancelToken


@dataclass
class ExecutionContext:
    """Everything a run's steps execute within. Owned by exactly one run."""
    working_directory: Path
    env: Dict[str, str]
    scratch_dir: Path
    packages: tuple[str, ...] = ()
    released: bool = field(default=False, compare=False)


Installer = Callable[[Sequence[str], ExecutionContext, "Optional[CancelToken]"], None]


def install_packages(packages: Sequence[str], ctx: ExecutionContext, cancel: Optional[CancelToken] = None) -> None:
    """
    Install system packages with the configured package manager.

    Raises:
        ProvisioningError: if the installer cannot start or exits non-zero
        CancellationError: if `cancel` fires while the install is running
    """
    cmd = shlex.split(settings.INSTALL_COMMAND) + list(packages)
    try:
        proc = subprocess.Popen(
            cmd,
            cwd=ctx.working_directory,
            env=ctx.env,
            stdout=subprocess.PIPE,
            stderr=subprocess.STDOUT,
            text=True,
            errors="replace",
            start_new_session=True,
        )
    except OSError as e:
        raise ProvisioningError(
            f"package installer could not start: {e}",
            command=" ".join(cmd),
        ) from e

    output, cancelled = wait_or_cancel(proc, cancel, settings.POLL_INTERVAL, settings.KILL_GRACE)
    if cancelled:
        raise CancellationError("run was cancelled during package install", command=" ".join(cmd))

    if proc.returncode != 0:
        raise ProvisioningError(
            f"package install failed (exit={proc.returncode})",
            command=" ".join(cmd),
            output=output[-settings.OUTPUT_LIMIT:],
        )


def merge_env(overrides: Mapping[str, str], base: Optional[Dict[str, str]] = None) -> Dict[str, str]:
    """Inherited environment with pipeline overrides winning on collision."""
    env = dict(os.environ if base is None else base)
    env.update(overrides)
    return env


class Provisioner:
    """Allocates and releases per-run execution contexts."""

    def __init__(self, installer: Installer | None = None, scratch_root: str | Path | None = None):
        self.installer = installer or install_packages
        self.scratch_root = Path(scratch_root) if scratch_root is not None else None

    def acquire(self, config: ExecConfig, cancel: Optional[CancelToken] = None) -> ExecutionContext:
        workdir = Path(config.working_directory).expanduser().resolve()
        if not workdir.is_dir():
            raise ProvisioningError(
                "working directory is not accessible",
                working_directory=str(workdir),
            )
        if not os.access(workdir, os.R_OK | os.X_OK):
            raise ProvisioningError(
                "working directory is not readable",
                working_directory=str(workdir),
            )

        try:
            scratch = Path(tempfile.mkdtemp(prefix="gateci-", dir=self.scratch_root))
        except OSError as e:
            raise ProvisioningError(f"could not create scratch directory: {e}") from e

        env = merge_env(config.env)
        if "TMPDIR" not in config.env:
            env["TMPDIR"] = str(scratch)

        ctx = ExecutionContext(
            working_directory=workdir,
            env=env,
            scratch_dir=scratch,
            packages=config.packages,
        )

        if config.packages:
            try:
                self.installer(config.packages, ctx, cancel)
            except BaseException:
                self.release(ctx)
                raise

        return ctx

    def release(self, ctx: ExecutionContext) -> None:
        if ctx.released:
            return
        ctx.released = True
        shutil.rmtree(ctx.scratch_dir, ignore_errors=True)

    @contextmanager
    def provision(self, config: ExecConfig, cancel: Optional[CancelToken] = None) -> Iterator[ExecutionContext]:
        ctx = self.acquire(config, cancel)
        try:
            yield ctx
        finally:
            self.release(ctx)
