"""Console output formatting utilities for gateci."""

from __future__ import annotations

import sys
from typing import Optional

from ..model import Pipeline, RunResult, RunStatus, Step, StepOutcome


class Console:
    """Centralized console output formatting."""

    def __init__(self, debug: bool = False, quiet: bool = False):
        """
        Initialize console formatter.

        Args:
            debug: If True, show detailed output including stack traces
            quiet: If True, suppress per-step progress (results and errors still print)
        """
        self.debug = debug
        self.quiet = quiet

    def print_header(self, title: str) -> None:
        """Print a section header."""
        print(f"\n{title}")
        print("-" * len(title))

    def print_run_started(self, pipeline: str, event: str, step_count: int) -> None:
        """Print run start information."""
        if self.quiet:
            return
        print("\nRUN STARTED")
        print(f"Pipeline: {pipeline}")
        print(f"Event: {event}")
        print(f"Steps: {step_count}")
        print()

    def print_not_triggered(self, pipeline: str, event: str) -> None:
        print(f"NOT TRIGGERED: {pipeline} ({event} matches no trigger rule)")

    def print_step(self, index: int, total: int, step: Step) -> None:
        """Print step start message."""
        if self.quiet:
            return
        print(f"STEP {index + 1}/{total}: {step.name}")
        self.print_debug(f"$ {step.run}")

    def print_step_result(self, outcome: StepOutcome) -> None:
        """Print a finished step; failing steps get their captured output."""
        if self.quiet and outcome.ok:
            return
        print(f"STATUS: {outcome.summary()} ({outcome.duration:.1f}s)")
        if not outcome.ok and outcome.output:
            for line in outcome.output.rstrip().splitlines():
                print(f"  | {line}")

    def print_step_skipped(self, step: Step) -> None:
        if self.quiet:
            return
        print(f"STEP SKIPPED: {step.name}")

    def print_results(self, result: RunResult) -> None:
        """Print final results summary."""
        print("\n" + "=" * 40)
        print("RESULTS")
        print("=" * 40)
        total = len(result.pipeline.steps)
        for i, outcome in enumerate(result.outcomes):
            print(f"  {i + 1}/{total} {outcome.step.name}: {outcome.summary().upper()}")

        if result.status is RunStatus.SUCCEEDED:
            print("RUN: SUCCEEDED")
        elif result.status is RunStatus.NOT_TRIGGERED:
            print("RUN: NOT TRIGGERED")
        elif result.failed_index is not None:
            step = result.pipeline.steps[result.failed_index]
            print(f"RUN: FAILED at step {result.failed_index + 1} of {total} ({step.name})")
            print(f"failed_index={result.failed_index}")
        else:
            print(f"RUN: FAILED ({result.error_kind})")
        if result.message and result.status is RunStatus.FAILED:
            print(f"Reason: {result.message.splitlines()[0]}")

    def print_pipeline(self, pipeline: Pipeline) -> None:
        """Print a pipeline definition."""
        self.print_header(pipeline.name)
        print("Triggers:")
        for rule in pipeline.triggers:
            print(f"  {rule.event}: {', '.join(sorted(rule.branches))}")
        print(f"Working directory: {pipeline.config.working_directory}")
        if pipeline.config.env:
            print("Env:")
            for k, v in sorted(pipeline.config.env.items()):
                print(f"  {k}={v}")
        if pipeline.config.packages:
            print(f"Packages: {' '.join(pipeline.config.packages)}")
        print("Steps:")
        for i, step in enumerate(pipeline.steps):
            print(f"  {i + 1}. {step.name}: {step.run}")

    def print_error(
        self,
        title: str,
        message: str,
        details: Optional[list[str]] = None,
        suggestion: Optional[str] = None,
    ) -> None:
        """
        Print structured error message.

        Args:
            title: Error title
            message: Main error message
            details: Optional list of detail lines
            suggestion: Optional suggestion for user
        """
        print(f"\nERROR: {title}", file=sys.stderr)
        print(f"{message}", file=sys.stderr)
        if details:
            for detail in details:
                print(f"  {detail}", file=sys.stderr)
        if suggestion:
            print(f"\n{suggestion}", file=sys.stderr)

    def print_exception(self, exc: BaseException) -> None:
        """Print exception, with full traceback only in debug mode."""
        if self.debug:
            import traceback
            traceback.print_exception(type(exc), exc, exc.__traceback__)
        else:
            print(f"Error: {exc}", file=sys.stderr)

    def print_info(self, message: str) -> None:
        """Print informational message."""
        print(message)

    def print_debug(self, message: str) -> None:
        """Print debug message (only if debug mode enabled)."""
        if self.debug:
            print(f"[DEBUG] {message}", file=sys.stderr)


# Global console instance (will be initialized by CLI)
_console: Optional[Console] = None


def get_console() -> Console:
    """Get the global console instance."""
    global _console
    if _console is None:
        _console = Console()
    return _console


def set_console(console: Console) -> None:
    """Set the global console instance."""
    global _console
    _console = console
