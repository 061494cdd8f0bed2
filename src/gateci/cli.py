# cli.py
from __future__ import annotations

import json
import signal
import subprocess
import sys
from pathlib import Path

import click

from gateci.config import load_pipeline
from gateci.errors import CIError, InvalidEvent
from gateci.executor import PipelineExecutor
from gateci.git_facts.git import current_branch
from gateci.model import Event, EventKind
from gateci.step_runner import CancelToken
from gateci.trigger import should_trigger
from gateci.ui.console import Console, set_console, get_console


# Checked in this order; a pattern may match several files.
WORKFLOW_PATTERNS = ("gateci_workflow.py", "*_workflow.py", ".gateci.yml", ".gateci.yaml")


def find_workflow_files(root: Path | None = None) -> list[Path]:
    """Workflow candidates in `root` (default: cwd), Python and YAML alike."""
    root = root or Path(".")
    found: set[Path] = set()
    for pattern in WORKFLOW_PATTERNS:
        found.update(p for p in root.glob(pattern) if p.is_file())
    return sorted(found)


def discover_workflow(workflow_arg: str | None) -> Path:
    """
    The --workflow path when given, else the single candidate in the cwd.
    Exits with status 1 when there is no usable choice.
    """
    console = get_console()

    if workflow_arg:
        workflow_path = Path(workflow_arg)
        if not workflow_path.exists():
            console.print_error(
                "Workflow file not found",
                f"Could not find workflow file: {workflow_arg}",
                suggestion="Pass an existing .py or .yml file:\n  gateci run --workflow .gateci.yml",
            )
            sys.exit(1)
        return workflow_path

    candidates = find_workflow_files()

    if not candidates:
        console.print_error(
            "No workflow file found",
            "Nothing in the current directory looks like a gateci workflow.",
            details=["Looked for:", *(f"  {p}" for p in WORKFLOW_PATTERNS)],
            suggestion="Create one of those or point at a file:\n  gateci run --workflow ci.yaml",
        )
        sys.exit(1)

    if len(candidates) > 1:
        console.print_error(
            "Ambiguous workflow",
            f"{len(candidates)} workflow files found; pick one with --workflow:",
            details=[f"  {p}" for p in candidates],
        )
        sys.exit(1)

    return candidates[0]


def build_event(
    event_kind: str | None,
    branch: str | None,
    target: str | None,
    event_file: str | None,
) -> Event:
    """
    Event from a JSON payload file, or from flags. With no branch given,
    a push of the currently checked-out git branch is assumed.
    """
    if event_file:
        payload = json.loads(Path(event_file).read_text())
        if not isinstance(payload, dict):
            raise InvalidEvent("event payload must be a JSON object")
        if event_kind is None:
            event_kind = EventKind.PULL_REQUEST.value if "pull_request" in payload else EventKind.PUSH.value
        return Event.from_github(event_kind, payload)

    kind = event_kind or EventKind.PUSH.value
    if kind == EventKind.PUSH.value:
        return Event.push(branch or current_branch())
    return Event.pull_request(target_branch=target, branch=branch)


_EVENT_OPTIONS = [
    click.option("--workflow", default=None, help="Workflow file (.py or .yml)"),
    click.option(
        "--event",
        "event_kind",
        type=click.Choice([k.value for k in EventKind]),
        default=None,
        help="Event kind (defaults to push, or inferred from --event-file)",
    ),
    click.option("--branch", default=None, help="Pushed branch / PR head branch (defaults to current git branch)"),
    click.option("--target", default=None, help="Target (base) branch of a pull request"),
    click.option(
        "--event-file",
        default=None,
        type=click.Path(exists=True, dir_okay=False),
        help="GitHub-style webhook payload (JSON)",
    ),
]


def event_options(f):
    for option in reversed(_EVENT_OPTIONS):
        f = option(f)
    return f


def _event_or_exit(event_kind, branch, target, event_file) -> Event:
    console = get_console()
    try:
        return build_event(event_kind, branch, target, event_file)
    except InvalidEvent as e:
        console.print_error("Invalid event", e.message)
    except (json.JSONDecodeError, UnicodeDecodeError) as e:
        console.print_error("Invalid event file", f"Could not parse {event_file}", details=[str(e)])
    except (subprocess.CalledProcessError, FileNotFoundError):
        console.print_error(
            "Could not determine branch",
            "No --branch given and the current git branch is unknown.",
            suggestion="Specify the branch explicitly:\n  gateci run --branch main",
        )
    sys.exit(1)


@click.group()
@click.option(
    "--debug",
    is_flag=True,
    default=False,
    help="Enable debug mode (show stack traces and detailed output)",
)
@click.option("--quiet", is_flag=True, default=False, help="Only print results and errors")
@click.pass_context
def cli(ctx, debug, quiet):
    """gateci: linear, fail-fast CI pipeline runner."""
    console = Console(debug=debug, quiet=quiet)
    set_console(console)
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@cli.command()
@event_options
@click.pass_context
def run(ctx, workflow, event_kind, branch, target, event_file):
    """Run a pipeline for an event."""
    console = get_console()
    workflow_path = discover_workflow(workflow)

    try:
        pipeline = load_pipeline(workflow_path)
    except CIError as e:
        console.print_error("Failed to load workflow", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)

    event = _event_or_exit(event_kind, branch, target, event_file)

    cancel = CancelToken()
    interrupted = []

    def _on_sigint(signum, frame):
        interrupted.append(signum)
        cancel.cancel()

    previous = signal.signal(signal.SIGINT, _on_sigint)
    try:
        result = PipelineExecutor(console=console).run(pipeline, event, cancel)
    except Exception as e:
        console.print_exception(e)
        sys.exit(1)
    finally:
        signal.signal(signal.SIGINT, previous)

    console.print_results(result)

    if interrupted:
        console.print_info("\nInterrupted by user")
        sys.exit(130)
    sys.exit(result.exit_code)


@cli.command()
@event_options
def check(workflow, event_kind, branch, target, event_file):
    """Report whether an event would trigger the pipeline (runs nothing)."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        pipeline = load_pipeline(workflow_path)
    except CIError as e:
        console.print_error("Failed to load workflow", e.message)
        sys.exit(1)

    event = _event_or_exit(event_kind, branch, target, event_file)
    try:
        triggered = should_trigger(pipeline, event)
    except InvalidEvent as e:
        console.print_error("Invalid event", e.message)
        sys.exit(1)

    if triggered:
        console.print_info(f"TRIGGERED: {pipeline.name} ({event.describe()})")
    else:
        console.print_not_triggered(pipeline.name, event.describe())


@cli.command()
@click.option("--workflow", default=None, help="Workflow file (.py or .yml)")
def show(workflow):
    """Print the pipeline definition."""
    console = get_console()
    workflow_path = discover_workflow(workflow)
    try:
        pipeline = load_pipeline(workflow_path)
    except CIError as e:
        console.print_error("Failed to load workflow", e.message, details=[f"{k}={v}" for k, v in e.details.items()])
        sys.exit(1)
    console.print_pipeline(pipeline)


if __name__ == "__main__":
    cli()
