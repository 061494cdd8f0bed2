from .dsl import sh, exe, on_push, on_pull_request, pipeline, PipelineBuilder, build
from .executor import PipelineExecutor, run, run_many
from .model import Event, Pipeline, RunResult, RunStatus, Step, StepOutcome, StepStatus
from .step_runner import CancelToken

__all__ = [
    "sh", "exe", "on_push", "on_pull_request", "pipeline", "PipelineBuilder", "build",
    "PipelineExecutor", "run", "run_many",
    "Event", "Pipeline", "RunResult", "RunStatus", "Step", "StepOutcome", "StepStatus",
    "CancelToken",
]
