# gateci_workflow.py
# Quality gates for gateci itself: format check, lint, tests.
from __future__ import annotations
from gateci import pipeline, sh, on_push, on_pull_request


def workflow():
    return pipeline(
        "gateci",
        sh("Format check", "ruff format --check ."),
        sh("Lint", "ruff check ."),
        sh("Tests", "pytest -q"),
        on=[on_push("main"), on_pull_request("main")],
        env={"PYTHONDONTWRITEBYTECODE": "1"},
    )
