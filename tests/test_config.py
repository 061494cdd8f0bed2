"""Workflow loading: python files, GitHub-style YAML, registry."""

import textwrap

import pytest

from gateci.config import PipelineRegistry, load_pipeline
from gateci.errors import ConfigError


CI_YAML = textwrap.dedent(
    """
    name: CI
    on:
      push:
        branches: [main]
      pull_request:
        branches: [main]
    defaults:
      run:
        working-directory: ./
    env:
      CARGO_TERM_COLOR: always
    jobs:
      lint_and_tests:
        runs-on: ubuntu-22.04
        packages: [libgtk-3-dev]
        steps:
          - uses: actions/checkout@v2
          - name: Run format check
            run: cargo fmt --check
          - name: Run clippy
            run: cargo clippy --color always
          - run: |
              cargo test
    """
)


def write(tmp_path, name, text):
    path = tmp_path / name
    path.write_text(textwrap.dedent(text))
    return path


class TestYaml:
    def test_github_style_workflow(self, tmp_path):
        p = load_pipeline(write(tmp_path, "ci.yaml", CI_YAML))

        assert p.name == "CI/lint_and_tests"
        assert {(r.event, tuple(sorted(r.branches))) for r in p.triggers} == {
            ("push", ("main",)),
            ("pull_request", ("main",)),
        }
        assert [s.name for s in p.steps] == ["Run format check", "Run clippy", "Run cargo test"]
        assert [s.run for s in p.steps] == ["cargo fmt --check", "cargo clippy --color always", "cargo test"]
        assert [s.index for s in p.steps] == [0, 1, 2]
        assert p.config.env == {"CARGO_TERM_COLOR": "always"}
        assert p.config.packages == ("libgtk-3-dev",)
        assert p.config.working_directory == str(tmp_path.resolve())

    def test_job_env_overrides_workflow_env(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: [main]}}
            env: {A: "1", B: "1"}
            jobs:
              only:
                env: {B: "2", DEBUG: true}
                steps:
                  - run: make
        """)
        p = load_pipeline(path)
        assert p.config.env == {"A": "1", "B": "2", "DEBUG": "true"}

    def test_multiple_jobs_rejected(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: [main]}}
            jobs:
              a: {steps: [{run: "true"}]}
              b: {steps: [{run: "true"}]}
        """)
        with pytest.raises(ConfigError, match="single-job"):
            load_pipeline(path)

    def test_matrix_rejected(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: [main]}}
            jobs:
              a:
                strategy: {matrix: {py: ["3.11", "3.12"]}}
                steps: [{run: "true"}]
        """)
        with pytest.raises(ConfigError, match="matrix"):
            load_pipeline(path)

    def test_step_conditions_rejected(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: [main]}}
            jobs:
              a:
                steps:
                  - run: "true"
                    if: github.event_name == 'push'
        """)
        with pytest.raises(ConfigError, match="'if'"):
            load_pipeline(path)

    def test_empty_branch_list_rejected(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: []}}
            jobs:
              a: {steps: [{run: "true"}]}
        """)
        with pytest.raises(ConfigError, match="invalid workflow"):
            load_pipeline(path)

    def test_missing_triggers(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {}
            jobs:
              a: {steps: [{run: "true"}]}
        """)
        with pytest.raises(ConfigError, match="trigger"):
            load_pipeline(path)

    def test_only_checkout_steps(self, tmp_path):
        path = write(tmp_path, "ci.yml", """
            on: {push: {branches: [main]}}
            jobs:
              a: {steps: [{uses: actions/checkout@v2}]}
        """)
        with pytest.raises(ConfigError, match="at least one step"):
            load_pipeline(path)

    def test_broken_yaml(self, tmp_path):
        path = write(tmp_path, "ci.yml", "on: [push\n")
        with pytest.raises(ConfigError, match="invalid YAML"):
            load_pipeline(path)


class TestPython:
    def test_workflow_function(self, tmp_path):
        path = write(tmp_path, "gateci_workflow.py", """
            from gateci import pipeline, sh, on_push

            def workflow():
                return pipeline("py", sh("fmt", "true"), sh("test", "true"), on=[on_push("main")])
        """)
        p = load_pipeline(path)
        assert p.name == "py"
        assert [s.name for s in p.steps] == ["fmt", "test"]

    def test_pipeline_constant(self, tmp_path):
        path = write(tmp_path, "x_workflow.py", """
            from gateci import build

            PIPELINE = build("const").on_push("main").step("a", "true").build()
        """)
        assert load_pipeline(path).name == "const"

    def test_must_produce_pipeline(self, tmp_path):
        path = write(tmp_path, "bad_workflow.py", "JOBS = []\n")
        with pytest.raises(ConfigError, match="must return/define a Pipeline"):
            load_pipeline(path)

    def test_errors_while_executing_are_wrapped(self, tmp_path):
        path = write(tmp_path, "boom_workflow.py", "raise RuntimeError('nope')\n")
        with pytest.raises(ConfigError, match="RuntimeError: nope"):
            load_pipeline(path)


class TestLoading:
    def test_missing_file(self, tmp_path):
        with pytest.raises(ConfigError, match="not found"):
            load_pipeline(tmp_path / "nope.yml")

    def test_unsupported_suffix(self, tmp_path):
        path = write(tmp_path, "ci.toml", "")
        with pytest.raises(ConfigError, match=r"\.py or \.yml"):
            load_pipeline(path)

    def test_registry_loads_once_and_shares(self, tmp_path):
        path = write(tmp_path, "ci.yaml", CI_YAML)
        reg = PipelineRegistry()
        first = reg.get(path)
        path.write_text("garbage: [")
        assert reg.get(str(path)) is first
        reg.clear()
        with pytest.raises(ConfigError):
            reg.get(path)
