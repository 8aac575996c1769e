"""Tests for the pipeline engine."""

import threading

import pytest
from pydantic import ValidationError
from conftest import FakeExecutor

from orchestrator.src.errors import DefinitionError
from orchestrator.src.models.pipeline import (
    Outcome,
    PipelineDefinition,
    PipelineRun,
    Stage,
    StageResult,
    StageStatus,
    utcnow,
)
from orchestrator.src.services.engine import PipelineEngine, RunReporter
from orchestrator.src.services.pipeline_parser import parse_pipeline_dict
from orchestrator.src.services.stage_runner import StageRunner

BUILD_AND_DEPLOY = {
    "stages": [
        {"name": "Build", "steps": ["compile"]},
        {"name": "Deploy", "steps": ["run"]},
    ],
    "post": ["cleanup"],
}

def make_engine(executor, reporter=None):
    return PipelineEngine(runner=StageRunner(executor=executor), reporter=reporter)

def statuses(run):
    return [(stage.name, stage.status) for stage in run.stages]

def test_all_stages_succeed(workspace):
    executor = FakeExecutor()
    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert run.outcome is Outcome.SUCCESS
    assert statuses(run) == [
        ("Build", StageStatus.SUCCEEDED),
        ("Deploy", StageStatus.SUCCEEDED),
    ]
    assert executor.calls == ["compile", "run", "cleanup"]
    assert len(run.post) == 1
    assert run.post[0].exit_code == 0
    assert run.commit_id == workspace.commit_id

def test_failed_stage_skips_rest(workspace):
    executor = FakeExecutor(exit_codes={"compile": 1})
    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert run.outcome is Outcome.FAILED
    assert statuses(run) == [
        ("Build", StageStatus.FAILED),
        ("Deploy", StageStatus.SKIPPED),
    ]
    assert run.stage("Build").exit_code == 1
    assert executor.calls == ["compile", "cleanup"]
    assert executor.calls.count("cleanup") == 1

@pytest.mark.parametrize("failing", range(5))
def test_failure_cascade(workspace, failing):
    definition = PipelineDefinition(
        stages=[Stage(name=f"stage-{k}", steps=[f"step-{k}"]) for k in range(5)],
        post=["post-a", "post-b"],
    )
    executor = FakeExecutor(exit_codes={f"step-{failing}": 2})
    run = make_engine(executor).execute(definition, workspace)

    assert run.outcome is Outcome.FAILED
    for k, stage in enumerate(run.stages):
        if k < failing:
            assert stage.status is StageStatus.SUCCEEDED
        elif k == failing:
            assert stage.status is StageStatus.FAILED
        else:
            assert stage.status is StageStatus.SKIPPED
            assert stage.steps_run == 0
    assert executor.calls[-2:] == ["post-a", "post-b"]
    assert [post.command for post in run.post] == ["post-a", "post-b"]

def test_post_failure_does_not_change_outcome(workspace):
    executor = FakeExecutor(exit_codes={"cleanup": 7})
    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert run.outcome is Outcome.SUCCESS
    assert run.post[0].exit_code == 7
    assert "exit code 7" in run.post[0].error

def test_post_timeout_is_recorded(workspace):
    executor = FakeExecutor(timeouts=["cleanup"])
    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert run.outcome is Outcome.SUCCESS
    assert run.post[0].exit_code == 124
    assert "timed out" in run.post[0].error

def test_empty_definition_fails_fast(workspace):
    executor = FakeExecutor()
    definition = PipelineDefinition(stages=[], post=["cleanup"])

    with pytest.raises(DefinitionError):
        make_engine(executor).execute(definition, workspace)

    assert executor.calls == []

def test_cancel_before_first_stage(workspace):
    executor = FakeExecutor()
    cancel = threading.Event()
    cancel.set()

    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace, cancel=cancel)

    assert run.outcome is Outcome.ABORTED
    assert statuses(run) == [
        ("Build", StageStatus.SKIPPED),
        ("Deploy", StageStatus.SKIPPED),
    ]
    assert executor.calls == ["cleanup"]

def test_cancel_between_steps(workspace):
    cancel = threading.Event()
    executor = FakeExecutor(hooks={"compile": cancel.set})
    definition = parse_pipeline_dict({
        "stages": [
            {"name": "Build", "steps": ["compile", "package"]},
            {"name": "Deploy", "steps": ["run"]},
        ],
        "post": ["cleanup"],
    })

    run = make_engine(executor).execute(definition, workspace, cancel=cancel)

    # The running step finishes, nothing after it starts
    assert executor.calls == ["compile", "cleanup"]
    assert run.outcome is Outcome.ABORTED
    assert statuses(run) == [
        ("Build", StageStatus.CANCELLED),
        ("Deploy", StageStatus.SKIPPED),
    ]

def test_cancel_between_stages(workspace):
    cancel = threading.Event()
    executor = FakeExecutor(hooks={"compile": cancel.set})

    run = make_engine(executor).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace, cancel=cancel)

    assert run.outcome is Outcome.ABORTED
    assert statuses(run) == [
        ("Build", StageStatus.SUCCEEDED),
        ("Deploy", StageStatus.SKIPPED),
    ]
    assert executor.calls == ["compile", "cleanup"]

def test_definition_env_reaches_steps(workspace):
    executor = FakeExecutor()
    definition = parse_pipeline_dict({
        "env": {"STAGE": "outer", "SHARED": "yes"},
        "stages": [{"name": "Build", "steps": ["compile"], "env": {"STAGE": "inner"}}],
        "post": ["cleanup"],
    })

    make_engine(executor).execute(definition, workspace)

    assert executor.envs[0] == {"STAGE": "inner", "SHARED": "yes"}
    assert executor.envs[1] == {"STAGE": "outer", "SHARED": "yes"}

def test_run_is_immutable(workspace):
    run = make_engine(FakeExecutor()).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    with pytest.raises(ValidationError):
        run.outcome = Outcome.FAILED
    with pytest.raises(ValidationError):
        run.stages[0].status = StageStatus.FAILED
    with pytest.raises(ValidationError):
        run.post[0].exit_code = 1
    with pytest.raises(AttributeError):
        run.stages.append(run.stages[0])

    assert statuses(run) == [
        ("Build", StageStatus.SUCCEEDED),
        ("Deploy", StageStatus.SUCCEEDED),
    ]

def test_run_does_not_share_live_results(workspace):
    definition = parse_pipeline_dict(BUILD_AND_DEPLOY)
    result = StageResult(name="Build", status=StageStatus.SUCCEEDED)
    run = PipelineRun(
        id="run-1",
        pipeline_name=definition.name,
        repository_url=workspace.repository_url,
        ref=workspace.ref,
        commit_id=workspace.commit_id,
        started_at=utcnow(),
        finished_at=utcnow(),
        stages=[result],
        outcome=Outcome.SUCCESS,
    )

    result.status = StageStatus.FAILED

    assert run.stage("Build").status is StageStatus.SUCCEEDED

def test_runs_are_independent(workspace):
    engine = make_engine(FakeExecutor())
    definition = parse_pipeline_dict(BUILD_AND_DEPLOY)

    first = engine.execute(definition, workspace)
    second = engine.execute(definition, workspace)

    assert first.id != second.id
    assert statuses(first) == statuses(second)

class RecordingReporter(RunReporter):
    def __init__(self):
        self.events = []

    def run_started(self, run_id, definition, workspace, started_at):
        self.events.append(("run_started", definition.name))

    def stage_started(self, run_id, stage_order, stage):
        self.events.append(("stage_started", stage.name))

    def stage_updated(self, run_id, stage_order, result):
        self.events.append(("stage_updated", result.name, result.status))

    def run_finished(self, run):
        self.events.append(("run_finished", run.outcome))

def test_reporter_notifications(workspace):
    reporter = RecordingReporter()
    executor = FakeExecutor(exit_codes={"compile": 1})

    make_engine(executor, reporter).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert reporter.events == [
        ("run_started", "Unnamed Pipeline"),
        ("stage_started", "Build"),
        ("stage_updated", "Build", StageStatus.FAILED),
        ("stage_updated", "Deploy", StageStatus.SKIPPED),
        ("run_finished", Outcome.FAILED),
    ]

class BrokenReporter(RunReporter):
    def run_started(self, run_id, definition, workspace, started_at):
        raise RuntimeError("database is locked")

    def stage_started(self, run_id, stage_order, stage):
        raise RuntimeError("database is locked")

    def stage_updated(self, run_id, stage_order, result):
        raise RuntimeError("database is locked")

    def run_finished(self, run):
        raise RuntimeError("database is locked")

def test_reporter_errors_do_not_affect_run(workspace, caplog):
    executor = FakeExecutor()

    run = make_engine(executor, BrokenReporter()).execute(parse_pipeline_dict(BUILD_AND_DEPLOY), workspace)

    assert run.outcome is Outcome.SUCCESS
    assert executor.calls == ["compile", "run", "cleanup"]
    assert run.post[0].exit_code == 0
    assert "Run reporter failed on run_started" in caplog.text
