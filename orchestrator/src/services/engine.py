"""
Pipeline engine - drives stages in order and always runs post actions.
"""

import logging
import threading
from contextlib import contextmanager
from datetime import datetime
from typing import List, Optional

from orchestrator.src.errors import StepFailure
from orchestrator.src.models.pipeline import (
    Outcome,
    PipelineDefinition,
    PipelineRun,
    PostActionResult,
    Stage,
    StageResult,
    StageStatus,
    Workspace,
    new_run_id,
    utcnow,
)
from orchestrator.src.services.pipeline_parser import validate_definition
from orchestrator.src.services.stage_runner import StageRunner

logger = logging.getLogger(__name__)

class RunReporter:
    """Receives progress notifications from the engine. No-op by default."""

    def run_started(
        self,
        run_id: str,
        definition: PipelineDefinition,
        workspace: Workspace,
        started_at: datetime,
    ):
        pass

    def stage_started(self, run_id: str, stage_order: int, stage: Stage):
        pass

    def stage_updated(self, run_id: str, stage_order: int, result: StageResult):
        pass

    def run_finished(self, run: PipelineRun):
        pass

class PipelineEngine:
    def __init__(
        self,
        runner: Optional[StageRunner] = None,
        reporter: Optional[RunReporter] = None,
    ):
        self.runner = runner or StageRunner()
        self.reporter = reporter or RunReporter()

    def execute(
        self,
        definition: PipelineDefinition,
        workspace: Workspace,
        cancel: Optional[threading.Event] = None,
    ) -> PipelineRun:
        """
        Execute every stage of `definition` against `workspace`.

        A failed stage skips all later stages. A cancellation request is
        honoured between steps and aborts the run. Post actions run once
        whatever the outcome. Raises DefinitionError before doing any work
        if the definition is invalid.
        """
        validate_definition(definition)

        run_id = new_run_id()
        started_at = utcnow()
        should_stop = cancel.is_set if cancel is not None else None
        results = [StageResult(name=stage.name) for stage in definition.stages]
        post_results: List[PostActionResult] = []
        outcome = Outcome.SUCCESS

        logger.info(
            f"Starting run {run_id} of '{definition.name}' "
            f"({len(definition.stages)} stages) at {workspace.commit_id[:12]}"
        )
        with self._post_actions(definition, workspace, post_results):
            self._notify("run_started", run_id, definition, workspace, started_at)

            for i, (stage, result) in enumerate(zip(definition.stages, results)):
                if outcome is Outcome.SUCCESS and should_stop is not None and should_stop():
                    logger.warning(f"Run {run_id} cancelled before stage '{stage.name}'")
                    outcome = Outcome.ABORTED

                if outcome is not Outcome.SUCCESS:
                    result.status = StageStatus.SKIPPED
                    self._notify("stage_updated", run_id, i, result)
                    logger.info(f"Stage '{stage.name}' skipped")
                    continue

                self._notify("stage_started", run_id, i, stage)
                self.runner.run(
                    stage,
                    workspace,
                    result=result,
                    should_stop=should_stop,
                    env=definition.env,
                )
                self._notify("stage_updated", run_id, i, result)

                if result.status is StageStatus.FAILED:
                    outcome = Outcome.FAILED
                elif result.status is StageStatus.CANCELLED:
                    outcome = Outcome.ABORTED

        run = PipelineRun(
            id=run_id,
            pipeline_name=definition.name,
            repository_url=workspace.repository_url,
            ref=workspace.ref,
            commit_id=workspace.commit_id,
            started_at=started_at,
            finished_at=utcnow(),
            stages=results,
            post=post_results,
            outcome=outcome,
        )

        logger.info(f"Run {run_id} finished with outcome: {outcome.value}")
        self._notify("run_finished", run)
        return run

    def _notify(self, event: str, *args):
        """Forward a progress event to the reporter. Reporter errors never affect the run."""
        try:
            getattr(self.reporter, event)(*args)
        except Exception:
            logger.exception(f"Run reporter failed on {event}")

    @contextmanager
    def _post_actions(
        self,
        definition: PipelineDefinition,
        workspace: Workspace,
        results: List[PostActionResult],
    ):
        """Guarantee post actions run exactly once after the stage loop."""
        try:
            yield
        finally:
            for command in definition.post:
                results.append(self._run_post_action(command, workspace, definition))

    def _run_post_action(
        self,
        command: str,
        workspace: Workspace,
        definition: PipelineDefinition,
    ) -> PostActionResult:
        logger.info(f"Post action: {command}")
        env = {**self.runner.env, **definition.env}

        try:
            command_result = self.runner.executor.run(
                command,
                cwd=workspace.path,
                env=env,
                timeout=self.runner.step_timeout,
            )
        except StepFailure as e:
            logger.warning(f"Post action failed: {e}")
            return PostActionResult(
                command=command,
                exit_code=e.exit_code,
                output=e.output,
                error=str(e),
            )
        except OSError as e:
            logger.warning(f"Post action '{command}' could not be started: {e}")
            return PostActionResult(command=command, error=str(e))

        error = None
        if command_result.exit_code != 0:
            error = str(StepFailure(command, command_result.exit_code))
            logger.warning(f"Post action failed: {error}")

        return PostActionResult(
            command=command,
            exit_code=command_result.exit_code,
            output=command_result.output,
            error=error,
        )
