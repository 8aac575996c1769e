"""
Stage runner - executes one stage's steps inside a workspace.
"""

import logging
from typing import Callable, Dict, Optional

from orchestrator.src.config import get_settings
from orchestrator.src.errors import StepFailure
from orchestrator.src.models.pipeline import (
    Stage,
    StageResult,
    StageStatus,
    Workspace,
    utcnow,
)
from orchestrator.src.services.executor import CommandExecutor, LocalCommandExecutor

logger = logging.getLogger(__name__)
settings = get_settings()

class StageRunner:
    def __init__(
        self,
        executor: Optional[CommandExecutor] = None,
        step_timeout: Optional[float] = None,
        env: Optional[Dict[str, str]] = None,
    ):
        self.executor = executor or LocalCommandExecutor()
        self.step_timeout = step_timeout if step_timeout is not None else settings.step_timeout
        self.env = env or {}

    def run(
        self,
        stage: Stage,
        workspace: Workspace,
        result: Optional[StageResult] = None,
        should_stop: Optional[Callable[[], bool]] = None,
        env: Optional[Dict[str, str]] = None,
    ) -> StageResult:
        """
        Run the stage's steps in order, stopping at the first failure.
        Returns the (mutated) stage result.
        """
        if result is None:
            result = StageResult(name=stage.name)

        step_env = {**self.env, **(env or {}), **stage.env}
        timeout = stage.timeout if stage.timeout is not None else self.step_timeout
        outputs = []

        result.status = StageStatus.RUNNING
        result.started_at = utcnow()
        logger.info(f"Stage '{stage.name}' started ({len(stage.steps)} steps)")

        try:
            for i, command in enumerate(stage.steps):
                if i > 0 and should_stop is not None and should_stop():
                    result.status = StageStatus.CANCELLED
                    result.error = f"Cancelled before step {i}"
                    logger.warning(f"Stage '{stage.name}' cancelled before step {i}")
                    return result

                logger.info(f"Stage '{stage.name}' step {i}: {command}")
                result.steps_run += 1

                try:
                    command_result = self.executor.run(
                        command,
                        cwd=workspace.path,
                        env=step_env,
                        timeout=timeout,
                    )
                except StepFailure as e:
                    outputs.append(e.output)
                    result.exit_code = e.exit_code
                    result.error = str(e)
                    result.status = StageStatus.FAILED
                    logger.error(f"Stage '{stage.name}' step {i} failed: {e}")
                    return result
                except OSError as e:
                    result.exit_code = None
                    result.error = f"Step '{command}' could not be started: {e}"
                    result.status = StageStatus.FAILED
                    logger.error(result.error)
                    return result

                outputs.append(command_result.output)
                result.exit_code = command_result.exit_code

                if command_result.exit_code != 0:
                    failure = StepFailure(command, command_result.exit_code)
                    result.error = str(failure)
                    result.status = StageStatus.FAILED
                    logger.error(f"Stage '{stage.name}' step {i} failed: {failure}")
                    return result

            result.status = StageStatus.SUCCEEDED
            logger.info(f"Stage '{stage.name}' succeeded")
            return result
        finally:
            result.output = "".join(outputs)
            result.finished_at = utcnow()
