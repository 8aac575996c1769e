"""
Record pipeline run and stage status to the history database.
"""

import logging
from datetime import datetime
from typing import List, Optional
from sqlalchemy import create_engine, update
from sqlalchemy.orm import sessionmaker

from orchestrator.src.config import get_settings
from orchestrator.src.models.db import Base, PipelineRunRecord, PipelineStageRecord
from orchestrator.src.models.pipeline import (
    PipelineDefinition,
    PipelineRun,
    Stage,
    StageResult,
    StageStatus,
    Workspace,
    utcnow,
)
from orchestrator.src.services.engine import RunReporter

logger = logging.getLogger(__name__)
settings = get_settings()

def create_session_factory(database_url: str) -> sessionmaker:
    """Create the engine and tables for a history database."""
    connect_args = {}
    if database_url.startswith("sqlite"):
        # Runs are recorded from the watch worker thread
        connect_args["check_same_thread"] = False

    engine = create_engine(database_url, connect_args=connect_args)
    Base.metadata.create_all(engine)
    return sessionmaker(bind=engine)

class RunRecorder(RunReporter):
    """Persists engine progress so the status API can serve it."""

    def __init__(self, database_url: Optional[str] = None):
        self.SessionLocal = create_session_factory(database_url or settings.database_url)

    def run_started(
        self,
        run_id: str,
        definition: PipelineDefinition,
        workspace: Workspace,
        started_at: datetime,
    ):
        with self.SessionLocal() as session:
            run = PipelineRunRecord(
                id=run_id,
                pipeline_name=definition.name,
                repository_url=workspace.repository_url,
                ref=workspace.ref,
                commit_sha=workspace.commit_id,
                status="running",
                started_at=started_at,
            )
            session.add(run)

            for i, stage in enumerate(definition.stages):
                session.add(PipelineStageRecord(
                    run_id=run_id,
                    name=stage.name,
                    stage_order=i,
                    status=StageStatus.PENDING.value,
                ))

            session.commit()
            logger.info(f"Recorded run {run_id} as running")

    def stage_started(self, run_id: str, stage_order: int, stage: Stage):
        self.update_stage_status(
            run_id, stage_order, StageStatus.RUNNING.value,
            started_at=utcnow(),
        )

    def stage_updated(self, run_id: str, stage_order: int, result: StageResult):
        self.update_stage_status(
            run_id, stage_order, result.status.value,
            logs=result.output,
            exit_code=result.exit_code,
            error=result.error,
            started_at=result.started_at,
            finished_at=result.finished_at,
        )

    def run_finished(self, run: PipelineRun):
        with self.SessionLocal() as session:
            session.execute(
                update(PipelineRunRecord)
                .where(PipelineRunRecord.id == run.id)
                .values(
                    status="finished",
                    outcome=run.outcome.value,
                    post_results=[post.model_dump() for post in run.post],
                    finished_at=run.finished_at,
                    updated_at=utcnow(),
                )
            )
            session.commit()
            logger.info(f"Recorded run {run.id} outcome {run.outcome.value}")

    def update_stage_status(
        self,
        run_id: str,
        stage_order: int,
        status: str,
        logs: Optional[str] = None,
        exit_code: Optional[int] = None,
        error: Optional[str] = None,
        started_at: Optional[datetime] = None,
        finished_at: Optional[datetime] = None,
    ):
        """Update pipeline stage status in database."""
        with self.SessionLocal() as session:
            values = {"status": status}

            if logs is not None:
                values["logs"] = logs
            if exit_code is not None:
                values["exit_code"] = exit_code
            if error is not None:
                values["error"] = error
            if started_at:
                values["started_at"] = started_at
            if finished_at:
                values["finished_at"] = finished_at

            session.execute(
                update(PipelineStageRecord)
                .where(PipelineStageRecord.run_id == run_id)
                .where(PipelineStageRecord.stage_order == stage_order)
                .values(**values)
            )
            session.commit()
            logger.debug(f"Updated stage {stage_order} of run {run_id} to {status}")

    def get_run_stages(self, run_id: str) -> List[dict]:
        """Get all recorded stages for a run."""
        with self.SessionLocal() as session:
            stages = session.query(PipelineStageRecord).filter(
                PipelineStageRecord.run_id == run_id
            ).order_by(PipelineStageRecord.stage_order).all()

            return [
                {
                    "order": s.stage_order,
                    "name": s.name,
                    "status": s.status,
                    "exit_code": s.exit_code,
                    "logs": s.logs,
                }
                for s in stages
            ]
