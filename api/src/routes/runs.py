from fastapi import APIRouter, Depends, HTTPException, Query
from sqlalchemy.orm import Session, selectinload
from sqlalchemy import select, func
from typing import List, Optional

from api.src.db.database import get_db
from api.src.models.run import PipelineRunResponse, RunLogsResponse, StageLogs
from orchestrator.src.models.db import PipelineRunRecord, PipelineStageRecord

router = APIRouter(tags=["runs"])

@router.get("/runs", response_model=List[PipelineRunResponse])
def list_runs(
    limit: int = Query(20, ge=1, le=100),
    offset: int = Query(0, ge=0),
    outcome: Optional[str] = None,
    repository_url: Optional[str] = None,
    db: Session = Depends(get_db)
):
    """List pipeline runs, newest first."""
    query = (
        select(PipelineRunRecord)
        .options(selectinload(PipelineRunRecord.stages))
        .order_by(PipelineRunRecord.started_at.desc())
    )

    if outcome:
        query = query.where(PipelineRunRecord.outcome == outcome)
    if repository_url:
        query = query.where(PipelineRunRecord.repository_url == repository_url)

    query = query.limit(limit).offset(offset)

    return db.execute(query).scalars().all()

@router.get("/runs/{run_id}", response_model=PipelineRunResponse)
def get_run(run_id: str, db: Session = Depends(get_db)):
    """Get a specific pipeline run."""
    query = (
        select(PipelineRunRecord)
        .options(selectinload(PipelineRunRecord.stages))
        .where(PipelineRunRecord.id == run_id)
    )
    run = db.execute(query).scalar_one_or_none()

    if not run:
        raise HTTPException(status_code=404, detail="Pipeline run not found")

    return run

@router.get("/runs/{run_id}/logs", response_model=RunLogsResponse)
def get_run_logs(run_id: str, db: Session = Depends(get_db)):
    """Get logs for all stages in a pipeline run."""
    query = (
        select(PipelineStageRecord)
        .where(PipelineStageRecord.run_id == run_id)
        .order_by(PipelineStageRecord.stage_order)
    )
    stages = db.execute(query).scalars().all()

    if not stages:
        raise HTTPException(status_code=404, detail="Pipeline run not found")

    return RunLogsResponse(
        run_id=run_id,
        stages=[
            StageLogs(
                name=stage.name,
                status=stage.status,
                logs=stage.logs,
                started_at=stage.started_at,
                finished_at=stage.finished_at,
            )
            for stage in stages
        ],
    )

@router.get("/stats")
def get_pipeline_stats(db: Session = Depends(get_db)):
    """Get pipeline statistics."""
    # Runs still in flight have no outcome yet
    outcome_query = (
        select(PipelineRunRecord.outcome, func.count(PipelineRunRecord.id))
        .group_by(PipelineRunRecord.outcome)
    )
    outcome_counts = {
        (row[0] or "running"): row[1]
        for row in db.execute(outcome_query).all()
    }

    repo_count = db.execute(
        select(func.count(func.distinct(PipelineRunRecord.repository_url)))
    ).scalar()

    return {
        "repositories": repo_count,
        "runs": outcome_counts,
        "total_runs": sum(outcome_counts.values()),
    }
