from pydantic import BaseModel
from typing import Optional, List, Dict, Any
from datetime import datetime

class StageResponse(BaseModel):
    name: str
    stage_order: int
    status: str
    exit_code: Optional[int] = None
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    class Config:
        from_attributes = True

class PipelineRunResponse(BaseModel):
    id: str
    pipeline_name: str
    repository_url: str
    ref: str
    commit_sha: str
    status: str
    outcome: Optional[str] = None
    post_results: Optional[List[Dict[str, Any]]] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None
    stages: List[StageResponse] = []

    class Config:
        from_attributes = True

class StageLogs(BaseModel):
    name: str
    status: str
    logs: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

class RunLogsResponse(BaseModel):
    run_id: str
    stages: List[StageLogs]
