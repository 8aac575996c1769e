"""
Pipeline definition and run models.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator
from typing import List, Optional, Dict, Tuple
from datetime import datetime, timezone
from enum import Enum
import uuid

def utcnow() -> datetime:
    return datetime.now(timezone.utc)

class StageStatus(str, Enum):
    PENDING = "pending"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"
    SKIPPED = "skipped"
    CANCELLED = "cancelled"

class Outcome(str, Enum):
    SUCCESS = "success"
    FAILED = "failed"
    ABORTED = "aborted"

class Stage(BaseModel):
    name: str
    steps: List[str]
    env: Dict[str, str] = {}
    timeout: Optional[float] = None

class PipelineDefinition(BaseModel):
    name: str = "Unnamed Pipeline"
    stages: List[Stage]
    post: List[str] = []
    env: Dict[str, str] = {}

class StageResult(BaseModel):
    name: str
    status: StageStatus = StageStatus.PENDING
    output: str = ""
    exit_code: Optional[int] = None
    steps_run: int = 0
    error: Optional[str] = None
    started_at: Optional[datetime] = None
    finished_at: Optional[datetime] = None

    @property
    def is_terminal(self) -> bool:
        return self.status not in (StageStatus.PENDING, StageStatus.RUNNING)

class PostActionResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    command: str
    exit_code: Optional[int] = None
    output: str = ""
    error: Optional[str] = None

class StageSnapshot(StageResult):
    """Final, read-only copy of a stage result kept on a finished run."""
    model_config = ConfigDict(frozen=True)

class PipelineRun(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    pipeline_name: str
    repository_url: str
    ref: str
    commit_id: str
    started_at: datetime
    finished_at: datetime
    stages: Tuple[StageSnapshot, ...]
    post: Tuple[PostActionResult, ...] = ()
    outcome: Outcome

    @field_validator("stages", mode="before")
    @classmethod
    def snapshot_stages(cls, stages):
        # Copy live results so later changes to them cannot reach the run
        return tuple(
            stage.model_dump() if isinstance(stage, BaseModel) else stage
            for stage in stages
        )

    def stage(self, name: str) -> StageSnapshot:
        for result in self.stages:
            if result.name == name:
                return result
        raise KeyError(name)

class Workspace(BaseModel):
    path: str
    repository_url: str
    ref: str
    commit_id: str
    synced_at: datetime = Field(default_factory=utcnow)

class CommitChange(BaseModel):
    repository_url: str
    ref: str
    commit_id: str
    previous_commit_id: Optional[str] = None
    detected_at: datetime = Field(default_factory=utcnow)

def new_run_id() -> str:
    return str(uuid.uuid4())
