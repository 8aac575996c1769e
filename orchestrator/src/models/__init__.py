from orchestrator.src.models.pipeline import (
    StageStatus,
    Outcome,
    Stage,
    PipelineDefinition,
    StageResult,
    StageSnapshot,
    PostActionResult,
    PipelineRun,
    Workspace,
    CommitChange,
)

__all__ = [
    "StageStatus",
    "Outcome",
    "Stage",
    "PipelineDefinition",
    "StageResult",
    "StageSnapshot",
    "PostActionResult",
    "PipelineRun",
    "Workspace",
    "CommitChange",
]
